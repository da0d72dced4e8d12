from .accounts import Account
from .roles import Role
from .audit import AccountAuditEntry
from .notifications import EmailOutbox

__all__ = [
    'Account', 'Role', 'AccountAuditEntry', 'EmailOutbox',
]
