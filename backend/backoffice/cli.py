# Overview: Flask CLI command groups for bootstrap, account/role governance, and inspection.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Mutating commands take --actor EMAIL for audit attribution. Without it the
# change is recorded as system-initiated (null actor).
#
# System bootstrap:
# - python -m flask system init [--admin-email admin@example.com --admin-name "Admin" --branch HQ]
#   Create tables, seed default roles (Admin, Manager, Staff), optionally the first admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Accounts:
# - python -m flask accounts list [--q text --role Admin --status active --type staff --branch HQ --sort name --direction asc]
# - python -m flask accounts create --name "Jane" --email jane@example.com --role Staff --branch HQ
# - python -m flask accounts activate|deactivate|suspend <id-or-email> [--yes]
#   Prompts with the same confirmation sentence the admin screen shows.
# - python -m flask accounts delete <id-or-email> [--yes]
# - python -m flask accounts export [--output accounts.csv] (same filters as list)
# - python -m flask accounts summary
#
# Roles:
# - python -m flask roles list [--scope global --sort users_count]
# - python -m flask roles create --name Auditor --scope branch --grant reports:read --grant reports:export
# - python -m flask roles show <role-id>
# - python -m flask roles delete <role-id> [--yes]
# - python -m flask roles export [--output roles.csv]
#
# Audit / auth / notifications:
# - python -m flask audit tail [--limit 20 --action suspend --actor admin@example.com]
# - python -m flask auth issue-token admin@example.com
# - python -m flask notifications pending [--limit 20]

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import auth_service
from .services.governance_service import AccountQuery, RoleQuery, get_governance, reset_governance
from .services.notification_service import pending_outbox
from .time_utils import to_utc_z
from .validation import LastAdminGuard, NotFound, ValidationError


GOVERNANCE_ERRORS = (ValidationError, NotFound, LastAdminGuard)


def _fail(message: str):
    click.echo(f"FAIL {message}")
    raise click.exceptions.Exit(1)


def _fail_from(exc: Exception):
    if isinstance(exc, ValidationError):
        click.echo("FAIL Validation failed:")
        for field, message in exc.errors.items():
            click.echo(f"   {field}: {message}")
        raise click.exceptions.Exit(1)
    _fail(str(exc))


def _outcome_note(result) -> str:
    return " (saved locally only: remote store unavailable)" if result.local_only else ""


def _resolve_account(facade, ref: str):
    """Accept an account id or email."""
    account = facade.accounts.find_by_email(ref) if "@" in ref else None
    if account is None:
        try:
            account = facade.accounts.get(ref)
        except NotFound:
            _fail(f"Account '{ref}' not found")
    return account


def _write_or_echo(text: str, output):
    if output:
        with open(output, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)
        click.echo(f"PASS Wrote {output}")
    else:
        click.echo(text, nl=False)


def _account_filter_options(f):
    f = click.option('--direction', default='desc', help='asc or desc')(f)
    f = click.option('--sort', default='created_at', help='name, created_at or last_login_at')(f)
    f = click.option('--branch', default=None, help='Filter by branch')(f)
    f = click.option('--type', 'account_type', default=None, help='user or staff')(f)
    f = click.option('--status', default=None, help='active, inactive, suspended or pending')(f)
    f = click.option('--role', default=None, help='Filter by role name')(f)
    f = click.option('--q', default=None, help='Substring of name or email')(f)
    return f


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default=None, help='Create an active Admin account with this email')
@click.option('--admin-name', default='Administrator', help='Name for the Admin account')
@click.option('--branch', default='HQ', help='Branch for the Admin account')
@with_appcontext
def init_system(admin_email, admin_name, branch):
    """
    Idempotent bootstrap: tables, default roles, optional first Admin account.

    Safe to run repeatedly; existing roles and accounts are left alone.
    """
    click.echo("START Initializing back-office governance...")

    db.create_all()
    reset_governance()
    facade = get_governance()

    created = facade.roles.seed_defaults(actor=None)
    if created:
        click.echo(f"PASS Created roles: {', '.join(r.name for r in created)}")
    click.echo(f"PASS Roles available: {', '.join(facade.roles.names())}")

    if admin_email:
        if facade.accounts.find_by_email(admin_email):
            click.echo(f"WARN  Account '{admin_email}' already exists, skipping...")
        else:
            admin_role = facade.roles.admin_roles()[0]
            try:
                result = facade.create_account(
                    {
                        "name": admin_name,
                        "email": admin_email,
                        "role": admin_role.name,
                        "status": "active",
                        "branch": branch,
                    },
                    actor=None,
                )
            except GOVERNANCE_ERRORS as e:
                _fail_from(e)
            click.echo(f"PASS Created admin account: {result.record.email} (ID: {result.record.id})")
            click.echo("     Issue a token with: python -m flask auth issue-token " + result.record.email)

    click.echo("DONE Governance initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    reset_governance()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# ACCOUNTS
# =============================================================================

@click.group('accounts')
def accounts_group():
    """Account listing, creation, status transitions and export."""


@accounts_group.command('list')
@_account_filter_options
@with_appcontext
def list_accounts(q, role, status, account_type, branch, sort, direction):
    """List accounts with the same filters as the admin screen."""
    facade = get_governance()
    try:
        query = AccountQuery.from_args({
            "q": q, "role": role, "status": status, "account_type": account_type,
            "branch": branch, "sort": sort, "direction": direction,
        })
    except ValidationError as e:
        _fail_from(e)

    accounts = facade.search_accounts(query)
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<38} {'Name':<20} {'Email':<28} {'Role':<10} {'Status':<10} {'Last Login'}")
    click.echo("="*110)
    for account in accounts:
        last_login = facade.accounts.effective_last_login(account)
        click.echo(
            f"{account.id:<38} {account.name[:20]:<20} {account.email[:28]:<28} "
            f"{account.role[:10]:<10} {account.status:<10} {to_utc_z(last_login) or 'never'}"
        )
    click.echo("="*110 + "\n")


@accounts_group.command('create')
@click.option('--name', required=True, help='Full name')
@click.option('--email', required=True, help='Email (unique)')
@click.option('--role', required=True, help='Existing role name')
@click.option('--branch', required=True, help='Branch')
@click.option('--status', default='pending', help='Initial status (default pending)')
@click.option('--type', 'account_type', default='user', help='user or staff')
@click.option('--linked-user', 'linked_user_id', default=None, help='User account id (staff only)')
@click.option('--actor', default=None, help='Actor email for the audit trail')
@with_appcontext
def create_account_cli(name, email, role, branch, status, account_type, linked_user_id, actor):
    """Create an account."""
    payload = {
        "name": name,
        "email": email,
        "role": role,
        "branch": branch,
        "status": status,
        "account_type": account_type,
    }
    if linked_user_id:
        payload["linked_user_id"] = linked_user_id
    try:
        result = get_governance().create_account(payload, actor=actor)
    except GOVERNANCE_ERRORS as e:
        _fail_from(e)
    click.echo(f"PASS Created account {result.record.email} (ID: {result.record.id}){_outcome_note(result)}")


def _status_command(action: str):
    @click.argument('account_ref')
    @click.option('--yes', is_flag=True, help='Skip confirmation')
    @click.option('--actor', default=None, help='Actor email for the audit trail')
    @with_appcontext
    def command(account_ref, yes, actor):
        facade = get_governance()
        account = _resolve_account(facade, account_ref)
        if not yes:
            click.confirm(facade.confirmation_prompt(account.id, action), abort=True)
        try:
            result = facade.change_status(account.id, action, actor=actor)
        except GOVERNANCE_ERRORS as e:
            _fail_from(e)
        click.echo(f"PASS {result.record.email} is now {result.record.status}{_outcome_note(result)}")

    command.__doc__ = f"{action.capitalize()} an account (id or email)."
    return command


accounts_group.command('activate')(_status_command("activate"))
accounts_group.command('deactivate')(_status_command("deactivate"))
accounts_group.command('suspend')(_status_command("suspend"))


@accounts_group.command('delete')
@click.argument('account_ref')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@click.option('--actor', default=None, help='Actor email for the audit trail')
@with_appcontext
def delete_account_cli(account_ref, yes, actor):
    """Delete an account (id or email)."""
    facade = get_governance()
    account = _resolve_account(facade, account_ref)
    if not yes:
        click.confirm(f"Delete the account of {account.name} ({account.email})?", abort=True)
    try:
        result = facade.delete_account(account.id, actor=actor)
    except GOVERNANCE_ERRORS as e:
        _fail_from(e)
    click.echo(f"PASS Deleted account {result.record.email}{_outcome_note(result)}")


@accounts_group.command('export')
@_account_filter_options
@click.option('--output', default=None, help='Write CSV to this path instead of stdout')
@with_appcontext
def export_accounts_cli(q, role, status, account_type, branch, sort, direction, output):
    """Export the filtered account list as CSV."""
    try:
        query = AccountQuery.from_args({
            "q": q, "role": role, "status": status, "account_type": account_type,
            "branch": branch, "sort": sort, "direction": direction,
        })
    except ValidationError as e:
        _fail_from(e)
    _write_or_echo(get_governance().export_accounts(query), output)


@accounts_group.command('summary')
@with_appcontext
def account_summary_cli():
    """Counts by status and account type."""
    summary = get_governance().account_summary()
    click.echo(f"Total accounts: {summary['total']}")
    for status, count in summary["by_status"].items():
        click.echo(f"   {status:<10} {count}")
    for account_type, count in summary["by_account_type"].items():
        click.echo(f"   {account_type:<10} {count}")


# =============================================================================
# ROLES
# =============================================================================

@click.group('roles')
def roles_group():
    """Role listing, creation, deletion and export."""


@roles_group.command('list')
@click.option('--q', default=None, help='Substring of name or description')
@click.option('--scope', default=None, help='global or branch')
@click.option('--sort', default='created_at', help='name, created_at or users_count')
@click.option('--direction', default='desc', help='asc or desc')
@with_appcontext
def list_roles(q, scope, sort, direction):
    """List roles with user counts."""
    try:
        query = RoleQuery.from_args({"q": q, "scope": scope, "sort": sort, "direction": direction})
    except ValidationError as e:
        _fail_from(e)

    views = get_governance().search_roles(query)
    if not views:
        click.echo("No roles found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<38} {'Name':<20} {'Scope':<8} {'Users':<6} {'Granted'}")
    click.echo("="*90)
    for view in views:
        role = view.role
        click.echo(
            f"{role.id:<38} {role.name[:20]:<20} {role.scope:<8} "
            f"{view.users_count:<6} {role.permissions.granted_count()}"
        )
    click.echo("="*90 + "\n")


@roles_group.command('create')
@click.option('--name', required=True, help='Role name (unique per scope)')
@click.option('--scope', required=True, help='global or branch')
@click.option('--description', default=None, help='Description')
@click.option('--grant', 'grants', multiple=True, help='module:action, repeatable')
@click.option('--actor', default=None, help='Actor email for the audit trail')
@with_appcontext
def create_role_cli(name, scope, description, grants, actor):
    """Create a role."""
    permissions = {}
    for grant in grants:
        module, sep, action = grant.partition(":")
        if not sep:
            _fail(f"Invalid grant '{grant}', expected module:action")
        permissions.setdefault(module.strip(), []).append(action.strip())

    try:
        result = get_governance().create_role(
            {"name": name, "scope": scope, "description": description, "permissions": permissions},
            actor=actor,
        )
    except GOVERNANCE_ERRORS as e:
        _fail_from(e)
    click.echo(f"PASS Created role {result.record.name} (ID: {result.record.id}){_outcome_note(result)}")


@roles_group.command('show')
@click.argument('role_id')
@with_appcontext
def show_role(role_id):
    """Effective permissions of one role."""
    try:
        preview = get_governance().permission_preview(role_id)
    except NotFound as e:
        _fail_from(e)
    for module in preview["modules"]:
        actions = ", ".join(module["labels"]) or "-"
        click.echo(f"{module['label']:<12} {actions}")
    click.echo(f"Granted: {preview['granted_count']}")


@roles_group.command('delete')
@click.argument('role_id')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@click.option('--actor', default=None, help='Actor email for the audit trail')
@with_appcontext
def delete_role_cli(role_id, yes, actor):
    """Delete a role. Roles with assigned accounts and the last global Admin role are kept."""
    facade = get_governance()
    try:
        role = facade.roles.get(role_id)
        if not yes:
            click.confirm(f"Delete role {role.name} ({role.scope})?", abort=True)
        result = facade.delete_role(role_id, actor=actor)
    except GOVERNANCE_ERRORS as e:
        _fail_from(e)
    click.echo(f"PASS Deleted role {result.record.name}{_outcome_note(result)}")


@roles_group.command('export')
@click.option('--q', default=None, help='Substring of name or description')
@click.option('--scope', default=None, help='global or branch')
@click.option('--sort', default='created_at', help='name, created_at or users_count')
@click.option('--direction', default='desc', help='asc or desc')
@click.option('--output', default=None, help='Write CSV to this path instead of stdout')
@with_appcontext
def export_roles_cli(q, scope, sort, direction, output):
    """Export the filtered role list as CSV."""
    try:
        query = RoleQuery.from_args({"q": q, "scope": scope, "sort": sort, "direction": direction})
    except ValidationError as e:
        _fail_from(e)
    _write_or_echo(get_governance().export_roles(query), output)


# =============================================================================
# AUDIT / AUTH / NOTIFICATIONS
# =============================================================================

@click.group('audit')
def audit_group():
    """Governance audit trail inspection."""


@audit_group.command('tail')
@click.option('--limit', default=20, type=int, help='Number of entries')
@click.option('--action', default=None, help='Filter by action')
@click.option('--actor', default=None, help='Filter by actor email')
@click.option('--target', default=None, help='Filter by target email or id')
@with_appcontext
def audit_tail(limit, action, actor, target):
    """Newest audit entries first."""
    try:
        entries = get_governance().activity(action=action, actor=actor, target=target, limit=limit)
    except ValidationError as e:
        _fail_from(e)

    if not entries:
        click.echo("No audit entries found.")
        return

    for entry in entries:
        flag = " [local only]" if entry.local_only else ""
        click.echo(
            f"{to_utc_z(entry.created_at)} {entry.actor_email or 'system':<25} "
            f"{entry.action:<10} {entry.target_type:<8} {entry.target_email or entry.target_id}{flag}"
        )


@click.group('auth')
def auth_group():
    """Actor token helpers."""


@auth_group.command('issue-token')
@click.argument('email')
@with_appcontext
def issue_token_cli(email):
    """Print a bearer token for an active account."""
    account = get_governance().accounts.find_by_email(email)
    if account is None:
        _fail(f"Account '{email}' not found")
    if account.status != "active":
        _fail(f"Account '{email}' is {account.status}, not active")
    click.echo(auth_service.issue_token(account.email))


@click.group('notifications')
def notifications_group():
    """Queued account emails."""


@notifications_group.command('pending')
@click.option('--limit', default=20, type=int, help='Number of emails')
@with_appcontext
def pending_notifications(limit):
    """Unsent emails, oldest first."""
    emails = pending_outbox(limit)
    if not emails:
        click.echo("No pending emails.")
        return
    for email in emails:
        click.echo(f"{email.id:<6} {email.kind:<16} {email.recipient:<30} {to_utc_z(email.created_at)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(roles_group)
    app.cli.add_command(audit_group)
    app.cli.add_command(auth_group)
    app.cli.add_command(notifications_group)
