# Overview: Actor identity for audit attribution, carried in signed bearer tokens.

"""
The authentication subsystem is external to governance; all the core needs
from it is "who is acting" as an email, or None for system context.

Over HTTP that identity arrives as a bearer token signed with the app's
SECRET_KEY (itsdangerous, the signer Flask itself uses for sessions).
Tokens are issued by the login service or by `flask auth issue-token`.
"""

from __future__ import annotations

from typing import Optional

from flask import current_app
from itsdangerous import BadData, URLSafeTimedSerializer


TOKEN_SALT = "backoffice-actor"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_token(email: str) -> str:
    return _serializer().dumps({"email": email.strip().lower()})


def resolve_actor(token: Optional[str]) -> Optional[str]:
    """
    Email carried by a valid, unexpired token; None otherwise.

    Expired, tampered and malformed tokens are all BadData.
    """
    if not token:
        return None
    try:
        data = _serializer().loads(token, max_age=current_app.config["AUTH_TOKEN_MAX_AGE"])
    except BadData:
        return None
    if not isinstance(data, dict):
        return None
    email = data.get("email")
    return email if isinstance(email, str) and email else None
