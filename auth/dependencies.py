"""
auth/dependencies.py -- Request gate: access-token verification per request.

verify_request() is the gate itself: a pure function of (Authorization header,
access secret, account lookup). It performs no writes, so retrying it is
always safe. get_current_account() is the FastAPI Depends() wrapper that feeds
it the app's Settings and AccountStore and records the identity on
request.state for downstream handlers.

Failure mapping:
  no "Bearer <token>" header      -> MissingCredential
  signature valid, exp passed     -> TokenExpired   (client should refresh)
  any other codec failure         -> InvalidToken   (client should log in)
  type claim is not "access"      -> InvalidToken
  subject no longer exists        -> AccountNotFound (401, never 404)

Only Authorization: Bearer is accepted. The refresh cookie is never consulted
here, so a refresh token can not stand in for an access token.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import AccountNotFound, Expired, InvalidToken, MissingCredential, TokenError, TokenExpired
from auth.models import Account
from auth.store import AccountStore
from auth.tokens import ACCESS_TOKEN_TYPE, subject_id, verify_token

_BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an Authorization header value, or None."""
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        return None
    token = authorization[len(_BEARER_PREFIX):].strip()
    return token or None


def verify_request(authorization: str | None, secret: str, store: AccountStore) -> Account:
    """Resolve the account behind an access token, or raise.

    Returns the Account with its password hash stripped.
    """
    token = extract_bearer_token(authorization)
    if token is None:
        raise MissingCredential()

    try:
        claims = verify_token(token, secret)
    except Expired as exc:
        raise TokenExpired() from exc
    except TokenError as exc:
        raise InvalidToken() from exc

    if claims.get("type") != ACCESS_TOKEN_TYPE:
        raise InvalidToken()
    account_id = subject_id(claims)
    if account_id is None:
        raise InvalidToken()

    account = store.get_by_id(account_id)
    if account is None:
        raise AccountNotFound()
    return account.without_secrets()


def get_current_account(request: Request) -> Account:
    """Require a valid access token. Raises a 401-mapped error otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: Account = Depends(get_current_account)): ...
    """
    account = verify_request(
        request.headers.get("Authorization"),
        request.app.state.settings.access_token_secret,
        request.app.state.account_store,
    )
    request.state.account = account
    return account
