"""
auth/tokens.py -- Token codec, password hashing, and refresh-cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Two token classes, each signed with its own
       secret: access tokens {sub, type="access", iat, exp, jti} and refresh
       tokens {sub, type="refresh", iat, exp, jti}. jti is a random nonce, so
       two tokens minted in the same second for the same account differ.

  verify_token() raises instead of returning None. The request gate must tell
       an expired access token (client should refresh) from every other
       failure (client should log in again), so the codec reports which one:
         Malformed        -- not a JWT, or payload is not a JSON object
         SignatureInvalid -- wrong secret, altered bytes, unexpected algorithm
         Expired          -- signature fine, exp in the past
       The signature is checked before expiry, so a tampered expired token is
       SignatureInvalid, never Expired.

  Passwords: bcrypt used directly (no passlib wrapper). The dummy hash lets
       authenticate_account() spend the same bcrypt work whether or not the
       email exists, so response time does not reveal registered emails [C1].

Layer rule: no imports from api/ or core/. Secrets and lifetimes are passed in
by the caller; nothing here reads configuration.
"""

from __future__ import annotations

import logging
import secrets
import time
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import Expired, Malformed, SignatureInvalid

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AccountStore

logger = logging.getLogger("herdcare.auth")

_ALGORITHM = "HS256"

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

REFRESH_COOKIE_NAME = "refresh_token"
REFRESH_COOKIE_PATH = "/api/v1/auth"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt only reads 72 bytes of input, and newer releases raise ValueError
    past that. The API request models reject passwords longer than 72 bytes
    once UTF-8 encoded, so nothing longer reaches this function.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A corrupt stored hash makes bcrypt raise ValueError; that is a mismatch,
    not a server error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


@lru_cache
def _dummy_hash(rounds: int) -> str:
    # Same cost factor as real hashes so the timing matches [C1].
    return hash_password("herdcare_timing_dummy", rounds=rounds)


def authenticate_account(store: AccountStore, email: str, password: str, rounds: int = 12) -> Account | None:
    """Authenticate an email/password pair with timing equalization.

    Always runs bcrypt:
    - Unknown email: bcrypt runs against the dummy hash (same cost as real check)
    - Wrong password: bcrypt runs against the real hash

    Returns the Account on success, None on any credential failure. Storage
    errors propagate -- they are not credential failures.
    """
    account = store.get_by_email(email)
    if account is None or not account.hashed_password:
        verify_password(password, _dummy_hash(rounds))
        return None
    if not verify_password(password, account.hashed_password):
        return None
    return account


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def mint_token(subject: int | str, claims: dict[str, Any], secret: str, ttl_seconds: int) -> str:
    """Encode a signed JWT for subject with expiry iat + ttl_seconds.

    Reserved claims (sub, iat, exp, jti) always win over the caller's claims.
    """
    issued_at = int(time.time())
    payload = {
        **claims,
        "sub": str(subject),
        "iat": issued_at,
        "exp": issued_at + ttl_seconds,
        "jti": secrets.token_hex(16),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def verify_token(token: str, secret: str) -> dict[str, Any]:
    """Verify a JWT signed with secret and return its claims.

    Raises:
        Malformed:        token does not parse.
        SignatureInvalid: signature does not verify, or a required claim is invalid.
        Expired:          signature verifies but exp is in the past.
    """
    try:
        jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise Malformed(str(exc)) from exc

    try:
        claims = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise Expired(str(exc)) from exc
    except JWTError as exc:
        raise SignatureInvalid(str(exc)) from exc

    if "sub" not in claims or "exp" not in claims:
        raise Malformed("token is missing sub or exp")
    return claims


def mint_access_token(account_id: int, secret: str, ttl_seconds: int) -> str:
    return mint_token(account_id, {"type": ACCESS_TOKEN_TYPE}, secret, ttl_seconds)


def mint_refresh_token(account_id: int, secret: str, ttl_seconds: int) -> str:
    return mint_token(account_id, {"type": REFRESH_TOKEN_TYPE}, secret, ttl_seconds)


def subject_id(claims: dict[str, Any]) -> int | None:
    """Return the numeric account id from a verified sub claim, or None."""
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_refresh_cookie(response, token: str, max_age: int, secure: bool) -> None:
    """Write the refresh token as an httpOnly cookie scoped to the auth routes.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="strict": never sent on cross-site requests.
    path: only /api/v1/auth/* ever sees the refresh token.
    max_age: matches the refresh token lifetime so both expire together.
    """
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="strict",
        secure=secure,
        max_age=max_age,
        path=REFRESH_COOKIE_PATH,
    )


def clear_refresh_cookie(response, secure: bool) -> None:
    """Expire the refresh cookie. Must use the same path it was set with."""
    response.delete_cookie(
        REFRESH_COOKIE_NAME,
        path=REFRESH_COOKIE_PATH,
        httponly=True,
        samesite="strict",
        secure=secure,
    )
