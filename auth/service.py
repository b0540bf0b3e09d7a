"""
auth/service.py -- Session lifecycle: register, login, refresh, logout.

AuthService is a stateless orchestrator over three collaborators:
  credential hashing  -- auth.tokens.hash_password / authenticate_account
  token codec         -- auth.tokens.mint_* / verify_token
  session store       -- AccountStore refresh-token methods

It is constructed once at startup with the Settings object and the store, and
holds no per-request state, so concurrent requests share one instance safely.

Refresh rotation:
  Each successful refresh consumes the presented token and issues a new one
  (AccountStore.rotate_refresh_token, one transaction). A refresh token that
  has already been used -- by the client, or by an attacker replaying an
  intercepted copy -- is rejected with InvalidToken. When two requests race
  with the same token, the database decides the single winner.

Error policy:
  Credential failures are InvalidCredentials with one message for "no such
  email" and "wrong password". StorageUnavailable from the store is never
  caught here: a database outage must reach the client as a 500, not a 401.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from auth.errors import (
    AccountNotFound,
    DuplicateAccount,
    InvalidCredentials,
    InvalidToken,
    MissingToken,
    TokenError,
)
from auth.models import Account, Profile, Role, VetProfile, default_profile
from auth.store import AccountStore, normalize_email
from auth.tokens import (
    REFRESH_TOKEN_TYPE,
    authenticate_account,
    hash_password,
    mint_access_token,
    mint_refresh_token,
    subject_id,
    verify_token,
)
from core.config import Settings

logger = logging.getLogger("herdcare.auth")


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AuthResult:
    """Outcome of register/login. account has no password hash."""

    account: Account
    access_token: str
    refresh_token: str


class AuthService:
    def __init__(self, settings: Settings, store: AccountStore) -> None:
        self._settings = settings
        self._store = store

    # ------------------------------------------------------------------
    # Token issuance
    # ------------------------------------------------------------------

    def _mint_pair(self, account_id: int) -> TokenPair:
        s = self._settings
        return TokenPair(
            access_token=mint_access_token(account_id, s.access_token_secret, s.access_token_expire_seconds),
            refresh_token=mint_refresh_token(account_id, s.refresh_token_secret, s.refresh_token_expire_seconds),
        )

    def _open_session(self, account: Account) -> AuthResult:
        pair = self._mint_pair(account.id)
        self._store.add_refresh_token(account.id, pair.refresh_token)
        return AuthResult(
            account=account.without_secrets(),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        role: Role,
        full_name: str,
        phone: str,
        language: str = "en",
        profile: Profile = None,
    ) -> AuthResult:
        """Create an account and open its first session.

        Vets always start unverified regardless of what the caller sent;
        verification is an administrative action.
        """
        role = Role(role)
        email = normalize_email(email)
        if self._store.get_by_email(email) is not None:
            raise DuplicateAccount()

        if profile is None:
            profile = default_profile(role)
        if isinstance(profile, VetProfile):
            profile = replace(profile, verified=False)

        account = Account(
            email=email,
            role=role,
            full_name=full_name,
            phone=phone,
            language=language,
            profile=profile,
            hashed_password=hash_password(password, rounds=self._settings.password_hash_rounds),
        )
        account_id = self._store.create_account(account)
        created = self._store.get_by_id(account_id) or replace(account, id=account_id)
        logger.info("Account registered (id=%s, role=%s)", account_id, role.value)
        return self._open_session(created)

    def login(self, email: str, password: str) -> AuthResult:
        account = authenticate_account(
            self._store,
            normalize_email(email),
            password,
            rounds=self._settings.password_hash_rounds,
        )
        if account is None:
            logger.info("Failed login attempt")
            raise InvalidCredentials()
        logger.info("Login succeeded (id=%s)", account.id)
        return self._open_session(account)

    def refresh(self, presented: str | None) -> TokenPair:
        """Exchange a refresh token for a new access + refresh pair.

        The presented token is single-use: on success its shadow record is
        replaced by the new token's in the same transaction.
        """
        if not presented:
            raise MissingToken()

        # An expired refresh token means "log in again", so it is not told
        # apart from any other codec failure.
        try:
            claims = verify_token(presented, self._settings.refresh_token_secret)
        except TokenError as exc:
            raise InvalidToken("Invalid refresh token.") from exc

        if claims.get("type") != REFRESH_TOKEN_TYPE:
            raise InvalidToken("Invalid token type.")

        account_id = subject_id(claims)
        if account_id is None:
            raise InvalidToken("Invalid refresh token.")
        if self._store.get_by_id(account_id) is None:
            raise AccountNotFound("User not found.")

        if not self._store.contains_refresh_token(account_id, presented):
            logger.warning("Refresh with unknown or consumed token (id=%s)", account_id)
            raise InvalidToken("Invalid refresh token.")

        pair = self._mint_pair(account_id)
        if not self._store.rotate_refresh_token(account_id, presented, pair.refresh_token):
            # Lost a concurrent refresh race for the same token.
            logger.warning("Refresh token consumed concurrently (id=%s)", account_id)
            raise InvalidToken("Invalid refresh token.")
        return pair

    def logout(self, account: Account, presented: str | None) -> bool:
        """End one device session. Best-effort: never raises for a bad token.

        Only the presented token's shadow is removed, and only if it belongs to
        account; other devices stay logged in. Returns True if a record was
        removed.
        """
        if not presented:
            return False
        removed = self._store.remove_refresh_token(account.id, presented)
        logger.info("Logout (id=%s, session_removed=%s)", account.id, removed)
        return removed

    def logout_everywhere(self, account: Account) -> int:
        """Revoke every refresh token the account holds. Returns the count revoked."""
        revoked = self._store.remove_all_refresh_tokens(account.id)
        logger.warning("All sessions revoked (id=%s, count=%d)", account.id, revoked)
        return revoked
