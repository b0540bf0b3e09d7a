"""Unit tests for auth/dependencies.py (request gate) and auth/policy.py.

The gate and the policy are plain functions, so these tests call them
directly without an HTTP round trip.

Covers:
- missing / non-Bearer header -> MissingCredential
- expired access token -> TokenExpired; every other failure -> InvalidToken
- refresh token presented as access -> InvalidToken
- vanished subject -> AccountNotFound
- resolved identity carries no password hash
- authorize / require_verified_vet outcomes per role
"""

from __future__ import annotations

import pytest

from auth.dependencies import extract_bearer_token, verify_request
from auth.errors import (
    AccountNotFound,
    Forbidden,
    InvalidToken,
    MissingCredential,
    TokenExpired,
    Unauthenticated,
)
from auth.models import Account, FarmerProfile, Role, VetProfile
from auth.policy import authorize, require_verified_vet
from auth.tokens import mint_access_token, mint_refresh_token


def _account(role: Role, **kwargs) -> Account:
    return Account(email=f"{role.value}@example.com", role=role, full_name="Test", phone="9876543210", id=1, **kwargs)


@pytest.fixture
def farmer_id(store) -> int:
    return store.create_account(
        Account(email="gate@example.com", role=Role.FARMER, full_name="Gate", phone="9876543210", hashed_password="h")
    )


class TestExtractBearer:
    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer", "Bearer   ", "bearer abc"])
    def test_rejected_headers(self, header) -> None:
        assert extract_bearer_token(header) is None

    def test_accepted_header(self) -> None:
        assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"


class TestVerifyRequest:
    def test_valid_token(self, store, settings, farmer_id) -> None:
        token = mint_access_token(farmer_id, settings.access_token_secret, 60)
        account = verify_request(f"Bearer {token}", settings.access_token_secret, store)
        assert account.id == farmer_id
        assert account.role is Role.FARMER
        assert account.hashed_password is None

    def test_missing_header(self, store, settings) -> None:
        with pytest.raises(MissingCredential):
            verify_request(None, settings.access_token_secret, store)

    def test_expired(self, store, settings, farmer_id) -> None:
        token = mint_access_token(farmer_id, settings.access_token_secret, -1)
        with pytest.raises(TokenExpired):
            verify_request(f"Bearer {token}", settings.access_token_secret, store)

    def test_wrong_secret(self, store, settings, farmer_id) -> None:
        token = mint_access_token(farmer_id, settings.refresh_token_secret, 60)
        with pytest.raises(InvalidToken):
            verify_request(f"Bearer {token}", settings.access_token_secret, store)

    def test_malformed(self, store, settings) -> None:
        with pytest.raises(InvalidToken):
            verify_request("Bearer not-a-jwt", settings.access_token_secret, store)

    def test_refresh_type_rejected(self, store, settings, farmer_id) -> None:
        token = mint_refresh_token(farmer_id, settings.access_token_secret, 60)
        with pytest.raises(InvalidToken) as exc:
            verify_request(f"Bearer {token}", settings.access_token_secret, store)
        assert type(exc.value) is InvalidToken

    def test_vanished_subject(self, store, settings, farmer_id) -> None:
        token = mint_access_token(farmer_id, settings.access_token_secret, 60)
        store.delete_account(farmer_id)
        with pytest.raises(AccountNotFound) as exc:
            verify_request(f"Bearer {token}", settings.access_token_secret, store)
        assert exc.value.status_code == 401


class TestAuthorize:
    def test_no_identity(self) -> None:
        with pytest.raises(Unauthenticated):
            authorize(None, Role.ADMIN)

    def test_allowed_role(self) -> None:
        admin = _account(Role.ADMIN)
        assert authorize(admin, Role.ADMIN) is admin
        assert authorize(admin, "farmer", "admin") is admin

    def test_disallowed_role(self) -> None:
        with pytest.raises(Forbidden) as exc:
            authorize(_account(Role.FARMER), Role.ADMIN, Role.VET)
        assert exc.value.message == "Access denied. Required role: admin or vet"


class TestRequireVerifiedVet:
    def test_no_identity(self) -> None:
        with pytest.raises(Unauthenticated):
            require_verified_vet(None)

    def test_unverified_vet(self) -> None:
        with pytest.raises(Forbidden):
            require_verified_vet(_account(Role.VET, profile=VetProfile()))

    def test_verified_vet(self) -> None:
        vet = _account(Role.VET, profile=VetProfile(verified=True))
        assert require_verified_vet(vet) is vet

    @pytest.mark.parametrize("role", [Role.FARMER, Role.ADMIN])
    def test_other_roles(self, role: Role) -> None:
        with pytest.raises(Forbidden):
            require_verified_vet(_account(role))


class TestProfileUnion:
    def test_mismatched_profile_rejected(self) -> None:
        with pytest.raises(ValueError):
            _account(Role.FARMER, profile=VetProfile())
        with pytest.raises(ValueError):
            _account(Role.ADMIN, profile=FarmerProfile())

    def test_missing_profile_defaults_by_role(self) -> None:
        assert isinstance(_account(Role.FARMER).profile, FarmerProfile)
        assert isinstance(_account(Role.VET).profile, VetProfile)
        assert _account(Role.ADMIN).profile is None
