"""Unit tests for the account methods of auth/store.py.

Covers:
- create / get_by_email / get_by_id with profile round trip per role
- email normalization and the UNIQUE(email) constraint
- update_account merges allowed fields and rejects unknown ones
- list_accounts ordering, role filter and paging; count_accounts
- delete_account cascades to refresh tokens
"""

from __future__ import annotations

import pytest

from auth.errors import DuplicateAccount
from auth.models import Account, FarmerProfile, Role, VetProfile
from auth.store import AccountStore


def _farmer(email: str = "farmer@example.com") -> Account:
    return Account(
        email=email,
        role=Role.FARMER,
        full_name="Meena Rao",
        phone="9876543210",
        language="hi",
        profile=FarmerProfile(
            farm_name="Green Acres",
            farm_location=(77.59, 12.97),
            livestock_types=["cattle", "goat"],
            herd_size=14,
        ),
        hashed_password="hash",
    )


def _vet(email: str = "vet@example.com") -> Account:
    return Account(
        email=email,
        role=Role.VET,
        full_name="Dr. Iyer",
        phone="+919812345678",
        profile=VetProfile(qualification="BVSc", registration_number="VCI-1234"),
        hashed_password="hash",
    )


class TestCreateAndGet:
    def test_farmer_round_trip(self, store: AccountStore) -> None:
        uid = store.create_account(_farmer())
        got = store.get_by_id(uid)
        assert got is not None
        assert got.role is Role.FARMER
        assert got.language == "hi"
        assert got.profile == FarmerProfile(
            farm_name="Green Acres",
            farm_location=(77.59, 12.97),
            livestock_types=["cattle", "goat"],
            herd_size=14,
        )
        assert got.created_at and got.updated_at

    def test_vet_round_trip(self, store: AccountStore) -> None:
        uid = store.create_account(_vet())
        got = store.get_by_id(uid)
        assert isinstance(got.profile, VetProfile)
        assert got.profile.verified is False
        assert got.profile.registration_number == "VCI-1234"

    def test_admin_has_no_profile(self, store: AccountStore) -> None:
        admin = Account(
            email="root@example.com", role=Role.ADMIN, full_name="Root", phone="9876543210", hashed_password="h"
        )
        uid = store.create_account(admin)
        assert store.get_by_id(uid).profile is None

    def test_email_is_normalized(self, store: AccountStore) -> None:
        store.create_account(_farmer("  Mixed.Case@Example.COM "))
        assert store.get_by_email("mixed.case@example.com") is not None
        assert store.get_by_email("MIXED.case@example.com ") is not None

    def test_duplicate_email_rejected(self, store: AccountStore) -> None:
        store.create_account(_farmer("dup@example.com"))
        with pytest.raises(DuplicateAccount):
            store.create_account(_vet("DUP@example.com"))

    def test_missing_returns_none(self, store: AccountStore) -> None:
        assert store.get_by_id(999) is None
        assert store.get_by_email("ghost@example.com") is None


class TestUpdate:
    def test_update_fields_and_profile(self, store: AccountStore) -> None:
        uid = store.create_account(_vet())
        before = store.get_by_id(uid)
        assert store.update_account(
            uid,
            full_name="Dr. S. Iyer",
            profile=VetProfile(qualification="MVSc", verified=True),
        )
        after = store.get_by_id(uid)
        assert after.full_name == "Dr. S. Iyer"
        assert after.profile.qualification == "MVSc"
        assert after.profile.verified is True
        assert after.updated_at >= before.updated_at

    def test_update_missing_account(self, store: AccountStore) -> None:
        assert store.update_account(404, full_name="Nobody") is False

    def test_update_rejects_immutable_fields(self, store: AccountStore) -> None:
        uid = store.create_account(_farmer())
        with pytest.raises(ValueError):
            store.update_account(uid, role="admin")
        with pytest.raises(ValueError):
            store.update_account(uid, email="new@example.com")


class TestListAndCount:
    def test_newest_first_with_role_filter_and_paging(self, store: AccountStore) -> None:
        ids = [store.create_account(_farmer(f"f{i}@example.com")) for i in range(3)]
        vet_id = store.create_account(_vet())

        everyone = store.list_accounts()
        assert [a.id for a in everyone] == [vet_id, *reversed(ids)]

        farmers = store.list_accounts(Role.FARMER)
        assert {a.role for a in farmers} == {Role.FARMER}
        assert store.count_accounts(Role.FARMER) == 3
        assert store.count_accounts(Role.VET) == 1
        assert store.count_accounts() == 4

        page2 = store.list_accounts(Role.FARMER, offset=2, limit=2)
        assert [a.id for a in page2] == [ids[0]]


class TestDelete:
    def test_delete_cascades_sessions(self, store: AccountStore) -> None:
        uid = store.create_account(_farmer())
        store.add_refresh_token(uid, "tok")
        assert store.delete_account(uid) is True
        assert store.get_by_id(uid) is None
        assert store.count_refresh_tokens(uid) == 0
        assert store.delete_account(uid) is False
