"""
api/routes/v1/users.py -- Account profile and administration routes.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET   /users/me                      -- own account
  PUT   /users/me                      -- partial update of own account
  GET   /users                         -- list accounts (admin)
  GET   /users/{account_id}            -- account detail (admin)
  PATCH /users/{account_id}/verification -- verify or unverify a vet (admin)
  GET   /vet/status                    -- verified vets only

Role-specific profile updates are merged field by field into the stored
profile. The sub-profile that does not match the caller's role is ignored,
and VetProfile.verified is only reachable through the admin route.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    AccountResponse,
    Pagination,
    ProfileUpdate,
    UserEnvelope,
    UserListResponse,
    UserUpdateResponse,
    VerificationUpdate,
    VetStatusResponse,
)
from auth.dependencies import get_current_account
from auth.errors import NotFound, ValidationFailed
from auth.models import Account, FarmerProfile, Role, VetProfile
from auth.policy import require_admin, require_verified_vet_account
from auth.store import AccountStore

logger = logging.getLogger("herdcare.api")

router = APIRouter()


def _store(request: Request) -> AccountStore:
    return request.app.state.account_store


def _reload(store: AccountStore, account_id: int) -> Account:
    account = store.get_by_id(account_id)
    if account is None:
        raise NotFound()
    return account.without_secrets()


# ---------------------------------------------------------------------------
# Own account
# ---------------------------------------------------------------------------


@router.get("/users/me", response_model=UserEnvelope)
def get_profile(account: Account = Depends(get_current_account)) -> UserEnvelope:
    return UserEnvelope(user=AccountResponse.from_account(account))


@router.put("/users/me", response_model=UserUpdateResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    account: Account = Depends(get_current_account),
) -> UserUpdateResponse:
    """Update name, phone, language and the caller's own role profile.

    Only fields present in the body change. Email and role are immutable.
    """
    updates: dict = body.model_dump(include={"full_name", "phone", "language"}, exclude_none=True)

    if isinstance(account.profile, FarmerProfile) and body.farmer_profile is not None:
        updates["profile"] = replace(account.profile, **body.farmer_profile.changes())
    elif isinstance(account.profile, VetProfile) and body.vet_profile is not None:
        updates["profile"] = replace(account.profile, **body.vet_profile.changes())

    store = _store(request)
    if updates:
        store.update_account(account.id, **updates)
    return UserUpdateResponse(
        message="Profile updated successfully.",
        user=AccountResponse.from_account(_reload(store, account.id)),
    )


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    role: Annotated[Optional[Role], Query()] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    admin: Account = Depends(require_admin),
) -> UserListResponse:
    """List accounts newest first, optionally filtered by role. Admin only."""
    store = _store(request)
    total = store.count_accounts(role)
    accounts = store.list_accounts(role, offset=(page - 1) * limit, limit=limit)
    return UserListResponse(
        users=[AccountResponse.from_account(a.without_secrets()) for a in accounts],
        pagination=Pagination(current=page, pages=math.ceil(total / limit), total=total),
    )


@router.get("/users/{account_id}", response_model=UserEnvelope)
def get_user(
    request: Request,
    account_id: int,
    admin: Account = Depends(require_admin),
) -> UserEnvelope:
    """Return one account. Admin only; 404 when it does not exist."""
    return UserEnvelope(user=AccountResponse.from_account(_reload(_store(request), account_id)))


@router.patch("/users/{account_id}/verification", response_model=UserUpdateResponse)
def set_verification(
    request: Request,
    account_id: int,
    body: VerificationUpdate,
    admin: Account = Depends(require_admin),
) -> UserUpdateResponse:
    """Verify or unverify a vet. Admin only.

    This is the only path that changes VetProfile.verified.
    """
    store = _store(request)
    target = _reload(store, account_id)
    if not isinstance(target.profile, VetProfile):
        raise ValidationFailed("User is not a veterinarian.")

    store.update_account(account_id, profile=replace(target.profile, verified=body.verified))
    logger.info("Vet verification changed (id=%s, verified=%s, by=%s)", account_id, body.verified, admin.id)
    return UserUpdateResponse(
        message="Vet verified successfully." if body.verified else "Vet verification revoked.",
        user=AccountResponse.from_account(_reload(store, account_id)),
    )


# ---------------------------------------------------------------------------
# Verified vets
# ---------------------------------------------------------------------------


@router.get("/vet/status", response_model=VetStatusResponse)
def vet_status(account: Account = Depends(require_verified_vet_account)) -> VetStatusResponse:
    return VetStatusResponse(
        verified=True,
        registration_number=account.profile.registration_number,
        qualification=account.profile.qualification,
    )
