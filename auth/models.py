"""
auth/models.py -- Domain dataclasses for accounts and sessions.

Pattern: Data class. The store and the service do the work; these types own
the domain shape.

Role-specific attributes are a tagged union keyed by role: a farmer carries a
FarmerProfile, a vet carries a VetProfile, an admin carries nothing. Account
refuses to be built with a profile that does not match its role, so code that
holds a vet Account can trust account.profile to be a VetProfile without
re-checking optional fields.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Union

SUPPORTED_LANGUAGES: tuple[str, ...] = (
    "en", "hi", "bn", "te", "mr", "gu", "kn", "ml",
    "ta", "pa", "or", "as", "ne", "ur", "sd", "ks",
)


class Role(str, Enum):
    FARMER = "farmer"
    VET = "vet"
    ADMIN = "admin"


@dataclass
class FarmerProfile:
    farm_name: str | None = None
    farm_location: tuple[float, float] | None = None  # (longitude, latitude)
    livestock_types: list[str] = field(default_factory=list)
    herd_size: int | None = None
    address: str | None = None


@dataclass
class VetProfile:
    qualification: str | None = None
    registration_number: str | None = None
    clinic_address: str | None = None
    verified: bool = False  # flipped only by an administrator
    available_slots: list[str] = field(default_factory=list)


Profile = Union[FarmerProfile, VetProfile, None]

_PROFILE_TYPES: dict[Role, type | None] = {
    Role.FARMER: FarmerProfile,
    Role.VET: VetProfile,
    Role.ADMIN: None,
}


def default_profile(role: Role) -> Profile:
    """Return an empty profile of the shape the role requires."""
    profile_type = _PROFILE_TYPES[role]
    return profile_type() if profile_type is not None else None


@dataclass
class Account:
    """An identity record.

    hashed_password is None on every Account handed to route code: the
    request gate strips it, and the refresh-token set never lives on this
    object at all (it is a separate table).
    """

    email: str
    role: Role
    full_name: str
    phone: str
    language: str = "en"
    profile: Profile = None
    id: int | None = None
    hashed_password: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def __post_init__(self) -> None:
        self.role = Role(self.role)
        expected = _PROFILE_TYPES[self.role]
        if expected is None:
            if self.profile is not None:
                raise ValueError(f"{self.role.value} accounts carry no profile")
        elif self.profile is None:
            self.profile = expected()
        elif not isinstance(self.profile, expected):
            raise ValueError(f"{self.role.value} accounts require a {expected.__name__}")

    @property
    def is_verified_vet(self) -> bool:
        return self.role is Role.VET and bool(self.profile and self.profile.verified)

    def without_secrets(self) -> "Account":
        """Return a copy safe to attach to a request context."""
        return replace(self, hashed_password=None)

