"""
API request and response models for HerdCare REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import SUPPORTED_LANGUAGES, Account, FarmerProfile, Role, VetProfile

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = r"^\+?[0-9]{7,15}$"
BCRYPT_MAX_BYTES = 72


def _check_language(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in SUPPORTED_LANGUAGES:
        raise ValueError(f"language must be one of: {', '.join(SUPPORTED_LANGUAGES)}")
    return value


def _check_password_bytes(value: str) -> str:
    # bcrypt only reads the first 72 bytes, and multi-byte characters count more than once.
    if len(value.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValueError(f"password must be at most {BCRYPT_MAX_BYTES} bytes when UTF-8 encoded")
    return value


def _strip_phone(value: Any) -> Any:
    # Accept "+91 98765-43210" style input; store digits only.
    if isinstance(value, str):
        return value.strip().replace(" ", "").replace("-", "")
    return value


# ---------------------------------------------------------------------------
# Role-specific profile payloads
# ---------------------------------------------------------------------------


class FarmerProfileIn(BaseModel):
    """Farmer attributes. Every field is optional so the same model serves
    registration and partial updates (see changes())."""

    model_config = ConfigDict(str_strip_whitespace=True)

    farm_name: Optional[str] = Field(default=None, max_length=255)
    farm_location: Optional[list[float]] = Field(
        default=None,
        min_length=2,
        max_length=2,
        description="[longitude, latitude]",
    )
    livestock_types: Optional[list[str]] = Field(default=None, max_length=20)
    herd_size: Optional[int] = Field(default=None, ge=0)
    address: Optional[str] = Field(default=None, max_length=500)

    @field_validator("farm_location")
    @classmethod
    def check_coordinates(cls, value: Optional[list[float]]) -> Optional[list[float]]:
        if value is not None:
            lon, lat = value
            if not -180 <= lon <= 180 or not -90 <= lat <= 90:
                raise ValueError("farm_location must be [longitude, latitude] within valid ranges")
        return value

    def changes(self) -> dict[str, Any]:
        """Fields the client actually sent, in domain form."""
        data = self.model_dump(exclude_unset=True)
        if data.get("farm_location") is not None:
            data["farm_location"] = tuple(data["farm_location"])
        if "livestock_types" in data and data["livestock_types"] is None:
            data["livestock_types"] = []
        return data

    def to_domain(self) -> FarmerProfile:
        return FarmerProfile(**self.changes())


class VetProfileIn(BaseModel):
    """Vet attributes. There is no verified field: clients can never set it."""

    model_config = ConfigDict(str_strip_whitespace=True)

    qualification: Optional[str] = Field(default=None, max_length=255)
    registration_number: Optional[str] = Field(default=None, max_length=100)
    clinic_address: Optional[str] = Field(default=None, max_length=500)
    available_slots: Optional[list[str]] = Field(default=None, max_length=50)

    def changes(self) -> dict[str, Any]:
        data = self.model_dump(exclude_unset=True)
        if "available_slots" in data and data["available_slots"] is None:
            data["available_slots"] = []
        return data

    def to_domain(self) -> VetProfile:
        return VetProfile(**self.changes())


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    # No str_strip_whitespace here: passwords are taken byte-for-byte.
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=72)
    full_name: str = Field(min_length=2, max_length=255)
    phone: str = Field(pattern=PHONE_PATTERN)
    role: Role
    language: str = "en"
    farmer_profile: Optional[FarmerProfileIn] = None
    vet_profile: Optional[VetProfileIn] = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("phone", mode="before")
    @classmethod
    def strip_phone(cls, value: Any) -> Any:
        return _strip_phone(value)

    @field_validator("password")
    @classmethod
    def check_password_bytes(cls, value: str) -> str:
        return _check_password_bytes(value)

    @field_validator("full_name", mode="before")
    @classmethod
    def strip_full_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("language")
    @classmethod
    def check_language(cls, value: str) -> str:
        return _check_language(value)

    def profile_for_role(self) -> FarmerProfile | VetProfile | None:
        """Return the sub-profile matching role; the other one is ignored."""
        if self.role is Role.FARMER:
            return self.farmer_profile.to_domain() if self.farmer_profile else FarmerProfile()
        if self.role is Role.VET:
            return self.vet_profile.to_domain() if self.vet_profile else VetProfile()
        return None


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=72)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def check_password_bytes(cls, value: str) -> str:
        return _check_password_bytes(value)


class ProfileUpdate(BaseModel):
    """Request body for PUT /api/v1/users/me. All fields optional.

    Email and role are not accepted; the profile matching the caller's role
    is merged into the stored one, the other is ignored.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    language: Optional[str] = None
    farmer_profile: Optional[FarmerProfileIn] = None
    vet_profile: Optional[VetProfileIn] = None

    @field_validator("phone", mode="before")
    @classmethod
    def strip_phone(cls, value: Any) -> Any:
        return _strip_phone(value)

    @field_validator("language")
    @classmethod
    def check_language(cls, value: Optional[str]) -> Optional[str]:
        return _check_language(value)


class VerificationUpdate(BaseModel):
    """Request body for PATCH /api/v1/users/{id}/verification (admin only)."""

    verified: bool


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public view of an account. Never includes the password hash or sessions."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    full_name: str
    role: str
    phone: str
    language: str
    farmer_profile: Optional[dict] = None
    vet_profile: Optional[dict] = None
    created_at: str
    updated_at: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        """Factory Method: the domain-to-wire mapping lives beside the wire model."""
        farmer = asdict(account.profile) if isinstance(account.profile, FarmerProfile) else None
        if farmer and farmer.get("farm_location") is not None:
            farmer["farm_location"] = list(farmer["farm_location"])
        vet = asdict(account.profile) if isinstance(account.profile, VetProfile) else None
        return cls(
            id=account.id,
            email=account.email,
            full_name=account.full_name,
            role=account.role.value,
            phone=account.phone,
            language=account.language,
            farmer_profile=farmer,
            vet_profile=vet,
            created_at=account.created_at or "",
            updated_at=account.updated_at,
        )


class AuthResponse(BaseModel):
    """Response for register and login. The refresh token travels in a cookie."""

    model_config = ConfigDict(frozen=True)

    message: str
    user: AccountResponse
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class RefreshResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class LogoutAllResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    revoked: int


class UserEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: AccountResponse


class UserUpdateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: AccountResponse


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    current: int
    pages: int
    total: int


class UserListResponse(BaseModel):
    """Response for GET /api/v1/users (admin only)."""

    model_config = ConfigDict(frozen=True)

    users: list[AccountResponse]
    pagination: Pagination


class VetStatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    verified: bool
    registration_number: Optional[str] = None
    qualification: Optional[str] = None


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
