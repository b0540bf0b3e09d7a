"""Small request helpers shared by the API integration tests."""

from __future__ import annotations

import uuid


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}@herdcare.test"


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def refresh_cookie(token: str) -> dict[str, str]:
    """Send a refresh token explicitly, bypassing the client cookie jar."""
    return {"Cookie": f"refresh_token={token}"}
