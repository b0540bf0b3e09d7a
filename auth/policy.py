"""
auth/policy.py -- Access policy: role and verification checks.

Authentication and authorization are two explicit steps. The gate resolves an
identity (auth.dependencies.verify_request); the functions here decide whether
that identity may proceed. Both halves are plain functions, testable without
a request.

require_roles() and require_verified_vet_account are the FastAPI dependencies
that chain the two steps for route declarations.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends

from auth.dependencies import get_current_account
from auth.errors import Forbidden, Unauthenticated
from auth.models import Account, Role


def authorize(identity: Account | None, *allowed_roles: Role | str) -> Account:
    """Pass if identity holds one of allowed_roles.

    Raises Unauthenticated when no identity is attached -- a protected route
    reached without the gate is a wiring bug, and it must fail closed.
    """
    if identity is None:
        raise Unauthenticated()
    allowed = {Role(r) for r in allowed_roles}
    if identity.role not in allowed:
        required = " or ".join(sorted(r.value for r in allowed))
        raise Forbidden(f"Access denied. Required role: {required}")
    return identity


def require_verified_vet(identity: Account | None) -> Account:
    """Pass only for a vet whose profile has been verified by an administrator."""
    if identity is None:
        raise Unauthenticated()
    if identity.role is not Role.VET:
        raise Forbidden("Access denied. Vet role required.")
    if not identity.is_verified_vet:
        raise Forbidden("Access denied. Vet verification required.")
    return identity


def require_roles(*roles: Role | str) -> Callable[..., Account]:
    """Build a dependency that authenticates, then authorizes by role.

    Usage:
        @router.get("/users")
        def list_users(account: Account = Depends(require_roles(Role.ADMIN))): ...
    """

    def dependency(account: Account = Depends(get_current_account)) -> Account:
        return authorize(account, *roles)

    return dependency


require_admin = require_roles(Role.ADMIN)


def require_verified_vet_account(account: Account = Depends(get_current_account)) -> Account:
    return require_verified_vet(account)
