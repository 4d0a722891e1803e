"""
Caller identity as handed to us by the upstream auth gateway.

Authentication itself happens elsewhere. The gateway forwards:
    X-Caller-Id:   the user's id (required)
    X-Caller-Role: "user" | "admin" | "superadmin"

Admins and super-admins are privileged: their uploads skip moderation.
"""

from dataclasses import dataclass

from models.errors import Unauthenticated

PRIVILEGED_ROLES = {"admin", "superadmin"}


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: str = "user"

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


def caller_from_headers(user_id: str | None, role: str | None) -> Caller | None:
    user_id = (user_id or "").strip()
    if not user_id:
        return None
    return Caller(user_id=user_id, role=(role or "user").strip().lower())


def require_caller(caller: Caller | None) -> Caller:
    if caller is None:
        raise Unauthenticated("Authentication required")
    return caller
