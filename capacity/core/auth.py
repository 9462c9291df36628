"""Request actor extraction for audit attribution."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header, HTTPException, status

from capacity.core.config import get_settings
from capacity.models.entities import UserRole


@dataclass(frozen=True)
class ActorContext:
    """Actor performing a mutation, recorded on every audit entry."""

    actor_id: str
    actor_role: UserRole


def _require_actor_headers(x_actor_id: str | None, x_actor_role: str | None) -> tuple[str, str]:
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor headers. Expected X-Actor-Id and X-Actor-Role or enable development actor fallback.",
        )
    return x_actor_id.strip(), x_actor_role.strip().lower()


def _resolve_actor(x_actor_id: str | None, x_actor_role: str | None) -> tuple[str, str]:
    settings = get_settings()
    if x_actor_id and x_actor_role:
        return _require_actor_headers(x_actor_id, x_actor_role)

    if settings.auth_allow_dev_actor:
        return settings.auth_dev_actor_id.strip(), settings.auth_dev_actor_role.strip().lower()

    return _require_actor_headers(x_actor_id, x_actor_role)


def get_actor_context(
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
    x_actor_role: str | None = Header(default=None, alias="X-Actor-Role"),
) -> ActorContext:
    """Resolve the acting user from trusted proxy headers.

    Identity is established upstream; this core only records who acted.
    """

    actor_id, role_name = _resolve_actor(x_actor_id, x_actor_role)
    try:
        role = UserRole(role_name)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown actor role: {role_name}.",
        ) from exc
    return ActorContext(actor_id=actor_id, actor_role=role)
