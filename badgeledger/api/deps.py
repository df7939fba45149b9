"""API Dependencies — caller identity, admin gate, cron secret, service container.

Invariants:
    - Caller identity comes from the upstream session layer as X-Actor-Id /
      X-Actor-Role headers; a request without X-Actor-Id is rejected
    - The sweep trigger fails closed: with no cron_secret configured every
      caller is refused
    - Secrets compared in constant time

Design Decisions:
    - Services read from app.state (built in lifespan) through one dependency,
      so tests swap the whole graph with a single dependency override
"""

import hmac
from dataclasses import dataclass

from fastapi import Depends, Header, Request

from badgeledger.config import Settings, get_settings
from badgeledger.core.domain_types import ActorRole
from badgeledger.core.errors import AuthorizationError, ErrorContext
from badgeledger.services.container import Services


@dataclass(frozen=True)
class Caller:
    actor_id: str
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized")
    return services


async def get_caller(
    x_actor_id: str | None = Header(None),
    x_actor_role: str = Header(ActorRole.USER.value),
) -> Caller:
    if not x_actor_id or not x_actor_id.strip():
        raise AuthorizationError("Missing caller identity")
    try:
        role = ActorRole(x_actor_role.lower())
    except ValueError:
        raise AuthorizationError(
            f"Unknown role '{x_actor_role}'", ErrorContext(actor_id=x_actor_id),
        )
    return Caller(actor_id=x_actor_id.strip(), role=role)


async def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise AuthorizationError(
            "Administrator role required", ErrorContext(actor_id=caller.actor_id),
        )
    return caller


async def require_cron_secret(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.cron_secret:
        raise AuthorizationError("Sweep trigger disabled: no secret configured")
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise AuthorizationError("Invalid sweep credentials")
