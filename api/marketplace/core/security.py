from typing import Any

import httpx
from fastapi import Depends, Header

from marketplace.api.deps import get_app_settings
from marketplace.core.auth import Principal, parse_role
from marketplace.core.config import Settings
from marketplace.services.errors import AuthenticationError, UpstreamUnavailableError
from marketplace.services.repository import get_repository


async def get_current_principal(
    settings: Settings = Depends(get_app_settings),
    repository=Depends(get_repository),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError("authentication requires bearer token")

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise AuthenticationError("empty bearer token")

    if not settings.supabase_url or not settings.supabase_anon_key:
        raise UpstreamUnavailableError("identity provider is not configured")

    identity = await _fetch_supabase_user(
        supabase_url=settings.supabase_url,
        supabase_anon_key=settings.supabase_anon_key,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    user_id = identity.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise AuthenticationError("invalid bearer token")

    async with repository.transaction() as session:
        user = await session.get_user(user_id)
    if user is None:
        raise AuthenticationError("user is not registered")

    role = parse_role(user.get("role"))
    if role is None:
        raise AuthenticationError("user has no marketplace role")

    return Principal(user_id=user_id, role=role, name=user.get("name"), email=user.get("email"))


async def _fetch_supabase_user(
    *,
    supabase_url: str,
    supabase_anon_key: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": supabase_anon_key,
    }
    url = f"{supabase_url.rstrip('/')}/auth/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise UpstreamUnavailableError("identity verification unavailable") from exc

    if response.status_code in {401, 403}:
        raise AuthenticationError("invalid bearer token")
    if response.status_code != 200:
        raise UpstreamUnavailableError("identity verification failed")

    return response.json()
