from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from src.domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SupabaseConfig:
    url: str | None
    key: str | None
    disabled: bool = False

    @classmethod
    def from_env(cls) -> SupabaseConfig:
        return cls(
            url=os.getenv("SUPABASE_URL") or None,
            key=os.getenv("SUPABASE_ANON_KEY") or None,
            disabled=os.getenv("SUPABASE_DISABLED", "0") == "1",
        )

    def missing(self) -> list[str]:
        """Names of the required variables that are not set."""
        names = []
        if not self.url:
            names.append("SUPABASE_URL")
        if not self.key:
            names.append("SUPABASE_ANON_KEY")
        return names

    @property
    def enabled(self) -> bool:
        return not self.disabled and not self.missing()

    def require(self) -> tuple[str, str]:
        missing = self.missing()
        if missing:
            raise ConfigurationError(f"Missing Supabase configuration: {', '.join(missing)}")
        return self.url, self.key  # type: ignore[return-value]


async def create_request_client(access_token: str | None = None) -> AsyncClient | None:
    """Build a short-lived client scoped to one request.

    The client neither persists nor auto-refreshes its session; when an access
    token is given, data queries run as that user so row-level policies apply.
    """
    config = SupabaseConfig.from_env()
    if not config.enabled:
        logger.debug(f"No Supabase request client (disabled={config.disabled}, missing={config.missing()})")
        return None
    url, key = config.require()
    client = await acreate_client(
        url,
        key,
        options=AsyncClientOptions(persist_session=False, auto_refresh_token=False),
    )
    if access_token:
        client.postgrest.auth(access_token)
    return client
