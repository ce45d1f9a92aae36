from __future__ import annotations

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class ProviderStatusClient:
    """
    Advisory lookup against the provider service: GET {base}/providers/check/{id}.
    Any failure (timeout, non-200, bad body) degrades to False.
    """

    def __init__(
        self,
        base_url: Optional[str],
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def is_provider(self, user_id: int) -> bool:
        if not self.enabled:
            return False
        url = f"{self.base_url}/providers/check/{user_id}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as http:
                r = http.get(url)
            if r.status_code != 200:
                logger.warning("provider lookup for user=%s returned %s", user_id, r.status_code)
                return False
            return bool(r.json().get("isProvider", False))
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("provider lookup for user=%s failed: %s", user_id, exc)
            return False
