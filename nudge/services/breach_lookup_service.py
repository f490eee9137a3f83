"""
Breach lookup against the Have I Been Pwned v3 API.

Never raises to the caller: any failure, including a 404 (account not in
any breach), yields an empty list. Results are cached in Redis under a hash
of the normalized email so repeated bootstraps do not burn API quota.
"""

import asyncio
import json
from urllib.parse import quote

import httpx

from nudge.config import settings
from nudge.infrastructure.observability.logging import get_logger
from nudge.models.domain.user_domain import BreachRecord
from nudge.security.hashing import HashingError, email_log_ref, hash_email, normalize_email
from nudge.services.infrastructure.redis_client import fast_redis

logger = get_logger(__name__)

HIBP_BASE_URL = "https://haveibeenpwned.com/api/v3"

REQUEST_TIMEOUT = 10  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class BreachLookupService:
    def __init__(
        self,
        api_key: str | None,
        cache=fast_redis,
        transport: httpx.AsyncBaseTransport | None = None,
        backoff_factor: float = BACKOFF_FACTOR,
    ):
        self.api_key = api_key
        self.cache = cache
        self._transport = transport
        self._backoff_factor = backoff_factor

        if not api_key:
            logger.warning("HIBP_API_KEY not configured, breach lookups will return nothing")

    async def lookup(self, email: str) -> list[BreachRecord]:
        """Return breaches for an email, or an empty list on any failure."""
        email = normalize_email(email)
        if not email or not self.api_key:
            return []

        cache_key = self._cache_key(email)
        cached = await self._read_cache(cache_key)
        if cached is not None:
            return cached

        try:
            breaches = await self._fetch(email)
        except Exception as e:
            logger.warning(
                "Breach lookup failed",
                user_ref=email_log_ref(email),
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

        await self._write_cache(cache_key, breaches)
        logger.info("Breach lookup completed", user_ref=email_log_ref(email), breaches=len(breaches))
        return breaches

    async def _fetch(self, email: str) -> list[BreachRecord]:
        url = f"{HIBP_BASE_URL}/breachedaccount/{quote(email, safe='')}"
        headers = {
            "hibp-api-key": self.api_key,
            "user-agent": settings.HIBP_USER_AGENT,
            "Accept": "application/json",
        }
        params = {"truncateResponse": "false"}

        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self._transport) as client:
            for attempt in range(1, MAX_RETRIES + 1):
                response = await client.get(url, headers=headers, params=params)

                if response.status_code == 404:
                    return []

                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    wait_time = self._retry_after(response, attempt)
                    logger.warning(
                        "HIBP transient status",
                        status_code=response.status_code,
                        attempt=attempt,
                        wait_time=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue

                response.raise_for_status()
                return self._parse(response.json())

        return []

    def _retry_after(self, response: httpx.Response, attempt: int) -> float:
        header = response.headers.get("retry-after")
        if header and header.isdigit():
            return float(header)
        return self._backoff_factor**attempt

    @staticmethod
    def _parse(payload) -> list[BreachRecord]:
        breaches = []
        for item in payload or []:
            domain = (item.get("Domain") or "").strip().lower()
            # Breaches without a site (e.g. combo lists) cannot be remediated
            if not domain:
                continue
            breaches.append(BreachRecord(name=item.get("Name") or domain, domain=domain))
        return breaches

    @staticmethod
    def _cache_key(email: str) -> str | None:
        try:
            return f"breaches:{hash_email(email)}"
        except HashingError:
            return None

    async def _read_cache(self, key: str | None) -> list[BreachRecord] | None:
        if not key or not self.cache.configured:
            return None
        raw = await self.cache.get(key)
        if raw is None:
            return None
        try:
            return [BreachRecord(**item) for item in json.loads(raw)]
        except (ValueError, TypeError) as e:
            logger.warning("Discarding unreadable breach cache entry", error=str(e))
            return None

    async def _write_cache(self, key: str | None, breaches: list[BreachRecord]) -> None:
        if not key or not self.cache.configured:
            return
        payload = json.dumps([breach.model_dump() for breach in breaches])
        await self.cache.set_with_ttl(key, payload, settings.BREACH_CACHE_TTL_SECONDS)
