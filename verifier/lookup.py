"""People-data API clients.

The matcher only sees ``PeopleDataClient``. ``FixtureLookupClient`` is a
deterministic stand-in for tests and local demos; ``HttpLookupClient`` talks
to the real service with httpx.
"""
from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from .config import LookupBackend, Settings, settings
from .models import CandidateProfile

logger = logging.getLogger(__name__)


class LookupFailure(Exception):
    """A single lookup failed; the record is scored as zero agreement."""


class NotFound(LookupFailure):
    """The API has no person matching the query."""


class AuthError(Exception):
    """Credentials were rejected; fatal to the whole run."""


class ServiceUnavailable(Exception):
    """The API is unreachable; fatal to the whole run."""


def sanitize_message(message: str, secret: str | None = None) -> str:
    """Mask a credential if it appears in an error message."""
    if secret:
        message = message.replace(secret, "***")
    return message


class PeopleDataClient(ABC):
    """Interface to the people-data lookup service."""

    @abstractmethod
    async def lookup(self, name: str, email: str, company: str, position: str) -> CandidateProfile:
        """Look up the person best matching the given fields.

        Raises:
            NotFound: No matching person
            LookupFailure: This lookup failed but others may succeed
            AuthError: Credentials rejected
            ServiceUnavailable: The service cannot be reached
        """

    async def aclose(self) -> None:
        return None


class FixtureLookupClient(PeopleDataClient):
    """Deterministic lookup client.

    With ``profiles`` (keyed by email, case-insensitive) it returns the
    mapped profile or raises NotFound. Without it, a profile is synthesized
    from a stable hash of the email: most lookups echo the record, some
    differ in one or two fields, and a few are not found.
    """

    def __init__(
        self,
        profiles: Mapping[str, CandidateProfile] | None = None,
        *,
        auth_error: bool = False,
    ) -> None:
        self.profiles = (
            {email.strip().lower(): p for email, p in profiles.items()} if profiles is not None else None
        )
        self.auth_error = auth_error
        self.calls: list[str] = []

    async def lookup(self, name: str, email: str, company: str, position: str) -> CandidateProfile:
        self.calls.append(email)
        if self.auth_error:
            raise AuthError("Fixture client configured to reject credentials")

        key = email.strip().lower()
        if self.profiles is not None:
            if key not in self.profiles:
                raise NotFound(f"No fixture profile for {email}")
            return self.profiles[key]

        return self._synthesize(name, email, company, position)

    @staticmethod
    def _synthesize(name: str, email: str, company: str, position: str) -> CandidateProfile:
        bucket = int(hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest(), 16) % 10
        if bucket == 0:
            raise NotFound(f"No person found for {email}")
        if bucket <= 5:
            return CandidateProfile(name=name, email=email, company=company, position=position)
        if bucket <= 7:
            return CandidateProfile(name=name, email=email, company=f"{company} Holdings", position=position)
        if bucket == 8:
            return CandidateProfile(name=name, email=email, company=company, position=f"Senior {position}")
        return CandidateProfile(name=name, email=email, company="Unknown Ltd", position="Consultant")


def _first(data: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value:
            return str(value)
    return ""


def parse_profile(payload: Any) -> CandidateProfile:
    """Build a CandidateProfile from an API payload.

    Accepts the flat shape and the ``{"data": {...}}`` envelope, with either
    short field names or the enrichment-style ones.

    Raises:
        LookupFailure: If the payload is not an object
    """
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), Mapping):
        payload = payload["data"]
    if not isinstance(payload, Mapping):
        raise LookupFailure("Unexpected response payload")

    return CandidateProfile(
        name=_first(payload, "name", "full_name"),
        email=_first(payload, "email", "work_email"),
        company=_first(payload, "company", "job_company_name"),
        position=_first(payload, "position", "job_title"),
    )


class HttpLookupClient(PeopleDataClient):
    """Lookup client for the live people-data API."""

    LOOKUP_PATH = "/person/lookup"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_seconds: float = 10.0,
        retry_on_timeout: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self.retry_on_timeout = retry_on_timeout
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            headers={
                "accept": "application/json",
                "Authorization": f"Bearer {api_key}",
            },
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    @retry(
        retry=retry_if_exception_type(httpx.TimeoutException),
        stop=stop_after_attempt(2),
        reraise=True,
    )
    async def _get_with_retry(self, params: dict[str, str]) -> httpx.Response:
        return await self.client.get(self.LOOKUP_PATH, params=params)

    async def _get(self, params: dict[str, str]) -> httpx.Response:
        if self.retry_on_timeout:
            return await self._get_with_retry(params)
        return await self.client.get(self.LOOKUP_PATH, params=params)

    async def lookup(self, name: str, email: str, company: str, position: str) -> CandidateProfile:
        params = {"name": name, "email": email, "company": company, "position": position}
        try:
            response = await self._get(params)
        except httpx.TimeoutException as e:
            raise LookupFailure(f"Lookup timed out for {email}") from e
        except httpx.TransportError as e:
            message = sanitize_message(str(e), self._api_key)
            raise ServiceUnavailable(f"People-data API unreachable: {message}") from e

        status = response.status_code
        if status in (401, 403):
            raise AuthError(f"People-data API rejected credentials (HTTP {status})")
        if status == 404:
            raise NotFound(f"No person found for {email}")
        if status == 503:
            raise ServiceUnavailable("People-data API unavailable (HTTP 503)")
        if not response.is_success:
            raise LookupFailure(f"Lookup failed for {email} (HTTP {status})")

        try:
            payload = response.json()
        except ValueError as e:
            raise LookupFailure(f"Invalid JSON in lookup response for {email}") from e
        return parse_profile(payload)


def build_lookup_client(config: Settings | None = None) -> PeopleDataClient:
    """Instantiate the configured lookup backend."""
    config = config or settings
    if config.lookup.backend == LookupBackend.HTTP:
        logger.info(f"Using HTTP people-data client at {config.lookup.base_url}")
        return HttpLookupClient(
            config.lookup.base_url,
            config.lookup.api_key.get_secret_value(),
            timeout_seconds=config.lookup.timeout_seconds,
            retry_on_timeout=config.lookup.retry_on_timeout,
        )
    logger.info("Using fixture people-data client")
    return FixtureLookupClient()
