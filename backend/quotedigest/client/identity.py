"""
Bounded identity resolution for report consumers.

The identity provider may not be ready when a consumer starts (the host app
fills it in asynchronously), so it is polled with a fixed backoff under an
overall deadline. When polling runs out, the fallback sources are tried in
order: external identity, URL override, persisted override. If none of them
holds a real id, resolve() raises IdentityTimeout; a placeholder id is never
returned as if it were a user.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from quotedigest.core.config import settings
from quotedigest.core.exceptions import IdentityTimeout

logger = logging.getLogger(__name__)

PLACEHOLDER_IDS = frozenset({"demo-user", "null", "undefined"})

SOURCE_PROVIDER = "provider"
SOURCE_EXTERNAL = "external"
SOURCE_URL = "url"
SOURCE_PERSISTED = "persisted"

UserId = Union[int, str]


@dataclass(frozen=True)
class ResolvedIdentity:
    user_id: UserId
    source: str


def coerce_identity(value: Any) -> Optional[UserId]:
    """
    Real user id or None.

    Numeric strings become ints ("12345" -> 12345); empty values and
    placeholders ("demo-user") are not identities.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text or text.lower() in PLACEHOLDER_IDS:
        return None
    if text.isdigit():
        return int(text)
    return text


async def _call(source: Any) -> Any:
    """Read a source that may be a plain value, a sync callable or an async callable."""
    value = source() if callable(source) else source
    if inspect.isawaitable(value):
        value = await value
    return value


class IdentityResolver:
    def __init__(
        self,
        provider: Optional[Callable[[], Any]] = None,
        external_identity: Any = None,
        url_override: Any = None,
        persisted_override: Any = None,
        attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.provider = provider
        self.external_identity = external_identity
        self.url_override = url_override
        self.persisted_override = persisted_override
        self.attempts = attempts or settings.IDENTITY_POLL_ATTEMPTS
        self.backoff_seconds = settings.IDENTITY_POLL_INTERVAL_SECONDS if backoff_seconds is None else backoff_seconds
        self.timeout_seconds = timeout_seconds or settings.IDENTITY_POLL_TIMEOUT_SECONDS

    async def _poll_provider(self) -> Optional[UserId]:
        if self.provider is None:
            return None
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds
        for attempt in range(1, self.attempts + 1):
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                user_id = coerce_identity(await asyncio.wait_for(_call(self.provider), remaining))
            except asyncio.TimeoutError:
                logger.warning(f"Identity provider did not answer within {self.timeout_seconds}s")
                break
            except Exception as e:
                logger.warning(f"Identity provider failed on attempt {attempt}: {e}")
                user_id = None
            if user_id is not None:
                logger.debug(f"Identity resolved from provider after {attempt} attempt(s)")
                return user_id
            remaining = deadline - loop.time()
            if attempt == self.attempts or remaining <= 0:
                break
            await asyncio.sleep(min(self.backoff_seconds, remaining))
        return None

    async def resolve(self) -> ResolvedIdentity:
        """
        Raises:
            IdentityTimeout: polling and every fallback source are exhausted
        """
        loop = asyncio.get_running_loop()
        started = loop.time()

        user_id = await self._poll_provider()
        if user_id is not None:
            return ResolvedIdentity(user_id, SOURCE_PROVIDER)

        fallbacks = (
            (SOURCE_EXTERNAL, self.external_identity),
            (SOURCE_URL, self.url_override),
            (SOURCE_PERSISTED, self.persisted_override),
        )
        for source, value in fallbacks:
            if value is None:
                continue
            user_id = coerce_identity(await _call(value))
            if user_id is not None:
                logger.info(f"Identity provider unavailable, using {source} identity")
                return ResolvedIdentity(user_id, source)

        waited = loop.time() - started
        logger.warning(f"No user identity after {self.attempts} attempts and all fallbacks ({waited:.2f}s)")
        raise IdentityTimeout(waited, self.attempts)
