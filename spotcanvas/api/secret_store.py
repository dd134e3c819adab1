from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from ..utils import SpotCanvasException, safe_json
from .constants import (
    FALLBACK_SECRET,
    FALLBACK_SECRET_VERSION,
    SECRETS_REFRESH_INTERVAL,
    SECRETS_TIMEOUT,
    SECRETS_USER_AGENT,
    TOTP_SECRETS_URL,
)
from .exceptions import (
    EmptySecretTable,
    MalformedResponse,
    NetworkError,
    SpotCanvasRequestException,
)
from .totp import Totp, TotpEngine

logger = logging.getLogger(__name__)


class SecretStore:
    """Keeps the TOTP generator in sync with the remote secrets table.

    The table maps integer-like version keys to obfuscated byte lists. The
    numerically largest key wins. When the table cannot be fetched and no
    generator exists yet, the embedded fallback secret is used instead.
    """

    def __init__(
        self,
        engine: TotpEngine,
        secrets_url: str = TOTP_SECRETS_URL,
        refresh_interval: float = SECRETS_REFRESH_INTERVAL,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine
        self.secrets_url = secrets_url
        self.refresh_interval = refresh_interval
        self.client = client
        self.clock = clock
        self.last_fetch: float | None = None

    @property
    def version(self) -> str | None:
        return self.engine.version

    @staticmethod
    def newest_version(secrets: dict) -> str:
        if not secrets:
            raise EmptySecretTable()
        try:
            return max(secrets.keys(), key=int)
        except ValueError:
            raise MalformedResponse(
                f"TOTP secrets table has non-integer versions: {list(secrets)}"
            )

    async def fetch(self) -> dict:
        try:
            if self.client is None:
                async with httpx.AsyncClient() as client:
                    response = await self._get(client)
            else:
                response = await self._get(self.client)
        except httpx.HTTPError as e:
            raise NetworkError("TOTP secrets", e)

        if response.status_code != 200:
            raise SpotCanvasRequestException(
                name="TOTP secrets",
                response_status_code=response.status_code,
                response_text=response.text,
            )
        secrets = safe_json(response)
        if secrets is None:
            raise MalformedResponse(
                f"TOTP secrets response is not valid JSON: {response.content[:100]!r}"
            )
        if not isinstance(secrets, dict):
            raise MalformedResponse(f"Unexpected TOTP secrets payload: {secrets!r}")

        logger.debug(f"Received TOTP secrets: {secrets}")

        return secrets

    async def _get(self, client: httpx.AsyncClient) -> httpx.Response:
        return await client.get(
            self.secrets_url,
            headers={"User-Agent": SECRETS_USER_AGENT},
            timeout=SECRETS_TIMEOUT,
        )

    def _throttled(self, now: float) -> bool:
        return (
            self.last_fetch is not None
            and now - self.last_fetch < self.refresh_interval
        )

    async def refresh(self, force: bool = False) -> Totp | None:
        """Fetch the secrets table and adopt a newer version if there is one.

        Returns the newly adopted generator, or ``None`` when nothing changed.
        """
        now = self.clock()
        if not force and self._throttled(now):
            logger.debug("Skipping TOTP secrets refresh, fetched recently")
            return None

        try:
            secrets = await self.fetch()
            version = self.newest_version(secrets)
            if version == self.version:
                self.last_fetch = now
                logger.debug(f"TOTP secrets unchanged at version {version}")
                return None
            totp = Totp.from_ciphertext(version, secrets[version])
        except SpotCanvasException as e:
            logger.error(f"Failed to update TOTP secrets: {e}")
            if self.engine.totp is None:
                return self.use_fallback()
            return None

        self.engine.adopt(totp)
        self.last_fetch = now
        logger.info(f"TOTP secrets updated to version {version}")

        return totp

    def use_fallback(self) -> Totp:
        totp = Totp.from_ciphertext(FALLBACK_SECRET_VERSION, FALLBACK_SECRET)
        self.engine.adopt(totp)
        logger.warning(f"Using fallback TOTP secret version {totp.version}")
        return totp
