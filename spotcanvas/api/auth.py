from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

import httpx

from ..models import AuthState
from ..utils import safe_json
from .constants import (
    AUTH_PRODUCT_TYPE,
    AUTH_REASON,
    BROWSER_USER_AGENT,
    HOME_PAGE_URL,
    REQUEST_TIMEOUT,
    SECRETS_REFRESH_INTERVAL,
    SESSION_TOKEN_URL,
    TOKEN_REFRESH_INTERVAL,
    TOTP_PERIOD,
    TOTP_SECRETS_URL,
)
from .secret_store import SecretStore
from .time_sync import TimeSync
from .totp import TotpEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    """Runs at most one instance of a routine at a time.

    Callers arriving while a run is in flight await that same run instead of
    starting another one.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, routine: Callable[[], Awaitable[T]]) -> T:
        if self.in_flight:
            logger.debug(f"Joining in-flight {self.name}")
        else:
            self._task = asyncio.ensure_future(self._locked(routine))
        return await asyncio.shield(self._task)

    async def cancel(self) -> None:
        if not self.in_flight:
            return
        logger.debug(f"Cancelling in-flight {self.name}")
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)

    async def _locked(self, routine: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            return await routine()


class AuthManager:
    def __init__(
        self,
        sp_dc: str | None = None,
        secrets_url: str = TOTP_SECRETS_URL,
        token_refresh_interval: float = TOKEN_REFRESH_INTERVAL,
        secrets_refresh_interval: float = SECRETS_REFRESH_INTERVAL,
        client: httpx.AsyncClient | None = None,
        secrets_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.sp_dc = sp_dc
        self.token_refresh_interval = token_refresh_interval
        self.secrets_refresh_interval = secrets_refresh_interval
        self.clock = clock
        self.state = AuthState()
        self.engine = TotpEngine(self.state)
        self._owns_client = client is None
        self.client = client if client is not None else httpx.AsyncClient()
        self._setup_client_headers()
        self.secret_store = SecretStore(
            self.engine,
            secrets_url=secrets_url,
            refresh_interval=secrets_refresh_interval,
            client=secrets_client,
        )
        self.time_sync = TimeSync(self.client, clock=clock)
        self._token_flight = SingleFlight("auth token refresh")
        self._secrets_flight = SingleFlight("TOTP secrets refresh")
        self._tasks: list[asyncio.Task] = []
        self._started = False

        if not self.sp_dc:
            logger.warning("sp_dc cookie missing, auth token refresh is disabled")

    def _setup_client_headers(self) -> None:
        self.client.headers.update(
            {
                "accept": "application/json",
                "accept-language": "en-US",
                "origin": HOME_PAGE_URL,
                "referer": HOME_PAGE_URL,
                "user-agent": BROWSER_USER_AGENT,
            }
        )

        if self.sp_dc:
            self.client.cookies.update({"sp_dc": self.sp_dc})

    @property
    def started(self) -> bool:
        return self._started

    def token(self) -> str | None:
        return self.state.token

    async def start(self) -> None:
        if self._started:
            return
        self._started = True

        await self.refresh_secrets(trigger_token_refresh=False)
        await self.refresh()

        self._tasks = [
            asyncio.create_task(
                self._schedule(
                    self.secrets_refresh_interval,
                    self.refresh_secrets,
                    "TOTP secrets refresh",
                )
            ),
            asyncio.create_task(
                self._schedule(
                    self.token_refresh_interval,
                    self.refresh,
                    "Auth token refresh",
                )
            ),
        ]

        logger.info("Auth manager started")

    async def close(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self._token_flight.cancel()
        await self._secrets_flight.cancel()
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> AuthManager:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _schedule(
        self,
        interval: float,
        routine: Callable[[], Awaitable],
        name: str,
    ) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await routine()
            except Exception:
                logger.exception(f"{name} failed")

    async def refresh_secrets(self, trigger_token_refresh: bool = True) -> bool:
        totp = await self._secrets_flight.run(self.secret_store.refresh)
        if totp is None:
            return False
        if trigger_token_refresh and self.state.token is None:
            logger.info("No auth token after TOTP secrets update, reauthenticating")
            await self.refresh()
        return True

    async def build_auth_payload(self) -> dict[str, str]:
        # Snapshot the generator so both codes and the version match
        totp = self.engine.current()
        local_time = int(self.clock() * 1000)
        server_time = await self.time_sync.now()
        period_ms = TOTP_PERIOD * 1000
        return {
            "reason": AUTH_REASON,
            "productType": AUTH_PRODUCT_TYPE,
            "totp": totp.generate(local_time),
            "totpVer": totp.version,
            "totpServer": totp.generate(server_time // period_ms * period_ms),
        }

    async def refresh(self) -> bool:
        return await self._token_flight.run(self._refresh_token)

    async def _refresh_token(self) -> bool:
        if not self.sp_dc:
            logger.debug("Skipping auth token refresh, sp_dc cookie missing")
            return False

        payload = await self.build_auth_payload()
        try:
            response = await self.client.get(
                SESSION_TOKEN_URL,
                params=payload,
                timeout=REQUEST_TIMEOUT,
            )
        except httpx.HTTPError as e:
            logger.error(f"Error fetching auth token: {e!r}")
            logger.warning("Failed to refresh auth token")
            return False

        session_info = safe_json(response)
        access_token = (
            session_info.get("accessToken")
            if isinstance(session_info, dict)
            else None
        )
        if response.status_code != 200 or not access_token:
            logger.error(
                f"No access token in response ({response.status_code}): {response.text}"
            )
            logger.warning("Failed to refresh auth token")
            return False

        logger.debug(f"Received session info: {session_info}")

        self.state.token = f"Bearer {access_token}"
        logger.info("Auth token refreshed")

        return True
