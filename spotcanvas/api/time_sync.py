from __future__ import annotations

import logging
import math
import time
from typing import Callable

import httpx

from ..utils import safe_json
from .constants import REQUEST_TIMEOUT, SERVER_TIME_URL, TOTP_PERIOD

# TOTP counters are packed into 8 bytes
MAX_SERVER_TIME = 2**63 * TOTP_PERIOD

logger = logging.getLogger(__name__)


class TimeSync:
    def __init__(
        self,
        client: httpx.AsyncClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.clock = clock

    def local_now(self) -> int:
        return int(self.clock() * 1000)

    async def now(self) -> int:
        """Server time in milliseconds, or local time if it can't be read."""
        try:
            response = await self.client.get(SERVER_TIME_URL, timeout=REQUEST_TIMEOUT)
        except httpx.HTTPError as e:
            logger.debug(f"Server time request failed, using local clock: {e!r}")
            return self.local_now()

        server_time = safe_json(response)
        if response.status_code != 200 or not isinstance(server_time, dict):
            logger.debug(
                f"Server time request returned {response.status_code}, using local clock"
            )
            return self.local_now()

        logger.debug(f"Received server time: {server_time}")

        try:
            seconds = float(server_time.get("serverTime"))
        except (TypeError, ValueError):
            seconds = math.nan
        if not math.isfinite(seconds) or not 0 <= seconds < MAX_SERVER_TIME:
            logger.debug("Invalid server time, using local clock")
            return self.local_now()

        return int(seconds * 1000)
