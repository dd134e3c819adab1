from __future__ import annotations

from typing import Callable

import httpx

SECRETS_URL = "https://secrets.test/secretDict.json"


def make_client(handler: Callable) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("unreachable", request=request)
