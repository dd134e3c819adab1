import asyncio

import httpx

from spotcanvas.api import AuthManager, Totp
from spotcanvas.api.constants import FALLBACK_SECRET

from .helpers import SECRETS_URL, make_client, unreachable

LOCAL_TIME = 1_700_000_000.0
SERVER_TIME = 1_700_000_047


class SpotifyBackend:
    def __init__(
        self,
        token_delay: float = 0,
        token_status: int = 200,
        server_time=SERVER_TIME,
    ) -> None:
        self.token_delay = token_delay
        self.server_time = server_time
        self.token_status = token_status
        self.token_requests = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/server-time":
            return httpx.Response(200, json={"serverTime": self.server_time})
        if request.url.path == "/api/token":
            self.token_requests.append(request)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            await asyncio.sleep(self.token_delay)
            self.in_flight -= 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, text="denied")
            return httpx.Response(
                200, json={"accessToken": f"token-{len(self.token_requests)}"}
            )
        return httpx.Response(404)


def make_manager(
    backend: SpotifyBackend,
    secrets_handler=unreachable,
    sp_dc: str | None = "cookie",
    **kwargs,
) -> AuthManager:
    return AuthManager(
        sp_dc=sp_dc,
        secrets_url=SECRETS_URL,
        client=make_client(backend),
        secrets_client=make_client(secrets_handler),
        clock=lambda: LOCAL_TIME,
        **kwargs,
    )


def test_refresh_stores_bearer_token_and_sends_payload() -> None:
    backend = SpotifyBackend()
    manager = make_manager(backend)

    async def scenario():
        await manager.refresh_secrets(trigger_token_refresh=False)
        return await manager.refresh()

    assert asyncio.run(scenario()) is True
    assert manager.token() == "Bearer token-1"

    totp = Totp.from_ciphertext("19", FALLBACK_SECRET)
    request = backend.token_requests[0]
    assert dict(request.url.params) == {
        "reason": "init",
        "productType": "mobile-web-player",
        "totp": totp.generate(1_700_000_000_000),
        "totpVer": "19",
        "totpServer": totp.generate(1_700_000_040_000),
    }
    assert "sp_dc=cookie" in request.headers["cookie"]
    assert request.headers["user-agent"].startswith("Mozilla/5.0 (Windows NT 10.0")


def test_server_code_uses_quantized_server_time() -> None:
    manager = make_manager(SpotifyBackend())

    async def scenario():
        await manager.refresh_secrets(trigger_token_refresh=False)
        return await manager.build_auth_payload()

    payload = asyncio.run(scenario())

    totp = manager.engine.totp
    assert payload["totpServer"] == totp.generate(1_700_000_040_000)
    assert payload["totpServer"] == totp.generate(SERVER_TIME * 1000)


def test_out_of_range_server_time_uses_local_clock() -> None:
    backend = SpotifyBackend(server_time=-5)
    manager = make_manager(backend)

    async def scenario():
        await manager.refresh_secrets(trigger_token_refresh=False)
        return await manager.refresh()

    assert asyncio.run(scenario()) is True

    params = backend.token_requests[0].url.params
    assert params["totpServer"] == params["totp"]
    assert manager.token() == "Bearer token-1"


def test_failed_refresh_keeps_previous_token() -> None:
    backend = SpotifyBackend()
    manager = make_manager(backend)

    async def scenario():
        await manager.refresh_secrets(trigger_token_refresh=False)
        await manager.refresh()
        backend.token_status = 401
        return await manager.refresh()

    assert asyncio.run(scenario()) is False
    assert manager.token() == "Bearer token-1"


def test_response_without_access_token_is_failure() -> None:
    async def backend(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/token":
            return httpx.Response(200, json={"isAnonymous": True})
        return httpx.Response(200, json={"serverTime": SERVER_TIME})

    manager = AuthManager(
        sp_dc="cookie",
        client=make_client(backend),
        secrets_client=make_client(unreachable),
        clock=lambda: LOCAL_TIME,
    )

    async def scenario():
        await manager.refresh_secrets(trigger_token_refresh=False)
        return await manager.refresh()

    assert asyncio.run(scenario()) is False
    assert manager.token() is None


def test_network_error_is_failure() -> None:
    manager = make_manager(SpotifyBackend())
    manager.client = make_client(unreachable)
    manager.time_sync.client = manager.client

    async def scenario():
        await manager.refresh_secrets(trigger_token_refresh=False)
        return await manager.refresh()

    assert asyncio.run(scenario()) is False
    assert manager.token() is None


def test_missing_sp_dc_skips_token_request() -> None:
    backend = SpotifyBackend()
    manager = make_manager(backend, sp_dc=None)

    async def scenario():
        await manager.refresh_secrets(trigger_token_refresh=False)
        return await manager.refresh()

    assert asyncio.run(scenario()) is False
    assert backend.token_requests == []


def test_concurrent_refreshes_share_one_request() -> None:
    backend = SpotifyBackend(token_delay=0.05)
    manager = make_manager(backend)

    async def scenario():
        await manager.refresh_secrets(trigger_token_refresh=False)
        results = await asyncio.gather(manager.refresh(), manager.refresh())
        await manager.refresh()
        return results

    assert asyncio.run(scenario()) == [True, True]
    assert len(backend.token_requests) == 2
    assert backend.max_in_flight == 1
    assert manager.token() == "Bearer token-2"


def test_reactive_and_scheduled_triggers_do_not_overlap() -> None:
    backend = SpotifyBackend(token_delay=0.05)
    tables = iter([{"20": [1, 2]}, {"21": [3, 4]}])
    manager = make_manager(
        backend,
        secrets_handler=lambda request: httpx.Response(200, json=next(tables)),
        secrets_refresh_interval=0,
    )

    async def scenario():
        await manager.refresh_secrets(trigger_token_refresh=False)
        await asyncio.gather(manager.refresh(), manager.refresh_secrets())

    asyncio.run(scenario())

    assert manager.engine.version == "21"
    assert backend.max_in_flight == 1
    assert manager.token() is not None


def test_rotation_without_token_triggers_refresh() -> None:
    backend = SpotifyBackend()
    manager = make_manager(
        backend,
        secrets_handler=lambda request: httpx.Response(200, json={"20": [1, 2]}),
    )

    assert asyncio.run(manager.refresh_secrets()) is True
    assert manager.engine.version == "20"
    assert manager.token() == "Bearer token-1"
    assert backend.token_requests[0].url.params["totpVer"] == "20"


def test_rotation_with_token_does_not_refresh() -> None:
    backend = SpotifyBackend()
    manager = make_manager(
        backend,
        secrets_handler=lambda request: httpx.Response(200, json={"20": [1, 2]}),
    )
    manager.state.token = "Bearer existing"

    asyncio.run(manager.refresh_secrets())

    assert backend.token_requests == []
    assert manager.token() == "Bearer existing"


def test_unreachable_secrets_on_start_uses_fallback() -> None:
    backend = SpotifyBackend()
    manager = make_manager(backend)

    async def scenario():
        await manager.start()
        await manager.close()

    asyncio.run(scenario())

    assert manager.engine.totp is not None
    assert manager.engine.version == "19"
    assert manager.token() == "Bearer token-1"
    assert len(backend.token_requests) == 1


def test_start_is_idempotent_and_close_stops_schedules() -> None:
    backend = SpotifyBackend()
    manager = make_manager(backend)

    async def scenario():
        await manager.start()
        await manager.start()
        tasks = list(manager._tasks)
        assert len(tasks) == 2
        await manager.close()
        return tasks

    tasks = asyncio.run(scenario())

    assert all(task.cancelled() for task in tasks)
    assert len(backend.token_requests) == 1


def test_scheduled_token_refresh_runs_periodically() -> None:
    backend = SpotifyBackend()
    manager = make_manager(backend, token_refresh_interval=0.01)

    async def scenario():
        async with manager:
            await asyncio.sleep(0.1)

    asyncio.run(scenario())

    assert len(backend.token_requests) >= 3
    assert backend.max_in_flight == 1


def test_close_cancels_in_flight_refresh() -> None:
    backend = SpotifyBackend(token_delay=10)
    manager = make_manager(backend)

    async def scenario():
        await manager.refresh_secrets(trigger_token_refresh=False)
        refresh = asyncio.create_task(manager.refresh())
        while not backend.token_requests:
            await asyncio.sleep(0)
        await manager.close()
        await asyncio.gather(refresh, return_exceptions=True)
        return refresh

    refresh = asyncio.run(scenario())

    assert refresh.done()
    assert not manager._token_flight.in_flight
    assert manager.token() is None
