from __future__ import annotations

import logging
from http.cookiejar import MozillaCookieJar

import httpx

from ..constants import CANVAS_NOT_AVAILABLE_MESSAGE
from ..enums import SkipMode
from ..models import CanvasLookup, CanvasResponse
from ..utils import safe_json
from .auth import AuthManager
from .canvas import CanvasCodec
from .constants import (
    ALBUM_API_URL,
    CANVAS_API_URL,
    CANVAS_USER_AGENT,
    COOKIE_DOMAIN,
    PLAYLIST_API_URL,
    REQUEST_TIMEOUT,
    SEARCH_API_URL,
    TRACK_API_URL,
)
from .exceptions import (
    AuthUnavailable,
    MalformedResponse,
    NetworkError,
    SpotCanvasApiException,
    SpotCanvasRequestException,
)

logger = logging.getLogger(__name__)


class SpotifyApi:
    def __init__(
        self,
        sp_dc: str | None = None,
        auth_manager: AuthManager | None = None,
        client: httpx.AsyncClient | None = None,
        skip_mode: SkipMode = SkipMode.NAIVE,
        **auth_kwargs,
    ) -> None:
        self.auth = (
            auth_manager
            if auth_manager is not None
            else AuthManager(sp_dc=sp_dc, **auth_kwargs)
        )
        self._owns_client = client is None
        self.client = (
            client
            if client is not None
            else httpx.AsyncClient(timeout=REQUEST_TIMEOUT)
        )
        self.skip_mode = skip_mode

    @staticmethod
    def _parse_cookies(cookies_path: str) -> dict[str, str]:
        cookies = MozillaCookieJar(cookies_path)
        cookies.load(ignore_discard=True, ignore_expires=True)

        cookie_dict = {
            cookie.name: cookie.value
            for cookie in cookies
            if cookie.domain == COOKIE_DOMAIN
        }

        logger.debug(f"Parsed cookies: {list(cookie_dict)}")

        return cookie_dict

    @classmethod
    async def create_from_netscape_cookies(
        cls,
        cookies_path: str,
        *args,
        **kwargs,
    ) -> "SpotifyApi":
        cookies = cls._parse_cookies(cookies_path)
        sp_dc = cookies.get("sp_dc")
        if sp_dc is None:
            raise ValueError(
                "'sp_dc' cookie not found in cookies. "
                "Make sure you have exported the cookies "
                "from the Spotify homepage and are logged in."
            )

        return await cls.create(*args, sp_dc=sp_dc, **kwargs)

    @classmethod
    async def create(
        cls,
        *args,
        **kwargs,
    ) -> "SpotifyApi":
        api = cls(*args, **kwargs)

        await api._initialize()

        return api

    async def _initialize(self) -> None:
        await self.auth.start()

    async def close(self) -> None:
        await self.auth.close()
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "SpotifyApi":
        await self._initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def get_access_token(self) -> str | None:
        return self.auth.token()

    def _require_token(self) -> str:
        token = self.auth.token()
        if token is None:
            raise AuthUnavailable()
        return token

    async def _get_json(
        self,
        name: str,
        url: str,
        params: dict | None = None,
    ) -> dict:
        token = self._require_token()

        try:
            response = await self.client.get(
                url,
                params=params,
                headers={
                    "Authorization": token,
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise NetworkError(name, e)

        result = safe_json(response)
        if response.status_code != 200 or not isinstance(result, dict):
            raise SpotCanvasRequestException(
                name=name,
                response_status_code=response.status_code,
                response_text=response.text,
            )

        logger.debug(f"Received {name.lower()}: {result}")

        return result

    async def _get_json_or_none(
        self,
        name: str,
        url: str,
        params: dict | None = None,
    ) -> dict | None:
        try:
            return await self._get_json(name, url, params)
        except AuthUnavailable as e:
            logger.warning(f"{name} request skipped: {e}")
        except SpotCanvasApiException as e:
            logger.error(f"Failed to fetch {name.lower()}: {e}")
        return None

    async def get_track(self, track_id: str) -> dict | None:
        return await self._get_json_or_none(
            "Track",
            TRACK_API_URL.format(track_id=track_id),
        )

    async def get_album(self, album_id: str) -> dict | None:
        return await self._get_json_or_none(
            "Album",
            ALBUM_API_URL.format(album_id=album_id),
        )

    async def get_playlist(self, playlist_id: str) -> dict | None:
        return await self._get_json_or_none(
            "Playlist",
            PLAYLIST_API_URL.format(playlist_id=playlist_id),
        )

    async def search_tracks(self, query: str, limit: int = 20) -> list[dict] | None:
        result = await self._get_json_or_none(
            "Search",
            SEARCH_API_URL,
            params={"q": query, "type": "track", "limit": limit},
        )
        if result is None:
            return None
        tracks = result.get("tracks")
        if not isinstance(tracks, dict) or not isinstance(tracks.get("items"), list):
            logger.error(f'Unexpected search response for "{query}": {result}')
            return None
        return tracks["items"]

    async def _get_canvases(self, track_uri: str) -> CanvasResponse:
        token = self._require_token()

        try:
            response = await self.client.post(
                CANVAS_API_URL,
                content=CanvasCodec.encode_request([track_uri]),
                headers={
                    "Accept": "application/protobuf",
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept-Language": "en",
                    "Accept-Encoding": "gzip, deflate",
                    "User-Agent": CANVAS_USER_AGENT,
                    "Authorization": token,
                },
            )
        except httpx.HTTPError as e:
            raise NetworkError("Canvas", e)

        if response.status_code != 200:
            raise SpotCanvasRequestException(
                name="Canvas",
                response_status_code=response.status_code,
                response_text=response.text,
            )

        canvases = CanvasCodec.decode_response(response.content, self.skip_mode)

        logger.debug(f"Received canvases for {track_uri}: {canvases}")

        return canvases

    async def get_canvas(self, track_uri: str) -> CanvasResponse | None:
        try:
            return await self._get_canvases(track_uri)
        except AuthUnavailable as e:
            logger.warning(f"Canvas request skipped: {e}")
        except MalformedResponse as e:
            logger.error(f"Failed to decode canvas response: {e}")
        except SpotCanvasApiException as e:
            logger.error(f"Canvas request error: {e}")
        return None

    async def get_canvas_by_track_id(self, track_id: str) -> CanvasResponse | None:
        return await self.get_canvas(f"spotify:track:{track_id}")

    async def get_track_canvas(self, track_id: str) -> CanvasLookup:
        canvases = await self.get_canvas_by_track_id(track_id)
        canvas = canvases.canvas if canvases is not None else None
        if canvas is None:
            return CanvasLookup(
                id=track_id,
                canvas_url=None,
                message=CANVAS_NOT_AVAILABLE_MESSAGE,
            )
        return CanvasLookup(id=track_id, canvas_url=canvas.canvas_url)
