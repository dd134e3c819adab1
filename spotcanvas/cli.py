from __future__ import annotations

import asyncio
import inspect
import json
import logging
import re
from enum import Enum
from pathlib import Path

import click
import colorama

from . import __version__
from .api import AuthManager, SpotifyApi
from .constants import EXCLUDED_CONFIG_FILE_PARAMS, URL_RE, X_NOT_FOUND_STRING
from .custom_formatter import CustomFormatter
from .enums import MediaType, SkipMode
from .models import UrlInfo
from .utils import color_text

logger = logging.getLogger("spotcanvas")

auth_manager_sig = inspect.signature(AuthManager.__init__)
spotify_api_sig = inspect.signature(SpotifyApi.__init__)


def get_param_string(param: click.Parameter) -> str:
    if isinstance(param.default, Enum):
        return param.default.value
    elif isinstance(param.default, Path):
        return str(param.default)
    else:
        return param.default


def write_default_config_file(ctx: click.Context) -> None:
    ctx.params["config_path"].parent.mkdir(parents=True, exist_ok=True)
    config_file = {
        param.name: get_param_string(param)
        for param in ctx.command.params
        if param.name not in EXCLUDED_CONFIG_FILE_PARAMS
    }
    ctx.params["config_path"].write_text(json.dumps(config_file, indent=4))


def load_config_file(
    ctx: click.Context,
    param: click.Parameter,
    no_config_file: bool,
) -> click.Context:
    if no_config_file:
        return ctx
    if not ctx.params["config_path"].exists():
        write_default_config_file(ctx)
    config_file = dict(json.loads(ctx.params["config_path"].read_text()))
    for param in ctx.command.params:
        if (
            config_file.get(param.name) is not None
            and not ctx.get_parameter_source(param.name)
            == click.core.ParameterSource.COMMANDLINE
        ):
            ctx.params[param.name] = param.type_cast_value(ctx, config_file[param.name])
    return ctx


def get_url_info(url: str) -> UrlInfo:
    url_regex_result = re.search(URL_RE, url)
    if url_regex_result is None:
        raise ValueError(f'Invalid URL "{url}"')
    return UrlInfo(type=url_regex_result.group(1), id=url_regex_result.group(2))


def get_track_ids(media: dict, media_type: MediaType) -> list[str]:
    items = media.get("tracks", {}).get("items", [])
    if media_type == MediaType.PLAYLIST:
        items = [item.get("track") or {} for item in items]
    return [item["id"] for item in items if item.get("id")]


async def get_track_queue(
    spotify_api: SpotifyApi,
    url_info: UrlInfo,
) -> list[str]:
    media_type = MediaType(url_info.type)
    if media_type == MediaType.TRACK:
        return [url_info.id]
    if media_type == MediaType.ALBUM:
        media = await spotify_api.get_album(url_info.id)
    else:
        media = await spotify_api.get_playlist(url_info.id)
    if media is None:
        raise ValueError(f"Could not fetch {media_type.value} {url_info.id}")
    return get_track_ids(media, media_type)


async def run(
    urls: list[str],
    spotify_api: SpotifyApi,
    wait_interval: float,
    print_json: bool,
    no_exceptions: bool,
) -> int:
    error_count = 0
    for url_index, url in enumerate(urls, start=1):
        url_progress = color_text(f"URL {url_index}/{len(urls)}", colorama.Style.DIM)
        logger.info(f'({url_progress}) Checking "{url}"')
        try:
            url_info = get_url_info(url)
            track_queue = await get_track_queue(spotify_api, url_info)
        except Exception:
            error_count += 1
            logger.error(
                f'({url_progress}) Failed to check "{url}"',
                exc_info=not no_exceptions,
            )
            continue
        for index, track_id in enumerate(track_queue, start=1):
            queue_progress = color_text(
                f"Track {index}/{len(track_queue)} from URL {url_index}/{len(urls)}",
                colorama.Style.DIM,
            )
            logger.info(f'({queue_progress}) Looking up canvas for "{track_id}"')
            lookup = await spotify_api.get_track_canvas(track_id)
            if lookup.canvas_url is None:
                logger.warning(f"({queue_progress}) {lookup.message}")
            if print_json:
                click.echo(json.dumps(lookup.to_dict()))
            elif lookup.canvas_url is not None:
                click.echo(lookup.canvas_url)
            if wait_interval > 0 and index != len(track_queue):
                logger.debug(f"Waiting for {wait_interval} second(s) before continuing")
                await asyncio.sleep(wait_interval)
    return error_count


async def main_async(
    urls: list[str],
    sp_dc: str,
    secrets_url: str,
    token_refresh_interval: float,
    secrets_refresh_interval: float,
    skip_mode: SkipMode,
    wait_interval: float,
    print_json: bool,
    no_exceptions: bool,
) -> None:
    async with SpotifyApi(
        sp_dc=sp_dc,
        skip_mode=skip_mode,
        secrets_url=secrets_url,
        token_refresh_interval=token_refresh_interval,
        secrets_refresh_interval=secrets_refresh_interval,
    ) as spotify_api:
        if spotify_api.get_access_token() is None:
            logger.critical(
                "Failed to get an auth token. Try logging in and exporting your cookies again"
            )
            return
        error_count = await run(
            urls,
            spotify_api,
            wait_interval,
            print_json,
            no_exceptions,
        )
    logger.info(f"Done ({error_count} error(s))")


@click.command()
@click.help_option("-h", "--help")
@click.version_option(__version__, "-v", "--version")
# CLI specific options
@click.argument(
    "urls",
    nargs=-1,
    type=str,
    required=True,
)
@click.option(
    "--wait-interval",
    "-w",
    type=float,
    default=1,
    help="Wait interval between canvas lookups in seconds.",
)
@click.option(
    "--read-urls-as-txt",
    "-r",
    is_flag=True,
    default=False,
    help="Interpret URLs as paths to text files containing URLs.",
)
@click.option(
    "--config-path",
    type=Path,
    default=Path.home() / ".spotcanvas" / "config.json",
    help="Path to config file.",
)
@click.option(
    "--log-level",
    type=str,
    default="INFO",
    help="Log level.",
)
@click.option(
    "--no-exceptions",
    is_flag=True,
    default=False,
    help="Don't print exceptions.",
)
@click.option(
    "--json",
    "print_json",
    is_flag=True,
    default=False,
    help="Print lookups as JSON lines.",
)
@click.option(
    "--cookies-path",
    type=Path,
    default=Path("./cookies.txt"),
    help="Path to cookies file.",
)
@click.option(
    "--sp-dc",
    type=str,
    envvar="SP_DC",
    default=None,
    help="sp_dc cookie value. Takes precedence over the cookies file.",
)
# Auth specific options
@click.option(
    "--secrets-url",
    type=str,
    default=auth_manager_sig.parameters["secrets_url"].default,
    help="URL of the TOTP secrets table.",
)
@click.option(
    "--token-refresh-interval",
    type=float,
    default=auth_manager_sig.parameters["token_refresh_interval"].default,
    help="Auth token refresh interval in seconds.",
)
@click.option(
    "--secrets-refresh-interval",
    type=float,
    default=auth_manager_sig.parameters["secrets_refresh_interval"].default,
    help="TOTP secrets refresh interval in seconds.",
)
@click.option(
    "--skip-mode",
    type=SkipMode,
    default=spotify_api_sig.parameters["skip_mode"].default,
    help="How unknown fields in canvas responses are skipped.",
)
# This option should always be last
@click.option(
    "--no-config-file",
    "-n",
    is_flag=True,
    default=False,
    callback=load_config_file,
    help="Do not use a config file.",
)
def main(
    urls: list[str],
    wait_interval: float,
    read_urls_as_txt: bool,
    config_path: Path,
    log_level: str,
    no_exceptions: bool,
    print_json: bool,
    cookies_path: Path,
    sp_dc: str,
    secrets_url: str,
    token_refresh_interval: float,
    secrets_refresh_interval: float,
    skip_mode: SkipMode,
    no_config_file: bool,
) -> None:
    colorama.just_fix_windows_console()
    logger.setLevel(log_level)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(CustomFormatter())
    logger.addHandler(stream_handler)
    if sp_dc is None:
        if not cookies_path.exists():
            logger.critical(X_NOT_FOUND_STRING.format("Cookies file", cookies_path))
            return
        sp_dc = SpotifyApi._parse_cookies(str(cookies_path)).get("sp_dc")
        if sp_dc is None:
            logger.critical(f'"sp_dc" cookie not found in {cookies_path}')
            return
    if read_urls_as_txt:
        _urls = []
        for url in urls:
            if Path(url).exists():
                _urls.extend(Path(url).read_text(encoding="utf-8").splitlines())
        urls = _urls
    logger.info("Starting spotcanvas")
    asyncio.run(
        main_async(
            urls=urls,
            sp_dc=sp_dc,
            secrets_url=secrets_url,
            token_refresh_interval=token_refresh_interval,
            secrets_refresh_interval=secrets_refresh_interval,
            skip_mode=skip_mode,
            wait_interval=wait_interval,
            print_json=print_json,
            no_exceptions=no_exceptions,
        )
    )
