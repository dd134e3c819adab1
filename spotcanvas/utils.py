from __future__ import annotations

import colorama
import httpx


class SpotCanvasException(Exception):
    pass


def safe_json(response: httpx.Response) -> dict | list | None:
    try:
        return response.json()
    except ValueError:
        return None


def color_text(text: str, color) -> str:
    return color + text + colorama.Style.RESET_ALL
