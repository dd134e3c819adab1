from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .api.totp import Totp


@dataclass
class AuthState:
    token: str = None
    totp: Totp = None


@dataclass
class UrlInfo:
    type: str = None
    id: str = None


@dataclass
class CanvasEntry:
    canvas_url: str = None

    def to_dict(self) -> dict:
        return {"canvasUrl": self.canvas_url}


@dataclass
class CanvasResponse:
    canvases: list[CanvasEntry] = field(default_factory=list)

    @property
    def canvas(self) -> CanvasEntry | None:
        return self.canvases[0] if self.canvases else None

    def to_dict(self) -> dict:
        return {"canvasesList": [canvas.to_dict() for canvas in self.canvases]}


@dataclass
class CanvasLookup:
    id: str = None
    canvas_url: str = None
    message: str = None

    def to_dict(self) -> dict:
        result = {"id": self.id, "canvasUrl": self.canvas_url}
        if self.message is not None:
            result["message"] = self.message
        return result
