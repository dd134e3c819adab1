from enum import Enum


class SkipMode(Enum):
    NAIVE = "naive"
    WIRE_TYPE = "wire-type"


class MediaType(Enum):
    TRACK = "track"
    ALBUM = "album"
    PLAYLIST = "playlist"
