from .api import SpotifyApi
from .auth import AuthManager, SingleFlight
from .canvas import CanvasCodec, decode_varint, encode_varint
from .exceptions import (
    AuthUnavailable,
    EmptySecretTable,
    MalformedResponse,
    NetworkError,
    NotInitialized,
    SpotCanvasApiException,
    SpotCanvasRequestException,
)
from .secret_store import SecretStore
from .time_sync import TimeSync
from .totp import Totp, TotpEngine
