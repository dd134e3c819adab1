from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Collection

from ..models import AuthState
from .constants import TOTP_DIGITS, TOTP_PERIOD
from .exceptions import MalformedResponse, NotInitialized

logger = logging.getLogger(__name__)


def deobfuscate(ciphertext: Collection[int]) -> list[int]:
    return [byte ^ ((i % 33) + 9) for i, byte in enumerate(ciphertext)]


def to_hex_secret(values: Collection[int]) -> str:
    return "".join(str(value) for value in values).encode("utf-8").hex()


def secret_from_hex(hex_secret: str) -> bytes:
    return bytes.fromhex(hex_secret)


@dataclass(frozen=True)
class Totp:
    version: str
    secret: bytes

    @classmethod
    def from_ciphertext(cls, version: str, ciphertext: Collection[int]) -> Totp:
        if not isinstance(ciphertext, (list, tuple)) or not all(
            isinstance(byte, int) and 0 <= byte <= 255 for byte in ciphertext
        ):
            raise MalformedResponse(f"Invalid TOTP secret for version {version}")
        return cls(version=str(version), secret=cls.derive(ciphertext))

    @staticmethod
    def derive(ciphertext: Collection[int]) -> bytes:
        """Turn an obfuscated secret into HMAC key bytes.

        Each value is XORed with ``(index % 33) + 9``, the results are joined
        as decimal strings, and the UTF-8 bytes of that string are hex encoded.
        The hex string is then read back as the raw secret.
        """
        return secret_from_hex(to_hex_secret(deobfuscate(ciphertext)))

    def generate(self, timestamp: int) -> str:
        counter = int(timestamp) // 1000 // TOTP_PERIOD
        counter_bytes = counter.to_bytes(8, "big")

        h = hmac.new(self.secret, counter_bytes, hashlib.sha1)
        hmac_result = h.digest()

        offset = hmac_result[-1] & 0x0F
        binary = (
            (hmac_result[offset] & 0x7F) << 24
            | (hmac_result[offset + 1] & 0xFF) << 16
            | (hmac_result[offset + 2] & 0xFF) << 8
            | (hmac_result[offset + 3] & 0xFF)
        )
        result = str(binary % (10**TOTP_DIGITS)).zfill(TOTP_DIGITS)

        logger.debug(f"Generated TOTP code: {result}")

        return result


class TotpEngine:
    def __init__(self, state: AuthState | None = None) -> None:
        self.state = state if state is not None else AuthState()

    @property
    def totp(self) -> Totp | None:
        return self.state.totp

    @property
    def version(self) -> str | None:
        return self.state.totp.version if self.state.totp else None

    def current(self) -> Totp:
        totp = self.state.totp
        if totp is None:
            raise NotInitialized()
        return totp

    def adopt(self, totp: Totp) -> None:
        # Version and secret are swapped together as one value
        self.state.totp = totp
        logger.debug(f"Adopted TOTP generator version {totp.version}")

    def generate(self, timestamp: int) -> str:
        return self.current().generate(timestamp)
