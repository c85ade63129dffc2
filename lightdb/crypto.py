"""
Per-value encryption for the document tree.

AES-256 in counter mode with a fresh 16-byte IV per value. Tokens are
``hex(iv) + ":" + hex(ciphertext)``.
"""

from __future__ import annotations

import os
import re

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import DecryptionError, InvalidValueError, MissingEncryptionKeyError

KEY_SIZE: int = 32
IV_SIZE: int = 16

_TOKEN = re.compile(r"\A([0-9a-fA-F]{32}):((?:[0-9a-fA-F]{2})*)\Z")


def is_encrypted_token(value: object) -> bool:
    return isinstance(value, str) and _TOKEN.match(value) is not None


class CryptoBox:
    """Stateless apart from the key."""

    def __init__(self, key: str | bytes):
        raw = key.encode("utf-8") if isinstance(key, str) else bytes(key)
        if len(raw) != KEY_SIZE:
            raise InvalidValueError(f"The encryption key must be {KEY_SIZE} bytes long")
        self._key = raw

    @classmethod
    def from_optional_key(cls, key: str | None) -> "CryptoBox | None":
        return None if key is None else cls(key)

    def encrypt(self, plaintext: str) -> str:
        if not isinstance(plaintext, str):
            raise InvalidValueError("The provided value must be a string to be encrypted")
        iv = os.urandom(IV_SIZE)
        encryptor = Cipher(algorithms.AES(self._key), modes.CTR(iv)).encryptor()
        try:
            data = plaintext.encode("utf-8")
        except UnicodeEncodeError:
            raise InvalidValueError("The provided value must be valid UTF-8 to be encrypted") from None
        ct = encryptor.update(data) + encryptor.finalize()
        return f"{iv.hex()}:{ct.hex()}"

    def decrypt(self, token: str) -> str:
        match = _TOKEN.match(token) if isinstance(token, str) else None
        if match is None:
            raise DecryptionError()
        try:
            iv = bytes.fromhex(match.group(1))
            decryptor = Cipher(algorithms.AES(self._key), modes.CTR(iv)).decryptor()
            plain = decryptor.update(bytes.fromhex(match.group(2))) + decryptor.finalize()
            return plain.decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            raise DecryptionError() from None


def require_box(box: CryptoBox | None) -> CryptoBox:
    if box is None:
        raise MissingEncryptionKeyError()
    return box
