from __future__ import annotations

import os

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..exceptions import DecryptionError

IV_SIZE = 16  # AES block size
KEY_SIZE = 32  # AES-256
TAG_SIZE = 32  # HMAC-SHA256
BLOCK_BITS = algorithms.AES.block_size

_HKDF_INFO = b"secure-docs/aes-256-cbc+hmac-sha256/v1"


def _derive_keys(secret: str | bytes) -> tuple[bytes, bytes]:
    material = secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)
    if not material:
        raise ValueError("encryption key must not be empty")
    okm = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE * 2,
        salt=None,
        info=_HKDF_INFO,
    ).derive(material)
    return okm[:KEY_SIZE], okm[KEY_SIZE:]


class EncryptionEngine:
    """AES-256-CBC with PKCS7 padding, authenticated with HMAC-SHA256.

    The ciphertext returned by :meth:`encrypt` is ``AES-CBC(pad(plaintext)) || tag``
    where ``tag = HMAC(mac_key, iv || ciphertext)``. The IV is returned
    separately so callers can store it in metadata.

    One configured secret is shared by all documents; the cipher and MAC keys
    are derived from it with HKDF so the two never coincide.
    """

    def __init__(self, secret: str | bytes):
        self._enc_key, self._mac_key = _derive_keys(secret)

    def _tag(self, iv: bytes, ciphertext: bytes) -> hmac.HMAC:
        h = hmac.HMAC(self._mac_key, hashes.SHA256())
        h.update(iv)
        h.update(ciphertext)
        return h

    def encrypt(self, plaintext: bytes) -> tuple[bytes, bytes]:
        iv = os.urandom(IV_SIZE)
        padder = padding.PKCS7(BLOCK_BITS).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._enc_key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return ciphertext + self._tag(iv, ciphertext).finalize(), iv

    def decrypt(self, payload: bytes, iv: bytes) -> bytes:
        if len(iv) != IV_SIZE:
            raise DecryptionError(f"Invalid IV length: {len(iv)}")
        body_len = len(payload) - TAG_SIZE
        if body_len < IV_SIZE or body_len % IV_SIZE:
            raise DecryptionError("Encrypted payload is truncated or malformed")

        ciphertext, tag = payload[:body_len], payload[body_len:]
        try:
            self._tag(iv, ciphertext).verify(tag)
        except InvalidSignature:
            raise DecryptionError("Authentication failed: wrong key, IV or corrupted payload") from None

        decryptor = Cipher(algorithms.AES(self._enc_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError:
            raise DecryptionError("Invalid padding in decrypted payload") from None


__all__ = ["EncryptionEngine", "IV_SIZE", "TAG_SIZE"]
