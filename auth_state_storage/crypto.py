"""
Envelope encryption for records at rest.

Each record is encrypted under a key derived from the store secret and a
fresh random salt:

    envelope = base64(salt[16] || iv[16] || ciphertext)

- scrypt (N=2**14, r=8, p=1) derives a 32-byte key from (secret, salt)
- AES-256-CTR encrypts the serialized record under that key and IV
- salt and IV are drawn fresh for every encryption; reusing them under a
  stream cipher exposes the plaintext

CTR mode carries no integrity check, so tampering with a file goes unnoticed
until the plaintext fails to parse. Stores opened with
``authenticated=True`` use AES-256-GCM instead: same envelope layout with a
16-byte tag appended to the ciphertext, and any modification or wrong
secret raises ``DecryptionError``.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .exceptions import DecryptionError

SALT_LENGTH = 16
IV_LENGTH = 16
KEY_LENGTH = 32

SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1


def derive_key(secret: str, salt: bytes) -> bytes:
    """Derive a 256-bit key from the store secret with scrypt."""
    kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(secret.encode("utf-8"))


class EnvelopeCipher:
    """Encrypts and decrypts serialized records with a password."""

    def __init__(self, secret: str, authenticated: bool = False):
        """
        Args:
            secret: Store encryption secret (must be non-empty)
            authenticated: Use AES-GCM instead of AES-CTR
        """
        if not secret:
            raise ValueError("Encryption secret must not be empty")
        self._secret = secret
        self.authenticated = authenticated

    def encrypt(self, plaintext: str) -> str:
        """Encrypt text and return the base64 envelope."""
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        key = derive_key(self._secret, salt)
        data = plaintext.encode("utf-8")

        if self.authenticated:
            ciphertext = AESGCM(key).encrypt(iv, data, None)
        else:
            encryptor = Cipher(algorithms.AES(key), modes.CTR(iv)).encryptor()
            ciphertext = encryptor.update(data) + encryptor.finalize()

        return base64.b64encode(salt + iv + ciphertext).decode("ascii")

    def decrypt(self, envelope: str | bytes) -> str:
        """Open a base64 envelope and return the plaintext.

        Raises:
            DecryptionError: Malformed envelope, failed integrity check,
                or plaintext that is not UTF-8 (the usual symptom of a
                wrong secret in CTR mode)
        """
        try:
            raw = base64.b64decode(envelope, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("envelope is not valid base64", e) from e

        if len(raw) < SALT_LENGTH + IV_LENGTH:
            raise DecryptionError(f"envelope too short ({len(raw)} bytes)")

        salt = raw[:SALT_LENGTH]
        iv = raw[SALT_LENGTH : SALT_LENGTH + IV_LENGTH]
        ciphertext = raw[SALT_LENGTH + IV_LENGTH :]
        key = derive_key(self._secret, salt)

        if self.authenticated:
            try:
                data = AESGCM(key).decrypt(iv, ciphertext, None)
            except InvalidTag as e:
                raise DecryptionError("integrity check failed", e) from e
        else:
            decryptor = Cipher(algorithms.AES(key), modes.CTR(iv)).decryptor()
            data = decryptor.update(ciphertext) + decryptor.finalize()

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("plaintext is not valid UTF-8", e) from e

    async def encrypt_async(self, plaintext: str) -> str:
        """Encrypt in a worker thread; scrypt is CPU-bound."""
        return await asyncio.to_thread(self.encrypt, plaintext)

    async def decrypt_async(self, envelope: str | bytes) -> str:
        """Decrypt off the event loop."""
        return await asyncio.to_thread(self.decrypt, envelope)
