"""
Default credential bundle.

A store that has never saved credentials materializes a fresh bundle from
``init_auth_creds``. The bundle is a plain dict so callers can mutate it in
place between ``save_creds`` calls; key pairs are raw 32-byte X25519 values.

The signed pre-key is generated here but left unsigned: signing it with the
identity key is part of registration, which the protocol layer performs.
"""

from __future__ import annotations

import base64
import secrets
from typing import Any

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)


def generate_key_pair() -> dict[str, bytes]:
    """Generate an X25519 key pair as raw bytes."""
    private_key = X25519PrivateKey.generate()
    return {
        "public": private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw),
        "private": private_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption()),
    }


def generate_registration_id() -> int:
    """Random 14-bit registration id."""
    return secrets.randbits(16) & 16383


def init_auth_creds() -> dict[str, Any]:
    """Create a fresh, unregistered credential bundle.

    ``signedPreKey["signature"]`` is None: sign the pre-key public key with
    ``signedIdentityKey`` before using the bundle for registration.
    """
    return {
        "noiseKey": generate_key_pair(),
        "pairingEphemeralKeyPair": generate_key_pair(),
        "signedIdentityKey": generate_key_pair(),
        "signedPreKey": {
            "keyPair": generate_key_pair(),
            "keyId": 1,
            "signature": None,
        },
        "registrationId": generate_registration_id(),
        "advSecretKey": base64.b64encode(secrets.token_bytes(32)).decode("ascii"),
        "processedHistoryMessages": [],
        "nextPreKeyId": 1,
        "firstUnuploadedPreKeyId": 1,
        "accountSyncCounter": 0,
        "accountSettings": {"unarchiveChats": False},
        "registered": False,
        "pairingCode": None,
        "lastPropHash": None,
        "routingInfo": None,
    }
