"""Authenticated encryption for stored credentials.

AES-256-GCM with a key derived from the server secret by SHA-256 and a
fresh 12-byte nonce per call. Ciphertexts are base64url encoded as
iv (12) | tag (16) | ciphertext, the layout shared with existing cookies.
"""

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ssoflow_runtime.exceptions import CryptoError

IV_LENGTH = 12
TAG_LENGTH = 16


def derive_key(secret: str) -> bytes:
    """256-bit key from the server secret."""
    return hashlib.sha256(secret.encode()).digest()


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def encrypt(plaintext: str, secret: str) -> str:
    """Encrypt a string; every call uses a new nonce."""
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(derive_key(secret)).encrypt(iv, plaintext.encode(), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return _b64encode(iv + tag + ciphertext)


def decrypt(token: str, secret: str) -> str:
    """Decrypt a value produced by encrypt.

    Raises:
        CryptoError: If the payload is malformed, was produced with another
            secret, or has been tampered with
    """
    try:
        payload = _b64decode(token)
    except (binascii.Error, ValueError) as e:
        raise CryptoError("Encrypted value is not valid base64url") from e
    if len(payload) < IV_LENGTH + TAG_LENGTH:
        raise CryptoError("Encrypted value is too short")

    iv = payload[:IV_LENGTH]
    tag = payload[IV_LENGTH : IV_LENGTH + TAG_LENGTH]
    ciphertext = payload[IV_LENGTH + TAG_LENGTH :]
    try:
        plaintext = AESGCM(derive_key(secret)).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise CryptoError("Encrypted value failed authentication") from e
    return plaintext.decode()


def generate_state() -> str:
    """Random OAuth state nonce: 16 bytes as hex."""
    return os.urandom(16).hex()
