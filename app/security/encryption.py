"""AES-256-CBC encryption of stored credentials.

Stored values have the form ``<iv hex>:<ciphertext hex>``. The key is derived
from the configured secret with scrypt (N=16384, r=8, p=1) and the fixed salt
the credentials were written with.
"""

import logging
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from app.reporting.exceptions import DecryptionError

logger = logging.getLogger(__name__)

KEY_SALT = b"salt"
KEY_LENGTH = 32
IV_LENGTH = 16


def derive_key(secret: str) -> bytes:
    kdf = Scrypt(salt=KEY_SALT, length=KEY_LENGTH, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


class EncryptionService:
    """Encrypts and decrypts credential values with a key derived once at construction."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("An encryption secret is required")
        self._key = derive_key(secret)

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, value: str) -> str:
        """Decrypt one stored value. Raises ``DecryptionError`` for anything malformed."""
        if not isinstance(value, str) or ":" not in value:
            raise DecryptionError("Value is not in iv:ciphertext form")

        iv_hex, _, cipher_hex = value.partition(":")
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(cipher_hex)
        except ValueError as e:
            raise DecryptionError("Value is not valid hex") from e
        if len(iv) != IV_LENGTH or not ciphertext or len(ciphertext) % IV_LENGTH:
            raise DecryptionError("Value has an invalid iv or ciphertext length")

        try:
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise DecryptionError("Value could not be decrypted") from e
