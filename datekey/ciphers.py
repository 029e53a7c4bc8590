"""
AES-256-CBC primitives used by both credential shapes.

Two key sources are supported, both byte-compatible with CryptoJS:

- A date string padded with spaces (or truncated) to 32 characters and used
  directly as the key, with an explicit random IV.
- A passphrase run through OpenSSL's ``EVP_BytesToKey`` (MD5, one round)
  with a random 8-byte salt, serialized as ``"Salted__" + salt + ciphertext``.
"""

import base64
import binascii
import hashlib
import secrets
from typing import Optional, Tuple, Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

KEY_SIZE = 32
IV_SIZE = 16
SALT_SIZE = 8
BLOCK_BITS = 128
OPENSSL_MAGIC = b"Salted__"


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return value


def pad_key(text: str, size: int = KEY_SIZE) -> bytes:
    """Right-pad ``text`` with spaces to ``size`` characters, truncating if longer."""
    return text.ljust(size, " ")[:size].encode("utf-8")


def aes_cbc_encrypt(key: bytes, iv: bytes, plaintext: bytes) -> bytes:
    padder = padding.PKCS7(BLOCK_BITS).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def aes_cbc_decrypt(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    """
    Decrypt and strip PKCS#7 padding.

    Raises:
        ValueError: On a bad key/IV size, a partial block, or invalid padding
    """
    if not ciphertext:
        raise ValueError("empty ciphertext")
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


def evp_bytes_to_key(
    passphrase: bytes,
    salt: bytes,
    key_len: int = KEY_SIZE,
    iv_len: int = IV_SIZE
) -> Tuple[bytes, bytes]:
    """OpenSSL EVP_BytesToKey with MD5 and a single iteration."""
    derived = b""
    block = b""
    while len(derived) < key_len + iv_len:
        block = hashlib.md5(block + passphrase + salt).digest()
        derived += block
    return derived[:key_len], derived[key_len:key_len + iv_len]


def b64decode_strict(value: str) -> bytes:
    """
    Decode standard base64, rejecting characters outside the alphabet.

    Raises:
        ValueError: If the input is not valid base64
    """
    try:
        return base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError("invalid base64") from e


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def openssl_encrypt(
    passphrase: Union[str, bytes],
    plaintext: Union[str, bytes],
    salt: Optional[bytes] = None
) -> str:
    """Encrypt like ``CryptoJS.AES.encrypt(plaintext, passphrase).toString()``."""
    salt = salt if salt is not None else secrets.token_bytes(SALT_SIZE)
    if len(salt) != SALT_SIZE:
        raise ValueError(f"salt must be {SALT_SIZE} bytes")
    key, iv = evp_bytes_to_key(_to_bytes(passphrase), salt)
    ciphertext = aes_cbc_encrypt(key, iv, _to_bytes(plaintext))
    return b64encode(OPENSSL_MAGIC + salt + ciphertext)


def openssl_decrypt(passphrase: Union[str, bytes], token: str) -> bytes:
    """
    Reverse of ``openssl_encrypt``.

    Raises:
        ValueError: If the token is not salted OpenSSL format or fails to decrypt
    """
    raw = b64decode_strict(token)
    header_len = len(OPENSSL_MAGIC) + SALT_SIZE
    if len(raw) <= header_len or not raw.startswith(OPENSSL_MAGIC):
        raise ValueError("not an OpenSSL salted payload")
    salt = raw[len(OPENSSL_MAGIC):header_len]
    key, iv = evp_bytes_to_key(_to_bytes(passphrase), salt)
    return aes_cbc_decrypt(key, iv, raw[header_len:])
