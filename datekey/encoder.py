"""
Credential encoder (caller side).

Turns the current calendar date into a proof value for the
``x-secure-date`` header. Two wire shapes exist:

``Scheme.PHRASE``
    The date token is the key (space-padded to 32 bytes), the fixed
    verification phrase is the plaintext. Wire form ``b64(iv):b64(ct)``.

``Scheme.PASSPHRASE``
    The shared secret is an OpenSSL passphrase, the date token is the
    plaintext. Wire form ``b64("Salted__" + salt + ct)``.
"""

import secrets
from datetime import datetime, tzinfo
from enum import Enum
from typing import Optional

from .ciphers import IV_SIZE, aes_cbc_encrypt, b64encode, openssl_encrypt, pad_key
from .dates import date_token, local_date

VERIFICATION_PHRASE = "BNB_SECURE_ACCESS"
CREDENTIAL_SEPARATOR = ":"


class Scheme(str, Enum):
    """Credential scheme; exactly one is authoritative per deployment."""
    PHRASE = "phrase"
    PASSPHRASE = "passphrase"


def derive_date_key(token: str) -> bytes:
    return pad_key(token)


def encode_phrase_credential(
    phrase: str = VERIFICATION_PHRASE,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
    iv: Optional[bytes] = None
) -> str:
    """
    Encrypt ``phrase`` under a key derived from today's date token.

    Args:
        phrase: Plaintext both sides agree on
        now: Instant to encode (default: current time)
        tz: Zone in which to read the calendar date
        iv: Fixed IV (tests only); a fresh random IV is used otherwise

    Returns:
        ``base64(iv) + ":" + base64(ciphertext)``
    """
    iv = iv if iv is not None else secrets.token_bytes(IV_SIZE)
    if len(iv) != IV_SIZE:
        raise ValueError(f"iv must be {IV_SIZE} bytes")
    key = derive_date_key(date_token(local_date(now, tz)))
    ciphertext = aes_cbc_encrypt(key, iv, phrase.encode("utf-8"))
    return b64encode(iv) + CREDENTIAL_SEPARATOR + b64encode(ciphertext)


def encode_passphrase_credential(
    secret: str,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
    salt: Optional[bytes] = None
) -> str:
    """Encrypt today's date token with ``secret`` as an OpenSSL passphrase."""
    if not secret:
        raise ValueError("secret must not be empty")
    return openssl_encrypt(secret, date_token(local_date(now, tz)), salt=salt)


def encode(
    secret: str,
    now: Optional[datetime] = None,
    scheme: Scheme = Scheme.PHRASE,
    tz: Optional[tzinfo] = None
) -> str:
    """
    Produce a credential for ``now``.

    For ``Scheme.PHRASE`` the ``secret`` is the verification phrase.
    """
    if Scheme(scheme) is Scheme.PASSPHRASE:
        return encode_passphrase_credential(secret, now, tz)
    return encode_phrase_credential(secret, now, tz)
