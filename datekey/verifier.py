"""
Credential verifier (server side).

Decides whether a presented credential proves possession of the shared
secret for a date close enough to the verifier's own date.

Two strategies are implemented and they are NOT interchangeable:

Phrase (date-as-key), the default:
    1. Split ``iv:ciphertext`` at the first separator; fail closed on bad shape
    2. For each candidate date (today, yesterday, tomorrow, ...) derive the
       key and try to decrypt; a cipher error only rules out that candidate
    3. Accept on the first candidate whose plaintext equals the phrase

Passphrase (secret-as-key):
    1. Decrypt once with the shared secret
    2. Parse the plaintext as ``YYYYMMDD``
    3. Accept if it is within ``allowed_skew_days`` calendar days of today

The internal outcome distinguishes malformed input from decryption failure
from a mismatch. Callers exposed to the network must only surface
``is_valid()``.
"""

import hmac
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum
from typing import List, Optional, Tuple

from .ciphers import (
    IV_SIZE,
    OPENSSL_MAGIC,
    SALT_SIZE,
    aes_cbc_decrypt,
    b64decode_strict,
    openssl_decrypt,
)
from .dates import candidate_offsets, date_token, day_distance, local_date, parse_date_token
from .encoder import CREDENTIAL_SEPARATOR, VERIFICATION_PHRASE, Scheme, derive_date_key
from .errors import (
    CredentialError,
    DateMismatch,
    DecryptionFailure,
    MalformedCredential,
    MissingCredential,
    PhraseMismatch,
)


class VerificationOutcome(str, Enum):
    """Internal verification outcome. Only VALID admits."""
    VALID = "VALID"
    MISSING = "MISSING"
    MALFORMED = "MALFORMED"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"
    MISMATCH = "MISMATCH"


_OUTCOME_FOR_ERROR = {
    MissingCredential: VerificationOutcome.MISSING,
    MalformedCredential: VerificationOutcome.MALFORMED,
    DecryptionFailure: VerificationOutcome.DECRYPTION_FAILED,
    PhraseMismatch: VerificationOutcome.MISMATCH,
    DateMismatch: VerificationOutcome.MISMATCH,
}


@dataclass
class VerificationResult:
    """Result of checking one credential."""
    outcome: VerificationOutcome
    reason: Optional[str] = None
    matched_date: Optional[date] = None
    offset_days: Optional[int] = None

    def is_valid(self) -> bool:
        return self.outcome == VerificationOutcome.VALID

    def __bool__(self) -> bool:
        return self.is_valid()

    @classmethod
    def valid(cls, matched_date: date, offset_days: int) -> 'VerificationResult':
        return cls(VerificationOutcome.VALID, matched_date=matched_date, offset_days=offset_days)

    @classmethod
    def from_error(cls, error: CredentialError) -> 'VerificationResult':
        outcome = _OUTCOME_FOR_ERROR.get(type(error), VerificationOutcome.MALFORMED)
        return cls(outcome, reason=str(error) or type(error).__name__)

    def to_dict(self):
        return {
            "outcome": self.outcome.value,
            "reason": self.reason,
            "matched_date": date_token(self.matched_date) if self.matched_date else None,
            "offset_days": self.offset_days,
        }


def split_composite(credential: str) -> Tuple[bytes, bytes]:
    """
    Split ``b64(iv):b64(ciphertext)`` at the first separator.

    Raises:
        MalformedCredential: If the separator is missing or either part is
            not valid base64 of the right size
    """
    iv_part, sep, ct_part = credential.partition(CREDENTIAL_SEPARATOR)
    if not sep or not iv_part or not ct_part:
        raise MalformedCredential("missing separator")
    try:
        iv = b64decode_strict(iv_part)
        ciphertext = b64decode_strict(ct_part)
    except ValueError as e:
        raise MalformedCredential("invalid base64") from e
    if len(iv) != IV_SIZE:
        raise MalformedCredential("bad iv length")
    return iv, ciphertext


def decrypt_for_date(iv: bytes, ciphertext: bytes, token: str, expected: bytes) -> None:
    """
    Try one candidate date.

    Raises:
        DecryptionFailure: If the key derived from ``token`` cannot decrypt
        PhraseMismatch: If it decrypts to something other than ``expected``
    """
    try:
        plaintext = aes_cbc_decrypt(derive_date_key(token), iv, ciphertext)
    except ValueError as e:
        raise DecryptionFailure(f"candidate {token}") from e
    if not hmac.compare_digest(plaintext, expected):
        raise PhraseMismatch(f"candidate {token}")


def check_phrase_credential(
    credential: Optional[str],
    phrase: str = VERIFICATION_PHRASE,
    now: Optional[datetime] = None,
    allowed_skew_days: int = 1,
    tz: Optional[tzinfo] = None
) -> VerificationResult:
    """Verify a date-as-key credential against a window of candidate dates."""
    if not credential:
        return VerificationResult.from_error(MissingCredential("no credential"))
    try:
        iv, ciphertext = split_composite(credential)
    except MalformedCredential as e:
        return VerificationResult.from_error(e)

    today = local_date(now, tz)
    expected = phrase.encode("utf-8")
    failures: List[CredentialError] = []
    for offset in candidate_offsets(allowed_skew_days):
        candidate = today + timedelta(days=offset)
        try:
            decrypt_for_date(iv, ciphertext, date_token(candidate), expected)
        except (DecryptionFailure, PhraseMismatch) as e:
            failures.append(e)
            continue
        return VerificationResult.valid(candidate, offset)

    # Any candidate that decrypted cleanly makes this a mismatch rather than
    # a pure cipher failure.
    for failure in failures:
        if isinstance(failure, PhraseMismatch):
            return VerificationResult.from_error(PhraseMismatch("no candidate matched"))
    return VerificationResult.from_error(DecryptionFailure("no candidate decrypted"))


def check_passphrase_credential(
    credential: Optional[str],
    secret: str,
    now: Optional[datetime] = None,
    allowed_skew_days: int = 1,
    tz: Optional[tzinfo] = None
) -> VerificationResult:
    """Verify a secret-as-key credential by date distance."""
    if allowed_skew_days < 0:
        raise ValueError("allowed_skew_days must not be negative")
    if not credential:
        return VerificationResult.from_error(MissingCredential("no credential"))
    try:
        raw = b64decode_strict(credential)
    except ValueError:
        return VerificationResult.from_error(MalformedCredential("invalid base64"))
    if not raw.startswith(OPENSSL_MAGIC) or len(raw) <= len(OPENSSL_MAGIC) + SALT_SIZE:
        return VerificationResult.from_error(MalformedCredential("not a salted payload"))
    try:
        plaintext = openssl_decrypt(secret, credential)
    except ValueError:
        return VerificationResult.from_error(DecryptionFailure("cipher rejected credential"))
    try:
        claimed = parse_date_token(plaintext.decode("utf-8"))
    except UnicodeDecodeError:
        return VerificationResult.from_error(DecryptionFailure("plaintext is not text"))
    except ValueError:
        return VerificationResult.from_error(DateMismatch("plaintext is not a date"))

    today = local_date(now, tz)
    if day_distance(claimed, today) > allowed_skew_days:
        return VerificationResult.from_error(DateMismatch(f"{date_token(claimed)} outside window"))
    return VerificationResult.valid(claimed, (claimed - today).days)


class CredentialVerifier:
    """
    Verifier bound to one secret and one scheme.

    Holds no mutable state; safe to share between concurrent requests.

    Usage:
        verifier = CredentialVerifier("BNB_SECURE_ACCESS")
        if verifier.verify(header_value):
            ...
    """

    def __init__(
        self,
        secret: str,
        scheme: Scheme = Scheme.PHRASE,
        allowed_skew_days: int = 1,
        tz: Optional[tzinfo] = None
    ):
        if not secret:
            raise ValueError("secret must not be empty")
        if allowed_skew_days < 0:
            raise ValueError("allowed_skew_days must not be negative")
        self.scheme = Scheme(scheme)
        self.allowed_skew_days = allowed_skew_days
        self.tz = tz
        self._secret = secret

    def __repr__(self) -> str:
        return f"CredentialVerifier(scheme={self.scheme.value!r}, allowed_skew_days={self.allowed_skew_days})"

    def check(self, credential: Optional[str], now: Optional[datetime] = None) -> VerificationResult:
        if self.scheme is Scheme.PASSPHRASE:
            return check_passphrase_credential(
                credential, self._secret, now, self.allowed_skew_days, self.tz
            )
        return check_phrase_credential(
            credential, self._secret, now, self.allowed_skew_days, self.tz
        )

    def verify(self, credential: Optional[str], now: Optional[datetime] = None) -> bool:
        return self.check(credential, now).is_valid()


def verify(
    secret: str,
    credential: Optional[str],
    now: Optional[datetime] = None,
    allowed_skew_days: int = 1,
    scheme: Scheme = Scheme.PHRASE,
    tz: Optional[tzinfo] = None
) -> bool:
    """
    Convenience wrapper returning only admit/deny.

    Never raises for bad credentials; every failure is ``False``.
    """
    return CredentialVerifier(secret, scheme, allowed_skew_days, tz).verify(credential, now)
