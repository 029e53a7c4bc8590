"""
datekey: time-windowed symmetric proof of possession

Version: 1.0.0

A caller proves it holds a shared secret (or knows the verification phrase)
by encrypting something with today's date. The verifier accepts proofs made
for today, yesterday, or tomorrow so that clients in other time zones are
not locked out, and nothing older or newer.

Usage:
    from datekey import (
        AccessGate,
        AvailabilitySwitch,
        CredentialVerifier,
        Scheme,
        encode,
        verify,
    )

    # Caller side
    header = encode("BNB_SECURE_ACCESS")

    # Server side
    gate = AccessGate(CredentialVerifier("BNB_SECURE_ACCESS"))
    decision = gate.authorize({"x-secure-date": header})

    if decision.admitted():
        ...  # release keys, send the message
"""

__version__ = "1.0.0"

# Dates
from .dates import (
    candidate_dates,
    candidate_offsets,
    date_token,
    day_distance,
    local_date,
    parse_date_token,
)

# Encoder
from .encoder import (
    CREDENTIAL_SEPARATOR,
    VERIFICATION_PHRASE,
    Scheme,
    encode,
    encode_passphrase_credential,
    encode_phrase_credential,
)

# Verifier
from .verifier import (
    CredentialVerifier,
    VerificationOutcome,
    VerificationResult,
    check_passphrase_credential,
    check_phrase_credential,
    verify,
)

# Gate
from .gate import (
    DEFAULT_HEADER,
    AccessDenied,
    AccessGate,
    DenyReason,
    GateDecision,
    GateResult,
)

# Availability
from .availability import AvailabilitySwitch

# Errors
from .errors import (
    ConfigurationError,
    CredentialError,
    DateMismatch,
    DatekeyError,
    DecryptionFailure,
    DownstreamActionFailure,
    MalformedCredential,
    MissingCredential,
    PhraseMismatch,
)


__all__ = [
    "__version__",

    # Dates
    "candidate_dates",
    "candidate_offsets",
    "date_token",
    "day_distance",
    "local_date",
    "parse_date_token",

    # Encoder
    "CREDENTIAL_SEPARATOR",
    "VERIFICATION_PHRASE",
    "Scheme",
    "encode",
    "encode_passphrase_credential",
    "encode_phrase_credential",

    # Verifier
    "CredentialVerifier",
    "VerificationOutcome",
    "VerificationResult",
    "check_passphrase_credential",
    "check_phrase_credential",
    "verify",

    # Gate
    "DEFAULT_HEADER",
    "AccessDenied",
    "AccessGate",
    "DenyReason",
    "GateDecision",
    "GateResult",

    # Availability
    "AvailabilitySwitch",

    # Errors
    "ConfigurationError",
    "CredentialError",
    "DateMismatch",
    "DatekeyError",
    "DecryptionFailure",
    "DownstreamActionFailure",
    "MalformedCredential",
    "MissingCredential",
    "PhraseMismatch",
]
