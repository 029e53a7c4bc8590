"""
Access Gate

The single decision point in front of every protected action. It extracts
the credential from the request headers, asks the verifier, and returns
ADMIT or DENY. It never runs the action itself and never explains a denial
beyond HEADER_MISSING / VALIDATION_FAILED.

Usage:
    gate = AccessGate(CredentialVerifier(secret))

    decision = gate.authorize(request.headers)
    if decision.admitted():
        release_keys()

    # Or wrap the action
    @gate.protect
    def send(headers, to, subject, body):
        ...
"""

import functools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from .verifier import CredentialVerifier, VerificationResult

DEFAULT_HEADER = "x-secure-date"


class GateResult(str, Enum):
    ADMIT = "ADMIT"
    DENY = "DENY"


class DenyReason(str, Enum):
    HEADER_MISSING = "header missing"
    VALIDATION_FAILED = "validation failed"


@dataclass
class GateDecision:
    """Decision from the access gate."""
    result: GateResult
    reason: Optional[DenyReason] = None
    verification: Optional[VerificationResult] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def admitted(self) -> bool:
        return self.result == GateResult.ADMIT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.value,
            "reason": self.reason.value if self.reason else None,
            "verification": self.verification.to_dict() if self.verification else None,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }


class AccessDenied(Exception):
    """Raised by ``AccessGate.protect`` when the gate denies a call."""

    def __init__(self, decision: GateDecision):
        self.decision = decision
        super().__init__(f"Access denied: {decision.reason.value if decision.reason else 'unknown'}")


def get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup for plain dicts and framework header maps."""
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                return candidate
    return value


class AccessGate:
    """
    Request-level admit/deny decision.

    Every protected action must go through the same gate instance so the
    proof requirement is uniform.
    """

    def __init__(self, verifier: CredentialVerifier, header_name: str = DEFAULT_HEADER):
        self.verifier = verifier
        self.header_name = header_name

    def authorize(self, headers: Mapping[str, str], now: Optional[datetime] = None) -> GateDecision:
        return self.authorize_credential(get_header(headers, self.header_name), now)

    def authorize_credential(self, credential: Optional[str], now: Optional[datetime] = None) -> GateDecision:
        if not credential:
            return GateDecision(result=GateResult.DENY, reason=DenyReason.HEADER_MISSING)

        verification = self.verifier.check(credential, now)
        if not verification.is_valid():
            return GateDecision(
                result=GateResult.DENY,
                reason=DenyReason.VALIDATION_FAILED,
                verification=verification
            )
        return GateDecision(result=GateResult.ADMIT, verification=verification)

    def protect(self, func: Callable):
        """Decorator: the wrapped callable takes the request headers first."""
        @functools.wraps(func)
        def wrapper(headers: Mapping[str, str], *args, **kwargs):
            decision = self.authorize(headers)
            if not decision.admitted():
                raise AccessDenied(decision)
            return func(headers, *args, **kwargs)
        return wrapper
