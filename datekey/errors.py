"""
Error taxonomy for date-keyed credentials.

Every credential-related kind derives from CredentialError so callers can
collapse them into a single externally visible failure. The specific class
is kept for internal diagnostics only.
"""


class DatekeyError(Exception):
    """Base class for all datekey errors."""


class CredentialError(DatekeyError):
    """A presented credential could not be accepted."""


class MissingCredential(CredentialError):
    """No credential was presented."""


class MalformedCredential(CredentialError):
    """The credential does not have the expected wire shape."""


class DecryptionFailure(CredentialError):
    """The cipher rejected the credential (bad padding, bad block size)."""


class DateMismatch(CredentialError):
    """The credential decrypted to a date outside the accepted window."""


class PhraseMismatch(CredentialError):
    """The credential decrypted, but not to the verification phrase."""


class ConfigurationError(DatekeyError):
    """A required server-side setting is absent or invalid."""


class DownstreamActionFailure(DatekeyError):
    """A gated action (such as sending a message) failed after admission."""
