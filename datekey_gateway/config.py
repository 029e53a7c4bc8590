"""
Configuration module for the datekey gateway.

Settings are read once at startup into a frozen ``GatewaySettings`` and
passed into the verifier, gate, and mailer. Nothing reads the environment
per request.
"""

import json
import os
import re
from dataclasses import asdict, dataclass, field
from datetime import tzinfo
from typing import Any, Dict, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from datekey import DEFAULT_HEADER, Scheme
from datekey.errors import ConfigurationError

from .secret_sources import get_secret_source
from .util import mask_sensitive

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("DATEKEY_ENV", "dev")  # dev|stage|prod

PORT = int(os.getenv("PORT", "3000"))

API_KEY_PATTERN = re.compile(r'^API_KEY_(\d+)$')

_TRUE = ("1", "true", "yes", "on")


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE


# ============================================================
# Settings
# ============================================================

@dataclass(frozen=True)
class MailSettings:
    """Outbound mail transport settings. ``transport`` empty means disabled."""
    transport: str = ""
    mail_from: str = ""
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_starttls: bool = True
    smtp_ssl: bool = False
    api_url: str = ""
    api_key: str = ""
    timeout: float = 10.0

    def enabled(self) -> bool:
        return bool(self.transport)


@dataclass(frozen=True)
class GatewaySettings:
    """Resolved gateway configuration."""
    scheme: Scheme = Scheme.PHRASE
    shared_secret: Optional[str] = None
    verification_phrase: Optional[str] = None
    allowed_skew_days: int = 1
    timezone: Optional[str] = None
    header_name: str = DEFAULT_HEADER
    disclosed_keys: Dict[str, str] = field(default_factory=dict)
    admin_open: bool = False
    strict: bool = False
    mail: MailSettings = field(default_factory=MailSettings)
    cors_origins: Tuple[str, ...] = ("*",)
    log_level: str = "INFO"
    log_json: bool = True
    log_file: Optional[str] = None
    secret_source: str = "env"

    def credential_secret(self) -> str:
        """
        The value the verifier is keyed with for the configured scheme.

        The phrase scheme uses DATEKEY_SHARED_SECRET as the phrase, or
        DATEKEY_VERIFICATION_PHRASE when only that is set.

        Raises:
            ConfigurationError: If no secret is configured, or the phrase
                scheme is given two different ones
        """
        if self.scheme is Scheme.PASSPHRASE:
            if not self.shared_secret:
                raise ConfigurationError("DATEKEY_SHARED_SECRET is required for the passphrase scheme")
            return self.shared_secret
        if self.shared_secret and self.verification_phrase and self.shared_secret != self.verification_phrase:
            raise ConfigurationError(
                "DATEKEY_SHARED_SECRET and DATEKEY_VERIFICATION_PHRASE disagree; set only one"
            )
        phrase = self.shared_secret or self.verification_phrase
        if not phrase:
            raise ConfigurationError(
                "DATEKEY_SHARED_SECRET (or DATEKEY_VERIFICATION_PHRASE) is required for the phrase scheme"
            )
        return phrase

    def tzinfo(self) -> Optional[tzinfo]:
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"Unknown DATEKEY_TIMEZONE: {self.timezone}") from e

    def summary(self) -> Dict[str, Any]:
        """Loggable view with secrets masked and key values dropped."""
        data = asdict(self)
        data["scheme"] = self.scheme.value
        data["shared_secret"] = mask_sensitive(self.shared_secret) if self.shared_secret else None
        data["verification_phrase"] = mask_sensitive(self.verification_phrase) if self.verification_phrase else None
        data["disclosed_keys"] = sorted(self.disclosed_keys)
        data["mail"]["smtp_password"] = "[REDACTED]" if self.mail.smtp_password else ""
        data["mail"]["api_key"] = "[REDACTED]" if self.mail.api_key else ""
        return data


def load_disclosed_keys(values: Mapping[str, str]) -> Dict[str, str]:
    """
    Collect the secret values released by ``/api/get-keys``.

    Every ``API_KEY_<n>`` becomes ``apiKey<n>``; ``DATEKEY_DISCLOSED_KEYS``
    may add arbitrary names as a JSON object.
    """
    numbered = []
    for name, value in values.items():
        m = API_KEY_PATTERN.match(name)
        if m and value:
            numbered.append((int(m.group(1)), value))
    keys = {f"apiKey{n}": value for n, value in sorted(numbered)}

    raw = values.get("DATEKEY_DISCLOSED_KEYS")
    if raw:
        try:
            extra = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError("DATEKEY_DISCLOSED_KEYS must be a JSON object") from e
        if not isinstance(extra, dict):
            raise ConfigurationError("DATEKEY_DISCLOSED_KEYS must be a JSON object")
        keys.update({str(k): str(v) for k, v in extra.items()})

    return keys


def load_cors_origins(values: Mapping[str, str]) -> Tuple[str, ...]:
    """Comma-separated DATEKEY_CORS_ORIGINS; unset allows any origin, empty disables CORS."""
    raw = values.get("DATEKEY_CORS_ORIGINS")
    if raw is None:
        return ("*",)
    return tuple(o.strip() for o in raw.split(",") if o.strip())


def load_mail_settings(values: Mapping[str, str]) -> MailSettings:
    transport = values.get("DATEKEY_MAIL_TRANSPORT", "").strip().lower()
    if transport not in ("", "smtp", "http", "memory"):
        raise ConfigurationError(f"Unknown DATEKEY_MAIL_TRANSPORT: {transport}")
    try:
        port = int(values.get("SMTP_PORT", "587"))
        timeout = float(values.get("MAIL_TIMEOUT", "10"))
    except ValueError as e:
        raise ConfigurationError("SMTP_PORT and MAIL_TIMEOUT must be numeric") from e
    return MailSettings(
        transport=transport,
        mail_from=values.get("MAIL_FROM", values.get("SMTP_USER", "")),
        smtp_host=values.get("SMTP_HOST", ""),
        smtp_port=port,
        smtp_user=values.get("SMTP_USER", ""),
        smtp_password=values.get("SMTP_PASSWORD", ""),
        smtp_starttls=_flag(values.get("SMTP_STARTTLS"), True),
        smtp_ssl=_flag(values.get("SMTP_SSL"), False),
        api_url=values.get("MAIL_API_URL", ""),
        api_key=values.get("MAIL_API_KEY", ""),
        timeout=timeout,
    )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> GatewaySettings:
    """
    Build settings from the environment (and the configured secret source).

    Raises:
        ConfigurationError: On values that cannot be parsed
    """
    environ = os.environ if environ is None else environ
    source = get_secret_source(environ)
    values: Dict[str, str] = dict(environ)
    values.update(source.load())

    try:
        scheme = Scheme(values.get("DATEKEY_SCHEME", Scheme.PHRASE.value).strip().lower())
    except ValueError as e:
        raise ConfigurationError(f"Unknown DATEKEY_SCHEME: {values.get('DATEKEY_SCHEME')}") from e

    try:
        skew = int(values.get("DATEKEY_ALLOWED_SKEW_DAYS", "1"))
    except ValueError as e:
        raise ConfigurationError("DATEKEY_ALLOWED_SKEW_DAYS must be an integer") from e
    if skew < 0:
        raise ConfigurationError("DATEKEY_ALLOWED_SKEW_DAYS must not be negative")

    env = values.get("DATEKEY_ENV", ENV)
    return GatewaySettings(
        scheme=scheme,
        shared_secret=values.get("DATEKEY_SHARED_SECRET") or None,
        verification_phrase=values.get("DATEKEY_VERIFICATION_PHRASE") or None,
        allowed_skew_days=skew,
        timezone=values.get("DATEKEY_TIMEZONE") or None,
        header_name=values.get("DATEKEY_HEADER", DEFAULT_HEADER).lower(),
        disclosed_keys=load_disclosed_keys(values),
        admin_open=_flag(values.get("DATEKEY_ADMIN_OPEN")),
        strict=_flag(values.get("DATEKEY_STRICT_CONFIG"), env == "prod"),
        cors_origins=load_cors_origins(values),
        mail=load_mail_settings(values),
        log_level=values.get("DATEKEY_LOG_LEVEL", "INFO"),
        log_json=_flag(values.get("DATEKEY_LOG_JSON"), True),
        log_file=values.get("DATEKEY_LOG_FILE") or None,
        secret_source=source.describe(),
    )


# ============================================================
# Validation
# ============================================================

def validate_config(settings: GatewaySettings) -> Dict[str, bool]:
    """
    Report which parts of the configuration are usable.
    Returns dict of component -> ready.
    """
    def ok(check) -> bool:
        try:
            check()
            return True
        except ConfigurationError:
            return False

    mail = settings.mail
    if mail.transport == "smtp":
        mail_ready = bool(mail.smtp_host and mail.mail_from)
    elif mail.transport == "http":
        mail_ready = bool(mail.api_url and mail.api_key and mail.mail_from)
    elif mail.transport == "memory":
        mail_ready = True
    else:
        mail_ready = False

    return {
        "credential_secret": ok(settings.credential_secret),
        "timezone": ok(settings.tzinfo),
        "disclosed_keys": bool(settings.disclosed_keys),
        "mail_transport": mail_ready,
    }


# ============================================================
# Feature Flags
# ============================================================

def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("DATEKEY_DEBUG", "").lower() in ("1", "true", "yes")
