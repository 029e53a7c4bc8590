import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as ModelValidationError
from starlette.concurrency import run_in_threadpool

from datekey import AccessGate, AvailabilitySwitch, CredentialVerifier, DenyReason, GateDecision
from datekey.errors import ConfigurationError, DownstreamActionFailure

from .config import GatewaySettings, is_debug, load_settings, validate_config
from .logging_config import audit_log, configure_logging, set_request_id
from .mailer import Mailer, get_mailer
from .models import (
    AvailabilityResponse,
    ErrorResponse,
    HealthResponse,
    KeysResponse,
    SendEmailRequest,
    SendEmailResponse,
)
from .security import extract_client_id
from .util import credential_fingerprint, utc_now_iso

logger = logging.getLogger(__name__)

HEALTH_PATH = "/health"
ENABLE_PATH = "/admin/enable"
DISABLE_PATH = "/admin/disable"
# Reachable while the server is disabled
AVAILABILITY_EXEMPT = frozenset((HEALTH_PATH, ENABLE_PATH, DISABLE_PATH))

DENY_MESSAGES = {
    DenyReason.HEADER_MISSING: "Security header missing",
    DenyReason.VALIDATION_FAILED: "Security validation failed",
}


class CredentialRejected(Exception):
    """The access gate denied the request."""

    def __init__(self, decision: GateDecision):
        self.decision = decision
        super().__init__(decision.reason.value if decision.reason else "denied")


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error, message=message).model_dump())


def _client_id(request: Request) -> str:
    return extract_client_id(request.headers, request.client.host if request.client else None)


def build_gate(settings: GatewaySettings) -> AccessGate:
    """
    Build the access gate for the configured scheme.

    Raises:
        ConfigurationError: If the credential secret or time zone is unusable
    """
    verifier = CredentialVerifier(
        settings.credential_secret(),
        scheme=settings.scheme,
        allowed_skew_days=settings.allowed_skew_days,
        tz=settings.tzinfo()
    )
    return AccessGate(verifier, header_name=settings.header_name)


# ============================================================
# Dependencies
# ============================================================

def require_credential(request: Request) -> GateDecision:
    """Run the access gate; every protected route depends on this."""
    gate: Optional[AccessGate] = request.app.state.gate
    if gate is None:
        raise ConfigurationError(request.app.state.config_error or "access gate not configured")

    decision = gate.authorize(request.headers)
    route = request.url.path
    if not decision.admitted():
        credential = request.headers.get(gate.header_name)
        audit_log.credential_rejected(
            route=route,
            client_id=_client_id(request),
            reason=decision.reason.value,
            outcome=decision.verification.outcome.value if decision.verification else None,
            fingerprint=credential_fingerprint(credential) if credential else None
        )
        raise CredentialRejected(decision)

    audit_log.credential_accepted(
        route=route,
        client_id=_client_id(request),
        offset_days=decision.verification.offset_days if decision.verification else None
    )
    return decision


def require_admin(request: Request) -> Optional[GateDecision]:
    """Admin toggles go through the gate unless DATEKEY_ADMIN_OPEN is set."""
    if request.app.state.settings.admin_open:
        return None
    return require_credential(request)


# ============================================================
# Application
# ============================================================

def create_app(
    settings: Optional[GatewaySettings] = None,
    mailer: Optional[Mailer] = None,
    switch: Optional[AvailabilitySwitch] = None
) -> FastAPI:
    """
    Assemble the gateway.

    In strict mode a missing credential secret or mail transport setting
    fails here; otherwise the affected routes answer 500.

    Without explicit settings (the uvicorn factory path) the environment is
    read here and logging is configured from it, once per process.
    """
    if settings is None:
        settings = load_settings()
        configure_logging(level=settings.log_level, json_format=settings.log_json, log_file=settings.log_file)
    app = FastAPI(title="datekey gateway", debug=is_debug())
    app.state.settings = settings
    app.state.switch = switch or AvailabilitySwitch()
    app.state.gate = None
    app.state.config_error = None
    app.state.mailer = mailer

    try:
        app.state.gate = build_gate(settings)
    except ConfigurationError as e:
        audit_log.configuration_error(str(e), component="credential")
        if settings.strict:
            raise
        app.state.config_error = str(e)

    if mailer is None:
        try:
            app.state.mailer = get_mailer(settings.mail)
        except ConfigurationError as e:
            audit_log.configuration_error(str(e), component="mail")
            if settings.strict:
                raise

    audit_log.config_loaded({**settings.summary(), "ready": validate_config(settings)})

    # --------------------------------------------------------
    # Middleware
    # --------------------------------------------------------

    @app.middleware("http")
    async def _availability_middleware(request: Request, call_next):
        if request.url.path not in AVAILABILITY_EXEMPT and not request.app.state.switch.is_available():
            audit_log.request_refused_unavailable(request.url.path)
            return _error(503, "Service Unavailable", "Server is temporarily unavailable")
        return await call_next(request)

    # Wraps the availability check so the request id covers refusals too
    @app.middleware("http")
    async def _request_id_middleware(request: Request, call_next):
        request_id = set_request_id(request.headers.get("x-request-id") or None)
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response

    # Outermost, so preflights and 503s still carry CORS headers
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_origins),
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=[settings.header_name, "content-type", "x-request-id"],
            expose_headers=["x-request-id"],
        )

    # --------------------------------------------------------
    # Exception handlers
    # --------------------------------------------------------

    @app.exception_handler(CredentialRejected)
    async def _credential_rejected(request: Request, exc: CredentialRejected):
        return _error(403, "Forbidden", DENY_MESSAGES.get(exc.decision.reason, "Forbidden"))

    @app.exception_handler(ConfigurationError)
    async def _configuration_error(request: Request, exc: ConfigurationError):
        audit_log.configuration_error(str(exc), route=request.url.path)
        return _error(500, "Internal Server Error", "Server configuration error")

    @app.exception_handler(DownstreamActionFailure)
    async def _downstream_failure(request: Request, exc: DownstreamActionFailure):
        audit_log.message_failed(str(exc))
        return _error(500, "Internal Server Error", "Downstream action failed")

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        return _error(422, "Unprocessable Entity", "Invalid request body")

    # --------------------------------------------------------
    # Routes
    # --------------------------------------------------------

    @app.get(HEALTH_PATH, response_model=HealthResponse)
    def health():
        return {"status": "ok", "timestamp": utc_now_iso()}

    @app.get("/api/get-keys", response_model=KeysResponse)
    def get_keys(decision: GateDecision = Depends(require_credential)):
        return {"success": True, "keys": app.state.settings.disclosed_keys}

    @app.post("/api/send-email", response_model=SendEmailResponse)
    async def send_email(request: Request, decision: GateDecision = Depends(require_credential)):
        # Body is parsed only after the gate so unauthenticated callers
        # cannot probe payload validation.
        try:
            payload = SendEmailRequest.model_validate(await request.json())
        except (ValueError, ModelValidationError):
            return _error(422, "Unprocessable Entity", "Invalid request body")

        mailer: Optional[Mailer] = app.state.mailer
        if mailer is None:
            raise ConfigurationError("no mail transport configured")

        recipients = payload.recipients()
        message_id = await run_in_threadpool(
            mailer.send, recipients, payload.subject, payload.text, payload.html
        )
        audit_log.message_dispatched(message_id, len(recipients))
        return {"success": True, "message": "Email sent successfully", "messageId": message_id}

    @app.post(DISABLE_PATH, response_model=AvailabilityResponse)
    def disable_server(request: Request, decision: Optional[GateDecision] = Depends(require_admin)):
        available = app.state.switch.disable()
        audit_log.availability_changed(available, _client_id(request))
        return {"success": True, "available": available, "message": "Server disabled"}

    @app.post(ENABLE_PATH, response_model=AvailabilityResponse)
    def enable_server(request: Request, decision: Optional[GateDecision] = Depends(require_admin)):
        available = app.state.switch.enable()
        audit_log.availability_changed(available, _client_id(request))
        return {"success": True, "available": available, "message": "Server enabled"}

    return app
