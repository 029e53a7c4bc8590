import json
import logging
from unittest import mock

import pytest

from datekey_gateway.logging_config import (
    AuditLogger,
    StructuredFormatter,
    configure_logging,
    request_id_var,
    set_request_id,
)
from datekey_gateway.security import extract_client_id
from datekey_gateway.util import credential_fingerprint, mask_sensitive


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def _capture(name):
    logger = logging.getLogger(name)
    handler = ListHandler()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    return handler


def test_structured_formatter_includes_request_id():
    set_request_id("req-abc")
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    data = json.loads(StructuredFormatter().format(record))
    assert data["message"] == "hello world"
    assert data["level"] == "INFO"
    assert data["request_id"] == "req-abc"
    assert request_id_var.get() == "req-abc"


def test_set_request_id_generates_one():
    assert len(set_request_id()) == 36


def test_rejection_is_logged_with_outcome_but_not_credential():
    handler = _capture("test.audit.reject")
    audit = AuditLogger("test.audit.reject")
    credential = "AAAA:BBBB"
    audit.credential_rejected(
        route="/api/get-keys",
        client_id="ip:10.0.0.1",
        reason="validation failed",
        outcome="MALFORMED",
        fingerprint=credential_fingerprint(credential),
    )
    record = handler.records[0]
    assert record.levelno == logging.WARNING
    fields = record.extra_fields
    assert fields["event_type"] == "CREDENTIAL_REJECTED"
    assert fields["outcome"] == "MALFORMED"
    assert credential not in json.dumps(fields)
    assert len(fields["credential_fingerprint"]) == 12


def test_availability_change_is_logged():
    handler = _capture("test.audit.avail")
    AuditLogger("test.audit.avail").availability_changed(False, "ip:10.0.0.1")
    assert handler.records[0].extra_fields["available"] is False


def test_mask_sensitive():
    assert mask_sensitive("abcdefgh") == "****efgh"
    assert mask_sensitive("abc") == "***"


def test_extract_client_id():
    assert extract_client_id({"x-forwarded-for": "1.2.3.4, 10.0.0.1"}, "127.0.0.1") == "ip:1.2.3.4"
    assert extract_client_id({}, "127.0.0.1") == "ip:127.0.0.1"
    assert extract_client_id({}) == "anonymous"


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


def test_configure_logging_writes_json_to_file(tmp_path, restore_root_logging):
    log_file = tmp_path / "gateway.log"
    configure_logging(level="INFO", json_format=True, log_file=str(log_file))
    AuditLogger("test.audit.file").message_failed("relay down")
    for handler in logging.getLogger().handlers:
        handler.flush()
    line = json.loads(log_file.read_text().splitlines()[-1])
    assert line["event_type"] == "MESSAGE_FAILED"
    assert line["cause"] == "relay down"


def test_factory_loads_settings_and_configures_logging_once(monkeypatch, tmp_path):
    from datekey_gateway import main as gateway_main

    monkeypatch.setenv("DATEKEY_SHARED_SECRET", "s3cret")
    monkeypatch.setenv("DATEKEY_ENV", "dev")
    monkeypatch.setenv("DATEKEY_LOG_FILE", str(tmp_path / "gw.log"))
    monkeypatch.setenv("DATEKEY_LOG_LEVEL", "DEBUG")
    with mock.patch.object(gateway_main, "configure_logging") as configure, \
            mock.patch.object(gateway_main, "load_settings", wraps=gateway_main.load_settings) as load:
        app = gateway_main.create_app()
    load.assert_called_once_with()
    configure.assert_called_once_with(level="DEBUG", json_format=True, log_file=str(tmp_path / "gw.log"))
    assert app.state.settings.shared_secret == "s3cret"


def test_explicit_settings_leave_logging_alone():
    from datekey_gateway import main as gateway_main
    from datekey_gateway.config import GatewaySettings

    with mock.patch.object(gateway_main, "configure_logging") as configure:
        gateway_main.create_app(GatewaySettings(shared_secret="s3cret"))
    configure.assert_not_called()


def test_entrypoint_defers_settings_to_the_factory():
    from datekey_gateway import __main__ as entry

    with mock.patch.object(entry.uvicorn, "run") as run:
        entry.main()
    args, kwargs = run.call_args
    assert args == ("datekey_gateway.main:create_app",)
    assert kwargs["factory"] is True
    assert not hasattr(entry, "load_settings")
