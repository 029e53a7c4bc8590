import pytest
from fastapi.testclient import TestClient

from datekey import AvailabilitySwitch, Scheme, encode
from datekey_gateway.config import GatewaySettings
from datekey_gateway.main import create_app
from datekey_gateway.mailer import RecordingMailer

SECRET = "operator-s3cret"
KEYS = {"apiKey1": "alpha-key", "apiKey2": "beta-key", "apiKey3": "gamma-key"}


@pytest.fixture
def settings():
    return GatewaySettings(shared_secret=SECRET, disclosed_keys=dict(KEYS))


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def switch():
    return AvailabilitySwitch()


@pytest.fixture
def client(settings, mailer, switch):
    return TestClient(create_app(settings, mailer=mailer, switch=switch))


@pytest.fixture
def secure_headers():
    def _make(secret=SECRET, scheme=Scheme.PHRASE, now=None):
        return {"x-secure-date": encode(secret, now, scheme)}
    return _make
