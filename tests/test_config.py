import json

import pytest

from datekey import Scheme
from datekey.errors import ConfigurationError
from datekey_gateway.config import (
    GatewaySettings,
    load_disclosed_keys,
    load_settings,
    validate_config,
)
from datekey_gateway.secret_sources import (
    AwsSecretsManagerSource,
    EnvSecretSource,
    get_secret_source,
)


def test_defaults():
    s = load_settings({})
    assert s.scheme is Scheme.PHRASE
    assert s.verification_phrase is None
    assert s.shared_secret is None
    assert s.cors_origins == ("*",)
    assert s.log_file is None
    assert s.allowed_skew_days == 1
    assert s.header_name == "x-secure-date"
    assert s.disclosed_keys == {}
    assert s.admin_open is False
    assert s.mail.transport == ""
    assert s.secret_source == "env"


def test_numbered_api_keys_are_renamed_in_order():
    s = load_settings({"API_KEY_2": "b", "API_KEY_10": "j", "API_KEY_1": "a", "API_KEY_3": "", "API_KEYS": "x"})
    assert list(s.disclosed_keys.items()) == [("apiKey1", "a"), ("apiKey2", "b"), ("apiKey10", "j")]


def test_extra_disclosed_keys_from_json():
    keys = load_disclosed_keys({
        "API_KEY_1": "a",
        "DATEKEY_DISCLOSED_KEYS": json.dumps({"mapsKey": "m", "apiKey1": "override"}),
    })
    assert keys == {"apiKey1": "override", "mapsKey": "m"}


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", "\"str\""])
def test_disclosed_keys_must_be_object(raw):
    with pytest.raises(ConfigurationError):
        load_disclosed_keys({"DATEKEY_DISCLOSED_KEYS": raw})


@pytest.mark.parametrize("environ", [
    {"DATEKEY_SCHEME": "rot13"},
    {"DATEKEY_ALLOWED_SKEW_DAYS": "one"},
    {"DATEKEY_ALLOWED_SKEW_DAYS": "-1"},
    {"DATEKEY_MAIL_TRANSPORT": "pigeon"},
    {"SMTP_PORT": "smtp"},
    {"DATEKEY_SECRET_SOURCE": "vault"},
])
def test_unparseable_values(environ):
    with pytest.raises(ConfigurationError):
        load_settings(environ)


def test_scheme_and_window_from_env():
    s = load_settings({
        "DATEKEY_SCHEME": "Passphrase",
        "DATEKEY_SHARED_SECRET": "k1",
        "DATEKEY_ALLOWED_SKEW_DAYS": "2",
        "DATEKEY_HEADER": "X-Proof",
        "DATEKEY_ADMIN_OPEN": "true",
    })
    assert s.scheme is Scheme.PASSPHRASE
    assert s.credential_secret() == "k1"
    assert s.allowed_skew_days == 2
    assert s.header_name == "x-proof"
    assert s.admin_open is True


def test_credential_secret_per_scheme():
    assert GatewaySettings(shared_secret="s3cret").credential_secret() == "s3cret"
    assert GatewaySettings(verification_phrase="BNB_SECURE_ACCESS").credential_secret() == "BNB_SECURE_ACCESS"
    assert GatewaySettings(shared_secret="s3cret", verification_phrase="s3cret").credential_secret() == "s3cret"
    with pytest.raises(ConfigurationError):
        GatewaySettings(scheme=Scheme.PASSPHRASE).credential_secret()


def test_phrase_scheme_never_falls_back_to_the_published_phrase():
    with pytest.raises(ConfigurationError):
        GatewaySettings().credential_secret()
    with pytest.raises(ConfigurationError):
        load_settings({"DATEKEY_VERIFICATION_PHRASE": ""}).credential_secret()
    assert load_settings({"DATEKEY_SHARED_SECRET": "s3cret"}).credential_secret() == "s3cret"


def test_conflicting_secret_and_phrase_rejected():
    s = load_settings({"DATEKEY_SHARED_SECRET": "s3cret", "DATEKEY_VERIFICATION_PHRASE": "BNB_SECURE_ACCESS"})
    with pytest.raises(ConfigurationError):
        s.credential_secret()


def test_cors_origins():
    assert load_settings({"DATEKEY_CORS_ORIGINS": "https://a.example.com, https://b.example.com,"}).cors_origins == (
        "https://a.example.com",
        "https://b.example.com",
    )
    assert load_settings({"DATEKEY_CORS_ORIGINS": ""}).cors_origins == ()


def test_log_file():
    assert load_settings({"DATEKEY_LOG_FILE": "/var/log/datekey.log"}).log_file == "/var/log/datekey.log"


def test_strict_defaults_on_in_prod():
    assert load_settings({"DATEKEY_ENV": "prod"}).strict is True
    assert load_settings({"DATEKEY_ENV": "prod", "DATEKEY_STRICT_CONFIG": "0"}).strict is False
    assert load_settings({"DATEKEY_ENV": "dev"}).strict is False


def test_timezone():
    assert GatewaySettings().tzinfo() is None
    with pytest.raises(ConfigurationError):
        GatewaySettings(timezone="Not/AZone").tzinfo()


def test_mail_settings():
    s = load_settings({
        "DATEKEY_MAIL_TRANSPORT": "SMTP",
        "SMTP_HOST": "smtp.example.com",
        "SMTP_PORT": "465",
        "SMTP_SSL": "1",
        "SMTP_USER": "bot@example.com",
        "SMTP_PASSWORD": "pw",
    })
    assert s.mail.transport == "smtp"
    assert s.mail.smtp_port == 465
    assert s.mail.smtp_ssl is True
    assert s.mail.mail_from == "bot@example.com"
    assert validate_config(s)["mail_transport"] is True


def test_summary_masks_secrets():
    s = GatewaySettings(
        scheme=Scheme.PASSPHRASE,
        shared_secret="supersecret",
        disclosed_keys={"apiKey1": "value-one"},
    )
    summary = s.summary()
    assert summary["shared_secret"] == "*******cret"
    assert summary["disclosed_keys"] == ["apiKey1"]
    assert "value-one" not in json.dumps(summary)
    assert "supersecret" not in json.dumps(summary)


def test_validate_config():
    ready = validate_config(GatewaySettings(scheme=Scheme.PASSPHRASE))
    assert ready == {
        "credential_secret": False,
        "timezone": True,
        "disclosed_keys": False,
        "mail_transport": False,
    }


# ============================================================
# Secret sources
# ============================================================

class FakeSecretsManager:
    def __init__(self, secret_string=None, error=None):
        self.secret_string = secret_string
        self.error = error
        self.requested = []

    def get_secret_value(self, SecretId):
        self.requested.append(SecretId)
        if self.error:
            raise self.error
        return {"SecretString": self.secret_string}


def test_env_source():
    source = get_secret_source({"A": "1"})
    assert isinstance(source, EnvSecretSource)
    assert source.load() == {"A": "1"}


def test_aws_source_reads_json_secret():
    client = FakeSecretsManager(json.dumps({"DATEKEY_SHARED_SECRET": "k1", "API_KEY_1": "a", "EMPTY": None}))
    source = AwsSecretsManagerSource("prod/datekey", client=client)
    assert source.load() == {"DATEKEY_SHARED_SECRET": "k1", "API_KEY_1": "a"}
    assert client.requested == ["prod/datekey"]
    assert source.describe() == "aws_secrets_manager:prod/datekey"


@pytest.mark.parametrize("secret_string", [None, "not json", "[\"a\"]"])
def test_aws_source_rejects_bad_secret(secret_string):
    source = AwsSecretsManagerSource("id", client=FakeSecretsManager(secret_string))
    with pytest.raises(ConfigurationError):
        source.load()


def test_aws_source_client_error():
    from botocore.exceptions import ClientError

    error = ClientError({"Error": {"Code": "AccessDeniedException", "Message": "no"}}, "GetSecretValue")
    source = AwsSecretsManagerSource("id", client=FakeSecretsManager(error=error))
    with pytest.raises(ConfigurationError):
        source.load()


def test_aws_source_needs_secret_id():
    with pytest.raises(ConfigurationError):
        get_secret_source({"DATEKEY_SECRET_SOURCE": "aws_secrets_manager"})
