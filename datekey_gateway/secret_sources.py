"""
Secret sources for the datekey gateway.

Secrets (shared secret, disclosed API keys, mail credentials) are resolved
once at startup, either from the process environment or from a JSON secret
in AWS Secrets Manager whose keys use the same names as the environment
variables.
"""

import json
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

from datekey.errors import ConfigurationError


class SecretSource(ABC):
    """Abstract interface for resolving named secrets."""

    @abstractmethod
    def load(self) -> Dict[str, str]:
        """
        Return all secrets this source knows about.

        Returns:
            Mapping of variable name to value
        """
        pass

    @abstractmethod
    def describe(self) -> str:
        """Human-readable source description (never includes values)."""
        pass


class EnvSecretSource(SecretSource):
    """Secrets read straight from the environment mapping."""

    def __init__(self, environ: Mapping[str, str]):
        self._environ = environ

    def load(self) -> Dict[str, str]:
        return dict(self._environ)

    def describe(self) -> str:
        return "env"


class AwsSecretsManagerSource(SecretSource):
    """
    AWS Secrets Manager source.

    The secret must be a JSON object of string values, for example
    ``{"DATEKEY_SHARED_SECRET": "...", "API_KEY_1": "..."}``.

    Docs: https://docs.aws.amazon.com/secretsmanager/latest/apireference/API_GetSecretValue.html
    """

    def __init__(self, secret_id: str, region: Optional[str] = None, client=None):
        if not secret_id:
            raise ConfigurationError("DATEKEY_AWS_SECRET_ID required for aws_secrets_manager source")
        self._secret_id = secret_id
        self._region = region
        self._client = client

    def _get_client(self):
        """Lazy-load boto3 client."""
        if self._client is None:
            try:
                import boto3
            except ImportError as e:
                raise RuntimeError(
                    "boto3 required for AWS Secrets Manager. Install with: pip install boto3"
                ) from e
            self._client = boto3.client("secretsmanager", region_name=self._region)
        return self._client

    def load(self) -> Dict[str, str]:
        client = self._get_client()
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            resp = client.get_secret_value(SecretId=self._secret_id)
        except (BotoCoreError, ClientError) as e:
            raise ConfigurationError(f"Unable to read secret {self._secret_id}") from e

        raw = resp.get("SecretString")
        if raw is None:
            raise ConfigurationError(f"Secret {self._secret_id} has no SecretString")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Secret {self._secret_id} is not JSON") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Secret {self._secret_id} must be a JSON object")

        return {str(k): str(v) for k, v in data.items() if v is not None}

    def describe(self) -> str:
        return f"aws_secrets_manager:{self._secret_id}"


def get_secret_source(environ: Mapping[str, str]) -> SecretSource:
    """
    Factory function to create the configured secret source.

    ``DATEKEY_SECRET_SOURCE`` selects ``env`` (default) or
    ``aws_secrets_manager``.
    """
    kind = environ.get("DATEKEY_SECRET_SOURCE", "env")
    if kind == "aws_secrets_manager":
        return AwsSecretsManagerSource(
            secret_id=environ.get("DATEKEY_AWS_SECRET_ID", ""),
            region=environ.get("AWS_REGION") or None
        )
    if kind != "env":
        raise ConfigurationError(f"Unknown DATEKEY_SECRET_SOURCE: {kind}")
    return EnvSecretSource(environ)
