"""
Secret Store - AWS Secrets Manager collaborators for the credential resolver.

Secrets (per environment):
  {env}/{db_resource_name}/credentials-1   → database credential record (JSON)
  diese-web-app-secrets-{env}              → application secret bundle (JSON)

Reads go through `GetSecretValue`; new passwords come from `GetRandomPassword`.
Writing the record is not done here: DataStack declares the secret with the
assembled value and CloudFormation publishes it.

Environment:
  AWS_ENDPOINT_URL   → http://localstack:4566 for local dev (empty = real AWS)
  AWS_DEFAULT_REGION → region of the secret store
"""
import json
import logging
from enum import Enum
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from provisioning.credentials import (
    KEY_URL,
    CredentialRecord,
    PasswordGenerationError,
    PasswordPolicy,
    PriorRecordIncomplete,
    PriorRecordUnavailable,
)

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"ResourceNotFoundException"}

PRODUCTION_PLACEHOLDER = "TO_BE_REPLACED_IN_PRODUCTION"


# ── Naming ────────────────────────────────────────────────────────────────────

def db_secret_name(env: str, resource_name: str) -> str:
    return f"{env}/{resource_name}/credentials-1"


def app_secret_name(env: str) -> str:
    return f"diese-web-app-secrets-{env}"


class AppSecret(str, Enum):
    """Keys of the application secret bundle, injected into the container as-is."""

    API_KEY = "API_KEY"
    JWT_SECRET = "JWT_SECRET"
    NEXT_PUBLIC_CLERK_PUBLISHABLE_KEY = "NEXT_PUBLIC_CLERK_PUBLISHABLE_KEY"
    CLERK_SECRET_KEY = "CLERK_SECRET_KEY"
    GEMINI_API_KEY = "GEMINI_API_KEY"
    GROQ_API_KEY = "GROQ_API_KEY"
    OPENAI_API_KEY = "OPENAI_API_KEY"


def default_app_secret_values(env: str) -> dict[str, str]:
    """
    Initial values for the app secret bundle.

    Production gets explicit placeholders that must be replaced by hand:
      aws secretsmanager put-secret-value \\
        --secret-id diese-web-app-secrets-production --secret-string '{...}'
    """
    prod = env == "production"

    def pick(dev_value: str) -> str:
        return PRODUCTION_PLACEHOLDER if prod else dev_value

    return {
        AppSecret.API_KEY.value: pick("dev-api-key-example"),
        AppSecret.JWT_SECRET.value: pick(f"jwt-secret-{env}-example"),
        AppSecret.NEXT_PUBLIC_CLERK_PUBLISHABLE_KEY.value: "pk_test_" + pick("clerk-dev-key-example"),
        AppSecret.CLERK_SECRET_KEY.value: "sk_test_" + pick("clerk-dev-secret-example"),
        AppSecret.GEMINI_API_KEY.value: pick("gemini-dev-key-example"),
        AppSecret.GROQ_API_KEY.value: pick("groq-dev-key-example"),
        AppSecret.OPENAI_API_KEY.value: pick("sk-openai-dev-key-example"),
    }


# ── Secrets Manager client ────────────────────────────────────────────────────

def _client():
    from provisioning.config import config  # late import to avoid circular deps

    kwargs = {"region_name": config.AWS_REGION}
    if config.AWS_ENDPOINT_URL:
        kwargs["endpoint_url"] = config.AWS_ENDPOINT_URL
    return boto3.client("secretsmanager", **kwargs)


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


def _fetch_secret_json(client, secret_id: str) -> Optional[Any]:
    """Return the decoded SecretString, or None when the secret does not exist."""
    try:
        resp = client.get_secret_value(SecretId=secret_id)
    except ClientError as e:
        if _error_code(e) in _NOT_FOUND_CODES:
            return None
        raise PriorRecordUnavailable(f"could not read {secret_id}: {e}") from e
    except BotoCoreError as e:
        raise PriorRecordUnavailable(f"could not read {secret_id}: {e}") from e

    secret_string = resp.get("SecretString")
    if not secret_string:
        raise PriorRecordUnavailable(f"{secret_id} has no SecretString")
    try:
        return json.loads(secret_string)
    except json.JSONDecodeError as e:
        raise PriorRecordIncomplete(f"{secret_id} is not valid JSON") from e


# ── Public API ────────────────────────────────────────────────────────────────

class SecretsManagerLookup:
    """Lookup callable for CredentialResolver: last stored record or None."""

    def __init__(self, secret_id: str, client=None) -> None:
        self.secret_id = secret_id
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = _client()
        return self._client

    def __call__(self) -> Optional[CredentialRecord]:
        data = _fetch_secret_json(self.client, self.secret_id)
        if data is None:
            logger.info("[secret_store] %s does not exist yet", self.secret_id)
            return None
        return CredentialRecord.from_secret_dict(data)


class SecretsManagerPasswordGenerator:
    """Password generator callable backed by secretsmanager:GetRandomPassword."""

    def __init__(self, client=None) -> None:
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = _client()
        return self._client

    def __call__(self, policy: PasswordPolicy) -> str:
        try:
            resp = self.client.get_random_password(
                PasswordLength=policy.length,
                ExcludeCharacters=policy.exclude_characters,
                IncludeSpace=policy.include_space,
            )
        except (ClientError, BotoCoreError) as e:
            raise PasswordGenerationError(f"GetRandomPassword failed: {e}") from e

        password = resp.get("RandomPassword") or ""
        if not password:
            raise PasswordGenerationError("GetRandomPassword returned no password")

        problems = policy.violations(password)
        if problems:
            raise PasswordGenerationError(
                "GetRandomPassword returned a password outside the policy: " + "; ".join(problems)
            )
        return password


def read_credential_record(secret_id: str, client=None) -> CredentialRecord:
    """
    Strict read of a stored credential record.

    Unlike SecretsManagerLookup, absence and incompleteness are errors here.
    """
    data = _fetch_secret_json(client or _client(), secret_id)
    if data is None:
        raise PriorRecordUnavailable(f"secret {secret_id} does not exist")
    record = CredentialRecord.from_secret_dict(data)
    if not record.is_complete:
        missing = [
            key for key, value in record.to_secret_dict().items()
            if key != KEY_URL and not value
        ]
        raise PriorRecordIncomplete(f"secret {secret_id} is missing: {', '.join(missing)}")
    return record
