"""Tests for environment-driven configuration."""
import pytest

ENV_VARS = (
    "APP_ENV", "ROTATE_DB_CREDENTIALS", "DB_PORT", "DB_PASSWORD_LENGTH",
    "ECS_MIN_CONTAINERS", "ECS_MAX_CONTAINERS", "AUTHORIZED_DOMAINS",
    "MAIN_DB_RESOURCE_NAME", "AWS_ENDPOINT_URL", "CDK_IMAGE_TAG",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    from provisioning.config import Config

    cfg = Config()

    assert cfg.APP_ENV == "staging"
    assert cfg.ROTATE_DB_CREDENTIALS is False
    assert cfg.DB_PORT == 5432
    assert cfg.AWS_ENDPOINT_URL is None
    assert cfg.IMAGE_TAG == "latest"
    assert cfg.resource_prefix == "Diese-Staging"
    assert cfg.db_secret_name == "staging/diesedb/credentials-1"
    assert cfg.app_secret_name == "diese-web-app-secrets-staging"
    assert cfg.is_production is False
    cfg.validate()


def test_production(monkeypatch):
    from provisioning.config import Config

    monkeypatch.setenv("APP_ENV", "Production")
    cfg = Config()

    assert cfg.APP_ENV == "production"
    assert cfg.is_production is True
    assert cfg.resource_prefix == "Diese-Production"
    cfg.validate()


@pytest.mark.parametrize("raw, expected", [
    ("true", True), ("1", True), ("YES", True), ("on", True),
    ("false", False), ("0", False), ("", False), ("nope", False),
])
def test_rotate_flag_parsing(monkeypatch, raw, expected):
    from provisioning.config import Config

    monkeypatch.setenv("ROTATE_DB_CREDENTIALS", raw)

    assert Config().ROTATE_DB_CREDENTIALS is expected


def test_password_policy_follows_length(monkeypatch):
    from provisioning.config import Config

    monkeypatch.setenv("DB_PASSWORD_LENGTH", "32")
    policy = Config().password_policy

    assert policy.length == 32
    assert policy.exclude_characters == "\"@/\\'"
    assert policy.include_space is False


def test_authorized_domains_split(monkeypatch):
    from provisioning.config import Config

    monkeypatch.setenv("AUTHORIZED_DOMAINS", "diese.ca, www.diese.ca,,")

    assert Config().AUTHORIZED_DOMAINS == ["diese.ca", "www.diese.ca"]


def test_bad_integer_raises(monkeypatch):
    from provisioning.config import Config

    monkeypatch.setenv("DB_PORT", "fivefourthreetwo")

    with pytest.raises(ValueError, match="DB_PORT"):
        Config()


def test_validate_rejects_unknown_environment(monkeypatch):
    from provisioning.config import Config

    monkeypatch.setenv("APP_ENV", "dev")

    with pytest.raises(ValueError, match="Invalid environment: 'dev'"):
        Config().validate()


def test_validate_rejects_bad_container_bounds(monkeypatch):
    from provisioning.config import Config

    monkeypatch.setenv("ECS_MIN_CONTAINERS", "5")
    monkeypatch.setenv("ECS_MAX_CONTAINERS", "2")

    with pytest.raises(ValueError, match="ECS_MIN_CONTAINERS"):
        Config().validate()


def test_validate_rejects_empty_db_name(monkeypatch):
    from provisioning.config import Config

    monkeypatch.setenv("MAIN_DB_RESOURCE_NAME", "")

    with pytest.raises(ValueError, match="MAIN_DB_RESOURCE_NAME"):
        Config().validate()
