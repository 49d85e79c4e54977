"""
Credential lifecycle - decide whether the database password is reused or regenerated.

One pass per `cdk synth`:
  lookup()          → last stored record; any failure or None = placeholder
  prior_state()     → VALID_PRIOR_RECORD only if every field is populated
  decide(rotate)    → reuse the stored password when valid and rotate=False,
                      otherwise generate(policy)
  assemble_record() → password + live instance coordinates, published by the caller

States (computed fresh on every call, nothing is cached):
  NO_VALID_PRIOR_RECORD  → lookup failed, returned nothing, or a field was empty
  VALID_PRIOR_RECORD     → username, password, host, name non-empty and port > 0

A partially populated record is never repaired by merging fields: it is treated
exactly like a missing one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import quote

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_CHARACTERS = "\"@/\\'"

# Secret JSON keys, shared with the container's environment variable names
KEY_USERNAME = "DB_USERNAME"
KEY_PASSWORD = "DB_PASSWORD"
KEY_PORT = "DB_PORT"
KEY_HOST = "DB_HOST"
KEY_NAME = "DB_NAME"
KEY_URL = "DATABASE_URL"


# ── Errors ────────────────────────────────────────────────────────────────────

class CredentialError(Exception):
    """Base class for credential lifecycle errors."""


class PriorRecordUnavailable(CredentialError):
    """The prior record could not be read (missing secret, network, permissions)."""


class PriorRecordIncomplete(PriorRecordUnavailable):
    """A prior record was read but is malformed or has an empty field."""


class PasswordGenerationError(CredentialError):
    """The password source failed. Fatal: the provisioning pass must stop."""


class IncompleteCredentialError(CredentialError):
    """An assembled record would be published with a field missing."""


# ── Data model ────────────────────────────────────────────────────────────────

class PriorState(str, Enum):
    NO_VALID_PRIOR_RECORD = "no_valid_prior_record"
    VALID_PRIOR_RECORD = "valid_prior_record"


@dataclass(frozen=True)
class PasswordPolicy:
    length: int = 64
    exclude_characters: str = DEFAULT_EXCLUDED_CHARACTERS
    include_space: bool = False

    def violations(self, password: str) -> list[str]:
        """Return human-readable reasons the password breaks this policy."""
        problems = []
        if len(password) != self.length:
            problems.append(f"length {len(password)} != {self.length}")
        excluded = sorted({c for c in password if c in self.exclude_characters})
        if excluded:
            problems.append(f"contains excluded characters {''.join(excluded)!r}")
        if not self.include_space and any(c.isspace() for c in password):
            problems.append("contains whitespace")
        return problems


@dataclass(frozen=True)
class CredentialRecord:
    """Fields persisted for one database connection."""

    username: str = ""
    password: str = field(default="", repr=False)
    port: int = 0
    host: str = ""
    name: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.password and self.host and self.name) and self.port > 0

    @property
    def connection_url(self) -> str:
        user = quote(self.username, safe="")
        password = quote(self.password, safe="")
        return f"postgresql://{user}:{password}@{self.host}:{self.port}/{self.name}"

    def to_secret_dict(self) -> dict[str, Any]:
        return {
            KEY_USERNAME: self.username,
            KEY_PASSWORD: self.password,
            KEY_PORT: self.port,
            KEY_HOST: self.host,
            KEY_NAME: self.name,
            KEY_URL: self.connection_url,
        }

    @classmethod
    def from_secret_dict(cls, data: Any) -> "CredentialRecord":
        """
        Parse the stored secret JSON.

        Missing keys become empty fields (the record is then incomplete).
        Raises PriorRecordIncomplete when the value is not a JSON object or a
        field has the wrong type.
        """
        if not isinstance(data, dict):
            raise PriorRecordIncomplete(f"expected a JSON object, got {type(data).__name__}")

        strings = {}
        for attr, key in (("username", KEY_USERNAME), ("password", KEY_PASSWORD),
                          ("host", KEY_HOST), ("name", KEY_NAME)):
            value = data.get(key, "")
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise PriorRecordIncomplete(f"{key} must be a string")
            strings[attr] = value

        return cls(port=_parse_port(data.get(KEY_PORT)), **strings)


PLACEHOLDER = CredentialRecord()


@dataclass(frozen=True)
class InstanceCoordinates:
    """Current coordinates of the live database instance."""

    username: str
    host: str
    port: int
    name: str


@dataclass(frozen=True)
class PasswordDecision:
    password: str = field(repr=False)
    prior_state: PriorState
    generated: bool


Lookup = Callable[[], Optional[CredentialRecord]]
PasswordGenerator = Callable[[PasswordPolicy], str]


def _parse_port(value: Any) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise PriorRecordIncomplete(f"{KEY_PORT} must be an integer")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise PriorRecordIncomplete(f"{KEY_PORT} must be an integer, got {value!r}")
    if value <= 0:
        raise PriorRecordIncomplete(f"{KEY_PORT} must be positive, got {value}")
    return value


def _state_of(record: CredentialRecord) -> PriorState:
    if record.is_complete:
        return PriorState.VALID_PRIOR_RECORD
    return PriorState.NO_VALID_PRIOR_RECORD


def assemble_record(password: str, instance: InstanceCoordinates) -> CredentialRecord:
    """Build the record to publish from the resolved password and live coordinates."""
    record = CredentialRecord(
        username=instance.username,
        password=password,
        port=instance.port,
        host=instance.host,
        name=instance.name,
    )
    if not record.is_complete:
        missing = [
            attr for attr in ("username", "password", "host", "name")
            if not getattr(record, attr)
        ]
        if record.port <= 0:
            missing.append("port")
        raise IncompleteCredentialError(f"credential record missing: {', '.join(missing)}")
    return record


# ── Resolver ──────────────────────────────────────────────────────────────────

class CredentialResolver:
    """
    Resolve the credential record for one provisioning pass.

    Args:
        lookup:   returns the last stored record, or None. May raise anything;
                  every failure is folded into "no valid prior record".
        generate: returns a new random password for the given policy.
        policy:   constraints handed to the generator.
    """

    def __init__(
        self,
        lookup: Lookup,
        generate: PasswordGenerator,
        policy: PasswordPolicy = PasswordPolicy(),
    ) -> None:
        self._lookup = lookup
        self._generate = generate
        self.policy = policy

    def load_prior(self) -> CredentialRecord:
        """Return the prior record, or the placeholder when none is usable."""
        try:
            record = self._lookup()
        except Exception as e:  # lookup failures never abort the pass
            logger.warning("[credentials] prior record unavailable, using placeholder: %s", e)
            return PLACEHOLDER

        if record is None:
            logger.warning("[credentials] no prior record found, using placeholder")
            return PLACEHOLDER
        if not record.is_complete:
            logger.warning("[credentials] prior record is incomplete, treating as absent")
            return PLACEHOLDER
        return record

    def prior_state(self) -> PriorState:
        return _state_of(self.load_prior())

    def decide(self, rotate: bool) -> PasswordDecision:
        """Reuse the prior password, or generate a new one."""
        prior = self.load_prior()
        state = _state_of(prior)

        if not rotate and state is PriorState.VALID_PRIOR_RECORD:
            return PasswordDecision(password=prior.password, prior_state=state, generated=False)

        return PasswordDecision(password=self._new_password(), prior_state=state, generated=True)

    def resolve(self, rotate: bool, instance: InstanceCoordinates) -> CredentialRecord:
        return assemble_record(self.decide(rotate).password, instance)

    def _new_password(self) -> str:
        try:
            password = self._generate(self.policy)
        except PasswordGenerationError:
            raise
        except Exception as e:
            raise PasswordGenerationError(f"password generator failed: {e}") from e

        if not isinstance(password, str) or not password:
            raise PasswordGenerationError("password generator returned an empty value")
        return password
