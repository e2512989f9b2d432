"""TrueNAS API credentials and their httpx authentication strategies."""

from abc import ABC, abstractmethod
from collections.abc import Generator
from dataclasses import dataclass
from types import TracebackType
from typing import Self

import httpx

from naslock.config import AuthMethod, NasConfig
from naslock.errors import NaslockError
from naslock.secret import SecretValue
from naslock.store import SecretStore, ensure_non_empty, required_field


class BearerAuth(httpx.Auth):
    """Send ``Authorization: Bearer <key>`` on every request."""

    def __init__(self, key: SecretValue) -> None:
        self._key = key

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._key.reveal()}"
        yield request


class _CredentialScope(ABC):
    """Context-manager base that wipes every secret on exit."""

    @abstractmethod
    def labeled_secrets(self) -> dict[str, SecretValue]:
        """Return each secret keyed by the label used in error messages."""

    def wipe(self) -> None:
        """Wipe every secret held by the credential."""
        for secret in self.labeled_secrets().values():
            secret.wipe()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: TracebackType | None
    ) -> None:
        self.wipe()


@dataclass(frozen=True, repr=False)
class BasicCredential(_CredentialScope):
    """Username and password for HTTP Basic auth."""

    username: SecretValue
    password: SecretValue

    def labeled_secrets(self) -> dict[str, SecretValue]:
        return {"NAS username": self.username, "NAS password": self.password}

    def to_auth(self) -> httpx.Auth:
        """Build the HTTP Basic strategy."""
        return httpx.BasicAuth(self.username.reveal(), self.password.reveal())

    def __repr__(self) -> str:
        return "BasicCredential(username=***, password=***)"


@dataclass(frozen=True, repr=False)
class ApiKeyCredential(_CredentialScope):
    """TrueNAS API key sent as a bearer token."""

    key: SecretValue

    def labeled_secrets(self) -> dict[str, SecretValue]:
        return {"API key": self.key}

    def to_auth(self) -> httpx.Auth:
        """Build the bearer-token strategy."""
        return BearerAuth(self.key)

    def __repr__(self) -> str:
        return "ApiKeyCredential(key=***)"


Credential = BasicCredential | ApiKeyCredential


def resolve_credential(store: SecretStore, nas: NasConfig) -> Credential:
    """Read the NAS credential from its KeePass entry according to the configured auth method.

    Basic auth reads ``username_field`` and ``password_field``; API-key auth reads
    the key from ``password_field``.

    Raises:
        EntryNotFound: Auth entry selector matches nothing.
        MissingField: Configured field absent from the entry.
        EmptySecret: Field present but blank.

    """
    entry = store.require_entry(nas.auth_entry)
    credential: Credential
    match nas.auth_method:
        case AuthMethod.BASIC:
            username = required_field(entry, nas.username_field, nas.auth_entry)
            try:
                password = required_field(entry, nas.password_field, nas.auth_entry)
            except NaslockError:
                username.wipe()
                raise
            credential = BasicCredential(username=username, password=password)
        case AuthMethod.API_KEY:
            credential = ApiKeyCredential(key=required_field(entry, nas.password_field, nas.auth_entry))

    try:
        for label, secret in credential.labeled_secrets().items():
            ensure_non_empty(secret, label)
    except NaslockError:
        credential.wipe()
        raise
    return credential
