"""Read-only access to a KeePass database: entry selectors and field lookup.

Selector grammar:

    uuid:<uuid>    match by UUID only (hyphenated, 32 hex digits, or {braced})
    title:<title>  match by exact, case-sensitive title only
    <text>         try UUID, then title, per entry in database order

The prefixes are case-insensitive; the token after them is not.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Protocol, Self
from uuid import UUID

from naslock.errors import EmptySecret, EntryNotFound, MissingField, StoreError
from naslock.secret import SecretValue

logger = logging.getLogger(__name__)

_USERNAME_ALIASES = frozenset({"username", "user_name", "user-name", "user"})
_PASSWORD_ALIASES = frozenset({"password", "pass"})


class SecretEntry(Protocol):
    """The subset of ``pykeepass.entry.Entry`` naslock reads."""

    @property
    def title(self) -> str | None: ...

    @property
    def uuid(self) -> UUID: ...

    @property
    def username(self) -> str | None: ...

    @property
    def password(self) -> str | None: ...

    @property
    def url(self) -> str | None: ...

    @property
    def custom_properties(self) -> dict[str, str]: ...


class SelectorMode(StrEnum):
    """How a selector token is matched against entries."""

    AUTO = "auto"
    TITLE = "title"
    UUID = "uuid"


@dataclass(frozen=True)
class Selector:
    """A parsed entry selector."""

    mode: SelectorMode
    token: str


def parse_selector(text: str) -> Selector:
    """Split an optional ``uuid:`` / ``title:`` prefix off a selector."""
    text = text.strip()
    lowered = text.lower()
    for mode in (SelectorMode.UUID, SelectorMode.TITLE):
        prefix = f"{mode}:"
        if lowered.startswith(prefix):
            return Selector(mode, text[len(prefix) :].strip())
    return Selector(SelectorMode.AUTO, text)


def parse_uuid(token: str) -> UUID | None:
    """Parse a hyphenated, bare 32-hex, or brace-wrapped UUID. Return None if it is not one."""
    cleaned = token.strip().strip("{}").replace("-", "")
    if len(cleaned) != 32:
        return None
    try:
        return UUID(hex=cleaned)
    except ValueError:
        return None


class SecretStore:
    """An opened KeePass database, read many times and never written."""

    def __init__(self, entries: Iterable[SecretEntry]) -> None:
        """Initialize from entries in database order.

        Args:
            entries: Entry objects, normally ``PyKeePass.entries``.

        """
        self._entries: Sequence[SecretEntry] = list(entries)

    @classmethod
    def open(cls, path: Path, key_file: Path | None, password: SecretValue) -> Self:
        """Decrypt a KDBX database with the master password and optional key file.

        Raises:
            StoreError: File unreadable or credentials rejected.

        """
        from pykeepass import PyKeePass  # noqa: PLC0415
        from pykeepass.exceptions import CredentialsError, HeaderChecksumError, PayloadChecksumError  # noqa: PLC0415

        try:
            kp = PyKeePass(path, password=password.reveal(), keyfile=key_file)
        except CredentialsError:
            raise StoreError(f"Failed to open KeePass DB {path}: wrong password or key file.") from None
        except (HeaderChecksumError, PayloadChecksumError) as e:
            raise StoreError(f"Failed to open KeePass DB {path}: database is corrupted.") from e
        except OSError as e:
            raise StoreError(f"Failed to open KeePass DB {path}: {e.strerror or e}") from e
        store = cls(kp.entries)
        logger.info("Opened KeePass DB %s (%d entries)", path, len(store._entries))
        return store

    def find_entry(self, selector: str) -> SecretEntry | None:
        """Return the first entry matching the selector, or None."""
        parsed = parse_selector(selector)
        match parsed.mode:
            case SelectorMode.UUID:
                wanted = parse_uuid(parsed.token)
                if wanted is None:
                    return None
                return next((e for e in self._entries if e.uuid == wanted), None)
            case SelectorMode.TITLE:
                return next((e for e in self._entries if e.title == parsed.token), None)
            case SelectorMode.AUTO:
                wanted = parse_uuid(parsed.token)
                for entry in self._entries:
                    if wanted is not None and entry.uuid == wanted:
                        return entry
                    if entry.title == parsed.token:
                        return entry
                return None

    def require_entry(self, selector: str) -> SecretEntry:
        """Return the entry matching the selector.

        Raises:
            EntryNotFound: No entry matches.

        """
        entry = self.find_entry(selector)
        if entry is None:
            raise EntryNotFound(selector)
        return entry


def entry_field(entry: SecretEntry, field: str) -> str | None:
    """Read a standard field by alias, or a custom field by trimmed, case-insensitive name."""
    name = field.strip()
    key = name.lower()
    if key == "title":
        return entry.title
    if key in _USERNAME_ALIASES:
        return entry.username
    if key in _PASSWORD_ALIASES:
        return entry.password
    if key == "url":
        return entry.url

    custom = entry.custom_properties
    if name in custom:
        return custom[name]
    for custom_name, value in custom.items():
        if custom_name.strip().lower() == key:
            return value
    return None


def required_field(entry: SecretEntry, field: str, entry_label: str) -> SecretValue:
    """Read a field into a SecretValue.

    Raises:
        MissingField: Field absent from the entry.

    """
    value = entry_field(entry, field)
    if value is None:
        raise MissingField(field, entry_label)
    return SecretValue(value)


def ensure_non_empty(secret: SecretValue, label: str) -> None:
    """Reject a secret that is blank after trimming.

    Raises:
        EmptySecret: Secret is blank.

    """
    if secret.is_blank():
        raise EmptySecret(label)
