"""Synchronous client for the TrueNAS v2.0 REST API (dataset unlock/lock, job status).

Response bodies vary between TrueNAS releases: the same endpoint may answer
with an object, a bare job id, a numeric string, a boolean, or nothing at
all. The parsers below dispatch on the decoded JSON shape instead of
assuming a fixed schema.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError, version
from types import TracebackType
from typing import Any, Self
from urllib.parse import urlsplit, urlunsplit

import httpx

from naslock.auth import Credential
from naslock.config import UnlockMode
from naslock.errors import (
    ApiError,
    ConfigError,
    JobNotFound,
    JobQueryError,
    NaslockError,
    ResponseParseError,
    TransportError,
)
from naslock.secret import SecretValue

logger = logging.getLogger(__name__)

UNLOCK_PATH = "api/v2.0/pool/dataset/unlock"
LOCK_PATH = "api/v2.0/pool/dataset/lock"
JOBS_PATH = "api/v2.0/core/get_jobs"

DEFAULT_TIMEOUT = 30.0
_JOB_ID_RE = re.compile(r"-?[0-9]+")


def _user_agent() -> str:
    try:
        return f"naslock/{version('naslock')}"
    except PackageNotFoundError:
        return "naslock"


USER_AGENT = _user_agent()


@dataclass(frozen=True)
class UnlockSecret:
    """Dataset secret sent as either ``passphrase`` or ``key``."""

    mode: UnlockMode
    value: SecretValue


@dataclass(frozen=True)
class UnlockRequest:
    """Parameters of a single-dataset unlock."""

    dataset: str
    secret: UnlockSecret
    recursive: bool = True
    force: bool = False
    toggle_attachments: bool = True


@dataclass(frozen=True)
class LockRequest:
    """Parameters of a dataset lock."""

    dataset: str
    force_umount: bool = False


@dataclass
class UnlockResult:
    """Parsed unlock response. Any subset of fields may be set."""

    job_id: int | None = None
    unlocked: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    message: str | None = None


@dataclass
class LockResult:
    """Parsed lock response. Any subset of fields may be set."""

    job_id: int | None = None
    locked: bool | None = None
    message: str | None = None


@dataclass(frozen=True)
class JobProgress:
    """Progress reported by a running job."""

    percent: float | None = None
    description: str | None = None


@dataclass(frozen=True)
class JobInfo:
    """A job record from ``core/get_jobs``."""

    id: int
    state: str | None = None
    error: str | None = None
    exception: str | None = None
    progress: JobProgress | None = None


# --- URL and payloads ---


def parse_base_url(host: str) -> httpx.URL:
    """Normalize a configured host into a bare origin URL ending in ``/``.

    The scheme defaults to https; path, query, and fragment are discarded.

    Raises:
        ConfigError: No host name could be parsed.

    """
    candidate = host.strip()
    if not candidate.lower().startswith(("http://", "https://")):
        candidate = f"https://{candidate}"
    candidate = candidate.rstrip("/")
    try:
        parts = urlsplit(candidate)
        hostname = parts.hostname
        _ = parts.port
    except ValueError as e:
        raise ConfigError(f"Invalid NAS host URL '{host}': {e}") from e
    if not hostname:
        raise ConfigError(f"Invalid NAS host URL '{host}'.")
    return httpx.URL(urlunsplit((parts.scheme.lower(), parts.netloc, "/", "", "")))


def build_unlock_payload(request: UnlockRequest) -> dict[str, Any]:
    """Build the ``pool/dataset/unlock`` body. Only the configured secret field is present."""
    dataset_entry: dict[str, Any] = {"name": request.dataset, str(request.secret.mode): request.secret.value.reveal()}
    return {
        "id": request.dataset,
        "unlock_options": {
            "recursive": request.recursive,
            "force": request.force,
            "toggle_attachments": request.toggle_attachments,
            "key_file": False,
            "datasets": [dataset_entry],
        },
    }


def build_lock_payload(request: LockRequest) -> dict[str, Any]:
    """Build the ``pool/dataset/lock`` body."""
    return {"id": request.dataset, "lock_options": {"force_umount": request.force_umount}}


# --- Response parsing ---


def _as_job_id(value: object) -> int | None:
    """Interpret an int or a numeric string as a job id."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if _JOB_ID_RE.fullmatch(text):
            return int(text)
        return None
    return None


def _render(value: object) -> str:
    """Render an opaque JSON value: strings verbatim, everything else as JSON."""
    return value if isinstance(value, str) else json.dumps(value)


def _decode(text: str) -> tuple[bool, Any]:
    """Decode JSON, returning (ok, value)."""
    try:
        return True, json.loads(text)
    except json.JSONDecodeError:
        return False, None


def parse_unlock_response(text: str) -> UnlockResult:
    """Parse a 2xx unlock body of any known shape."""
    trimmed = text.strip()
    if not trimmed:
        return UnlockResult()
    ok, value = _decode(trimmed)
    if not ok:
        return UnlockResult(message=trimmed)

    match value:
        case dict():
            result = UnlockResult(job_id=_as_job_id(value.get("job_id")))
            unlocked = value.get("unlocked")
            if isinstance(unlocked, list):
                result.unlocked = [item for item in unlocked if isinstance(item, str)]
            failed = value.get("failed")
            if isinstance(failed, dict):
                result.failed = {str(name): _render(reason) for name, reason in failed.items()}
            message = value.get("message")
            if isinstance(message, str):
                result.message = message
            return result
        case bool():
            return UnlockResult(message=json.dumps(value))
        case int() | str() if _as_job_id(value) is not None:
            return UnlockResult(job_id=_as_job_id(value))
        case _:
            return UnlockResult(message=_render(value))


def parse_lock_response(text: str) -> LockResult:
    """Parse a 2xx lock body of any known shape."""
    trimmed = text.strip()
    if not trimmed:
        return LockResult()
    ok, value = _decode(trimmed)
    if not ok:
        return LockResult(message=trimmed)

    match value:
        case dict():
            result = LockResult(job_id=_as_job_id(value.get("job_id")))
            locked = value.get("locked")
            if isinstance(locked, bool):
                result.locked = locked
            message = value.get("message")
            if isinstance(message, str):
                result.message = message
            return result
        case bool():
            return LockResult(locked=value)
        case int() | str() if _as_job_id(value) is not None:
            return LockResult(job_id=_as_job_id(value))
        case _:
            return LockResult(message=_render(value))


def _parse_progress(value: object) -> JobProgress | None:
    if not isinstance(value, dict):
        return None
    percent = value.get("percent")
    if isinstance(percent, bool) or not isinstance(percent, int | float):
        percent = None
    description = value.get("description")
    if not isinstance(description, str) or not description:
        description = None
    if percent is None and description is None:
        return None
    return JobProgress(percent=percent, description=description)


def _optional_text(value: object) -> str | None:
    if value is None:
        return None
    return _render(value)


def parse_job_response(text: str, job_id: int, endpoint: str = JOBS_PATH) -> JobInfo:
    """Find the record for job_id in a ``core/get_jobs`` body (a list of records or one record).

    Raises:
        ResponseParseError: Body is not JSON, or not a record or list of records.
        JobNotFound: No record carries the requested id.

    """
    trimmed = text.strip()
    ok, value = _decode(trimmed)
    if not ok:
        raise ResponseParseError(endpoint, f"invalid JSON: {trimmed[:200]!r}")

    match value:
        case list():
            records = value
        case dict():
            records = [value]
        case _:
            raise ResponseParseError(endpoint, f"expected a job list, got {trimmed[:200]!r}")

    for record in records:
        if isinstance(record, dict) and _as_job_id(record.get("id")) == job_id:
            state = record.get("state")
            return JobInfo(
                id=job_id,
                state=None if state is None else str(state),
                error=_optional_text(record.get("error")),
                exception=_optional_text(record.get("exception")),
                progress=_parse_progress(record.get("progress")),
            )
    raise JobNotFound(job_id, f"{endpoint} returned {len(records)} record(s)")


# --- Client ---


class TrueNASClient:
    """One HTTP session against a TrueNAS host, reused for unlock, lock, and job polling."""

    def __init__(
        self,
        host: str,
        credential: Credential,
        *,
        verify_tls: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            host: Configured host name or URL.
            credential: Resolved API credential, reused for every call.
            verify_tls: Verify the server certificate.
            timeout: Per-request timeout in seconds.
            transport: Optional transport override (tests).

        """
        self.base_url = parse_base_url(host)
        self._http = httpx.Client(
            auth=credential.to_auth(),
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            verify=verify_tls,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._http.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: TracebackType | None
    ) -> None:
        self.close()

    # --- Operations ---

    def unlock_dataset(self, request: UnlockRequest) -> UnlockResult:
        """Unlock a dataset.

        Raises:
            TransportError: No response.
            ApiError: Non-2xx status.

        """
        logger.info("Unlocking dataset %s (mode=%s)", request.dataset, request.secret.mode)
        response = self._send("POST", UNLOCK_PATH, json=build_unlock_payload(request))
        return parse_unlock_response(response.text)

    def lock_dataset(self, request: LockRequest) -> LockResult:
        """Lock a dataset.

        Raises:
            TransportError: No response.
            ApiError: Non-2xx status.

        """
        logger.info("Locking dataset %s (force_umount=%s)", request.dataset, request.force_umount)
        response = self._send("POST", LOCK_PATH, json=build_lock_payload(request))
        return parse_lock_response(response.text)

    def get_job(self, job_id: int) -> JobInfo:
        """Fetch a job record, trying the POST filter form first and the GET query form second.

        Raises:
            JobNotFound: Neither form returned a record for job_id.
            JobQueryError: Both forms failed and at least one failed for another reason.

        """
        try:
            response = self._send("POST", JOBS_PATH, json=[[["id", "=", job_id]]])
            return parse_job_response(response.text, job_id, f"POST {JOBS_PATH}")
        except (TransportError, ApiError, ResponseParseError, JobNotFound) as e:
            post_error: NaslockError = e
        logger.debug("Job query via POST failed (%s), retrying via GET", post_error)

        try:
            response = self._send("GET", JOBS_PATH, params={"id": job_id})
            return parse_job_response(response.text, job_id, f"GET {JOBS_PATH}")
        except (TransportError, ApiError, ResponseParseError, JobNotFound) as get_error:
            if isinstance(post_error, JobNotFound) and isinstance(get_error, JobNotFound):
                raise JobNotFound(job_id, f"POST: {post_error}; GET: {get_error}") from get_error
            raise JobQueryError(job_id, post_error, get_error) from get_error

    # --- Private helpers ---

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request to base_url/path and require a 2xx status.

        Raises:
            TransportError: No response.
            ApiError: Non-2xx status.

        """
        url = self.base_url.join(path)
        try:
            response = self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url}", str(e) or type(e).__name__) from e
        logger.debug("%s %s -> %d", method, url, response.status_code)
        if not response.is_success:
            raise ApiError(response.status_code, response.text.strip())
        return response
