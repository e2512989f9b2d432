"""Error taxonomy shared by every naslock layer."""


class NaslockError(Exception):
    """Application-level error with a machine-readable code."""

    def __init__(self, code: str, message: str) -> None:
        """Initialize with a machine-readable code and a human-readable message.

        Args:
            code: Machine-readable error code (e.g. "entry_not_found").
            message: Human-readable error description.

        """
        super().__init__(message)
        self.code = code


class ConfigError(NaslockError):
    """Configuration file missing, malformed, or referencing unknown names."""

    def __init__(self, message: str) -> None:
        super().__init__("config_error", message)


class StoreError(NaslockError):
    """KeePass database could not be opened."""

    def __init__(self, message: str) -> None:
        super().__init__("store_error", message)


class EntryNotFound(NaslockError):
    """No KeePass entry matches a selector."""

    def __init__(self, selector: str) -> None:
        super().__init__("entry_not_found", f"KeePass entry not found: {selector}")
        self.selector = selector


class MissingField(NaslockError):
    """A KeePass entry lacks the requested field."""

    def __init__(self, field: str, entry_label: str) -> None:
        super().__init__("missing_field", f"Missing field '{field}' in KeePass entry {entry_label}")
        self.field = field
        self.entry_label = entry_label


class EmptySecret(NaslockError):
    """A resolved secret is blank after trimming."""

    def __init__(self, label: str) -> None:
        super().__init__("empty_secret", f"Empty secret for {label}")
        self.label = label


class TransportError(NaslockError):
    """The HTTP request never produced a response."""

    def __init__(self, endpoint: str, cause: str) -> None:
        super().__init__("transport_error", f"Request to {endpoint} failed: {cause}")
        self.endpoint = endpoint


class ApiError(NaslockError):
    """TrueNAS answered with a non-2xx status."""

    def __init__(self, status: int, body: str) -> None:
        super().__init__("api_error", f"TrueNAS API error ({status}): {body}")
        self.status = status
        self.body = body


class ResponseParseError(NaslockError):
    """A response body could not be interpreted."""

    def __init__(self, endpoint: str, detail: str) -> None:
        super().__init__("response_parse_error", f"Unexpected response from {endpoint}: {detail}")
        self.endpoint = endpoint


class JobNotFound(NaslockError):
    """The job query returned no record for the requested id."""

    def __init__(self, job_id: int, detail: str = "") -> None:
        message = f"Job {job_id} not found"
        if detail:
            message = f"{message} ({detail})"
        super().__init__("job_not_found", message)
        self.job_id = job_id


class JobQueryError(NaslockError):
    """Both the POST and the GET job query failed."""

    def __init__(self, job_id: int, post_error: NaslockError, get_error: NaslockError) -> None:
        super().__init__("job_query_error", f"Failed to query job {job_id}: POST: {post_error}; GET: {get_error}")
        self.job_id = job_id
        self.post_error = post_error
        self.get_error = get_error


class JobFailed(NaslockError):
    """The server reported the job as FAILED or ABORTED."""

    def __init__(self, job_id: int, detail: str) -> None:
        super().__init__("job_failed", f"Job {job_id} failed: {detail}")
        self.job_id = job_id
        self.detail = detail


class UnlockFailed(NaslockError):
    """TrueNAS reported per-dataset unlock failures."""

    def __init__(self, failed: dict[str, str]) -> None:
        lines = [f"failed to unlock {name}: {reason}" for name, reason in failed.items()]
        super().__init__("unlock_failed", "Unlock failed:\n" + "\n".join(lines))
        self.failed = failed


class LockFailed(NaslockError):
    """TrueNAS reported that the dataset was not locked."""

    def __init__(self, dataset: str) -> None:
        super().__init__("lock_failed", f"Dataset {dataset} was not locked.")
        self.dataset = dataset
