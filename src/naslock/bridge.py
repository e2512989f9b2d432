"""Volume-level workflows: config -> KeePass -> credentials -> TrueNAS API -> job."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from naslock.auth import resolve_credential
from naslock.config import Config
from naslock.errors import LockFailed, UnlockFailed
from naslock.jobs import POLL_INTERVAL, JobTracker
from naslock.store import SecretStore, ensure_non_empty, required_field
from naslock.truenas import (
    JobInfo,
    JobProgress,
    LockRequest,
    LockResult,
    TrueNASClient,
    UnlockRequest,
    UnlockResult,
    UnlockSecret,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[JobProgress], None]


@dataclass(frozen=True)
class UnlockOutcome:
    """Result of a successful unlock, with the final job record when one was tracked."""

    dataset: str
    result: UnlockResult
    job: JobInfo | None = None


@dataclass(frozen=True)
class LockOutcome:
    """Result of a successful lock, with the final job record when one was tracked."""

    dataset: str
    result: LockResult
    job: JobInfo | None = None


def unlock_volume(
    cfg: Config,
    store: SecretStore,
    volume_name: str,
    *,
    on_progress: ProgressCallback | None = None,
    poll_interval: float = POLL_INTERVAL,
    transport: httpx.BaseTransport | None = None,
) -> UnlockOutcome:
    """Unlock a configured volume and wait for the resulting job, if any.

    Raises:
        ConfigError: Unknown volume or NAS.
        UnlockFailed: TrueNAS reported per-dataset failures.
        NaslockError: Any resolver, transport, API, or job error.

    """
    volume = cfg.get_volume(volume_name)
    nas = cfg.get_nas(volume.nas)
    logger.info("Unlock volume %s: nas=%s dataset=%s", volume_name, volume.nas, volume.dataset)

    unlock_entry = store.require_entry(volume.unlock_entry)
    with resolve_credential(store, nas) as credential, required_field(
        unlock_entry, volume.unlock_field, volume.unlock_entry
    ) as secret_value:
        ensure_non_empty(secret_value, "unlock secret")
        request = UnlockRequest(
            dataset=volume.dataset,
            secret=UnlockSecret(mode=volume.unlock_mode, value=secret_value),
            recursive=volume.recursive,
            force=volume.force,
            toggle_attachments=volume.toggle_attachments,
        )
        with TrueNASClient(
            nas.host, credential, verify_tls=not nas.skip_tls_verify, transport=transport
        ) as client:
            result = client.unlock_dataset(request)
            if result.failed:
                raise UnlockFailed(result.failed)
            job = None
            if result.job_id is not None:
                job = JobTracker(client, on_progress=on_progress, interval=poll_interval).wait(result.job_id)
    return UnlockOutcome(dataset=volume.dataset, result=result, job=job)


def lock_volume(
    cfg: Config,
    store: SecretStore,
    volume_name: str,
    *,
    on_progress: ProgressCallback | None = None,
    poll_interval: float = POLL_INTERVAL,
    transport: httpx.BaseTransport | None = None,
) -> LockOutcome:
    """Lock a configured volume and wait for the resulting job, if any.

    Raises:
        ConfigError: Unknown volume or NAS.
        LockFailed: TrueNAS answered that the dataset is not locked.
        NaslockError: Any resolver, transport, API, or job error.

    """
    volume = cfg.get_volume(volume_name)
    nas = cfg.get_nas(volume.nas)
    logger.info("Lock volume %s: nas=%s dataset=%s", volume_name, volume.nas, volume.dataset)

    request = LockRequest(dataset=volume.dataset, force_umount=volume.lock_force_umount)
    with resolve_credential(store, nas) as credential, TrueNASClient(
        nas.host, credential, verify_tls=not nas.skip_tls_verify, transport=transport
    ) as client:
        result = client.lock_dataset(request)
        if result.locked is False:
            raise LockFailed(volume.dataset)
        job = None
        if result.job_id is not None:
            job = JobTracker(client, on_progress=on_progress, interval=poll_interval).wait(result.job_id)
    return LockOutcome(dataset=volume.dataset, result=result, job=job)
