"""Tests for the volume unlock/lock workflows."""

import json
from dataclasses import dataclass, field
from uuid import UUID, uuid4

import httpx
import pytest

from naslock.bridge import lock_volume, unlock_volume
from naslock.config import Config
from naslock.errors import ConfigError, EmptySecret, JobFailed, LockFailed, UnlockFailed
from naslock.store import SecretStore
from naslock.truenas import JobProgress


@dataclass
class FakeEntry:
    """In-memory stand-in for pykeepass.entry.Entry."""

    title: str | None
    uuid: UUID = field(default_factory=uuid4)
    username: str | None = None
    password: str | None = None
    url: str | None = None
    custom_properties: dict[str, str] = field(default_factory=dict)


class FakeNas:
    """Scripted TrueNAS: records requests and answers per endpoint."""

    def __init__(self, unlock: object = None, lock: object = None, jobs: list[object] | None = None) -> None:
        self.unlock = unlock
        self.lock = lock
        self.jobs = list(jobs or [])
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        match request.url.path:
            case "/api/v2.0/pool/dataset/unlock":
                return httpx.Response(200, json=self.unlock)
            case "/api/v2.0/pool/dataset/lock":
                return httpx.Response(200, json=self.lock)
            case "/api/v2.0/core/get_jobs":
                return httpx.Response(200, json=[self.jobs.pop(0)])
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def cfg() -> Config:
    """One NAS with basic auth and one passphrase volume."""
    return Config.model_validate(
        {
            "keepass": {"path": "/tmp/db.kdbx"},
            "nas": {"main": {"host": "nas.local", "auth_entry": "title:nas-admin"}},
            "volume": {
                "tank": {
                    "nas": "main",
                    "dataset": "tank/secure",
                    "unlock_entry": "tank-key",
                    "unlock_field": "Passphrase",
                    "lock_force_umount": True,
                },
                "orphan": {"nas": "missing", "dataset": "x", "unlock_entry": "tank-key"},
            },
        }
    )


@pytest.fixture
def store() -> SecretStore:
    """Store with the NAS admin entry and the dataset passphrase entry."""
    return SecretStore(
        [
            FakeEntry(title="nas-admin", username="root", password="hunter2"),
            FakeEntry(title="tank-key", custom_properties={"Passphrase": "correct horse"}),
        ]
    )


class TestUnlockVolume:
    """unlock_volume outcomes."""

    def test_job_tracked_to_success(self, cfg: Config, store: SecretStore):
        """A job id is polled until SUCCESS, with progress emitted."""
        nas = FakeNas(
            unlock={"job_id": 42},
            jobs=[
                {"id": 42, "state": "RUNNING", "progress": {"percent": 50, "description": "Unlocking"}},
                {"id": 42, "state": "SUCCESS", "progress": {"percent": 100}},
            ],
        )
        progress: list[JobProgress] = []
        outcome = unlock_volume(cfg, store, "tank", on_progress=progress.append, poll_interval=0, transport=nas.transport)

        assert outcome.dataset == "tank/secure"
        assert outcome.job is not None
        assert outcome.job.id == 42
        assert [p.percent for p in progress] == [50, 100]
        body = json.loads(nas.requests[0].content)
        assert body["unlock_options"]["datasets"] == [{"name": "tank/secure", "passphrase": "correct horse"}]
        assert nas.requests[0].headers["Authorization"].startswith("Basic ")

    def test_unlocked_names_without_job(self, cfg: Config, store: SecretStore):
        """An immediate result with unlocked names needs no polling."""
        nas = FakeNas(unlock={"unlocked": ["tank/secure"]})
        outcome = unlock_volume(cfg, store, "tank", transport=nas.transport)
        assert outcome.job is None
        assert outcome.result.unlocked == ["tank/secure"]
        assert len(nas.requests) == 1

    def test_failed_map_is_failure_despite_partial_success(self, cfg: Config, store: SecretStore):
        """Per-dataset failures fail the operation even alongside unlocked names and a job id."""
        nas = FakeNas(unlock={"job_id": 1, "unlocked": ["tank/secure"], "failed": {"tank/secure/child": "Invalid key"}})
        with pytest.raises(UnlockFailed) as exc_info:
            unlock_volume(cfg, store, "tank", transport=nas.transport)
        assert exc_info.value.failed == {"tank/secure/child": "Invalid key"}
        assert "failed to unlock tank/secure/child: Invalid key" in str(exc_info.value)
        assert len(nas.requests) == 1

    def test_job_failure(self, cfg: Config, store: SecretStore):
        """A FAILED job surfaces JobFailed."""
        nas = FakeNas(unlock=42, jobs=[{"id": 42, "state": "FAILED", "error": "disk busy"}])
        with pytest.raises(JobFailed, match="disk busy"):
            unlock_volume(cfg, store, "tank", poll_interval=0, transport=nas.transport)

    def test_unknown_volume(self, cfg: Config, store: SecretStore):
        """Unknown volume raises ConfigError before any request."""
        with pytest.raises(ConfigError, match="Unknown volume"):
            unlock_volume(cfg, store, "nope", transport=FakeNas().transport)

    def test_unknown_nas(self, cfg: Config, store: SecretStore):
        """Volume referencing an unknown NAS raises ConfigError."""
        with pytest.raises(ConfigError, match="Unknown NAS 'missing'"):
            unlock_volume(cfg, store, "orphan", transport=FakeNas().transport)

    def test_blank_unlock_secret(self, cfg: Config):
        """A blank unlock secret is rejected before any request."""
        store = SecretStore(
            [
                FakeEntry(title="nas-admin", username="root", password="hunter2"),
                FakeEntry(title="tank-key", custom_properties={"Passphrase": " "}),
            ]
        )
        nas = FakeNas()
        with pytest.raises(EmptySecret, match="unlock secret"):
            unlock_volume(cfg, store, "tank", transport=nas.transport)
        assert nas.requests == []


class TestLockVolume:
    """lock_volume outcomes."""

    def test_locked_true(self, cfg: Config, store: SecretStore):
        """A bare true means locked; force_umount comes from the volume."""
        nas = FakeNas(lock=True)
        outcome = lock_volume(cfg, store, "tank", transport=nas.transport)
        assert outcome.result.locked is True
        assert json.loads(nas.requests[0].content) == {"id": "tank/secure", "lock_options": {"force_umount": True}}

    def test_job_tracked(self, cfg: Config, store: SecretStore):
        """A numeric-string job id is polled to completion."""
        nas = FakeNas(lock="17", jobs=[{"id": 17, "state": "SUCCESS"}])
        outcome = lock_volume(cfg, store, "tank", poll_interval=0, transport=nas.transport)
        assert outcome.job is not None
        assert outcome.job.id == 17

    def test_locked_false(self, cfg: Config, store: SecretStore):
        """A bare false raises LockFailed."""
        with pytest.raises(LockFailed):
            lock_volume(cfg, store, "tank", transport=FakeNas(lock=False).transport)
