"""Shared test fixtures for Dockship."""

from __future__ import annotations

import threading
import time
from collections import Counter
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from dockship.config import parse_config
from dockship.core.artifact_store import ArtifactStoreError, EngineUnavailableError, tar_filename
from dockship.core.remote import BaseEndpoint, ConnectError, ProgressCallback, RemoteError, UploadError
from dockship.models.config import DistributionConfig, TargetHost
from dockship.models.transfer import CommandResult

TAR_BYTES = b"dockship-test-layer" * 64


# ---------------------------------------------------------------------------
# Fake local store
# ---------------------------------------------------------------------------


class FakeArtifactStore:
    """In-memory stand-in for the local container engine.

    Images listed in ``local`` exist already; everything else is pulled.
    ``fail_pull`` / ``fail_save`` name images whose step raises.
    """

    def __init__(
        self,
        temp_dir: Path,
        *,
        local: set[str] | None = None,
        fail_pull: set[str] | None = None,
        fail_save: set[str] | None = None,
        available: bool = True,
        fail_cleanup: bool = False,
    ) -> None:
        self.temp_dir = temp_dir
        self.local = set(local or ())
        self.fail_pull = set(fail_pull or ())
        self.fail_save = set(fail_save or ())
        self.available = available
        self.fail_cleanup = fail_cleanup
        self._lock = threading.Lock()
        self.calls: list[tuple[str, str]] = []

    def _record(self, op: str, name: str) -> None:
        with self._lock:
            self.calls.append((op, name))

    def count(self, op: str, name: str | None = None) -> int:
        with self._lock:
            return sum(1 for o, n in self.calls if o == op and (name is None or n == name))

    def check_available(self) -> None:
        self._record("check", "")
        if not self.available:
            raise EngineUnavailableError("docker daemon not running")

    def exists(self, name: str) -> bool:
        self._record("exists", name)
        return name in self.local

    def pull(self, name: str) -> None:
        self._record("pull", name)
        if name in self.fail_pull:
            raise ArtifactStoreError(f"failed to pull image {name}: not found")
        with self._lock:
            self.local.add(name)

    def save(self, name: str) -> Path:
        self._record("save", name)
        if name in self.fail_save:
            raise ArtifactStoreError(f"failed to save image {name}: disk full")
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        path = self.temp_dir / tar_filename(name)
        path.write_bytes(TAR_BYTES)
        return path

    def cleanup(self, path: Path) -> None:
        self._record("cleanup", str(path))
        if self.fail_cleanup:
            raise ArtifactStoreError(f"failed to remove {path}: permission denied")
        Path(path).unlink()


# ---------------------------------------------------------------------------
# Fake remote hosts
# ---------------------------------------------------------------------------


class FakeCluster:
    """Scriptable behaviour and recorded activity for a set of fake hosts.

    Failure plans count per host (``connect_failures``) or per
    (host, remote file) pair (``upload_failures``, ``load_failures``), so
    "fail the first N attempts" applies to each artifact separately.
    """

    def __init__(self) -> None:
        self.connect_failures: dict[str, int] = {}
        self.upload_failures: dict[str, int] = {}
        self.load_failures: dict[str, int] = {}
        self.unavailable: set[str] = set()
        self.hook_exit: dict[str, int] = {}
        self.remove_fails: set[str] = set()
        self.close_fails: set[str] = set()
        self.upload_delay = 0.0

        self._lock = threading.Lock()
        self._counts: Counter[tuple[str, ...]] = Counter()
        self.connects: list[str] = []
        self.closes: list[str] = []
        self.commands: list[tuple[str, str]] = []
        self.uploads: list[tuple[str, str]] = []
        self.loads: list[tuple[str, str]] = []
        self.removed: list[tuple[str, str]] = []
        self._active: Counter[str] = Counter()
        self.peak_uploads: Counter[str] = Counter()

    def _bump(self, *key: str) -> int:
        with self._lock:
            self._counts[key] += 1
            return self._counts[key]

    def _append(self, target: list, item: Any) -> None:
        with self._lock:
            target.append(item)

    def factory(self, host: TargetHost) -> FakeEndpoint:
        return FakeEndpoint(host, self)

    def commands_for(self, host: str) -> list[str]:
        with self._lock:
            return [c for h, c in self.commands if h == host]


class FakeEndpoint(BaseEndpoint):
    """``BaseEndpoint`` over a ``FakeCluster`` instead of a network session."""

    def __init__(self, target: TargetHost, cluster: FakeCluster) -> None:
        super().__init__(target.name)
        self.target = target
        self.cluster = cluster
        self.connected = False

    def connect(self) -> None:
        c = self.cluster
        n = c._bump("connect", self.host)
        c._append(c.connects, self.host)
        if n <= c.connect_failures.get(self.host, 0):
            raise ConnectError(f"failed to connect to {self.host}: connection refused")
        self.connected = True

    def close(self) -> None:
        self.connected = False
        self.cluster._append(self.cluster.closes, self.host)
        if self.host in self.cluster.close_fails:
            raise RemoteError("socket already closed")

    def run_command(self, command: str) -> CommandResult:
        c = self.cluster
        c._append(c.commands, (self.host, command))
        if command == "docker version":
            status = 1 if self.host in c.unavailable else 0
            return CommandResult(command=command, exit_status=status, output="Docker 24.0")
        if command.startswith("docker load"):
            remote = command.rsplit(" ", 1)[-1]
            n = c._bump("load", self.host, remote)
            c._append(c.loads, (self.host, remote))
            if n <= c.load_failures.get(self.host, 0):
                return CommandResult(command=command, exit_status=1, output="invalid tar header")
            return CommandResult(command=command, exit_status=0, output="Loaded image")
        status = c.hook_exit.get(command, 0)
        return CommandResult(command=command, exit_status=status, output=f"ran {command}")

    def upload(
        self, local_path: Path, remote_path: str, progress: ProgressCallback | None = None
    ) -> None:
        c = self.cluster
        n = c._bump("upload", self.host, remote_path)
        c._append(c.uploads, (self.host, remote_path))
        with c._lock:
            c._active[remote_path] += 1
            c.peak_uploads[remote_path] = max(c.peak_uploads[remote_path], c._active[remote_path])
        try:
            if c.upload_delay:
                time.sleep(c.upload_delay)
            if n <= c.upload_failures.get(self.host, 0):
                raise UploadError(f"upload to {self.host} failed after 0 bytes: broken pipe")
            total = Path(local_path).stat().st_size
            if progress is not None:
                progress(total // 2, total)
                progress(total, total)
        finally:
            with c._lock:
                c._active[remote_path] -= 1

    def remove_remote(self, path: str) -> None:
        c = self.cluster
        if self.host in c.remove_fails:
            raise RemoteError(f"failed to remove {path} on {self.host}: permission denied")
        c._append(c.removed, (self.host, path))


# ---------------------------------------------------------------------------
# Recording collaborators
# ---------------------------------------------------------------------------


class RecordingProgress:
    """Progress reporter that remembers every call."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.started: list[tuple[str, str, int]] = []
        self.updates: dict[int, list[int]] = {}
        self.finished: dict[int, bool] = {}

    def start_transfer(self, host: str, artifact: str, total: int) -> int:
        with self._lock:
            self.started.append((host, artifact, total))
            handle = len(self.started)
            self.updates[handle] = []
            return handle

    def update(self, handle: int, completed: int) -> None:
        with self._lock:
            self.updates[handle].append(completed)

    def finish(self, handle: int, success: bool) -> None:
        with self._lock:
            self.finished[handle] = success


class RecordingBackoff:
    """Backoff that records attempts instead of sleeping."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.waits: list[int] = []

    def wait(self, attempt: int) -> None:
        with self._lock:
            self.waits.append(attempt)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def cluster() -> FakeCluster:
    """Provide a fresh set of fake target hosts."""
    return FakeCluster()


@pytest.fixture
def store(tmp_dir: Path) -> FakeArtifactStore:
    """Provide a fake local store writing tar files under the temp dir."""
    return FakeArtifactStore(tmp_dir / "local")


@pytest.fixture
def progress() -> RecordingProgress:
    return RecordingProgress()


@pytest.fixture
def backoff() -> RecordingBackoff:
    return RecordingBackoff()


@pytest.fixture
def make_config(tmp_dir: Path) -> Callable[..., DistributionConfig]:
    """Factory fixture: build a DistributionConfig with password auth."""

    def _factory(
        images: list[str] | None = None,
        hosts: list[str] | None = None,
        *,
        concurrent: int = 2,
        retry: int = 3,
        pre_load: list[str] | None = None,
        post_load: list[str] | None = None,
        local_cleanup: bool = True,
        remote_cleanup: bool = True,
        remote_dir: str = "/tmp/images",
    ) -> DistributionConfig:
        data: dict[str, Any] = {
            "images": images or ["nginx:latest"],
            "target_hosts": hosts or ["10.0.0.1"],
            "ssh": {"user": "deploy", "pwd": "secret"},
            "local_storage": {"temp_dir": str(tmp_dir / "local"), "auto_cleanup": local_cleanup},
            "remote_storage": {"temp_dir": remote_dir, "auto_cleanup": remote_cleanup},
            "transfer": {"concurrent": concurrent, "retry": retry, "retry_delay": 0},
            "hooks": {"pre_load": pre_load or [], "post_load": post_load or []},
        }
        return parse_config(data)

    return _factory


@pytest.fixture
def write_config(tmp_dir: Path) -> Callable[[str], Path]:
    """Factory fixture: write YAML text to a config file and return its path."""

    def _write(text: str, name: str = "config.yaml") -> Path:
        path = tmp_dir / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write
