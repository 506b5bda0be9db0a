from datetime import timedelta

import pytest
from docker.errors import DockerException
from prometheus_client import CollectorRegistry

from registry_monitor.backoff import IntervalController
from registry_monitor.health import HealthStatus
from registry_monitor.metrics import MetricsEmitter
from registry_monitor.models import HistoryEntry
from registry_monitor.orchestrator import ProbeOrchestrator
from registry_monitor.steps import ProbeStepExecutor

CONFIGURED_INTERVAL = timedelta(minutes=2)


class FakeEngine:
    """In-memory container engine; `fail` maps a method name to the exception it raises."""

    def __init__(self, histories=None, fail=None):
        self.histories = histories or {}
        self.fail = dict(fail or {})
        self.calls = []
        self.closed = False

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail:
            raise self.fail[name]

    @property
    def call_names(self):
        return [call[0] for call in self.calls]

    def pull(self, ref, auth=None):
        self._record("pull", str(ref), auth)

    def history(self, ref):
        self._record("history", ref)
        return [HistoryEntry(id=entry["id"], tags=entry.get("tags", [])) for entry in self.histories.get(ref, [])]

    def remove(self, ids):
        self._record("remove", list(ids))

    def create_container(self, ref, name):
        self._record("create_container", str(ref), name)
        return "container-1"

    def commit(self, handle):
        self._record("commit", handle)

    def start(self, handle):
        self._record("start", handle)

    def kill(self, handle, signal):
        self._record("kill", handle, signal)

    def remove_container(self, handle):
        self._record("remove_container", handle)

    def push(self, src, dst, auth=None):
        self._record("push", str(src), str(dst), auth)

    def close(self):
        self.closed = True


def engine_error(message="boom"):
    return DockerException(message)


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return MetricsEmitter(registry)


@pytest.fixture
def health():
    return HealthStatus()


@pytest.fixture
def executor():
    return ProbeStepExecutor(
        registry_host="registry.example.com",
        repository="app",
        auth={"username": "user", "password": "secret"},
    )


@pytest.fixture
def make_orchestrator(executor, health, metrics):
    """Builds an orchestrator whose every cycle gets a fresh engine from `engines`."""

    def build(engines, base=None, sleep=None, on_fatal=None, probe_executor=None):
        sessions = iter(engines)
        return ProbeOrchestrator(
            executor=probe_executor or executor,
            health=health,
            metrics=metrics,
            interval=IntervalController(CONFIGURED_INTERVAL),
            engine_factory=lambda: next(sessions),
            repository="app",
            base=base,
            on_fatal=on_fatal,
            sleep=sleep,
        )

    return build
