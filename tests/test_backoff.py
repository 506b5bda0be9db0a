from datetime import timedelta

from docker.errors import DockerException

from registry_monitor.backoff import RETRY_INTERVAL, IntervalController
from registry_monitor.models import CycleOutcome, ProbeStep


def test_starts_at_configured_interval() -> None:
    controller = IntervalController(timedelta(minutes=5))
    assert controller.current == timedelta(minutes=5)


def test_transient_failure_shortens_to_retry_interval() -> None:
    controller = IntervalController(timedelta(minutes=5))
    controller.record(CycleOutcome.failure(ProbeStep.PUSH_TEST, DockerException("push")))
    assert controller.current == RETRY_INTERVAL == timedelta(seconds=30)


def test_success_restores_configured_interval() -> None:
    controller = IntervalController(timedelta(minutes=5))
    controller.record(CycleOutcome.failure(ProbeStep.PULL_TEST, DockerException("pull")))
    assert controller.record(CycleOutcome.success()) == timedelta(minutes=5)


def test_structural_failure_leaves_interval_alone() -> None:
    controller = IntervalController(timedelta(minutes=5))
    controller.record(CycleOutcome.failure(ProbeStep.PULL_TEST, DockerException("pull")))
    controller.record(CycleOutcome.failure(ProbeStep.TAG_LAYER, DockerException("commit")))
    assert controller.current == RETRY_INTERVAL
