from unittest.mock import MagicMock

from botocore.exceptions import ClientError, EndpointConnectionError
from prometheus_client import CollectorRegistry

from registry_monitor.metrics import CloudWatchSink, MetricsEmitter
from registry_monitor.settings import AppSettings

REQUIRED = dict(USERNAME="user", PASSWORD="secret", REGISTRY_HOST="registry.example.com", REPOSITORY="app")


def test_prometheus_counters_and_summaries() -> None:
    registry = CollectorRegistry()
    emitter = MetricsEmitter(registry)

    emitter.report_success()
    emitter.report_success()
    emitter.report_failure()
    emitter.report_pull_time(1.5)
    emitter.report_push_time(2.5)

    assert registry.get_sample_value("monitor_success_total") == 2
    assert registry.get_sample_value("monitor_failure_total") == 1
    assert registry.get_sample_value("monitor_pull_sum") == 1.5
    assert registry.get_sample_value("monitor_push_sum") == 2.5


def test_prometheus_namespace_prefixes_names() -> None:
    registry = CollectorRegistry()
    MetricsEmitter(registry, namespace="quay").report_success()
    assert registry.get_sample_value("quay_monitor_success_total") == 1


def test_cloudwatch_receives_each_event() -> None:
    client = MagicMock()
    emitter = MetricsEmitter(CollectorRegistry(), cloudwatch=CloudWatchSink(client, "Registry"))

    emitter.report_success()
    emitter.report_failure()
    emitter.report_pull_time(0.25)
    emitter.report_push_time(0.75)

    sent = [
        (call.kwargs["Namespace"], call.kwargs["MetricData"][0]["MetricName"], call.kwargs["MetricData"][0]["Unit"])
        for call in client.put_metric_data.call_args_list
    ]
    assert sent == [
        ("Registry", "MonitorSuccess", "Count"),
        ("Registry", "MonitorFailure", "Count"),
        ("Registry", "MonitorPullTime", "Seconds"),
        ("Registry", "MonitorPushTime", "Seconds"),
    ]


def test_cloudwatch_errors_are_swallowed() -> None:
    client = MagicMock()
    client.put_metric_data.side_effect = ClientError(
        {"Error": {"Code": "Throttling", "Message": "Rate exceeded"}}, "PutMetricData"
    )
    registry = CollectorRegistry()
    emitter = MetricsEmitter(registry, cloudwatch=CloudWatchSink(client, "Registry"))

    emitter.report_success()

    client.put_metric_data.side_effect = EndpointConnectionError(endpoint_url="https://monitoring.us-east-1")
    emitter.report_push_time(1.0)

    assert registry.get_sample_value("monitor_success_total") == 1
    assert client.put_metric_data.call_count == 2


def test_cloudwatch_requires_keys_and_namespace() -> None:
    assert CloudWatchSink.from_settings(AppSettings(**REQUIRED, AWS_ACCESS_KEY="a", AWS_SECRET_KEY="s")) is None
    assert CloudWatchSink.from_settings(AppSettings(**REQUIRED, AWS_ACCESS_KEY="a", CLOUDWATCH_NAMESPACE="n")) is None


def test_cloudwatch_uses_metric_name_overrides() -> None:
    settings = AppSettings(
        **REQUIRED,
        AWS_ACCESS_KEY="a",
        AWS_SECRET_KEY="s",
        CLOUDWATCH_NAMESPACE="Registry",
        CLOUDWATCH_REGION="eu-west-1",
        CLOUDWATCH_METRIC_SUCCESS="ProbeOk",
    )
    sink = CloudWatchSink.from_settings(settings)
    assert sink is not None
    assert sink.namespace == "Registry"
    assert sink.success_metric == "ProbeOk"
    assert sink.client.meta.region_name == "eu-west-1"


def test_cloudwatch_unexpected_errors_are_swallowed() -> None:
    client = MagicMock()
    client.put_metric_data.side_effect = RuntimeError("credential provider crashed")
    registry = CollectorRegistry()
    emitter = MetricsEmitter(registry, cloudwatch=CloudWatchSink(client, "Registry"))

    emitter.report_failure()
    emitter.report_pull_time(0.5)

    assert registry.get_sample_value("monitor_failure_total") == 1
    assert registry.get_sample_value("monitor_pull_count") == 1
