import logging
from datetime import datetime, timezone
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from prometheus_client import CollectorRegistry, Counter, Summary

from .settings import AppSettings

logger = logging.getLogger(__name__)


class CloudWatchSink:
    """Pushes single data points to CloudWatch. Errors are logged, never raised."""

    def __init__(
        self,
        client: Any,
        namespace: str,
        success_metric: str = "MonitorSuccess",
        failure_metric: str = "MonitorFailure",
        pull_time_metric: str = "MonitorPullTime",
        push_time_metric: str = "MonitorPushTime",
    ):
        self.client = client
        self.namespace = namespace
        self.success_metric = success_metric
        self.failure_metric = failure_metric
        self.pull_time_metric = pull_time_metric
        self.push_time_metric = push_time_metric

    @classmethod
    def from_settings(cls, settings: AppSettings) -> Optional["CloudWatchSink"]:
        if not settings.cloudwatch_enabled:
            return None

        logger.info("Configuring CloudWatch metrics reporting")
        client = boto3.client(
            "cloudwatch",
            region_name=settings.CLOUDWATCH_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY,
            aws_secret_access_key=settings.AWS_SECRET_KEY,
        )
        return cls(
            client,
            settings.CLOUDWATCH_NAMESPACE,
            success_metric=settings.CLOUDWATCH_METRIC_SUCCESS,
            failure_metric=settings.CLOUDWATCH_METRIC_FAILURE,
            pull_time_metric=settings.CLOUDWATCH_METRIC_PULL_TIME,
            push_time_metric=settings.CLOUDWATCH_METRIC_PUSH_TIME,
        )

    def put(self, metric_name: str, unit: str, value: float) -> None:
        try:
            self.client.put_metric_data(
                Namespace=self.namespace,
                MetricData=[
                    {
                        "MetricName": metric_name,
                        "Timestamp": datetime.now(timezone.utc),
                        "Unit": unit,
                        "Value": value,
                    }
                ],
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("Failure to put cloudwatch metric %s: %s", metric_name, e)
            return
        except Exception:
            logger.exception("Unexpected error putting cloudwatch metric %s", metric_name)
            return
        logger.debug("Reported %s to cloudwatch", metric_name)


class MetricsEmitter:
    """
    Fans the four probe events out to a Prometheus registry and, when
    configured, to CloudWatch.
    """

    def __init__(
        self,
        registry: CollectorRegistry,
        namespace: str = "",
        cloudwatch: Optional[CloudWatchSink] = None,
    ):
        self.registry = registry
        self.cloudwatch = cloudwatch

        self.success = Counter(
            "monitor_success",
            "The registry monitor successfully completed a pull and push operation",
            namespace=namespace,
            registry=registry,
        )
        self.failure = Counter(
            "monitor_failure",
            "The registry monitor failed to complete a pull and push operation",
            namespace=namespace,
            registry=registry,
        )
        self.pull_time = Summary(
            "monitor_pull",
            "The time for the monitor pull operation",
            namespace=namespace,
            registry=registry,
        )
        self.push_time = Summary(
            "monitor_push",
            "The time for the monitor push operation",
            namespace=namespace,
            registry=registry,
        )

    @classmethod
    def from_settings(cls, settings: AppSettings, registry: CollectorRegistry) -> "MetricsEmitter":
        return cls(registry, namespace=settings.PROMETHEUS_NAMESPACE, cloudwatch=CloudWatchSink.from_settings(settings))

    def report_success(self) -> None:
        self.success.inc()
        if self.cloudwatch:
            self.cloudwatch.put(self.cloudwatch.success_metric, "Count", 1)

    def report_failure(self) -> None:
        self.failure.inc()
        if self.cloudwatch:
            self.cloudwatch.put(self.cloudwatch.failure_metric, "Count", 1)

    def report_pull_time(self, seconds: float) -> None:
        self.pull_time.observe(seconds)
        if self.cloudwatch:
            self.cloudwatch.put(self.cloudwatch.pull_time_metric, "Seconds", seconds)

    def report_push_time(self, seconds: float) -> None:
        self.push_time.observe(seconds)
        if self.cloudwatch:
            self.cloudwatch.put(self.cloudwatch.push_time_metric, "Seconds", seconds)
