import argparse
import logging
import sys

import uvicorn
from prometheus_client import CollectorRegistry
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from .health import HealthStatus
from .metrics import MetricsEmitter
from .orchestrator import ProbeOrchestrator
from .server import create_app
from .settings import AppSettings, get_settings

console = Console()
logger = logging.getLogger("registry_monitor")

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
}


def build_parser() -> argparse.ArgumentParser:
    """Flags override environment variables (REGISTRY_MONITOR_*) and defaults."""
    parser = argparse.ArgumentParser(prog="registry-monitor", argument_default=argparse.SUPPRESS)
    parser.add_argument("--listen", dest="LISTEN")
    parser.add_argument("--loglevel", dest="LOG_LEVEL", help="debug, info, warn, error, fatal, panic")
    parser.add_argument("--username", dest="USERNAME", help="Registry username for pulling and pushing")
    parser.add_argument("--password", dest="PASSWORD", help="Registry password for pulling and pushing")
    parser.add_argument("--registry-host", dest="REGISTRY_HOST", help="Hostname of the registry being monitored")
    parser.add_argument("--repository", dest="REPOSITORY", help="Repository on the registry to pull and push")
    parser.add_argument("--base-image", dest="BASE_IMAGE", help="Base image for the pushed image; instead of base-layer-id")
    parser.add_argument("--base-layer-id", dest="BASE_LAYER_ID", help="ID of the base layer in the repository; instead of base-image")
    parser.add_argument("--public-base", dest="PUBLIC_BASE", action="store_true", help="The base image is public")
    parser.add_argument("--run-test-every", dest="TEST_INTERVAL", help="Time between tests, e.g. 2m")
    parser.add_argument("--docker-host", dest="DOCKER_BASE_URL", help="Docker or Podman API socket URL")
    parser.add_argument("--aws-access-key", dest="AWS_ACCESS_KEY")
    parser.add_argument("--aws-secret-key", dest="AWS_SECRET_KEY")
    parser.add_argument("--cloudwatch-region", dest="CLOUDWATCH_REGION")
    parser.add_argument("--cloudwatch-namespace", dest="CLOUDWATCH_NAMESPACE")
    parser.add_argument("--cloudwatch-metric-success", dest="CLOUDWATCH_METRIC_SUCCESS")
    parser.add_argument("--cloudwatch-metric-failure", dest="CLOUDWATCH_METRIC_FAILURE")
    parser.add_argument("--cloudwatch-metric-pull-time", dest="CLOUDWATCH_METRIC_PULL_TIME")
    parser.add_argument("--cloudwatch-metric-push-time", dest="CLOUDWATCH_METRIC_PUSH_TIME")
    return parser


def load_settings(argv: list[str] | None = None) -> AppSettings:
    overrides = vars(build_parser().parse_args(argv))
    return get_settings(**overrides)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=LOG_LEVELS[level],
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def main(argv: list[str] | None = None) -> int:
    try:
        settings = load_settings(argv)
    except ValidationError as e:
        console.print(f"[bold red]Fatal: invalid configuration[/]\n{e}")
        return 1

    configure_logging(settings.LOG_LEVEL)
    host, port = settings.listen_address

    console.print(
        Panel.fit(
            "[bold emerald]Registry Monitor[/bold emerald]\n"
            f"Registry: [blue]{settings.REGISTRY_HOST}/{settings.REPOSITORY}[/blue]\n"
            f"Interval: [blue]{settings.TEST_INTERVAL}[/blue]\n"
            f"Listen: [blue]{host}:{port}[/blue]",
            title="System Start",
        )
    )

    registry = CollectorRegistry()
    health = HealthStatus()
    metrics = MetricsEmitter.from_settings(settings, registry)
    server = uvicorn.Server(
        uvicorn.Config(create_app(health, registry), host=host, port=port, log_level=LOG_LEVELS[settings.LOG_LEVEL])
    )

    def on_fatal(error: BaseException) -> None:
        server.should_exit = True

    orchestrator = ProbeOrchestrator.from_settings(settings, health, metrics, on_fatal=on_fatal)
    orchestrator.start()

    logger.info("Listening on %s:%s", host, port)
    server.run()
    orchestrator.stop(timeout=5)

    if orchestrator.fatal_error is not None:
        console.print(f"[bold red]Fatal: {orchestrator.fatal_error}[/bold red]")
        return 1

    console.print("[bold red]System Offline.[/bold red]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
