import logging
import threading
from typing import Callable, Optional

from .backoff import IntervalController
from .engine import ENGINE_ERRORS, ContainerEngine, DockerEngine
from .health import HealthStatus
from .metrics import MetricsEmitter
from .models import BaseImage, BaseLayerID, BaseSelector, CycleOutcome, ProbeState, ProbeStep
from .settings import AppSettings
from .steps import ContainerCreationError, ProbeStepExecutor

logger = logging.getLogger(__name__)


class HaltedError(RuntimeError):
    """A cycle was requested after a structural failure halted the orchestrator."""


class ProbeOrchestrator:
    """
    Drives probe cycles: pull test image, (pull base image), delete the top
    layer, recreate it, push. Transient failures shorten the next sleep;
    structural failures mark the monitor unhealthy and stop all further cycles.
    """

    def __init__(
        self,
        executor: ProbeStepExecutor,
        health: HealthStatus,
        metrics: MetricsEmitter,
        interval: IntervalController,
        engine_factory: Callable[[], ContainerEngine],
        repository: str,
        base: Optional[BaseSelector] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.executor = executor
        self.health = health
        self.metrics = metrics
        self.interval = interval
        self.engine_factory = engine_factory
        self.repository = repository
        self.base = base
        self.on_fatal = on_fatal
        self.state = ProbeState.INIT
        self.fatal_error: Optional[BaseException] = None

        self._stop = threading.Event()
        self._sleep = sleep or self._interruptible_sleep
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        health: HealthStatus,
        metrics: MetricsEmitter,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
    ) -> "ProbeOrchestrator":
        return cls(
            executor=ProbeStepExecutor.from_settings(settings),
            health=health,
            metrics=metrics,
            interval=IntervalController(settings.TEST_INTERVAL),
            engine_factory=lambda: DockerEngine.connect(settings.DOCKER_BASE_URL, settings.DOCKER_TIMEOUT),
            repository=settings.REPOSITORY,
            base=settings.base_selector,
            on_fatal=on_fatal,
        )

    @property
    def halted(self) -> bool:
        return self.state is ProbeState.HALTED

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Runs the probe loop on a background thread."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="probe-orchestrator", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        """The probe loop. Returns when stopped, halted, or on a fatal error."""
        first_loop = True
        while not self._stop.is_set():
            if not first_loop:
                self.state = ProbeState.SLEEP
                logger.info("Sleeping for %s", self.interval.current)
                self._sleep(self.interval.current.total_seconds())
                if self._stop.is_set():
                    break
            first_loop = False

            try:
                self.run_cycle()
            except ContainerCreationError as e:
                logger.critical("%s", e)
                self.fatal_error = e
                self.health.set_healthy(False)
                self.state = ProbeState.HALTED
                if self.on_fatal:
                    self.on_fatal(e)
                return
            except Exception:
                # The cycle stopped at an unknown point; registry state can't be trusted.
                logger.exception("Uncaught loop exception in %s", self.state.value)
                self.health.set_healthy(False)
                self.state = ProbeState.HALTED

            if self.halted:
                logger.error("Monitor halted; restart the process to resume probing")
                return

    def run_cycle(self) -> CycleOutcome:
        """Executes exactly one cycle and applies its outcome."""
        if self.halted:
            raise HaltedError("orchestrator halted after a structural failure")

        logger.info("Starting test")
        self.health.set_status(True)

        try:
            engine = self.engine_factory()
        except ENGINE_ERRORS as e:
            logger.error("Could not connect to the container engine: %s", e)
            return self._apply(CycleOutcome.failure(ProbeStep.PULL_TEST, e))

        try:
            outcome = self._run_steps(engine)
        finally:
            engine.close()

        return self._apply(outcome)

    def resolve_base(self, engine: ContainerEngine) -> Optional[CycleOutcome]:
        """
        Uses the most recent history entry of the repository as base layer when
        no base image or layer id was configured.
        """
        if self.base is not None:
            return None

        logger.info("Missing base-image and base-layer-id; dynamically assigning base-layer-id")
        try:
            history = engine.history(self.repository)
        except ENGINE_ERRORS as e:
            logger.error("Failed to grab image ID: %s", e)
            return CycleOutcome.failure(ProbeStep.DELETE_LAYER, e)
        if not history:
            return CycleOutcome.failure(ProbeStep.DELETE_LAYER, LookupError(f"no history for {self.repository}"))

        self.base = BaseLayerID(id=history[0].id)
        logger.info("Assigning base-layer-id to %s", self.base.id)
        return None

    def _run_steps(self, engine: ContainerEngine) -> CycleOutcome:
        failed = self.resolve_base(engine)
        if failed:
            return failed

        self.state = ProbeState.PULL_TEST
        logger.info("Pulling test image")
        result = self.executor.pull_test_image(engine)
        if not result.ok:
            return result.outcome
        self.metrics.report_pull_time(result.elapsed)

        if isinstance(self.base, BaseImage):
            self.state = ProbeState.PULL_BASE
            logger.info("Pulling specified base image")
            result = self.executor.pull_base_image(engine)
            if not result.ok:
                return result.outcome

        self.state = ProbeState.DELETE_LAYER
        logger.info("Deleting top layer")
        result = self.executor.delete_top_layer(engine, self.base)
        if not result.ok:
            return result.outcome

        self.state = ProbeState.TAG_LAYER
        logger.info("Creating new top layer")
        result = self.executor.create_tag_layer(engine)
        if not result.ok:
            return result.outcome

        self.state = ProbeState.PUSH_TEST
        logger.info("Pushing test image")
        result = self.executor.push_test_image(engine)
        if not result.ok:
            return result.outcome
        self.metrics.report_push_time(result.elapsed)

        return CycleOutcome.success()

    def _apply(self, outcome: CycleOutcome) -> CycleOutcome:
        if outcome.is_structural:
            logger.error("Structural failure in %s: %s", outcome.step.value, outcome.cause)
            self.health.set_healthy(False)
            self.state = ProbeState.HALTED
            return outcome

        self.interval.record(outcome)
        if outcome.is_success:
            logger.info("Test successful")
            self.health.set_status(True)
            self.metrics.report_success()
        else:
            logger.warning("Transient failure in %s; retrying in %s", outcome.step.value, self.interval.current)
            self.health.set_status(False)
            self.metrics.report_failure()
        self.state = ProbeState.SLEEP
        return outcome

    def _interruptible_sleep(self, seconds: float) -> None:
        """Returns early once stop() is called."""
        self._stop.wait(seconds)
