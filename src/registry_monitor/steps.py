import logging
import time
from typing import Optional

from .engine import ENGINE_ERRORS, ContainerEngine
from .images import full_image_ref, image_path
from .models import (
    BaseImage,
    BaseSelector,
    CycleOutcome,
    DeleteLayerResult,
    ProbeStep,
    StepResult,
)
from .settings import AppSettings

logger = logging.getLogger(__name__)

KILL_SIGNAL = "SIGKILL"


class ContainerCreationError(RuntimeError):
    """The tag-layer container could not be created or started. Fatal to the process."""


class ProbeStepExecutor:
    """
    Runs the individual probe steps against an engine session.
    Every engine failure is normalized into a CycleOutcome; nothing is raised
    except ContainerCreationError.
    """

    def __init__(
        self,
        registry_host: str,
        repository: str,
        base_image: str = "",
        public_base: bool = False,
        auth: Optional[dict] = None,
    ):
        self.registry_host = registry_host
        self.repository = repository
        self.base_image = base_image
        self.public_base = public_base
        self.auth = auth

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ProbeStepExecutor":
        return cls(
            registry_host=settings.REGISTRY_HOST,
            repository=settings.REPOSITORY,
            base_image=settings.BASE_IMAGE,
            public_base=settings.PUBLIC_BASE,
            auth=settings.registry_auth,
        )

    @property
    def pull_auth(self) -> Optional[dict]:
        return None if self.public_base else self.auth

    def pull_test_image(self, engine: ContainerEngine) -> StepResult:
        ref = image_path(self.repository)
        started = time.monotonic()
        try:
            engine.pull(ref, self.pull_auth)
        except ENGINE_ERRORS as e:
            logger.error("Pull Error: %s", e)
            return StepResult(outcome=CycleOutcome.failure(ProbeStep.PULL_TEST, e), elapsed=time.monotonic() - started)
        return StepResult(outcome=CycleOutcome.success(), elapsed=time.monotonic() - started)

    def pull_base_image(self, engine: ContainerEngine) -> StepResult:
        ref = full_image_ref(self.registry_host, self.repository, self.base_image)
        started = time.monotonic()
        try:
            engine.pull(ref, self.pull_auth)
        except ENGINE_ERRORS as e:
            logger.error("Pull Error: %s", e)
            return StepResult(outcome=CycleOutcome.failure(ProbeStep.PULL_BASE, e), elapsed=time.monotonic() - started)
        return StepResult(outcome=CycleOutcome.success(), elapsed=time.monotonic() - started)

    def history_target(self, base: BaseSelector) -> str:
        """What to read the history of: the pulled base image, or the base layer id."""
        if isinstance(base, BaseImage):
            return str(full_image_ref(self.registry_host, self.repository, base.name))
        return base.id

    def delete_top_layer(self, engine: ContainerEngine, base: BaseSelector) -> StepResult:
        """Removes the first history entry tagged `latest`, if there is one."""
        try:
            history = engine.history(self.history_target(base))
        except ENGINE_ERRORS as e:
            logger.error("%s", e)
            return StepResult(outcome=CycleOutcome.failure(ProbeStep.DELETE_LAYER, e))

        top = next((entry for entry in history if entry.is_tagged_latest()), None)
        if top is None:
            logger.info("No layer tagged latest in history; nothing to delete")
            return StepResult(outcome=CycleOutcome.success(), deletion=DeleteLayerResult.NO_LAYER_TO_DELETE)

        logger.info("Deleting image %s", top.id)
        try:
            engine.remove([top.id])
        except ENGINE_ERRORS as e:
            logger.error("%s", e)
            return StepResult(outcome=CycleOutcome.failure(ProbeStep.DELETE_LAYER, e))

        return StepResult(outcome=CycleOutcome.success(), deletion=DeleteLayerResult.DELETED, removed_image=top.id)

    def create_tag_layer(self, engine: ContainerEngine) -> StepResult:
        """
        Creates a container from the full reference, commits it as a new layer,
        starts it, kills it and removes it. Creation and start failures raise
        ContainerCreationError; commit, kill and remove failures are structural.
        """
        name = f"updatedcontainer{int(time.time())}"
        ref = full_image_ref(self.registry_host, self.repository, self.base_image)
        logger.info("Creating new image via container %s", name)

        try:
            container = engine.create_container(ref, name)
        except ENGINE_ERRORS as e:
            raise ContainerCreationError(f"Failed to create container {name} from {ref}: {e}") from e

        try:
            engine.commit(container)
        except ENGINE_ERRORS as e:
            logger.error("Error committing Container: %s", e)
            return StepResult(outcome=CycleOutcome.failure(ProbeStep.TAG_LAYER, e))

        try:
            engine.start(container)
        except ENGINE_ERRORS as e:
            raise ContainerCreationError(f"Failed to start container {name}: {e}") from e

        logger.info("Killing container: %s", name)
        try:
            engine.kill(container, KILL_SIGNAL)
        except ENGINE_ERRORS as e:
            logger.error("Error killing container: %s", e)
            return StepResult(outcome=CycleOutcome.failure(ProbeStep.TAG_LAYER, e))

        try:
            engine.remove_container(container)
        except ENGINE_ERRORS as e:
            logger.error("Error removing container: %s", e)
            return StepResult(outcome=CycleOutcome.failure(ProbeStep.TAG_LAYER, e))

        return StepResult(outcome=CycleOutcome.success())

    def push_test_image(self, engine: ContainerEngine) -> StepResult:
        source = full_image_ref(self.registry_host, self.repository)
        started = time.monotonic()
        try:
            engine.push(source, source, self.auth)
        except ENGINE_ERRORS as e:
            logger.error("Push Error: %s", e)
            return StepResult(outcome=CycleOutcome.failure(ProbeStep.PUSH_TEST, e), elapsed=time.monotonic() - started)
        return StepResult(outcome=CycleOutcome.success(), elapsed=time.monotonic() - started)
