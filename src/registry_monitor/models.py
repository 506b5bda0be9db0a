from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ImageReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    registry_host: str = Field("", description="Registry hostname, empty for a bare reference")
    repository_path: str = Field(..., description="Repository, optionally with a nested base image")
    tag: str = "latest"

    def __str__(self) -> str:
        path = f"{self.repository_path}:{self.tag}"
        if self.registry_host:
            return f"{self.registry_host}/{path}"
        return path

    @property
    def repository(self) -> str:
        """The reference without its tag, as the Docker SDK expects it."""
        if self.registry_host:
            return f"{self.registry_host}/{self.repository_path}"
        return self.repository_path


class BaseImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)


class BaseLayerID(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)


BaseSelector = Union[BaseImage, BaseLayerID]


def select_base(base_image: str = "", base_layer_id: str = "") -> BaseSelector:
    """Builds a selector from operator input; exactly one value must be set."""
    if base_image and base_layer_id:
        raise ValueError("Both base-image and base-layer-id given; only one is allowed")
    if base_image:
        return BaseImage(name=base_image)
    if base_layer_id:
        return BaseLayerID(id=base_layer_id)
    raise ValueError("One of base-image or base-layer-id is required")


class HistoryEntry(BaseModel):
    id: str
    tags: list[str] = Field(default_factory=list)

    def is_tagged_latest(self) -> bool:
        return any(tag == "latest" or tag.endswith(":latest") for tag in self.tags)


class ProbeStep(str, Enum):
    PULL_TEST = "pull_test"
    PULL_BASE = "pull_base"
    DELETE_LAYER = "delete_layer"
    TAG_LAYER = "tag_layer"
    PUSH_TEST = "push_test"


class ProbeState(str, Enum):
    INIT = "init"
    PULL_TEST = "pull_test"
    PULL_BASE = "pull_base"
    DELETE_LAYER = "delete_layer"
    TAG_LAYER = "tag_layer"
    PUSH_TEST = "push_test"
    SLEEP = "sleep"
    HALTED = "halted"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    STRUCTURAL_FAILURE = "structural_failure"


TRANSIENT_STEPS = frozenset({ProbeStep.PULL_TEST, ProbeStep.PUSH_TEST})


class CycleOutcome(BaseModel):
    """Result of a probe step or of a whole cycle."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: OutcomeKind
    step: Optional[ProbeStep] = None
    cause: Optional[BaseException] = None

    @classmethod
    def success(cls) -> "CycleOutcome":
        return cls(kind=OutcomeKind.SUCCESS)

    @classmethod
    def failure(cls, step: ProbeStep, cause: BaseException) -> "CycleOutcome":
        """Classifies a failed step as transient (pull/push) or structural."""
        kind = OutcomeKind.TRANSIENT_FAILURE if step in TRANSIENT_STEPS else OutcomeKind.STRUCTURAL_FAILURE
        return cls(kind=kind, step=step, cause=cause)

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def is_transient(self) -> bool:
        return self.kind is OutcomeKind.TRANSIENT_FAILURE

    @property
    def is_structural(self) -> bool:
        return self.kind is OutcomeKind.STRUCTURAL_FAILURE


class DeleteLayerResult(str, Enum):
    DELETED = "deleted"
    NO_LAYER_TO_DELETE = "no_layer_to_delete"


class StepResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: CycleOutcome
    elapsed: float = Field(0.0, ge=0, description="Seconds spent in the step")
    deletion: Optional[DeleteLayerResult] = None
    removed_image: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome.is_success
