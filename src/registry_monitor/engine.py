import logging
from typing import Any, Optional, Protocol

import docker
import requests
from docker.errors import DockerException
from docker.models.containers import Container

from .models import HistoryEntry, ImageReference

logger = logging.getLogger(__name__)

# Everything the engine can raise for a failed call, timeouts included.
ENGINE_ERRORS = (DockerException, requests.exceptions.RequestException)


class PushError(DockerException):
    """The registry reported an error in the push progress stream."""


class ContainerEngine(Protocol):
    def pull(self, ref: ImageReference, auth: Optional[dict] = None) -> None: ...

    def history(self, ref: str) -> list[HistoryEntry]: ...

    def remove(self, ids: list[str]) -> None: ...

    def create_container(self, ref: ImageReference, name: str) -> Any: ...

    def commit(self, handle: Any) -> None: ...

    def start(self, handle: Any) -> None: ...

    def kill(self, handle: Any, signal: str) -> None: ...

    def remove_container(self, handle: Any) -> None: ...

    def push(self, src: ImageReference, dst: ImageReference, auth: Optional[dict] = None) -> None: ...

    def close(self) -> None: ...


class DockerEngine:
    """
    Container engine session over the Docker SDK.
    Works against dockerd or a Podman socket exposing the Docker-compatible API.
    """

    def __init__(self, client: docker.DockerClient):
        self.client = client

    @classmethod
    def connect(cls, base_url: str | None = None, timeout: int = 120) -> "DockerEngine":
        client = docker.DockerClient(base_url=base_url, timeout=timeout) if base_url else docker.from_env(timeout=timeout)
        return cls(client)

    def pull(self, ref: ImageReference, auth: Optional[dict] = None) -> None:
        logger.debug("Pulling %s", ref)
        self.client.images.pull(ref.repository, tag=ref.tag, auth_config=auth)

    def history(self, ref: str) -> list[HistoryEntry]:
        return [HistoryEntry(id=entry["Id"], tags=entry.get("Tags") or []) for entry in self.client.api.history(ref)]

    def remove(self, ids: list[str]) -> None:
        for image_id in ids:
            self.client.images.remove(image=image_id)

    def create_container(self, ref: ImageReference, name: str) -> Container:
        return self.client.containers.create(str(ref), name=name)

    def commit(self, handle: Container) -> None:
        handle.commit()

    def start(self, handle: Container) -> None:
        handle.start()

    def kill(self, handle: Container, signal: str) -> None:
        handle.kill(signal=signal)

    def remove_container(self, handle: Container) -> None:
        handle.remove(force=True)

    def push(self, src: ImageReference, dst: ImageReference, auth: Optional[dict] = None) -> None:
        """Pushes the local `src` image, already tagged as `dst`."""
        for line in self.client.images.push(dst.repository, tag=dst.tag, auth_config=auth, stream=True, decode=True):
            if "error" in line:
                raise PushError(line["error"])

    def close(self) -> None:
        self.client.close()
