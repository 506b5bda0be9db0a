from .models import ImageReference


def image_path(repository: str) -> ImageReference:
    """`repository:latest`, without a registry host."""
    return ImageReference(repository_path=repository)


def full_image_ref(registry_host: str, repository: str, base_image: str = "") -> ImageReference:
    """
    `host/repository/base_image:latest` when a base image is given,
    otherwise `host/repository:latest`.
    """
    if base_image:
        return ImageReference(registry_host=registry_host, repository_path=f"{repository}/{base_image}")
    return ImageReference(registry_host=registry_host, repository_path=repository)
