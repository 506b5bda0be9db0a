import pytest
from pydantic import ValidationError

from registry_monitor.images import full_image_ref, image_path
from registry_monitor.models import BaseImage, BaseLayerID, ImageReference, select_base


def test_image_path_appends_latest() -> None:
    assert str(image_path("r")) == "r:latest"


def test_full_image_ref_without_base() -> None:
    assert str(full_image_ref("h", "r", "")) == "h/r:latest"


def test_full_image_ref_with_base() -> None:
    assert str(full_image_ref("h", "r", "b")) == "h/r/b:latest"


def test_reference_repository_drops_tag() -> None:
    ref = full_image_ref("quay.io", "team/app")
    assert ref.repository == "quay.io/team/app"
    assert ref.tag == "latest"


def test_reference_is_immutable() -> None:
    ref = ImageReference(repository_path="app")
    with pytest.raises(ValidationError):
        ref.tag = "v2"


def test_select_base_requires_exactly_one() -> None:
    assert select_base(base_image="busybox") == BaseImage(name="busybox")
    assert select_base(base_layer_id="sha256:abc") == BaseLayerID(id="sha256:abc")
    with pytest.raises(ValueError):
        select_base("busybox", "sha256:abc")
    with pytest.raises(ValueError):
        select_base()
