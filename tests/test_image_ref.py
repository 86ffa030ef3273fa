"""Tests for image reference parsing."""

import pytest

from harbor_operator.webhooks.image_ref import (
    ImageReference,
    InvalidImageReference,
    parse_image_reference,
)

DIGEST = "sha256:" + "a" * 64


@pytest.mark.parametrize(
    ("image", "expected"),
    [
        ("nginx", ImageReference("docker.io", "library/nginx")),
        ("nginx:1.25", ImageReference("docker.io", "library/nginx", tag="1.25")),
        ("bitnami/redis:7", ImageReference("docker.io", "bitnami/redis", tag="7")),
        ("docker.io/library/busybox", ImageReference("docker.io", "library/busybox")),
        ("quay.io/prometheus/node-exporter", ImageReference("quay.io", "prometheus/node-exporter")),
        ("localhost/app", ImageReference("localhost", "app")),
        (
            "registry.local:5000/team/app:v2",
            ImageReference("registry.local:5000", "team/app", tag="v2"),
        ),
        (f"nginx@{DIGEST}", ImageReference("docker.io", "library/nginx", digest=DIGEST)),
        (
            f"ghcr.io/org/tool:1.0@{DIGEST}",
            ImageReference("ghcr.io", "org/tool", tag="1.0", digest=DIGEST),
        ),
    ],
)
def test_parse(image, expected):
    assert parse_image_reference(image) == expected


@pytest.mark.parametrize(
    "image",
    ["", " nginx", "nginx:", "Nginx", "org//app", "nginx@sha256:xyz", "bad host.io/app"],
)
def test_invalid(image):
    with pytest.raises(InvalidImageReference):
        parse_image_reference(image)


def test_relocate_keeps_path_tag_and_digest():
    ref = parse_image_reference(f"quay.io/org/app:v1@{DIGEST}")
    assert ref.relocate("harbor.example.com/mirror/") == (
        f"harbor.example.com/mirror/org/app:v1@{DIGEST}"
    )


def test_str_is_normalised_form():
    assert str(parse_image_reference("nginx:1.25")) == "docker.io/library/nginx:1.25"
