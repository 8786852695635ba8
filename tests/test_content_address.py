"""Reference classification and path sanitization."""
import pytest

from genvault.errors import ValidationError
from genvault.services.content_address import (
    AddressKind,
    durable_url,
    proxy_url_for,
    resolve,
    sanitize_path,
    strip_duplicate_container,
)

KNOWN = ("user-videos", "user-images", "media-thumbnails")


class TestResolve:
    def test_provider_content_url(self, settings):
        url = "https://res.openai.azure.com/openai/v1/video/generations/gen_1/content/thumbnail?api-version=preview"
        address = resolve(url, settings)
        assert address.kind is AddressKind.PROVIDER_EPHEMERAL
        assert address.media == "thumbnail"
        assert address.url == url
        assert not address.is_durable

    def test_durable_absolute_strips_base_path(self, settings):
        address = resolve("https://cdn.example.com/media/user-videos/u1/job_1.mp4", settings)
        assert address.kind is AddressKind.DURABLE_ABSOLUTE
        assert (address.container, address.path) == ("user-videos", "u1/job_1.mp4")

    def test_durable_absolute_round_trips_quoted_names(self, settings):
        url = durable_url(settings, "user-images", "u1/my photo.png")
        assert "%20" in url
        address = resolve(url, settings)
        assert address.path == "u1/my photo.png"

    def test_durable_relative(self, settings):
        address = resolve("user-videos/u1/job_1.mp4", settings)
        assert address.kind is AddressKind.DURABLE_RELATIVE
        assert address.qualified_path == "user-videos/u1/job_1.mp4"
        assert not address.inferred_container

    def test_container_named_key_taken_literally(self, settings):
        address = resolve("user-images/user-images/u1/a.png", settings)
        assert (address.container, address.path) == ("user-images", "user-images/u1/a.png")

    @pytest.mark.parametrize(
        "ref",
        [
            "https://cdn.example.com/media/user-videos/u1/job_1.mp4",
            "https://cdn.example.com/media/user-images/u1/my%20photo.png",
            "user-videos/u1/job_1.mp4",
            "/user-videos/u1/job_1.mp4",
            "user-videos/u1/./x/../job_1.mp4",
            "user-images/user-images/u1/a.png",
            "user-images/user-images/user-images/x.png",
            "clip.mp4",
            "photo.png",
            "job_1_thumbnail.jpg",
            "video/job_1_thumbnail.jpg",
        ],
    )
    def test_resolving_qualified_path_is_idempotent(self, settings, ref):
        first = resolve(ref, settings)
        again = resolve(first.qualified_path, settings)
        assert (again.container, again.path) == (first.container, first.path)
        assert resolve(again.qualified_path, settings) == again

    @pytest.mark.parametrize(
        "ref, container, path",
        [
            ("clip.mp4", "user-videos", "clip.mp4"),
            ("photo.png", "user-images", "photo.png"),
            ("job_1_thumbnail.jpg", "media-thumbnails", "video/job_1_thumbnail.jpg"),
            ("video/job_1_thumbnail.jpg", "media-thumbnails", "video/job_1_thumbnail.jpg"),
        ],
    )
    def test_bare_names_infer_container(self, settings, ref, container, path):
        address = resolve(ref, settings)
        assert address.inferred_container
        assert (address.container, address.path) == (container, path)

    @pytest.mark.parametrize(
        "ref",
        [
            "",
            "   ",
            "../etc/passwd",
            "user-videos/../../etc/passwd",
            "user-videos/../user-images/a.png",
            "a//b.mp4",
            "user-videos\\a.mp4",
            "https://evil.example.com/user-videos/a.mp4",
            "ftp://cdn.example.com/media/user-videos/a.mp4",
            "https://cdn.example.com/other/user-videos/a.mp4",
            "https://cdn.example.com/media/unknown/a.mp4",
            "https://cdn.example.com/media/user-videos/..%2F..%2Fsecret",
            "https://res.openai.azure.com/openai/v1/video/generations/jobs",
        ],
    )
    def test_rejected_references(self, settings, ref):
        with pytest.raises(ValidationError):
            resolve(ref, settings)


class TestSanitizePath:
    def test_clean_path_unchanged(self):
        assert sanitize_path("user-videos/u1/a.mp4", KNOWN) == "user-videos/u1/a.mp4"

    def test_leading_slash_dropped(self):
        assert sanitize_path("/user-videos/u1/a.mp4", KNOWN) == "user-videos/u1/a.mp4"

    def test_collapse_within_container_accepted(self):
        assert sanitize_path("user-videos/u1/./x/../a.mp4", KNOWN) == "user-videos/u1/a.mp4"

    def test_escape_rejected(self):
        with pytest.raises(ValidationError):
            sanitize_path("user-videos/../..", KNOWN)


def test_proxy_url_for(settings):
    assert proxy_url_for(None, settings) is None
    assert proxy_url_for("user-videos/u1/a.mp4", settings) == "/api/content?ref=user-videos%2Fu1%2Fa.mp4"


@pytest.mark.parametrize(
    "path, expected",
    [
        ("user-images/user-images/u1/a.png", "u1/a.png"),
        ("/user-images/user-images/u1/a.png", "u1/a.png"),
        ("user-images/u1/a.png", "user-images/u1/a.png"),
        ("user-videos/user-images/a.png", "user-videos/user-images/a.png"),
        ("a.png", "a.png"),
    ],
)
def test_strip_duplicate_container(settings, path, expected):
    assert strip_duplicate_container(path, settings) == expected
