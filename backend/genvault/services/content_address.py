from __future__ import annotations
"""Classification of opaque asset references into durable/provider addresses.

A single asset can be addressed three ways over its lifetime:

* provider-ephemeral: ``https://<provider>/openai/v1/video/generations/<gen>/content/video``
* durable-absolute:   ``<STORAGE_PUBLIC_BASE_URL>/<container>/<object path>``
* durable-relative:   ``<container>/<object path>`` or a bare legacy object name

``resolve`` turns any of them into a :class:`ContentAddress`. Durable paths are
sanitized so that a reference can never read outside its container.
"""

import enum
import logging
import posixpath
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

from genvault.config import Settings
from genvault.errors import ValidationError

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".webm", ".m4v"})

PROVIDER_CONTENT_PATH = re.compile(
    r"^/openai/v1/video/generations/(?P<generation_id>[^/]+)/content/(?P<kind>video|thumbnail)$"
)

_THUMBNAIL_NAME = re.compile(r"(^|[_\-.])thumb(nail)?([_\-.]|$)", re.IGNORECASE)


class AddressKind(str, enum.Enum):
    PROVIDER_EPHEMERAL = "provider_ephemeral"
    DURABLE_ABSOLUTE = "durable_absolute"
    DURABLE_RELATIVE = "durable_relative"


@dataclass(frozen=True)
class ContentAddress:
    """A resolved reference.

    Durable addresses carry ``container``/``path``; provider addresses carry
    ``url`` and the content ``media`` (``video`` or ``thumbnail``).
    """
    kind: AddressKind
    container: Optional[str] = None
    path: Optional[str] = None
    url: Optional[str] = None
    media: Optional[str] = None
    inferred_container: bool = False

    @property
    def is_durable(self) -> bool:
        return self.kind is not AddressKind.PROVIDER_EPHEMERAL

    @property
    def qualified_path(self) -> Optional[str]:
        if not self.is_durable:
            return None
        return f"{self.container}/{self.path}"

    @property
    def extension(self) -> str:
        target = self.path if self.is_durable else urlsplit(self.url or "").path
        return posixpath.splitext(target or "")[1].lower()


class _EscapesRoot(Exception):
    pass


def _collapse(path: str) -> str:
    """Collapse repeated ``/`` and ``.``/``..`` segments.

    Raises ``_EscapesRoot`` when ``..`` would climb above the root.
    """
    parts: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not parts:
                raise _EscapesRoot(path)
            parts.pop()
            continue
        parts.append(segment)
    return "/".join(parts)


def sanitize_path(path: str, known_containers: tuple[str, ...]) -> str:
    """Return the collapsed form of a durable-relative ``path``.

    A change is only accepted for an already container-prefixed path whose
    collapsed form stays in that same container; anything else that had to
    be rewritten is rejected.
    """
    if not path or "\\" in path or "\x00" in path:
        raise ValidationError("Invalid content reference")
    stripped = path.lstrip("/")
    try:
        collapsed = _collapse(stripped)
    except _EscapesRoot:
        raise ValidationError("Invalid content reference") from None
    if not collapsed:
        raise ValidationError("Invalid content reference")
    if collapsed == stripped:
        return collapsed

    first = stripped.split("/", 1)[0]
    if first in known_containers and collapsed.split("/", 1)[0] == first and "/" in collapsed:
        return collapsed
    logger.warning("Rejected content reference that required rewriting: %r", path)
    raise ValidationError("Invalid content reference")


def infer_container(path: str, settings: Settings) -> tuple[str, str]:
    """Container for a bare legacy object name.

    Deprecated compatibility shim for records written before the container
    was stored explicitly. New records always store container-qualified paths.
    """
    name = posixpath.basename(path)
    stem, ext = posixpath.splitext(name)
    if _THUMBNAIL_NAME.search(stem):
        prefix = settings.THUMBNAIL_PREFIX
        if prefix and not path.startswith(f"{prefix}/"):
            path = f"{prefix}/{path}"
        return settings.THUMBNAIL_CONTAINER, path
    if ext.lower() in VIDEO_EXTENSIONS:
        return settings.VIDEO_CONTAINER, path
    return settings.IMAGE_CONTAINER, path


def _split_container(path: str, settings: Settings) -> ContentAddress:
    first, _, rest = path.partition("/")
    if first in settings.known_containers and rest:
        return ContentAddress(AddressKind.DURABLE_RELATIVE, container=first, path=rest)
    container, object_path = infer_container(path, settings)
    logger.debug("Inferred container %s for legacy reference %s", container, path)
    return ContentAddress(
        AddressKind.DURABLE_RELATIVE,
        container=container,
        path=object_path,
        inferred_container=True,
    )


def strip_duplicate_container(path: str, settings: Settings) -> str:
    """Drop one repeated container prefix from a legacy ``path=`` value.

    Old clients sent the container twice (``user-images/user-images/x.png``).
    Only the legacy alias gets this treatment; ``ref`` values are taken
    literally so that resolving a qualified path is idempotent.
    """
    stripped = (path or "").lstrip("/")
    first, _, rest = stripped.partition("/")
    if first in settings.known_containers and rest.startswith(f"{first}/"):
        return rest
    return path


def _provider_host(settings: Settings) -> str:
    return (urlsplit(settings.SORA_ENDPOINT).hostname or "").lower()


def _storage_base(settings: Settings) -> tuple[str, str]:
    parts = urlsplit(settings.STORAGE_PUBLIC_BASE_URL)
    return (parts.hostname or "").lower(), parts.path.rstrip("/")


def resolve(ref: str, settings: Settings) -> ContentAddress:
    """Classify ``ref`` and normalize it into a proxy-fetchable address."""
    if ref is None or not ref.strip():
        raise ValidationError("A content reference is required")
    ref = ref.strip()

    if re.match(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://", ref):
        parts = urlsplit(ref)
        host = (parts.hostname or "").lower()
        if parts.scheme not in ("http", "https") or not host:
            raise ValidationError("Unsupported content reference")

        provider_host = _provider_host(settings)
        match = PROVIDER_CONTENT_PATH.match(parts.path)
        if provider_host and host == provider_host and match:
            return ContentAddress(
                AddressKind.PROVIDER_EPHEMERAL,
                url=ref,
                media=match.group("kind"),
            )

        storage_host, base_path = _storage_base(settings)
        if storage_host and host == storage_host:
            url_path = unquote(parts.path)
            if base_path:
                if not url_path.startswith(f"{base_path}/"):
                    raise ValidationError("Invalid content reference")
                url_path = url_path[len(base_path):]
            clean = sanitize_path(url_path, settings.known_containers)
            container, _, object_path = clean.partition("/")
            if container not in settings.known_containers or not object_path:
                raise ValidationError("Invalid content reference")
            return ContentAddress(
                AddressKind.DURABLE_ABSOLUTE,
                container=container,
                path=object_path,
            )

        raise ValidationError("Content reference host is not allowed")

    clean = sanitize_path(ref, settings.known_containers)
    return _split_container(clean, settings)


def durable_url(settings: Settings, container: str, path: str) -> str:
    """Absolute URL of a durable object (the durable-absolute form)."""
    base = settings.STORAGE_PUBLIC_BASE_URL.rstrip("/")
    return f"{base}/{container}/{quote(path)}"


def proxy_url_for(ref: Optional[str], settings: Settings) -> Optional[str]:
    """Unified read URL for any reference, or None."""
    if not ref:
        return None
    return f"{settings.PROXY_ROUTE}?ref={quote(ref, safe='')}"
