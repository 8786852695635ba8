"""Sora video generation provider (Azure OpenAI video generation jobs API).

Endpoints, relative to the normalized resource base URL:
  POST   /openai/v1/video/generations/jobs                 → create job
  GET    /openai/v1/video/generations/jobs                 → list jobs
  GET    /openai/v1/video/generations/jobs/{job_id}        → job detail
  DELETE /openai/v1/video/generations/jobs/{job_id}        → cancel/delete
  GET    /openai/v1/video/generations/{gen_id}/content/{video|thumbnail}

Every call carries ``api-version`` and the ``api-key`` header.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote, urlsplit

import httpx

from genvault.config import Settings
from genvault.errors import PayloadTooLarge, ProviderRequestError, ValidationError

logger = logging.getLogger(__name__)

CONTENT_KINDS = ("video", "thumbnail")


@dataclass
class FetchedContent:
    """A fully buffered provider content download."""
    body: bytes
    content_type: Optional[str]
    size: int


def normalize_base_url(endpoint: str) -> str:
    """Reduce a configured endpoint to the resource base URL.

    Deployment-style endpoints
    (``https://res.openai.azure.com/openai/deployments/x/``) collapse to
    ``https://res.openai.azure.com``.
    """
    endpoint = (endpoint or "").strip()
    if "/openai/deployments/" in endpoint:
        match = re.match(r"(https://[^/]+\.openai\.azure\.com)", endpoint)
        base = match.group(1) if match else endpoint.split("/openai/")[0]
    elif ".openai.azure.com" in endpoint:
        base = endpoint
    else:
        base = endpoint.split("/v1/")[0] or endpoint
    return base.rstrip("/")


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class SoraClient:
    """Thin async client over the provider's video job API."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        endpoint: str,
        api_key: str,
        api_version: str = "preview",
        model: str = "sora",
    ) -> None:
        self._client = http_client
        self.base_url = normalize_base_url(endpoint)
        self._api_key = api_key
        self.api_version = api_version
        self.model = model

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient) -> "SoraClient":
        return cls(
            http_client,
            endpoint=settings.SORA_ENDPOINT,
            api_key=settings.SORA_API_KEY,
            api_version=settings.SORA_API_VERSION,
            model=settings.SORA_MODEL,
        )

    @property
    def host(self) -> str:
        return (urlsplit(self.base_url).hostname or "").lower()

    def _headers(self) -> dict[str, str]:
        if not self.base_url or not self._api_key:
            raise ProviderRequestError(
                503,
                {"message": "Video provider endpoint/key are not configured"},
                "Video provider is not configured",
            )
        return {"api-key": self._api_key, "Content-Type": "application/json"}

    def _url(self, path: str) -> str:
        return f"{self.base_url}/openai/v1/video/{path}?api-version={self.api_version}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = self._headers()
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Sora %s %s transport error: %s", method, url.split("?")[0], e)
            raise ProviderRequestError(502, {"message": str(e)}, "Video provider is unreachable") from e
        if not response.is_success:
            body = _error_body(response)
            logger.warning("Sora %s %s → %d: %s", method, url.split("?")[0], response.status_code, body)
            raise ProviderRequestError(response.status_code, body)
        return response

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def create_job(
        self,
        *,
        prompt: str,
        height: int,
        width: int,
        n_seconds: int,
        n_variants: int,
        model: str | None = None,
    ) -> dict[str, Any]:
        """Create a generation job; returns the provider's job document."""
        body = {
            "model": model or self.model,
            "prompt": prompt,
            "height": height,
            "width": width,
            "n_seconds": n_seconds,
            "n_variants": n_variants,
        }
        response = await self._request("POST", self._url("generations/jobs"), json=body)
        data = response.json()
        logger.info("Sora job created: %s (model=%s)", data.get("id"), body["model"])
        return data

    async def get_job(self, job_id: str) -> dict[str, Any]:
        url = self._url(f"generations/jobs/{quote(job_id, safe='')}")
        response = await self._request("GET", url)
        return response.json()

    async def list_jobs(self, limit: int | None = None) -> dict[str, Any]:
        url = self._url("generations/jobs")
        if limit:
            url = f"{url}&limit={int(limit)}"
        response = await self._request("GET", url)
        return response.json()

    async def delete_job(self, job_id: str) -> bool:
        """Cancel/delete a job. Returns False when it is already gone."""
        url = self._url(f"generations/jobs/{quote(job_id, safe='')}")
        try:
            await self._request("DELETE", url)
        except ProviderRequestError as e:
            if e.status == 404:
                logger.info("Sora job %s not found, already deleted", job_id)
                return False
            raise
        logger.info("Sora job %s deleted", job_id)
        return True

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def content_url(self, generation_id: str, kind: str = "video") -> str:
        if kind not in CONTENT_KINDS:
            raise ValueError(f"Unknown content kind: {kind}")
        return self._url(f"generations/{quote(generation_id, safe='')}/content/{kind}")

    def is_provider_url(self, url: str) -> bool:
        parts = urlsplit(url or "")
        return parts.scheme == "https" and bool(self.host) and (parts.hostname or "").lower() == self.host

    async def fetch_content(self, url: str, *, max_bytes: int) -> FetchedContent:
        """Download provider content fully into memory, bounded by ``max_bytes``.

        The provider credential is only ever sent to the provider's own host.
        """
        if not self.is_provider_url(url):
            raise ValidationError("Content URL does not belong to the video provider")
        headers = {"api-key": self._headers()["api-key"]}
        try:
            async with self._client.stream("GET", url, headers=headers) as response:
                if not response.is_success:
                    await response.aread()
                    body = _error_body(response)
                    logger.warning("Sora content fetch → %d: %s", response.status_code, body)
                    raise ProviderRequestError(response.status_code, body)

                declared = response.headers.get("content-length")
                if declared is not None and declared.isdigit() and int(declared) > max_bytes:
                    raise PayloadTooLarge(
                        "Content exceeds the size limit", limit=max_bytes, size=int(declared)
                    )

                chunks: list[bytes] = []
                total = 0
                async for chunk in response.aiter_bytes():
                    total += len(chunk)
                    if total > max_bytes:
                        logger.warning("Aborting provider download: exceeded %d bytes", max_bytes)
                        raise PayloadTooLarge("Content exceeds the size limit", limit=max_bytes)
                    chunks.append(chunk)
                content_type = response.headers.get("content-type")
        except httpx.HTTPError as e:
            logger.error("Sora content fetch transport error: %s", e)
            raise ProviderRequestError(502, {"message": str(e)}, "Video provider is unreachable") from e

        return FetchedContent(body=b"".join(chunks), content_type=content_type, size=total)
