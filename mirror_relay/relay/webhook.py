"""
Destination webhook HTTP client

Executes webhooks and fetches their profile for identity override.
"""

import json
import logging
import posixpath
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from mirror_relay.gateway.errors import DeliveryError, ProfileLookupError
from mirror_relay.gateway.protocol import CDN_URL

logger = logging.getLogger("mirror.relay.webhook")

USER_AGENT = "mirror-relay/1.0"


@dataclass
class RelayPayload:
    """Outbound payload for one destination"""
    content: str
    username: str
    avatar_url: Optional[str] = None
    files: List[str] = field(default_factory=list)
    embeds: List[Dict[str, Any]] = field(default_factory=list)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"content": self.content, "username": self.username}
        if self.avatar_url:
            body["avatar_url"] = self.avatar_url
        if self.embeds:
            body["embeds"] = self.embeds
        return body


@dataclass
class WebhookProfile:
    """A destination webhook's own identity"""
    name: str
    id: Optional[str] = None
    avatar: Optional[str] = None

    @classmethod
    def from_payload(cls, d: Dict[str, Any]) -> "WebhookProfile":
        return cls(name=d.get("name") or "", id=d.get("id"), avatar=d.get("avatar"))

    @property
    def avatar_url(self) -> Optional[str]:
        if not self.avatar or not self.id:
            return None
        ext = "gif" if self.avatar.startswith("a_") else "png"
        return f"{CDN_URL}/avatars/{self.id}/{self.avatar}.{ext}"


class WebhookClient:
    def __init__(
        self,
        timeout: float = 15.0,
        lookup_headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._lookup_headers = dict(lookup_headers or {})
        self._client = httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    async def execute(self, url: str, payload: RelayPayload) -> None:
        """Post the payload; file URLs are downloaded and uploaded as multipart"""
        body = payload.to_body()
        try:
            if payload.files:
                files = [
                    (f"files[{index}]", await self._download(file_url))
                    for index, file_url in enumerate(payload.files)
                ]
                resp = await self._client.post(
                    url, data={"payload_json": json.dumps(body)}, files=files
                )
            else:
                resp = await self._client.post(url, json=body)
        except httpx.HTTPError as e:
            raise DeliveryError(f"Webhook request failed: {e}", url=url) from e

        if resp.status_code >= 400:
            raise DeliveryError(
                f"HTTP {resp.status_code}: {resp.text[:200]}", url=url, status=resp.status_code
            )

    async def fetch_profile(self, url: str) -> WebhookProfile:
        """GET the webhook object to learn its configured name and avatar"""
        try:
            resp = await self._client.get(url, headers=self._lookup_headers)
        except httpx.HTTPError as e:
            raise ProfileLookupError(f"Webhook lookup failed: {e}", url=url) from e

        if resp.status_code >= 400:
            raise ProfileLookupError(
                f"HTTP {resp.status_code}: {resp.text[:200]}", url=url, status=resp.status_code
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise ProfileLookupError(f"Webhook lookup returned invalid JSON: {e}", url=url) from e
        if not isinstance(data, dict) or not data.get("name"):
            raise ProfileLookupError("Webhook lookup returned no name", url=url)
        return WebhookProfile.from_payload(data)

    async def _download(self, file_url: str) -> Tuple[str, bytes, str]:
        try:
            resp = await self._client.get(file_url)
        except httpx.HTTPError as e:
            raise DeliveryError(f"Failed to download {file_url}: {e}", url=file_url) from e
        if resp.status_code >= 400:
            raise DeliveryError(
                f"Failed to download {file_url}: HTTP {resp.status_code}",
                url=file_url, status=resp.status_code
            )

        filename = posixpath.basename(urlparse(file_url).path) or "file"
        content_type = resp.headers.get("content-type", "application/octet-stream")
        return filename, resp.content, content_type

    async def close(self) -> None:
        await self._client.aclose()
