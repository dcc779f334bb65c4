"""
WebhookClient Tests

Uses httpx.MockTransport so no request leaves the process.

File: tests/relay/test_webhook.py
"""

import json

import httpx
import pytest

from fakes import WEBHOOK_URL
from mirror_relay.gateway.errors import DeliveryError, ProfileLookupError
from mirror_relay.relay.webhook import RelayPayload, WebhookClient, WebhookProfile


def recording_transport(handler):
    requests = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return httpx.MockTransport(record), requests


class TestRelayPayload:
    def test_minimal_body(self):
        payload = RelayPayload(content="hi", username="alice")
        assert payload.to_body() == {"content": "hi", "username": "alice"}

    def test_full_body(self):
        payload = RelayPayload(
            content="hi", username="alice", avatar_url="https://cdn/a.jpg", embeds=[{"title": "t"}]
        )
        assert payload.to_body() == {
            "content": "hi",
            "username": "alice",
            "avatar_url": "https://cdn/a.jpg",
            "embeds": [{"title": "t"}],
        }


class TestWebhookProfile:
    def test_avatar_url(self):
        profile = WebhookProfile.from_payload({"name": "Relay Bot", "id": "111", "avatar": "abc"})
        assert profile.avatar_url == "https://cdn.discordapp.com/avatars/111/abc.png"

    def test_animated_avatar(self):
        profile = WebhookProfile(name="Relay Bot", id="111", avatar="a_abc")
        assert profile.avatar_url.endswith(".gif")

    def test_no_avatar(self):
        assert WebhookProfile(name="Relay Bot", id="111").avatar_url is None


class TestWebhookClient:
    """HTTP behaviour against a mock transport"""

    @pytest.mark.asyncio
    async def test_execute_posts_json(self):
        transport, requests = recording_transport(lambda r: httpx.Response(204))
        client = WebhookClient(transport=transport)

        await client.execute(WEBHOOK_URL, RelayPayload(content="hello", username="alice"))
        await client.close()

        assert len(requests) == 1
        assert requests[0].method == "POST"
        assert str(requests[0].url) == WEBHOOK_URL
        assert json.loads(requests[0].content) == {"content": "hello", "username": "alice"}

    @pytest.mark.asyncio
    async def test_execute_uploads_files_as_multipart(self):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, content=b"PNGDATA", headers={"content-type": "image/png"})
            return httpx.Response(200, json={"id": "1"})

        transport, requests = recording_transport(handler)
        client = WebhookClient(transport=transport)
        payload = RelayPayload(
            content="look", username="alice", files=["https://cdn.example/path/cat.png?ex=1"]
        )

        await client.execute(WEBHOOK_URL, payload)
        await client.close()

        download, post = requests
        assert download.method == "GET"
        assert post.method == "POST"
        assert post.headers["content-type"].startswith("multipart/form-data")
        body = post.content
        assert b'name="payload_json"' in body
        assert b'name="files[0]"; filename="cat.png"' in body
        assert b"PNGDATA" in body

    @pytest.mark.asyncio
    async def test_execute_http_error_raises(self):
        transport, _ = recording_transport(lambda r: httpx.Response(404, text="Unknown Webhook"))
        client = WebhookClient(transport=transport)

        with pytest.raises(DeliveryError) as exc_info:
            await client.execute(WEBHOOK_URL, RelayPayload(content="x", username="alice"))
        await client.close()

        assert exc_info.value.status == 404
        assert "Unknown Webhook" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_execute_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = WebhookClient(transport=httpx.MockTransport(handler))

        with pytest.raises(DeliveryError):
            await client.execute(WEBHOOK_URL, RelayPayload(content="x", username="alice"))
        await client.close()

    @pytest.mark.asyncio
    async def test_failed_download_raises(self):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(403)
            return httpx.Response(200)

        transport, requests = recording_transport(handler)
        client = WebhookClient(transport=transport)
        payload = RelayPayload(content="x", username="alice", files=["https://cdn.example/a.png"])

        with pytest.raises(DeliveryError):
            await client.execute(WEBHOOK_URL, payload)
        await client.close()

        assert [r.method for r in requests] == ["GET"]

    @pytest.mark.asyncio
    async def test_fetch_profile_sends_lookup_headers(self):
        transport, requests = recording_transport(
            lambda r: httpx.Response(200, json={"name": "Relay Bot", "id": "111", "avatar": None})
        )
        client = WebhookClient(transport=transport, lookup_headers={"Authorization": "Bot abc"})

        profile = await client.fetch_profile(WEBHOOK_URL)
        await client.close()

        assert profile.name == "Relay Bot"
        assert requests[0].method == "GET"
        assert requests[0].headers["authorization"] == "Bot abc"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(401, text="Unauthorized"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"id": "111"}),
        httpx.Response(200, json=["Relay Bot"]),
    ])
    async def test_fetch_profile_failures(self, response):
        client = WebhookClient(transport=httpx.MockTransport(lambda r: response))

        with pytest.raises(ProfileLookupError):
            await client.fetch_profile(WEBHOOK_URL)
        await client.close()
