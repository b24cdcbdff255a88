"""Tests for the push gateway client."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from wakecheck.config import settings
from wakecheck.services.push import PushDeliveryError, PushMessage, send_push


def mock_client(response=None, error=None):
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client.post = AsyncMock(return_value=response, side_effect=error)
    return client


MESSAGE = PushMessage(
    token="device-token",
    title="Robin needs help waking up!",
    body="Their alarm has been going off for 5 minutes.",
    data={"type": "friend_alarm"},
    time_sensitive=True,
)


class TestSendPush:
    @pytest.mark.asyncio
    async def test_not_configured_raises(self, monkeypatch):
        monkeypatch.setattr(settings, "push_gateway_url", "")
        with pytest.raises(PushDeliveryError):
            await send_push(MESSAGE)

    @pytest.mark.asyncio
    async def test_accepted(self, monkeypatch):
        monkeypatch.setattr(settings, "push_gateway_url", "https://push.example/send")
        monkeypatch.setattr(settings, "push_api_key", "secret")
        client = mock_client(response=MagicMock(status_code=200, text="ok"))

        with patch("wakecheck.services.push.httpx.AsyncClient", return_value=client):
            assert await send_push(MESSAGE) is True

        kwargs = client.post.await_args.kwargs
        assert kwargs["headers"] == {"Authorization": "Bearer secret"}
        payload = kwargs["json"]["message"]
        assert payload["token"] == "device-token"
        assert payload["notification"]["title"] == MESSAGE.title
        assert payload["data"] == {"type": "friend_alarm"}
        assert payload["apns"]["payload"]["aps"]["interruption-level"] == "time-sensitive"

    @pytest.mark.asyncio
    async def test_gateway_error_status_raises(self, monkeypatch):
        monkeypatch.setattr(settings, "push_gateway_url", "https://push.example/send")
        client = mock_client(response=MagicMock(status_code=410, text="unregistered"))

        with patch("wakecheck.services.push.httpx.AsyncClient", return_value=client):
            with pytest.raises(PushDeliveryError, match="410"):
                await send_push(MESSAGE)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, monkeypatch):
        monkeypatch.setattr(settings, "push_gateway_url", "https://push.example/send")
        client = mock_client(error=httpx.ConnectTimeout("timed out"))

        with patch("wakecheck.services.push.httpx.AsyncClient", return_value=client):
            with pytest.raises(PushDeliveryError):
                await send_push(MESSAGE)
