"""Tests for verification-code delivery (mocked HTTP)."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from beatstore.services import notification_service


@pytest.fixture
def webhook_url(monkeypatch):
    from beatstore.config import settings

    monkeypatch.setattr(settings, "notification_webhook_url", "https://notify.example.com/codes")
    return settings.notification_webhook_url


def _mock_client(mock_client_cls, *, status_code=200, side_effect=None):
    mock_resp = MagicMock()
    mock_resp.status_code = status_code
    mock_client = AsyncMock()
    mock_client.post = AsyncMock(return_value=mock_resp, side_effect=side_effect)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = mock_client
    return mock_client


async def test_no_channel_configured_only_logs(monkeypatch):
    from beatstore.config import settings

    monkeypatch.setattr(settings, "notification_webhook_url", "")
    with patch("beatstore.services.notification_service.httpx.AsyncClient") as mock_client_cls:
        sent = await notification_service.send_verification_code("a@example.com", "123456", "password_reset")

    assert sent is False
    mock_client_cls.assert_not_called()


@patch("beatstore.services.notification_service.httpx.AsyncClient")
async def test_delivery_success(mock_client_cls, webhook_url):
    mock_client = _mock_client(mock_client_cls, status_code=202)

    sent = await notification_service.send_verification_code("a@example.com", "123456", "password_reset")

    assert sent is True
    mock_client.post.assert_called_once()
    args, kwargs = mock_client.post.call_args
    assert args[0] == webhook_url
    assert kwargs["json"] == {"type": "password_reset", "destination": "a@example.com", "code": "123456"}


@patch("beatstore.services.notification_service.httpx.AsyncClient")
async def test_delivery_error_status(mock_client_cls, webhook_url):
    _mock_client(mock_client_cls, status_code=500)

    sent = await notification_service.send_verification_code("a@example.com", "123456", "password_reset")
    assert sent is False


@patch("beatstore.services.notification_service.httpx.AsyncClient")
async def test_network_error_is_not_raised(mock_client_cls, webhook_url):
    """Connection failures return False; the reset request itself already succeeded."""
    _mock_client(mock_client_cls, side_effect=httpx.ConnectError("Connection refused"))

    sent = await notification_service.send_verification_code("a@example.com", "123456", "password_reset")
    assert sent is False


@patch("beatstore.services.notification_service.httpx.AsyncClient")
async def test_missing_destination(mock_client_cls, webhook_url):
    sent = await notification_service.send_verification_code(None, "123456", "password_reset")

    assert sent is False
    mock_client_cls.assert_not_called()
