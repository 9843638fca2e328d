"""Tests for the WhatsApp notifier."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from agenda.infra.notifications import WhatsAppNotifier

BASE_URL = "http://gateway.test"


def _notifier(handler, **kwargs) -> WhatsAppNotifier:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    options = {"max_attempts": 3, "base_delay": 1.0, "max_delay": 8.0}
    options.update(kwargs)
    return WhatsAppNotifier(base_url=BASE_URL, api_key="k", instance="clinic", client=client, **options)


class TestWhatsAppNotifier:
    """Test delivery and backoff."""

    @pytest.mark.asyncio
    async def test_send_success(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"key": {"id": "msg-1"}})

        notifier = _notifier(handler)

        assert await notifier.send_text("+573001112233", "Hola")

        [request] = requests
        assert request.url.path == "/message/sendText/clinic"
        assert json.loads(request.content) == {"number": "+573001112233", "text": "Hola"}

    @pytest.mark.asyncio
    async def test_retries_server_errors_then_succeeds(self):
        statuses = iter([503, 429, 200])

        def handler(request):
            return httpx.Response(next(statuses))

        notifier = _notifier(handler)

        with patch("agenda.infra.notifications.asyncio.sleep", new_callable=AsyncMock) as sleep:
            assert await notifier.send_text("+57300", "Hola")

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        notifier = _notifier(handler)

        with patch("agenda.infra.notifications.asyncio.sleep", new_callable=AsyncMock) as sleep:
            assert not await notifier.send_text("+57300", "Hola")

        assert len(calls) == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": "bad number"})

        notifier = _notifier(handler)

        with patch("agenda.infra.notifications.asyncio.sleep", new_callable=AsyncMock) as sleep:
            assert not await notifier.send_text("invalid", "Hola")

        assert len(calls) == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_transport_error_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200)

        notifier = _notifier(handler)

        with patch("agenda.infra.notifications.asyncio.sleep", new_callable=AsyncMock):
            assert await notifier.send_text("+57300", "Hola")

        assert len(attempts) == 2

    def test_delay_is_capped(self):
        notifier = WhatsAppNotifier(base_url=BASE_URL, base_delay=1.0, max_delay=8.0)

        assert [notifier.delay_for(n) for n in range(1, 7)] == [1.0, 2.0, 4.0, 8.0, 8.0, 8.0]

    @pytest.mark.asyncio
    async def test_unconfigured_gateway(self):
        notifier = WhatsAppNotifier(base_url="")
        notifier.base_url = None

        assert not await notifier.send_text("+57300", "Hola")
