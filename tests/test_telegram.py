"""Tests for Telegram admin notifications."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.gateway.gateway import ConnectionCheck
from app.notifications.telegram import (
    _split_message,
    failure_subject,
    format_model_failure_report,
    notify_model_failures,
    send_telegram_message,
)


def _mock_client(*responses):
    client = AsyncMock()
    client.post = AsyncMock(side_effect=list(responses))
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


def _response(status_code: int, payload: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload or {}
    resp.text = str(payload or {})
    return resp


class TestSplitMessage:
    def test_short_message_untouched(self):
        assert _split_message("hello") == ["hello"]

    def test_splits_on_newlines(self):
        text = "\n".join(["x" * 30] * 5)
        chunks = _split_message(text, max_len=70)
        assert all(len(c) <= 70 for c in chunks)
        assert "\n".join(chunks) == text

    def test_hard_split_without_newline(self):
        assert _split_message("a" * 25, max_len=10) == ["a" * 10, "a" * 10, "a" * 5]


class TestFailureReport:
    def test_subject(self):
        assert failure_subject(1) == "AI Model Health Check: 1 Model Failed"
        assert failure_subject(3) == "AI Model Health Check: 3 Models Failed"

    def test_report_escapes_errors(self):
        failures = [
            ConnectionCheck(False, "Groq", "Groq request failed.", error="Groq API error: 401 - <invalid key>"),
            ConnectionCheck(False, "Gemini", "Gemini returned an empty response", error_type="empty_response"),
        ]
        report = format_model_failure_report(failures, datetime(2026, 3, 1, 1, 0, tzinfo=timezone.utc))

        assert report.startswith("<b>AI Model Health Check: 2 Models Failed</b>")
        assert "Checked at 2026-03-01 01:00 UTC" in report
        assert "&lt;invalid key&gt;" in report
        assert "Gemini returned an empty response" in report


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_skipped_without_credentials(self):
        with patch("app.notifications.telegram.httpx.AsyncClient") as mock_cls:
            assert await send_telegram_message("hi", "", "123") is False
        mock_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_sends_html(self):
        client = _mock_client(_response(200))
        with patch("app.notifications.telegram.httpx.AsyncClient", return_value=client):
            assert await send_telegram_message("<b>hi</b>", "TOKEN", "123") is True

        url = client.post.call_args.args[0]
        assert url == "https://api.telegram.org/botTOKEN/sendMessage"
        assert client.post.call_args.kwargs["json"] == {"chat_id": "123", "text": "<b>hi</b>", "parse_mode": "HTML"}

    @pytest.mark.asyncio
    async def test_rate_limit_waits_and_retries(self):
        client = _mock_client(_response(429, {"parameters": {"retry_after": 2}}), _response(200))
        with (
            patch("app.notifications.telegram.httpx.AsyncClient", return_value=client),
            patch("app.notifications.telegram.asyncio.sleep", new_callable=AsyncMock) as sleep,
        ):
            assert await send_telegram_message("hi", "TOKEN", "123") is True

        sleep.assert_awaited_once_with(2)
        assert client.post.await_count == 2

    @pytest.mark.asyncio
    async def test_failures_reported_not_raised(self):
        client = _mock_client(httpx.ConnectError("down"))
        with patch("app.notifications.telegram.httpx.AsyncClient", return_value=client):
            assert await send_telegram_message("hi", "TOKEN", "123") is False

    @pytest.mark.asyncio
    async def test_notify_nothing_to_report(self):
        assert await notify_model_failures([], "TOKEN", "123") is False

    @pytest.mark.asyncio
    async def test_notify_sends_report(self):
        failures = [ConnectionCheck(False, "Groq", "Groq request failed.")]
        with patch("app.notifications.telegram.send_telegram_message", new_callable=AsyncMock, return_value=True) as send:
            assert await notify_model_failures(failures, "TOKEN", "123") is True
        assert "1 Model Failed" in send.await_args.args[0]
