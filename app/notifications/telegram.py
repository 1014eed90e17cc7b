"""Telegram admin notifications — async version."""

import asyncio
import html
import logging
from datetime import datetime, timezone

import httpx

from app.gateway.gateway import ConnectionCheck

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org/bot{token}/sendMessage"


def _split_message(text: str, max_len: int = 4000) -> list[str]:
    """Split long message into chunks at newline boundaries."""
    if len(text) <= max_len:
        return [text]

    chunks = []
    while text:
        if len(text) <= max_len:
            chunks.append(text)
            break
        split_pos = text.rfind("\n", 0, max_len)
        if split_pos == -1:
            split_pos = max_len
        chunks.append(text[:split_pos])
        text = text[split_pos:].lstrip("\n")
    return chunks


async def send_telegram_message(
    text: str,
    bot_token: str,
    chat_id: str,
    parse_mode: str = "HTML",
) -> bool:
    """Send a message via Telegram Bot API. Splits if too long.

    Returns False when nothing was sent or any chunk failed; delivery
    problems are logged, never raised.
    """
    if not bot_token or not chat_id:
        logger.info("Telegram: no bot token or chat_id, skipping")
        return False

    url = TELEGRAM_API.format(token=bot_token)
    delivered = True

    async with httpx.AsyncClient(timeout=15) as client:
        for chunk in _split_message(text, 4000):
            payload = {"chat_id": chat_id, "text": chunk, "parse_mode": parse_mode}
            try:
                resp = await client.post(url, json=payload)
                if resp.status_code == 429:
                    retry_after = resp.json().get("parameters", {}).get("retry_after", 5)
                    logger.warning("Telegram rate limit, retry after %ds", retry_after)
                    await asyncio.sleep(retry_after)
                    resp = await client.post(url, json=payload)
                if resp.status_code != 200:
                    logger.error("Telegram send failed (%d): %s", resp.status_code, resp.text)
                    delivered = False
            except httpx.HTTPError as e:
                logger.error("Telegram send error: %s", e)
                delivered = False
    return delivered


def failure_subject(count: int) -> str:
    if count == 1:
        return "AI Model Health Check: 1 Model Failed"
    return f"AI Model Health Check: {count} Models Failed"


def format_model_failure_report(failures: list[ConnectionCheck], checked_at: datetime | None = None) -> str:
    """HTML report of models disabled by the health check."""
    checked_at = checked_at or datetime.now(timezone.utc)
    lines = [
        f"<b>{failure_subject(len(failures))}</b>",
        f"Checked at {checked_at.strftime('%Y-%m-%d %H:%M UTC')}",
        "The following models were disabled:",
    ]
    for check in failures:
        reason = check.error or check.message or "unknown error"
        lines.append(f"\n<b>{html.escape(check.model)}</b>")
        lines.append(f"  {html.escape(reason[:300])}")
    lines.append("\nRe-enable them in the AI model settings once fixed.")
    return "\n".join(lines)


async def notify_model_failures(
    failures: list[ConnectionCheck],
    bot_token: str,
    chat_id: str,
) -> bool:
    """Format and send the health-check failure report to the admin chat."""
    if not failures:
        return False
    sent = await send_telegram_message(format_model_failure_report(failures), bot_token, chat_id)
    if sent:
        logger.info("Model failure report sent (%d models)", len(failures))
    return sent
