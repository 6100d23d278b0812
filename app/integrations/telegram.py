"""Best-effort chat notifications through the Telegram Bot API."""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramNotifier:
    """Sends Markdown messages to one chat. Disabled when token or chat id is missing."""

    def __init__(
        self,
        bot_token: Optional[str],
        chat_id: Optional[str],
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id
        self._client = client or httpx.AsyncClient(base_url=TELEGRAM_API_BASE, timeout=timeout)

    @classmethod
    def from_settings(cls) -> "TelegramNotifier":
        return cls(settings.telegram_bot_token, settings.telegram_chat_id, settings.telegram_timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    async def send_message(self, text: str) -> bool:
        """Returns False instead of raising; a failed notification never fails the caller."""
        if not self.enabled:
            logger.debug("Telegram disabled; skipping notification")
            return False
        try:
            r = await self._client.post(
                f"/bot{self.bot_token}/sendMessage",
                json={"chat_id": self.chat_id, "text": text, "parse_mode": "Markdown"},
            )
            r.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Telegram notification failed: %s", e)
            return False
        logger.info("Telegram notification sent")
        return True

    async def aclose(self) -> None:
        await self._client.aclose()


MARKDOWN_SPECIAL = "_*`["


def escape_markdown(text: str) -> str:
    """Escape Telegram legacy Markdown entities in user-supplied text."""
    return "".join("\\" + c if c in MARKDOWN_SPECIAL else c for c in str(text))


def format_rupiah(amount: Decimal) -> str:
    # 1500000 -> "Rp 1.500.000"
    whole = int(amount)
    return "Rp " + f"{whole:,}".replace(",", ".")


def payment_submitted_message(
    student_name: str,
    student_number: str,
    amount: Decimal,
    payer_name: str,
    payment_date: date,
    description: str,
    submitted_at: datetime,
) -> str:
    return "\n".join(
        [
            "🔔 *New Payment Submission*",
            "",
            f"👤 *Student:* {escape_markdown(student_name)}",
            f"🆔 *Student ID:* {escape_markdown(student_number)}",
            f"💰 *Amount:* {format_rupiah(amount)}",
            f"👨‍💼 *Payer:* {escape_markdown(payer_name)}",
            f"📅 *Date:* {payment_date.strftime('%d/%m/%Y')}",
            f"📝 *Description:* {escape_markdown(description)}",
            f"⏰ *Submitted:* {submitted_at.strftime('%d/%m/%Y %H:%M:%S')}",
            "",
            "Status: ⏳ *PENDING APPROVAL*",
        ]
    )
