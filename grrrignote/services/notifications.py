# grrrignote/services/notifications.py
"""
Outbound email（best-effort）。

send_* 不會拋例外：成功回傳 None，失敗回傳 NotificationError，
由呼叫端決定記 log 後丟棄，讓「email 可有可無」這件事在函式簽章上看得到。
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
from loguru import logger

from grrrignote.core.config import Settings


@dataclass(frozen=True)
class NotificationError:
    reason: str  # not_configured | provider_error | transport_error
    detail: str = ""


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str


class EmailDispatcher:
    """透過 Resend HTTP API 寄信；未設定 RESEND_API_KEY 時略過。"""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = (settings.RESEND_API_KEY or "").strip()
        self.api_url = settings.RESEND_API_URL
        self.mail_from = settings.MAIL_FROM
        self.timeout = settings.EMAIL_TIMEOUT_SECONDS
        self._transport = transport

    async def deliver(self, message: EmailMessage) -> Optional[NotificationError]:
        if not self.api_key:
            return NotificationError("not_configured", "RESEND_API_KEY is missing")

        payload = {
            "from": self.mail_from,
            "to": [message.to],
            "subject": message.subject,
            "text": message.text,
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                resp = await client.post(
                    self.api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as exc:
            return NotificationError("transport_error", type(exc).__name__)

        if resp.status_code >= 400:
            return NotificationError("provider_error", f"HTTP {resp.status_code}")
        return None

    async def send_password_reset_email(self, to: str, reset_url: str) -> Optional[NotificationError]:
        return await self.deliver(
            EmailMessage(
                to=to,
                subject="Réinitialisation de votre mot de passe Grrrignote",
                text="\n".join(
                    [
                        "Vous avez demandé une réinitialisation de mot de passe.",
                        "",
                        f"Ouvrir ce lien: {reset_url}",
                        "",
                        "Si vous n'êtes pas à l'origine de cette demande, ignorez cet email.",
                    ]
                ),
            )
        )

    async def send_email_verification_email(self, to: str, verify_url: str) -> Optional[NotificationError]:
        return await self.deliver(
            EmailMessage(
                to=to,
                subject="Confirmez votre adresse email Grrrignote",
                text="\n".join(
                    [
                        "Bienvenue sur Grrrignote !",
                        "",
                        f"Confirmez votre adresse email: {verify_url}",
                        "",
                        "Si vous n'avez pas créé de compte, ignorez cet email.",
                    ]
                ),
            )
        )


def log_notification_error(kind: str, error: Optional[NotificationError]) -> None:
    """email 為 best-effort：失敗只記 log。"""
    if error is not None:
        logger.warning("Email '{}' not delivered: {} {}", kind, error.reason, error.detail)
