# services/delivery.py
# -*- coding: utf-8 -*-
"""
발신 메시지를 실제로 내보내는 채널 구현.

- WebhookChannel : 메시징 게이트웨이(WhatsApp/Viber/Telegram/SMS 중계)에 HTTP POST
- LoggingChannel : 전송 없이 로그만 남긴다. (DELIVERY_WEBHOOK_URL 이 없을 때)

전송 실패는 DeliveryError 로 올리고, 재시도 여부는 큐가 결정한다.
"""

from __future__ import annotations

from typing import List, Optional

import httpx

from core.config import DELIVERY_TIMEOUT_SECONDS
from core.logging import log_event, logger
from triage.errors import TriageError
from triage.models import OutboundMessage


class DeliveryError(TriageError):
    """채널 전송 실패 (재시도 대상)."""


class WebhookChannel:
    def __init__(
        self,
        url: str,
        timeout: float = DELIVERY_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, message: OutboundMessage) -> None:
        body = {
            "id": message.id,
            "platform": message.channel,
            "recipient": message.recipient,
            "message": message.text,
            "conversation_id": message.conversation_id,
            "priority": message.priority,
        }
        try:
            resp = self._client.post(self.url, json=body)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryError(f"{message.channel} delivery failed: {e}") from e

        logger.info("[delivery] sent %s to %s via %s", message.id, message.recipient, message.channel)


class LoggingChannel:
    """실제 전송 없이 보낸 것으로 처리한다. 보낸 메시지는 sent 에 남는다."""

    def __init__(self):
        self.sent: List[OutboundMessage] = []

    def send(self, message: OutboundMessage) -> None:
        self.sent.append(message)
        logger.info("[delivery:log] %s -> %s: %s", message.channel, message.recipient, message.text)
        if message.conversation_id:
            log_event(message.conversation_id, {"type": "outbound_message", **message.to_dict()})
