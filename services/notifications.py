# services/notifications.py
# -*- coding: utf-8 -*-
"""
에스컬레이션 알림 / 후속 작업 처리기.

- LoggingEscalationNotifier : 사람 상담원에게 넘길 건을 기록 (logger + JSONL 세션 로그)
- LoggingActionSink         : 콜백 리마인더 / 긴급 작업 / 요약 발송 기록

실제 알림 채널(푸시, 캘린더 등)은 붙이지 않았고, 받은 내용은 records 에 남긴다.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from core.logging import log_event, logger
from triage.models import EscalationRecord


class LoggingEscalationNotifier:
    def __init__(self):
        self.records: List[EscalationRecord] = []

    def notify(self, record: EscalationRecord) -> None:
        self.records.append(record)
        logger.warning(
            "🚨 [escalation] %s (%s): %s",
            record.conversation_id, record.phone_number, record.reason,
        )
        log_event(record.conversation_id, {"type": "escalation", **record.to_dict()})


class LoggingActionSink:
    def __init__(self):
        # (action 종류, conversation_id, payload)
        self.records: List[Tuple[str, str, Dict[str, Any]]] = []

    def _record(self, kind: str, conversation_id: str, payload: Dict[str, Any]) -> None:
        self.records.append((kind, conversation_id, payload))
        logger.info("[action] %s for %s", kind, conversation_id)
        log_event(conversation_id, {"type": kind, "payload": payload})

    def set_reminder(self, conversation_id: str, payload: Dict[str, Any]) -> None:
        self._record("set_reminder", conversation_id, payload)

    def create_task(self, conversation_id: str, payload: Dict[str, Any]) -> None:
        self._record("create_task", conversation_id, payload)

    def send_summary(self, conversation_id: str, payload: Dict[str, Any]) -> None:
        self._record("send_summary", conversation_id, payload)
