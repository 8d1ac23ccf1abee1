# -*- coding: utf-8 -*-
"""
triage.ports

엔진이 바깥 세계와 만나는 경계 인터페이스 (typing.Protocol).
실제 구현은 services/ 아래에 있고, 조립은 triage.build_engine / app_fastapi.py 에서 한다.

- ConversationStore       : get / put / list_active + 대화 id 별 잠금
- MessageQueue            : 발신 메시지 enqueue (전송 완료를 기다리지 않음)
- Scheduler               : schedule(delay, task) — 지연 작업
- EscalationNotifier      : 사람 상담원에게 넘기는 알림
- ActionSink              : 리마인더 / 작업 생성 / 요약 발송 처리
- BusinessContextProvider : 사업자(기술자) 정보 조회
"""

from __future__ import annotations

from typing import Any, Callable, ContextManager, Dict, List, Optional, Protocol

from .models import BusinessContext, Conversation, EscalationRecord, OutboundMessage


class ConversationStore(Protocol):
    def get(self, conversation_id: str) -> Optional[Conversation]:
        ...

    def put(self, conversation: Conversation) -> None:
        ...

    def list_active(self) -> List[Conversation]:
        ...

    def list_all(self) -> List[Conversation]:
        ...

    def find_open_by_phone(self, phone_number: str) -> Optional[Conversation]:
        ...

    def locked(self, conversation_id: str) -> ContextManager[None]:
        """같은 대화 id 에 대해 동시에 한 건의 변경만 허용하는 잠금."""
        ...


class MessageQueue(Protocol):
    def enqueue(self, message: OutboundMessage) -> None:
        ...


class Scheduler(Protocol):
    def schedule(self, delay: float, task: Callable[[], None]) -> None:
        ...


class EscalationNotifier(Protocol):
    def notify(self, record: EscalationRecord) -> None:
        ...


class ActionSink(Protocol):
    def set_reminder(self, conversation_id: str, payload: Dict[str, Any]) -> None:
        ...

    def create_task(self, conversation_id: str, payload: Dict[str, Any]) -> None:
        ...

    def send_summary(self, conversation_id: str, payload: Dict[str, Any]) -> None:
        ...


class BusinessContextProvider(Protocol):
    def get_context(self) -> BusinessContext:
        ...
