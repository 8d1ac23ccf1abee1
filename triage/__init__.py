# -*- coding: utf-8 -*-
"""
triage 패키지

부재중 전화를 건 고객과 메신저(WhatsApp/Viber/Telegram/SMS)로 대화하며
전기/배관/냉난방 문제를 불가리아어 규칙 기반으로 진단하는 엔진입니다.

외부(예: app_fastapi.py, main.py)에서는 보통 아래만 직접 사용합니다.

- build_engine(...):
    기본 구성(메모리 저장소, 로그 전송 채널, 타이머 스케줄러 ...)으로
    ConversationEngine 을 조립합니다. 필요한 부분만 인자로 바꿔 끼울 수 있습니다.

세부 로직은 다음 모듈로 나뉘어 있습니다.

- utils_text    : 불가리아어 정규화, 단어 시작 기준 키워드 매칭
- lexicon       : data/*.json 사전(키워드/지식/응답 문구) 로딩
- understanding : 의도 분류, 엔티티 추출, 감정 분석
- analyzer      : 대화 전체 → 문제 유형/긴급도/위험도/비용/콜백 준비 여부
- flow_manager  : 대화 상태 머신, 저장소 잠금
- responder     : 응답 종류 선택과 문구/후속 작업 생성
- engine        : 위 단계를 묶는 최상위 조율자
- ports         : 저장소/큐/스케줄러 등 외부 경계 인터페이스
"""

from __future__ import annotations

from typing import Optional

from .analyzer import IssueAnalyzer
from .engine import ConversationEngine
from .flow_manager import ConversationFlowManager
from .ports import (
    ActionSink,
    BusinessContextProvider,
    ConversationStore,
    EscalationNotifier,
    MessageQueue,
    Scheduler,
)
from .responder import ResponseGenerator
from .understanding import TextUnderstanding


def build_engine(
    store: Optional[ConversationStore] = None,
    queue: Optional[MessageQueue] = None,
    scheduler: Optional[Scheduler] = None,
    escalations: Optional[EscalationNotifier] = None,
    actions: Optional[ActionSink] = None,
    business: Optional[BusinessContextProvider] = None,
) -> ConversationEngine:
    # services 는 triage.models 를 쓰므로 여기서 늦게 import 한다.
    from services.business_context import ConfigBusinessContextProvider
    from services.conversation_store import InMemoryConversationStore
    from services.delivery import LoggingChannel
    from services.message_queue import OutboundMessageQueue
    from services.notifications import LoggingActionSink, LoggingEscalationNotifier
    from services.scheduler import ThreadingScheduler

    analyzer = IssueAnalyzer()
    flow = ConversationFlowManager(
        store=store or InMemoryConversationStore(),
        understanding=TextUnderstanding(),
        analyzer=analyzer,
    )
    return ConversationEngine(
        flow=flow,
        generator=ResponseGenerator(),
        queue=queue or OutboundMessageQueue(LoggingChannel()),
        scheduler=scheduler or ThreadingScheduler(),
        escalations=escalations or LoggingEscalationNotifier(),
        actions=actions or LoggingActionSink(),
        business=business or ConfigBusinessContextProvider(),
    )


__all__ = ["ConversationEngine", "build_engine"]
