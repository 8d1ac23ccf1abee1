# -*- coding: utf-8 -*-
"""
triage.flow_manager

대화별 상태 머신(state machine)을 관리하는 모듈.

🎯 주요 역할
--------------------------------------
1) start_conversation(phone, channel, contact_id)
   - 같은 전화번호로 열려 있는 대화가 있으면 그대로 돌려주고,
     없으면 INITIAL_RESPONSE 상태의 새 대화를 만든다.

2) process_customer_message(conversation_id, text)
   - (a) 텍스트 이해 → (b) 메시지 추가 → (c) 전체 대화 재분석
     → (d) 다음 상태 결정 → (e) 저장 → (f) FlowOutcome 반환
   - 위 과정 전체를 store.locked(conversation_id) 안에서 수행한다.

3) record_agent_message(conversation_id, response)
   - 생성된 응답을 agent 메시지로 추가하고 response.next_state 를 반영

4) close_conversation(conversation_id, reason)
   - status = closed 로만 바꾼다. (삭제하지 않음)

상태 전이
--------------------------------------
- 어떤 상태든: 긴급도 emergency 또는 위험도 critical → COMPLETED / escalated
- INITIAL_RESPONSE      → AWAITING_DESCRIPTION
- AWAITING_DESCRIPTION  → FOLLOW_UP_QUESTIONS (의도가 problem_description)
                        → GATHERING_DETAILS   (그 외)
- FOLLOW_UP_QUESTIONS / GATHERING_DETAILS
                        → COMPLETED (콜백 준비 완료)
                        → PROVIDING_ADVICE (위험도 high)
                        → GATHERING_DETAILS (그 외)
- PROVIDING_ADVICE      → SCHEDULING_VISIT → COMPLETED

완료(completed)/에스컬레이션(escalated)/종료(closed)된 대화에 들어온 고객 메시지는
ConversationClosedError 로 거절한다.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from core.config import TRIAGE_LANGUAGE, TRIAGE_MODEL_VERSION
from core.logging import logger

from .analyzer import IssueAnalyzer
from .errors import ConversationClosedError, ConversationNotFoundError
from .lexicon import default_responses
from .models import (
    TERMINAL_STATUSES,
    Conversation,
    GeneratedResponse,
    Message,
    new_id,
    utcnow,
)
from .ports import ConversationStore
from .understanding import TextUnderstanding


@dataclass
class FlowOutcome:
    conversation: Conversation
    next_prompt: Optional[str]
    escalated: bool
    complete: bool


class ConversationFlowManager:
    def __init__(
        self,
        store: ConversationStore,
        understanding: TextUnderstanding,
        analyzer: IssueAnalyzer,
        responses: Optional[Dict[str, Any]] = None,
    ):
        self.store = store
        self.understanding = understanding
        self.analyzer = analyzer
        responses = responses or default_responses()
        self.flow_texts: Dict[str, Any] = responses["flow"]
        self.problem_labels: Dict[str, str] = responses["problem_labels"]
        self.default_location: str = responses["default_location"]

    # ---------------------------------------------------------
    # 대화 시작
    # ---------------------------------------------------------

    def start_conversation(
        self,
        phone_number: str,
        channel: str = "whatsapp",
        contact_id: Optional[str] = None,
    ) -> Tuple[Conversation, bool]:
        """
        (대화, 새로 만들었는지 여부) 를 돌려준다.
        """
        with self.store.locked(f"phone:{phone_number}"):
            existing = self.store.find_open_by_phone(phone_number)
            if existing is not None:
                logger.info(
                    "[flow] reuse open conversation %s for %s", existing.id, phone_number
                )
                return existing, False

            digits = re.sub(r"\D", "", phone_number) or "unknown"
            conversation = Conversation(
                id=new_id(f"ai_{channel}_{digits}"),
                phone_number=phone_number,
                channel=channel,
                contact_id=contact_id,
                status="active",
                state="INITIAL_RESPONSE",
                metadata={
                    "language": TRIAGE_LANGUAGE,
                    "model_version": TRIAGE_MODEL_VERSION,
                    "error_count": 0,
                },
            )
            self.store.put(conversation)
            logger.info("[flow] started conversation %s (%s)", conversation.id, channel)
            return conversation, True

    # ---------------------------------------------------------
    # 고객 메시지 처리
    # ---------------------------------------------------------

    def process_customer_message(
        self,
        conversation_id: str,
        text: str,
        kind: str = "text",
    ) -> FlowOutcome:
        with self.store.locked(conversation_id):
            conversation = self._require(conversation_id)
            if conversation.status in TERMINAL_STATUSES:
                raise ConversationClosedError(conversation_id, conversation.status)

            # (a) 텍스트 이해
            understood = self.understanding.process(text)
            if understood.fallback:
                conversation.bump_error_count()

            # (b) 메시지 추가
            now = utcnow()
            message = Message(
                id=new_id("msg"),
                conversation_id=conversation_id,
                sender="customer",
                content=text,
                kind=kind,
                timestamp=now,
                intent=understood.intent,
                entities=understood.entities,
                sentiment=understood.sentiment,
                confidence=understood.confidence,
            )
            conversation.messages.append(message)
            conversation.last_message_at = now

            # (c) 전체 대화 재분석
            analysis = self.analyzer.analyze(conversation)
            if analysis.degraded:
                conversation.bump_error_count()
            conversation.analysis = analysis

            # (d) 다음 상태
            previous_state = conversation.state
            state, status, prompt = self.next_transition(conversation, message)
            conversation.state = state
            conversation.status = status
            if status in TERMINAL_STATUSES:
                conversation.completed_at = now

            # (e) 저장 — 실패하면 예외가 그대로 올라간다
            self.store.put(conversation)

            logger.info(
                "[flow] %s: %s -> %s (%s) intent=%s urgency=%s risk=%s ready=%s",
                conversation_id,
                previous_state,
                state,
                status,
                understood.intent.name,
                analysis.urgency_level,
                analysis.risk_assessment.level,
                analysis.ready_for_callback,
            )

            return FlowOutcome(
                conversation=conversation,
                next_prompt=prompt,
                escalated=status == "escalated",
                complete=status == "completed",
            )

    def next_transition(
        self,
        conversation: Conversation,
        last_message: Message,
    ) -> Tuple[str, str, str]:
        """
        (다음 state, 다음 status, 다음 질문 문구) 를 결정한다.
        COMPLETED 를 제외한 모든 상태에서 반드시 다음 상태가 정해진다.
        """
        analysis = conversation.analysis
        texts = self.flow_texts

        # 긴급 상황은 다른 모든 규칙보다 우선
        if analysis.urgency_level == "emergency" or analysis.risk_assessment.level == "critical":
            return "COMPLETED", "escalated", texts["emergency_prompt"]

        state = conversation.state
        intent = last_message.intent.category if last_message.intent else "clarification"

        if state == "INITIAL_RESPONSE":
            return "AWAITING_DESCRIPTION", "waiting_response", texts["initial_question"]

        if state == "AWAITING_DESCRIPTION":
            if intent == "problem_description":
                return "FOLLOW_UP_QUESTIONS", "active", self.next_follow_up_question(conversation)
            return "GATHERING_DETAILS", "active", texts["default_prompt"]

        if state in ("FOLLOW_UP_QUESTIONS", "GATHERING_DETAILS"):
            if analysis.ready_for_callback:
                return "COMPLETED", "completed", self._completion_prompt(conversation)
            if analysis.risk_assessment.level == "high":
                return "PROVIDING_ADVICE", "active", texts["advice_prompt"]
            if intent == "clarification":
                return "GATHERING_DETAILS", "active", texts["default_prompt"]
            return "GATHERING_DETAILS", "active", self.next_follow_up_question(conversation)

        if state == "PROVIDING_ADVICE":
            return "SCHEDULING_VISIT", "active", texts["scheduling_prompt"]

        if state == "SCHEDULING_VISIT":
            return "COMPLETED", "completed", self._completion_prompt(conversation)

        # COMPLETED (응답 생성 실패 등으로 상태만 먼저 닫힌 경우)
        return "COMPLETED", "completed", self._completion_prompt(conversation)

    def next_follow_up_question(self, conversation: Conversation) -> str:
        """
        문제 유형별 질문 중 아직 보내지 않은 첫 질문.
        모두 보냈으면 고객 메시지 수에 따라 fallback 질문을 돌려가며 쓴다.
        """
        asked = {m.content for m in conversation.agent_messages()}
        per_type = self.flow_texts["follow_up_questions"].get(
            conversation.analysis.problem_type, []
        )
        for question in per_type:
            if question not in asked:
                return question

        fallback: List[str] = self.flow_texts["fallback_questions"]
        return fallback[len(conversation.customer_messages()) % len(fallback)]

    def _completion_prompt(self, conversation: Conversation) -> str:
        analysis = conversation.analysis
        return self.flow_texts["completion_prompt"].format(
            problem=self.problem_labels.get(analysis.problem_type, self.problem_labels["unknown"]),
            location=analysis.extracted_info.location or self.default_location,
        )

    # ---------------------------------------------------------
    # agent 메시지 / 종료
    # ---------------------------------------------------------

    def record_agent_message(
        self,
        conversation_id: str,
        response: GeneratedResponse,
    ) -> Conversation:
        with self.store.locked(conversation_id):
            conversation = self._require(conversation_id)
            now = utcnow()
            conversation.messages.append(
                Message(
                    id=new_id("msg"),
                    conversation_id=conversation_id,
                    sender="agent",
                    content=response.text,
                    timestamp=now,
                )
            )
            conversation.last_message_at = now
            if response.fallback:
                conversation.bump_error_count()

            # 완료/에스컬레이션/종료된 대화의 상태는 되돌리지 않는다.
            if response.next_state != conversation.state and conversation.status not in TERMINAL_STATUSES:
                conversation.state = response.next_state
                if response.next_state == "COMPLETED" and conversation.is_open:
                    conversation.status = "completed"
                    conversation.completed_at = now
                elif response.next_state == "AWAITING_DESCRIPTION":
                    conversation.status = "waiting_response"

            self.store.put(conversation)
            return conversation

    def close_conversation(self, conversation_id: str, reason: str = "completed") -> Conversation:
        with self.store.locked(conversation_id):
            conversation = self._require(conversation_id)
            if conversation.status != "closed":
                conversation.status = "closed"
                conversation.completed_at = conversation.completed_at or utcnow()
                conversation.metadata["close_reason"] = reason
                self.store.put(conversation)
                logger.info("[flow] closed conversation %s (%s)", conversation_id, reason)
            return conversation

    # ---------------------------------------------------------
    # 조회
    # ---------------------------------------------------------

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self.store.get(conversation_id)

    def list_active(self) -> List[Conversation]:
        return self.store.list_active()

    def stats(self) -> Dict[str, Any]:
        conversations = self.store.list_all()
        total = len(conversations)
        by_status: Dict[str, int] = {}
        for c in conversations:
            by_status[c.status] = by_status.get(c.status, 0) + 1

        return {
            "total": total,
            "active": by_status.get("active", 0) + by_status.get("waiting_response", 0),
            "completed": by_status.get("completed", 0),
            "escalated": by_status.get("escalated", 0),
            "closed": by_status.get("closed", 0),
            "average_messages": (
                round(sum(len(c.messages) for c in conversations) / total, 2) if total else 0.0
            ),
        }

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self.store.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation
