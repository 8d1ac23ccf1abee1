# -*- coding: utf-8 -*-
"""
triage.engine

부재중 전화 → 자동 진단 대화 전체를 조율하는 최상위 엔진.

🎯 주요 역할
--------------------------------------
1) start_conversation(event)
   - 착신 이벤트에서 채널/전화번호를 정하고 Flow Manager 로 대화를 만든다.
   - "부재중 전화" 를 나타내는 가상의 고객 메시지를 만들어 응답 생성기에 넘긴다.
     (이 메시지는 대화 기록에 추가하지 않는다)
   - 첫 agent 메시지를 기록하고 발신 큐에 넣는다.
   - 이미 열려 있는 대화가 있으면 인사 메시지를 다시 보내지 않는다.

2) process_incoming_message(conversation_id, text)
   - Flow Manager 에 위임 → 응답 생성 → agent 메시지 기록 → 발신 큐 → 후속 작업
   - 위임부터 발신 큐까지는 store.locked(conversation_id) 안에서 처리한다.
   - 마지막 턴(완료/에스컬레이션)에도 응답은 정확히 1번 나간다.
   - 에스컬레이션이면 EscalationNotifier 에 알리고 이후 자동 응답은 만들지 않는다.
   - 닫힌 대화에 온 메시지는 success=False 로 거절 (발신 없음)

3) close_conversation / get_conversation_analysis / list_active / stats

엔진 자신은 상태를 갖지 않는다. (모두 주입된 협력 객체에 위임)
"""

from __future__ import annotations

from functools import partial
from typing import Any, Dict, List, Optional

from core.config import OUTBOUND_MAX_RETRIES
from core.logging import log_event, logger

from .errors import ConversationClosedError, ConversationNotFoundError
from .flow_manager import ConversationFlowManager
from .models import (
    CHANNELS,
    Conversation,
    EscalationRecord,
    FollowUpAction,
    GeneratedResponse,
    InboundCallEvent,
    Message,
    OutboundMessage,
    new_id,
)
from .ports import ActionSink, BusinessContextProvider, EscalationNotifier, MessageQueue, Scheduler
from .responder import ResponseGenerator

DEFAULT_CHANNEL = "whatsapp"
BOOTSTRAP_TEXT = "Пропуснато обаждане"


class ConversationEngine:
    def __init__(
        self,
        flow: ConversationFlowManager,
        generator: ResponseGenerator,
        queue: MessageQueue,
        scheduler: Scheduler,
        escalations: EscalationNotifier,
        actions: ActionSink,
        business: BusinessContextProvider,
        max_retries: int = OUTBOUND_MAX_RETRIES,
    ):
        self.flow = flow
        self.generator = generator
        self.queue = queue
        self.scheduler = scheduler
        self.escalations = escalations
        self.actions = actions
        self.business = business
        self.max_retries = max_retries

    # ---------------------------------------------------------
    # 1. 부재중 전화 → 대화 시작
    # ---------------------------------------------------------

    def start_conversation(self, event: InboundCallEvent) -> Dict[str, Any]:
        channel = event.preferred_channel if event.preferred_channel in CHANNELS else DEFAULT_CHANNEL
        conversation, created = self.flow.start_conversation(
            event.phone_number, channel, event.contact_id
        )
        if not created:
            return {
                "success": True,
                "created": False,
                "conversation": conversation,
                "initial_message": None,
            }

        bootstrap = Message(
            id=new_id("call"),
            conversation_id=conversation.id,
            sender="customer",
            content=BOOTSTRAP_TEXT,
        )
        response = self.generator.generate(
            conversation,
            conversation.analysis,
            self.business.get_context(),
            last_message=bootstrap,
        )
        conversation = self.flow.record_agent_message(conversation.id, response)
        self._enqueue(conversation, response.text)

        log_event(
            conversation.id,
            {
                "type": "conversation_started",
                "phone_number": conversation.phone_number,
                "channel": conversation.channel,
                "response": response.to_dict(),
            },
        )

        return {
            "success": True,
            "created": True,
            "conversation": conversation,
            "initial_message": response.text,
        }

    # ---------------------------------------------------------
    # 2. 고객 메시지 처리
    # ---------------------------------------------------------

    def process_incoming_message(
        self,
        conversation_id: str,
        text: str,
        kind: str = "text",
    ) -> Dict[str, Any]:
        # 이해 → 응답 생성 → agent 메시지 기록 → 발신 큐 까지 한 턴을 같은 잠금 안에서 처리한다.
        # (RLock 이라 flow manager 안에서 다시 잡아도 된다)
        with self.flow.store.locked(conversation_id):
            try:
                outcome = self.flow.process_customer_message(conversation_id, text, kind)
            except ConversationClosedError as e:
                logger.warning("[engine] rejected message for %s (%s)", conversation_id, e.status)
                log_event(conversation_id, {"type": "message_rejected", "status": e.status, "text": text})
                return {
                    "success": False,
                    "rejected": True,
                    "status": e.status,
                    "conversation": self.flow.get_conversation(conversation_id),
                    "reply": None,
                }

            conversation = outcome.conversation
            response = self.generator.generate(
                conversation,
                conversation.analysis,
                self.business.get_context(),
                suggested_prompt=outcome.next_prompt,
                last_message=conversation.messages[-1],
            )
            conversation = self.flow.record_agent_message(conversation_id, response)
            self._enqueue(conversation, response.text)

        if outcome.escalated:
            self._escalate(conversation, response)

        self._run_follow_ups(
            conversation_id,
            [a for a in response.follow_up_actions if not (outcome.escalated and a.type == "escalate")],
        )

        log_event(
            conversation_id,
            {
                "type": "customer_turn",
                "input_text": text,
                "state": conversation.state,
                "status": conversation.status,
                "analysis": conversation.analysis.to_dict(),
                "response": response.to_dict(),
            },
        )

        return {
            "success": True,
            "rejected": False,
            "conversation": conversation,
            "reply": response.text,
            "response": response,
            "analysis": conversation.analysis,
            "complete": conversation.status == "completed",
            "escalated": outcome.escalated,
        }

    # ---------------------------------------------------------
    # 3. 조회 / 종료
    # ---------------------------------------------------------

    def close_conversation(self, conversation_id: str, reason: str = "manual") -> Conversation:
        conversation = self.flow.close_conversation(conversation_id, reason)
        log_event(conversation_id, {"type": "conversation_closed", "reason": reason})
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self.flow.get_conversation(conversation_id)

    def get_conversation_analysis(self, conversation_id: str) -> Dict[str, Any]:
        conversation = self.flow.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)

        analysis = self.flow.analyzer.analyze(conversation)
        return {
            "analysis": analysis,
            "recommendations": [r.description for r in analysis.recommendations],
            "next_steps": list(analysis.next_steps),
            "risk_level": analysis.risk_assessment.level,
            "estimated_cost": analysis.estimated_cost,
        }

    def list_active(self) -> List[Conversation]:
        return self.flow.list_active()

    def stats(self) -> Dict[str, Any]:
        return self.flow.stats()

    # ---------------------------------------------------------
    # 내부: 발신 / 에스컬레이션 / 후속 작업
    # ---------------------------------------------------------

    def _enqueue(self, conversation: Conversation, text: str) -> None:
        analysis = conversation.analysis
        urgent = (
            analysis.risk_assessment.level == "critical"
            or analysis.urgency_level == "emergency"
        )
        self.queue.enqueue(
            OutboundMessage(
                id=new_id("ai_response"),
                channel=conversation.channel,
                recipient=conversation.phone_number,
                text=text,
                conversation_id=conversation.id,
                priority="urgent" if urgent else "normal",
                max_retries=self.max_retries,
            )
        )

    def _escalate(self, conversation: Conversation, response: GeneratedResponse) -> None:
        reason = next(
            (a.payload.get("reason") for a in response.follow_up_actions if a.type == "escalate"),
            None,
        ) or f"Urgency {conversation.analysis.urgency_level}, risk {conversation.analysis.risk_assessment.level}"

        record = EscalationRecord(
            conversation_id=conversation.id,
            phone_number=conversation.phone_number,
            reason=reason,
            priority="urgent",
        )
        logger.warning("[engine] escalating %s: %s", conversation.id, reason)
        self.escalations.notify(record)

    def _run_follow_ups(self, conversation_id: str, actions: List[FollowUpAction]) -> None:
        for action in actions:
            task = partial(self._execute_action, conversation_id, action)
            if action.delay and action.delay > 0:
                self.scheduler.schedule(action.delay, task)
            else:
                task()

    def _execute_action(self, conversation_id: str, action: FollowUpAction) -> None:
        """
        지연 작업 실행 시점에 대화를 다시 읽는다.
        그 사이 대화가 닫혔으면 아무것도 하지 않는다.
        """
        conversation = self.flow.get_conversation(conversation_id)
        if conversation is None or conversation.status == "closed":
            logger.info("[engine] skip %s for closed conversation %s", action.type, conversation_id)
            return

        try:
            if action.type == "set_reminder":
                self.actions.set_reminder(conversation_id, action.payload)
            elif action.type == "create_task":
                self.actions.create_task(conversation_id, action.payload)
            elif action.type == "send_summary":
                payload = dict(action.payload)
                payload["analysis"] = conversation.analysis.to_dict()
                self.actions.send_summary(conversation_id, payload)
            elif action.type == "escalate":
                self.escalations.notify(
                    EscalationRecord(
                        conversation_id=conversation_id,
                        phone_number=conversation.phone_number,
                        reason=action.payload.get("reason", "escalation"),
                    )
                )
            else:
                logger.warning("[engine] unknown follow-up action %s", action.type)
        except Exception:
            # 후속 작업은 fire-and-forget: 실패해도 대화 처리에는 영향 없음
            logger.exception("[engine] follow-up %s failed for %s", action.type, conversation_id)
