# -*- coding: utf-8 -*-
"""
triage.responder

현재 상태(state) + 진단(Analysis) → 다음 발신 메시지와 후속 작업을 만드는 모듈.

역할
----
- ResponseGenerator.generate(conversation, analysis, business, suggested_prompt)
    1) 응답 종류 선택 (question / advice / confirmation / scheduling / completion)
    2) 템플릿(responses_bg.json) 으로 문구 렌더링
    3) next_state 결정
    4) 후속 작업(FollowUpAction) 생성
    5) 신뢰도 / 근거(reasoning) / 대체 문구(alternatives)

응답 종류 우선순위
------------------
1. 긴급도 emergency 또는 위험도 critical → advice
2. 콜백 준비 완료 → completion
3. 상태별:
   - INITIAL_RESPONSE / AWAITING_DESCRIPTION → question
   - FOLLOW_UP_QUESTIONS / GATHERING_DETAILS → 정보 부족이면 question,
     위험도 high 면 advice, 아니면 confirmation
   - PROVIDING_ADVICE → advice, SCHEDULING_VISIT → scheduling, COMPLETED → completion

주의
----
- 내부 오류 시 고정된 안내 문구(신뢰도 0.3)를 돌려주고 대화를 COMPLETED 로 닫는다.
  (같은 질문을 무한 반복하지 않도록)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from core.logging import logger

from .lexicon import default_responses
from .models import (
    Analysis,
    BusinessContext,
    Conversation,
    FollowUpAction,
    GeneratedResponse,
    Message,
)

# 콜백 리마인더 지연 (초)
CALLBACK_DELAYS: Dict[str, int] = {
    "emergency": 5 * 60,
    "critical": 10 * 60,
    "high": 30 * 60,
    "medium": 2 * 60 * 60,
    "low": 24 * 60 * 60,
}

SUMMARY_DELAY = 60


class ResponseGenerator:
    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.t = responses or default_responses()

    # ------------------------------------------------------------
    # 공개 API
    # ------------------------------------------------------------

    def generate(
        self,
        conversation: Conversation,
        analysis: Analysis,
        business: BusinessContext,
        suggested_prompt: Optional[str] = None,
        last_message: Optional[Message] = None,
    ) -> GeneratedResponse:
        """
        last_message: 이번 응답을 유발한 메시지.
        부재중 전화로 시작할 때는 대화 기록에 없는 가상 메시지가 들어온다.
        """
        try:
            category = self.choose_category(conversation, analysis)
            text = self._render(category, conversation, analysis, business)

            alternatives = list(self._alternatives(category))
            if suggested_prompt and suggested_prompt != text and suggested_prompt not in alternatives:
                alternatives.append(suggested_prompt)

            reasoning = (
                f"Generated {category} response based on problem type: "
                f"{analysis.problem_type}, urgency: {analysis.urgency_level}, "
                f"conversation state: {conversation.state}"
            )
            if last_message is not None:
                reasoning += f", triggered by: {last_message.content[:40]}"

            return GeneratedResponse(
                text=text,
                category=category,
                next_state=self.next_state(conversation, analysis, category),
                follow_up_actions=self.follow_up_actions(conversation, analysis, category),
                confidence=self._confidence(conversation, analysis),
                reasoning=reasoning,
                alternatives=alternatives,
            )
        except Exception:
            logger.exception("[responder] generation failed for %s", conversation.id)
            return self.fallback_response()

    def fallback_response(self) -> GeneratedResponse:
        return GeneratedResponse(
            text=self.t["fallback"],
            category="confirmation",
            next_state="COMPLETED",
            confidence=0.3,
            reasoning="Fallback response due to processing error",
            fallback=True,
        )

    # ------------------------------------------------------------
    # 1. 응답 종류 / 다음 상태
    # ------------------------------------------------------------

    def choose_category(self, conversation: Conversation, analysis: Analysis) -> str:
        if analysis.urgency_level == "emergency" or analysis.risk_assessment.level == "critical":
            return "advice"

        if analysis.ready_for_callback:
            return "completion"

        state = conversation.state
        if state in ("INITIAL_RESPONSE", "AWAITING_DESCRIPTION"):
            return "question"
        if state in ("FOLLOW_UP_QUESTIONS", "GATHERING_DETAILS"):
            if self.needs_more_information(analysis):
                return "question"
            if analysis.risk_assessment.level == "high":
                return "advice"
            return "confirmation"
        if state == "PROVIDING_ADVICE":
            return "advice"
        if state == "SCHEDULING_VISIT":
            return "scheduling"
        if state == "COMPLETED":
            return "completion"
        return "question"

    @staticmethod
    def next_state(conversation: Conversation, analysis: Analysis, category: str) -> str:
        if category == "completion":
            return "COMPLETED"
        if category == "advice" and analysis.urgency_level == "emergency":
            return "COMPLETED"
        if conversation.state == "INITIAL_RESPONSE":
            return "AWAITING_DESCRIPTION"
        return conversation.state

    @staticmethod
    def needs_more_information(analysis: Analysis) -> bool:
        info = analysis.extracted_info
        return (
            not info.location
            or len(info.symptoms) < 2
            or analysis.problem_type == "unknown"
        )

    @staticmethod
    def missing_information(analysis: Analysis) -> List[str]:
        info = analysis.extracted_info
        missing = []
        if not info.location:
            missing.append("location")
        if len(info.symptoms) < 2:
            missing.append("symptoms")
        if not info.duration:
            missing.append("duration")
        if not info.safety_issues:
            missing.append("safety")
        return missing

    # ------------------------------------------------------------
    # 2. 문구 렌더링
    # ------------------------------------------------------------

    def _render(
        self,
        category: str,
        conversation: Conversation,
        analysis: Analysis,
        business: BusinessContext,
    ) -> str:
        if category == "question":
            if conversation.state == "INITIAL_RESPONSE":
                return self._greeting(business)
            return self._question(conversation, analysis)
        if category == "advice":
            return self._advice(analysis, business)
        if category == "confirmation":
            return self.t["confirmation"].format(
                problem=self._label(analysis), location=self._location(analysis)
            )
        if category == "scheduling":
            return self._scheduling(analysis, business)
        return self._completion(analysis, business)

    def _greeting(self, business: BusinessContext) -> str:
        key = "greeting" if business.is_business_hours else "greeting_after_hours"
        return self.t[key].format(**business.to_dict())

    def _question(self, conversation: Conversation, analysis: Analysis) -> str:
        problem_type = analysis.problem_type
        candidates: List[str] = []
        for item in self.missing_information(analysis):
            if item == "location":
                candidates.append(self._by_type("location_questions", problem_type))
            elif item == "symptoms":
                candidates.append(self._by_type("symptom_questions", problem_type))
            elif item == "duration":
                candidates.append(self.t["duration_question"])
            elif item == "safety":
                candidates.append(self._by_type("safety_questions", problem_type))

        # 정보가 다 모였으면 보조 질문을 고객 메시지 수에 따라 돌려가며 사용
        fallback = self.t["fallback_questions"]
        start = len(conversation.customer_messages()) % len(fallback)
        candidates += fallback[start:] + fallback[:start]

        # 직전에 보낸 질문은 그대로 반복하지 않는다.
        last = conversation.last_agent_text()
        for question in candidates:
            if question != last:
                return question
        return candidates[0]

    def _advice(self, analysis: Analysis, business: BusinessContext) -> str:
        risk = analysis.risk_assessment
        specific = self._by_type("problem_advice", analysis.problem_type)

        if risk.level == "critical":
            lines = [self.t["advice_critical_header"], ""]
            lines += [f"• {a}" for a in risk.immediate_actions]
            lines += ["", self.t["advice_critical_footer"].format(**business.to_dict())]
            return "\n".join(lines)

        if risk.level == "high":
            lines = [self.t["advice_high_header"], ""]
            lines += [f"• {p}" for p in risk.safety_precautions]
            lines += ["", f"{self.t['advice_high_callback']} {specific}"]
            return "\n".join(lines)

        lines = [self.t["advice_standard_header"], ""]
        urgent_recs = [r.description for r in analysis.recommendations if r.priority == "high"]
        if urgent_recs:
            lines += [f"• {d}" for d in urgent_recs]
            lines.append("")
        lines.append(specific)
        return "\n".join(lines)

    def _scheduling(self, analysis: Analysis, business: BusinessContext) -> str:
        by_urgency = self.t["scheduling_by_urgency"]
        parts = [
            self.t["scheduling_intro"],
            by_urgency.get(analysis.urgency_level, by_urgency["default"]),
            self.t["scheduling_hours"].format(**business.to_dict()),
            self.t["scheduling_ask"],
        ]
        return " ".join(parts)

    def _completion(self, analysis: Analysis, business: BusinessContext) -> str:
        t = self.t
        info = analysis.extracted_info
        lines = [
            t["completion_header"],
            "",
            t["completion_problem"].format(
                problem=self._label(analysis), location=self._location(analysis)
            ),
        ]
        if info.symptoms:
            lines.append(t["completion_symptoms"].format(symptoms=", ".join(info.symptoms)))
        if analysis.estimated_cost:
            lines.append(
                t["completion_cost"].format(
                    min=analysis.estimated_cost.min, max=analysis.estimated_cost.max
                )
            )
        lines += [
            "",
            t["completion_eta"].get(analysis.urgency_level, t["completion_eta"]["low"]),
            "",
            t["completion_signature"].format(**business.to_dict()),
            t["completion_contact"].format(**business.to_dict()),
        ]
        if analysis.risk_assessment.level in ("high", "critical"):
            lines += ["", t["completion_safety"]]
        return "\n".join(lines)

    def _alternatives(self, category: str) -> List[str]:
        alt = self.t["alternatives"].get(category)
        return [alt] if alt else []

    # ------------------------------------------------------------
    # 3. 후속 작업
    # ------------------------------------------------------------

    def follow_up_actions(
        self,
        conversation: Conversation,
        analysis: Analysis,
        category: str,
    ) -> List[FollowUpAction]:
        notes = self.t["notifications"]
        phone = conversation.phone_number
        actions: List[FollowUpAction] = []

        if category == "completion":
            actions.append(
                FollowUpAction(
                    type="set_reminder",
                    delay=CALLBACK_DELAYS.get(analysis.urgency_level, CALLBACK_DELAYS["medium"]),
                    payload={
                        "action": "callback",
                        "phone_number": phone,
                        "message": notes["reminder_message"],
                    },
                )
            )

        if analysis.urgency_level == "emergency":
            actions.append(
                FollowUpAction(
                    type="create_task",
                    delay=0,
                    payload={
                        "title": notes["task_title"],
                        "description": f"{analysis.problem_type} - {phone}",
                        "priority": "urgent",
                    },
                )
            )

        if category == "completion":
            actions.append(
                FollowUpAction(
                    type="send_summary",
                    delay=SUMMARY_DELAY,
                    payload={
                        "phone_number": phone,
                        "problem_type": analysis.problem_type,
                        "urgency_level": analysis.urgency_level,
                        "summary": analysis.issue_description,
                    },
                )
            )

        if analysis.risk_assessment.level == "critical":
            actions.append(
                FollowUpAction(
                    type="escalate",
                    delay=0,
                    payload={"reason": notes["escalation_reason"], "phone_number": phone},
                )
            )

        return actions

    # ------------------------------------------------------------
    # 헬퍼
    # ------------------------------------------------------------

    @staticmethod
    def _confidence(conversation: Conversation, analysis: Analysis) -> float:
        confidence = 0.7 + analysis.confidence * 0.2
        if len(conversation.customer_messages()) >= 3:
            confidence += 0.1
        return min(0.95, confidence)

    def _by_type(self, table: str, problem_type: str) -> str:
        texts = self.t[table]
        return texts.get(problem_type, texts["unknown"])

    def _label(self, analysis: Analysis) -> str:
        labels = self.t["problem_labels"]
        return labels.get(analysis.problem_type, labels["unknown"])

    def _location(self, analysis: Analysis) -> str:
        return analysis.extracted_info.location or self.t["default_location"]
