# -*- coding: utf-8 -*-
"""
triage.analyzer

대화 전체(고객 메시지들의 엔티티)를 하나의 진단(Analysis)으로 접는 모듈.

역할
----
- IssueAnalyzer.analyze(conversation) -> Analysis
    · 문제 유형 / 분류(family)
    · 긴급도(urgency)
    · 위험도 평가(risk) + 권장 조치 / 안전 경고 / 다음 단계
    · 예상 비용(BGN), 필요 공구
    · 콜백 준비 여부(ready_for_callback), 신뢰도

원칙
----
- 항상 "전체 메시지 목록" 으로부터 처음부터 다시 계산한다. (증분 패치 없음)
- 같은 대화에 두 번 호출하면 완전히 같은 결과. (시간값을 넣지 않는다)
- 내부 오류가 나도 예외를 올리지 않고 최소 분석 결과(degraded=True)를 돌려준다.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from core.logging import logger

from .lexicon import Lexicon, default_knowledge, default_lexicon
from .models import (
    URGENCY_SEVERITY,
    Analysis,
    Conversation,
    CostEstimate,
    ExtractedEntity,
    ExtractedInfo,
    Message,
    Recommendation,
    RiskAssessment,
    raise_risk,
)
from .utils_text import (
    contains_any,
    find_keyword_hits,
    normalize_bulgarian,
    prepare_for_matching,
)

# 엔티티를 "신뢰할 만하다" 고 보는 기준
HIGH_CONFIDENCE = 0.7


class IssueAnalyzer:
    def __init__(
        self,
        lexicon: Optional[Lexicon] = None,
        knowledge: Optional[Dict[str, Any]] = None,
    ):
        self.lexicon = lexicon or default_lexicon()
        self.knowledge = knowledge or default_knowledge()

    # ------------------------------------------------------------
    # 공개 API
    # ------------------------------------------------------------

    def analyze(self, conversation: Conversation) -> Analysis:
        try:
            return self._analyze(conversation)
        except Exception:
            logger.exception("[analyzer] analysis failed for %s", conversation.id)
            return self.default_analysis()

    def default_analysis(self) -> Analysis:
        """분석 실패 시 돌려주는 최소 결과."""
        kn = self.knowledge
        return Analysis(
            problem_type="unknown",
            problem_category="unknown",
            urgency_level="medium",
            issue_description=kn["default_description"],
            risk_assessment=RiskAssessment(level="low"),
            next_steps=list(kn["next_steps"]["degraded"]),
            ready_for_callback=False,
            confidence=0.1,
            degraded=True,
        )

    # ------------------------------------------------------------
    # 본체
    # ------------------------------------------------------------

    def _analyze(self, conversation: Conversation) -> Analysis:
        customer = conversation.customer_messages()
        entities = [e for m in customer for e in m.entities]

        problem_type = self.classify_problem_type(entities, customer)
        urgency = self.determine_urgency(entities, customer)
        info = self.extract_info(entities, customer)
        risk = self.assess_risk(problem_type, urgency, info, entities)

        return Analysis(
            problem_type=problem_type,
            problem_category=self.family_of(problem_type),
            urgency_level=urgency,
            issue_description=self._issue_description(customer),
            extracted_info=info,
            risk_assessment=risk,
            recommendations=self._recommendations(problem_type, risk),
            estimated_cost=self._estimate_cost(problem_type, info),
            required_tools=self._required_tools(problem_type),
            safety_warnings=self._safety_warnings(problem_type, risk),
            next_steps=self._next_steps(urgency, risk),
            ready_for_callback=self.is_ready_for_callback(info, customer),
            confidence=self._confidence(entities, customer),
        )

    # ------------------------------------------------------------
    # 1. 문제 유형
    # ------------------------------------------------------------

    def classify_problem_type(
        self,
        entities: Sequence[ExtractedEntity],
        customer: Sequence[Message],
    ) -> str:
        for e in entities:
            if e.type == "problem_type" and e.confidence > HIGH_CONFIDENCE:
                return e.value

        # 엔티티가 없으면 전체 고객 텍스트를 순서대로 훑는다.
        # 전기 → 배관 → 냉난방 → 유지보수, 먼저 맞는 그룹이 이김
        all_text = prepare_for_matching(" ".join(m.content for m in customer))
        for problem_type, keywords in self.lexicon.classification_fallback:
            if find_keyword_hits(all_text, keywords):
                return problem_type
        return "unknown"

    def family_of(self, problem_type: str) -> str:
        for prefix, family in self.knowledge["family_prefixes"].items():
            if problem_type.startswith(prefix):
                return family
        return "unknown"

    # ------------------------------------------------------------
    # 2. 긴급도
    # ------------------------------------------------------------

    def determine_urgency(
        self,
        entities: Sequence[ExtractedEntity],
        customer: Sequence[Message],
    ) -> str:
        explicit = [
            e.value for e in entities
            if e.type == "urgency_level" and e.confidence > HIGH_CONFIDENCE
        ]
        if explicit:
            return max(explicit, key=URGENCY_SEVERITY.index)

        safety = [e.value for e in entities if e.type == "safety_concern"]
        if safety:
            if any(v in self.lexicon.critical_safety for v in safety):
                return "emergency"
            return "high"

        if any(m.sentiment and m.sentiment.score("urgent") > 0.5 for m in customer):
            return "high"

        immediate = self.lexicon.immediate_time_expressions
        if any(e.type == "time" and e.value in immediate for e in entities):
            return "high"

        return "medium"

    # ------------------------------------------------------------
    # 3. 구조화 정보
    # ------------------------------------------------------------

    def extract_info(
        self,
        entities: Sequence[ExtractedEntity],
        customer: Sequence[Message],
    ) -> ExtractedInfo:
        info = ExtractedInfo()

        for e in entities:
            if e.type == "location" and info.location is None:
                info.location = e.value
            elif e.type == "symptom" and e.value not in info.symptoms:
                info.symptoms.append(e.value)
            elif e.type == "safety_concern" and e.value not in info.safety_issues:
                info.safety_issues.append(e.value)
            elif e.type in ("time", "duration") and info.duration is None:
                info.duration = e.value

        all_text = " ".join(m.content for m in customer)
        if contains_any(all_text, self.lexicon.previous_work_keywords):
            info.previous_work = self.knowledge["previous_work_note"]
        if contains_any(all_text, self.lexicon.availability_keywords):
            info.customer_availability = self.knowledge["availability_note"]

        for m in customer:
            category = m.intent.category if m.intent else None
            if category != "problem_description" and len(normalize_bulgarian(m.content)) > 10:
                info.additional_notes.append(m.content)

        return info

    def _issue_description(self, customer: Sequence[Message]) -> str:
        parts = [
            m.content for m in customer
            if m.intent and m.intent.category == "problem_description"
        ]
        return " ".join(parts) or self.knowledge["default_description"]

    # ------------------------------------------------------------
    # 4. 위험도 평가
    # ------------------------------------------------------------

    def assess_risk(
        self,
        problem_type: str,
        urgency: str,
        info: ExtractedInfo,
        entities: Sequence[ExtractedEntity],
    ) -> RiskAssessment:
        kn = self.knowledge
        profile_name = kn["risk_profile_by_type"].get(problem_type, "default")
        profile = kn["risk_profiles"][profile_name]

        level = profile["level"]
        factors = list(profile["factors"])
        actions = list(profile["immediate_actions"])
        precautions = list(profile["safety_precautions"])

        # 유형별 트리거 (첫 번째로 맞는 것만)
        evidence = set(info.symptoms) | set(info.safety_issues)
        for trigger in profile.get("triggers", []):
            if _trigger_matches(trigger, evidence, urgency):
                level = trigger["level"]
                factors += trigger.get("factors", [])
                actions += trigger.get("immediate_actions", [])
                break

        # 공통 규칙
        critical_hits = [
            e.value for e in entities
            if e.type == "safety_concern" and e.value in self.lexicon.critical_safety
        ]
        if info.safety_issues and not critical_hits:
            if level == "low":
                factors.append(kn["safety_concern_factor"])
            level = raise_risk(level, "medium")

        if urgency in ("emergency", "critical"):
            level = raise_risk(level, "high")
            if not actions:
                actions += kn["urgent_immediate_actions"]

        if critical_hits:
            # 치명적 안전 신호는 유형 테이블과 무관하게 critical
            level = "critical"
            factors.append(kn["critical_safety_factor"])
            for action in kn["critical_immediate_actions"]:
                if action not in actions:
                    actions.append(action)

        if level == "low":
            actions = []

        precautions += kn["general_precautions"]

        return RiskAssessment(
            level=level,
            factors=_dedupe(factors),
            immediate_actions=_dedupe(actions),
            safety_precautions=_dedupe(precautions),
        )

    # ------------------------------------------------------------
    # 5. 권장 조치 / 비용 / 공구 / 경고 / 다음 단계
    # ------------------------------------------------------------

    def _recommendations(self, problem_type: str, risk: RiskAssessment) -> List[Recommendation]:
        table = self.knowledge["recommendations"]
        out: List[Recommendation] = []

        if risk.immediate_actions:
            out.append(
                Recommendation(
                    type="immediate_action",
                    title=table["immediate_action"]["title"],
                    description=". ".join(risk.immediate_actions),
                    priority=table["immediate_action"]["priority"],
                )
            )

        if risk.level in ("high", "critical"):
            out.append(
                Recommendation(
                    type="safety",
                    title=table["safety"]["title"],
                    description=". ".join(risk.safety_precautions),
                    priority=table["safety"]["priority"],
                )
            )

        specific = table["by_type"].get(problem_type)
        if specific:
            out.append(Recommendation(**specific))

        return out

    def _estimate_cost(self, problem_type: str, info: ExtractedInfo) -> CostEstimate:
        kn = self.knowledge
        low, high = kn["cost_ranges"].get(problem_type, kn["cost_ranges"]["unknown"])

        multiplier = 1.0
        if info.safety_issues:
            multiplier += 0.3
        if len(info.symptoms) > 3:
            multiplier += 0.2

        return CostEstimate(
            min=int(round(low * multiplier)),
            max=int(round(high * multiplier)),
            currency="BGN",
            factors=list(kn["cost_factors"]),
            disclaimer=kn["cost_disclaimer"],
        )

    def _required_tools(self, problem_type: str) -> List[str]:
        tools = self.knowledge["tool_sets"]
        return list(tools.get(problem_type, tools["unknown"]))

    def _safety_warnings(self, problem_type: str, risk: RiskAssessment) -> List[str]:
        kn = self.knowledge
        warnings = list(kn["warnings_by_risk"].get(risk.level, []))
        warnings += kn["warnings_by_family"].get(self.family_of(problem_type), [])
        return warnings

    def _next_steps(self, urgency: str, risk: RiskAssessment) -> List[str]:
        steps_table = self.knowledge["next_steps"]
        if urgency == "emergency" or risk.level == "critical":
            steps = steps_table["immediate"]
        elif urgency == "high":
            steps = steps_table["high"]
        else:
            steps = steps_table["standard"]
        return list(steps) + list(steps_table["closing"])

    # ------------------------------------------------------------
    # 6. 콜백 준비 여부 / 신뢰도
    # ------------------------------------------------------------

    @staticmethod
    def is_ready_for_callback(info: ExtractedInfo, customer: Sequence[Message]) -> bool:
        return (
            info.location is not None
            and len(info.symptoms) >= 2
            and len(customer) >= 3
        )

    @staticmethod
    def _confidence(entities: Sequence[ExtractedEntity], customer: Sequence[Message]) -> float:
        confidence = 0.5
        if entities:
            confidence += 0.3 * (sum(e.confidence for e in entities) / len(entities))
        if len(customer) >= 3:
            confidence += 0.2
        if any(e.type == "problem_type" and e.confidence > HIGH_CONFIDENCE for e in entities):
            confidence += 0.2
        return min(0.95, max(0.1, confidence))


# ------------------------------------------------------------
# 내부 헬퍼
# ------------------------------------------------------------

def _trigger_matches(trigger: Dict[str, Any], evidence: set, urgency: str) -> bool:
    if "evidence" in trigger and evidence.intersection(trigger["evidence"]):
        return True
    if "urgency" in trigger and urgency in trigger["urgency"]:
        return True
    return False


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))
