# -*- coding: utf-8 -*-
"""
triage.models

대화형 진단 엔진에서 공통으로 쓰는 데이터 구조 정의.

🎯 구성
--------------------------------------
- 타입 별칭 (Literal): 채널, 대화 상태(state), 상태(status), 긴급도, 위험도 ...
- 텍스트 이해 결과: ExtractedEntity, Intent, Sentiment, UnderstandingResult
- 메시지 / 대화: Message(불변), Conversation
- 진단 결과: Analysis 와 하위 구조(ExtractedInfo, RiskAssessment, ...)
- 응답 생성 결과: GeneratedResponse, FollowUpAction
- 외부 경계: BusinessContext, InboundCallEvent, OutboundMessage, EscalationRecord

모든 구조체는 to_dict()/from_dict() 로 JSON 직렬화가 가능하다.
(SQL 저장소와 FastAPI 응답에서 그대로 사용)
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple


# ---------------------------------------------------------
# 타입 별칭
# ---------------------------------------------------------

Channel = Literal["whatsapp", "viber", "telegram", "sms"]
CHANNELS: Tuple[str, ...] = ("whatsapp", "viber", "telegram", "sms")

ConversationStatus = Literal[
    "active", "waiting_response", "escalated", "completed", "closed"
]
OPEN_STATUSES: Tuple[str, ...] = ("active", "waiting_response")
TERMINAL_STATUSES: Tuple[str, ...] = ("escalated", "completed", "closed")

ConversationState = Literal[
    "INITIAL_RESPONSE",
    "AWAITING_DESCRIPTION",
    "FOLLOW_UP_QUESTIONS",
    "GATHERING_DETAILS",
    "PROVIDING_ADVICE",
    "SCHEDULING_VISIT",
    "COMPLETED",
]
STATES: Tuple[str, ...] = (
    "INITIAL_RESPONSE",
    "AWAITING_DESCRIPTION",
    "FOLLOW_UP_QUESTIONS",
    "GATHERING_DETAILS",
    "PROVIDING_ADVICE",
    "SCHEDULING_VISIT",
    "COMPLETED",
)

Sender = Literal["customer", "agent", "system"]
MessageKind = Literal["text", "image", "location"]

EntityType = Literal[
    "problem_type",
    "urgency_level",
    "location",
    "symptom",
    "safety_concern",
    "time",
    "duration",
]

ProblemCategory = Literal["electrical", "plumbing", "climate", "maintenance", "unknown"]

UrgencyLevel = Literal["low", "medium", "high", "emergency", "critical"]
# 뒤로 갈수록 심각
URGENCY_SEVERITY: Tuple[str, ...] = ("low", "medium", "high", "critical", "emergency")

RiskLevel = Literal["low", "medium", "high", "critical"]
RISK_ORDER: Tuple[str, ...] = ("low", "medium", "high", "critical")

ResponseCategory = Literal["question", "advice", "confirmation", "scheduling", "completion"]
FollowUpType = Literal["set_reminder", "create_task", "send_summary", "escalate"]
Priority = Literal["normal", "urgent"]


def utcnow() -> datetime:
    return datetime.utcnow()


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def raise_risk(current: str, at_least: str) -> str:
    """위험도를 최소 at_least 까지 올린다. (내리지는 않음)"""
    if RISK_ORDER.index(at_least) > RISK_ORDER.index(current):
        return at_least
    return current


# ---------------------------------------------------------
# 텍스트 이해 결과
# ---------------------------------------------------------

@dataclass(frozen=True)
class ExtractedEntity:
    type: str
    value: str
    confidence: float
    start: int
    end: int
    keyword: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractedEntity":
        return cls(
            type=data["type"],
            value=data["value"],
            confidence=float(data["confidence"]),
            start=int(data.get("start", 0)),
            end=int(data.get("end", 0)),
            keyword=data.get("keyword"),
        )


@dataclass(frozen=True)
class Intent:
    name: str
    category: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Intent":
        return cls(
            name=data["name"],
            category=data["category"],
            confidence=float(data["confidence"]),
        )


@dataclass(frozen=True)
class Emotion:
    emotion: str
    score: float


@dataclass(frozen=True)
class Sentiment:
    polarity: str = "neutral"
    confidence: float = 0.5
    emotions: Tuple[Emotion, ...] = ()

    def score(self, emotion: str) -> float:
        for e in self.emotions:
            if e.emotion == emotion:
                return e.score
        return 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sentiment":
        return cls(
            polarity=data.get("polarity", "neutral"),
            confidence=float(data.get("confidence", 0.5)),
            emotions=tuple(
                Emotion(emotion=e["emotion"], score=float(e["score"]))
                for e in data.get("emotions", [])
            ),
        )


@dataclass(frozen=True)
class UnderstandingResult:
    intent: Intent
    entities: Tuple[ExtractedEntity, ...]
    sentiment: Sentiment
    confidence: float
    # 내부 오류로 기본값을 돌려준 경우 True (error_count 집계용)
    fallback: bool = False


# ---------------------------------------------------------
# 메시지 / 대화
# ---------------------------------------------------------

@dataclass(frozen=True)
class Message:
    """
    대화 안의 메시지 한 건. 한 번 추가되면 바뀌지 않는다.
    고객 메시지에는 텍스트 이해 결과(intent/entities/sentiment)가 붙는다.
    """
    id: str
    conversation_id: str
    sender: str
    content: str
    kind: str = "text"
    timestamp: datetime = field(default_factory=utcnow)
    intent: Optional[Intent] = None
    entities: Tuple[ExtractedEntity, ...] = ()
    sentiment: Optional[Sentiment] = None
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender": self.sender,
            "content": self.content,
            "kind": self.kind,
            "timestamp": _iso(self.timestamp),
            "intent": self.intent.to_dict() if self.intent else None,
            "entities": [e.to_dict() for e in self.entities],
            "sentiment": self.sentiment.to_dict() if self.sentiment else None,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            id=data["id"],
            conversation_id=data["conversation_id"],
            sender=data["sender"],
            content=data["content"],
            kind=data.get("kind", "text"),
            timestamp=_dt(data.get("timestamp")) or utcnow(),
            intent=Intent.from_dict(data["intent"]) if data.get("intent") else None,
            entities=tuple(ExtractedEntity.from_dict(e) for e in data.get("entities", [])),
            sentiment=(
                Sentiment.from_dict(data["sentiment"]) if data.get("sentiment") else None
            ),
            confidence=data.get("confidence"),
        )


# ---------------------------------------------------------
# 진단 결과 (Analysis)
# ---------------------------------------------------------

@dataclass
class ExtractedInfo:
    location: Optional[str] = None
    symptoms: List[str] = field(default_factory=list)
    duration: Optional[str] = None
    safety_issues: List[str] = field(default_factory=list)
    previous_work: Optional[str] = None
    customer_availability: Optional[str] = None
    additional_notes: List[str] = field(default_factory=list)


@dataclass
class RiskAssessment:
    level: str = "low"
    factors: List[str] = field(default_factory=list)
    immediate_actions: List[str] = field(default_factory=list)
    safety_precautions: List[str] = field(default_factory=list)


@dataclass
class Recommendation:
    type: str
    title: str
    description: str
    priority: str


@dataclass
class CostEstimate:
    min: int
    max: int
    currency: str = "BGN"
    factors: List[str] = field(default_factory=list)
    disclaimer: str = ""


@dataclass
class Analysis:
    """
    대화 전체 메시지에서 매번 새로 계산되는 진단 스냅샷.
    메시지 목록만 있으면 언제든 다시 만들 수 있어야 한다. (시간값 없음)
    """
    problem_type: str = "unknown"
    problem_category: str = "unknown"
    urgency_level: str = "medium"
    issue_description: str = ""
    extracted_info: ExtractedInfo = field(default_factory=ExtractedInfo)
    risk_assessment: RiskAssessment = field(default_factory=RiskAssessment)
    recommendations: List[Recommendation] = field(default_factory=list)
    estimated_cost: Optional[CostEstimate] = None
    required_tools: List[str] = field(default_factory=list)
    safety_warnings: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    ready_for_callback: bool = False
    confidence: float = 0.0
    # 분석 도중 오류가 나서 최소 결과를 돌려준 경우 True
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Analysis":
        cost = data.get("estimated_cost")
        return cls(
            problem_type=data.get("problem_type", "unknown"),
            problem_category=data.get("problem_category", "unknown"),
            urgency_level=data.get("urgency_level", "medium"),
            issue_description=data.get("issue_description", ""),
            extracted_info=ExtractedInfo(**data.get("extracted_info", {})),
            risk_assessment=RiskAssessment(**data.get("risk_assessment", {})),
            recommendations=[Recommendation(**r) for r in data.get("recommendations", [])],
            estimated_cost=CostEstimate(**cost) if cost else None,
            required_tools=list(data.get("required_tools", [])),
            safety_warnings=list(data.get("safety_warnings", [])),
            next_steps=list(data.get("next_steps", [])),
            ready_for_callback=bool(data.get("ready_for_callback", False)),
            confidence=float(data.get("confidence", 0.0)),
            degraded=bool(data.get("degraded", False)),
        )


@dataclass
class Conversation:
    id: str
    phone_number: str
    channel: str = "whatsapp"
    contact_id: Optional[str] = None
    status: str = "active"
    state: str = "INITIAL_RESPONSE"
    messages: List[Message] = field(default_factory=list)
    analysis: Analysis = field(default_factory=Analysis)
    started_at: datetime = field(default_factory=utcnow)
    last_message_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    # --- 편의 메서드 ---

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def customer_messages(self) -> List[Message]:
        return [m for m in self.messages if m.sender == "customer"]

    def agent_messages(self) -> List[Message]:
        return [m for m in self.messages if m.sender == "agent"]

    def last_agent_text(self) -> Optional[str]:
        agent = self.agent_messages()
        return agent[-1].content if agent else None

    def bump_error_count(self) -> None:
        self.metadata["error_count"] = int(self.metadata.get("error_count", 0)) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "phone_number": self.phone_number,
            "channel": self.channel,
            "contact_id": self.contact_id,
            "status": self.status,
            "state": self.state,
            "messages": [m.to_dict() for m in self.messages],
            "analysis": self.analysis.to_dict(),
            "started_at": _iso(self.started_at),
            "last_message_at": _iso(self.last_message_at),
            "completed_at": _iso(self.completed_at),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        return cls(
            id=data["id"],
            phone_number=data["phone_number"],
            channel=data.get("channel", "whatsapp"),
            contact_id=data.get("contact_id"),
            status=data.get("status", "active"),
            state=data.get("state", "INITIAL_RESPONSE"),
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            analysis=Analysis.from_dict(data.get("analysis", {})),
            started_at=_dt(data.get("started_at")) or utcnow(),
            last_message_at=_dt(data.get("last_message_at")) or utcnow(),
            completed_at=_dt(data.get("completed_at")),
            metadata=dict(data.get("metadata", {})),
        )


# ---------------------------------------------------------
# 응답 생성 결과
# ---------------------------------------------------------

@dataclass(frozen=True)
class FollowUpAction:
    """응답과 함께 나가는 후속 작업. delay 단위는 초."""
    type: str
    delay: float = 0
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "delay": self.delay, "payload": dict(self.payload)}


@dataclass
class GeneratedResponse:
    text: str
    category: str
    next_state: str
    follow_up_actions: List[FollowUpAction] = field(default_factory=list)
    confidence: float = 0.0
    reasoning: str = ""
    alternatives: List[str] = field(default_factory=list)
    fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "category": self.category,
            "next_state": self.next_state,
            "follow_up_actions": [a.to_dict() for a in self.follow_up_actions],
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "alternatives": list(self.alternatives),
            "fallback": self.fallback,
        }


# ---------------------------------------------------------
# 외부 경계 (입력 이벤트 / 사업자 정보 / 발신 메시지 / 에스컬레이션)
# ---------------------------------------------------------

@dataclass(frozen=True)
class BusinessContext:
    agent_name: str
    profession: str
    experience_years: str
    working_hours: str
    emergency_contact: str
    is_business_hours: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class InboundCallEvent:
    phone_number: str
    preferred_channel: Optional[str] = None
    contact_id: Optional[str] = None


@dataclass
class OutboundMessage:
    id: str
    channel: str
    recipient: str
    text: str
    conversation_id: Optional[str] = None
    priority: str = "normal"
    retry_count: int = 0
    max_retries: int = 3
    created_at: datetime = field(default_factory=utcnow)
    # 재시도 대기 중이면 이 시각 이후에만 다시 보낸다.
    scheduled_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        data["scheduled_at"] = _iso(self.scheduled_at)
        return data


@dataclass(frozen=True)
class EscalationRecord:
    conversation_id: str
    phone_number: str
    reason: str
    timestamp: datetime = field(default_factory=utcnow)
    priority: str = "urgent"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = _iso(self.timestamp)
        return data
