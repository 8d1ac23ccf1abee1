# routers/conversations.py
# -*- coding: utf-8 -*-
"""
부재중 전화 / 대화 API

- POST /api/calls/missed                     : 부재중 전화 → 대화 시작 + 첫 메시지
- POST /api/conversations/{id}/messages      : 고객 메시지 → 다음 응답
- POST /api/conversations/{id}/close         : 대화 종료
- GET  /api/conversations                    : 진행 중 대화 목록
- GET  /api/conversations/stats              : 대화 통계
- GET  /api/conversations/{id}               : 대화 전체 (메시지 + 분석)
- GET  /api/conversations/{id}/analysis      : 현재 메시지 기준 재분석 결과

엔진은 app.state.engine 에 있다. (app_fastapi.py 에서 조립)
"""

from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from core.logging import logger
from triage.engine import ConversationEngine
from triage.errors import ConversationNotFoundError, ConversationStoreError
from triage.models import Conversation, InboundCallEvent

# ============================================================
# 요청 / 응답 스키마
# ============================================================


class MissedCallRequest(BaseModel):
    phone_number: str = Field(..., min_length=3, description="발신자 전화번호")
    preferred_channel: Optional[Literal["whatsapp", "viber", "telegram", "sms"]] = Field(
        None, description="응답을 보낼 메신저 (없으면 whatsapp)"
    )
    contact_id: Optional[str] = None


class MissedCallResponse(BaseModel):
    conversation_id: str
    created: bool
    initial_message: Optional[str] = None
    state: str
    status: str


class CustomerMessageRequest(BaseModel):
    text: str = Field(..., description="고객이 보낸 메시지 원문")
    kind: Literal["text", "image", "location"] = "text"


class CustomerMessageResponse(BaseModel):
    conversation_id: str
    reply: Optional[str] = None
    state: str
    status: str
    complete: bool = False
    escalated: bool = False
    analysis: Dict[str, Any] = Field(default_factory=dict)


class CloseRequest(BaseModel):
    reason: str = "manual"


class ConversationSummary(BaseModel):
    conversation_id: str
    phone_number: str
    channel: str
    status: str
    state: str
    message_count: int
    problem_type: str
    urgency_level: str
    started_at: Optional[str] = None
    last_message_at: Optional[str] = None


class ConversationListResponse(BaseModel):
    conversations: List[ConversationSummary]


class ConversationStatsResponse(BaseModel):
    total: int
    active: int
    completed: int
    escalated: int
    closed: int
    average_messages: float


class ConversationAnalysisResponse(BaseModel):
    conversation_id: str
    risk_level: str
    recommendations: List[str]
    next_steps: List[str]
    analysis: Dict[str, Any]


# ============================================================
# 공통 유틸
# ============================================================

router = APIRouter(prefix="/api", tags=["conversations"])


def get_engine(request: Request) -> ConversationEngine:
    return request.app.state.engine


def _summary(c: Conversation) -> ConversationSummary:
    return ConversationSummary(
        conversation_id=c.id,
        phone_number=c.phone_number,
        channel=c.channel,
        status=c.status,
        state=c.state,
        message_count=len(c.messages),
        problem_type=c.analysis.problem_type,
        urgency_level=c.analysis.urgency_level,
        started_at=c.started_at.isoformat() if c.started_at else None,
        last_message_at=c.last_message_at.isoformat() if c.last_message_at else None,
    )


def _store_unavailable(e: ConversationStoreError) -> HTTPException:
    logger.error("[api] store error: %s", e)
    return HTTPException(status_code=503, detail="대화 저장소를 사용할 수 없습니다.")


# ============================================================
# 1. 부재중 전화
# ============================================================


@router.post(
    "/calls/missed",
    response_model=MissedCallResponse,
    summary="부재중 전화 → 자동 응답 대화 시작",
)
def missed_call(payload: MissedCallRequest, engine: ConversationEngine = Depends(get_engine)):
    event = InboundCallEvent(
        phone_number=payload.phone_number,
        preferred_channel=payload.preferred_channel,
        contact_id=payload.contact_id,
    )
    try:
        result = engine.start_conversation(event)
    except ConversationStoreError as e:
        raise _store_unavailable(e)

    conversation: Conversation = result["conversation"]
    return MissedCallResponse(
        conversation_id=conversation.id,
        created=result["created"],
        initial_message=result["initial_message"],
        state=conversation.state,
        status=conversation.status,
    )


# ============================================================
# 2. 대화 목록 / 통계 (경로 충돌을 피하려고 {id} 보다 먼저 선언)
# ============================================================


@router.get(
    "/conversations",
    response_model=ConversationListResponse,
    summary="진행 중 대화 목록",
)
def list_conversations(engine: ConversationEngine = Depends(get_engine)):
    try:
        active = engine.list_active()
    except ConversationStoreError as e:
        raise _store_unavailable(e)
    return ConversationListResponse(conversations=[_summary(c) for c in active])


@router.get(
    "/conversations/stats",
    response_model=ConversationStatsResponse,
    summary="대화 통계",
)
def conversation_stats(engine: ConversationEngine = Depends(get_engine)):
    try:
        stats = engine.stats()
    except ConversationStoreError as e:
        raise _store_unavailable(e)
    return ConversationStatsResponse(**stats)


# ============================================================
# 3. 개별 대화
# ============================================================


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=CustomerMessageResponse,
    summary="고객 메시지 처리 → 다음 응답",
)
def post_message(
    conversation_id: str,
    payload: CustomerMessageRequest,
    engine: ConversationEngine = Depends(get_engine),
):
    try:
        result = engine.process_incoming_message(conversation_id, payload.text, payload.kind)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="해당 대화를 찾을 수 없습니다.")
    except ConversationStoreError as e:
        raise _store_unavailable(e)

    if result.get("rejected"):
        raise HTTPException(
            status_code=409,
            detail=f"이미 종료된 대화입니다. (status={result['status']})",
        )

    conversation: Conversation = result["conversation"]
    return CustomerMessageResponse(
        conversation_id=conversation.id,
        reply=result["reply"],
        state=conversation.state,
        status=conversation.status,
        complete=result["complete"],
        escalated=result["escalated"],
        analysis=conversation.analysis.to_dict(),
    )


@router.post(
    "/conversations/{conversation_id}/close",
    response_model=ConversationSummary,
    summary="대화 종료",
)
def close_conversation(
    conversation_id: str,
    payload: Optional[CloseRequest] = None,
    engine: ConversationEngine = Depends(get_engine),
):
    reason = payload.reason if payload else "manual"
    try:
        conversation = engine.close_conversation(conversation_id, reason)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="해당 대화를 찾을 수 없습니다.")
    except ConversationStoreError as e:
        raise _store_unavailable(e)
    return _summary(conversation)


@router.get(
    "/conversations/{conversation_id}",
    summary="대화 상세 (메시지 + 분석)",
)
def get_conversation(conversation_id: str, engine: ConversationEngine = Depends(get_engine)):
    try:
        conversation = engine.get_conversation(conversation_id)
    except ConversationStoreError as e:
        raise _store_unavailable(e)
    if conversation is None:
        raise HTTPException(status_code=404, detail="해당 대화를 찾을 수 없습니다.")
    return conversation.to_dict()


@router.get(
    "/conversations/{conversation_id}/analysis",
    response_model=ConversationAnalysisResponse,
    summary="대화 재분석 결과",
)
def get_conversation_analysis(
    conversation_id: str,
    engine: ConversationEngine = Depends(get_engine),
):
    try:
        result = engine.get_conversation_analysis(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="해당 대화를 찾을 수 없습니다.")
    except ConversationStoreError as e:
        raise _store_unavailable(e)

    return ConversationAnalysisResponse(
        conversation_id=conversation_id,
        risk_level=result["risk_level"],
        recommendations=result["recommendations"],
        next_steps=result["next_steps"],
        analysis=result["analysis"].to_dict(),
    )
