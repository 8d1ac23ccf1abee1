# app_fastapi.py
# -*- coding: utf-8 -*-
"""
부재중 전화 자동 진단 백엔드 (FastAPI)

- create_app(engine=None, queue=None)
    - engine 을 주지 않으면 .env 설정으로 조립한다.
        - CONVERSATION_STORE=sql 이면 SQLAlchemy 저장소 (MySQL / SQLite)
        - DELIVERY_WEBHOOK_URL 이 있으면 httpx 웹훅으로 전송, 없으면 로그만
    - 서버가 떠 있는 동안 QueueWorker 가 발신 큐를 주기적으로 비운다.

실행:
    uvicorn app_fastapi:app --reload
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import CONVERSATION_STORE, DELIVERY_WEBHOOK_URL
from core.logging import logger
from routers import conversations, health
from services.delivery import LoggingChannel, WebhookChannel
from services.message_queue import OutboundMessageQueue, QueueWorker
from triage import ConversationEngine, build_engine


def build_default_engine() -> tuple:
    """설정값으로 (engine, queue) 를 만든다."""
    if DELIVERY_WEBHOOK_URL:
        transport = WebhookChannel(DELIVERY_WEBHOOK_URL)
    else:
        logger.warning("DELIVERY_WEBHOOK_URL 이 없어 발신 메시지는 로그로만 남깁니다.")
        transport = LoggingChannel()
    queue = OutboundMessageQueue(transport)

    store = None
    if CONVERSATION_STORE == "sql":
        from db.session import init_db
        from services.conversation_store import SqlConversationStore

        init_db()
        store = SqlConversationStore()

    return build_engine(store=store, queue=queue), queue


def create_app(
    engine: Optional[ConversationEngine] = None,
    queue: Optional[OutboundMessageQueue] = None,
) -> FastAPI:
    if engine is None:
        engine, queue = build_default_engine()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        worker = QueueWorker(queue) if queue is not None else None
        if worker is not None:
            worker.start()
        logger.info("🚀 triage backend started (store=%s)", CONVERSATION_STORE)
        yield
        if worker is not None:
            worker.stop()

    app = FastAPI(
        title="부재중 전화 자동 진단 백엔드 API",
        description="""
전기/배관/냉난방 기술자를 위한 **부재중 전화 자동 응답·진단** API입니다.

- 기술자가 받지 못한 전화가 들어오면, 고객에게 메신저(WhatsApp/Viber/Telegram/SMS)로
  불가리아어 자동 응답을 보냅니다.
- 고객 답장을 바탕으로
  - 의도 분류 / 엔티티 추출 / 감정 분석
  - 문제 유형, 긴급도, 위험도, 예상 비용 진단
  - 다음 질문 또는 안전 안내, 콜백 요약 생성
  을 수행합니다.
- 위험한 상황(불꽃, 타는 냄새, 감전 ...)은 즉시 사람에게 에스컬레이션합니다.
""",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS: 개발 단계에서는 * 허용, 배포 시에는 도메인 제한 권장
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.engine = engine
    app.state.queue = queue

    app.include_router(health.router)
    app.include_router(conversations.router)
    return app


app = create_app()
