import os
import pathlib
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime

# 대화별 JSONL 로그는 임시 디렉터리에 쌓는다. (core.config import 전에 설정)
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="triage-logs-"))
os.environ.setdefault("LOG_LEVEL", "WARNING")

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

import pytest

from services.business_context import ConfigBusinessContextProvider
from services.conversation_store import InMemoryConversationStore
from services.delivery import LoggingChannel
from services.message_queue import OutboundMessageQueue
from services.notifications import LoggingActionSink, LoggingEscalationNotifier
from services.scheduler import ManualScheduler
from triage import ConversationEngine, build_engine
from triage.analyzer import IssueAnalyzer
from triage.flow_manager import ConversationFlowManager
from triage.lexicon import default_lexicon
from triage.models import Conversation, Message, new_id
from triage.understanding import TextUnderstanding


@dataclass
class EngineContext:
    engine: ConversationEngine
    store: InMemoryConversationStore
    queue: OutboundMessageQueue
    scheduler: ManualScheduler
    escalations: LoggingEscalationNotifier
    actions: LoggingActionSink


@pytest.fixture
def lexicon():
    return default_lexicon()


@pytest.fixture
def understanding(lexicon):
    return TextUnderstanding(lexicon)


@pytest.fixture
def analyzer(lexicon):
    return IssueAnalyzer(lexicon)


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def flow(store, understanding, analyzer):
    return ConversationFlowManager(store, understanding, analyzer)


@pytest.fixture
def business():
    # 영업시간 안(10:00)으로 고정
    return ConfigBusinessContextProvider(clock=lambda: datetime(2024, 5, 6, 10, 0))


@pytest.fixture
def engine_ctx(store, business) -> EngineContext:
    queue = OutboundMessageQueue(LoggingChannel())
    scheduler = ManualScheduler()
    escalations = LoggingEscalationNotifier()
    actions = LoggingActionSink()
    engine = build_engine(
        store=store,
        queue=queue,
        scheduler=scheduler,
        escalations=escalations,
        actions=actions,
        business=business,
    )
    return EngineContext(engine, store, queue, scheduler, escalations, actions)


@pytest.fixture
def make_conversation(understanding):
    """고객 메시지 텍스트 목록으로 (분석 전) 대화를 만든다."""

    def _make(*texts: str, phone: str = "+359888000111") -> Conversation:
        conversation = Conversation(id=new_id("test"), phone_number=phone)
        for text in texts:
            understood = understanding.process(text)
            conversation.messages.append(
                Message(
                    id=new_id("msg"),
                    conversation_id=conversation.id,
                    sender="customer",
                    content=text,
                    intent=understood.intent,
                    entities=understood.entities,
                    sentiment=understood.sentiment,
                    confidence=understood.confidence,
                )
            )
        return conversation

    return _make
