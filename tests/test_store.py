import threading
import time

import pytest
from sqlalchemy.exc import OperationalError

from db.session import Base, init_db, make_engine, make_session_factory
from services.conversation_store import InMemoryConversationStore, KeyedLocks, SqlConversationStore
from triage.errors import ConversationStoreError
from triage.flow_manager import ConversationFlowManager
from triage.models import Conversation


@pytest.fixture
def sql_store():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield SqlConversationStore(make_session_factory(engine))
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def any_store(request, sql_store):
    if request.param == "memory":
        return InMemoryConversationStore()
    return sql_store


def test_put_and_get_round_trip(any_store, make_conversation, analyzer):
    conv = make_conversation("Контактът в хола искри", phone="+359888000222")
    conv.analysis = analyzer.analyze(conv)
    any_store.put(conv)

    loaded = any_store.get(conv.id)
    assert loaded.id == conv.id
    assert loaded.messages[0].entities == conv.messages[0].entities
    assert loaded.analysis == conv.analysis
    assert any_store.get("missing") is None


def test_find_open_by_phone_ignores_closed(any_store):
    closed = Conversation(id="c1", phone_number="+359888000333", status="closed")
    open_ = Conversation(id="c2", phone_number="+359888000333", status="waiting_response")
    any_store.put(closed)
    any_store.put(open_)

    assert any_store.find_open_by_phone("+359888000333").id == "c2"
    assert any_store.find_open_by_phone("+359000000000") is None
    assert [c.id for c in any_store.list_active()] == ["c2"]
    assert {c.id for c in any_store.list_all()} == {"c1", "c2"}


def test_memory_store_returns_copies():
    store = InMemoryConversationStore()
    store.put(Conversation(id="c1", phone_number="+359888000444"))

    loaded = store.get("c1")
    loaded.status = "closed"
    assert store.get("c1").status == "active"


def test_flow_manager_works_on_sql_store(sql_store, understanding, analyzer):
    flow = ConversationFlowManager(sql_store, understanding, analyzer)
    conv, _ = flow.start_conversation("+359888000555")
    outcome = flow.process_customer_message(conv.id, "Имам проблем с контакта в кухнята")

    stored = sql_store.get(conv.id)
    assert stored.state == outcome.conversation.state
    assert stored.analysis.problem_type == "electrical_outlet"


def test_sql_errors_are_wrapped():
    def broken_session():
        raise OperationalError("SELECT 1", {}, Exception("db down"))

    store = SqlConversationStore(broken_session)
    with pytest.raises(ConversationStoreError):
        store.get("c1")


def test_locked_serializes_same_conversation():
    store = InMemoryConversationStore()
    order = []

    def worker():
        with store.locked("c1"):
            order.append("worker")

    with store.locked("c1"):
        t = threading.Thread(target=worker)
        t.start()
        time.sleep(0.05)
        order.append("main")
    t.join(1)

    assert order == ["main", "worker"]


def test_released_locks_are_dropped():
    locks = KeyedLocks()
    for i in range(1000):
        with locks.locked(f"conv_{i}"):
            pass

    assert locks._locks == {}


def test_lock_entry_survives_while_someone_waits():
    locks = KeyedLocks()
    acquired = threading.Event()

    def worker():
        with locks.locked("c1"):
            acquired.set()

    with locks.locked("c1"):
        # 재진입
        with locks.locked("c1"):
            pass
        t = threading.Thread(target=worker)
        t.start()
        time.sleep(0.05)
        assert not acquired.is_set()
        assert locks._locks["c1"].users == 2
    t.join(1)

    assert acquired.is_set()
    assert locks._locks == {}
