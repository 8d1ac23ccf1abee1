# services/conversation_store.py
# -*- coding: utf-8 -*-
"""
대화 저장소 구현 (triage.ports.ConversationStore)

- InMemoryConversationStore : dict 기반. 데모/테스트용, 프로세스가 끝나면 사라짐
- SqlConversationStore      : SQLAlchemy (MySQL / SQLite) 에 대화 한 건을 한 행으로 저장

두 저장소 모두 KeyedLocks 로 "대화 id 별" 잠금을 제공한다.
잠금은 같은 프로세스 안에서만 유효하다.
"""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.logging import logger
from db.models.conversation import ConversationRecord
from db.session import get_session_factory
from triage.errors import ConversationStoreError
from triage.models import OPEN_STATUSES, Conversation


@dataclass
class _LockEntry:
    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0  # 잡고 있거나 기다리는 수


class KeyedLocks:
    """
    키(대화 id, phone:번호 ...) 마다 재진입 가능한 잠금을 하나씩 만든다.
    마지막 사용자가 풀고 나가면 그 키의 잠금은 지운다.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, _LockEntry] = {}

    @contextmanager
    def locked(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, _LockEntry())
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]


# ---------------------------------------------------------
# 1) 메모리 저장소
# ---------------------------------------------------------

class InMemoryConversationStore:
    def __init__(self):
        self._items: Dict[str, Conversation] = {}
        self._locks = KeyedLocks()

    def locked(self, conversation_id: str):
        return self._locks.locked(conversation_id)

    # 꺼낸 객체를 고쳐도 put 전까지는 저장본이 바뀌지 않도록 복사해서 주고받는다.
    def get(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self._items.get(conversation_id)
        return copy.deepcopy(conversation) if conversation is not None else None

    def put(self, conversation: Conversation) -> None:
        self._items[conversation.id] = copy.deepcopy(conversation)

    def list_all(self) -> List[Conversation]:
        return [copy.deepcopy(c) for c in self._items.values()]

    def list_active(self) -> List[Conversation]:
        return [copy.deepcopy(c) for c in self._items.values() if c.status in OPEN_STATUSES]

    def find_open_by_phone(self, phone_number: str) -> Optional[Conversation]:
        candidates = [
            c for c in self._items.values()
            if c.phone_number == phone_number and c.status in OPEN_STATUSES
        ]
        if not candidates:
            return None
        latest = max(candidates, key=lambda c: c.started_at)
        return copy.deepcopy(latest)


# ---------------------------------------------------------
# 2) SQL 저장소
# ---------------------------------------------------------

class SqlConversationStore:
    """
    - session_factory 를 주지 않으면 db.session 의 기본 엔진(MySQL/SQLite)을 사용
    - SQLAlchemy 오류는 ConversationStoreError 로 감싸서 올린다.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory or get_session_factory()
        self._locks = KeyedLocks()

    def locked(self, conversation_id: str):
        return self._locks.locked(conversation_id)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            db = self._session_factory()
        except SQLAlchemyError as e:
            logger.error("[store] cannot open session: %s", e)
            raise ConversationStoreError(str(e)) from e

        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("[store] database error: %s", e)
            raise ConversationStoreError(str(e)) from e
        finally:
            db.close()

    def get(self, conversation_id: str) -> Optional[Conversation]:
        with self._session() as db:
            row = db.get(ConversationRecord, conversation_id)
            return Conversation.from_dict(row.payload) if row is not None else None

    def put(self, conversation: Conversation) -> None:
        payload = conversation.to_dict()
        with self._session() as db:
            row = db.get(ConversationRecord, conversation.id)
            if row is None:
                row = ConversationRecord(id=conversation.id)
                db.add(row)

            row.phone_number = conversation.phone_number
            row.channel = conversation.channel
            row.status = conversation.status
            row.state = conversation.state
            row.message_count = len(conversation.messages)
            row.payload = payload
            row.started_at = conversation.started_at
            row.last_message_at = conversation.last_message_at
            row.completed_at = conversation.completed_at

    def list_all(self) -> List[Conversation]:
        with self._session() as db:
            rows = db.query(ConversationRecord).order_by(ConversationRecord.started_at).all()
            return [Conversation.from_dict(r.payload) for r in rows]

    def list_active(self) -> List[Conversation]:
        with self._session() as db:
            rows = (
                db.query(ConversationRecord)
                .filter(ConversationRecord.status.in_(OPEN_STATUSES))
                .order_by(ConversationRecord.started_at)
                .all()
            )
            return [Conversation.from_dict(r.payload) for r in rows]

    def find_open_by_phone(self, phone_number: str) -> Optional[Conversation]:
        with self._session() as db:
            row = (
                db.query(ConversationRecord)
                .filter(
                    ConversationRecord.phone_number == phone_number,
                    ConversationRecord.status.in_(OPEN_STATUSES),
                )
                .order_by(ConversationRecord.started_at.desc())
                .first()
            )
            return Conversation.from_dict(row.payload) if row is not None else None
