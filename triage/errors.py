# -*- coding: utf-8 -*-
"""
triage.errors

엔진 밖으로 전달되는 예외들.
이해/분석/응답 생성 단계의 오류는 내부에서 복구하므로 여기 없다.
"""

from __future__ import annotations


class TriageError(Exception):
    """triage 패키지 예외의 공통 부모."""


class ConversationNotFoundError(TriageError):
    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class ConversationClosedError(TriageError):
    """완료/에스컬레이션/종료된 대화에 새 메시지가 들어온 경우."""

    def __init__(self, conversation_id: str, status: str):
        super().__init__(
            f"Conversation {conversation_id} is {status} and accepts no more messages"
        )
        self.conversation_id = conversation_id
        self.status = status


class ConversationStoreError(TriageError):
    """저장소 읽기/쓰기 실패. 호출자에게 그대로 올라간다."""
