from sqlalchemy import Column, DateTime, Integer, JSON, String
from sqlalchemy.sql import func

from db.session import Base


class ConversationRecord(Base):
    """
    대화 한 건 = 한 행.
    메시지/분석 결과는 payload(JSON) 에 Conversation.to_dict() 그대로 저장하고,
    조회 조건으로 쓰는 값만 컬럼으로 뽑아 둔다.
    """

    __tablename__ = "triage_conversations"

    id = Column(String(100), primary_key=True)
    phone_number = Column(String(30), nullable=False, index=True)
    channel = Column(String(20), nullable=False, default="whatsapp")
    status = Column(String(20), nullable=False, index=True, default="active")
    state = Column(String(40), nullable=False, default="INITIAL_RESPONSE")
    message_count = Column(Integer, nullable=False, default=0)
    payload = Column(JSON, nullable=False)
    started_at = Column(DateTime, nullable=False)
    last_message_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
