# db/session.py
# -*- coding: utf-8 -*-
"""
SQLAlchemy 세션/엔진 설정 모듈

- 기본: .env 에 MySQL 접속 정보가 모두 있으면 MySQL 사용
- fallback: MySQL 정보가 없으면 자동으로 SQLite 파일(triage_dev.db) 사용
- TRIAGE_DATABASE_URL 이 있으면 그 값을 그대로 사용 (테스트에서 sqlite:// 메모리 DB 등)

엔진은 처음 필요할 때 만든다.
(CONVERSATION_STORE=memory 모드에서는 DB 연결을 전혀 만들지 않음)
"""

import os
from typing import Any, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# ---------------------------------------------------------
# 1) 환경 변수 읽기
# ---------------------------------------------------------

DB_HOST = os.getenv("DB_HOST")
DB_PORT = os.getenv("DB_PORT", "3306")
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_NAME = os.getenv("DB_NAME")

# 로그 확인용 / 디버깅용
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

# ---------------------------------------------------------
# 2) MySQL or SQLite Fallback 결정
# ---------------------------------------------------------


def resolve_database_url() -> str:
    explicit = os.getenv("TRIAGE_DATABASE_URL")
    if explicit:
        return explicit

    # MySQL 연결 정보가 모두 있으면 MySQL 우선
    if DB_HOST and DB_USER and DB_PASSWORD and DB_NAME:
        return f"mysql+pymysql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"

    # 그 외에는 SQLite 파일로 떨어진다.
    sqlite_path = os.path.abspath(os.getenv("SQLITE_PATH", "./triage_dev.db"))
    return f"sqlite:///{sqlite_path}"


# ---------------------------------------------------------
# 3) SQLAlchemy Engine / SessionLocal / Base 생성
# ---------------------------------------------------------

# models 모듈이 이 Base 를 import 해서 사용
Base = declarative_base()


def make_engine(url: Optional[str] = None) -> Engine:
    url = url or resolve_database_url()
    engine_kwargs: Dict[str, Any] = {
        "echo": DB_ECHO,
        "future": True,
    }

    if url.startswith("sqlite"):
        # FastAPI 멀티스레드 + 타이머 스레드에서 같은 연결을 쓰므로 필요
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # 메모리 DB 는 연결마다 새 DB 가 되므로 하나의 연결을 공유
            engine_kwargs["poolclass"] = StaticPool
    else:
        # MySQL 의 경우 커넥션 재활용 옵션을 주는 편이 안전
        engine_kwargs["pool_recycle"] = 3600

    return create_engine(url, **engine_kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
        class_=Session,
    )


_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = make_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = make_session_factory(get_engine())
    return _SessionLocal


def init_db(engine: Optional[Engine] = None) -> None:
    """테이블이 없으면 만든다. (이미 있으면 아무 일도 하지 않음)"""
    # 모델 클래스가 Base.metadata 에 등록되도록 import
    from db.models import conversation  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
