# core/config.py
# -*- coding: utf-8 -*-

import os
from pathlib import Path

from dotenv import load_dotenv

# .env 로드 (가장 먼저 실행)
load_dotenv()

# --------------------------------
# 경로 / 로그 디렉터리 설정
# --------------------------------

# 프로젝트 루트 디렉토리
BASE_DIR = Path(__file__).resolve().parent.parent

# 로그 디렉터리 (대화별 JSONL)
LOG_DIR = Path(os.getenv("LOG_DIR", str(BASE_DIR / "data" / "logs")))
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").upper()

# --------------------------------
# 엔진 / 사전(lexicon) 설정
# --------------------------------

# 키워드/응답 템플릿 테이블 (기동 시 1회 로드)
DATA_DIR = BASE_DIR / "triage" / "data"
LEXICON_PATH = Path(os.getenv("LEXICON_PATH", str(DATA_DIR / "lexicon_bg.json")))
KNOWLEDGE_PATH = Path(
    os.getenv("KNOWLEDGE_PATH", str(DATA_DIR / "knowledge_bg.json"))
)
RESPONSES_PATH = Path(
    os.getenv("RESPONSES_PATH", str(DATA_DIR / "responses_bg.json"))
)

TRIAGE_LANGUAGE = os.getenv("TRIAGE_LANGUAGE", "bg")
TRIAGE_MODEL_VERSION = os.getenv("TRIAGE_MODEL_VERSION", "rule-based-v1")

# --------------------------------
# 사업자(기술자) 정보
# --------------------------------

BUSINESS_AGENT_NAME = os.getenv("BUSINESS_AGENT_NAME", "Майстор")
BUSINESS_PROFESSION = os.getenv("BUSINESS_PROFESSION", "електротехник")
BUSINESS_EXPERIENCE_YEARS = os.getenv("BUSINESS_EXPERIENCE_YEARS", "5")
BUSINESS_WORKING_HOURS = os.getenv("BUSINESS_WORKING_HOURS", "08:00 - 18:00")
BUSINESS_EMERGENCY_CONTACT = os.getenv("BUSINESS_EMERGENCY_CONTACT", "+359888123456")

# --------------------------------
# 발신 메시지 전송
# --------------------------------

OUTBOUND_MAX_RETRIES = int(os.getenv("OUTBOUND_MAX_RETRIES", "3"))
OUTBOUND_BATCH_SIZE = int(os.getenv("OUTBOUND_BATCH_SIZE", "5"))
OUTBOUND_POLL_SECONDS = float(os.getenv("OUTBOUND_POLL_SECONDS", "5"))

# 재시도 간격: 60초부터 두 배씩, 최대 15분
OUTBOUND_RETRY_BASE_SECONDS = float(os.getenv("OUTBOUND_RETRY_BASE_SECONDS", "60"))
OUTBOUND_RETRY_MAX_SECONDS = float(os.getenv("OUTBOUND_RETRY_MAX_SECONDS", "900"))

# URL 이 비어 있으면 실제 전송 대신 로그로만 남긴다. (데모 모드)
DELIVERY_WEBHOOK_URL = os.getenv("DELIVERY_WEBHOOK_URL")
DELIVERY_TIMEOUT_SECONDS = float(os.getenv("DELIVERY_TIMEOUT_SECONDS", "10"))

# 대화 저장소: "memory" | "sql"
CONVERSATION_STORE = os.getenv("CONVERSATION_STORE", "memory").lower()
