# core/logging.py
# -*- coding: utf-8 -*-

import sys
import json
import logging
from datetime import datetime
from typing import Any, Dict

from .config import LOG_DIR, LOG_LEVEL

# ------------------------------------------------
# 터미널 출력용 logger
# ------------------------------------------------
logger = logging.getLogger("servicetext_triage")
logger.setLevel(getattr(logging, LOG_LEVEL, logging.DEBUG))

if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_event(conversation_id: str, payload: Dict[str, Any]) -> None:
    """
    사후 분석용 JSONL 로그 기록.
    대화(conversation)별로 1줄씩 쌓임.
    """
    ts = datetime.utcnow().isoformat()
    safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in conversation_id)
    log_path = LOG_DIR / f"{safe_id}.jsonl"

    record = {
        "timestamp": ts,
        "conversation_id": conversation_id,
        **payload,
    }

    with log_path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
