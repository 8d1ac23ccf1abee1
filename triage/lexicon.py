# -*- coding: utf-8 -*-
"""
triage.lexicon

키워드 사전 / 진단 테이블 / 응답 템플릿을 JSON 파일에서 읽어오는 모듈.

- load_lexicon(path)   : 텍스트 이해 단계에서 쓰는 키워드 사전 (Lexicon)
- load_table(path)     : 진단 테이블, 응답 템플릿 (그냥 dict)
- default_lexicon() 등 : core.config 경로 기준으로 1회만 읽고 캐시

JSON 객체의 키 순서는 그대로 유지된다.
"첫 번째로 매칭되는 키워드가 이긴다" 는 규칙이 이 순서에 의존하므로
파일 안의 선언 순서를 함부로 바꾸면 안 된다.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Pattern, Tuple

from core.config import KNOWLEDGE_PATH, LEXICON_PATH, RESPONSES_PATH


@dataclass(frozen=True)
class IntentRule:
    name: str
    category: str
    keywords: Tuple[str, ...]


def _lower_all(words: List[str]) -> List[str]:
    return [w.lower() for w in words]


@dataclass
class Lexicon:
    language: str
    intents: List[IntentRule]
    problem_types: Dict[str, List[str]]
    classification_fallback: List[Tuple[str, List[str]]]
    urgency_levels: Dict[str, List[str]]
    locations: List[str]
    symptoms: List[str]
    safety_concerns: List[str]
    critical_safety: List[str]
    time_expressions: List[str]
    immediate_time_expressions: List[str]
    duration_patterns: List[Pattern[str]]
    previous_work_keywords: List[str] = field(default_factory=list)
    availability_keywords: List[str] = field(default_factory=list)
    sentiment: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lexicon":
        return cls(
            language=data.get("language", "bg"),
            intents=[
                IntentRule(
                    name=item["name"],
                    category=item["category"],
                    keywords=tuple(_lower_all(item["keywords"])),
                )
                for item in data["intents"]
            ],
            problem_types={
                k: _lower_all(v) for k, v in data["problem_types"].items()
            },
            classification_fallback=[
                (item["problem_type"], _lower_all(item["keywords"]))
                for item in data.get("classification_fallback", [])
            ],
            urgency_levels={
                k: _lower_all(v) for k, v in data["urgency_levels"].items()
            },
            locations=_lower_all(data["locations"]),
            symptoms=_lower_all(data["symptoms"]),
            safety_concerns=_lower_all(data["safety_concerns"]),
            critical_safety=_lower_all(data["critical_safety"]),
            time_expressions=_lower_all(data["time_expressions"]),
            immediate_time_expressions=_lower_all(
                data.get("immediate_time_expressions", [])
            ),
            duration_patterns=[re.compile(p) for p in data.get("duration_patterns", [])],
            previous_work_keywords=_lower_all(data.get("previous_work_keywords", [])),
            availability_keywords=_lower_all(data.get("availability_keywords", [])),
            sentiment={
                k: _lower_all(v) for k, v in data.get("sentiment", {}).items()
            },
        )


# ------------------------------------------------------------
# 로더
# ------------------------------------------------------------

def load_table(path: Path) -> Dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def load_lexicon(path: Path) -> Lexicon:
    return Lexicon.from_dict(load_table(path))


@lru_cache(maxsize=1)
def default_lexicon() -> Lexicon:
    return load_lexicon(LEXICON_PATH)


@lru_cache(maxsize=1)
def default_knowledge() -> Dict[str, Any]:
    return load_table(KNOWLEDGE_PATH)


@lru_cache(maxsize=1)
def default_responses() -> Dict[str, Any]:
    return load_table(RESPONSES_PATH)
