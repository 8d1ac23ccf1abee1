# -*- coding: utf-8 -*-
"""
triage.utils_text

고객 메시지(불가리아어) 텍스트 공통 유틸 모듈.

역할
----
- normalize_bulgarian(text): 비교/표시용 정규화 (소문자/공백 정리)
- prepare_for_matching(text): 원문과 같은 길이를 유지하는 매칭용 텍스트
- find_keyword_hits(text, keywords): 키워드 위치(span) 목록
- contains_any(text, keywords): 키워드 리스트 중 하나라도 포함되는지 체크
- count_matched_keywords(text, keywords): 매칭된 서로 다른 키워드 개수

매칭 규칙
---------
- 키워드는 "단어 시작"에서만 매칭된다. ("кухня" → "кухнята" 는 매칭)
- 2글자 이하 키워드("в", "на", "не" ...)는 단어 전체가 일치해야 한다.
- 같은 패스 안에서 더 긴 매칭의 span 안에 들어가는 짧은 매칭은 버린다.
  예) "не е спешно" 가 잡히면 그 안의 "спешно" 는 따로 세지 않는다.

이 모듈은 다른 triage 모듈들에서만 공통으로 사용한다.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Pattern


# ------------------------------------------------------------
# 1. 기본 정규화 함수들
# ------------------------------------------------------------

def normalize_bulgarian(text: str) -> str:
    """
    키릴 문자 위주의 텍스트를 비교하기 쉽도록
    - 양 끝 공백 제거
    - 소문자 변환
    - 줄바꿈/연속 공백을 하나로
    정도만 가볍게 정리한다.
    """
    if not text:
        return ""

    t = text.strip().lower()
    t = re.sub(r"\s+", " ", t)
    return t


def prepare_for_matching(text: str) -> str:
    """
    매칭용 텍스트.

    문장부호는 공백으로 1:1 치환하고 소문자로만 바꾼다.
    길이가 원문과 같으므로 여기서 얻은 span 을 원문 기준 위치로 그대로 쓴다.
    """
    if not text:
        return ""

    lowered = text.lower()
    if len(lowered) != len(text):
        # 소문자 변환으로 길이가 바뀌는 특수 문자는 원문 그대로 둔다.
        lowered = "".join(c.lower() if len(c.lower()) == 1 else c for c in text)
    return re.sub(r"[^\w\s:]", " ", lowered)


# ------------------------------------------------------------
# 2. 키워드 매칭
# ------------------------------------------------------------

@dataclass(frozen=True)
class KeywordHit:
    keyword: str
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


@lru_cache(maxsize=2048)
def _keyword_pattern(keyword: str) -> Pattern[str]:
    words = keyword.lower().split()
    body = r"\s+".join(re.escape(w) for w in words)
    if len(keyword) <= 2:
        return re.compile(rf"(?<!\w){body}(?!\w)")
    return re.compile(rf"(?<!\w){body}")


def find_keyword_hits(text: str, keywords: Iterable[str]) -> List[KeywordHit]:
    """
    text(prepare_for_matching 결과) 안의 모든 키워드 등장 위치를 반환한다.
    더 긴 매칭 안에 포함된 짧은 매칭은 제외하고, 시작 위치 순으로 정렬한다.
    """
    if not text:
        return []

    hits: List[KeywordHit] = []
    for kw in keywords:
        if not kw:
            continue
        for m in _keyword_pattern(kw).finditer(text):
            hits.append(KeywordHit(keyword=kw, start=m.start(), end=m.end()))

    kept = [
        h for h in hits
        if not any(
            o.length > h.length and o.start <= h.start and h.end <= o.end
            for o in hits
        )
    ]
    # 정렬은 안정 정렬이라 같은 위치면 키워드 선언 순서가 유지된다.
    kept.sort(key=lambda h: h.start)
    return kept


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    """
    text 안에 keywords 중 하나라도 (단어 시작 기준으로) 포함되어 있으면 True.
    """
    return bool(find_keyword_hits(prepare_for_matching(text), keywords))


def count_matched_keywords(text: str, keywords: Iterable[str]) -> int:
    """
    매칭된 "서로 다른" 키워드 개수. text 는 prepare_for_matching 결과.
    같은 키워드가 여러 번 나와도 1개로 센다.
    """
    hits = find_keyword_hits(text, keywords)
    return len({h.keyword for h in hits})
