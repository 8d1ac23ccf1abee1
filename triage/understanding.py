# -*- coding: utf-8 -*-
"""
triage.understanding

고객 메시지 1건 → (의도, 엔티티, 감정, 신뢰도) 로 바꾸는 텍스트 이해 단계.

역할
----
- TextUnderstanding.process(text):
    키워드/정규식 규칙만으로 동작하는 결정적(deterministic) 분류기.
    같은 입력에는 항상 같은 결과를 돌려준다. (숨은 상태 없음)

세부 규칙
---------
1) 의도(intent)
   - 선언 순서대로 의도별 키워드 매칭 개수 n 을 센다.
   - 점수 = min(0.95, n * 0.3 + 0.4), 가장 높은 점수가 이김.
   - 동점이면 먼저 선언된 의도가 이김. 아무것도 없으면 clarification(0.1).
2) 엔티티
   - problem_type(0.8) / urgency_level(0.9) / location(0.7) / symptom(0.8)
     / safety_concern(0.9) / time(0.7) 키워드 패스
   - HH:MM, "N час(а)/ден/дни/седмица/седмици" 정규식 패스 → duration(0.7)
   - 키워드가 나올 때마다 엔티티 1개 (중복 허용, 중복 제거는 분석 단계에서)
3) 감정(sentiment)
   - 긍정/부정/긴급 단어 개수로 극성과 감정 점수 계산
4) 전체 신뢰도 = 0.4*의도 + 0.4*엔티티 평균(없으면 0.3) + 0.2*감정, [0.1, 0.95]

주의
----
- 내부 오류가 나도 예외를 올리지 않는다.
  unknown/clarification, 엔티티 없음, 중립, 신뢰도 0.1 + fallback=True 로 돌려준다.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from core.logging import logger

from .lexicon import Lexicon, default_lexicon
from .models import (
    Emotion,
    ExtractedEntity,
    Intent,
    Sentiment,
    UnderstandingResult,
)
from .utils_text import (
    KeywordHit,
    count_matched_keywords,
    find_keyword_hits,
    prepare_for_matching,
)

# 엔티티 종류별 고정 신뢰도
ENTITY_CONFIDENCE: Dict[str, float] = {
    "problem_type": 0.8,
    "urgency_level": 0.9,
    "location": 0.7,
    "symptom": 0.8,
    "safety_concern": 0.9,
    "time": 0.7,
    "duration": 0.7,
}

DEFAULT_INTENT = Intent(name="clarification", category="clarification", confidence=0.1)
FAILED_INTENT = Intent(name="unknown", category="clarification", confidence=0.1)


def _clamp(value: float, low: float = 0.1, high: float = 0.95) -> float:
    return min(high, max(low, value))


class TextUnderstanding:
    """
    텍스트 이해 단계.
    lexicon 을 주입하지 않으면 core.config 의 기본 사전을 사용한다.
    """

    def __init__(self, lexicon: Optional[Lexicon] = None):
        self.lexicon = lexicon or default_lexicon()

    # ------------------------------------------------------------
    # 공개 API
    # ------------------------------------------------------------

    def process(self, text: str) -> UnderstandingResult:
        try:
            prepared = prepare_for_matching(text or "")

            intent = self.classify_intent(prepared)
            entities = self.extract_entities(prepared)
            sentiment = self.analyze_sentiment(prepared)
            confidence = self._overall_confidence(intent, entities, sentiment)

            return UnderstandingResult(
                intent=intent,
                entities=tuple(entities),
                sentiment=sentiment,
                confidence=confidence,
            )
        except Exception:
            logger.exception("[understanding] failed to process message")
            return UnderstandingResult(
                intent=FAILED_INTENT,
                entities=(),
                sentiment=Sentiment(),
                confidence=0.1,
                fallback=True,
            )

    # ------------------------------------------------------------
    # 1. 의도 분류
    # ------------------------------------------------------------

    def classify_intent(self, prepared: str) -> Intent:
        best = DEFAULT_INTENT
        for rule in self.lexicon.intents:
            n = count_matched_keywords(prepared, rule.keywords)
            if n == 0:
                continue
            score = min(0.95, n * 0.3 + 0.4)
            # 동점이면 앞에서 선언된 의도를 유지 (strictly greater)
            if score > best.confidence:
                best = Intent(name=rule.name, category=rule.category, confidence=score)
        return best

    # ------------------------------------------------------------
    # 2. 엔티티 추출
    # ------------------------------------------------------------

    def extract_entities(self, prepared: str) -> List[ExtractedEntity]:
        lx = self.lexicon
        entities: List[ExtractedEntity] = []

        entities += self._categorised_pass(prepared, "problem_type", lx.problem_types)
        entities += self._categorised_pass(prepared, "urgency_level", lx.urgency_levels)
        entities += self._plain_pass(prepared, "location", lx.locations)
        entities += self._plain_pass(prepared, "symptom", lx.symptoms)
        entities += self._plain_pass(prepared, "safety_concern", lx.safety_concerns)
        entities += self._plain_pass(prepared, "time", lx.time_expressions)
        entities += self._duration_pass(prepared)

        return entities

    def _categorised_pass(
        self,
        prepared: str,
        entity_type: str,
        table: Dict[str, List[str]],
    ) -> List[ExtractedEntity]:
        """
        {값: [키워드...]} 테이블 한 개를 하나의 패스로 처리한다.
        같은 키워드가 여러 값에 걸쳐 있으면 값마다 엔티티가 생긴다.
        결과는 테이블 선언 순서 → 등장 위치 순.
        """
        pairs: List[Tuple[str, str]] = [
            (value, kw) for value, kws in table.items() for kw in kws
        ]
        hits = find_keyword_hits(prepared, _unique(kw for _, kw in pairs))
        by_keyword = _group_by_keyword(hits)

        out: List[ExtractedEntity] = []
        for value, kw in pairs:
            for hit in by_keyword.get(kw, []):
                out.append(self._entity(entity_type, value, hit))
        return out

    def _plain_pass(
        self,
        prepared: str,
        entity_type: str,
        keywords: Sequence[str],
    ) -> List[ExtractedEntity]:
        """값 = 키워드 자체인 패스 (위치/증상/안전/시간 표현)."""
        keywords = _unique(keywords)
        by_keyword = _group_by_keyword(find_keyword_hits(prepared, keywords))

        out: List[ExtractedEntity] = []
        for kw in keywords:
            for hit in by_keyword.get(kw, []):
                out.append(self._entity(entity_type, kw, hit))
        return out

    def _duration_pass(self, prepared: str) -> List[ExtractedEntity]:
        out: List[ExtractedEntity] = []
        for pattern in self.lexicon.duration_patterns:
            for m in pattern.finditer(prepared):
                out.append(
                    ExtractedEntity(
                        type="duration",
                        value=m.group(1),
                        confidence=ENTITY_CONFIDENCE["duration"],
                        start=m.start(1),
                        end=m.end(1),
                    )
                )
        return out

    @staticmethod
    def _entity(entity_type: str, value: str, hit: KeywordHit) -> ExtractedEntity:
        return ExtractedEntity(
            type=entity_type,
            value=value,
            confidence=ENTITY_CONFIDENCE[entity_type],
            start=hit.start,
            end=hit.end,
            keyword=hit.keyword,
        )

    # ------------------------------------------------------------
    # 3. 감정 분석
    # ------------------------------------------------------------

    def analyze_sentiment(self, prepared: str) -> Sentiment:
        words = self.lexicon.sentiment
        positive = count_matched_keywords(prepared, words.get("positive", []))
        negative = count_matched_keywords(prepared, words.get("negative", []))
        urgent = count_matched_keywords(prepared, words.get("urgent", []))

        polarity = "neutral"
        confidence = 0.5
        if positive > negative:
            polarity = "positive"
            confidence = min(0.95, 0.5 + positive * 0.2)
        elif negative > positive:
            polarity = "negative"
            confidence = min(0.95, 0.5 + negative * 0.2)

        scores = [
            ("urgent", min(1.0, urgent * 0.3)),
            ("frustrated", min(1.0, negative * 0.25)),
            ("satisfied", min(1.0, positive * 0.3)),
            ("worried", min(1.0, urgent * 0.2)),
        ]
        emotions = tuple(Emotion(name, score) for name, score in scores if score > 0.1)

        return Sentiment(polarity=polarity, confidence=confidence, emotions=emotions)

    # ------------------------------------------------------------
    # 4. 전체 신뢰도
    # ------------------------------------------------------------

    @staticmethod
    def _overall_confidence(
        intent: Intent,
        entities: Sequence[ExtractedEntity],
        sentiment: Sentiment,
    ) -> float:
        if entities:
            entity_conf = sum(e.confidence for e in entities) / len(entities)
        else:
            entity_conf = 0.3
        return _clamp(intent.confidence * 0.4 + entity_conf * 0.4 + sentiment.confidence * 0.2)


# ------------------------------------------------------------
# 내부 헬퍼
# ------------------------------------------------------------

def _unique(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def _group_by_keyword(hits: List[KeywordHit]) -> Dict[str, List[KeywordHit]]:
    grouped: Dict[str, List[KeywordHit]] = {}
    for hit in hits:
        grouped.setdefault(hit.keyword, []).append(hit)
    return grouped
