import pytest

from triage.understanding import TextUnderstanding


def _types(result, entity_type):
    return [e.value for e in result.entities if e.type == entity_type]


def test_problem_description_with_outlet_in_kitchen(understanding):
    result = understanding.process("Здравейте, имам проблем с контакта в кухнята")

    # problem_description / location_sharing / complaint 모두 0.7 → 먼저 선언된 쪽
    assert result.intent.category == "problem_description"
    assert result.intent.confidence == pytest.approx(0.7)
    assert _types(result, "problem_type") == ["electrical_outlet"]
    assert _types(result, "location") == ["кухня"]
    assert result.fallback is False


def test_sparking_outlet_yields_emergency_entities(understanding):
    result = understanding.process("Контактът в хола искри")

    assert _types(result, "problem_type") == ["electrical_outlet"]
    assert _types(result, "urgency_level") == ["emergency"]
    assert _types(result, "location") == ["хол"]
    assert _types(result, "symptom") == ["искри"]
    assert _types(result, "safety_concern") == ["искри"]

    safety = next(e for e in result.entities if e.type == "safety_concern")
    assert safety.confidence == 0.9
    assert (safety.start, safety.end) == (17, 22)


def test_entities_follow_declaration_order_then_position(understanding):
    result = understanding.process("капе в банята, после тече и пак капе")
    symptoms = [e for e in result.entities if e.type == "symptom"]

    # symptoms 선언 순서: ... "тече", "капе" ...
    assert [e.value for e in symptoms] == ["тече", "капе", "капе"]
    assert symptoms[1].start < symptoms[2].start


def test_duration_patterns(understanding):
    result = understanding.process("Не работи от 3 дни, спря около 14:30")
    assert sorted(_types(result, "duration")) == ["14:30", "3 дни"]


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Тече от 1 седмица", "1 седмица"),
        ("Капе от 2 седмици", "2 седмици"),
        ("Не работи от 1 ден", "1 ден"),
        ("Спря преди 1 час", "1 час"),
        ("Спря преди 5 часа", "5 часа"),
    ],
)
def test_duration_keeps_the_whole_unit(understanding, text, expected):
    result = understanding.process(text)
    durations = [e for e in result.entities if e.type == "duration"]

    assert [e.value for e in durations] == [expected]
    assert text[durations[0].start:durations[0].end] == expected


def test_unrecognized_text_falls_back_to_clarification(understanding):
    result = understanding.process("Ммм хмм")

    assert result.intent.name == "clarification"
    assert result.intent.confidence == 0.1
    assert result.entities == ()
    assert result.sentiment.polarity == "neutral"


def test_multiple_matches_raise_intent_confidence(understanding):
    result = understanding.process("Контактът спря и не работи")
    assert result.intent.category == "problem_description"
    assert result.intent.confidence == 0.95


def test_sentiment_polarity_and_urgent_emotion(understanding):
    negative = understanding.process("Много е лошо и ужасно, спешно е")
    assert negative.sentiment.polarity == "negative"
    assert negative.sentiment.score("urgent") == pytest.approx(0.3)

    positive = understanding.process("Благодаря, отлично!")
    assert positive.sentiment.polarity == "positive"
    assert positive.sentiment.confidence == pytest.approx(0.9)


def test_same_input_gives_same_result(understanding):
    text = "Тече вода в банята от вчера"
    assert understanding.process(text) == understanding.process(text)


def test_internal_error_returns_fallback(lexicon):
    class Broken(TextUnderstanding):
        def extract_entities(self, prepared):
            raise RuntimeError("boom")

    result = Broken(lexicon).process("Контактът искри")
    assert result.fallback is True
    assert result.intent.name == "unknown"
    assert result.intent.category == "clarification"
    assert result.confidence == 0.1
    assert result.entities == ()
