from triage.analyzer import IssueAnalyzer


def test_outlet_in_kitchen_first_message(analyzer, make_conversation):
    conv = make_conversation("Здравейте, имам проблем с контакта в кухнята")
    analysis = analyzer.analyze(conv)

    assert analysis.problem_type == "electrical_outlet"
    assert analysis.problem_category == "electrical"
    assert analysis.urgency_level == "medium"
    assert analysis.extracted_info.location == "кухня"
    assert analysis.risk_assessment.level == "medium"
    assert analysis.ready_for_callback is False
    assert analysis.estimated_cost.min == 30
    assert analysis.estimated_cost.max == 80
    assert analysis.estimated_cost.currency == "BGN"


def test_sparking_outlet_is_critical_emergency(analyzer, make_conversation):
    analysis = analyzer.analyze(make_conversation("Контактът в хола искри"))

    assert analysis.urgency_level == "emergency"
    risk = analysis.risk_assessment
    assert risk.level == "critical"
    assert "Спрете главния прекъсвач/спирателен кран" in risk.immediate_actions
    assert len(risk.immediate_actions) == len(set(risk.immediate_actions))
    assert analysis.recommendations[0].type == "immediate_action"
    # 안전 문제가 있으면 비용 1.3배
    assert (analysis.estimated_cost.min, analysis.estimated_cost.max) == (39, 104)


def test_analysis_is_idempotent(analyzer, make_conversation):
    conv = make_conversation(
        "Имам проблем с контакта в кухнята",
        "Контактът спря и не работи",
    )
    assert analyzer.analyze(conv) == analyzer.analyze(conv)


def test_evidence_never_shrinks_when_messages_are_added(analyzer, make_conversation):
    texts = [
        "Имам проблем с контакта в кухнята",
        "Контактът спря и не работи",
        "Може да дойдете тази седмица",
    ]
    previous = None
    for n in range(1, len(texts) + 1):
        info = analyzer.analyze(make_conversation(*texts[:n])).extracted_info
        if previous is not None:
            assert set(previous.symptoms) <= set(info.symptoms)
            assert set(previous.safety_issues) <= set(info.safety_issues)
            if previous.location is not None:
                assert info.location == previous.location
        previous = info


def test_readiness_needs_location_two_symptoms_and_three_messages(analyzer, make_conversation):
    two = make_conversation("Контактът в кухнята", "Спря и не работи")
    assert analyzer.analyze(two).ready_for_callback is False

    three = make_conversation("Контактът в кухнята", "Спря и не работи", "Добре")
    assert analyzer.analyze(three).ready_for_callback is True

    no_location = make_conversation("Контактът", "Спря и не работи", "Добре")
    assert analyzer.analyze(no_location).ready_for_callback is False


def test_explicit_urgency_takes_the_most_severe(analyzer, make_conversation):
    analysis = analyzer.analyze(
        make_conversation("Не е спешно, тече в банята", "Всъщност веднага елате")
    )
    assert analysis.urgency_level == "critical"


def test_non_critical_safety_concern_means_high_urgency(analyzer, make_conversation):
    analysis = analyzer.analyze(make_conversation("Климатикът мирише странно"))
    assert analysis.problem_type == "hvac_cooling"
    assert analysis.urgency_level == "high"
    assert analysis.risk_assessment.level == "medium"


def test_classification_falls_back_to_text_scan(analyzer, make_conversation):
    conv = make_conversation("Нещо не загрява както трябва")
    assert analyzer.analyze(conv).problem_type == "plumbing_heating"


def test_unknown_problem_type(analyzer, make_conversation):
    analysis = analyzer.analyze(make_conversation("Здравейте"))
    assert analysis.problem_type == "unknown"
    assert analysis.problem_category == "unknown"
    assert analysis.risk_assessment.level == "low"
    assert analysis.risk_assessment.immediate_actions == []


def test_analysis_failure_returns_degraded_minimum(lexicon, make_conversation):
    class Broken(IssueAnalyzer):
        def assess_risk(self, *args, **kwargs):
            raise RuntimeError("boom")

    analysis = Broken(lexicon).analyze(make_conversation("Контактът искри"))
    assert analysis.degraded is True
    assert analysis.problem_type == "unknown"
    assert analysis.urgency_level == "medium"
    assert analysis.confidence == 0.1
    assert analysis.ready_for_callback is False


def test_many_symptoms_raise_cost_estimate(analyzer, make_conversation):
    analysis = analyzer.analyze(make_conversation("Климатикът не работи, шуми, вибрира и пука"))

    assert analysis.problem_type == "hvac_cooling"
    assert set(analysis.extracted_info.symptoms) == {"не работи", "шуми", "вибрира", "пука"}
    assert analysis.extracted_info.safety_issues == []
    # 증상이 3개를 넘으면 비용 1.2배
    assert (analysis.estimated_cost.min, analysis.estimated_cost.max) == (96, 360)
