from triage.utils_text import (
    contains_any,
    count_matched_keywords,
    find_keyword_hits,
    normalize_bulgarian,
    prepare_for_matching,
)


def test_prepare_for_matching_keeps_length_and_lowercases():
    text = "Здравейте, КОНТАКТЪТ искри!"
    prepared = prepare_for_matching(text)
    assert len(prepared) == len(text)
    assert prepared == "здравейте  контактът искри "


def test_prepare_for_matching_keeps_colon_for_clock_times():
    assert prepare_for_matching("от 10:30 ч.") == "от 10:30 ч "


def test_keyword_matches_at_word_start_only():
    text = prepare_for_matching("Проблем в кухнята")
    assert [h.keyword for h in find_keyword_hits(text, ["кухня"])] == ["кухня"]
    # "ухня" 는 단어 시작이 아니다
    assert find_keyword_hits(text, ["ухня"]) == []


def test_short_keywords_need_whole_word():
    text = prepare_for_matching("Може да дойдете до вторник")
    hits = find_keyword_hits(text, ["до"])
    assert len(hits) == 1
    assert text[hits[0].start:hits[0].end] == "до"


def test_longer_hit_suppresses_contained_shorter_hit():
    text = prepare_for_matching("не е спешно")
    hits = find_keyword_hits(text, ["спешно", "не е спешно"])
    assert [h.keyword for h in hits] == ["не е спешно"]


def test_hits_are_sorted_by_position_and_repeat():
    text = prepare_for_matching("капе, после пак капе в банята")
    hits = find_keyword_hits(text, ["баня", "капе"])
    assert [h.keyword for h in hits] == ["капе", "капе", "баня"]
    assert hits[0].start < hits[1].start < hits[2].start


def test_multiword_keyword_tolerates_extra_spaces():
    text = prepare_for_matching("Контактът  не   работи")
    assert count_matched_keywords(text, ["не работи"]) == 1


def test_count_matched_keywords_counts_distinct_keywords():
    text = prepare_for_matching("тече и пак тече, капе")
    assert count_matched_keywords(text, ["тече", "капе", "мокро"]) == 2


def test_contains_any_prepares_raw_text():
    assert contains_any("ИСКРИ!!!", ["искри"])
    assert not contains_any("", ["искри"])


def test_normalize_bulgarian_collapses_whitespace():
    assert normalize_bulgarian("  Здравейте\n\nМайстор  ") == "здравейте майстор"
