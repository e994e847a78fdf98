import pytest

from greflect.agent.analysis import (
    calculate_confidence,
    classify_exchange,
    extract_insights,
    extract_related_concepts,
    extract_tags,
)


def test_realization_becomes_single_medium_insight():
    insights = extract_insights("I realize that memory precedes experience.", "explorer")

    assert len(insights) == 1
    assert insights[0].content == "memory precedes experience"
    assert insights[0].significance == "medium"
    assert insights[0].generated_by == "explorer"
    assert insights[0].verified is False
    assert insights[0].related_concepts == ["experience"]


def test_multiple_trigger_patterns():
    content = "This suggests that awareness loops back. It seems the self is a process!"
    insights = extract_insights(content, "questioner")

    assert [i.content for i in insights] == ["awareness loops back", "the self is a process"]
    assert all(i.generated_by == "questioner" for i in insights)


def test_no_trigger_no_insight():
    assert extract_insights("Consciousness is a puzzle.", "explorer") == []
    assert extract_insights("", "explorer") == []


@pytest.mark.parametrize(
    "content, agent, expected",
    [
        ("What watches the watcher?", "questioner", "question"),
        ("I realize? Maybe.", "explorer", "question"),
        ("I realize the loop is closed.", "explorer", "insight"),
        ("I realize the loop is closed.", "questioner", "response"),
        ("Reflecting on this, nothing stays.", "explorer", "response"),
        ("I keep reflecting on the gap.", "questioner", "reflection"),
        ("Considering all of it, yes.", "explorer", "response"),
        ("We are considering the gap.", "explorer", "reflection"),
        ("Awareness is a field.", "explorer", "response"),
    ],
)
def test_classify_exchange(content, agent, expected):
    assert classify_exchange(content, agent) == expected


def test_confidence_rules():
    assert calculate_confidence("") == 0.5
    assert calculate_confidence("x" * 101) == pytest.approx(0.7)
    assert calculate_confidence("specifically this") == pytest.approx(0.6)
    assert calculate_confidence("it is unclear") == pytest.approx(0.3)
    assert calculate_confidence("precisely " + "x" * 120) == pytest.approx(0.8)


@pytest.mark.parametrize("content", ["", "?", "uncertain unclear", "specifically " * 50, None])
def test_confidence_always_in_unit_interval(content):
    assert 0.0 <= calculate_confidence(content) <= 1.0


def test_related_concepts_from_structured_data():
    data = [{"title": "Free Will", "description": "Emergence of QUALIA"}]
    assert extract_related_concepts(data) == ["qualia", "free will", "emergence"]


def test_extract_tags():
    tags = extract_tags("Metacognition and identity shape Existence.")
    assert tags == ["existence", "identity", "metacognition"]
