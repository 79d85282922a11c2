"""Tests for the category taxonomy and normalizer."""
import pytest

from quotedigest.services.category_normalizer import (
    CategoryNormalizer,
    default_normalizer,
    detect_categories_from_text,
    normalize_category,
    normalize_themes,
)
from quotedigest.services.taxonomy import DEFAULT_TAXONOMY, Taxonomy, category


@pytest.fixture
def small_normalizer() -> CategoryNormalizer:
    """LOVE / MONEY plus the OTHER fallback."""
    taxonomy = Taxonomy(
        [
            category("LOVE", "love", ["love", "relationship"], [], priority=5),
            category("MONEY", "money", ["money"], [], priority=5),
            category("OTHER", "other", ["other", "misc"], [], priority=1, exclude_from_trend=True),
        ],
        version="test",
    )
    return CategoryNormalizer(taxonomy)


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------

def test_default_taxonomy_has_fourteen_topics_and_one_fallback():
    assert len(DEFAULT_TAXONOMY) == 15
    assert DEFAULT_TAXONOMY.fallback.key == "OTHER"
    assert "OTHER" not in DEFAULT_TAXONOMY.trend_keys()
    assert len(DEFAULT_TAXONOMY.trend_keys()) == 14
    assert "SELF-DISCOVERY" in DEFAULT_TAXONOMY


def test_taxonomy_lookups():
    assert DEFAULT_TAXONOMY.by_slug("time-habits").key == "TIME AND HABITS"
    assert DEFAULT_TAXONOMY.slug_for("LOVE") == "love"
    assert DEFAULT_TAXONOMY.slug_for("NOT A KEY") == "other"
    assert DEFAULT_TAXONOMY.is_valid("MONEY")
    assert not DEFAULT_TAXONOMY.is_valid("money")
    described = DEFAULT_TAXONOMY.describe()
    assert described[0] == {"key": "CRISES", "slug": "crisis", "priority": 10}


def test_taxonomy_requires_exactly_one_fallback():
    with pytest.raises(ValueError):
        Taxonomy([
            category("A", "a", ["a"], [], priority=5),
            category("B", "b", ["b"], [], priority=1, exclude_from_trend=True),
            category("C", "c", ["c"], [], priority=1, exclude_from_trend=True),
        ])
    with pytest.raises(ValueError):
        Taxonomy([category("A", "a", ["a"], [], priority=5)])


def test_taxonomy_rejects_duplicates_and_misplaced_fallback():
    with pytest.raises(ValueError):
        Taxonomy([
            category("A", "a", [], [], priority=5),
            category("A", "a2", [], [], priority=4),
            category("Z", "z", [], [], priority=1, exclude_from_trend=True),
        ])
    with pytest.raises(ValueError):
        Taxonomy([
            category("A", "a", [], [], priority=1),
            category("Z", "z", [], [], priority=2, exclude_from_trend=True),
        ])


# ---------------------------------------------------------------------------
# normalize
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw,expected", [
    ("love", "LOVE"),
    ("Meaning of Life", "MEANING OF LIFE"),
    ("  MONEY  ", "MONEY"),
    ("wealth", "MONEY"),
    ("lovers", "LOVE"),
    ("financial freedom", "MONEY"),
    ("xyzzy", "OTHER"),
    ("", "OTHER"),
    ("   ", "OTHER"),
    (None, "OTHER"),
    (42, "OTHER"),
])
def test_normalize(raw, expected):
    assert default_normalizer.normalize(raw) == expected


def test_normalize_is_deterministic():
    for raw in ["relationships", "personal growth", "grief and loss", "qwerty", "Crisis"]:
        assert normalize_category(raw) == normalize_category(raw)


def test_normalize_substring_match(small_normalizer):
    assert small_normalizer.normalize("relationships") == "LOVE"


def test_normalize_always_returns_a_known_key():
    for raw in ["a", "the", "self", "good evil", "loneliness", "?", "12345"]:
        assert default_normalizer.is_valid(default_normalizer.normalize(raw))


# ---------------------------------------------------------------------------
# detect_from_text
# ---------------------------------------------------------------------------

def test_detect_love_and_money_never_includes_fallback(small_normalizer):
    detected = small_normalizer.detect_from_text("talking about love and money today")
    assert set(detected) == {"LOVE", "MONEY"}
    assert "OTHER" not in detected
    # equal scores keep declaration order
    assert detected == ["LOVE", "MONEY"]


def test_detect_drops_fallback_when_other_categories_found(small_normalizer):
    assert small_normalizer.detect_from_text("misc notes about love") == ["LOVE"]


def test_detect_weights_synonyms_over_keywords():
    assert detect_categories_from_text("I love money and my career") == ["MONEY", "LOVE"]


def test_detect_without_signal_returns_fallback():
    assert default_normalizer.detect_from_text("qqq zzz") == ["OTHER"]
    assert default_normalizer.detect_from_text("") == ["OTHER"]
    assert default_normalizer.detect_from_text(None) == ["OTHER"]


def test_detect_returns_at_most_three():
    text = "love, money, death, family, happiness, crisis and society"
    assert len(default_normalizer.detect_from_text(text)) == 3


# ---------------------------------------------------------------------------
# normalize_theme_list
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw,expected", [
    (["love", "passion", "wealth"], ["LOVE", "MONEY"]),
    (["love", "misc"], ["LOVE"]),
    (["misc", "xyzzy"], ["OTHER"]),
    (["love", "money", "death", "family"], ["LOVE", "MONEY", "DEATH"]),
    ("love", ["LOVE"]),
    ([], ["OTHER"]),
    (None, ["OTHER"]),
    (["", None], ["OTHER"]),
])
def test_normalize_theme_list(raw, expected):
    assert normalize_themes(raw) == expected


def test_normalize_theme_list_uses_best_known_when_empty():
    assert normalize_themes([], best_known="wealth") == ["MONEY"]
    assert normalize_themes(None, best_known="LOVE") == ["LOVE"]


def test_theme_list_invariants():
    inputs = [
        [], ["misc"], ["other", "misc", "various"], ["love"] * 5,
        ["love", "other"], ["other", "love"], ["crisis", "woman", "love", "money", "death"],
        ["growth", "self-development", "thinking"], ["qq", "ww", "ee"],
    ]
    for raw in inputs:
        result = default_normalizer.normalize_theme_list(raw)
        assert 1 <= len(result) <= 3
        assert len(result) == len(set(result))
        if "OTHER" in result:
            assert result == ["OTHER"]


# ---------------------------------------------------------------------------
# normalize_analysis
# ---------------------------------------------------------------------------

def test_normalize_analysis_uses_category_when_themes_collapse():
    assert default_normalizer.normalize_analysis("money", ["misc"]) == ("MONEY", ["MONEY"])


def test_normalize_analysis_keeps_specific_themes():
    category_key, themes = default_normalizer.normalize_analysis("love", ["passion", "family"])
    assert category_key == "LOVE"
    assert themes == ["LOVE", "FAMILY"]


def test_normalize_analysis_without_data():
    assert default_normalizer.normalize_analysis(None, None) == ("OTHER", ["OTHER"])
