"""
Canonical category taxonomy: the single source of truth for quote topics.

Fourteen topic categories plus one fallback. A Taxonomy is immutable once
built; all lookup maps are computed in the constructor so normalization is a
sequence of dict hits and short linear scans in declaration order.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class CanonicalCategory:
    key: str
    slug: str
    synonyms: frozenset
    keywords: frozenset
    priority: int
    exclude_from_trend: bool = False


def category(
    key: str,
    slug: str,
    synonyms: Iterable[str],
    keywords: Iterable[str],
    priority: int,
    exclude_from_trend: bool = False,
) -> CanonicalCategory:
    """Build a category, lowercasing synonyms and keywords once."""
    return CanonicalCategory(
        key=key,
        slug=slug,
        synonyms=frozenset(s.lower().strip() for s in synonyms if s and s.strip()),
        keywords=frozenset(k.lower().strip() for k in keywords if k and k.strip()),
        priority=priority,
        exclude_from_trend=exclude_from_trend,
    )


class Taxonomy:
    """Versioned, read-only set of canonical categories with exactly one fallback."""

    def __init__(self, categories: Iterable[CanonicalCategory], version: str = "1"):
        self.version = version
        self._categories: Tuple[CanonicalCategory, ...] = tuple(categories)
        if not self._categories:
            raise ValueError("Taxonomy needs at least one category")

        fallbacks = [c for c in self._categories if c.exclude_from_trend]
        if len(fallbacks) != 1:
            raise ValueError(
                f"Taxonomy needs exactly one fallback category, found {len(fallbacks)}"
            )
        self._fallback = fallbacks[0]
        if any(c.priority <= self._fallback.priority for c in self._categories if c is not self._fallback):
            raise ValueError("The fallback category must have the lowest priority")

        self._by_key: Dict[str, CanonicalCategory] = {}
        self._by_lower_key: Dict[str, CanonicalCategory] = {}
        self._by_slug: Dict[str, CanonicalCategory] = {}
        self._order: Dict[str, int] = {}
        # Insertion order is declaration order; the containment scans rely on it.
        self._synonym_to_key: Dict[str, str] = {}
        self._keyword_to_key: Dict[str, str] = {}

        for index, cat in enumerate(self._categories):
            if cat.key in self._by_key:
                raise ValueError(f"Duplicate category key: {cat.key}")
            if cat.slug in self._by_slug:
                raise ValueError(f"Duplicate category slug: {cat.slug}")
            self._by_key[cat.key] = cat
            self._by_lower_key[cat.key.lower()] = cat
            self._by_slug[cat.slug] = cat
            self._order[cat.key] = index
            for synonym in sorted(cat.synonyms):
                self._synonym_to_key.setdefault(synonym, cat.key)
            for keyword in sorted(cat.keywords):
                self._keyword_to_key.setdefault(keyword, cat.key)

    @property
    def categories(self) -> Tuple[CanonicalCategory, ...]:
        return self._categories

    @property
    def fallback(self) -> CanonicalCategory:
        return self._fallback

    def key_for_synonym(self, term: str) -> Optional[str]:
        return self._synonym_to_key.get(term)

    def synonym_items(self):
        return self._synonym_to_key.items()

    def keyword_items(self):
        return self._keyword_to_key.items()

    def get(self, key: str) -> Optional[CanonicalCategory]:
        return self._by_key.get(key)

    def get_case_insensitive(self, key: str) -> Optional[CanonicalCategory]:
        return self._by_lower_key.get(key.lower())

    def by_slug(self, slug: str) -> Optional[CanonicalCategory]:
        return self._by_slug.get(slug)

    def is_valid(self, key: str) -> bool:
        return key in self._by_key

    def slug_for(self, key: str) -> str:
        cat = self._by_key.get(key)
        return cat.slug if cat else self._fallback.slug

    def declaration_index(self, key: str) -> int:
        return self._order.get(key, len(self._order))

    def trend_keys(self) -> List[str]:
        """Keys that may appear in community trend statistics."""
        return [c.key for c in self._categories if not c.exclude_from_trend]

    def describe(self) -> List[dict]:
        """Category list for API responses."""
        return [
            {"key": c.key, "slug": c.slug, "priority": c.priority}
            for c in self._categories
        ]

    def __len__(self) -> int:
        return len(self._categories)

    def __contains__(self, key: str) -> bool:
        return key in self._by_key


TAXONOMY_VERSION = "2025.1"

UNIVERSAL_CATEGORY_KEY = "SELF-DISCOVERY"
FALLBACK_CATEGORY_KEY = "OTHER"

DEFAULT_TAXONOMY = Taxonomy(
    [
        category(
            "CRISES", "crisis",
            ["crisis", "difficulties", "problems", "overcoming", "way out of crisis", "struggle"],
            ["crisis", "difficult", "problem", "overcom", "struggl"],
            priority=10,
        ),
        category(
            "WOMANHOOD", "woman",
            ["woman", "femininity", "feminine power", "motherhood", "beauty", "feminine principle"],
            ["woman", "women", "feminin", "motherhood", "beaut"],
            priority=9,
        ),
        category(
            "LOVE", "love",
            ["love", "passion", "romance", "falling in love", "heart", "feelings", "attachment"],
            ["lov", "passion", "romanc", "heart", "feeling"],
            priority=9,
        ),
        category(
            "RELATIONSHIPS", "relationships",
            ["relationships", "friendship", "communication", "connection", "interaction", "understanding", "closeness"],
            ["relationship", "friend", "communicat", "connect", "interact", "closeness"],
            priority=8,
        ),
        category(
            "MONEY", "money",
            ["money", "wealth", "finance", "success", "material", "prosperity", "career"],
            ["money", "wealth", "financ", "success", "career"],
            priority=8,
        ),
        category(
            "LONELINESS", "loneliness",
            ["loneliness", "solitude", "self-reliance", "independence", "silence", "being with oneself"],
            ["lonel", "solitud", "alone", "independen"],
            priority=7,
        ),
        category(
            "DEATH", "death",
            ["death", "finitude", "transience", "loss", "memory", "eternity", "grief"],
            ["death", "dying", "finit", "transien", "grief"],
            priority=6,
        ),
        category(
            "FAMILY", "family",
            ["family", "parents", "children", "relatives", "family values", "upbringing", "generations"],
            ["famil", "parent", "child", "relative", "upbring"],
            priority=8,
        ),
        category(
            "MEANING OF LIFE", "meaning",
            ["meaning of life", "purpose", "goal", "mission", "calling", "essence", "philosophy", "life philosophy"],
            ["meaning", "purpose", "mission", "calling", "philosoph"],
            priority=9,
        ),
        category(
            "HAPPINESS", "happiness",
            ["happiness", "joy", "fun", "pleasure", "bliss", "positivity", "euphoria", "emotions", "emotional expression"],
            ["happi", "happy", "joy", "pleasur", "bliss", "positiv"],
            priority=8,
        ),
        category(
            "TIME AND HABITS", "time-habits",
            ["time", "habits", "routine", "organization", "planning", "discipline", "schedule"],
            ["habit", "routin", "organiz", "planning", "disciplin"],
            priority=7,
        ),
        category(
            "GOOD AND EVIL", "good-evil",
            ["good", "evil", "morality", "ethics", "justice", "virtue", "principles"],
            ["evil", "moral", "ethic", "justice", "virtu"],
            priority=6,
        ),
        category(
            "SOCIETY", "society",
            ["society", "social", "world", "people", "humanity", "civilization", "social issues"],
            ["societ", "social", "humanit", "civiliz"],
            priority=7,
        ),
        category(
            UNIVERSAL_CATEGORY_KEY, "self-discovery",
            [
                "self-knowledge", "self-development", "finding yourself", "path", "growth",
                "development", "knowledge", "self-improvement", "personal growth",
                "self-awareness", "becoming", "start of the journey", "thinking", "thoughts",
            ],
            ["self-", "growth", "develop", "journey", "knowledge"],
            priority=9,
        ),
        category(
            FALLBACK_CATEGORY_KEY, "other",
            ["other", "miscellaneous", "misc", "various"],
            [],
            priority=1,
            exclude_from_trend=True,
        ),
    ],
    version=TAXONOMY_VERSION,
)
