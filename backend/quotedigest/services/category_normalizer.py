"""
Category normalization: raw category/theme strings and free text to canonical keys.

Every function here is total. Unknown, empty or non-string input degrades to
the taxonomy's fallback category instead of raising.
"""
import logging
from typing import Iterable, List, Optional, Tuple

from quotedigest.services.taxonomy import DEFAULT_TAXONOMY, Taxonomy

logger = logging.getLogger(__name__)

MAX_THEMES = 3


class CategoryNormalizer:
    """Maps strings to canonical category keys of one taxonomy version."""

    def __init__(self, taxonomy: Taxonomy = DEFAULT_TAXONOMY):
        self.taxonomy = taxonomy

    @property
    def fallback_key(self) -> str:
        return self.taxonomy.fallback.key

    def normalize(self, raw) -> str:
        """
        Normalize a raw category string to a canonical key.

        First match wins:
        1. case-insensitive canonical key
        2. exact synonym
        3. raw contains a synonym, or a synonym contains raw
        4. raw contains a keyword (stem-like fragments)
        5. fallback category
        """
        if not raw or not isinstance(raw, str):
            return self.fallback_key

        normalized = raw.lower().strip()
        if not normalized:
            return self.fallback_key

        direct = self.taxonomy.get_case_insensitive(normalized)
        if direct:
            return direct.key

        synonym_key = self.taxonomy.key_for_synonym(normalized)
        if synonym_key:
            return synonym_key

        for synonym, key in self.taxonomy.synonym_items():
            if synonym in normalized or normalized in synonym:
                return key

        for keyword, key in self.taxonomy.keyword_items():
            if keyword in normalized:
                return key

        return self.fallback_key

    def detect_from_text(self, text) -> List[str]:
        """
        Detect up to three categories from free text by heuristic scoring.

        Each keyword found in the text adds 1, each synonym adds 2 (synonyms are
        whole words/phrases and therefore higher confidence). Highest score
        first; ties keep taxonomy declaration order.
        """
        if not text or not isinstance(text, str):
            return [self.fallback_key]

        text_lower = text.lower()
        scores = {}

        for keyword, key in self.taxonomy.keyword_items():
            if keyword in text_lower:
                scores[key] = scores.get(key, 0) + 1

        for synonym, key in self.taxonomy.synonym_items():
            if synonym in text_lower:
                scores[key] = scores.get(key, 0) + 2

        ranked = sorted(
            scores.items(),
            key=lambda item: (-item[1], self.taxonomy.declaration_index(item[0])),
        )
        detected = [key for key, _ in ranked]
        if len(detected) > 1:
            detected = [key for key in detected if key != self.fallback_key]
        return detected[:MAX_THEMES] or [self.fallback_key]

    def normalize_theme_list(self, raw: Optional[Iterable], best_known: Optional[str] = None) -> List[str]:
        """
        Normalize a list of raw themes to 1-3 unique canonical keys.

        The fallback category is dropped only when more than one distinct
        category remains, so it can appear solely as the single element. An
        empty input yields the caller's best-known category (normalized), or
        the fallback when the caller has nothing better.
        """
        if raw is None or isinstance(raw, str):
            raw = [raw] if raw else []

        unique: List[str] = []
        for theme in raw:
            key = self.normalize(theme) if theme else None
            if key and key not in unique:
                unique.append(key)

        if len(unique) > 1:
            unique = [key for key in unique if key != self.fallback_key]

        limited = unique[:MAX_THEMES]
        if limited:
            return limited

        if best_known:
            return [self.normalize(best_known)]
        return [self.fallback_key]

    def normalize_analysis(self, category, themes) -> Tuple[str, List[str]]:
        """
        Normalize classifier output (category + themes) for storage on a quote.

        When the themes collapse to the lone fallback, the normalized category
        itself becomes the single theme.
        """
        normalized_category = self.normalize(category)
        normalized_themes = self.normalize_theme_list(themes, best_known=normalized_category)
        if normalized_themes == [self.fallback_key]:
            normalized_themes = [normalized_category]
        return normalized_category, normalized_themes

    def is_valid(self, key: str) -> bool:
        return self.taxonomy.is_valid(key)

    def slug_for(self, key: str) -> str:
        return self.taxonomy.slug_for(key)


default_normalizer = CategoryNormalizer(DEFAULT_TAXONOMY)


def normalize_category(raw) -> str:
    return default_normalizer.normalize(raw)


def detect_categories_from_text(text) -> List[str]:
    return default_normalizer.detect_from_text(text)


def normalize_themes(raw, best_known: Optional[str] = None) -> List[str]:
    return default_normalizer.normalize_theme_list(raw, best_known=best_known)
