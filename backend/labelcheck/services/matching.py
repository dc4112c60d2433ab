"""Field matchers: decide whether extracted label text satisfies each expected value.

Every matcher takes the whitespace-normalized transcript, the raw transcript
and the expected value, and returns a FieldMatchResult. Matchers never raise
on odd input; an empty transcript or an unparseable expected value is simply
a non-match.
"""

import math
import re
import string
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional
import logging

from rapidfuzz.distance import Levenshtein

from .normalization import normalize, strip_units, fold_ocr_confusions
from ..config import get_settings

logger = logging.getLogger(__name__)


# Any one of these means a warning statement is on the label
WARNING_MARKERS = ("government warning", "surgeon general", "warning:")

# Fragments of the statutory warning text used to judge completeness
REQUIRED_WARNING_PHRASES = (
    "according to the surgeon general",
    "women should not drink alcoholic beverages during pregnancy",
    "birth defects",
    "consumption of alcoholic beverages impairs your ability to drive",
    "operate machinery",
    "may cause health problems",
)

_NUMERIC_CHARS = re.compile(r"[^0-9.]")


class ProductCategory(str, Enum):
    """Beverage category selected by the applicant."""
    SPIRITS = "spirits"
    WINE = "wine"
    BEER = "beer"
    UNSET = "unset"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ProductCategory":
        """Lenient lookup: blank or unknown values map to UNSET."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.UNSET


@dataclass(frozen=True)
class FieldMatchResult:
    """Outcome of checking one field against the transcript."""
    matched: bool
    detail: str
    confidence: Optional[int] = None


@dataclass(frozen=True)
class CategoryCheckResult:
    """Outcome of a category-specific labeling rule (advisory only)."""
    rule: str
    matched: bool
    detail: str


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_confidence(expected: str, extracted_text: str, matched: bool) -> int:
    """
    Confidence (0-100) that the expected phrase appears in the extracted text.

    - matched, full phrase present: 95
    - matched otherwise: 85 x fraction of expected words present
    - not matched: 50 x fraction of words present, floor of 5

    A blank expected value scores 0 so an absent field is distinguishable
    from an attempted-but-failed one.
    """
    phrase = normalize(expected)
    if not phrase:
        return 0

    text = normalize(extracted_text)
    if matched and phrase in text:
        return 95

    words = phrase.split()
    found = sum(1 for word in words if word in text)
    fraction = found / len(words)

    if matched:
        return _round_half_up(85 * fraction)
    if found:
        return _round_half_up(50 * fraction)
    return 5


def word_similarity(a: str, b: str) -> float:
    """1 - levenshtein(a, b) / max(len(a), len(b)) after OCR-confusion folding."""
    return Levenshtein.normalized_similarity(fold_ocr_confusions(a), fold_ocr_confusions(b))


class FieldMatcher(ABC):
    """Strategy deciding whether extracted text satisfies one expected attribute."""

    field_label: str = "Field"

    @abstractmethod
    def match(self, normalized_text: str, raw_text: str, expected: str) -> FieldMatchResult:
        raise NotImplementedError


class FuzzyPhraseMatcher(FieldMatcher):
    """
    Fuzzy substring match used for brand name and product type.

    An exact substring of the normalized text matches outright. Otherwise each
    expected word must be close (edit-distance similarity >= threshold) to at
    least one word in the text; one missing word fails the field.
    """

    def __init__(self, field_label: str, threshold: float):
        self.field_label = field_label
        self.threshold = threshold

    def match(self, normalized_text: str, raw_text: str, expected: str) -> FieldMatchResult:
        phrase = normalize(expected)
        matched = bool(phrase) and (
            phrase in normalized_text or self._all_words_found(phrase, normalized_text)
        )
        confidence = score_confidence(expected, raw_text, matched)

        if matched:
            detail = f'Found "{expected}" on label (Confidence: {confidence}%)'
        else:
            detail = f'{self.field_label} "{expected}" not found on label (Confidence: {confidence}%)'

        logger.debug(f"{self.field_label}: matched={matched} confidence={confidence}")
        return FieldMatchResult(matched=matched, detail=detail, confidence=confidence)

    def _all_words_found(self, phrase: str, normalized_text: str) -> bool:
        # Raw and edge-trimmed forms both count, so "&" still matches "&"
        text_words = set()
        for word in normalized_text.split():
            text_words.add(word)
            trimmed = word.strip(string.punctuation)
            if trimmed:
                text_words.add(trimmed)
        if not text_words:
            return False

        for expected_word in phrase.split():
            expected_word = expected_word.strip(string.punctuation) or expected_word
            if not any(word_similarity(expected_word, w) >= self.threshold for w in text_words):
                return False
        return True


class AlcoholContentMatcher(FieldMatcher):
    """
    Alcohol content: the expected number in any common label format.

    Accepts "45", "45%", "Alc. 45", "45 alc", "45 proof", and the proof
    equivalent of the ABV (proof = 2 x ABV, so "40%" matches "80 Proof").
    """

    field_label = "Alcohol content"

    def match(self, normalized_text: str, raw_text: str, expected: str) -> FieldMatchResult:
        number = _NUMERIC_CHARS.sub("", expected or "").rstrip(".")
        try:
            abv = float(number)
        except ValueError:
            return FieldMatchResult(
                matched=False,
                detail=f"Alcohol content {expected} could not be read as a number",
            )

        patterns = self._patterns(number, abv)
        matched = any(
            pattern.search(raw_text or "") or pattern.search(normalized_text)
            for pattern in patterns
        )

        if matched:
            detail = f"Found alcohol content {expected} on label"
        else:
            detail = f"Alcohol content {expected} not found on label"
        return FieldMatchResult(matched=matched, detail=detail)

    def _patterns(self, number: str, abv: float) -> List[re.Pattern]:
        n = re.escape(number)
        proof = re.escape(f"{abv * 2:g}")
        return [
            re.compile(rf"\b{n}\b", re.IGNORECASE),
            re.compile(rf"{n}\s*%", re.IGNORECASE),
            re.compile(rf"alc\.?\s*{n}", re.IGNORECASE),
            re.compile(rf"{n}\s*alc", re.IGNORECASE),
            re.compile(rf"\b{n}\s*proof\b", re.IGNORECASE),
            re.compile(rf"\b{proof}\s*proof", re.IGNORECASE),
        ]


class NetContentsMatcher(FieldMatcher):
    """Net contents: optional; the expected volume followed by any volume unit."""

    field_label = "Net contents"

    UNIT_SUFFIXES = (
        r"ml",
        r"milliliters?",
        r"fl",
        r"oz",
        r"ounces?",
        r"liters?",
        r"l\b",
    )

    def match(self, normalized_text: str, raw_text: str, expected: str) -> FieldMatchResult:
        if not expected or not expected.strip():
            return FieldMatchResult(matched=True, detail="Net contents not specified")

        number = strip_units(expected)
        if not number:
            return FieldMatchResult(
                matched=False,
                detail=f'Net contents "{expected}" could not be read as a volume',
            )

        # OCR often splits "750 mL" across tokens; compare with all whitespace and
        # thousands separators removed, as strip_units does for the expected value
        compact = re.sub(r"[\s,]+", "", raw_text or "")
        n = re.escape(number)
        matched = any(
            re.search(rf"{n}\s*{unit}", compact, re.IGNORECASE)
            for unit in self.UNIT_SUFFIXES
        )

        if matched:
            detail = f'Found net contents "{expected}" on label'
        else:
            detail = f'Net contents "{expected}" not found on label'
        return FieldMatchResult(matched=matched, detail=detail)


class GovernmentWarningMatcher(FieldMatcher):
    """
    Two-tier government warning check.

    Presence: any warning marker appears. Completeness: presence plus at least
    `min_phrases` of the canonical warning fragments. The expected value is
    ignored; every label must carry the same statement.
    """

    field_label = "Government warning"

    def __init__(self, min_phrases: int = 3):
        self.min_phrases = min_phrases

    def match(self, normalized_text: str, raw_text: str, expected: str = "") -> FieldMatchResult:
        present = any(marker in normalized_text for marker in WARNING_MARKERS)
        found = [p for p in REQUIRED_WARNING_PHRASES if p in normalized_text]
        complete = present and len(found) >= self.min_phrases
        confidence = _round_half_up(100 * len(found) / len(REQUIRED_WARNING_PHRASES))

        if complete:
            detail = "Complete government warning statement found on label"
        elif present:
            detail = "Partial government warning found (missing required text)"
        else:
            detail = "Government warning statement not found on label"

        return FieldMatchResult(matched=present, detail=detail, confidence=confidence)


# =============================================================================
# CATEGORY-SPECIFIC RULES
# =============================================================================
# Advisory checks keyed by product category. Add a category by registering a
# rule; the orchestrator only asks the registry.
# =============================================================================

class CategoryRule(ABC):
    """Labeling rule that applies to one product category."""

    name: str = "category_rule"

    @abstractmethod
    def check(self, normalized_text: str) -> CategoryCheckResult:
        raise NotImplementedError


class SulfiteDeclarationRule(CategoryRule):
    """Wine must declare sulfites."""

    name = "sulfite_declaration"

    def check(self, normalized_text: str) -> CategoryCheckResult:
        found = "sulfite" in normalized_text or "sulphite" in normalized_text
        detail = (
            "Sulfite declaration found"
            if found
            else "Sulfite declaration missing (required for wine)"
        )
        return CategoryCheckResult(rule=self.name, matched=found, detail=detail)


class IngredientListRule(CategoryRule):
    """Beer: weak signal that an ingredient list is printed."""

    name = "ingredients"

    def check(self, normalized_text: str) -> CategoryCheckResult:
        found = "ingredients" in normalized_text or (
            "water" in normalized_text and "hops" in normalized_text
        )
        detail = "Ingredient information found" if found else "No ingredient information found"
        return CategoryCheckResult(rule=self.name, matched=found, detail=detail)


CATEGORY_RULES: Dict[ProductCategory, CategoryRule] = {
    ProductCategory.WINE: SulfiteDeclarationRule(),
    ProductCategory.BEER: IngredientListRule(),
}


def register_category_rule(category: ProductCategory, rule: CategoryRule) -> None:
    """Attach (or replace) the rule for a category."""
    CATEGORY_RULES[category] = rule


def category_rule_for(category: ProductCategory) -> Optional[CategoryRule]:
    """Rule for the category, or None when it has no extra requirements."""
    return CATEGORY_RULES.get(category)


@dataclass(frozen=True)
class FieldMatchers:
    """The matcher set used for one verification run."""
    brand_name: FieldMatcher
    product_type: FieldMatcher
    alcohol_content: FieldMatcher
    net_contents: FieldMatcher
    government_warning: FieldMatcher

    @classmethod
    def from_settings(cls) -> "FieldMatchers":
        settings = get_settings()
        return cls(
            brand_name=FuzzyPhraseMatcher("Brand name", settings.brand_similarity_threshold),
            product_type=FuzzyPhraseMatcher("Product type", settings.product_type_similarity_threshold),
            alcohol_content=AlcoholContentMatcher(),
            net_contents=NetContentsMatcher(),
            government_warning=GovernmentWarningMatcher(settings.warning_min_phrases),
        )
