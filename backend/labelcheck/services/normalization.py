"""Text canonicalization shared by the field matchers."""

import re

_WHITESPACE = re.compile(r"\s+")
_NON_NUMERIC = re.compile(r"[^0-9.]")

# Longest first so "fl.oz" is not broken up by stripping "l" or "oz" early
UNIT_TOKENS = ("fl.oz", "floz", "ml", "oz", "l")

# Digit/letter pairs OCR engines routinely swap on stylized label fonts
_OCR_CONFUSIONS = str.maketrans({
    "0": "o",
    "1": "i",
    "5": "s",
    "8": "b",
})


def normalize(text: str) -> str:
    """Lowercase and collapse whitespace runs to single spaces."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text.lower()).strip()


def strip_units(text: str) -> str:
    """
    Reduce a net-contents value to its bare number.

    "750 mL" -> "750", "12 FL. OZ" -> "12", "1.75 L" -> "1.75".
    Returns an empty string when nothing numeric is left.
    """
    if not text:
        return ""
    value = _WHITESPACE.sub("", text.lower())
    for token in UNIT_TOKENS:
        value = value.replace(token, "")
    return _NON_NUMERIC.sub("", value).strip(".")


def fold_ocr_confusions(word: str) -> str:
    """Map digits commonly misread for letters (0LD -> old, DIST1LLERY -> distillery)."""
    return word.lower().translate(_OCR_CONFUSIONS)
