"""Text normalization helpers shared by the planner and classifiers."""

import re
import unicodedata


def strip_accents(text: str) -> str:
    """Remove combining diacritics ("Córdoba" -> "Cordoba")."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn")


def normalize_text(text: str) -> str:
    """Lower-case, strip diacritics and collapse whitespace."""
    return " ".join(strip_accents((text or "").lower()).split())


def phrase_pattern(phrase: str) -> re.Pattern:
    """Regex matching ``phrase`` as whole words."""
    return re.compile(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)")


def digits_only(text: str) -> str:
    return re.sub(r"\D", "", text or "")
