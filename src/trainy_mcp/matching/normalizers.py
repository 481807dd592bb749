import re
import unicodedata
from functools import lru_cache

# Long forms providers use interchangeably with the short ones (lowercase, accent-free)
ABBREVIATIONS: dict[str, str] = {
    "hauptbahnhof": "hbf",
    "centraal station": "centraal",
    "central station": "centraal",
    "sankt ": "st. ",
}

# "Frankfurt (Main) Hbf" -> "Frankfurt Hbf", "Zürich HB (Gleis 31)" -> "Zürich HB"
PARENTHETICAL = re.compile(r"\s*\([^)]*\)\s*")

NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")


@lru_cache(maxsize=4096)
def remove_accents(text: str) -> str:
    """Remove accents from text.

    Example: "Zürich HB" -> "Zurich HB"
    """
    # Normalize to NFD (decomposes accented characters)
    normalized = unicodedata.normalize("NFD", text)
    # Remove combining diacritical marks
    return "".join(c for c in normalized if unicodedata.category(c) != "Mn")


@lru_cache(maxsize=4096)
def normalize_text(text: str) -> str:
    """Normalize a station name or query for comparison.

    - Converts to lowercase
    - Removes accents
    - Expands/contracts common station abbreviations
    - Normalizes whitespace

    Example: "  Köln Hauptbahnhof " -> "koln hbf"
    """
    result = remove_accents(text.lower().strip())

    for long_form, short_form in ABBREVIATIONS.items():
        result = result.replace(long_form, short_form)

    return " ".join(result.split())


def strip_parenthetical(text: str) -> str:
    """Remove parenthetical qualifiers from a station name.

    Example: "Frankfurt (Main) Hbf" -> "Frankfurt Hbf"
    """
    return " ".join(PARENTHETICAL.sub(" ", text).split())


@lru_cache(maxsize=4096)
def compact_name(text: str) -> str:
    """Reduce a station name to accent-free lowercase alphanumerics.

    Spacing and punctuation differ between providers, the letters do not.

    Example: "Frankfurt(Main)Hbf" -> "frankfurtmainhbf"
    Example: "Frankfurt (Main) Hbf" -> "frankfurtmainhbf"
    """
    return NON_ALPHANUMERIC.sub("", normalize_text(text))


def names_overlap(a: str, b: str) -> bool:
    """Check whether two station names are equal or one contains the other.

    Compared in compact form, so "Zürich HB" and "Zurich HB" overlap, as do
    "Frankfurt(Main)Hbf" and "Frankfurt (Main) Hbf".
    """
    left = compact_name(a)
    right = compact_name(b)
    if not left or not right:
        return False
    return left == right or left in right or right in left


def fuzzy_names_overlap(a: str, b: str) -> bool:
    """Like names_overlap, after stripping parenthetical qualifiers from both."""
    return names_overlap(strip_parenthetical(a), strip_parenthetical(b))


def normalize_train_id(train_type: str, train_number: str) -> str:
    """Normalize a train identity for keying.

    Example: ("ICE", " 456") -> "ice456", ("IC ", "123") -> "ic123"
    """
    return re.sub(r"\s+", "", f"{train_type}{train_number}").lower()


def normalize_train_number(train_number: str) -> str:
    """Normalize a bare train number.

    Example: " 00456 " -> "456"
    """
    stripped = re.sub(r"\s+", "", train_number)
    return stripped.lstrip("0") or stripped


def slugify(text: str) -> str:
    """Build a registry-style id from a name.

    Example: "Zürich HB" -> "zurich-hb"
    """
    return NON_ALPHANUMERIC.sub("-", normalize_text(text)).strip("-")
