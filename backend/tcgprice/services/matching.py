"""
Card identity matching across catalogs.

Every upstream source names the same card differently: listing titles carry
set names, card numbers and rarity words, card numbers are zero-padded in
one catalog and not in another, and set names drift between sources. The
pure functions here reduce those strings to comparable forms and rank
candidate matches. None of them do I/O.
"""
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Sequence, TypeVar

T = TypeVar("T")

UNKNOWN_SET_NAMES = {"", "unknown", "unknown set", "all"}

# Known set names, used to guess a set from a free-text title and to strip
# set noise out of listing titles.
KNOWN_SET_PATTERNS: list[re.Pattern] = [
    re.compile(p, re.IGNORECASE)
    for p in [
        r"Crown Zenith",
        r"Scarlet\s*(?:&|and)?\s*Violet",
        r"Sword\s*(?:&|and)?\s*Shield",
        r"Sun\s*(?:&|and)?\s*Moon",
        r"Black\s*(?:&|and)?\s*White",
        r"\bXY\b",
        r"Jungle",
        r"Base Set",
        r"Fossil",
        r"Team Rocket",
        r"Furious Fists",
        r"Evolutions",
        r"Team Up",
        r"Unified Minds",
        r"Cosmic Eclipse",
        r"Rebel Clash",
        r"Darkness Ablaze",
        r"Vivid Voltage",
        r"Battle Styles",
        r"Chilling Reign",
        r"Evolving Skies",
        r"Fusion Strike",
        r"Brilliant Stars",
        r"Astral Radiance",
        r"Lost Origin",
        r"Silver Tempest",
        r"Paldea Evolved",
        r"Obsidian Flames",
    ]
]

# Rarity / variant words that never belong to a card's canonical name.
_VARIANT_TOKENS = [
    "Special Illustration Rare",
    "Illustration Rare",
    "Reverse Holofoil",
    "Reverse Holo",
    "Non-Holo",
    "Cosmo Holo",
    "Secret Rare",
    "Ultra Rare",
    "Hyper Rare",
    "Rainbow Rare",
    "Double Rare",
    "Gold Rare",
    "Amazing Rare",
    "Alternate Art",
    "Alt Art",
    "Full Art",
    "Tag Team",
    "Prism Star",
    "Holofoil",
    "Holo",
    "Rare",
    "Promo",
    "Foil",
    "VMAX",
    "VSTAR",
    "GX",
    "BREAK",
]
# Words that are part of real card names ("Radiant Charizard", "Double
# Colorless Energy") and are only stripped as a dash suffix.
_SUFFIX_ONLY_TOKENS = ["Shiny", "Radiant", "Trainer", "Energy"]

_PRODUCT_NOISE = [
    "Complete Set",
    "Pokemon",
    "Pokémon",
    "Card",
    "TCG",
    "Sealed",
    "Lot",
    "Bundle",
    "Collection",
    "Booster",
    "Pack",
    "Box",
    "Case",
]


def _alternation(tokens: Iterable[str]) -> str:
    return "|".join(re.escape(t) for t in sorted(tokens, key=len, reverse=True))


# Trainer cards whose names start with a noise word ("Rare Candy",
# "Pokemon Catcher"). A noise word followed by one of these is kept.
_TRAINER_NAME_TAILS = [
    "Candy",
    "Fossil",
    "Catcher",
    "Center",
    "Communication",
    "Breeder",
    "Collector",
    "Fan Club",
    "Flute",
    "League",
    "March",
    "Nurse",
    "Ranger",
    "Reversal",
    "Retriever",
    "Research Lab",
    "Trader",
]
_KEEP_TRAINER = rf"(?!\s+(?:{_alternation(_TRAINER_NAME_TAILS)})\b)"


_FRACTION_NUMBER_RE = re.compile(r"\s*#?[A-Za-z]{0,3}\d+\s*/\s*[A-Za-z]{0,3}\d+")
_HASH_NUMBER_RE = re.compile(r"\s*#[A-Za-z]{0,3}\d+")
_TRAILING_NUMBER_RE = re.compile(r"\s+\d+$")
_VARIANT_RE = re.compile(
    rf"\s*-?\s*(?<!\w)(?:{_alternation(_VARIANT_TOKENS)})(?!\w){_KEEP_TRAINER}", re.IGNORECASE
)
_SUFFIX_RE = re.compile(
    rf"\s*-\s*(?:{_alternation(_SUFFIX_ONLY_TOKENS)})\b", re.IGNORECASE
)
_NOISE_RE = re.compile(rf"\s*\b(?:{_alternation(_PRODUCT_NOISE)})\b{_KEEP_TRAINER}", re.IGNORECASE)
_CARD_NUMBER_RE = re.compile(r"^([A-Za-z]*)(\d+)(.*)$")


def _clean_once(name: str) -> str:
    name = _FRACTION_NUMBER_RE.sub("", name)
    name = _HASH_NUMBER_RE.sub("", name)
    name = _SUFFIX_RE.sub("", name)
    name = _VARIANT_RE.sub("", name)
    name = _NOISE_RE.sub("", name)

    # Set names only count after the first word ("Team Rocket's Meowth").
    head, sep, tail = name.strip().partition(" ")
    for pattern in KNOWN_SET_PATTERNS:
        tail = pattern.sub("", tail)
    name = f"{head}{sep}{tail}"

    name = _TRAILING_NUMBER_RE.sub("", name.strip())
    name = " ".join(name.split())
    return name.strip(" -|,:")


def clean_name(raw_title: str) -> str:
    """
    Reduce a raw card or listing title to a canonical card name.

    Strips card numbers (``#12``, ``12/203``), rarity and variant tokens
    (Holo, VMAX, Secret Rare, ...), product noise (Pokemon, TCG, Lot, ...),
    known set names and trailing bare numbers, then collapses whitespace.

    Idempotent: ``clean_name(clean_name(x)) == clean_name(x)``.

    Examples:
        "Charizard VMAX #074/189 Holo" -> "Charizard"
        "Pikachu - Reverse Holo 25"    -> "Pikachu"
        "Team Rocket's Meowth"         -> "Team Rocket's Meowth"
    """
    if not raw_title:
        return ""

    name = " ".join(raw_title.split())
    # Each pass only removes text; loop until nothing more can be removed.
    while True:
        cleaned = _clean_once(name)
        if cleaned == name:
            return cleaned
        name = cleaned


def normalize_card_number(raw: Optional[str]) -> str:
    """
    Normalize a card number for cross-catalog comparison.

    Keeps the part before any "/", drops a leading "#", strips leading zeros
    from the numeric segment and upper-cases alphabetic parts.

    Examples:
        "007"     -> "7"
        "074/189" -> "74"
        "gg044"   -> "GG44"
        "0"       -> "0"
    """
    if raw is None:
        return ""

    number = str(raw).split("/")[0].strip().lstrip("#").strip()
    match = _CARD_NUMBER_RE.match(number)
    if not match:
        return number.upper()

    prefix, digits, rest = match.groups()
    return f"{prefix.upper()}{int(digits)}{rest.upper()}"


def card_numbers_match(candidate: Optional[str], target: Optional[str]) -> bool:
    """
    Compare two card numbers after normalization.

    Alphanumeric numbers (GG44, TG30) must match exactly; a purely numeric
    target also matches a candidate with the same leading number ("25" vs
    "25a").
    """
    if not candidate or not target:
        return False

    normalized_candidate = normalize_card_number(candidate)
    normalized_target = normalize_card_number(target)
    if normalized_candidate == normalized_target:
        return True

    if normalized_target.isdigit():
        leading = re.match(r"^(\d+)", normalized_candidate)
        if leading:
            return int(leading.group(1)) == int(normalized_target)

    return False


class SetMatch(str, Enum):
    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"


def _clean_set_name(name: Optional[str]) -> str:
    if not name:
        return ""
    return " ".join(re.sub(r"['\"]", "", name).split()).lower()


def set_name_matches(a: Optional[str], b: Optional[str]) -> SetMatch:
    """
    Compare two set names.

    Case-insensitive equality first, then substring containment in either
    direction.
    """
    left = _clean_set_name(a)
    right = _clean_set_name(b)
    if not left or not right:
        return SetMatch.NONE
    if left == right:
        return SetMatch.EXACT
    if left in right or right in left:
        return SetMatch.PARTIAL
    return SetMatch.NONE


def is_known_set(set_name: Optional[str]) -> bool:
    """False for missing and placeholder set names such as "Unknown Set"."""
    return _clean_set_name(set_name) not in UNKNOWN_SET_NAMES


def extract_set_from_title(title: str) -> str:
    """Guess the set from a free-text title, or "Unknown Set"."""
    for pattern in KNOWN_SET_PATTERNS:
        match = pattern.search(title or "")
        if match:
            return match.group(0)
    return "Unknown Set"


def significant_words(text: Optional[str]) -> list[str]:
    """Lower-cased words longer than two characters."""
    return [w for w in (text or "").lower().split() if len(w) > 2]


def search_name(cleaned_name: str) -> str:
    """
    Short query form of a card name for APIs with fuzzy search.

    "Team ..." names search on their last word, everything else on the
    first two words.
    """
    words = cleaned_name.split()
    if len(words) > 1 and "team" in words[0].lower():
        return words[-1]
    return " ".join(words[:2])


def rank_candidates(
    candidates: Sequence[T],
    name: str,
    number: Optional[str],
    name_of: Callable[[T], Optional[str]],
    number_of: Callable[[T], Optional[str]],
) -> list[T]:
    """
    Order candidates by match quality.

    Tiers, best first: card-number match, exact name, name contains the
    cleaned name, anything else. Order inside a tier is preserved, so the
    last tier is "first available".
    """
    target = clean_name(name).lower()

    def tier(candidate: T) -> int:
        if number and card_numbers_match(number_of(candidate), number):
            return 0
        candidate_name = (name_of(candidate) or "").lower()
        if target and (candidate_name == target or clean_name(candidate_name).lower() == target):
            return 1
        if target and target in candidate_name:
            return 2
        return 3

    return sorted(candidates, key=tier)


def filter_by_name(
    candidates: Sequence[T],
    name: str,
    name_of: Callable[[T], Optional[str]],
) -> list[T]:
    """Candidates whose name contains the cleaned name (case-insensitive)."""
    target = clean_name(name).lower()
    if not target:
        return list(candidates)
    return [c for c in candidates if target in (name_of(c) or "").lower()]


# ---------------------------------------------------------------------------
# Secondary-market listing relevance
# ---------------------------------------------------------------------------

_GRADING_RE = re.compile(r"\b(?:psa|cgc|bgs|sgc|beckett|graded)\b", re.IGNORECASE)
_GRADE_NUMBER_RE = re.compile(r"\b(?:psa|cgc|bgs|sgc|tag|ace)\s*\d+(?:\.\d)?\b", re.IGNORECASE)
_BULK_RE = re.compile(
    r"\b(?:lot|lots|bundle|collection|booster|pack|box|sealed|case|complete set)\b",
    re.IGNORECASE,
)
_LISTING_NUMBER_PATTERNS = [
    re.compile(r"\b([a-z]{0,3}\d+)\s*/\s*[a-z]{0,3}\d+\b", re.IGNORECASE),
    re.compile(r"#([a-z]{0,3}\d+)\b", re.IGNORECASE),
    re.compile(r"\bno\.?\s*(\d+)\b", re.IGNORECASE),
    re.compile(r"\bnumber\s+(\d+)\b", re.IGNORECASE),
]


@dataclass(frozen=True)
class ListingCriteria:
    """What a sold listing has to look like to count toward the average."""
    card_name: str
    card_number: Optional[str] = None
    set_name: Optional[str] = None
    set_overlap_threshold: float = 0.6
    min_price: float = 0.0
    max_price: float = 100000.0


def is_graded_listing(title: str) -> bool:
    return bool(_GRADING_RE.search(title) or _GRADE_NUMBER_RE.search(title))


def is_bulk_listing(title: str) -> bool:
    return bool(_BULK_RE.search(title))


def extract_listing_number(title: str) -> Optional[str]:
    """First card number embedded in a listing title, normalized."""
    for pattern in _LISTING_NUMBER_PATTERNS:
        match = pattern.search(title)
        if match:
            return normalize_card_number(match.group(1))
    return None


def listing_price(item: dict[str, Any]) -> float:
    """Sale price of a raw listing record (0 when missing)."""
    price = item.get("sale_price")
    if not price:
        current = item.get("currentPrice") or {}
        price = current.get("value") if isinstance(current, dict) else None
    try:
        return float(price or 0)
    except (TypeError, ValueError):
        return 0.0


def listing_is_relevant(title: str, price: float, criteria: ListingCriteria) -> tuple[bool, str]:
    """
    Decide whether a sold listing is the requested raw card.

    Returns:
        (relevant, reason) where reason names the failed check, or "matched".
    """
    text = (title or "").lower()

    if is_graded_listing(text):
        return False, "graded"

    if is_bulk_listing(text):
        return False, "bulk or sealed product"

    missing = [w for w in significant_words(criteria.card_name) if w not in text]
    if missing:
        return False, f"missing name words: {', '.join(missing)}"

    if criteria.card_number:
        found = extract_listing_number(text)
        if found is not None and found != normalize_card_number(criteria.card_number):
            return False, f"conflicting card number {found}"

    if is_known_set(criteria.set_name):
        set_lower = _clean_set_name(criteria.set_name)
        if set_lower not in text:
            set_words = significant_words(set_lower)
            present = [w for w in set_words if w in text]
            if len(present) < math.ceil(len(set_words) * criteria.set_overlap_threshold):
                return False, "set name mismatch"

    if price <= criteria.min_price or price > criteria.max_price:
        return False, f"price out of range: {price}"

    return True, "matched"


def filter_relevant_listings(
    items: Sequence[dict[str, Any]],
    criteria: ListingCriteria,
) -> list[dict[str, Any]]:
    """Keep the raw listing records that pass every relevance check."""
    relevant = []
    for item in items:
        ok, _reason = listing_is_relevant(item.get("title") or "", listing_price(item), criteria)
        if ok:
            relevant.append(item)
    return relevant
