"""Canonical forms for the free-text values captured on the follow-up form.

Adherence labels, seizure-frequency categories, medication names and
demographics all arrive in many spellings; everything downstream works on the
canonical values produced here.
"""

import logging
import re
from datetime import date, datetime
from typing import Any

from epicare.models.followup import Medication

logger = logging.getLogger(__name__)

# --- Adherence ---

ALWAYS_TAKE = "Always take"
OCCASIONALLY_MISS = "Occasionally miss"
FREQUENTLY_MISS = "Frequently miss"
STOPPED = "Completely stopped medicine"
UNKNOWN = "unknown"

_ADHERENCE_PATTERNS = [
    (re.compile(r"\b(stop|stopped|not taking|stopped medicine|none)\b", re.I), STOPPED),
    (re.compile(r"\b(frequent|frequently|often miss|miss often|many misses|poor)\b", re.I), FREQUENTLY_MISS),
    (
        re.compile(r"\b(occasion|sometimes|intermittent|rarely miss|miss occasionally|some|rare)\b", re.I),
        OCCASIONALLY_MISS,
    ),
    (
        re.compile(r"\b(always|perfect|adherent|no misses|never miss|good|excellent|regular)\b", re.I),
        ALWAYS_TAKE,
    ),
]

_ADHERENCE_CODES = {
    ALWAYS_TAKE: "ALWAYS",
    OCCASIONALLY_MISS: "OCCASIONAL",
    FREQUENTLY_MISS: "FREQUENT",
    STOPPED: "STOPPED",
}


def canonicalize_adherence(value: Any) -> str:
    """Map a raw adherence answer to one of the four form labels, or ``unknown``."""
    if value is None:
        return UNKNOWN
    text = str(value).strip()
    if not text:
        return UNKNOWN

    lower = text.lower()
    for label in (ALWAYS_TAKE, OCCASIONALLY_MISS, FREQUENTLY_MISS, STOPPED):
        if lower == label.lower():
            return label

    for pattern, label in _ADHERENCE_PATTERNS:
        if pattern.search(text):
            return label
    return UNKNOWN


def adherence_code(value: Any) -> str | None:
    """Upper-case adherence code used in the CDS patient context."""
    return _ADHERENCE_CODES.get(canonicalize_adherence(value))


def has_adherence_barrier(value: Any) -> bool:
    return canonicalize_adherence(value) in (OCCASIONALLY_MISS, FREQUENTLY_MISS, STOPPED)


def is_adherence_confirmed(value: Any) -> bool:
    return canonicalize_adherence(value) == ALWAYS_TAKE


# --- Seizure frequency ---

FREQUENCY_ORDER = ["LESS_THAN_YEARLY", "YEARLY", "MONTHLY", "WEEKLY", "DAILY"]

FREQUENCY_LABELS = {
    "LESS_THAN_YEARLY": "Less than yearly",
    "YEARLY": "Yearly",
    "MONTHLY": "Monthly",
    "WEEKLY": "Weekly",
    "DAILY": "Daily",
}


def normalize_frequency_label(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text:
        return None
    if text.upper() in FREQUENCY_ORDER:
        return text.upper()
    # "less than yearly" must be checked before "year"
    if "less" in text:
        return "LESS_THAN_YEARLY"
    if "year" in text:
        return "YEARLY"
    if "month" in text:
        return "MONTHLY"
    if "week" in text:
        return "WEEKLY"
    if "day" in text or "daily" in text:
        return "DAILY"
    return None


def compute_frequency_from_seizure_count(count: Any, days: int | None) -> str | None:
    """Categorize the seizure rate observed since the last visit."""
    if days is None:
        return None
    try:
        seizures = max(0.0, float(count or 0))
    except (TypeError, ValueError):
        seizures = 0.0
    span = min(365, max(1, int(days)))
    rate = seizures / span
    if rate >= 1:
        return "DAILY"
    if rate >= 1 / 7:
        return "WEEKLY"
    if rate >= 1 / 30:
        return "MONTHLY"
    if rate >= 1 / 365:
        return "YEARLY"
    return "LESS_THAN_YEARLY"


def compare_frequencies(current: str | None, baseline: str | None) -> int | None:
    """Positive when ``current`` is more frequent (worse) than ``baseline``."""
    if current not in FREQUENCY_ORDER or baseline not in FREQUENCY_ORDER:
        return None
    return FREQUENCY_ORDER.index(current) - FREQUENCY_ORDER.index(baseline)


# --- Dates ---


def parse_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        logger.debug("Unparseable date %r", value)
        return None


def days_since(last: date | None, as_of: date) -> int | None:
    """Whole days between two dates, clamped to 1..365."""
    if last is None:
        return None
    return min(365, max(1, (as_of - last).days))


# --- Demographics ---

EPILEPSY_TYPES = ("Focal", "Generalized", "Unknown")


def normalize_gender(value: Any) -> str | None:
    text = str(value or "").strip()
    if not text:
        return None
    if re.fullmatch(r"m(ale)?", text, re.I):
        return "Male"
    if re.fullmatch(r"f(emale)?", text, re.I):
        return "Female"
    return "Other"


def normalize_epilepsy_type(value: Any) -> str:
    text = str(value or "").strip().lower()
    for canonical in EPILEPSY_TYPES:
        if text == canonical.lower() or text.startswith(canonical.lower()[:5]):
            return canonical
    return "Unknown"


def normalize_age(value: Any) -> int | None:
    try:
        age = int(float(value))
    except (TypeError, ValueError):
        return None
    return age if 0 <= age <= 150 else None


def normalize_weight(value: Any) -> float | None:
    try:
        weight = float(value)
    except (TypeError, ValueError):
        return None
    return weight if weight > 0 else None


# --- Medications ---

MEDICATION_SYNONYMS: dict[str, list[str]] = {
    "carbamazepine": ["cbz", "tegretol", "carbatrol", "epitol"],
    "sodium valproate": [
        "valproate",
        "valproic acid",
        "depakote",
        "vpa",
        "sodium divalproex",
        "divalproex",
    ],
    "phenytoin": ["dilantin", "phenytek", "fosphenytoin"],
    "phenobarbital": ["phenobarbitone", "luminal", "pbm"],
    "levetiracetam": ["keppra", "keppra xr"],
    "lamotrigine": ["lamictal"],
    "clobazam": ["frisium", "onfi", "clb"],
}

_DOSE_RE = re.compile(r"(\d+(?:/\d+)?(?:\.\d+)?)(?:\s*(mg|g|ml|mcg|µg|ug|iu))?", re.I)
_FREQ_RE = re.compile(
    r"\b(od|bd|tds|qid|qds|hs|daily|once(?: a day)?|twice(?: a day)?|three times|bid|tid)\b", re.I
)
_FREQ_MULTIPLIER = {
    "od": 1,
    "daily": 1,
    "once": 1,
    "once a day": 1,
    "bd": 2,
    "bid": 2,
    "twice": 2,
    "twice a day": 2,
    "tds": 3,
    "tid": 3,
    "three times": 3,
    "qid": 4,
    "qds": 4,
}
_SPLIT_RE = re.compile(r"\s*\+\s*|;|\n|\s+&\s+|\s+and\s+|\s*\|\s*", re.I)


def normalize_medication_name(name: Any) -> str | None:
    """Resolve brand names and abbreviations to the canonical drug name."""
    if not name:
        return None
    normalized = str(name).strip().lower()
    if not normalized:
        return None
    for canonical, synonyms in MEDICATION_SYNONYMS.items():
        if normalized == canonical or normalized in synonyms:
            return canonical
        for synonym in synonyms:
            if len(synonym) > 2 and synonym in normalized:
                return canonical
    return normalized


def _split_medication_text(raw: str) -> list[str]:
    parts = [p.strip() for p in _SPLIT_RE.split(raw) if p and p.strip()]
    if len(parts) == 1 and "," in raw:
        comma_parts = [p.strip() for p in raw.split(",") if p.strip()]
        looks_like_meds = all(
            (re.search(r"[a-z]", p, re.I) and re.search(r"\d", p)) or _FREQ_RE.search(p)
            for p in comma_parts
        )
        if len(comma_parts) > 1 and looks_like_meds:
            parts = comma_parts
    return parts


def parse_medication_string(text: Any) -> list[Medication]:
    """Parse a free-text regimen such as ``"CBZ 200 mg bd + Clobazam 10mg od"``."""
    if not text:
        return []
    raw = str(text).strip()
    if not raw:
        return []

    medications = []
    for part in _split_medication_text(raw):
        dose_match = _DOSE_RE.search(part)
        dosage = ""
        if dose_match:
            unit = (dose_match.group(2) or "").lower()
            dosage = f"{dose_match.group(1)} {unit}".strip()

        freq_match = _FREQ_RE.search(part)
        frequency = freq_match.group(0) if freq_match else ""

        name = _DOSE_RE.sub("", part, count=1)
        name = _FREQ_RE.sub("", name, count=1)
        name = re.sub(r"(syp\.?|syrup\.?)", "", name, flags=re.I)
        name = re.sub(r"[-_]+", " ", name)
        name = re.sub(r"\s+", " ", name).strip()
        if not name:
            leading = re.match(r"^([a-zA-Z\s]+)", part)
            name = leading.group(0).strip() if leading else part

        daily_mg = None
        if dose_match and (dose_match.group(2) or "mg").lower() == "mg":
            value = float(dose_match.group(1).split("/")[0])
            daily_mg = value * _FREQ_MULTIPLIER.get(frequency.lower(), 1)

        medications.append(Medication(
            name=normalize_medication_name(name) or part,
            original_name=name,
            dosage=dosage,
            frequency=frequency,
            daily_mg=daily_mg,
            raw=part,
        ))
    return medications
