"""
validation.py — Score entry validation and clamping.

Rules for a value typed into a score cell with a given max score (HPS):
- Empty input clears the cell (no score yet; never counted as 0).
- Non-numeric text is kept as typed so the teacher can keep editing.
- Negative numbers reset to 0 behind a blocking confirmation.
- Numbers above the max are digit-truncated, not rounded: non-digits are
  stripped and trailing digits dropped until the number fits, falling back
  to the max itself. The teacher may cancel and keep the previous value.
- Anything else is accepted unchanged.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

Number = Union[int, float]

ACCEPTED = "accepted"
EMPTY = "empty"
DEFERRED = "deferred"
NEGATIVE = "negative"
TRUNCATED = "truncated"

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class Confirmation:
    message: str
    blocking: bool


@dataclass(frozen=True)
class ScoreCheck:
    value: Any
    outcome: str
    confirmation: Optional[Confirmation] = None
    previous: Any = None

    @property
    def needs_confirmation(self) -> bool:
        return self.confirmation is not None


# ── Helpers ─────────────────────────────────────────────────────────

def _normalize(number: float) -> Number:
    """Integral floats come back as int so 45.0 and 45 compare and print alike."""
    if math.isfinite(number) and float(number).is_integer():
        return int(number)
    return float(number)


def _to_number(raw: Any) -> Optional[float]:
    """Parse raw input, allowing +/-inf; NaN and junk return None."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(str(raw).strip()) if isinstance(raw, str) else float(raw)
    except (TypeError, ValueError, OverflowError):
        return None
    if math.isnan(value):
        return None
    return value


def _as_text(raw: Any) -> str:
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return str(raw)


def parse_score(value: Any) -> Optional[float]:
    """Return a finite float for a stored score, or None when there is none."""
    number = _to_number(value)
    if number is None or math.isinf(number):
        return None
    return number


def is_numeric(value: Any) -> bool:
    return parse_score(value) is not None


# ── Truncation ──────────────────────────────────────────────────────

def truncate_digits(raw: Any, max_score: float) -> Number:
    """
    Strip non-digits, then drop the last digit until the number is within
    max_score. "523" with max 50 -> "52" -> "5" -> 5.
    """
    digits = _NON_DIGITS.sub("", _as_text(raw))
    # Past any leading zeros, a digit string longer than max_score's integer
    # part plus one is always above it.
    lead = len(digits) - len(digits.lstrip("0"))
    digits = digits[:lead + len(str(int(max_score))) + 1]
    while digits and int(digits.lstrip("0") or "0") > max_score:
        digits = digits[:-1]
    if not digits:
        return _normalize(float(max_score))
    return int(digits.lstrip("0") or "0")


# ── Validation ──────────────────────────────────────────────────────

def validate_score(raw: Any, max_score: float, previous: Any = None) -> ScoreCheck:
    """Validate one entered value against the activity's max score."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return ScoreCheck(value=None, outcome=EMPTY, previous=previous)

    number = _to_number(raw)
    if number is None:
        return ScoreCheck(value=raw, outcome=DEFERRED, previous=previous)

    if number < 0:
        return ScoreCheck(
            value=0,
            outcome=NEGATIVE,
            confirmation=Confirmation("Negative scores are not allowed. The score was reset to 0.", blocking=True),
            previous=previous,
        )

    if number > max_score:
        truncated = truncate_digits(raw, max_score)
        return ScoreCheck(
            value=truncated,
            outcome=TRUNCATED,
            confirmation=Confirmation(
                f"Score exceeds the maximum of {_normalize(float(max_score))}. "
                f"Use {truncated} instead?",
                blocking=False,
            ),
            previous=previous,
        )

    return ScoreCheck(value=_normalize(number), outcome=ACCEPTED, previous=previous)


def resolve_check(check: ScoreCheck, confirmed: bool = True) -> Any:
    """Apply the teacher's answer to a confirmation; a cancelled truncation keeps the previous value."""
    if check.outcome == TRUNCATED and not confirmed:
        return check.previous
    return check.value
