"""
transmutation.py — Composite grade to institutional 1.00–5.00 scale.

Step table, first (highest) matching threshold wins, no interpolation.
A transmuted grade of 3.00 or better (numerically lower) passes.
"""

from typing import Any, Dict, List, Optional


# (min_composite, grade) ordered high to low.
TRANSMUTATION_TABLE = [
    (97.0, 1.00),
    (94.0, 1.25),
    (91.0, 1.50),
    (88.0, 1.75),
    (85.0, 2.00),
    (82.0, 2.25),
    (79.0, 2.50),
    (76.0, 2.75),
    (75.0, 3.00),
]
FAILING_GRADE = 5.00
PASSING_GRADE = 3.00

# (max_grade, indication) ordered best to worst.
GRADE_INDICATIONS = [
    (1.75, "Excellent"),
    (2.75, "Good"),
    (3.00, "Passing"),
]


def transmute(composite: Optional[float]) -> Optional[float]:
    """Map a 0-100 composite to the transmuted grade. None stays None."""
    if composite is None:
        return None
    value = float(composite)
    for min_composite, grade in TRANSMUTATION_TABLE:
        if value >= min_composite:
            return grade
    return FAILING_GRADE


def transmuted_label(grade: Optional[float]) -> str:
    """Two-decimal display string, e.g. 2.25 -> "2.25"."""
    if grade is None:
        return "-"
    return f"{grade:.2f}"


def is_passing(grade: Optional[float]) -> bool:
    return grade is not None and grade <= PASSING_GRADE


def grade_indication(grade: Optional[float]) -> str:
    """Remark shown next to a transmuted grade."""
    if grade is None:
        return "No grade"
    for max_grade, indication in GRADE_INDICATIONS:
        if grade <= max_grade:
            return indication
    return "Fail"


def get_transmutation_scale() -> List[Dict[str, Any]]:
    """Return the full table for legend/reference."""
    scale = []
    for idx, (min_composite, grade) in enumerate(TRANSMUTATION_TABLE):
        max_composite = 100.0 if idx == 0 else TRANSMUTATION_TABLE[idx - 1][0] - 0.01
        scale.append(
            {
                "min": min_composite,
                "max": round(max_composite, 2),
                "grade": grade,
                "label": transmuted_label(grade),
                "indication": grade_indication(grade),
            }
        )
    scale.append(
        {
            "min": 0.0,
            "max": round(TRANSMUTATION_TABLE[-1][0] - 0.01, 2),
            "grade": FAILING_GRADE,
            "label": transmuted_label(FAILING_GRADE),
            "indication": grade_indication(FAILING_GRADE),
        }
    )
    return scale
