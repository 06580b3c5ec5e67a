"""
categories.py — Activity categorizer.

Every activity type tag maps to exactly one grading category:
- Written Works (30%): quiz, assignment, other
- Performance Tasks (40%): project, laboratory, performance
- Exam (30%): midterm, final

Unrecognized types map to no category and are left out of every total.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional


class Category(Enum):
    """Grading category with its fixed weight (percent of the composite)."""
    WRITTEN = "written"
    PERFORMANCE = "performance"
    EXAM = "exam"

    @property
    def weight(self) -> int:
        return CATEGORY_WEIGHTS[self]

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self]


CATEGORY_WEIGHTS = {
    Category.WRITTEN: 30,
    Category.PERFORMANCE: 40,
    Category.EXAM: 30,
}

CATEGORY_LABELS = {
    Category.WRITTEN: "Written Works",
    Category.PERFORMANCE: "Performance Tasks",
    Category.EXAM: "Exam",
}

# Display order used by the class record.
CATEGORY_ORDER = [Category.WRITTEN, Category.PERFORMANCE, Category.EXAM]


# ── Type Map ────────────────────────────────────────────────────────

ACTIVITY_TYPE_MAP = {
    "quiz": Category.WRITTEN,
    "assignment": Category.WRITTEN,
    "other": Category.WRITTEN,
    "project": Category.PERFORMANCE,
    "laboratory": Category.PERFORMANCE,
    "performance": Category.PERFORMANCE,
    "midterm": Category.EXAM,
    "final": Category.EXAM,
}


def categorize(activity_type) -> Optional[Category]:
    """Map an activity type tag to its category, or None when unrecognized."""
    if activity_type is None:
        return None
    cleaned = str(activity_type).strip().lower()
    return ACTIVITY_TYPE_MAP.get(cleaned)


def group_by_category(activities: Iterable) -> Dict[Category, List]:
    """
    Bucket activities by category, keeping input order inside each bucket.
    All three categories are always present; uncategorized activities are dropped.
    """
    groups: Dict[Category, List] = {cat: [] for cat in CATEGORY_ORDER}
    for activity in activities:
        cat = categorize(activity.type)
        if cat is not None:
            groups[cat].append(activity)
    return groups


def get_category_weights() -> List[Dict]:
    """Category legend for the frontend."""
    return [
        {"category": cat.name, "label": cat.label, "weight": cat.weight}
        for cat in CATEGORY_ORDER
    ]
