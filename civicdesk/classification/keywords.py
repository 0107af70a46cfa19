"""
Keyword Classification

Deterministic fallback classifier used whenever the classification gateway
is unavailable or returns something unusable.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any

from civicdesk.issues.models import Category, Priority


# Declaration order is the tie-break order
CATEGORY_PATTERNS = {
    Category.ROADS: {
        "keywords": [
            "pothole", "road", "pavement", "street", "crack", "damaged road",
            "traffic", "intersection", "bridge", "highway", "bump", "uneven",
            "surface",
        ],
        "priority": Priority.HIGH,
    },
    Category.WATER: {
        "keywords": [
            "water", "leak", "pipe", "burst", "tap", "faucet", "dripping",
            "flood", "sewage", "drain", "sewer", "sanitation", "plumbing",
            "overflow",
        ],
        "priority": Priority.URGENT,
    },
    Category.ELECTRICITY: {
        "keywords": [
            "electricity", "power", "light", "streetlight", "lamp", "bulb",
            "outage", "electrical", "cable", "wire", "transformer", "blackout",
            "dark",
        ],
        "priority": Priority.HIGH,
    },
    Category.WASTE: {
        "keywords": [
            "garbage", "waste", "trash", "rubbish", "litter", "dump",
            "collection", "bin", "refuse", "disposal", "recycling", "dirt",
            "cleaning",
        ],
        "priority": Priority.MEDIUM,
    },
    Category.SAFETY: {
        "keywords": [
            "danger", "unsafe", "security", "crime", "vandalism", "broken",
            "glass", "hazard", "risk", "threat", "emergency", "accident",
            "injury",
        ],
        "priority": Priority.URGENT,
    },
    Category.PARKS: {
        "keywords": [
            "park", "playground", "garden", "grass", "trees", "recreation",
            "sports field", "bench", "fence",
        ],
        "priority": Priority.LOW,
    },
    Category.OTHER: {
        "keywords": ["other", "general", "miscellaneous", "issue", "problem", "concern"],
        "priority": Priority.LOW,
    },
}

# Matches needed for full confidence
FULL_CONFIDENCE_MATCHES = 5


@dataclass
class ClassificationResult:
    """Suggested category for a report."""
    category: Category
    confidence: float
    keywords: List[str] = field(default_factory=list)
    source: str = "fallback"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "confidence": self.confidence,
            "keywords": list(self.keywords),
            "source": self.source,
        }


def classify_keywords(title: str, description: str) -> ClassificationResult:
    """
    Classify a report by keyword overlap.

    Args:
        title: Report title
        description: Report description

    Returns:
        ClassificationResult with the best-scoring category; "other" with
        zero confidence when nothing matches
    """
    text = f"{title} {description}".lower()

    best_category = Category.OTHER
    best_keywords: List[str] = []
    for category, cfg in CATEGORY_PATTERNS.items():
        matched = [kw for kw in cfg["keywords"] if kw in text]
        # Strictly greater keeps the earlier category on ties
        if len(matched) > len(best_keywords):
            best_category = category
            best_keywords = matched

    confidence = min(len(best_keywords) / FULL_CONFIDENCE_MATCHES, 1.0)
    return ClassificationResult(
        category=best_category,
        confidence=confidence,
        keywords=best_keywords,
        source="fallback",
    )


def priority_for_category(category) -> Priority:
    """Default priority for a category (medium if unknown)."""
    try:
        category = Category(category)
    except ValueError:
        return Priority.MEDIUM
    return CATEGORY_PATTERNS[category]["priority"]
