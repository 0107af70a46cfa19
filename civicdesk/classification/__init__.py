"""
Classification

Category/priority suggestions for submitted reports: an external gateway
with a deterministic keyword fallback.
"""

from .keywords import (
    CATEGORY_PATTERNS,
    ClassificationResult,
    classify_keywords,
    priority_for_category,
)
from .gateway import (
    BedrockClassifier,
    ClassificationError,
    ClassificationGateway,
    ImageAnalysis,
    analyze_image_with_fallback,
    classify_with_fallback,
)

__all__ = [
    "CATEGORY_PATTERNS",
    "ClassificationResult",
    "classify_keywords",
    "priority_for_category",
    "BedrockClassifier",
    "ClassificationError",
    "ClassificationGateway",
    "ImageAnalysis",
    "analyze_image_with_fallback",
    "classify_with_fallback",
]
