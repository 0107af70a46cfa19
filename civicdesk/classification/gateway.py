"""
Classification Gateway

Suggests a category (and for photos, a full assessment) for a report. The
answer is untrusted: anything malformed, out of range, slow or failing is
replaced by the keyword classifier's result.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from civicdesk.issues.models import Category, Priority
from civicdesk.llm.bedrock import BedrockLLM
from .keywords import ClassificationResult, classify_keywords, priority_for_category

logger = logging.getLogger(__name__)

# Shared pool for time-bounded gateway calls
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="classifier")

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")

RISK_LEVELS = ("low", "medium", "high", "critical")


class ClassificationError(Exception):
    """The gateway produced no usable answer."""


@dataclass
class ImageAnalysis:
    """Assessment of a photo of a reported problem."""
    title: str
    description: str
    category: Category
    priority: Priority
    issue_type: str
    confidence: float
    keywords: List[str] = field(default_factory=list)
    severity: str = ""
    estimated_cost: str = ""
    risk_level: str = ""
    hazards: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    source: str = "gateway"

    def to_analysis_dict(self) -> Dict[str, Any]:
        """Metadata stored on the issue as ai_analysis."""
        return {
            "issue_type": self.issue_type,
            "keywords": list(self.keywords),
            "severity": self.severity,
            "estimated_cost": self.estimated_cost,
            "risk_level": self.risk_level,
            "hazards": list(self.hazards),
            "recommendations": list(self.recommendations),
            "source": self.source,
        }


class ClassificationGateway(ABC):
    """External classifier (text or image)."""

    @abstractmethod
    def classify_text(self, title: str, description: str) -> ClassificationResult:
        """Suggest a category from free text. May raise."""

    @abstractmethod
    def analyze_image(self, image_bytes: bytes, media_type: str = "image/jpeg") -> ImageAnalysis:
        """Assess a photo. May raise."""


TEXT_PROMPT = """You are a municipality issue categorization system. Analyze the following issue and categorize it.

Title: {title}
Description: {description}

Categories:
- roads: Roads & Infrastructure (potholes, damaged roads, traffic issues)
- water: Water & Sanitation (leaks, burst pipes, sewage, flooding)
- electricity: Electricity (power outages, streetlights, electrical issues)
- waste: Waste Management (garbage, litter, refuse collection)
- safety: Public Safety (dangerous conditions, vandalism, hazards)
- parks: Parks & Recreation (playgrounds, gardens, sports fields)
- other: Other issues

Respond ONLY with a valid JSON object in this exact format:
{{"category": "one of the categories above", "confidence": 0.85, "keywords": ["keyword1", "keyword2"]}}"""

IMAGE_PROMPT = """You are a municipal infrastructure inspector. Look at the photo of a reported problem and assess it.

Respond ONLY with a valid JSON object with these fields:
{
  "title": "short title",
  "description": "what is visible and why it is a problem",
  "category": "roads|water|electricity|waste|safety|parks|other",
  "priority": "low|medium|high|urgent",
  "issue_type": "specific problem type, e.g. Pothole",
  "confidence": 0.0-1.0,
  "keywords": ["..."],
  "severity": "minor|moderate|severe",
  "estimated_cost": "rough cost range",
  "risk_level": "low|medium|high|critical",
  "hazards": ["..."],
  "recommendations": ["..."]
}"""


def extract_json(text: str) -> Dict[str, Any]:
    """Pull the first JSON object out of a model response."""
    match = _JSON_BLOCK.search(text or "")
    if not match:
        raise ClassificationError("No JSON object in response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ClassificationError(f"Invalid JSON in response: {e}") from e
    if not isinstance(data, dict):
        raise ClassificationError("Response JSON is not an object")
    return data


def _parse_category(value) -> Category:
    try:
        return Category(value)
    except ValueError:
        raise ClassificationError(f"Category out of enumeration: {value!r}") from None


def _parse_confidence(value, default: float = 0.8) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ClassificationError(f"Invalid confidence: {value!r}")
    if not 0.0 <= value <= 1.0:
        raise ClassificationError(f"Confidence out of range: {value}")
    return float(value)


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def parse_text_result(data: Dict[str, Any]) -> ClassificationResult:
    """Validate a text classification payload."""
    return ClassificationResult(
        category=_parse_category(data.get("category")),
        confidence=_parse_confidence(data.get("confidence")),
        keywords=_string_list(data.get("keywords")),
        source="gateway",
    )


def parse_image_result(data: Dict[str, Any]) -> ImageAnalysis:
    """Validate an image analysis payload."""
    category = _parse_category(data.get("category"))
    try:
        priority = Priority(data.get("priority"))
    except ValueError:
        priority = priority_for_category(category)

    risk_level = str(data.get("risk_level", "")).lower()
    if risk_level and risk_level not in RISK_LEVELS:
        risk_level = ""

    title = str(data.get("title") or "").strip()
    description = str(data.get("description") or "").strip()
    if not title or not description:
        raise ClassificationError("Image analysis missing title or description")

    return ImageAnalysis(
        title=title,
        description=description,
        category=category,
        priority=priority,
        issue_type=str(data.get("issue_type") or "Unknown"),
        confidence=_parse_confidence(data.get("confidence")),
        keywords=_string_list(data.get("keywords")),
        severity=str(data.get("severity") or ""),
        estimated_cost=str(data.get("estimated_cost") or ""),
        risk_level=risk_level,
        hazards=_string_list(data.get("hazards")),
        recommendations=_string_list(data.get("recommendations")),
    )


class BedrockClassifier(ClassificationGateway):
    """
    Classification gateway backed by a Claude model on Amazon Bedrock.

    Example:
        classifier = BedrockClassifier(BedrockLLM(model_id=get_model_id("haiku")))
        result = classify_with_fallback(classifier, "Burst pipe", "Water everywhere")
    """

    def __init__(self, llm: BedrockLLM):
        self.llm = llm

    def classify_text(self, title: str, description: str) -> ClassificationResult:
        response = self.llm.complete(
            TEXT_PROMPT.format(title=title, description=description),
            max_tokens=200,
        )
        if not response.get("success"):
            raise ClassificationError(response.get("error") or "Gateway request failed")
        return parse_text_result(extract_json(response["text"]))

    def analyze_image(self, image_bytes: bytes, media_type: str = "image/jpeg") -> ImageAnalysis:
        response = self.llm.complete(
            IMAGE_PROMPT,
            image_bytes=image_bytes,
            media_type=media_type,
            max_tokens=1024,
        )
        if not response.get("success"):
            raise ClassificationError(response.get("error") or "Gateway request failed")
        return parse_image_result(extract_json(response["text"]))


def _call_bounded(func, timeout: float, *args):
    future = _executor.submit(func, *args)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeout:
        future.cancel()
        raise ClassificationError(f"Gateway timed out after {timeout}s") from None


def classify_with_fallback(
    gateway: Optional[ClassificationGateway],
    title: str,
    description: str,
    timeout: float = 10.0,
) -> ClassificationResult:
    """
    Classify text through the gateway, degrading to keyword matching.

    Args:
        gateway: External classifier, or None when disabled
        title: Report title
        description: Report description
        timeout: Seconds to wait for the gateway

    Returns:
        Gateway result if usable, otherwise the keyword fallback result
    """
    if gateway is None:
        return classify_keywords(title, description)

    try:
        result = _call_bounded(gateway.classify_text, timeout, title, description)
        if not isinstance(result, ClassificationResult):
            raise ClassificationError(f"Unexpected gateway result: {type(result).__name__}")
        # Re-validate: custom gateways may skip parse_text_result
        result.category = _parse_category(result.category)
        result.confidence = _parse_confidence(result.confidence)
        return result
    except Exception as e:
        logger.warning(f"Classification gateway unavailable, using keyword fallback: {e}")
        return classify_keywords(title, description)


def analyze_image_with_fallback(
    gateway: Optional[ClassificationGateway],
    image_bytes: bytes,
    media_type: str = "image/jpeg",
    timeout: float = 10.0,
) -> Optional[ImageAnalysis]:
    """
    Analyze a photo through the gateway.

    Returns:
        ImageAnalysis, or None if the gateway is disabled or failed (the
        caller then falls back to classifying the resident's own text)
    """
    if gateway is None:
        return None

    try:
        result = _call_bounded(gateway.analyze_image, timeout, image_bytes, media_type)
        if not isinstance(result, ImageAnalysis):
            raise ClassificationError(f"Unexpected gateway result: {type(result).__name__}")
        return result
    except Exception as e:
        logger.warning(f"Image analysis unavailable: {e}")
        return None
