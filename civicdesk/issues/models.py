"""
Issue Data Models

Defines the core data structures for municipal issue reporting.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from civicdesk.utils.time import ensure_aware, parse_optional


class Category(Enum):
    """Service-delivery categories (also used as department tags)."""
    ROADS = "roads"
    WATER = "water"
    ELECTRICITY = "electricity"
    WASTE = "waste"
    SAFETY = "safety"
    PARKS = "parks"
    OTHER = "other"


class IssueStatus(Enum):
    """Issue lifecycle status."""
    PENDING = "pending"            # Submitted, awaiting triage
    IN_PROGRESS = "in-progress"    # Being worked on
    RESOLVED = "resolved"          # Marked fixed by staff/employee
    REJECTED = "rejected"          # Declined by staff (can be reconsidered)


class Priority(Enum):
    """Issue priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


CATEGORY_DISPLAY_NAMES = {
    Category.ROADS: "Roads & Infrastructure",
    Category.WATER: "Water & Sanitation",
    Category.ELECTRICITY: "Electricity",
    Category.WASTE: "Waste Management",
    Category.SAFETY: "Public Safety",
    Category.PARKS: "Parks & Recreation",
    Category.OTHER: "Other",
}


@dataclass
class StatusHistoryEntry:
    """One entry of an issue's append-only audit trail."""

    status: IssueStatus
    changed_by: str
    changed_at: datetime
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at.isoformat(),
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusHistoryEntry":
        return cls(
            status=IssueStatus(data["status"]),
            changed_by=data.get("changed_by", ""),
            changed_at=ensure_aware(data["changed_at"]),
            note=data.get("note"),
        )


@dataclass
class Issue:
    """
    A reported municipal problem and its lifecycle record.

    Attributes:
        id: Unique issue identifier
        reporter_id: ID of the resident (or guest) who reported the issue
        reporter_name: Display name of the reporter
        title: Short summary
        description: Detailed description
        category: Category chosen at submission
        location: Free-text address or landmark
        latitude / longitude: Optional coordinates (both or neither)
        photo_ref: Optional reference to an uploaded photo
        status: Current status in lifecycle
        priority: Current priority
        department: Department the issue is routed to
        assigned_employee_id / assigned_employee_name: Assignee (set together)
        assigned_by: Who made the current assignment
        staff_notes: Internal notes from staff or the assignee
        resident_confirmed: Reporter confirmed the resolution
        resident_rejected: Reporter contested the resolution
        resident_feedback: Reporter's reason for contesting
        ai_category: Category suggested by the classifier
        ai_confidence: Classifier confidence in [0, 1]
        ai_analysis: Extra classifier output (issue type, keywords, risk level ...)
        created_at / updated_at / resolved_at: Timestamps
        status_history: Append-only audit trail
    """

    reporter_id: str
    reporter_name: str
    title: str
    description: str
    category: Category
    location: str
    id: str
    created_at: datetime
    updated_at: datetime

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    photo_ref: Optional[str] = None
    status: IssueStatus = IssueStatus.PENDING
    priority: Priority = Priority.MEDIUM
    department: Optional[Category] = None
    assigned_employee_id: Optional[str] = None
    assigned_employee_name: Optional[str] = None
    assigned_by: Optional[str] = None
    staff_notes: Optional[str] = None
    resident_confirmed: bool = False
    resident_rejected: bool = False
    resident_feedback: Optional[str] = None
    ai_category: Optional[Category] = None
    ai_confidence: Optional[float] = None
    ai_analysis: Optional[Dict[str, Any]] = None
    resolved_at: Optional[datetime] = None
    status_history: List[StatusHistoryEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "reporter_id": self.reporter_id,
            "reporter_name": self.reporter_name,
            "title": self.title,
            "description": self.description,
            "category": self.category.value,
            "location": self.location,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "photo_ref": self.photo_ref,
            "status": self.status.value,
            "priority": self.priority.value,
            "department": self.department.value if self.department else None,
            "assigned_employee_id": self.assigned_employee_id,
            "assigned_employee_name": self.assigned_employee_name,
            "assigned_by": self.assigned_by,
            "staff_notes": self.staff_notes,
            "resident_confirmed": self.resident_confirmed,
            "resident_rejected": self.resident_rejected,
            "resident_feedback": self.resident_feedback,
            "ai_category": self.ai_category.value if self.ai_category else None,
            "ai_confidence": self.ai_confidence,
            "ai_analysis": copy.deepcopy(self.ai_analysis),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "status_history": [entry.to_dict() for entry in self.status_history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Issue":
        """Create Issue from dictionary."""
        department = data.get("department")
        ai_category = data.get("ai_category")
        return cls(
            id=data["id"],
            reporter_id=data.get("reporter_id", ""),
            reporter_name=data.get("reporter_name", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            category=Category(data.get("category", "other")),
            location=data.get("location", ""),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            photo_ref=data.get("photo_ref"),
            status=IssueStatus(data.get("status", "pending")),
            priority=Priority(data.get("priority", "medium")),
            department=Category(department) if department else None,
            assigned_employee_id=data.get("assigned_employee_id"),
            assigned_employee_name=data.get("assigned_employee_name"),
            assigned_by=data.get("assigned_by"),
            staff_notes=data.get("staff_notes"),
            resident_confirmed=data.get("resident_confirmed", False),
            resident_rejected=data.get("resident_rejected", False),
            resident_feedback=data.get("resident_feedback"),
            ai_category=Category(ai_category) if ai_category else None,
            ai_confidence=data.get("ai_confidence"),
            ai_analysis=copy.deepcopy(data.get("ai_analysis")),
            created_at=ensure_aware(data["created_at"]),
            updated_at=ensure_aware(data["updated_at"]),
            resolved_at=parse_optional(data.get("resolved_at")),
            status_history=[
                StatusHistoryEntry.from_dict(entry)
                for entry in data.get("status_history", [])
            ],
        )

    def is_assigned(self) -> bool:
        """Check if an employee is assigned."""
        return self.assigned_employee_id is not None

    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def short_id(self) -> str:
        """Abbreviated reference shown to residents and in exports."""
        return self.id[:8].upper()
