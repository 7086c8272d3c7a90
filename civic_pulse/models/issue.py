"""
Pydantic models for issues.
These models handle validation for issue submission, storage and responses.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from civic_pulse.core.enums import (
    IssueCategory,
    IssuePriority,
    IssueStatus,
    NotificationType,
)
from civic_pulse.utils.geo import is_valid_coordinates
from civic_pulse.utils.timeutils import utcnow


def _unique(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class IssueLocation(BaseModel):
    """GeoJSON-style point. coordinates are [longitude, latitude]."""
    type: str = Field(default="Point")
    coordinates: List[float] = Field(..., description="[longitude, latitude]")
    address: str = Field(default="", max_length=500)
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None

    @field_validator("coordinates", mode="before")
    @classmethod
    def check_coordinates(cls, value):
        if not is_valid_coordinates(value):
            raise ValueError("coordinates must be [longitude, latitude] with two finite numbers in range")
        return [float(value[0]), float(value[1])]

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]


class StatusHistoryEntry(BaseModel):
    """Status transition history entry."""
    model_config = ConfigDict(use_enum_values=True)

    status: IssueStatus
    updated_by: Optional[str] = Field(None, description="User who made the change (None for system)")
    comment: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class Notification(BaseModel):
    """Reporter-facing notification entry."""
    model_config = ConfigDict(use_enum_values=True)

    message: str
    type: NotificationType
    timestamp: datetime = Field(default_factory=utcnow)
    read: bool = False


class AssignedTo(BaseModel):
    department: str
    official: Optional[str] = None


class ResolutionDetails(BaseModel):
    resolved_by: str
    resolution_date: datetime
    resolution_description: str = "Issue has been resolved"
    resolution_images: List[str] = Field(default_factory=list)


class Issue(BaseModel):
    """
    Stored issue document.

    Canonical issues have merged_into unset and accumulate votes, reporters
    and status. Duplicates point at their canonical issue via merged_into.
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: Optional[str] = None
    title: str
    description: str
    category: IssueCategory

    priority: IssuePriority = IssuePriority.LOW
    priority_auto: bool = True
    priority_reasons: List[str] = Field(default_factory=list)
    reported_priority: Optional[IssuePriority] = None
    priority_floor: Optional[IssuePriority] = None

    location: IssueLocation
    images: List[str] = Field(default_factory=list)
    voice_note: Optional[str] = None

    reported_by: str
    reporters: List[str] = Field(default_factory=list)

    merged_into: Optional[str] = None
    duplicates: List[str] = Field(default_factory=list)

    votes: int = Field(default=0, ge=0)
    voters: List[str] = Field(default_factory=list)

    status: IssueStatus = IssueStatus.PENDING
    assigned_to: Optional[AssignedTo] = None
    status_history: List[StatusHistoryEntry] = Field(default_factory=list)
    notifications: List[Notification] = Field(default_factory=list)

    estimated_resolution_time: int = 72
    actual_resolution_time: Optional[int] = None
    resolution_details: Optional[ResolutionDetails] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def normalize_sets(self):
        reporters = _unique(self.reporters)
        if self.reported_by not in reporters:
            reporters.insert(0, self.reported_by)
        self.reporters = reporters
        self.duplicates = _unique(self.duplicates)
        self.voters = _unique(self.voters)
        self.votes = len(self.voters)
        return self

    @property
    def is_canonical(self) -> bool:
        return self.merged_into is None


class IssueDraft(BaseModel):
    """
    A validated report entering the clustering engine.

    Built by the route layer once the raw payload (including any legacy
    location shapes) has been normalized.
    """
    model_config = ConfigDict(use_enum_values=True)

    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=1000)
    category: IssueCategory
    location: IssueLocation
    images: List[str] = Field(default_factory=list)
    voice_note: Optional[str] = None
    priority: Optional[IssuePriority] = None
    reported_by: str = Field(..., min_length=1)

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class IssueCreateRequest(BaseModel):
    """
    Incoming POST body for a new report.

    `location` is kept raw here: it may be an object, a JSON-encoded string,
    or carry coordinates under legacy field names. The route hands it to
    utils.location_parser before building an IssueDraft.
    """
    title: str
    description: str
    category: str
    location: Any = None
    images: List[str] = Field(default_factory=list)
    voice_note: Optional[str] = Field(None, alias="voiceNote")
    priority: Optional[str] = None

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        json_schema_extra={
            "example": {
                "title": "Broken streetlight",
                "description": "The streetlight near the bus stop has been out for a week.",
                "category": "Street Lighting",
                "location": {
                    "coordinates": [77.5946, 12.9716],
                    "address": "MG Road bus stop",
                    "city": "Bengaluru",
                },
                "images": ["https://cdn.example.com/issues/light.jpg"],
                "priority": "medium",
            }
        },
    )


class ResolutionInput(BaseModel):
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list)


class StatusUpdateRequest(BaseModel):
    status: str
    comment: Optional[str] = Field(None, max_length=500)
    resolution_details: Optional[ResolutionInput] = Field(None, alias="resolutionDetails")

    model_config = ConfigDict(populate_by_name=True)


class AssignRequest(BaseModel):
    department: str = Field(..., min_length=1)
    official_id: Optional[str] = Field(None, alias="officialId")
    comment: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(populate_by_name=True)


class PriorityUpdateRequest(BaseModel):
    priority: str
    lock: bool = Field(True, description="Keep automated recomputation off after this change")


class VoteResult(BaseModel):
    issue_id: str
    votes: int
    has_voted: bool
