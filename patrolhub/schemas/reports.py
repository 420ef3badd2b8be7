from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional

from ..services.shift_rules import coerce_datetime


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().rstrip("%")
        if not value:
            return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class InspectionLog(BaseModel):
    """One visit from the InspectionLogs table. Rows without a readable timestamp are rejected."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: datetime
    patrol_name: str = Field(default="", alias="patrolName")
    route: str = ""
    site_name: str = Field(default="", alias="siteName")
    guard_name: str = Field(default="", alias="guardName")
    shift: str = ""
    start_time: str = Field(default="", alias="startTime")
    finish_time: str = Field(default="", alias="finishTime")
    duration: Optional[float] = None
    score: Optional[float] = None
    status: str = ""
    flashlight: str = ""
    uniform: str = ""
    defense_tools: str = Field(default="", alias="defenseTools")
    logbook: str = ""
    gates: str = ""
    lighting: str = ""
    fire_safety: str = Field(default="", alias="fireSafety")
    details: str = ""
    issues: str = ""

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp(cls, v):
        ts = coerce_datetime(v)
        if ts is None:
            raise ValueError("unreadable timestamp")
        return ts

    @field_validator("duration", "score", mode="before")
    @classmethod
    def _numbers(cls, v):
        return _number(v)

    @field_validator(
        "patrol_name", "route", "site_name", "guard_name", "shift", "start_time", "finish_time",
        "status", "flashlight", "uniform", "defense_tools", "logbook", "gates", "lighting",
        "fire_safety", "details", "issues",
        mode="before",
    )
    @classmethod
    def _text(cls, v):
        if v is None:
            return ""
        if isinstance(v, datetime):
            return v.strftime("%H:%M")
        return str(v).strip()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CategoryTally(_CamelModel):
    ok: int = 0
    issues: int = 0
    rate: int = 100


class BehaviorTally(_CamelModel):
    total: int = 0
    incidents: int = 0
    rate: int = 100


class SiteStats(_CamelModel):
    patrols: int = 0
    sleep: int = 0
    issues: int = 0
    avg_score: float = 0
    avg_duration: int = 0


class LastVisit(_CamelModel):
    timestamp: Optional[datetime] = None
    time_ago: str = "Never"
    inspector: str = "N/A"
    score: Optional[float] = None


class RecentActivity(_CamelModel):
    timestamp: datetime
    type: str = "Patrol"
    inspector: str
    score: float = 0
    duration: float = 0
    guard_name: str
    shift: str
    start_time: str
    finish_time: str
    status: str
    flashlight: str
    uniform: str
    defense_tools: str
    logbook: str
    gates: str
    lighting: str
    fire_safety: str
    details: str
    issues: str


class HandoverNote(_CamelModel):
    timestamp: datetime
    guard: str
    comment: str


class SiteAggregate(_CamelModel):
    id: Optional[str] = None
    name: str
    address: str = ""
    lat: float
    lng: float
    status: str
    status_label: str
    status_reason: str = ""
    stats: SiteStats
    last_visit: LastVisit
    equipment: Dict[str, CategoryTally]
    behavior: Dict[str, BehaviorTally]
    security: Dict[str, CategoryTally]
    recent_activity: List[RecentActivity] = Field(default_factory=list)
    last_handover: Optional[HandoverNote] = None
    overall_equipment_rate: int = 100
    overall_discipline_rate: int = 100
    overall_security_rate: int = 100
