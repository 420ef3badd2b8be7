from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, Optional

from ..services.shift_rules import format_hhmm


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _coord(value: Any) -> Optional[float]:
    value = _blank_to_none(value)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def positive_int(value: Any) -> Optional[int]:
    """Whole numbers > 0 (including "4" and 4.0); anything else is None."""
    value = _blank_to_none(value)
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number <= 0 or number != int(number):
        return None
    return int(number)


def _text(value: Any) -> Optional[str]:
    value = _blank_to_none(value)
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _normalize_headers(data: Any, aliases: Dict[str, str]) -> Any:
    # Header lookup is case-insensitive; the first matching column wins
    if not isinstance(data, dict):
        return data
    fields = set(aliases.values())
    out: Dict[str, Any] = {}
    for key, value in data.items():
        name = str(key).strip().lower()
        field = aliases.get(name) or (name if name in fields else None)
        if field and field not in out:
            out[field] = value
    return out


_SITE_HEADERS = {
    "id": "id",
    "code": "code", "site code": "code", "site_code": "code", "sitecode": "code",
    "nameen": "name_en", "name_en": "name_en", "name en": "name_en",
    "namelo": "name_lo", "name_lo": "name_lo", "name lo": "name_lo",
    "route": "route",
    "address": "address",
    "lat": "lat", "latitude": "lat",
    "lng": "lng", "longitude": "lng",
    "status": "status",
    "checkpointtarget": "checkpoint_target",
    "roundstarget": "rounds_target",
    "shifttype": "shift_type",
    "shiftstart": "shift_start",
    "shiftend": "shift_end",
}

_SITE_CONFIG_HEADERS = {
    "siteid": "site_id", "site_id": "site_id",
    "code": "code", "site code": "code", "site_code": "code", "sitecode": "code",
    "name": "name", "sitename": "name",
    "rounds": "rounds",
    "checkpoints": "checkpoints",
    "shifttype": "shift_type",
    "shiftstart": "shift_start",
    "shiftend": "shift_end",
    "lat": "lat",
    "lng": "lng",
}


class Site(BaseModel):
    """One row of the Sites table."""

    id: Optional[str] = None
    code: Optional[str] = None
    name_en: Optional[str] = None
    name_lo: Optional[str] = None
    route: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    status: str = "active"
    checkpoint_target: Optional[int] = None
    rounds_target: Optional[int] = None
    shift_type: Optional[str] = None
    shift_start: Optional[str] = None
    shift_end: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _headers(cls, data: Any) -> Any:
        return _normalize_headers(data, _SITE_HEADERS)

    @field_validator("id", "code", "name_en", "name_lo", "route", "address", "shift_type", mode="before")
    @classmethod
    def _strip(cls, v):
        return _text(v)

    @field_validator("lat", "lng", mode="before")
    @classmethod
    def _coords(cls, v):
        return _coord(v)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return (_text(v) or "active").lower()

    @field_validator("checkpoint_target", "rounds_target", mode="before")
    @classmethod
    def _counts(cls, v):
        return positive_int(v)

    @field_validator("shift_start", "shift_end", mode="before")
    @classmethod
    def _times(cls, v):
        return format_hhmm(v)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def display_name(self) -> Optional[str]:
        return self.name_en or self.name_lo

    @property
    def canonical_code(self) -> Optional[str]:
        return self.code or self.id


class SiteConfigRow(BaseModel):
    """One row of the Site_Config override table."""

    site_id: Optional[str] = None
    code: Optional[str] = None
    name: Optional[str] = None
    rounds: Optional[int] = None
    checkpoints: Optional[int] = None
    shift_type: Optional[str] = None
    shift_start: Optional[str] = None
    shift_end: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _headers(cls, data: Any) -> Any:
        return _normalize_headers(data, _SITE_CONFIG_HEADERS)

    @field_validator("site_id", "code", "name", "shift_type", mode="before")
    @classmethod
    def _strip(cls, v):
        return _text(v)

    @field_validator("rounds", "checkpoints", mode="before")
    @classmethod
    def _counts(cls, v):
        return positive_int(v)

    @field_validator("shift_start", "shift_end", mode="before")
    @classmethod
    def _times(cls, v):
        return format_hhmm(v)

    @field_validator("lat", "lng", mode="before")
    @classmethod
    def _coords(cls, v):
        return _coord(v)


class EffectiveSiteConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    site_id: str
    checkpoints: int
    rounds: int
    shift_type: Optional[str] = None
    shift_start: Optional[str] = None
    shift_end: Optional[str] = None
    shift_timing: str
    lat: Optional[float] = None
    lng: Optional[float] = None


class SiteConfigUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    checkpoints: Optional[int] = Field(default=None, gt=0)
    rounds: Optional[int] = Field(default=None, gt=0)
    shift_type: Optional[str] = None
    shift_start: Optional[str] = None
    shift_end: Optional[str] = None

    @field_validator("shift_start", "shift_end")
    @classmethod
    def _times(cls, v):
        if v is None:
            return v
        normalized = format_hhmm(v)
        if normalized is None:
            raise ValueError("time must be HH:mm")
        return normalized


class SiteResolution(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    reference: str
    canonical_site_id: str
    resolved: bool


class HandoverCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    guard_name: str = Field(min_length=1)
    comment: str = Field(min_length=1)


class CheckpointQrCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    checkpoint_name: str = Field(min_length=1)


class CheckpointQrResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    payload: str
    url: str
    file_name: str
