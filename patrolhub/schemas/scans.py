from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, Union


class ScanType(str, Enum):
    CHECKIN = "CHECKIN"
    PATROL = "PATROL"
    CHECKOUT = "CHECKOUT"


class QrReference(BaseModel):
    """Fields extracted from a scanned QR payload."""

    site_token: str
    location_id: Optional[str] = None
    checkpoint_name: Optional[str] = None
    route: Optional[str] = None
    legacy: bool = False


class GuardProfile(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    emp_id: str = Field(min_length=1)
    name: str = ""
    surname: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None


class ScanMeta(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    lat: Optional[float] = None
    lng: Optional[float] = None
    accuracy: Optional[float] = None
    assessment: Optional[str] = None
    note: Optional[str] = None
    photo_base64: Optional[str] = None
    round_number: int = Field(default=1, ge=1)
    point_in_round: Optional[int] = None
    is_overtime: bool = False
    completed_rounds: Optional[int] = Field(default=None, ge=0)
    total_rounds: Optional[int] = Field(default=None, ge=1)
    handover_note: Optional[str] = None


class ScanRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    qr_payload: str = ""
    guard_identifier: Union[GuardProfile, str]
    explicit_location_id: Optional[str] = None
    scan_type: ScanType
    meta: ScanMeta = Field(default_factory=ScanMeta)

    @property
    def guard_id(self) -> str:
        if isinstance(self.guard_identifier, GuardProfile):
            return self.guard_identifier.emp_id.strip()
        return self.guard_identifier.strip()


class GeofenceResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    valid: bool
    skipped: bool = False
    distance_m: Optional[float] = None
    message: Optional[str] = None


class ScanResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    message: str
    action: str
    scan_id: Optional[str] = None
    canonical_site_id: str
    shift_number: Optional[int] = None
    shift_timing: Optional[str] = None
    checkpoint_target: Optional[int] = None
    rounds_target: Optional[int] = None
    photo_url: Optional[str] = None
    geofence: Optional[GeofenceResult] = None
