"""
Pydantic models for samples, status snapshots, phone events and API responses.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    HISTORY_BASALS_FILE,
    HISTORY_BG_FILE,
    HISTORY_INSULIN_FILE,
    MISSING_TEXT,
)


# =============================================================================
# Samples
# =============================================================================

class Sample(BaseModel):
    """A single timestamped measurement. ``ts`` is epoch milliseconds."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    ts: int

    @field_validator("ts", mode="before")
    @classmethod
    def validate_ts(cls, v: Any) -> Any:
        """Reject booleans, which pydantic would otherwise coerce to 0/1."""
        if isinstance(v, bool):
            raise ValueError("ts must be an integer timestamp")
        return v


class GlucoseSample(Sample):
    """Sensor glucose value in mg/dL."""

    sgv: float


class TreatmentSample(Sample):
    """Insulin (U) and/or carbs (g) treatment."""

    insulin: Optional[float] = None
    carbs: Optional[float] = None
    amount: Optional[float] = None


class BasalSample(Sample):
    """Basal rate change in U/hour."""

    rate: float


class SampleKind(str, Enum):
    """The kinds of history buffers kept by the watch face."""

    GLUCOSE = "glucose"
    TREATMENTS = "treatments"
    BASALS = "basals"

    @property
    def model(self) -> Type[Sample]:
        return _KIND_MODELS[self]

    @property
    def history_file(self) -> str:
        return _KIND_FILES[self]

    @property
    def change_key(self) -> str:
        """Field compared by ``only_if_changed`` insertion."""
        return _KIND_CHANGE_KEYS[self]


_KIND_MODELS = {
    SampleKind.GLUCOSE: GlucoseSample,
    SampleKind.TREATMENTS: TreatmentSample,
    SampleKind.BASALS: BasalSample,
}

_KIND_FILES = {
    SampleKind.GLUCOSE: HISTORY_BG_FILE,
    SampleKind.TREATMENTS: HISTORY_INSULIN_FILE,
    SampleKind.BASALS: HISTORY_BASALS_FILE,
}

_KIND_CHANGE_KEYS = {
    SampleKind.GLUCOSE: "sgv",
    SampleKind.TREATMENTS: "amount",
    SampleKind.BASALS: "rate",
}


# =============================================================================
# Current Status
# =============================================================================

class StatusSnapshot(BaseModel):
    """Most recent "current status" record sent by the phone."""

    model_config = ConfigDict(extra="ignore")

    sgv: Optional[float] = None
    delta: Optional[float] = None
    trend: Optional[str] = None
    iob: Optional[float] = None
    cob: Optional[float] = None
    basal: Optional[float] = None
    ts: int = 0

    @field_validator("sgv", "delta", "iob", "cob", "basal", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        """The phone sends placeholders such as "---" for unknown values."""
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, str):
            v = v.strip()
            if not v or v == MISSING_TEXT:
                return None
            try:
                return float(v)
            except ValueError:
                return None
        return v

    @field_validator("trend", mode="before")
    @classmethod
    def normalize_trend(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        return str(v).upper()


# =============================================================================
# Phone Events and Commands
# =============================================================================

class ConfirmPrompt(BaseModel):
    """A confirmation request relayed from the phone application."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event_type: str = Field(alias="eventType")
    message: str = ""
    return_command_type: str = Field(alias="returnCommandType")
    return_command_json: Any = Field(default=None, alias="returnCommandJson")

    @field_validator("message", mode="before")
    @classmethod
    def split_lines(cls, v: Any) -> Any:
        if v is None:
            return ""
        return str(v).replace("<br/>", "\n")

    @property
    def lines(self) -> List[str]:
        """Non-empty message lines, as shown in the confirmation dialog."""
        return [line for line in self.message.split("\n") if line]


class Command(BaseModel):
    """A command sent to the phone application."""

    command_type: str
    payload: Any = Field(default_factory=dict)


# =============================================================================
# Display View
# =============================================================================

class GraphPoint(BaseModel):
    """Glucose point; ``x`` is the position in the window, 0.0 (oldest) to 1.0 (now)."""

    x: float
    mmol: float
    out_of_range: bool = False


class BasalBar(BaseModel):
    """Basal rate segment; ``height`` is the rate relative to the largest rate shown."""

    start_x: float
    end_x: float
    rate: float
    height: float


class BolusMarker(BaseModel):
    """Bolus marker; large boluses are drawn raised above small ones."""

    x: float
    insulin: float
    raised: bool = False


class GraphSeries(BaseModel):
    glucose: List[GraphPoint] = Field(default_factory=list)
    basals: List[BasalBar] = Field(default_factory=list)
    boluses: List[BolusMarker] = Field(default_factory=list)


class FaceView(BaseModel):
    """Everything a renderer needs to draw the watch face."""

    glucose_text: str
    out_of_range: bool = False
    minutes_ago: int
    reading_stale: bool = False
    delta_text: str = ""
    trend: Optional[str] = None
    basal_text: str = MISSING_TEXT
    cob_text: str = MISSING_TEXT
    iob_text: str = MISSING_TEXT
    buffer_lengths: str = "0 0 0"
    dialog_active: bool = False
    graph: GraphSeries = Field(default_factory=GraphSeries)


# =============================================================================
# API Responses
# =============================================================================

class HealthResponse(BaseModel):
    """Service information response."""

    status: str
    service: str


class HistoryResponse(BaseModel):
    """Contents of one history buffer."""

    kind: SampleKind
    updated: int
    stale: bool
    samples: List[Dict[str, Any]]


class DialogResponse(BaseModel):
    """Current state of the data-entry / confirmation dialog."""

    state: str
    title: Optional[str] = None
    value: Optional[float] = None
    unit: Optional[str] = None
    prompt: Optional[ConfirmPrompt] = None
    sent: List[Command] = Field(default_factory=list)


class SensorUploadResponse(BaseModel):
    """Result of forwarding a watch sensor reading to the phone."""

    sensor: str
    value: int
    uploaded: bool
