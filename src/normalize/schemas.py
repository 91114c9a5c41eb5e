"""
Canonical Data Schemas for the FDNL engine

Defines the normalized record types used throughout the system.

Design Principles:
- Every input row is parsed into a typed record at the boundary
- Absent numerics are None (never NaN) once inside a record
- Records are immutable after construction
- CSV column names (location_id, sensor) are accepted as aliases
"""

import math
from datetime import datetime
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from ingest.validators import ValidationError


class ObservedState(str, Enum):
    """
    Stream state recorded by a human observer.

    Weak trickle counts as flow for calibration and evaluation.
    """
    FLOW = "flow"
    NO_FLOW = "no_flow"
    WEAK_TRICKLE = "wt"

    @property
    def is_flowing(self) -> bool:
        return self is not ObservedState.NO_FLOW


class FlowState(str, Enum):
    """Predicted reach state."""
    FLOW = "flow"
    NO_FLOW = "no_flow"
    UNDECIDABLE = "undecidable"


class UndecidableReason(str, Enum):
    """Why a prediction could not be made."""
    NO_DATA = "no_data"  # no reading in the window, or no sensor able to vote
    TIE = "tie"  # sensor votes could not be reconciled


class Vote(IntEnum):
    """Single sensor vote."""
    FLOW = 1
    NO_FLOW = 0
    ABSTAIN = -1


def _nan_to_none(v):
    if isinstance(v, float) and math.isnan(v):
        return None
    return v


class Reach(BaseModel):
    """
    A stream reach (anchor point) and its length.
    """
    reach_id: str = Field(..., alias="location_id", description="Reach / anchor point id, e.g. EX1")
    length: Optional[float] = Field(None, ge=0, description="Reach length (unknown = None)")

    @field_validator("length", mode="before")
    @classmethod
    def length_nan_to_none(cls, v):
        return _nan_to_none(v)

    class Config:
        populate_by_name = True
        frozen = True


class FieldObservation(BaseModel):
    """
    Stream state observed in the field, paired with a sensor's water level.
    """
    reach_id: str = Field(..., alias="location_id")
    sensor_id: str = Field(..., alias="sensor")
    state: ObservedState
    water_level: Optional[float] = Field(None, description="Water level measured by the sensor")
    observed_at: datetime

    @field_validator("water_level", mode="before")
    @classmethod
    def water_level_nan_to_none(cls, v):
        return _nan_to_none(v)

    class Config:
        populate_by_name = True
        frozen = True


class Threshold(BaseModel):
    """
    Decision threshold of one sensor for one reach.

    score is the number of training observations the threshold misclassifies
    (0 = most reliable). Both fields are None when no decision is possible.
    """
    reach_id: str = Field(..., alias="location_id")
    sensor_id: str = Field(..., alias="sensor")
    value: Optional[float] = None
    score: Optional[int] = Field(None, ge=0)

    @field_validator("value", "score", mode="before")
    @classmethod
    def missing_to_none(cls, v):
        return _nan_to_none(v)

    class Config:
        populate_by_name = True
        frozen = True

    @property
    def key(self) -> Tuple[str, str]:
        return self.reach_id, self.sensor_id


class VoteRecord(BaseModel):
    """One sensor's contribution to a reach prediction."""
    sensor_id: str
    water_level: float
    threshold: Optional[float] = None
    reliability: Optional[int] = None
    distance: Optional[float] = None
    vote: Vote

    class Config:
        frozen = True


class ReachPrediction(BaseModel):
    """
    Result of predicting one reach at one instant.

    state collapses both kinds of failure into UNDECIDABLE; reason keeps them
    apart (NO_DATA vs TIE).
    """
    reach_id: str
    timestamp: datetime
    state: FlowState
    reason: Optional[UndecidableReason] = None
    votes: List[VoteRecord] = Field(default_factory=list)
    flow_votes: int = 0
    no_flow_votes: int = 0

    class Config:
        frozen = True

    @property
    def value(self) -> Optional[int]:
        """1 = flow, 0 = no flow, None = undecidable"""
        if self.state == FlowState.FLOW:
            return 1
        if self.state == FlowState.NO_FLOW:
            return 0
        return None

    @property
    def is_decided(self) -> bool:
        return self.state != FlowState.UNDECIDABLE


class FdnlPoint(BaseModel):
    """Flowing drainage network length at one instant (None = undefined)."""
    timestamp: datetime
    fdnl: Optional[float] = None

    class Config:
        frozen = True


class SurveyRow(BaseModel):
    """Deduplicated field survey: one label per reach and instant."""
    reach_id: str
    observed_at: datetime
    state: ObservedState

    class Config:
        frozen = True


class ThresholdTable:
    """
    Read-only lookup of thresholds keyed by (reach_id, sensor_id).

    Built once per calibration run (or loaded from CSV) and consumed by the
    predictor.
    """

    def __init__(self, thresholds: Iterable[Threshold]):
        table: Dict[Tuple[str, str], Threshold] = {}
        for threshold in thresholds:
            if threshold.key in table:
                raise ValidationError(
                    f"Duplicate threshold for reach '{threshold.reach_id}' "
                    f"and sensor '{threshold.sensor_id}'"
                )
            table[threshold.key] = threshold
        self._table = MappingProxyType(table)

    def get(self, reach_id: str, sensor_id: str) -> Optional[Threshold]:
        return self._table.get((reach_id, sensor_id))

    def for_reach(self, reach_id: str) -> List[Threshold]:
        return [t for t in self._table.values() if t.reach_id == reach_id]

    def __len__(self) -> int:
        return len(self._table)

    def __iter__(self) -> Iterator[Threshold]:
        return iter(self._table.values())

    def __contains__(self, key) -> bool:
        return key in self._table

    def __repr__(self) -> str:
        return f"ThresholdTable({len(self)} thresholds)"
