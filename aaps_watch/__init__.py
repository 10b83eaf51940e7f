"""
AAPS Watch Companion - watch face state for an automated insulin delivery system.

This package mirrors AndroidAPS status (glucose, trend, insulin and carbs on
board, basal rate) on a watch face, keeps short glucose/treatment/basal
histories, and relays treatment commands and confirmations to the phone.
"""

__version__ = "1.0.0"
__author__ = "AAPS Watch Companion Contributors"

from .buffer import SampleBuffer
from .config import Settings, get_settings
from .models import (
    BasalSample,
    GlucoseSample,
    SampleKind,
    StatusSnapshot,
    TreatmentSample,
)
from .state import WatchFaceState

__all__ = [
    "Settings",
    "get_settings",
    "SampleBuffer",
    "WatchFaceState",
    "BasalSample",
    "GlucoseSample",
    "SampleKind",
    "StatusSnapshot",
    "TreatmentSample",
]
