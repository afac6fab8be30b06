# specimen_core/lifecycle/status.py
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

"""
Authoritative lifecycle stage derivation.

This module is PURE LOGIC.
- No Django imports
- No storage access
- Stage is never stored; it is always computed from the event fields below

Rules are evaluated top to bottom; the first match wins.
"""


# ===============================================================
# Programs and stages
# ===============================================================

class Program(str, Enum):
    EID = "EID"
    VIRAL_LOAD = "VL"


class EidStage(str, Enum):
    PENDING = "PENDING"
    COLLECTED = "COLLECTED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"


class ViralLoadStage(str, Enum):
    PENDING_COLLECTION = "PENDING_COLLECTION"
    READY_FOR_PACKAGING = "READY_FOR_PACKAGING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"


Stage = Union[EidStage, ViralLoadStage]

STAGES_BY_PROGRAM = {
    Program.EID: tuple(EidStage),
    Program.VIRAL_LOAD: tuple(ViralLoadStage),
}


def normalize_program(value: Any) -> Program:
    if isinstance(value, Program):
        return value
    raw = str(value or "").strip().upper()
    if raw in {"VIRAL_LOAD", "VIRAL-LOAD"}:
        raw = Program.VIRAL_LOAD.value
    try:
        return Program(raw)
    except ValueError:
        raise ValueError(f"Unknown program: {value!r}")


# ===============================================================
# Event snapshot
# ===============================================================

@dataclass(frozen=True)
class SpecimenEvents:
    collected_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    tested_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, obj: Any) -> "SpecimenEvents":
        """
        Build a snapshot from any object exposing the event attributes
        (model instance, dict-like row wrapper, test double).
        """
        return cls(
            collected_at=getattr(obj, "collected_at", None),
            received_at=getattr(obj, "received_at", None),
            tested_at=getattr(obj, "tested_at", None),
            verified_at=getattr(obj, "verified_at", None),
        )

    @property
    def is_collected(self) -> bool:
        return self.collected_at is not None

    @property
    def is_received(self) -> bool:
        return self.received_at is not None

    @property
    def is_testing_complete(self) -> bool:
        return self.tested_at is not None or self.verified_at is not None


# ===============================================================
# Derivation
# ===============================================================

def derive_eid_stage(events: SpecimenEvents) -> EidStage:
    if events.tested_at is not None:
        return EidStage.COMPLETED
    if events.is_received:
        return EidStage.PROCESSING
    if events.is_collected:
        return EidStage.COLLECTED
    return EidStage.PENDING


def derive_viral_load_stage(events: SpecimenEvents) -> ViralLoadStage:
    if events.is_received and events.verified_at is not None:
        return ViralLoadStage.COMPLETED
    if events.is_received:
        return ViralLoadStage.PROCESSING
    if events.is_collected:
        return ViralLoadStage.READY_FOR_PACKAGING
    return ViralLoadStage.PENDING_COLLECTION


def derive_stage(program: Any, events: SpecimenEvents) -> Stage:
    program = normalize_program(program)
    if program is Program.EID:
        return derive_eid_stage(events)
    return derive_viral_load_stage(events)


def initial_stage(program: Any) -> Stage:
    program = normalize_program(program)
    return STAGES_BY_PROGRAM[program][0]


def stage_for(obj: Any) -> Stage:
    """Shortcut: derive the stage of a record carrying a `program` attribute."""
    return derive_stage(getattr(obj, "program", None), SpecimenEvents.from_record(obj))


def is_known_stage(value: str) -> bool:
    v = str(value or "").strip().upper()
    return any(v == s.value for stages in STAGES_BY_PROGRAM.values() for s in stages)


# ===============================================================
# Viral load result interpretation
# ===============================================================

SUPPRESSION_THRESHOLD = 50  # copies/mL

_NOT_DETECTED_MARKERS = ("not detected", "undetected")
_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")


def interpret_viral_load(result_value: Optional[str], *, verified: bool = False) -> Dict[str, Any]:
    """
    Interpret a raw viral load result string.

    Returns:
        dict with keys:
          - viral_load_value (int or None)
          - detection_status: "not_detected" | "detected" | "unknown"
          - interpretation: "Suppressed" | "Unsuppressed" | "Result Pending" | "Pending"
    """
    payload: Dict[str, Any] = {
        "viral_load_value": None,
        "detection_status": "unknown",
        "interpretation": "Pending",
    }

    raw = (result_value or "").strip().lower()
    if not raw:
        if verified:
            payload["interpretation"] = "Result Pending"
        return payload

    if raw == "nd" or any(m in raw for m in _NOT_DETECTED_MARKERS):
        payload["detection_status"] = "not_detected"
        payload["interpretation"] = "Suppressed"
        return payload

    match = _NUMBER.search(raw.replace(",", ""))
    if match:
        value = int(float(match.group(1)))
        payload["viral_load_value"] = value
        payload["detection_status"] = "detected"
        payload["interpretation"] = (
            "Suppressed" if value < SUPPRESSION_THRESHOLD else "Unsuppressed"
        )

    return payload
