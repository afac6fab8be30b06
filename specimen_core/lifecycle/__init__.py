# specimen_core/lifecycle/__init__.py
from __future__ import annotations

from .positions import BATCH_CAPACITY, BatchPosition, CapacityExceeded
from .status import (
    STAGES_BY_PROGRAM,
    EidStage,
    Program,
    SpecimenEvents,
    ViralLoadStage,
    derive_eid_stage,
    derive_stage,
    derive_viral_load_stage,
    initial_stage,
    interpret_viral_load,
    is_known_stage,
    normalize_program,
    stage_for,
)

__all__ = [
    "BATCH_CAPACITY",
    "BatchPosition",
    "CapacityExceeded",
    "STAGES_BY_PROGRAM",
    "EidStage",
    "Program",
    "SpecimenEvents",
    "ViralLoadStage",
    "derive_eid_stage",
    "derive_stage",
    "derive_viral_load_stage",
    "initial_stage",
    "interpret_viral_load",
    "is_known_stage",
    "normalize_program",
    "stage_for",
]
