# specimen_core/models/__init__.py

from .core import Batch, Facility, Specimen, TimeStampedModel, UserRole
from .audit import AuditLog
from .querysets import BatchQuerySet, SpecimenQuerySet

__all__ = [
    "AuditLog",
    "Batch",
    "BatchQuerySet",
    "Facility",
    "Specimen",
    "SpecimenQuerySet",
    "TimeStampedModel",
    "UserRole",
]
