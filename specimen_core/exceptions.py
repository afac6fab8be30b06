# specimen_core/exceptions.py
"""
Typed failures surfaced by the specimen services.

Services raise these directly (the same way the workflow executor raises DRF
exceptions), so API views need no translation layer: DRF's exception handler
renders them with the status code below.
"""

from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    NotFound as DRFNotFound,
    PermissionDenied,
    ValidationError as DRFValidationError,
)


class TenantMismatch(PermissionDenied):
    default_detail = "This record does not belong to your facility."
    default_code = "tenant_mismatch"


class NotFound(DRFNotFound):
    default_detail = "Not found."
    default_code = "not_found"


class ValidationError(DRFValidationError):
    default_code = "validation_error"


class BatchFull(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = (
        "The open batch has reached capacity. Dispatch it before adding more specimens."
    )
    default_code = "batch_full"


class AlreadyPackaged(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Specimen already belongs to a package."
    default_code = "already_packaged"


class InvalidState(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Operation not permitted in the specimen's current state."
    default_code = "invalid_state"
