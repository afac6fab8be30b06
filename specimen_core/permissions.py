# specimen_core/permissions.py
from __future__ import annotations

from typing import Dict, Optional

from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import SAFE_METHODS, BasePermission

from .models import Facility, UserRole


# ------------------------------------------------------------------
# Role definitions
# ------------------------------------------------------------------
ROLE_ALIASES: Dict[str, str] = {
    "ADMIN": "FACILITY_ADMIN",
    "FACILITY_ADMIN": "FACILITY_ADMIN",
    "IN_CHARGE": "FACILITY_ADMIN",
    "CLINICIAN": "CLINICIAN",
    "DOCTOR": "CLINICIAN",
    "NURSE": "CLINICIAN",
    "DATA_CLERK": "DATA_CLERK",
    "CLERK": "DATA_CLERK",
    "READONLY": "READONLY",
    "VIEWER": "READONLY",
}

WRITE_ROLES = {"CLINICIAN", "DATA_CLERK", "FACILITY_ADMIN"}


def normalize_role(value: str) -> str:
    raw = str(value or "").strip().upper().replace(" ", "_")
    return ROLE_ALIASES.get(raw, raw or "READONLY")


# ------------------------------------------------------------------
# Utilities
# ------------------------------------------------------------------
def _parse_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def resolve_current_facility(request) -> Optional[Facility]:
    """
    Canonical facility resolver.

    Priority:
      1) ?facility=<id>
      2) X-Facility header
      3) single-facility auto resolution via UserRole
      4) superuser with exactly one active facility
    """
    user = getattr(request, "user", None)
    if not user or not user.is_authenticated:
        return None

    facility_id = _parse_int(getattr(request, "query_params", {}).get("facility"))
    if facility_id is None:
        facility_id = _parse_int(getattr(request, "headers", {}).get("X-Facility"))

    if facility_id is not None:
        facility = Facility.objects.filter(id=facility_id, is_active=True).first()
        if facility is None:
            return None
        if user.is_superuser:
            return facility
        if UserRole.objects.filter(user=user, facility=facility).exists():
            return facility
        return None

    facilities = list(
        Facility.objects.filter(is_active=True, user_roles__user=user).distinct()[:2]
    )
    if len(facilities) == 1:
        return facilities[0]

    if user.is_superuser:
        only = list(Facility.objects.filter(is_active=True)[:2])
        if len(only) == 1:
            return only[0]

    return None


def require_facility(request) -> Facility:
    facility = resolve_current_facility(request)
    if not facility:
        raise PermissionDenied(
            "Active facility not set or not permitted. Provide ?facility=<id> or X-Facility header."
        )
    return facility


def user_roles_in(user, facility: Facility) -> set[str]:
    if not user or not user.is_authenticated:
        return set()
    if user.is_superuser:
        return {"FACILITY_ADMIN"}
    return {
        normalize_role(r)
        for r in UserRole.objects.filter(user=user, facility=facility).values_list("role", flat=True)
    }


def user_has_any_role(user, facility: Facility, allowed_roles: set[str]) -> bool:
    return bool(user_roles_in(user, facility) & allowed_roles)


# ------------------------------------------------------------------
# Permission class
# ------------------------------------------------------------------
class IsFacilityMemberOrReadOnly(BasePermission):
    """
    Read: any member of the active facility
    Write: requires a write role in the active facility

    Facility resolved via:
      ?facility=<id> or X-Facility header
      else single-facility auto resolution
    """

    message = (
        "Write access denied. Provide ?facility=<id> or X-Facility header "
        "and ensure you have an appropriate role."
    )

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False

        facility = require_facility(request)
        request.facility = facility

        if request.method in SAFE_METHODS:
            return True

        return user_has_any_role(user, facility, WRITE_ROLES)
