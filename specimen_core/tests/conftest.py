# specimen_core/tests/conftest.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import pytest
from django.contrib.auth import get_user_model

from specimen_core.models import Facility, Specimen, UserRole
from specimen_core.services.batches import create_specimen

from .factories import _rand, eid_payload, vl_payload


@pytest.fixture
def facility(db) -> Facility:
    return Facility.objects.create(
        code=_rand("HC"),
        name=_rand("Health Centre"),
        district="Kampala",
    )


@pytest.fixture
def other_facility(db) -> Facility:
    return Facility.objects.create(
        code=_rand("HC"),
        name=_rand("Other Centre"),
        district="Gulu",
    )


@pytest.fixture
def user_clinician(db, facility):
    User = get_user_model()
    user, created = User.objects.get_or_create(username="clinician")
    user.set_password("pass123")
    user.save(update_fields=["password"])
    UserRole.objects.get_or_create(user=user, facility=facility, role="CLINICIAN")
    return user


@pytest.fixture
def specimen_factory(db) -> Callable[..., Specimen]:
    """
    Creates specimens through the allocation service so batch and
    position invariants hold in every test.
    """

    def _factory(
        *,
        facility: Facility,
        program: str = "EID",
        user=None,
        sender: Optional[Dict[str, Any]] = None,
        **overrides: Any,
    ) -> Specimen:
        payload = eid_payload(**overrides) if program == "EID" else vl_payload(**overrides)
        return create_specimen(
            facility_id=facility.id,
            program=program,
            data=payload,
            sender=sender,
            user=user,
        )

    return _factory
