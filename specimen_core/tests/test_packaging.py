# specimen_core/tests/test_packaging.py

import pytest

from specimen_core.exceptions import AlreadyPackaged, NotFound, ValidationError
from specimen_core.models import Specimen
from specimen_core.models.querysets import SpecimenQuerySet
from specimen_core.services.collection import collect
from specimen_core.services.lab_events import mark_received
from specimen_core.services.packaging import (
    list_packaged,
    list_ready_for_packaging,
    package_specimens,
    package_summary,
)


@pytest.fixture
def collected_factory(specimen_factory):
    def _factory(*, facility, program="VL", **extra):
        specimen = specimen_factory(facility=facility, program=program, **extra)
        return collect(specimen_id=specimen.id, facility_id=facility.id)

    return _factory


# ===============================================================
# package_specimens
# ===============================================================

@pytest.mark.django_db
def test_package_all_collected(facility, user_clinician, collected_factory):
    specimens = [collected_factory(facility=facility) for _ in range(3)]
    ids = [s.id for s in specimens]

    result = package_specimens(
        facility_id=facility.id,
        package_identifier="  PKG-001 ",
        specimen_ids=ids,
        user=user_clinician,
    )

    assert result["success"] is True
    assert result["package_identifier"] == "PKG-001"
    assert result["packaged_count"] == 3
    for s in Specimen.objects.filter(pk__in=ids):
        assert s.package_identifier == "PKG-001"
        assert s.packaged_at is not None
        assert s.packaged_by == user_clinician
        assert s.received_at is None


@pytest.mark.django_db
def test_package_accepts_numeric_strings(facility, collected_factory):
    s = collected_factory(facility=facility)
    result = package_specimens(facility_id=facility.id, package_identifier="P", specimen_ids=[str(s.id)])
    assert result["packaged_count"] == 1


@pytest.mark.django_db
@pytest.mark.parametrize(
    "identifier, ids",
    [
        ("", [1]),
        ("   ", [1]),
        ("PKG", []),
        ("PKG", None),
        ("PKG", ["abc"]),
        ("PKG", [True]),
    ],
)
def test_package_input_validation(facility, identifier, ids):
    with pytest.raises(ValidationError):
        package_specimens(facility_id=facility.id, package_identifier=identifier, specimen_ids=ids)


@pytest.mark.django_db
def test_package_is_all_or_nothing_on_uncollected(facility, specimen_factory, collected_factory):
    good = collected_factory(facility=facility)
    pending = specimen_factory(facility=facility, program="VL")

    with pytest.raises(ValidationError):
        package_specimens(
            facility_id=facility.id,
            package_identifier="PKG-X",
            specimen_ids=[good.id, pending.id],
        )

    good.refresh_from_db()
    assert good.package_identifier is None


@pytest.mark.django_db
def test_package_rejects_already_packaged(facility, collected_factory):
    a = collected_factory(facility=facility)
    b = collected_factory(facility=facility)
    package_specimens(facility_id=facility.id, package_identifier="PKG-1", specimen_ids=[a.id])

    with pytest.raises(AlreadyPackaged):
        package_specimens(facility_id=facility.id, package_identifier="PKG-2", specimen_ids=[b.id, a.id])

    a.refresh_from_db()
    b.refresh_from_db()
    assert a.package_identifier == "PKG-1"
    assert b.package_identifier is None


@pytest.mark.django_db
def test_package_foreign_specimen_reported_not_found(facility, other_facility, collected_factory):
    mine = collected_factory(facility=facility)
    theirs = collected_factory(facility=other_facility)

    with pytest.raises(NotFound):
        package_specimens(
            facility_id=facility.id,
            package_identifier="PKG-F",
            specimen_ids=[mine.id, theirs.id],
        )

    mine.refresh_from_db()
    theirs.refresh_from_db()
    assert mine.package_identifier is None
    assert theirs.package_identifier is None


@pytest.mark.django_db
def test_package_unknown_id_not_found(facility, collected_factory):
    s = collected_factory(facility=facility)
    with pytest.raises(NotFound):
        package_specimens(facility_id=facility.id, package_identifier="P", specimen_ids=[s.id, 999999])


# ===============================================================
# Listings
# ===============================================================

@pytest.mark.django_db
def test_ready_pool_excludes_packaged_received_and_pending(facility, specimen_factory, collected_factory):
    ready = collected_factory(facility=facility)
    packaged = collected_factory(facility=facility)
    received = collected_factory(facility=facility)
    specimen_factory(facility=facility, program="VL")

    package_specimens(facility_id=facility.id, package_identifier="PKG", specimen_ids=[packaged.id])
    mark_received(specimen_id=received.id, facility_id=facility.id)

    result = list_ready_for_packaging(facility_id=facility.id, limit=10, offset=0)
    assert result["total"] == 1
    assert [s.id for s in result["items"]] == [ready.id]


@pytest.mark.django_db
def test_ready_pool_is_facility_scoped(facility, other_facility, collected_factory):
    collected_factory(facility=facility)
    collected_factory(facility=other_facility)
    assert list_ready_for_packaging(facility_id=facility.id)["total"] == 1


@pytest.mark.django_db
def test_list_packaged_filters_and_lists_identifiers(facility, collected_factory):
    a, b, c = (collected_factory(facility=facility) for _ in range(3))
    package_specimens(facility_id=facility.id, package_identifier="PKG-B", specimen_ids=[a.id, b.id])
    package_specimens(facility_id=facility.id, package_identifier="PKG-A", specimen_ids=[c.id])

    everything = list_packaged(facility_id=facility.id)
    assert everything["total"] == 3
    assert everything["packages"] == ["PKG-A", "PKG-B"]

    only_b = list_packaged(facility_id=facility.id, package_identifier="PKG-B")
    assert only_b["total"] == 2
    assert {s.id for s in only_b["items"]} == {a.id, b.id}


@pytest.mark.django_db
def test_list_paging_validation(facility):
    with pytest.raises(ValidationError):
        list_packaged(facility_id=facility.id, limit=0)
    with pytest.raises(ValidationError):
        list_ready_for_packaging(facility_id=facility.id, offset=-1)


@pytest.mark.django_db
def test_package_summary(facility, collected_factory):
    plasma = collected_factory(facility=facility, sample_type="PLASMA")
    dbs = collected_factory(facility=facility, sample_type="DBS")
    package_specimens(facility_id=facility.id, package_identifier="PKG-S", specimen_ids=[plasma.id, dbs.id])

    summary = package_summary(facility_id=facility.id)
    assert len(summary) == 1
    row = summary[0]
    assert row["package_identifier"] == "PKG-S"
    assert row["specimen_count"] == 2
    assert row["sample_types"] == ["DBS", "PLASMA"]
    assert row["last_packaged_at"] is not None


# ===============================================================
# Concurrent packaging
# ===============================================================

@pytest.mark.django_db
def test_concurrent_stamp_rolls_back_whole_package(facility, collected_factory, monkeypatch):
    a = collected_factory(facility=facility)
    b = collected_factory(facility=facility)
    real_update = SpecimenQuerySet.update
    raced = []

    def racing_update(self, **kwargs):
        # Another request stamps b after the checks but before our write.
        if not raced:
            raced.append(b.id)
            real_update(Specimen.objects.filter(pk=b.id), package_identifier="PKG-RIVAL")
        return real_update(self, **kwargs)

    monkeypatch.setattr(SpecimenQuerySet, "update", racing_update)

    with pytest.raises(AlreadyPackaged):
        package_specimens(
            facility_id=facility.id,
            package_identifier="PKG-MINE",
            specimen_ids=[a.id, b.id],
        )

    assert raced == [b.id]
    a.refresh_from_db()
    b.refresh_from_db()
    assert a.package_identifier is None
    assert a.packaged_at is None
    assert b.package_identifier != "PKG-MINE"
