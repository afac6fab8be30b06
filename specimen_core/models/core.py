# specimen_core/models/core.py

from django.conf import settings
from django.db import models
from django.db.models import Q

from specimen_core.lifecycle import BATCH_CAPACITY, stage_for
from specimen_core.lifecycle.status import interpret_viral_load

from .querysets import BatchQuerySet, SpecimenQuerySet


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Facility (tenant)
# ============================================================
class Facility(TimeStampedModel):
    code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=255)
    district = models.CharField(max_length=255, blank=True)
    hub = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "facilities"

    def __str__(self):
        return f"{self.code} - {self.name}"


# ============================================================
# User roles (facility-scoped)
# ============================================================
class UserRole(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="facility_roles",
    )
    facility = models.ForeignKey(
        Facility,
        on_delete=models.CASCADE,
        related_name="user_roles",
    )
    role = models.CharField(max_length=50)

    class Meta:
        unique_together = ("user", "facility", "role")

    def __str__(self):
        return f"{self.user} @ {self.facility.code}: {self.role}"


# ============================================================
# Batch
# ============================================================
class Batch(TimeStampedModel):
    facility = models.ForeignKey(
        Facility,
        on_delete=models.PROTECT,
        related_name="batches",
    )
    batch_number = models.CharField(max_length=32, blank=True, db_index=True)

    # Seeded from the facility at creation; kept for printed manifests.
    facility_name = models.CharField(max_length=255, blank=True)
    facility_district = models.CharField(max_length=255, blank=True)

    requesting_unit = models.CharField(max_length=250, blank=True)
    senders_name = models.CharField(max_length=75, blank=True)
    senders_telephone = models.CharField(max_length=50, blank=True)
    senders_comments = models.CharField(max_length=512, blank=True)

    # NULL while open. Setting it closes the batch for good.
    date_dispatched_from_facility = models.DateField(null=True, blank=True)

    objects = BatchQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name_plural = "batches"
        constraints = [
            models.UniqueConstraint(
                fields=["facility"],
                condition=Q(date_dispatched_from_facility__isnull=True),
                name="batch_one_open_per_facility",
            ),
        ]

    @property
    def is_open(self) -> bool:
        return self.date_dispatched_from_facility is None

    @property
    def capacity(self) -> int:
        return BATCH_CAPACITY

    def __str__(self):
        return self.batch_number or f"Batch {self.pk}"


# ============================================================
# Specimen
# ============================================================
class Specimen(models.Model):
    """
    One EID (DBS) or viral load sample.

    There is deliberately no status column: see specimen_core.lifecycle.
    """

    class Program(models.TextChoices):
        EID = "EID", "Early Infant Diagnosis"
        VIRAL_LOAD = "VL", "Viral Load"

    class SampleType(models.TextChoices):
        DBS = "DBS", "DBS"
        PLASMA = "PLASMA", "Plasma"
        WHOLE_BLOOD = "WHOLE_BLOOD", "Whole blood"

    class Gender(models.TextChoices):
        MALE = "MALE", "Male"
        FEMALE = "FEMALE", "Female"
        NOT_RECORDED = "NOT_RECORDED", "Not recorded"

    class PcrRound(models.TextChoices):
        FIRST = "FIRST", "First"
        SECOND = "SECOND", "Second"
        THIRD = "THIRD", "Third"
        NON_ROUTINE = "NON_ROUTINE", "Non-routine"
        UNKNOWN = "UNKNOWN", "Unknown"

    class NonRoutine(models.TextChoices):
        R1 = "R1", "R1"
        R2 = "R2", "R2"
        R3 = "R3", "R3"

    class YesNoUnknown(models.TextChoices):
        YES = "Y", "Yes"
        NO = "N", "No"
        UNKNOWN = "U", "Unknown"

    class AcceptedResult(models.TextChoices):
        POSITIVE = "POSITIVE", "Positive"
        NEGATIVE = "NEGATIVE", "Negative"
        INVALID = "INVALID", "Invalid"
        SAMPLE_WAS_REJECTED = "SAMPLE_WAS_REJECTED", "Sample was rejected"

    batch = models.ForeignKey(
        Batch,
        on_delete=models.PROTECT,
        related_name="specimens",
    )
    position = models.PositiveSmallIntegerField()

    program = models.CharField(max_length=3, choices=Program.choices, db_index=True)
    sample_type = models.CharField(
        max_length=20, choices=SampleType.choices, default=SampleType.DBS
    )

    # ---- subject ----
    subject_name = models.CharField(max_length=255, blank=True)
    subject_identifier = models.CharField(max_length=64, db_index=True)
    other_identifier = models.CharField(max_length=64, blank=True)
    barcode = models.CharField(max_length=64, blank=True)
    gender = models.CharField(
        max_length=20, choices=Gender.choices, default=Gender.NOT_RECORDED
    )
    date_of_birth = models.DateField(null=True, blank=True)
    age = models.CharField(max_length=30, blank=True)
    age_units = models.CharField(max_length=10, blank=True)
    contact_phone = models.CharField(max_length=20, blank=True)

    # ---- EID clinical ----
    pcr = models.CharField(
        max_length=12, choices=PcrRound.choices, default=PcrRound.UNKNOWN
    )
    non_routine = models.CharField(
        max_length=2, choices=NonRoutine.choices, blank=True
    )
    infant_feeding = models.CharField(max_length=32, blank=True)
    entry_point = models.CharField(max_length=32, blank=True)
    given_contri = models.CharField(max_length=1, choices=YesNoUnknown.choices, blank=True)
    delivered_at_hc = models.CharField(max_length=1, choices=YesNoUnknown.choices, blank=True)
    mother_htsnr = models.CharField(max_length=32, blank=True)
    mother_artnr = models.CharField(max_length=32, blank=True)
    mother_nin = models.CharField(max_length=32, blank=True)

    # ---- VL clinical ----
    pregnant = models.CharField(max_length=1, choices=YesNoUnknown.choices, blank=True)
    anc_number = models.CharField(max_length=32, blank=True)
    breast_feeding = models.CharField(max_length=1, choices=YesNoUnknown.choices, blank=True)
    active_tb_status = models.CharField(max_length=1, choices=YesNoUnknown.choices, blank=True)
    treatment_initiation_date = models.DateField(null=True, blank=True)
    current_regimen_initiation_date = models.DateField(null=True, blank=True)

    # ---- lifecycle events (forward only) ----
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    collected_at = models.DateTimeField(null=True, blank=True, db_index=True)
    received_at = models.DateTimeField(null=True, blank=True)
    tested_at = models.DateTimeField(null=True, blank=True)
    accepted_result = models.CharField(
        max_length=20, choices=AcceptedResult.choices, blank=True
    )
    result_value = models.CharField(max_length=64, blank=True)
    verified_at = models.DateTimeField(null=True, blank=True)

    # ---- packaging ----
    package_identifier = models.CharField(
        max_length=100, null=True, blank=True, db_index=True
    )
    packaged_at = models.DateTimeField(null=True, blank=True)

    # ---- actors ----
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name="+",
    )
    collected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name="+",
    )
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name="+",
    )
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name="+",
    )
    packaged_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name="+",
    )

    objects = SpecimenQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["batch", "position"],
                name="specimen_unique_position_in_batch",
            ),
            models.CheckConstraint(
                name="specimen_position_in_range",
                condition=Q(position__gte=1) & Q(position__lte=BATCH_CAPACITY),
            ),
            models.CheckConstraint(
                name="specimen_package_identifier_not_blank",
                condition=~Q(package_identifier=""),
            ),
        ]
        indexes = [
            models.Index(fields=["program", "created_at"], name="specimen_prog_created_idx"),
        ]

    @property
    def facility_id(self):
        return self.batch.facility_id

    @property
    def stage(self):
        return stage_for(self)

    @property
    def is_testing_complete(self) -> bool:
        return self.tested_at is not None or self.verified_at is not None

    @property
    def result_interpretation(self):
        if self.program != self.Program.VIRAL_LOAD:
            return None
        return interpret_viral_load(self.result_value, verified=self.verified_at is not None)

    def __str__(self):
        return f"{self.program}:{self.subject_identifier} ({self.batch_id}/{self.position})"
