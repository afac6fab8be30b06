# specimen_core/serializers.py
from __future__ import annotations

from rest_framework import serializers

from .lifecycle import normalize_program
from .models import Batch, Specimen
from .services.batches import SPECIMEN_INPUT_FIELDS


# ===============================================================
# Batches
# ===============================================================

class BatchSerializer(serializers.ModelSerializer):
    is_open = serializers.BooleanField(read_only=True)
    specimen_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Batch
        fields = (
            "id",
            "batch_number",
            "facility",
            "facility_name",
            "facility_district",
            "requesting_unit",
            "senders_name",
            "senders_telephone",
            "senders_comments",
            "date_dispatched_from_facility",
            "is_open",
            "specimen_count",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


# ===============================================================
# Specimens (read)
# ===============================================================

class SpecimenSerializer(serializers.ModelSerializer):
    batch_number = serializers.CharField(source="batch.batch_number", read_only=True)
    facility = serializers.IntegerField(source="batch.facility_id", read_only=True)
    stage = serializers.SerializerMethodField()
    result_interpretation = serializers.SerializerMethodField()

    class Meta:
        model = Specimen
        fields = (
            "id",
            "program",
            "stage",
            "facility",
            "batch",
            "batch_number",
            "position",
            *SPECIMEN_INPUT_FIELDS,
            "created_at",
            "collected_at",
            "received_at",
            "tested_at",
            "accepted_result",
            "result_value",
            "result_interpretation",
            "verified_at",
            "package_identifier",
            "packaged_at",
        )
        read_only_fields = fields

    def get_stage(self, obj: Specimen) -> str:
        return obj.stage.value

    def get_result_interpretation(self, obj: Specimen):
        return obj.result_interpretation


# ===============================================================
# Specimens (write)
# ===============================================================

class SenderSerializer(serializers.Serializer):
    senders_name = serializers.CharField(required=False, allow_blank=True, max_length=75)
    senders_telephone = serializers.CharField(required=False, allow_blank=True, max_length=50)
    senders_comments = serializers.CharField(required=False, allow_blank=True, max_length=512)
    requesting_unit = serializers.CharField(required=False, allow_blank=True, max_length=250)


class SpecimenCreateSerializer(serializers.ModelSerializer):
    """
    Parses a create-specimen payload.

    Program-specific required fields are checked by create_specimen so the
    API and service callers share one rule set.
    """

    program = serializers.CharField()
    sender = SenderSerializer(required=False)

    class Meta:
        model = Specimen
        fields = ("program", "sender", *SPECIMEN_INPUT_FIELDS)
        extra_kwargs = {f: {"required": False} for f in SPECIMEN_INPUT_FIELDS}

    def validate_program(self, value: str) -> str:
        try:
            return normalize_program(value).value
        except ValueError as exc:
            raise serializers.ValidationError(str(exc))


class SpecimenUpdateSerializer(serializers.ModelSerializer):
    """Clinical fields of a pending request; anything else is ignored."""

    class Meta:
        model = Specimen
        fields = SPECIMEN_INPUT_FIELDS
        extra_kwargs = {f: {"required": False} for f in SPECIMEN_INPUT_FIELDS}


class SpecimenCreatedSerializer(serializers.Serializer):
    specimen_id = serializers.IntegerField()
    batch_id = serializers.IntegerField()
    position = serializers.IntegerField()


# ===============================================================
# Events
# ===============================================================

class CollectSerializer(serializers.Serializer):
    collected_at = serializers.DateTimeField(required=False, allow_null=True)
    barcode = serializers.CharField(required=False, allow_blank=True, max_length=64)


class ReceiveSerializer(serializers.Serializer):
    received_at = serializers.DateTimeField(required=False, allow_null=True)


class ResultSerializer(serializers.Serializer):
    accepted_result = serializers.CharField(required=False, allow_blank=True)
    result_value = serializers.CharField(required=False, allow_blank=True, max_length=64)
    tested_at = serializers.DateTimeField(required=False, allow_null=True)


class VerifySerializer(serializers.Serializer):
    verified_at = serializers.DateTimeField(required=False, allow_null=True)


# ===============================================================
# Packaging
# ===============================================================

class PackageRequestSerializer(serializers.Serializer):
    package_identifier = serializers.CharField(allow_blank=True, trim_whitespace=False)
    specimen_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=True)


class PackageResultSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    message = serializers.CharField()
    package_identifier = serializers.CharField()
    packaged_count = serializers.IntegerField()


class PackageSummarySerializer(serializers.Serializer):
    package_identifier = serializers.CharField()
    specimen_count = serializers.IntegerField()
    sample_types = serializers.ListField(child=serializers.CharField())
    last_packaged_at = serializers.DateTimeField(allow_null=True)


# ===============================================================
# Analytics
# ===============================================================

class TimeSeriesPointSerializer(serializers.Serializer):
    date = serializers.DateField()
    pending_count = serializers.IntegerField()
    collected_count = serializers.IntegerField()
