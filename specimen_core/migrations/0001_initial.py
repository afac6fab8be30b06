# specimen_core/migrations/0001_initial.py

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


USER_FK = dict(
    blank=True,
    null=True,
    on_delete=django.db.models.deletion.SET_NULL,
    related_name="+",
    to=settings.AUTH_USER_MODEL,
)

YES_NO_UNKNOWN = [("Y", "Yes"), ("N", "No"), ("U", "Unknown")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Facility",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("code", models.CharField(max_length=30, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("district", models.CharField(blank=True, max_length=255)),
                ("hub", models.CharField(blank=True, max_length=255)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["name"],
                "verbose_name_plural": "facilities",
            },
        ),
        migrations.CreateModel(
            name="UserRole",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("role", models.CharField(max_length=50)),
                (
                    "facility",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="user_roles",
                        to="specimen_core.facility",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="facility_roles",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "unique_together": {("user", "facility", "role")},
            },
        ),
        migrations.CreateModel(
            name="Batch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("batch_number", models.CharField(blank=True, db_index=True, max_length=32)),
                ("facility_name", models.CharField(blank=True, max_length=255)),
                ("facility_district", models.CharField(blank=True, max_length=255)),
                ("requesting_unit", models.CharField(blank=True, max_length=250)),
                ("senders_name", models.CharField(blank=True, max_length=75)),
                ("senders_telephone", models.CharField(blank=True, max_length=50)),
                ("senders_comments", models.CharField(blank=True, max_length=512)),
                ("date_dispatched_from_facility", models.DateField(blank=True, null=True)),
                (
                    "facility",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="batches",
                        to="specimen_core.facility",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "verbose_name_plural": "batches",
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("date_dispatched_from_facility__isnull", True)),
                        fields=("facility",),
                        name="batch_one_open_per_facility",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Specimen",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("position", models.PositiveSmallIntegerField()),
                (
                    "program",
                    models.CharField(
                        choices=[("EID", "Early Infant Diagnosis"), ("VL", "Viral Load")],
                        db_index=True,
                        max_length=3,
                    ),
                ),
                (
                    "sample_type",
                    models.CharField(
                        choices=[("DBS", "DBS"), ("PLASMA", "Plasma"), ("WHOLE_BLOOD", "Whole blood")],
                        default="DBS",
                        max_length=20,
                    ),
                ),
                ("subject_name", models.CharField(blank=True, max_length=255)),
                ("subject_identifier", models.CharField(db_index=True, max_length=64)),
                ("other_identifier", models.CharField(blank=True, max_length=64)),
                ("barcode", models.CharField(blank=True, max_length=64)),
                (
                    "gender",
                    models.CharField(
                        choices=[("MALE", "Male"), ("FEMALE", "Female"), ("NOT_RECORDED", "Not recorded")],
                        default="NOT_RECORDED",
                        max_length=20,
                    ),
                ),
                ("date_of_birth", models.DateField(blank=True, null=True)),
                ("age", models.CharField(blank=True, max_length=30)),
                ("age_units", models.CharField(blank=True, max_length=10)),
                ("contact_phone", models.CharField(blank=True, max_length=20)),
                (
                    "pcr",
                    models.CharField(
                        choices=[
                            ("FIRST", "First"),
                            ("SECOND", "Second"),
                            ("THIRD", "Third"),
                            ("NON_ROUTINE", "Non-routine"),
                            ("UNKNOWN", "Unknown"),
                        ],
                        default="UNKNOWN",
                        max_length=12,
                    ),
                ),
                (
                    "non_routine",
                    models.CharField(
                        blank=True,
                        choices=[("R1", "R1"), ("R2", "R2"), ("R3", "R3")],
                        max_length=2,
                    ),
                ),
                ("infant_feeding", models.CharField(blank=True, max_length=32)),
                ("entry_point", models.CharField(blank=True, max_length=32)),
                ("given_contri", models.CharField(blank=True, choices=YES_NO_UNKNOWN, max_length=1)),
                ("delivered_at_hc", models.CharField(blank=True, choices=YES_NO_UNKNOWN, max_length=1)),
                ("mother_htsnr", models.CharField(blank=True, max_length=32)),
                ("mother_artnr", models.CharField(blank=True, max_length=32)),
                ("mother_nin", models.CharField(blank=True, max_length=32)),
                ("pregnant", models.CharField(blank=True, choices=YES_NO_UNKNOWN, max_length=1)),
                ("anc_number", models.CharField(blank=True, max_length=32)),
                ("breast_feeding", models.CharField(blank=True, choices=YES_NO_UNKNOWN, max_length=1)),
                ("active_tb_status", models.CharField(blank=True, choices=YES_NO_UNKNOWN, max_length=1)),
                ("treatment_initiation_date", models.DateField(blank=True, null=True)),
                ("current_regimen_initiation_date", models.DateField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("collected_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("received_at", models.DateTimeField(blank=True, null=True)),
                ("tested_at", models.DateTimeField(blank=True, null=True)),
                (
                    "accepted_result",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("POSITIVE", "Positive"),
                            ("NEGATIVE", "Negative"),
                            ("INVALID", "Invalid"),
                            ("SAMPLE_WAS_REJECTED", "Sample was rejected"),
                        ],
                        max_length=20,
                    ),
                ),
                ("result_value", models.CharField(blank=True, max_length=64)),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                ("package_identifier", models.CharField(blank=True, db_index=True, max_length=100, null=True)),
                ("packaged_at", models.DateTimeField(blank=True, null=True)),
                (
                    "batch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="specimens",
                        to="specimen_core.batch",
                    ),
                ),
                ("created_by", models.ForeignKey(**USER_FK)),
                ("collected_by", models.ForeignKey(**USER_FK)),
                ("received_by", models.ForeignKey(**USER_FK)),
                ("verified_by", models.ForeignKey(**USER_FK)),
                ("packaged_by", models.ForeignKey(**USER_FK)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["program", "created_at"], name="specimen_prog_created_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("batch", "position"),
                        name="specimen_unique_position_in_batch",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("position__gte", 1), ("position__lte", 255)),
                        name="specimen_position_in_range",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("package_identifier", ""), _negated=True),
                        name="specimen_package_identifier_not_blank",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("action", models.CharField(db_index=True, max_length=255)),
                ("details", models.JSONField(blank=True, default=dict)),
                (
                    "facility",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="audit_logs",
                        to="specimen_core.facility",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["action", "created_at"], name="audit_action_time_idx"),
                ],
            },
        ),
    ]
