# specimen_core/tests/test_api.py

from django.contrib.auth.models import User
from django.test import TestCase
from rest_framework.test import APIClient

from specimen_core.models import Facility, Specimen, UserRole

from .factories import eid_payload, vl_payload


class SpecimenApiTests(TestCase):
    """
    Facility isolation and the request/response contract of /etest/.

    These tests ensure:
    1. Users only see and touch their own facility's specimens
    2. Service errors surface with their HTTP status codes
    3. Single-facility users need no explicit facility context
    """

    def setUp(self):
        self.client = APIClient()

        self.fac1 = Facility.objects.create(code="HC1", name="Kisenyi HC IV", district="Kampala")
        self.fac2 = Facility.objects.create(code="HC2", name="Gulu RRH", district="Gulu")

        self.clinician1 = User.objects.create_user(username="clin1", password="pass")
        self.clinician2 = User.objects.create_user(username="clin2", password="pass")
        self.viewer = User.objects.create_user(username="viewer", password="pass")
        self.roaming = User.objects.create_user(username="roaming", password="pass")
        self.superuser = User.objects.create_superuser(
            username="admin", password="pass", email="admin@test.com"
        )

        UserRole.objects.create(user=self.clinician1, facility=self.fac1, role="Clinician")
        UserRole.objects.create(user=self.clinician2, facility=self.fac2, role="data clerk")
        UserRole.objects.create(user=self.viewer, facility=self.fac1, role="READONLY")
        UserRole.objects.create(user=self.roaming, facility=self.fac1, role="CLINICIAN")
        UserRole.objects.create(user=self.roaming, facility=self.fac2, role="CLINICIAN")

    # -----------------------------------------------------------
    # helpers
    # -----------------------------------------------------------
    def _create(self, user, program="EID", **payload):
        self.client.force_authenticate(user=user)
        data = eid_payload(**payload) if program == "EID" else vl_payload(**payload)
        data["program"] = program
        return self.client.post("/etest/specimens/", data, format="json")

    def _collect(self, user, specimen_id):
        self.client.force_authenticate(user=user)
        return self.client.post(f"/etest/specimens/{specimen_id}/collect/", {}, format="json")

    # -----------------------------------------------------------
    # auth / context
    # -----------------------------------------------------------
    def test_unauthenticated_is_rejected(self):
        resp = self.client.get("/etest/specimens/")
        self.assertIn(resp.status_code, (401, 403))

    def test_health_is_public(self):
        resp = self.client.get("/etest/health/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["status"], "ok")

    def test_whoami_lists_normalized_roles(self):
        self.client.force_authenticate(user=self.clinician2)
        resp = self.client.get("/etest/whoami/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["roles"][0]["role"], "DATA_CLERK")
        self.assertEqual(resp.data["roles"][0]["facility_id"], self.fac2.id)

    def test_multi_facility_user_must_choose(self):
        self.client.force_authenticate(user=self.roaming)
        self.assertEqual(self.client.get("/etest/specimens/").status_code, 403)

        resp = self.client.get("/etest/specimens/", HTTP_X_FACILITY=str(self.fac2.id))
        self.assertEqual(resp.status_code, 200)

        resp = self.client.get(f"/etest/specimens/?facility={self.fac1.id}")
        self.assertEqual(resp.status_code, 200)

    def test_cannot_select_foreign_facility(self):
        self.client.force_authenticate(user=self.clinician1)
        resp = self.client.get(f"/etest/specimens/?facility={self.fac2.id}")
        self.assertEqual(resp.status_code, 403)

    def test_superuser_selects_any_facility(self):
        self._create(self.clinician2)
        self.client.force_authenticate(user=self.superuser)
        resp = self.client.get(f"/etest/specimens/?facility={self.fac2.id}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["count"], 1)

    # -----------------------------------------------------------
    # create / list
    # -----------------------------------------------------------
    def test_create_returns_ids_and_position(self):
        resp = self._create(self.clinician1, sender={"senders_name": "Sr. Auma"})
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["position"], 1)

        specimen = Specimen.objects.get(pk=resp.data["specimen_id"])
        self.assertEqual(specimen.batch_id, resp.data["batch_id"])
        self.assertEqual(specimen.batch.facility_id, self.fac1.id)
        self.assertEqual(specimen.batch.senders_name, "Sr. Auma")
        self.assertEqual(specimen.created_by, self.clinician1)

    def test_create_vl_missing_dates_is_400(self):
        resp = self._create(self.clinician1, program="VL", treatment_initiation_date=None)
        self.assertEqual(resp.status_code, 400)
        self.assertIn("treatment_initiation_date", resp.data)

    def test_create_unknown_program_is_400(self):
        self.client.force_authenticate(user=self.clinician1)
        data = eid_payload()
        data["program"] = "TB"
        resp = self.client.post("/etest/specimens/", data, format="json")
        self.assertEqual(resp.status_code, 400)

    def test_readonly_role_cannot_create(self):
        resp = self._create(self.viewer)
        self.assertEqual(resp.status_code, 403)

        self.client.force_authenticate(user=self.viewer)
        self.assertEqual(self.client.get("/etest/specimens/").status_code, 200)

    def test_list_isolated_by_facility(self):
        own = self._create(self.clinician1).data["specimen_id"]
        self._create(self.clinician2)

        self.client.force_authenticate(user=self.clinician1)
        resp = self.client.get("/etest/specimens/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["count"], 1)
        self.assertEqual([r["id"] for r in resp.data["results"]], [own])
        self.assertEqual(resp.data["results"][0]["stage"], "PENDING")

    def test_list_status_filter_and_bad_params(self):
        a = self._create(self.clinician1).data["specimen_id"]
        self._create(self.clinician1)
        self._collect(self.clinician1, a)

        self.client.force_authenticate(user=self.clinician1)
        resp = self.client.get("/etest/specimens/?status=COLLECTED")
        self.assertEqual(resp.data["count"], 1)
        self.assertEqual(resp.data["results"][0]["id"], a)

        self.assertEqual(self.client.get("/etest/specimens/?status=LOST").status_code, 400)
        self.assertEqual(self.client.get("/etest/specimens/?limit=500").status_code, 400)

    def test_default_page_size_follows_setting(self):
        for _ in range(3):
            self._create(self.clinician1)

        self.client.force_authenticate(user=self.clinician1)
        with self.settings(ETEST_DEFAULT_PAGE_SIZE=2):
            resp = self.client.get("/etest/specimens/")
        self.assertEqual(resp.data["count"], 3)
        self.assertEqual(resp.data["limit"], 2)
        self.assertEqual(len(resp.data["results"]), 2)

    def test_retrieve_foreign_is_403(self):
        theirs = self._create(self.clinician2).data["specimen_id"]
        self.client.force_authenticate(user=self.clinician1)
        self.assertEqual(self.client.get(f"/etest/specimens/{theirs}/").status_code, 403)
        self.assertEqual(self.client.get("/etest/specimens/999999/").status_code, 404)

    # -----------------------------------------------------------
    # collect / delete
    # -----------------------------------------------------------
    def test_collect_then_delete_conflicts(self):
        sid = self._create(self.clinician1).data["specimen_id"]
        resp = self._collect(self.clinician1, sid)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["stage"], "COLLECTED")

        resp = self.client.delete(f"/etest/specimens/{sid}/")
        self.assertEqual(resp.status_code, 409)
        self.assertTrue(Specimen.objects.filter(pk=sid).exists())

    def test_delete_pending_request(self):
        sid = self._create(self.clinician1).data["specimen_id"]
        resp = self.client.delete(f"/etest/specimens/{sid}/")
        self.assertEqual(resp.status_code, 204)
        self.assertFalse(Specimen.objects.filter(pk=sid).exists())

    def test_collect_foreign_is_403(self):
        theirs = self._create(self.clinician2).data["specimen_id"]
        resp = self._collect(self.clinician1, theirs)
        self.assertEqual(resp.status_code, 403)

    # -----------------------------------------------------------
    # edit pending request
    # -----------------------------------------------------------
    def test_patch_pending_request(self):
        sid = self._create(self.clinician1, subject_name="Baby Okello").data["specimen_id"]
        resp = self.client.patch(
            f"/etest/specimens/{sid}/",
            {"subject_name": "Baby Okello Peter", "pcr": "SECOND"},
            format="json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["subject_name"], "Baby Okello Peter")
        self.assertEqual(resp.data["position"], 1)
        self.assertEqual(Specimen.objects.get(pk=sid).pcr, "SECOND")

    def test_patch_after_collection_conflicts(self):
        sid = self._create(self.clinician1, subject_name="Before").data["specimen_id"]
        self._collect(self.clinician1, sid)

        resp = self.client.patch(f"/etest/specimens/{sid}/", {"subject_name": "After"}, format="json")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(Specimen.objects.get(pk=sid).subject_name, "Before")

    def test_patch_foreign_is_403(self):
        theirs = self._create(self.clinician2).data["specimen_id"]
        self.client.force_authenticate(user=self.clinician1)
        resp = self.client.patch(f"/etest/specimens/{theirs}/", {"subject_name": "X"}, format="json")
        self.assertEqual(resp.status_code, 403)

    def test_readonly_role_cannot_patch(self):
        sid = self._create(self.clinician1).data["specimen_id"]
        self.client.force_authenticate(user=self.viewer)
        resp = self.client.patch(f"/etest/specimens/{sid}/", {"subject_name": "X"}, format="json")
        self.assertEqual(resp.status_code, 403)

    # -----------------------------------------------------------
    # lab events
    # -----------------------------------------------------------
    def test_vl_lab_events_via_api(self):
        sid = self._create(self.clinician1, program="VL").data["specimen_id"]

        resp = self.client.post(f"/etest/specimens/{sid}/receive/", {}, format="json")
        self.assertEqual(resp.status_code, 409)

        self._collect(self.clinician1, sid)
        self.assertEqual(self.client.post(f"/etest/specimens/{sid}/receive/", {}, format="json").status_code, 200)

        resp = self.client.post(f"/etest/specimens/{sid}/result/", {"result_value": "1200 copies/mL"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["result_interpretation"]["interpretation"], "Unsuppressed")

        resp = self.client.post(f"/etest/specimens/{sid}/verify/", {}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["stage"], "COMPLETED")

    # -----------------------------------------------------------
    # packages
    # -----------------------------------------------------------
    def test_packaging_flow(self):
        ids = [self._create(self.clinician1, program="VL").data["specimen_id"] for _ in range(2)]
        for sid in ids:
            self._collect(self.clinician1, sid)

        resp = self.client.get("/etest/packages/ready/")
        self.assertEqual(resp.data["count"], 2)

        resp = self.client.post(
            "/etest/packages/",
            {"package_identifier": "ENV-0001", "specimen_ids": ids},
            format="json",
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["packaged_count"], 2)

        self.assertEqual(self.client.get("/etest/packages/ready/").data["count"], 0)

        resp = self.client.get("/etest/packages/packaged/?package_identifier=ENV-0001")
        self.assertEqual(resp.data["count"], 2)
        self.assertEqual(resp.data["packages"], ["ENV-0001"])

        resp = self.client.get("/etest/packages/summary/")
        self.assertEqual(resp.data[0]["specimen_count"], 2)

        resp = self.client.post(
            "/etest/packages/",
            {"package_identifier": "ENV-0002", "specimen_ids": ids[:1]},
            format="json",
        )
        self.assertEqual(resp.status_code, 409)

    def test_packaging_foreign_specimen_is_404(self):
        theirs = self._create(self.clinician2, program="VL").data["specimen_id"]
        self._collect(self.clinician2, theirs)

        self.client.force_authenticate(user=self.clinician1)
        resp = self.client.post(
            "/etest/packages/",
            {"package_identifier": "ENV-X", "specimen_ids": [theirs]},
            format="json",
        )
        self.assertEqual(resp.status_code, 404)

    def test_packaging_blank_identifier_is_400(self):
        sid = self._create(self.clinician1, program="VL").data["specimen_id"]
        self._collect(self.clinician1, sid)
        resp = self.client.post(
            "/etest/packages/",
            {"package_identifier": "   ", "specimen_ids": [sid]},
            format="json",
        )
        self.assertEqual(resp.status_code, 400)

    # -----------------------------------------------------------
    # analytics / batches
    # -----------------------------------------------------------
    def test_time_series_endpoint(self):
        self._create(self.clinician1)
        resp = self.client.get("/etest/analytics/time-series/?range=7")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.data), 7)
        self.assertEqual(resp.data[-1]["pending_count"], 1)

        self.assertEqual(self.client.get("/etest/analytics/time-series/?range=soon").status_code, 400)

    def test_stats_endpoint(self):
        self._create(self.clinician1)
        resp = self.client.get("/etest/analytics/stats/?program=EID")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["total"], 1)
        self.assertEqual(resp.data["stages"]["PENDING"], 1)

    def test_batches_listing_scoped_and_filtered(self):
        self._create(self.clinician1)
        self._create(self.clinician2)

        self.client.force_authenticate(user=self.clinician1)
        resp = self.client.get("/etest/batches/?is_open=true")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.data["results"]), 1)
        self.assertEqual(resp.data["results"][0]["specimen_count"], 1)
        self.assertTrue(resp.data["results"][0]["is_open"])

        resp = self.client.get("/etest/batches/?is_open=false")
        self.assertEqual(len(resp.data["results"]), 0)

    def test_openapi_schema_renders(self):
        resp = self.client.get("/api/schema/")
        self.assertEqual(resp.status_code, 200)
