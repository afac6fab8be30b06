# specimen_core/views.py
from __future__ import annotations

from django.conf import settings
from django.db.models import Count

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .filters import BatchFilter
from .mixins import FacilityScopedQuerysetMixin
from .models import Batch, UserRole
from .permissions import IsFacilityMemberOrReadOnly, normalize_role, resolve_current_facility
from .selectors import get_specimen, list_specimens
from .serializers import (
    BatchSerializer,
    CollectSerializer,
    PackageRequestSerializer,
    PackageResultSerializer,
    PackageSummarySerializer,
    ReceiveSerializer,
    ResultSerializer,
    SpecimenCreatedSerializer,
    SpecimenCreateSerializer,
    SpecimenSerializer,
    SpecimenUpdateSerializer,
    TimeSeriesPointSerializer,
    VerifySerializer,
)
from .services import analytics, collection, lab_events, packaging
from .services.batches import create_specimen


PAGE_PARAMS = [
    OpenApiParameter("limit", int, required=False),
    OpenApiParameter("offset", int, required=False),
]


def _paged(request):
    return (
        request.query_params.get("limit", settings.ETEST_DEFAULT_PAGE_SIZE),
        request.query_params.get("offset", 0),
    )


def _page_response(result, *, limit, offset, **extra):
    payload = {
        "count": result["total"],
        "limit": int(limit),
        "offset": int(offset),
        "results": SpecimenSerializer(result["items"], many=True).data,
    }
    payload.update(extra)
    return Response(payload)


# ===============================================================
# Health / identity
# ===============================================================
class HealthCheckView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["System"])
    def get(self, request):
        facility = resolve_current_facility(request)
        payload = {"status": "ok", "service": "eTest"}
        if facility:
            payload["facility"] = {
                "id": facility.id,
                "code": facility.code,
                "name": facility.name,
            }
        return Response(payload)


class WhoAmIView(APIView):
    """Returns the authenticated user and their facility roles."""

    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["System"])
    def get(self, request):
        user = request.user
        roles = [
            {
                "facility_id": ur.facility_id,
                "facility": str(ur.facility),
                "role": normalize_role(ur.role),
            }
            for ur in (
                UserRole.objects.filter(user=user)
                .select_related("facility")
                .order_by("facility__id", "role")
            )
        ]
        return Response(
            {
                "id": user.id,
                "username": user.get_username(),
                "is_superuser": bool(getattr(user, "is_superuser", False)),
                "roles": roles,
            }
        )


# ===============================================================
# Specimens
# ===============================================================
class SpecimenViewSet(viewsets.ViewSet):
    """
    Specimen requests for the active facility.

    Every mutation goes through a service function; the view only parses
    input and renders output.
    """

    permission_classes = [IsAuthenticated, IsFacilityMemberOrReadOnly]

    @extend_schema(
        tags=["Specimens"],
        parameters=PAGE_PARAMS + [
            OpenApiParameter("status", str, required=False),
            OpenApiParameter("search", str, required=False),
            OpenApiParameter("program", str, required=False),
        ],
        responses=SpecimenSerializer(many=True),
    )
    def list(self, request):
        limit, offset = _paged(request)
        result = list_specimens(
            facility_id=request.facility.id,
            limit=limit,
            offset=offset,
            status=request.query_params.get("status"),
            search=request.query_params.get("search"),
            program=request.query_params.get("program"),
        )
        return _page_response(result, limit=limit, offset=offset)

    @extend_schema(tags=["Specimens"], responses=SpecimenSerializer)
    def retrieve(self, request, pk=None):
        specimen = get_specimen(specimen_id=pk, facility_id=request.facility.id)
        return Response(SpecimenSerializer(specimen).data)

    @extend_schema(tags=["Specimens"], request=SpecimenCreateSerializer, responses=SpecimenCreatedSerializer)
    def create(self, request):
        serializer = SpecimenCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        program = data.pop("program")
        sender = data.pop("sender", None)

        specimen = create_specimen(
            facility_id=request.facility.id,
            program=program,
            data=data,
            sender=sender,
            user=request.user,
        )
        return Response(
            {
                "specimen_id": specimen.id,
                "batch_id": specimen.batch_id,
                "position": specimen.position,
            },
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(tags=["Specimens"], request=SpecimenUpdateSerializer, responses=SpecimenSerializer)
    def partial_update(self, request, pk=None):
        serializer = SpecimenUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        specimen = collection.update_request(
            specimen_id=pk,
            facility_id=request.facility.id,
            data=serializer.validated_data,
            user=request.user,
        )
        return Response(SpecimenSerializer(specimen).data)

    @extend_schema(tags=["Specimens"])
    def destroy(self, request, pk=None):
        collection.delete_request(specimen_id=pk, facility_id=request.facility.id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(tags=["Specimens"], request=CollectSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def collect(self, request, pk=None):
        serializer = CollectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        specimen = collection.collect(
            specimen_id=pk,
            facility_id=request.facility.id,
            collected_at=serializer.validated_data.get("collected_at"),
            barcode=serializer.validated_data.get("barcode"),
            user=request.user,
        )
        return Response(SpecimenSerializer(specimen).data)

    @extend_schema(tags=["Lab events"], request=ReceiveSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def receive(self, request, pk=None):
        serializer = ReceiveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        specimen = lab_events.mark_received(
            specimen_id=pk,
            facility_id=request.facility.id,
            received_at=serializer.validated_data.get("received_at"),
            user=request.user,
        )
        return Response(SpecimenSerializer(specimen).data)

    @extend_schema(tags=["Lab events"], request=ResultSerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def result(self, request, pk=None):
        serializer = ResultSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        specimen = lab_events.record_result(
            specimen_id=pk,
            facility_id=request.facility.id,
            user=request.user,
            **serializer.validated_data,
        )
        return Response(SpecimenSerializer(specimen).data)

    @extend_schema(tags=["Lab events"], request=VerifySerializer, responses=SpecimenSerializer)
    @action(detail=True, methods=["post"])
    def verify(self, request, pk=None):
        serializer = VerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        specimen = lab_events.verify_result(
            specimen_id=pk,
            facility_id=request.facility.id,
            verified_at=serializer.validated_data.get("verified_at"),
            user=request.user,
        )
        return Response(SpecimenSerializer(specimen).data)


# ===============================================================
# Packages
# ===============================================================
class PackageViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated, IsFacilityMemberOrReadOnly]

    @extend_schema(tags=["Packages"], request=PackageRequestSerializer, responses=PackageResultSerializer)
    def create(self, request):
        serializer = PackageRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = packaging.package_specimens(
            facility_id=request.facility.id,
            package_identifier=serializer.validated_data["package_identifier"],
            specimen_ids=serializer.validated_data["specimen_ids"],
            user=request.user,
        )
        return Response(result, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Packages"], parameters=PAGE_PARAMS, responses=SpecimenSerializer(many=True))
    @action(detail=False, methods=["get"])
    def ready(self, request):
        limit, offset = _paged(request)
        result = packaging.list_ready_for_packaging(
            facility_id=request.facility.id, limit=limit, offset=offset
        )
        return _page_response(result, limit=limit, offset=offset)

    @extend_schema(
        tags=["Packages"],
        parameters=PAGE_PARAMS + [OpenApiParameter("package_identifier", str, required=False)],
        responses=SpecimenSerializer(many=True),
    )
    @action(detail=False, methods=["get"])
    def packaged(self, request):
        limit, offset = _paged(request)
        result = packaging.list_packaged(
            facility_id=request.facility.id,
            package_identifier=request.query_params.get("package_identifier"),
            limit=limit,
            offset=offset,
        )
        return _page_response(result, limit=limit, offset=offset, packages=result["packages"])

    @extend_schema(tags=["Packages"], responses=PackageSummarySerializer(many=True))
    @action(detail=False, methods=["get"])
    def summary(self, request):
        rows = packaging.package_summary(facility_id=request.facility.id)
        return Response(PackageSummarySerializer(rows, many=True).data)


# ===============================================================
# Analytics
# ===============================================================
class AnalyticsViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated, IsFacilityMemberOrReadOnly]

    @extend_schema(
        tags=["Analytics"],
        parameters=[
            OpenApiParameter("range", str, required=False, description="Days, or 'all'"),
            OpenApiParameter("program", str, required=False),
        ],
        responses=TimeSeriesPointSerializer(many=True),
    )
    @action(detail=False, methods=["get"], url_path="time-series")
    def time_series(self, request):
        series = analytics.build_time_series(
            facility_id=request.facility.id,
            range_days=request.query_params.get("range", 30),
            program=request.query_params.get("program"),
        )
        return Response(series)

    @extend_schema(tags=["Analytics"], parameters=[OpenApiParameter("program", str, required=True)])
    @action(detail=False, methods=["get"])
    def stats(self, request):
        return Response(
            analytics.dashboard_stats(
                facility_id=request.facility.id,
                program=request.query_params.get("program"),
            )
        )


# ===============================================================
# Batches (read-only)
# ===============================================================
class BatchViewSet(FacilityScopedQuerysetMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = BatchSerializer
    permission_classes = [IsAuthenticated, IsFacilityMemberOrReadOnly]
    filterset_class = BatchFilter

    def get_queryset(self):
        qs = Batch.objects.annotate(specimen_count=Count("specimens"))
        return self.get_scoped_queryset(qs)
