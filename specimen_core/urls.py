# specimen_core/urls.py

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    AnalyticsViewSet,
    BatchViewSet,
    HealthCheckView,
    PackageViewSet,
    SpecimenViewSet,
    WhoAmIView,
)

app_name = "specimen_core"

# -------------------------------------------------
# Router
# -------------------------------------------------
router = DefaultRouter()
router.register(r"specimens", SpecimenViewSet, basename="specimen")
router.register(r"packages", PackageViewSet, basename="package")
router.register(r"analytics", AnalyticsViewSet, basename="analytics")
router.register(r"batches", BatchViewSet, basename="batch")


urlpatterns = [
    path("", include(router.urls)),

    # ============================================================
    # System
    # ============================================================
    path("health/", HealthCheckView.as_view(), name="health_check"),
    path("whoami/", WhoAmIView.as_view(), name="whoami"),
]
