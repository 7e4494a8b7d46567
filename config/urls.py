"""Root URL configuration for Dictask: everything is served under ``/api/``."""

from django.urls import include, path

urlpatterns = [
    path("api/", include("planner.urls")),
]
