from django.urls import path

from route_sequencer import views

urlpatterns = [
    path("api/v1/health", views.health_view, name="health"),
    path("api/v1/route", views.route_view, name="route"),
]
