from django.urls import path

from . import views

app_name = "brew"

urlpatterns = [
    path("track/<str:project>/<str:filename>", views.track, name="track"),
    path("stats", views.stats, name="stats"),
]
