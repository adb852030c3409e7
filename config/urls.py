from django.urls import path, include
from django.contrib import admin
from brew import views as brew_views


urlpatterns = [
    path("", brew_views.index),
    path("brew/", include("brew.urls")),
    path("admin/", admin.site.urls),
]
