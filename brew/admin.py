from django.contrib import admin

from .models import BrewDownload


@admin.register(BrewDownload)
class BrewDownloadAdmin(admin.ModelAdmin):
    list_display = (
        "project",
        "version",
        "platform",
        "download_count",
        "install_count",
        "updated_at",
    )
    list_filter = ("project", "platform")
    search_fields = ("project", "version")
    readonly_fields = ("created_at", "updated_at")
    ordering = ("project", "-updated_at")
