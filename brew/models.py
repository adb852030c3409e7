from django.db import models


class BrewDownload(models.Model):
    project = models.CharField(max_length=128)
    version = models.CharField(max_length=128)
    platform = models.CharField(max_length=64)
    download_count = models.PositiveIntegerField(default=0)
    install_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "brew_downloads"
        ordering = ("project", "version", "platform")
        constraints = [
            models.UniqueConstraint(
                fields=["project", "version", "platform"],
                name="unique_brew_download",
            )
        ]
        indexes = [models.Index(fields=["project"], name="brew_downloads_project")]

    def __str__(self):
        return "%s %s (%s)" % (self.project, self.version, self.platform)
