from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="BrewDownload",
            fields=[
                (
                    "id",
                    models.AutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("project", models.CharField(max_length=128)),
                ("version", models.CharField(max_length=128)),
                ("platform", models.CharField(max_length=64)),
                ("download_count", models.PositiveIntegerField(default=0)),
                ("install_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "brew_downloads",
                "ordering": ("project", "version", "platform"),
            },
        ),
        migrations.AddConstraint(
            model_name="brewdownload",
            constraint=models.UniqueConstraint(
                fields=("project", "version", "platform"),
                name="unique_brew_download",
            ),
        ),
        migrations.AddIndex(
            model_name="brewdownload",
            index=models.Index(fields=["project"], name="brew_downloads_project"),
        ),
    ]
