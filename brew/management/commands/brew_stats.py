from django.core.management.base import BaseCommand, CommandError
import json

from brew import store
from brew.stats import build


class Command(BaseCommand):
    help = "Print aggregated Homebrew bottle download stats as JSON"

    def add_arguments(self, parser):
        parser.add_argument("--project", help="Only show this project")

    def handle(self, *args, **kwargs):
        try:
            rows = store.list_grouped()
        except store.StoreError as e:
            raise CommandError(str(e))
        project = kwargs.get("project")
        if project:
            rows = [row for row in rows if row.project == project]
        self.stdout.write(json.dumps({"data": build(rows).as_json()}, indent=2))
