from concurrent.futures import ThreadPoolExecutor
from io import StringIO
from unittest import mock
import json

from django.core.management import call_command
from django.db import IntegrityError, OperationalError, connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings

from config.settings import bound_database_calls, init_sentry

from . import store
from .factories import BrewDownloadFactory
from .models import BrewDownload
from .parser import (
    BottleIdentity,
    InvalidProjectSlug,
    MalformedVersion,
    UnrecognizedFilename,
    parse,
)
from .resolver import UnknownProject, release_base_for, resolve
from .stats import build


class ParserTests(SimpleTestCase):
    def test_parses_arm64_bottle(self):
        identity = parse("rona", "rona-2.17.7.arm64_sequoia.bottle.tar.gz")
        self.assertEqual(
            identity,
            BottleIdentity(project="rona", version="2.17.7", platform="arm64_sequoia"),
        )

    def test_parses_other_platforms(self):
        for filename, version, platform in (
            ("rona-2.17.7.x86_64_linux.bottle.tar.gz", "2.17.7", "x86_64_linux"),
            ("rona-2.17.7.sequoia.bottle.tar.gz", "2.17.7", "sequoia"),
            ("rona-1.0.0_1.big_sur.bottle.tar.gz", "1.0.0_1", "big_sur"),
            ("rona-2.17.7-arm64_linux.bottle.tar.gz", "2.17.7", "arm64_linux"),
        ):
            identity = parse("rona", filename)
            self.assertEqual(identity.version, version)
            self.assertEqual(identity.platform, platform)

    def test_project_with_dashes(self):
        identity = parse(
            "clean-dev-dirs", "clean-dev-dirs-3.1.0.arm64_sonoma.bottle.tar.gz"
        )
        self.assertEqual(identity.project, "clean-dev-dirs")
        self.assertEqual(identity.version, "3.1.0")
        self.assertEqual(identity.platform, "arm64_sonoma")

    def test_parse_is_deterministic(self):
        filename = "rona-2.17.7.arm64_sequoia.bottle.tar.gz"
        self.assertEqual(parse("rona", filename), parse("rona", filename))
        errors = []
        for _ in range(2):
            with self.assertRaises(UnrecognizedFilename) as cm:
                parse("rona", "rona-2.17.7.windows.bottle.tar.gz")
            errors.append(str(cm.exception))
        self.assertEqual(errors[0], errors[1])

    def test_unknown_platform_rejected(self):
        with self.assertRaises(UnrecognizedFilename):
            parse("rona", "rona-2.17.7.windows.bottle.tar.gz")

    @override_settings(BREW_EXTRA_PLATFORM_TAGS=["windows"])
    def test_extra_platform_tags(self):
        identity = parse("rona", "rona-2.17.7.windows.bottle.tar.gz")
        self.assertEqual(identity.platform, "windows")

    def test_unrecognized_filenames(self):
        for filename in (
            "rona-2.17.7.arm64_sequoia.tar.gz",
            "rona-2.17.7.arm64_sequoia.bottle.zip",
            "other-2.17.7.arm64_sequoia.bottle.tar.gz",
            "rona.bottle.tar.gz",
            "",
        ):
            with self.assertRaises(UnrecognizedFilename):
                parse("rona", filename)

    def test_malformed_versions(self):
        for filename in (
            "rona-arm64_sequoia.bottle.tar.gz",
            "rona-.arm64_sequoia.bottle.tar.gz",
            "rona-total_downloads.arm64_sequoia.bottle.tar.gz",
            "rona-.2.17.arm64_sequoia.bottle.tar.gz",
        ):
            with self.assertRaises(MalformedVersion):
                parse("rona", filename)

    def test_parts_longer_than_their_columns(self):
        with self.assertRaises(MalformedVersion):
            parse("rona", "rona-%s.arm64_sequoia.bottle.tar.gz" % ("1" * 129))
        long_project = "r" * 129
        with self.assertRaises(InvalidProjectSlug):
            parse(long_project, "%s-1.0.0.arm64_sequoia.bottle.tar.gz" % long_project)
        long_tag = "arm64_" + "x" * 64
        with override_settings(BREW_EXTRA_PLATFORM_TAGS=[long_tag]):
            with self.assertRaises(UnrecognizedFilename):
                parse("rona", "rona-1.0.0.%s.bottle.tar.gz" % long_tag)
        # Exactly at the limit is fine
        identity = parse("rona", "rona-%s.arm64_sequoia.bottle.tar.gz" % ("1" * 128))
        self.assertEqual(len(identity.version), 128)

    def test_invalid_project_slugs(self):
        for slug in ("", "..", "../rona", "ro/na", "ro\\na", "rona..x", " rona"):
            with self.assertRaises(InvalidProjectSlug):
                parse(slug, "rona-2.17.7.arm64_sequoia.bottle.tar.gz")

    def test_error_codes(self):
        self.assertEqual(InvalidProjectSlug.code, "invalid_project")
        self.assertEqual(UnrecognizedFilename.code, "unrecognized_filename")
        self.assertEqual(MalformedVersion.code, "malformed_version")
        for cls in (InvalidProjectSlug, UnrecognizedFilename, MalformedVersion):
            self.assertEqual(cls.status, 400)


class ResolverTests(SimpleTestCase):
    def test_resolve(self):
        identity = parse("rona", "rona-2.17.7.arm64_sequoia.bottle.tar.gz")
        self.assertEqual(
            resolve(identity, "https://github.com/rona-rs/rona"),
            "https://github.com/rona-rs/rona/releases/download/v2.17.7/"
            "rona-2.17.7.arm64_sequoia.bottle.tar.gz",
        )

    def test_trailing_slash_on_base(self):
        identity = BottleIdentity("rona", "1.0.0", "x86_64_linux")
        self.assertEqual(
            resolve(identity, "https://example.com/rona/"),
            "https://example.com/rona/releases/download/v1.0.0/"
            "rona-1.0.0.x86_64_linux.bottle.tar.gz",
        )

    def test_resolved_url_contains_version_and_platform(self):
        for project, version, platform in (
            ("rona", "2.17.7", "arm64_sequoia"),
            ("rona", "0.1.0_2", "x86_64_linux"),
            ("clean-dev-dirs", "3.1.0", "ventura"),
        ):
            filename = "%s-%s.%s.bottle.tar.gz" % (project, version, platform)
            identity = parse(project, filename)
            url = resolve(identity, release_base_for(project))
            self.assertIn(version, url)
            self.assertIn(platform, url)
            self.assertTrue(url.endswith("/" + filename))

    def test_release_base_for_unknown_project(self):
        with self.assertRaises(UnknownProject):
            release_base_for("nope")

    @override_settings(BREW_RELEASE_BASES={"nope": "https://example.com/nope"})
    def test_release_base_from_settings(self):
        self.assertEqual(release_base_for("nope"), "https://example.com/nope")
        with self.assertRaises(UnknownProject):
            release_base_for("rona")


class BuildTests(SimpleTestCase):
    def test_empty(self):
        self.assertEqual(build([]).as_json(), {})

    def test_groups_by_project_and_version(self):
        rows = [
            BrewDownload(project="rona", version="2.17.7", platform="arm64_sequoia",
                         download_count=3, install_count=3),
            BrewDownload(project="rona", version="2.17.7", platform="x86_64_linux",
                         download_count=2, install_count=2),
            BrewDownload(project="rona", version="2.17.6", platform="sonoma",
                         download_count=1, install_count=1),
            BrewDownload(project="clean-dev-dirs", version="3.1.0", platform="sequoia",
                         download_count=4, install_count=4),
        ]
        stats = build(rows)
        self.assertEqual(set(stats), {"rona", "clean-dev-dirs"})
        rona = stats["rona"]
        self.assertEqual(rona.versions["2.17.7"].downloads, 5)
        self.assertEqual(rona.versions["2.17.6"].downloads, 1)
        self.assertEqual(rona.total_downloads, 6)
        self.assertEqual(rona.total_installs, 6)
        self.assertEqual(
            stats.as_json()["rona"],
            {
                "total_downloads": 6,
                "total_installs": 6,
                "2.17.7": {"downloads": 5, "installs": 5},
                "2.17.6": {"downloads": 1, "installs": 1},
            },
        )
        self.assertEqual(stats["clean-dev-dirs"].total_downloads, 4)

    def test_installs_summed_separately(self):
        rows = [
            BrewDownload(project="rona", version="1.0.0", platform="sonoma",
                         download_count=5, install_count=2),
            BrewDownload(project="rona", version="1.0.1", platform="sonoma",
                         download_count=1, install_count=1),
        ]
        rona = build(rows)["rona"]
        self.assertEqual(rona.total_downloads, 6)
        self.assertEqual(rona.total_installs, 3)


class StoreTests(TestCase):
    def test_increment_creates_row(self):
        row = store.increment("rona", "2.17.7", "arm64_sequoia")
        self.assertEqual(row.download_count, 1)
        self.assertEqual(row.install_count, 1)
        self.assertEqual(1, BrewDownload.objects.count())
        db_row = BrewDownload.objects.get()
        self.assertEqual(db_row.pk, row.pk)
        self.assertEqual(db_row.project, "rona")
        self.assertEqual(db_row.version, "2.17.7")
        self.assertEqual(db_row.platform, "arm64_sequoia")

    def test_increment_existing_row(self):
        first = store.increment("rona", "2.17.7", "arm64_sequoia")
        second = store.increment("rona", "2.17.7", "arm64_sequoia")
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(second.download_count, 2)
        self.assertEqual(second.install_count, 2)
        self.assertEqual(second.created_at, first.created_at)
        self.assertGreaterEqual(second.updated_at, first.updated_at)
        self.assertEqual(1, BrewDownload.objects.count())

    def test_n_increments(self):
        for _ in range(25):
            store.increment("rona", "2.17.7", "x86_64_linux")
        self.assertEqual(BrewDownload.objects.get().download_count, 25)

    def test_platforms_are_separate_rows(self):
        store.increment("rona", "2.17.7", "arm64_sequoia")
        store.increment("rona", "2.17.7", "x86_64_linux")
        store.increment("rona", "2.17.8", "x86_64_linux")
        self.assertEqual(3, BrewDownload.objects.count())

    def test_list_grouped_is_ordered(self):
        store.increment("rona", "2.17.8", "x86_64_linux")
        store.increment("clean-dev-dirs", "3.1.0", "sonoma")
        store.increment("rona", "2.17.7", "x86_64_linux")
        store.increment("rona", "2.17.7", "arm64_sequoia")
        self.assertEqual(
            [(row.project, row.version, row.platform) for row in store.list_grouped()],
            [
                ("clean-dev-dirs", "3.1.0", "sonoma"),
                ("rona", "2.17.7", "arm64_sequoia"),
                ("rona", "2.17.7", "x86_64_linux"),
                ("rona", "2.17.8", "x86_64_linux"),
            ],
        )

    def test_totals_match_versions(self):
        BrewDownloadFactory(version="1.0.0", platform="sonoma", download_count=3)
        BrewDownloadFactory(version="1.0.0", platform="x86_64_linux", download_count=4)
        BrewDownloadFactory(version="1.1.0", download_count=7)
        BrewDownloadFactory(project="clean-dev-dirs", version="0.9.0", download_count=2)
        for project in build(store.list_grouped()).values():
            self.assertEqual(
                project.total_downloads,
                sum(v.downloads for v in project.versions.values()),
            )
            self.assertEqual(
                project.total_installs,
                sum(v.installs for v in project.versions.values()),
            )

    def test_timeout_becomes_store_timeout(self):
        error = OperationalError("canceling statement due to statement timeout")
        with mock.patch.object(BrewDownload.objects, "raw", side_effect=error):
            with self.assertRaises(store.StoreTimeout) as cm:
                store.increment("rona", "2.17.7", "arm64_sequoia")
        self.assertIs(cm.exception.__cause__, error)
        self.assertEqual(cm.exception.status, 503)

    def test_locked_database_becomes_store_timeout(self):
        error = OperationalError("database is locked")
        with mock.patch.object(BrewDownload.objects, "raw", side_effect=error):
            with self.assertRaises(store.StoreTimeout):
                store.increment("rona", "2.17.7", "arm64_sequoia")

    def test_locked_table_becomes_store_timeout(self):
        error = OperationalError("database table is locked: brew_downloads")
        with mock.patch.object(BrewDownload.objects, "raw", side_effect=error):
            with self.assertRaises(store.StoreTimeout):
                store.increment("rona", "2.17.7", "arm64_sequoia")

    def test_connect_timeout_becomes_store_timeout(self):
        error = OperationalError("connection to server failed: timeout expired")
        with mock.patch.object(BrewDownload.objects, "raw", side_effect=error):
            with self.assertRaises(store.StoreTimeout):
                store.increment("rona", "2.17.7", "arm64_sequoia")

    def test_connection_error_becomes_store_unavailable(self):
        error = OperationalError("could not connect to server")
        with mock.patch.object(BrewDownload.objects, "raw", side_effect=error):
            with self.assertRaises(store.StoreUnavailable):
                store.increment("rona", "2.17.7", "arm64_sequoia")

    def test_integrity_error_becomes_constraint_violation(self):
        error = IntegrityError("CHECK constraint failed")
        with mock.patch.object(BrewDownload.objects, "raw", side_effect=error):
            with self.assertRaises(store.StoreConstraintViolation):
                store.increment("rona", "2.17.7", "arm64_sequoia")

    def test_list_grouped_errors(self):
        error = OperationalError("server closed the connection unexpectedly")
        with mock.patch.object(BrewDownload.objects, "order_by", side_effect=error):
            with self.assertRaises(store.StoreUnavailable):
                store.list_grouped()


class ConcurrentIncrementTests(TransactionTestCase):
    def test_no_lost_updates(self):
        def hit(_):
            try:
                store.increment("rona", "2.17.7", "arm64_sequoia")
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(hit, range(50)))
        row = BrewDownload.objects.get()
        self.assertEqual(row.download_count, 50)
        self.assertEqual(row.install_count, 50)


class TrackViewTests(TestCase):
    url = "/brew/track/rona/rona-2.17.7.arm64_sequoia.bottle.tar.gz"

    def test_track_redirects_and_counts(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 302)
        self.assertEqual(
            response["Location"],
            "https://github.com/rona-rs/rona/releases/download/v2.17.7/"
            "rona-2.17.7.arm64_sequoia.bottle.tar.gz",
        )
        row = BrewDownload.objects.get()
        self.assertEqual(
            (row.project, row.version, row.platform, row.download_count),
            ("rona", "2.17.7", "arm64_sequoia", 1),
        )

    def test_track_is_not_cached(self):
        response = self.client.get(self.url)
        self.assertIn("no-store", response["Cache-Control"])

    def test_two_downloads_show_up_in_stats(self):
        url = "/brew/track/rona/rona-2.17.7.x86_64_linux.bottle.tar.gz"
        self.assertEqual(self.client.get(url).status_code, 302)
        self.assertEqual(self.client.get(url).status_code, 302)
        data = self.client.get("/brew/stats").json()["data"]
        self.assertEqual(data["rona"]["total_downloads"], 2)
        self.assertEqual(data["rona"]["total_installs"], 2)
        self.assertEqual(data["rona"]["2.17.7"], {"downloads": 2, "installs": 2})

    def test_unknown_platform_is_rejected(self):
        response = self.client.get(
            "/brew/track/rona/rona-2.17.7.windows.bottle.tar.gz"
        )
        self.assertEqual(response.status_code, 400)
        self.assertNotIn("Location", response)
        self.assertEqual(response.json()["error"]["code"], "unrecognized_filename")
        self.assertEqual(0, BrewDownload.objects.count())

    def test_malformed_version_is_rejected(self):
        response = self.client.get("/brew/track/rona/rona-.sequoia.bottle.tar.gz")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "malformed_version")
        self.assertEqual(0, BrewDownload.objects.count())

    def test_unknown_project_fails_without_counting(self):
        response = self.client.get(
            "/brew/track/mystery/mystery-1.0.0.arm64_sequoia.bottle.tar.gz"
        )
        self.assertEqual(response.status_code, 500)
        self.assertNotIn("Location", response)
        self.assertEqual(
            response.json(),
            {"error": {"code": "unknown_project", "message": "Internal server error"}},
        )
        self.assertEqual(0, BrewDownload.objects.count())

    def test_store_timeout_does_not_redirect(self):
        with mock.patch(
            "brew.store.increment", side_effect=store.StoreTimeout("timed out")
        ):
            response = self.client.get(self.url)
        self.assertEqual(response.status_code, 503)
        self.assertNotIn("Location", response)
        self.assertEqual(response.json()["error"]["code"], "store_timeout")
        self.assertEqual(0, BrewDownload.objects.count())
        # Only a retry from the client gets the download counted
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 302)
        self.assertEqual(BrewDownload.objects.get().download_count, 1)

    def test_oversized_version_is_rejected(self):
        response = self.client.get(
            "/brew/track/rona/rona-%s.arm64_sequoia.bottle.tar.gz" % ("1" * 300)
        )
        self.assertEqual(response.status_code, 400)
        self.assertNotIn("Location", response)
        self.assertEqual(response.json()["error"]["code"], "malformed_version")
        self.assertEqual(0, BrewDownload.objects.count())

    def test_dash_before_platform_redirects_to_published_name(self):
        response = self.client.get(
            "/brew/track/rona/rona-2.17.7-x86_64_linux.bottle.tar.gz"
        )
        self.assertEqual(response.status_code, 302)
        self.assertEqual(
            response["Location"],
            "https://github.com/rona-rs/rona/releases/download/v2.17.7/"
            "rona-2.17.7.x86_64_linux.bottle.tar.gz",
        )
        self.assertEqual(BrewDownload.objects.get().platform, "x86_64_linux")

    def test_post_not_allowed(self):
        response = self.client.post(self.url)
        self.assertEqual(response.status_code, 405)
        self.assertEqual(0, BrewDownload.objects.count())

    def test_tracking_logs(self):
        with self.assertLogs("brew.tracking", "INFO") as logs:
            self.client.get(self.url)
            self.client.get("/brew/track/rona/rona-2.17.7.windows.bottle.tar.gz")
        self.assertIn("Recorded download of rona 2.17.7 (arm64_sequoia)", logs.output[0])
        self.assertTrue(logs.output[1].startswith("WARNING:brew.tracking:Rejected"))


class StatsViewTests(TestCase):
    def test_empty_stats(self):
        response = self.client.get("/brew/stats")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"data": {}})

    def test_stats(self):
        BrewDownloadFactory(version="2.17.7", platform="arm64_sequoia", download_count=3)
        BrewDownloadFactory(version="2.17.7", platform="x86_64_linux", download_count=1)
        BrewDownloadFactory(version="2.17.6", platform="sonoma", download_count=2)
        BrewDownloadFactory(project="clean-dev-dirs", version="3.1.0", download_count=5)
        response = self.client.get("/brew/stats")
        self.assertEqual(response.status_code, 200)
        self.assertIn("no-cache", response["Cache-Control"])
        self.assertEqual(
            response.json(),
            {
                "data": {
                    "clean-dev-dirs": {
                        "total_downloads": 5,
                        "total_installs": 5,
                        "3.1.0": {"downloads": 5, "installs": 5},
                    },
                    "rona": {
                        "total_downloads": 6,
                        "total_installs": 6,
                        "2.17.6": {"downloads": 2, "installs": 2},
                        "2.17.7": {"downloads": 4, "installs": 4},
                    },
                }
            },
        )

    def test_stats_store_failure(self):
        with mock.patch(
            "brew.store.list_grouped",
            side_effect=store.StoreUnavailable("connection lost"),
        ):
            response = self.client.get("/brew/stats")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"]["code"], "store_unavailable")


class SettingsTests(SimpleTestCase):
    def test_postgresql_calls_are_bounded(self):
        database = bound_database_calls(
            {"ENGINE": "django.db.backends.postgresql", "NAME": "brew"}, 3000
        )
        self.assertEqual(database["OPTIONS"]["options"], "-c statement_timeout=3000")
        self.assertEqual(database["OPTIONS"]["connect_timeout"], 3)
        database = bound_database_calls(
            {"ENGINE": "django.db.backends.postgresql", "NAME": "brew"}, 500
        )
        self.assertEqual(database["OPTIONS"]["connect_timeout"], 2)

    def test_sqlite_calls_are_bounded(self):
        database = bound_database_calls(
            {"ENGINE": "django.db.backends.sqlite3", "NAME": "db.sqlite3"}, 3000
        )
        self.assertEqual(database["OPTIONS"]["timeout"], 3)
        self.assertTrue(database["TEST"]["NAME"].endswith("test_db.sqlite3"))

    def test_default_test_database_is_a_file(self):
        if connection.vendor == "sqlite":
            self.assertNotIn("memory", connection.settings_dict["NAME"])

    def test_sentry_only_with_dsn(self):
        with mock.patch("config.settings.sentry_sdk.init") as init:
            self.assertFalse(init_sentry(None))
            self.assertFalse(init_sentry(""))
            init.assert_not_called()
            self.assertTrue(init_sentry("https://key@sentry.example.com/1", "abc123"))
        init.assert_called_once()
        self.assertEqual(init.call_args.kwargs["dsn"], "https://key@sentry.example.com/1")
        self.assertEqual(init.call_args.kwargs["release"], "abc123")


class MiscTests(TestCase):
    def test_index(self):
        response = self.client.get("/")
        self.assertEqual(response.json(), {"data": {"message": "ok"}})

    def test_request_logging(self):
        with self.assertLogs("brew.middleware", "INFO") as logs:
            self.client.get("/brew/stats")
        self.assertEqual(len(logs.output), 1)
        self.assertIn("GET /brew/stats 200", logs.output[0])

    def test_brew_stats_command(self):
        BrewDownloadFactory(version="1.0.0", download_count=2)
        BrewDownloadFactory(project="clean-dev-dirs", version="3.1.0")
        out = StringIO()
        call_command("brew_stats", stdout=out)
        data = json.loads(out.getvalue())["data"]
        self.assertEqual(set(data), {"rona", "clean-dev-dirs"})
        self.assertEqual(data["rona"]["total_downloads"], 2)
        out = StringIO()
        call_command("brew_stats", project="rona", stdout=out)
        self.assertEqual(set(json.loads(out.getvalue())["data"]), {"rona"})
