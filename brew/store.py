"""
Durable download counters, one row per (project, version, platform).

increment() is a single INSERT ... ON CONFLICT DO UPDATE statement so
concurrent requests for the same bottle never lose an update; there is no
read-then-write anywhere. Both PostgreSQL and SQLite (3.35+) accept the
statement as written.

Every database error is re-raised as a StoreError subclass. Callers are
expected to fail the request on StoreError: retrying an increment could
double count if the first attempt committed before the error surfaced.
"""
from contextlib import contextmanager

from django.db import Error, IntegrityError, OperationalError
from django.utils import timezone

from .models import BrewDownload

UPSERT_SQL = """
INSERT INTO {table}
    (project, version, platform, download_count, install_count, created_at, updated_at)
VALUES (%s, %s, %s, 1, 1, %s, %s)
ON CONFLICT (project, version, platform) DO UPDATE SET
    download_count = {table}.download_count + 1,
    install_count = {table}.install_count + 1,
    updated_at = excluded.updated_at
RETURNING
    id, project, version, platform, download_count, install_count, created_at, updated_at
"""

# Substrings of the driver messages for statement_timeout and
# connect_timeout (PostgreSQL) and an exhausted busy timeout (SQLite)
TIMEOUT_MARKERS = (
    "statement timeout",
    "canceling statement",
    "lock timeout",
    "timeout expired",
    "database is locked",
    "database table is locked",
)


class StoreError(Exception):
    code = "store_error"
    status = 500


class StoreTimeout(StoreError):
    code = "store_timeout"
    status = 503


class StoreUnavailable(StoreError):
    code = "store_unavailable"
    status = 503


class StoreConstraintViolation(StoreError):
    code = "store_constraint_violation"


def is_timeout(error):
    message = str(error).lower()
    return any(marker in message for marker in TIMEOUT_MARKERS)


@contextmanager
def translate_errors(action):
    try:
        yield
    except IntegrityError as e:
        raise StoreConstraintViolation("%s: %s" % (action, e)) from e
    except OperationalError as e:
        if is_timeout(e):
            raise StoreTimeout("%s timed out: %s" % (action, e)) from e
        raise StoreUnavailable("%s: %s" % (action, e)) from e
    except Error as e:
        raise StoreUnavailable("%s: %s" % (action, e)) from e


def increment(project, version, platform):
    """
    Count one download of a bottle and return the updated row.

    Creates the row with both counts at 1 the first time a bottle is
    seen. Install counts are raised together with download counts: a
    redirect cannot tell the two apart.
    """
    now = timezone.now()
    sql = UPSERT_SQL.format(table=BrewDownload._meta.db_table)
    with translate_errors("Failed to increment %s %s %s" % (project, version, platform)):
        rows = list(
            BrewDownload.objects.raw(sql, [project, version, platform, now, now])
        )
    return rows[0]


def list_grouped():
    with translate_errors("Failed to fetch brew downloads"):
        return list(BrewDownload.objects.order_by("project", "version", "platform"))
