"""
The bottle download flow as an explicit state machine:

    RECEIVED -> PARSED -> RECORDED -> RESOLVED -> REDIRECTED

A parse failure ends in REJECTED; a store or resolve failure ends in
FAILED. The increment and the URL resolution share a transaction, so a
resolve failure rolls the increment back and a committed count always
matches an issued redirect. Nothing is retried here.
"""
from dataclasses import dataclass
from typing import Optional
import enum
import logging

from django.db import transaction
from django.http import HttpResponseRedirect

from . import store
from .models import BrewDownload
from .parser import BottleIdentity, ParseError, parse
from .resolver import ResolveError, release_base_for, resolve

logger = logging.getLogger(__name__)


class TrackingState(enum.Enum):
    RECEIVED = "received"
    PARSED = "parsed"
    RECORDED = "recorded"
    RESOLVED = "resolved"
    REDIRECTED = "redirected"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class TrackingResult:
    state: TrackingState = TrackingState.RECEIVED
    identity: Optional[BottleIdentity] = None
    counter: Optional[BrewDownload] = None
    location: Optional[str] = None
    error: Optional[Exception] = None

    def advance(self, state):
        logger.debug("Tracking %s -> %s", self.state.value, state.value)
        self.state = state

    def redirect(self):
        if self.state is not TrackingState.RESOLVED:
            raise ValueError("Cannot redirect from state %s" % self.state.value)
        self.advance(TrackingState.REDIRECTED)
        return HttpResponseRedirect(self.location)


def track_download(project, filename):
    result = TrackingResult()

    try:
        result.identity = parse(project, filename)
    except ParseError as e:
        logger.warning("Rejected bottle download %s/%s: %s", project, filename, e)
        result.error = e
        result.advance(TrackingState.REJECTED)
        return result
    result.advance(TrackingState.PARSED)

    identity = result.identity
    try:
        with transaction.atomic():
            result.counter = store.increment(*identity.key)
            result.advance(TrackingState.RECORDED)
            result.location = resolve(identity, release_base_for(identity.project))
            result.advance(TrackingState.RESOLVED)
    except ResolveError as e:
        logger.error("Cannot redirect download of %s: %s", filename, e)
        result.counter = None
        result.error = e
        result.advance(TrackingState.FAILED)
        return result
    except store.StoreError as e:
        logger.exception("Failed to record download of %s", filename)
        result.counter = None
        result.error = e
        result.advance(TrackingState.FAILED)
        return result

    logger.info(
        "Recorded download of %s %s (%s), count now %d",
        identity.project,
        identity.version,
        identity.platform,
        result.counter.download_count,
    )
    return result
