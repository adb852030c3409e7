from django.http import JsonResponse
from django.views.decorators.cache import never_cache
from django.views.decorators.http import require_GET
import logging

from . import store
from .stats import build
from .tracking import TrackingState, track_download

logger = logging.getLogger(__name__)


def set_no_cache(response):
    response["Cache-Control"] = "private, no-cache, no-store, must-revalidate"
    response["Pragma"] = "no-cache"
    response["Expires"] = "0"
    return response


def error_response(error):
    status = getattr(error, "status", 500)
    if status < 500:
        message = str(error)
    else:
        # Details are in the logs, not in the response
        message = "Internal server error"
    return JsonResponse(
        {"error": {"code": getattr(error, "code", "internal_error"), "message": message}},
        status=status,
    )


@require_GET
def index(request):
    return JsonResponse({"data": {"message": "ok"}})


@require_GET
def track(request, project, filename):
    result = track_download(project, filename)
    if result.state is TrackingState.RESOLVED:
        response = result.redirect()
    else:
        response = error_response(result.error)
    return set_no_cache(response)


@never_cache
@require_GET
def stats(request):
    try:
        rows = store.list_grouped()
    except store.StoreError as e:
        logger.exception("Failed to read brew download stats")
        return error_response(e)
    return JsonResponse({"data": build(rows).as_json()})
