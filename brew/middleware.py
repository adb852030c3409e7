import logging
import time

logger = logging.getLogger(__name__)


def request_logging_middleware(get_response):
    def middleware(request):
        start = time.monotonic()
        response = get_response(request)
        elapsed_ms = (time.monotonic() - start) * 1000
        level = logging.ERROR if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "%s %s %d %.1fms",
            request.method,
            request.get_full_path(),
            response.status_code,
            elapsed_ms,
        )
        return response

    return middleware
