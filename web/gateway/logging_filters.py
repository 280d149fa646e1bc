"""Logging filters for enriching log records with request context.

The filter reads the ContextVars set by ``RequestIdMiddleware`` so every
log line emitted while serving a request can be correlated with it,
without changing individual log statements.
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX, REQUEST_PATH_CTX


class RequestIdFilter(Filter):
    """Attach ``request_id`` and ``request_path`` attributes to log records.

    Outside a request both default to a hyphen ("-") so formatters can
    always reference ``%(request_id)s``.
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        record.request_path = REQUEST_PATH_CTX.get()
        return True
