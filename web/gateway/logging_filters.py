"""Logging filter injecting the current request id into log records.

Attach ``RequestIdFilter`` to a handler and every record carries
``request_id`` (``"-"`` outside a request), which the JSON formatter emits
next to the message.
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        return True
