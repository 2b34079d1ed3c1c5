"""Health endpoint: database reachability plus downstream breaker states.

The service is healthy when the database answers. Open circuit breakers
towards the catalog or identity services are reported but do not fail the
probe, since reads degrade gracefully without them.
"""

from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.orders.http_adapters import BreakerState, _catalog_cb, _identity_cb


def health_view(_request):
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        db_ok = False

    breakers = {
        cb.name: {"ok": cb.state != BreakerState.OPEN, "state": cb.state.value}
        for cb in (_catalog_cb, _identity_cb)
    }
    return JsonResponse(
        {"ok": db_ok, "components": {"db": {"ok": db_ok}, **breakers}},
        status=200 if db_ok else 503,
    )
