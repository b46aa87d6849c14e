# storefront/metrics.py
from __future__ import annotations

import os

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, generate_latest, multiprocess


# reservation ledger
RESERVATION_OPS = Counter(
    "stock_reservation_ops_total",
    "Reservation ledger operations",
    ["op", "outcome"],
)
RESERVATION_CONFLICTS = Counter(
    "stock_reservation_cas_conflicts_total",
    "Optimistic write conflicts on reserved_quantity",
)

# expiry sweep
SWEEP_RELEASED = Counter(
    "stock_reservation_sweep_released_total",
    "Expired cart lines whose hold was released by the sweep",
)
SWEEP_RELEASED_UNITS = Counter(
    "stock_reservation_sweep_released_units_total",
    "Units returned to stock by the sweep",
)
SWEEP_FAILURES = Counter(
    "stock_reservation_sweep_failures_total",
    "Per-line sweep failures",
)

router = APIRouter()


@router.get("/metrics")
def metrics() -> Response:
    """
    Single process: export the default REGISTRY.
    Multi process (PROMETHEUS_MULTIPROC_DIR set): merge the shards into a fresh registry.
    """
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        payload = generate_latest(registry)
    else:
        payload = generate_latest(REGISTRY)
    return Response(payload, media_type=CONTENT_TYPE_LATEST)
