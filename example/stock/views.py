from __future__ import annotations

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from stock_safe import (
    MutexDecrementer,
    OptimisticDecrementer,
    PessimisticDecrementer,
    RetryingDecrementer,
    StockSafeError,
)
from stock_safe.stores.orm import DjangoResourceStore
from stock_safe.types import Decrementer

store = DjangoResourceStore()

STRATEGIES: dict[str, Decrementer] = {
    "mutex": MutexDecrementer(store, timeout=2.0),
    "pessimistic": PessimisticDecrementer(store, timeout=2.0),
    "optimistic": RetryingDecrementer(OptimisticDecrementer(store), max_attempts=20),
}

# Error code -> HTTP status. Anything unknown is a 500.
STATUS_BY_CODE = {
    "not_found": 404,
    "insufficient_stock": 409,
    "version_conflict": 409,
    "retry_exhausted": 409,
    "lock_acquire_timeout": 409,
    "storage_failure": 503,
}


def _json(
    ok: bool, *, sku: str, qty: int | None, detail: str | None = None, status: int = 200
) -> JsonResponse:
    """
    Small helper to keep responses consistent across endpoints.
    """
    payload = {"ok": ok, "sku": sku, "qty": qty}
    if detail:
        payload["detail"] = detail
    return JsonResponse(payload, status=status)


def _amount(request: HttpRequest) -> int:
    try:
        return int(request.POST.get("amount", 1))
    except (TypeError, ValueError):
        return 0


def _buy(strategy: str, request: HttpRequest, sku: str) -> HttpResponse:
    amount = _amount(request)
    if amount <= 0:
        return _json(False, sku=sku, qty=None, detail="amount must be positive", status=400)

    try:
        result = STRATEGIES[strategy].decrement(sku, amount)
    except StockSafeError as exc:
        return _json(
            False, sku=sku, qty=None, detail=exc.code, status=STATUS_BY_CODE.get(exc.code, 500)
        )

    return _json(True, sku=sku, qty=result.quantity)


@csrf_exempt  # demo-only: curl-friendly
@require_POST
def buy_mutex(request: HttpRequest, sku: str) -> HttpResponse:
    """
    In-process lock around read-modify-write.

    Correct with a single worker process only; run two gunicorn workers and
    it oversells again.
    """
    return _buy("mutex", request, sku)


@csrf_exempt  # demo-only: curl-friendly
@require_POST
def buy_pessimistic(request: HttpRequest, sku: str) -> HttpResponse:
    """
    Row lock (SELECT ... FOR UPDATE) held for the transaction.

    Correct across workers; concurrent buyers queue behind the row lock.
    """
    return _buy("pessimistic", request, sku)


@csrf_exempt  # demo-only: curl-friendly
@require_POST
def buy_optimistic(request: HttpRequest, sku: str) -> HttpResponse:
    """
    Version-guarded UPDATE with jittered retry on conflict.
    """
    return _buy("optimistic", request, sku)
