import threading
import time
from concurrent.futures import Future
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Callable, Optional

from .config import ApplicationConfig

DEC_QUANT = Decimal("0.01")


def d2(x) -> Decimal:
    return (Decimal(str(x))).quantize(DEC_QUANT, rounding=ROUND_HALF_UP)


def to_decimal(x, default: Decimal = Decimal("0")) -> Decimal:
    if x is None or x == "":
        return default
    try:
        v = Decimal(str(x).strip())
    except (InvalidOperation, ValueError):
        return default
    return v if v.is_finite() else default


def to_int(x, default: int = 0) -> int:
    try:
        return int(str(x).strip()) if x not in (None, "") else default
    except ValueError:
        return default


def format_money(x, symbol: Optional[str] = None) -> str:
    sym = ApplicationConfig.CURRENCY_SYMBOL if symbol is None else symbol
    return f"{sym}{d2(x):,.2f}"


def now_ms() -> int:
    return int(time.time() * 1000)


def run_deferred(delay: float, fn: Callable[..., Any], *args,
                 callback: Optional[Callable[[Future], None]] = None, **kwargs) -> Future:
    """
    Run fn(*args, **kwargs) after `delay` seconds on a timer thread and return a Future
    for its result. Exceptions raised by fn are set on the future, not raised here.
    No cancellation: once scheduled, the call always runs.
    """
    fut: Future = Future()
    if callback is not None:
        fut.add_done_callback(callback)

    def _fire():
        if not fut.set_running_or_notify_cancel():
            return
        try:
            fut.set_result(fn(*args, **kwargs))
        except Exception as e:
            fut.set_exception(e)

    if delay <= 0:
        _fire()
    else:
        timer = threading.Timer(delay, _fire)
        timer.daemon = True
        timer.start()
    return fut
