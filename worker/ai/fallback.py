"""
fallback.py - Ordered fallback strategies.

A chain is a list of named strategies tried in order. Each one either
returns a value (done), returns TRY_NEXT, or raises; both of the latter
move on to the next strategy. An optional default closes the chain with a
guaranteed value; without one, the last error is re-raised.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from worker.core.errors import FallbackExhausted

logger = logging.getLogger(__name__)


class _TryNext:
    def __repr__(self) -> str:
        return "TRY_NEXT"


TRY_NEXT: Any = _TryNext()


@dataclass(frozen=True)
class Strategy:
    name: str
    call: Callable[[], Awaitable[Any]]


async def first_success(
    strategies: Sequence[Strategy],
    default: Callable[[], Any] | None = None,
) -> Any:
    last_exc: Exception | None = None
    for strategy in strategies:
        try:
            value = await strategy.call()
        except Exception as exc:
            logger.warning("Strategy '%s' failed: %s - trying next", strategy.name, exc)
            last_exc = exc
            continue
        if value is TRY_NEXT:
            logger.info("Strategy '%s' declined - trying next", strategy.name)
            continue
        return value

    if default is not None:
        return default()
    if last_exc is not None:
        raise last_exc
    raise FallbackExhausted(
        "no strategy produced a value: " + ", ".join(s.name for s in strategies)
    )
