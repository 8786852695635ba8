from __future__ import annotations
"""Fire-and-log execution of secondary side effects.

Secondary steps (history writes after a submit, thumbnail fetches during a
migration) must never fail the primary action. They run through
``fire_and_log`` which captures and logs any exception and hands back a
``SideEffectResult`` the caller may inspect.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SideEffectResult(Generic[T]):
    """Outcome of a best-effort side effect."""
    name: str
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None


async def fire_and_log(
    name: str,
    action: Callable[[], Awaitable[T]],
    **log_context: Any,
) -> SideEffectResult[T]:
    """Run ``action``; on failure log a warning and return ``ok=False``."""
    try:
        value = await action()
    except Exception as e:
        context = " ".join(f"{k}={v}" for k, v in log_context.items())
        logger.warning("Side effect %s failed (non-fatal) %s: %s", name, context, e)
        return SideEffectResult(name=name, ok=False, error=str(e) or type(e).__name__)
    return SideEffectResult(name=name, ok=True, value=value)
