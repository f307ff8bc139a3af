"""
Best-effort side effects.

Secondary bookkeeping (activity log rows, email log rows, the estimate's
back-reference to its invoice, automatic invoicing on signature) must never
undo or fail the primary write that triggered it. Callers route such work
through ``run_best_effort`` and get a ``SideEffectResult`` back instead of an
exception.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class SideEffectResult:
    """Outcome of a best-effort call."""
    name: str
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None

    def __bool__(self):
        return self.ok


def run_best_effort(name: str, func: Callable, *args, session=None, **kwargs) -> SideEffectResult:
    """
    Run ``func(*args, **kwargs)`` and capture any failure.

    Args:
        name: Label used in logs (e.g. 'activity log').
        func: Callable performing the side effect.
        session: Optional SQLAlchemy session rolled back on failure, so the
            caller can keep using it.

    Returns:
        SideEffectResult with ``ok=False`` and the exception on failure.
    """
    try:
        value = func(*args, **kwargs)
    except Exception as e:
        if session is not None:
            try:
                session.rollback()
            except Exception:
                logger.exception(f"Rollback after failed side effect '{name}' also failed")
        logger.error(f"Best-effort side effect '{name}' failed: {e}")
        return SideEffectResult(name=name, ok=False, error=e)
    return SideEffectResult(name=name, ok=True, value=value)
