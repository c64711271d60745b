"""
Cascading strategy combinator
-----------------------------

Geocoding, store discovery and store-number resolution all follow the same shape:
an ordered list of interchangeable strategies, tried one after another until one
produces a usable answer. `run_cascade` is that loop, written once.

A strategy is any object with a `name` attribute and an
`attempt(value, cancel) -> result` method. It signals failure by raising one of
`RECOVERABLE_ERRORS`; anything else (including `SearchCancelled`) propagates.
"""

from typing import Any, Callable, Optional, Sequence, Type

from ..utils.cancel import CancelToken
from ..utils.logger import logger
from .errors import RECOVERABLE_ERRORS, CascadeExhausted

_MISSING = object()


def run_cascade(
        strategies: Sequence[Any],
        value: Any,
        *,
        operation: str,
        accept: Optional[Callable[[Any], bool]] = None,
        cancel: Optional[CancelToken] = None,
        error_cls: Type[CascadeExhausted] = CascadeExhausted,
        search_id: Optional[str] = None,
        ) -> Any:
    """
    Try `strategies` in order and return the first accepted result.

    Args:
        strategies: Ordered strategies, most authoritative first.
        value:      Input handed to every strategy.
        operation:  Label used in logs and in the raised error.
        accept:     Optional predicate; a result it rejects is remembered and the
                    next strategy is tried.
        cancel:     Token checked before every strategy.
        error_cls:  CascadeExhausted subclass raised when every strategy raised.
        search_id:  Correlation id for the log entries.

    Returns:
        The first accepted result or, when none was accepted, the last result that
        completed without raising.

    Raises:
        error_cls: If every strategy raised a recoverable error. The last error is
                   chained as `__cause__`.
    """
    cancel = cancel or CancelToken()
    errors = []
    completed = _MISSING

    for strategy in strategies:
        cancel.raise_if_cancelled()
        logger.debug(f"Trying {operation} strategy", extra={
            "operation": operation,
            "search_id": search_id,
            "strategy": strategy.name
        })
        try:
            result = strategy.attempt(value, cancel)
        except RECOVERABLE_ERRORS as e:
            errors.append((strategy.name, e))
            logger.warning(f"{operation} strategy failed: {e}", extra={
                "operation": operation,
                "search_id": search_id,
                "strategy": strategy.name,
                "error": str(e),
                "status": "failed"
            })
            continue

        if accept is None or accept(result):
            logger.info(f"{operation} strategy succeeded", extra={
                "operation": operation,
                "search_id": search_id,
                "strategy": strategy.name,
                "status": "success"
            })
            return result

        completed = result
        logger.info(f"{operation} strategy returned nothing usable", extra={
            "operation": operation,
            "search_id": search_id,
            "strategy": strategy.name,
            "status": "empty"
        })

    if completed is not _MISSING:
        return completed

    exhausted = error_cls(operation, errors)
    raise exhausted from exhausted.last_error
