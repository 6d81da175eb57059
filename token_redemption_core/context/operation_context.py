"""
Operation context for handling cross-cutting concerns.

This module provides context management for service operations: entry/exit
logging with durations, correlation IDs and error enrichment.
"""

import time
import uuid
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Optional, TypeVar, Union, cast

from ..constants import OperationStatus
from ..exceptions import BaseError, clear_correlation_id, get_correlation_id, set_correlation_id
from ..utils.logger import ContextAwareLogger, get_logger


class OperationContext:
    """Context for a specific operation."""

    def __init__(self, operation_name: str, correlation_id: Optional[str] = None, **context):
        self.operation_name = operation_name
        self.operation_id = str(uuid.uuid4())
        self.correlation_id = correlation_id or get_correlation_id() or str(uuid.uuid4())

        self.context = context
        self.context["operation_id"] = self.operation_id
        self.context["correlation_id"] = self.correlation_id

        self.start_time = time.perf_counter()

    @property
    def duration_ms(self) -> float:
        """Get the operation duration in milliseconds."""
        return round((time.perf_counter() - self.start_time) * 1000, 3)

    def add_context(self, **kwargs) -> None:
        """Add additional context information."""
        self.context.update(kwargs)


class OperationHandler:
    """Handles operation logging and error enrichment."""

    def __init__(self, logger: Optional[ContextAwareLogger] = None):
        self.logger = logger if logger is not None else get_logger()

    @contextmanager
    def operation(self, name: str, **context):
        """Context manager for operations."""
        owns_correlation_id = get_correlation_id() is None
        op_ctx = OperationContext(name, **context)
        if owns_correlation_id:
            set_correlation_id(op_ctx.correlation_id)

        self.logger.info(f"ENTER: {name}", extra=dict(op_ctx.context))

        try:
            yield op_ctx

            self.logger.info(
                f"EXIT: {name}",
                extra={
                    **op_ctx.context,
                    "duration_ms": op_ctx.duration_ms,
                    "status": OperationStatus.SUCCESS.value,
                },
            )

        except BaseError as e:
            e.add_context(
                operation_name=name,
                operation_id=op_ctx.operation_id,
                operation_duration_ms=op_ctx.duration_ms,
            )
            log = self.logger.error if e.status_code >= 500 else self.logger.warning
            log(
                f"ERROR: {name} -> {e.error_code.value}: {e.message}",
                extra={
                    **op_ctx.context,
                    "duration_ms": op_ctx.duration_ms,
                    "error_id": e.error_id,
                    "error_type": type(e).__name__,
                    "status": OperationStatus.ERROR.value,
                },
            )
            raise

        except Exception as e:
            self.logger.exception(
                f"ERROR: {name} -> {type(e).__name__}: {str(e)}",
                extra={
                    **op_ctx.context,
                    "duration_ms": op_ctx.duration_ms,
                    "error_type": type(e).__name__,
                    "status": OperationStatus.ERROR.value,
                },
            )
            raise

        finally:
            if owns_correlation_id:
                clear_correlation_id()


F = TypeVar("F", bound=Callable[..., Any])


def operation(name: Union[Optional[str], Callable] = None):
    """
    Decorator for operations.

    Args:
        name: Optional operation name. Defaults to ``Class.method`` for methods.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            if name is not None:
                op_name = name
            elif args and hasattr(args[0], func.__name__):
                op_name = f"{args[0].__class__.__name__}.{func.__name__}"
            else:
                op_name = func.__name__

            handler = OperationHandler()
            with handler.operation(op_name, source_module=func.__module__):
                return func(*args, **kwargs)

        return cast(F, wrapper)

    # Used without parentheses
    if callable(name):
        func, name = name, None
        return decorator(func)

    return decorator
