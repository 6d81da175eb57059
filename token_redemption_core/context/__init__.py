from .operation_context import OperationContext, OperationHandler, operation
from .unit_of_work import UnitOfWork

__all__ = ["OperationContext", "OperationHandler", "UnitOfWork", "operation"]
