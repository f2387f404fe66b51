"""Domain-specific exceptions"""

from typing import Any, Dict, List, Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    code = "DOMAIN_ERROR"

    def __init__(self, message: str, **data: Any):
        super().__init__(message)
        self.message = message
        self.data: Dict[str, Any] = data

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.data}


class NotFoundError(DomainException):
    """Referenced account, schedule, payment or transaction does not exist"""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, id=str(entity_id))


class CurrencyMismatchError(DomainException):
    """Two entities expected to share a currency do not"""

    code = "CURRENCY_MISMATCH"


class UnsupportedCurrencyError(DomainException):
    """Currency code is outside the supported set"""

    code = "UNSUPPORTED_CURRENCY"


class AllocationExceedsPaymentError(DomainException):
    """Allocations would exceed the payment amount"""

    code = "ALLOCATION_EXCEEDS_PAYMENT"


class AllocationExceedsScheduleError(DomainException):
    """Allocations would push a schedule past its target amount"""

    code = "ALLOCATION_EXCEEDS_SCHEDULE"


class InvalidAmountError(DomainException):
    """Amount is not a positive integer number of minor units"""

    code = "INVALID_AMOUNT"


class InactiveAccountError(DomainException):
    """Money account is deactivated"""

    code = "INACTIVE_ACCOUNT"


class ScheduleTotalMismatchError(DomainException):
    """Installment plan does not sum to the quote total"""

    code = "SCHEDULE_TOTAL_MISMATCH"


class InvalidTransactionError(DomainException):
    """Journal entry is malformed (no account, same source and destination, ...)"""

    code = "INVALID_TRANSACTION"


class ImmutableTransactionError(DomainException):
    """Journal entries cannot be updated or deleted"""

    code = "IMMUTABLE_TRANSACTION"


class PaymentStateError(DomainException):
    """Operation is not allowed in the payment's current status"""

    code = "INVALID_PAYMENT_STATE"


class ScheduleCancelledError(DomainException):
    """Schedule was cancelled and accepts no further allocations"""

    code = "SCHEDULE_CANCELLED"


class PlanAlreadyExistsError(DomainException):
    """Quote already has an installment plan"""

    code = "PLAN_ALREADY_EXISTS"


class OperationAbortedError(DomainException):
    """Storage transaction failed; nothing was committed"""

    code = "OPERATION_ABORTED"


class ValidationAlertError(DomainException):
    """A business-rule check raised at least one ERROR-level alert"""

    code = "VALIDATION_ALERT"

    def __init__(self, alerts: List[Any], message: Optional[str] = None):
        blocking = [a for a in alerts if a.is_blocking]
        super().__init__(
            message or "; ".join(a.message for a in blocking) or "Validation failed",
            alerts=[a.to_dict() for a in alerts],
        )
        self.alerts = alerts
