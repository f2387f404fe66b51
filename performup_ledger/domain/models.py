"""Domain models - pure Python dataclasses and enums representing ledger entities"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional


class Currency(str, enum.Enum):
    EUR = "EUR"
    MAD = "MAD"
    USD = "USD"


class AccountType(str, enum.Enum):
    BANK = "BANK"
    CASH = "CASH"


class TransactionType(str, enum.Enum):
    STUDENT_PAYMENT = "STUDENT_PAYMENT"
    STAFF_PAYMENT = "STAFF_PAYMENT"
    EXPENSE = "EXPENSE"
    DISTRIBUTION = "DISTRIBUTION"
    TRANSFER = "TRANSFER"
    FX_EXCHANGE = "FX_EXCHANGE"


class ScheduleStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


# Statuses a payment can still be allocated against
OPEN_SCHEDULE_STATUSES = (ScheduleStatus.PENDING, ScheduleStatus.PARTIAL, ScheduleStatus.OVERDUE)


class PaymentStatus(str, enum.Enum):
    PENDING_VALIDATION = "PENDING_VALIDATION"
    VALIDATED = "VALIDATED"
    REJECTED = "REJECTED"


class CounterpartyKind(str, enum.Enum):
    STUDENT = "STUDENT"
    MENTOR = "MENTOR"
    PROFESSOR = "PROFESSOR"


class AlertLevel(str, enum.Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


@dataclass(frozen=True)
class CounterpartyRef:
    """Student, mentor or professor a payment or schedule belongs to"""

    kind: CounterpartyKind
    id: str

    @classmethod
    def from_ids(
        cls,
        student_id: Optional[str] = None,
        mentor_id: Optional[str] = None,
        professor_id: Optional[str] = None,
    ) -> Optional["CounterpartyRef"]:
        """Build a reference from the three exclusive id columns (first one set wins)"""
        if student_id:
            return cls(CounterpartyKind.STUDENT, student_id)
        if mentor_id:
            return cls(CounterpartyKind.MENTOR, mentor_id)
        if professor_id:
            return cls(CounterpartyKind.PROFESSOR, professor_id)
        return None

    def as_columns(self) -> Dict[str, Optional[str]]:
        return {
            "student_id": self.id if self.kind == CounterpartyKind.STUDENT else None,
            "mentor_id": self.id if self.kind == CounterpartyKind.MENTOR else None,
            "professor_id": self.id if self.kind == CounterpartyKind.PROFESSOR else None,
        }


@dataclass
class Alert:
    """Single business-rule finding produced by the validation service"""

    level: AlertLevel
    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_blocking(self) -> bool:
        return self.level == AlertLevel.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level.value, "code": self.code, "message": self.message, "data": self.data}


@dataclass
class ValidationReport:
    alerts: List[Alert] = field(default_factory=list)

    @property
    def blocking(self) -> bool:
        return any(a.is_blocking for a in self.alerts)

    @property
    def errors(self) -> List[Alert]:
        return [a for a in self.alerts if a.is_blocking]

    @property
    def warnings(self) -> List[Alert]:
        return [a for a in self.alerts if not a.is_blocking]


@dataclass
class AllocationInput:
    """Caller-supplied (or suggested) share of a payment for one schedule"""

    schedule_id: uuid.UUID
    amount: int


@dataclass
class AllocationSuggestion:
    schedule_id: uuid.UUID
    schedule_due_date: date
    schedule_amount: int
    schedule_paid_amount: int
    schedule_remaining_amount: int
    suggested_allocation: int
    priority: int  # 1 = overdue, 2 = partial, 3 = pending
    schedule_status: ScheduleStatus

    def to_input(self) -> AllocationInput:
        return AllocationInput(schedule_id=self.schedule_id, amount=self.suggested_allocation)


@dataclass
class AllocationFilters:
    """Optional narrowing of candidate schedules for suggestions"""

    counterparty: Optional[CounterpartyRef] = None
    currency: Optional[Currency] = None


@dataclass
class AllocationStats:
    total_allocated: int
    remaining_amount: int
    schedules_fully_paid: int
    schedules_partially_paid: int


@dataclass
class Installment:
    """Single payment in an installment plan"""

    due_date: date
    amount_cents: int
    currency: Optional[Currency] = None


@dataclass
class QuotePlanInput:
    """Installment plan request for a validated quote"""

    quote_id: uuid.UUID
    counterparty: CounterpartyRef
    quote_total_cents: int
    contractual_currency: Currency
    installments: List[Installment]
    payment_currency: Optional[Currency] = None


@dataclass
class PaymentInput:
    """Money received from (or paid to) a counterparty"""

    amount: int
    currency: Currency
    payment_date: date
    counterparty: Optional[CounterpartyRef] = None
    bank_account_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    auto_validate: bool = False
    auto_allocate: bool = True
    allocations: Optional[List[AllocationInput]] = None
    # Set when more than one counterparty id was supplied; validation rejects it
    extra_counterparties: List[CounterpartyRef] = field(default_factory=list)


@dataclass
class TransactionInput:
    """New journal entry"""

    date: date
    type: TransactionType
    amount: int
    currency: Currency
    created_by: str
    source_account_id: Optional[uuid.UUID] = None
    destination_account_id: Optional[uuid.UUID] = None
    payment_id: Optional[uuid.UUID] = None
    schedule_id: Optional[uuid.UUID] = None
    mission_id: Optional[str] = None
    distribution_id: Optional[str] = None
    expense_id: Optional[str] = None
    counterparty: Optional[CounterpartyRef] = None
    linked_transaction_id: Optional[uuid.UUID] = None
    reversal_of_id: Optional[uuid.UUID] = None
    exchange_rate: Optional[Decimal] = None
    fx_fees: Optional[int] = None
    description: str = ""
    notes: Optional[str] = None


@dataclass
class TransactionFilters:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    currency: Optional[Currency] = None
    type: Optional[TransactionType] = None
    account_id: Optional[uuid.UUID] = None
    counterparty: Optional[CounterpartyRef] = None
    limit: int = 50
    offset: int = 0
