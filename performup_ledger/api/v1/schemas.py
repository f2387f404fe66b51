"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from performup_ledger.domain.models import (
    AccountType,
    AllocationInput,
    AllocationSuggestion,
    CounterpartyRef,
    Installment,
)


class CounterpartyFields(BaseModel):
    """student_id / mentor_id / professor_id; at most one may be set"""

    student_id: Optional[str] = Field(None, min_length=1)
    mentor_id: Optional[str] = Field(None, min_length=1)
    professor_id: Optional[str] = Field(None, min_length=1)

    def counterparty_refs(self) -> Tuple[Optional[CounterpartyRef], List[CounterpartyRef]]:
        """First supplied id plus any extra ones (which validation rejects)"""
        refs = [
            ref
            for ref in (
                CounterpartyRef.from_ids(student_id=self.student_id),
                CounterpartyRef.from_ids(mentor_id=self.mentor_id),
                CounterpartyRef.from_ids(professor_id=self.professor_id),
            )
            if ref is not None
        ]
        if not refs:
            return None, []
        return refs[0], refs[1:]


class AllocationItem(BaseModel):
    schedule_id: uuid.UUID
    amount_cents: int

    def to_input(self) -> AllocationInput:
        return AllocationInput(schedule_id=self.schedule_id, amount=self.amount_cents)


# Payments


class PaymentCreateRequest(CounterpartyFields):
    """Request body for POST /v1/payments"""

    amount_cents: int = Field(..., description="Amount in minor units")
    currency: str = Field(..., description="EUR, MAD or USD")
    payment_date: date
    bank_account_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    auto_validate: bool = False
    auto_allocate: bool = True
    allocations: Optional[List[AllocationItem]] = None


class ValidatePaymentRequest(BaseModel):
    allocations: Optional[List[AllocationItem]] = None
    auto_allocate: bool = True


class RejectPaymentRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class AlertSchema(BaseModel):
    level: str
    code: str
    message: str
    data: Dict[str, Any] = {}

    @classmethod
    def from_alert(cls, alert) -> "AlertSchema":
        return cls(level=alert.level.value, code=alert.code, message=alert.message, data=alert.data)


class PaymentResponse(BaseModel):
    payment_id: str
    status: str
    amount_cents: int
    currency: str
    payment_date: date
    bank_account_id: Optional[str] = None
    counterparty_kind: Optional[str] = None
    counterparty_id: Optional[str] = None
    received_by: Optional[str] = None
    validated_by: Optional[str] = None
    validated_at: Optional[datetime] = None
    rejected_reason: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_model(cls, payment) -> "PaymentResponse":
        counterparty = payment.counterparty
        return cls(
            payment_id=str(payment.id),
            status=payment.status.value,
            amount_cents=payment.amount,
            currency=payment.currency.value,
            payment_date=payment.payment_date,
            bank_account_id=str(payment.bank_account_id) if payment.bank_account_id else None,
            counterparty_kind=counterparty.kind.value if counterparty else None,
            counterparty_id=counterparty.id if counterparty else None,
            received_by=payment.received_by,
            validated_by=payment.validated_by,
            validated_at=payment.validated_at,
            rejected_reason=payment.rejected_reason,
            notes=payment.notes,
        )


class AllocationSchema(BaseModel):
    allocation_id: str
    payment_id: str
    schedule_id: str
    amount_cents: int
    currency: str

    @classmethod
    def from_model(cls, allocation) -> "AllocationSchema":
        return cls(
            allocation_id=str(allocation.id),
            payment_id=str(allocation.payment_id),
            schedule_id=str(allocation.schedule_id),
            amount_cents=allocation.amount,
            currency=allocation.currency.value,
        )


class ScheduleSchema(BaseModel):
    schedule_id: str
    quote_id: Optional[str] = None
    counterparty_kind: str
    counterparty_id: str
    amount_cents: int
    paid_amount_cents: int
    remaining_amount_cents: int
    currency: str
    contractual_currency: str
    observed_settlement_currency: Optional[str] = None
    due_date: date
    status: str
    paid_date: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, schedule) -> "ScheduleSchema":
        counterparty = schedule.counterparty
        observed = schedule.observed_settlement_currency
        return cls(
            schedule_id=str(schedule.id),
            quote_id=str(schedule.quote_id) if schedule.quote_id else None,
            counterparty_kind=counterparty.kind.value,
            counterparty_id=counterparty.id,
            amount_cents=schedule.amount,
            paid_amount_cents=schedule.paid_amount,
            remaining_amount_cents=schedule.amount - schedule.paid_amount,
            currency=schedule.currency.value,
            contractual_currency=schedule.contractual_currency.value,
            observed_settlement_currency=observed.value if observed else None,
            due_date=schedule.due_date,
            status=schedule.status.value,
            paid_date=schedule.paid_date,
            cancelled_at=schedule.cancelled_at,
        )


class TransactionSchema(BaseModel):
    transaction_id: str
    transaction_number: str
    transaction_date: date
    type: str
    amount_cents: int
    currency: str
    source_account_id: Optional[str] = None
    destination_account_id: Optional[str] = None
    payment_id: Optional[str] = None
    schedule_id: Optional[str] = None
    linked_transaction_id: Optional[str] = None
    reversal_of_id: Optional[str] = None
    exchange_rate: Optional[str] = None
    fx_fees_cents: Optional[int] = None
    description: str = ""
    notes: Optional[str] = None
    created_by: str

    @classmethod
    def from_model(cls, txn) -> "TransactionSchema":
        def _id(value):
            return str(value) if value else None

        return cls(
            transaction_id=str(txn.id),
            transaction_number=txn.transaction_number,
            transaction_date=txn.date,
            type=txn.type.value,
            amount_cents=txn.amount,
            currency=txn.currency.value,
            source_account_id=_id(txn.source_account_id),
            destination_account_id=_id(txn.destination_account_id),
            payment_id=_id(txn.payment_id),
            schedule_id=_id(txn.schedule_id),
            linked_transaction_id=_id(txn.linked_transaction_id),
            reversal_of_id=_id(txn.reversal_of_id),
            exchange_rate=str(txn.exchange_rate) if txn.exchange_rate is not None else None,
            fx_fees_cents=txn.fx_fees,
            description=txn.description,
            notes=txn.notes,
            created_by=txn.created_by,
        )


class SettlementResponse(BaseModel):
    """Response for POST /v1/payments and POST /v1/payments/{id}/validate"""

    payment: PaymentResponse
    alerts: List[AlertSchema]
    allocations: List[AllocationSchema]
    schedules: List[ScheduleSchema]
    transaction: Optional[TransactionSchema] = None


# Allocation


class AllocationSuggestionSchema(BaseModel):
    schedule_id: str
    schedule_due_date: date
    schedule_amount_cents: int
    schedule_paid_amount_cents: int
    schedule_remaining_amount_cents: int
    suggested_allocation_cents: int
    priority: int
    schedule_status: str

    @classmethod
    def from_suggestion(cls, s: AllocationSuggestion) -> "AllocationSuggestionSchema":
        return cls(
            schedule_id=str(s.schedule_id),
            schedule_due_date=s.schedule_due_date,
            schedule_amount_cents=s.schedule_amount,
            schedule_paid_amount_cents=s.schedule_paid_amount,
            schedule_remaining_amount_cents=s.schedule_remaining_amount,
            suggested_allocation_cents=s.suggested_allocation,
            priority=s.priority,
            schedule_status=s.schedule_status.value,
        )


class AllocateRequest(BaseModel):
    allocations: List[AllocationItem] = Field(..., min_length=1)


class AllocationResultResponse(BaseModel):
    allocations: List[AllocationSchema]
    schedules: List[ScheduleSchema]
    total_allocated_cents: int


class AllocationStatsResponse(BaseModel):
    payment_id: str
    total_allocated_cents: int
    remaining_amount_cents: int
    schedules_fully_paid: int
    schedules_partially_paid: int


# Schedules


class InstallmentRequest(BaseModel):
    due_date: date
    amount_cents: int
    currency: Optional[str] = None

    def to_installment(self) -> Installment:
        return Installment(due_date=self.due_date, amount_cents=self.amount_cents, currency=self.currency)


class InstallmentPlanRequest(CounterpartyFields):
    """
    Request body for POST /v1/quotes/{quote_id}/schedules.

    Either list the installments, or give installment_count (and optionally
    first_due_date / interval_days) for an even split of the quote total.
    """

    quote_total_cents: int
    contractual_currency: str
    payment_currency: Optional[str] = None
    installments: Optional[List[InstallmentRequest]] = None
    installment_count: Optional[int] = Field(None, gt=0)
    first_due_date: Optional[date] = None
    interval_days: int = Field(30, gt=0)


class ScheduleRemovalResponse(BaseModel):
    schedule_id: str
    deleted: bool
    cancelled: bool


class RefreshStatusResponse(BaseModel):
    schedules_changed: int
    schedule_ids: List[str]


# Accounts


class AccountCreateRequest(BaseModel):
    owner_id: str = Field(..., min_length=1)
    account_name: str = Field(..., min_length=1)
    currency: str
    account_type: AccountType = AccountType.BANK
    bank_name: Optional[str] = None
    country: Optional[str] = None
    is_organization_owned: bool = True


class AccountResponse(BaseModel):
    account_id: str
    owner_id: str
    account_name: str
    bank_name: Optional[str] = None
    country: Optional[str] = None
    currency: str
    account_type: str
    is_active: bool
    is_organization_owned: bool
    balance_cents: Optional[int] = None

    @classmethod
    def from_model(cls, account, balance: Optional[int] = None) -> "AccountResponse":
        return cls(
            account_id=str(account.id),
            owner_id=account.owner_id,
            account_name=account.account_name,
            bank_name=account.bank_name,
            country=account.country,
            currency=account.currency.value,
            account_type=account.account_type.value,
            is_active=account.is_active,
            is_organization_owned=account.is_organization_owned,
            balance_cents=balance,
        )


class BalanceResponse(BaseModel):
    account_id: str
    currency: str
    balance_cents: int


class AccountRemovalResponse(BaseModel):
    account_id: str
    deleted: bool
    deactivated: bool


class CurrencyTotalsResponse(BaseModel):
    totals: Dict[str, int]


# Journal


class TransactionPageResponse(BaseModel):
    items: List[TransactionSchema]
    total: int
    has_more: bool
    limit: int
    offset: int


class TransferRequest(BaseModel):
    source_account_id: uuid.UUID
    destination_account_id: uuid.UUID
    amount_cents: int
    currency: str
    notes: Optional[str] = None
    on_date: Optional[date] = None


class RecordedTransactionResponse(BaseModel):
    """A journal entry plus the non-blocking alerts raised while checking it"""

    transaction: TransactionSchema
    alerts: List[AlertSchema]


class FxExchangeRequest(BaseModel):
    source_account_id: uuid.UUID
    destination_account_id: uuid.UUID
    source_amount_cents: int
    source_currency: str
    destination_amount_cents: int
    destination_currency: str
    exchange_rate: Decimal = Field(..., description="Informational; never used to convert")
    fx_fees_cents: Optional[int] = None
    notes: Optional[str] = None
    on_date: Optional[date] = None


class FxExchangeResponse(BaseModel):
    outgoing: TransactionSchema
    incoming: TransactionSchema


class ExpenseRequest(BaseModel):
    source_account_id: uuid.UUID
    amount_cents: int
    currency: str
    category: str = ""
    expense_id: Optional[str] = None
    supplier: Optional[str] = None
    description: str = ""
    student_id: Optional[str] = None
    on_date: Optional[date] = None


class DistributionRequest(BaseModel):
    source_account_id: uuid.UUID
    amount_cents: int
    currency: str
    distribution_id: Optional[str] = None
    on_date: Optional[date] = None


class StaffPaymentRequest(BaseModel):
    mission_id: str = Field(..., min_length=1)
    mentor_id: Optional[str] = None
    professor_id: Optional[str] = None
    source_account_id: uuid.UUID
    amount_cents: int
    currency: str
    hours_worked: Optional[Decimal] = Field(None, ge=0)
    description: str = ""
    on_date: Optional[date] = None


class ReverseRequest(BaseModel):
    reason: str = ""


class CounterpartySyncRequest(BaseModel):
    display_name: str = ""
    is_active: bool = True


class CounterpartyResponse(BaseModel):
    kind: str
    counterparty_id: str
    display_name: str
    is_active: bool

    @classmethod
    def from_model(cls, entry) -> "CounterpartyResponse":
        return cls(
            kind=entry.kind.value,
            counterparty_id=entry.id,
            display_name=entry.display_name,
            is_active=entry.is_active,
        )
