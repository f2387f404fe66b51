"""SQLAlchemy ORM models for the payment ledger"""

import uuid
from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    Uuid,
    event,
    inspect,
)
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.sql import func

from performup_ledger.domain.exceptions import CurrencyMismatchError, ImmutableTransactionError
from performup_ledger.domain.models import (
    AccountType,
    CounterpartyKind,
    CounterpartyRef,
    Currency,
    PaymentStatus,
    ScheduleStatus,
    TransactionType,
)

Base = declarative_base()

CurrencyColumn = SQLEnum(Currency, name="currency_code")

_ONE_COUNTERPARTY = (
    "(CASE WHEN student_id IS NOT NULL THEN 1 ELSE 0 END"
    " + CASE WHEN mentor_id IS NOT NULL THEN 1 ELSE 0 END"
    " + CASE WHEN professor_id IS NOT NULL THEN 1 ELSE 0 END)"
)


class CounterpartyMixin:
    """student_id / mentor_id / professor_id columns, mutually exclusive"""

    student_id = Column(Text, nullable=True, index=True)
    mentor_id = Column(Text, nullable=True, index=True)
    professor_id = Column(Text, nullable=True, index=True)

    @property
    def counterparty(self) -> CounterpartyRef | None:
        return CounterpartyRef.from_ids(self.student_id, self.mentor_id, self.professor_id)


class Counterparty(Base):
    """Mirror of the people directory (students, mentors, professors), fed by the directory sync endpoint"""

    __tablename__ = "counterparty"

    kind = Column(SQLEnum(CounterpartyKind, name="counterparty_kind"), primary_key=True)
    id = Column(Text, primary_key=True)
    display_name = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)


class MoneyAccount(Base):
    """Bank or cash account. Balance is derived from the journal, never stored."""

    __tablename__ = "money_account"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Text, nullable=False, index=True)
    account_name = Column(Text, nullable=False)
    bank_name = Column(Text, nullable=True)
    country = Column(Text, nullable=True)
    currency = Column(CurrencyColumn, nullable=False)
    account_type = Column(SQLEnum(AccountType, name="account_type"), nullable=False, default=AccountType.BANK)
    is_active = Column(Boolean, nullable=False, default=True)
    is_organization_owned = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @validates("currency")
    def _currency_is_immutable(self, key, value):
        if inspect(self).persistent and Currency(self.currency) != Currency(value):
            raise CurrencyMismatchError(
                f'Account "{self.account_name}" currency cannot change from {self.currency} to {value}'
            )
        return value


class LedgerTransaction(Base):
    """Append-only journal entry"""

    __tablename__ = "ledger_transaction"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_transaction_positive_amount"),
        CheckConstraint(
            "source_account_id IS NOT NULL OR destination_account_id IS NOT NULL",
            name="ck_ledger_transaction_has_account",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_number = Column(Text, nullable=False, unique=True)
    date = Column(Date, nullable=False, index=True)
    type = Column(SQLEnum(TransactionType, name="transaction_type"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    currency = Column(CurrencyColumn, nullable=False)
    source_account_id = Column(
        Uuid(as_uuid=True), ForeignKey("money_account.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    destination_account_id = Column(
        Uuid(as_uuid=True), ForeignKey("money_account.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    payment_id = Column(Uuid(as_uuid=True), ForeignKey("payment.id", ondelete="RESTRICT"), nullable=True, index=True)
    schedule_id = Column(Uuid(as_uuid=True), ForeignKey("payment_schedule.id"), nullable=True)
    mission_id = Column(Text, nullable=True)
    distribution_id = Column(Text, nullable=True)
    expense_id = Column(Text, nullable=True)
    student_id = Column(Text, nullable=True, index=True)
    mentor_id = Column(Text, nullable=True, index=True)
    professor_id = Column(Text, nullable=True, index=True)
    linked_transaction_id = Column(Uuid(as_uuid=True), ForeignKey("ledger_transaction.id"), nullable=True)
    reversal_of_id = Column(Uuid(as_uuid=True), ForeignKey("ledger_transaction.id"), nullable=True, unique=True)
    exchange_rate = Column(Numeric(18, 8), nullable=True)
    fx_fees = Column(BigInteger, nullable=True)
    description = Column(Text, nullable=False, default="")
    notes = Column(Text, nullable=True)
    created_by = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


@event.listens_for(LedgerTransaction, "before_update")
def _reject_transaction_update(mapper, connection, target):
    raise ImmutableTransactionError(
        f"Transaction {target.transaction_number} is immutable; record an offsetting transaction instead"
    )


@event.listens_for(LedgerTransaction, "before_delete")
def _reject_transaction_delete(mapper, connection, target):
    raise ImmutableTransactionError(
        f"Transaction {target.transaction_number} cannot be deleted; record an offsetting transaction instead"
    )


class ObligationSchedule(CounterpartyMixin, Base):
    """Dated installment of a payable/receivable"""

    __tablename__ = "payment_schedule"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_schedule_positive_amount"),
        CheckConstraint("paid_amount >= 0 AND paid_amount <= amount", name="ck_payment_schedule_paid_bounds"),
        CheckConstraint(f"{_ONE_COUNTERPARTY} = 1", name="ck_payment_schedule_one_counterparty"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quote_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    amount = Column(BigInteger, nullable=False)
    currency = Column(CurrencyColumn, nullable=False)  # expected settlement currency
    contractual_currency = Column(CurrencyColumn, nullable=False)
    observed_settlement_currency = Column(CurrencyColumn, nullable=True)
    due_date = Column(Date, nullable=False, index=True)
    paid_amount = Column(BigInteger, nullable=False, default=0)
    status = Column(SQLEnum(ScheduleStatus, name="schedule_status"), nullable=False, default=ScheduleStatus.PENDING)
    paid_date = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    allocations = relationship("PaymentAllocation", back_populates="schedule")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None


class Payment(CounterpartyMixin, Base):
    """Single money receipt or disbursement"""

    __tablename__ = "payment"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_positive_amount"),
        CheckConstraint(f"{_ONE_COUNTERPARTY} <= 1", name="ck_payment_at_most_one_counterparty"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    amount = Column(BigInteger, nullable=False)
    currency = Column(CurrencyColumn, nullable=False)
    payment_date = Column(Date, nullable=False, index=True)
    bank_account_id = Column(
        Uuid(as_uuid=True), ForeignKey("money_account.id", ondelete="RESTRICT"), nullable=True
    )
    received_by = Column(Text, nullable=True)
    validated_by = Column(Text, nullable=True)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    rejected_reason = Column(Text, nullable=True)
    status = Column(
        SQLEnum(PaymentStatus, name="payment_status"), nullable=False, default=PaymentStatus.PENDING_VALIDATION
    )
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    allocations = relationship("PaymentAllocation", back_populates="payment", cascade="all, delete-orphan")


class PaymentAllocation(Base):
    """Share of one payment assigned to one schedule"""

    __tablename__ = "payment_allocation"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_payment_allocation_positive_amount"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id = Column(Uuid(as_uuid=True), ForeignKey("payment.id", ondelete="CASCADE"), nullable=False, index=True)
    schedule_id = Column(
        Uuid(as_uuid=True), ForeignKey("payment_schedule.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    amount = Column(BigInteger, nullable=False)
    currency = Column(CurrencyColumn, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    payment = relationship("Payment", back_populates="allocations")
    schedule = relationship("ObligationSchedule", back_populates="allocations")
