"""Journal endpoints - list and export transactions, record transfers, FX, expenses, distributions and reversals"""

import uuid
from datetime import date
from typing import Callable, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from performup_ledger.api.dependencies import get_actor_id, get_audit_client, get_request_id
from performup_ledger.api.v1.errors import domain_http_error, unexpected_http_error
from performup_ledger.api.v1.schemas import (
    AlertSchema,
    DistributionRequest,
    ExpenseRequest,
    FxExchangeRequest,
    FxExchangeResponse,
    RecordedTransactionResponse,
    ReverseRequest,
    StaffPaymentRequest,
    TransactionPageResponse,
    TransactionSchema,
    TransferRequest,
)
from performup_ledger.domain.exceptions import DomainException, ValidationAlertError
from performup_ledger.domain.models import CounterpartyRef, TransactionFilters, TransactionType, ValidationReport
from performup_ledger.infrastructure.clients.audit import AuditClient, audit_event
from performup_ledger.infrastructure.database.models import LedgerTransaction
from performup_ledger.infrastructure.database.session import get_db
from performup_ledger.infrastructure.observability.logging import log_journal_entry
from performup_ledger.infrastructure.observability.metrics import record_alerts, record_journal_entry
from performup_ledger.services.exports import JournalExportService
from performup_ledger.services.journal import JournalService
from performup_ledger.services.validation import ValidationService
from performup_ledger.utils.date_utils import utcnow
from performup_ledger.utils.money import require_currency

router = APIRouter()


def _committed(
    db: Session,
    request_id: str,
    write: Callable[[JournalService], List[LedgerTransaction]],
) -> List[LedgerTransaction]:
    """Run one journal write in its own transaction; roll back and map errors on failure"""
    try:
        transactions = write(JournalService(db))
        db.commit()

    except DomainException as e:
        db.rollback()
        raise domain_http_error(e, request_id)

    except Exception as e:
        db.rollback()
        raise unexpected_http_error(e, request_id)

    for txn in transactions:
        record_journal_entry(txn.type.value)
        log_journal_entry(request_id, txn.transaction_number, txn.type.value, txn.amount, txn.currency.value)
    return transactions


def _audit(background_tasks: BackgroundTasks, audit_client: AuditClient, txn: LedgerTransaction, actor_id: str) -> None:
    background_tasks.add_task(
        audit_client.send_event,
        audit_event(
            "TRANSACTION_RECORDED",
            "transaction",
            txn.id,
            actor_id,
            transaction_number=txn.transaction_number,
            type=txn.type.value,
            amount_cents=txn.amount,
            currency=txn.currency.value,
        ),
    )



def _require_clean(report: ValidationReport, request_id: str) -> None:
    """Count every alert, then refuse the write if any of them is an ERROR"""
    record_alerts(report.alerts)
    if report.blocking:
        raise domain_http_error(ValidationAlertError(report.alerts), request_id)


def _recorded(txn: LedgerTransaction, report: ValidationReport) -> RecordedTransactionResponse:
    return RecordedTransactionResponse(
        transaction=TransactionSchema.from_model(txn),
        alerts=[AlertSchema.from_alert(a) for a in report.alerts],
    )

@router.get("/journal", response_model=TransactionPageResponse)
def list_transactions(
    request: Request,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    currency: Optional[str] = Query(None),
    type: Optional[TransactionType] = Query(None),
    account_id: Optional[uuid.UUID] = Query(None),
    student_id: Optional[str] = Query(None),
    mentor_id: Optional[str] = Query(None),
    professor_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """
    Filtered, paginated journal listing.

    Returns:
        Transactions newest first, with the unpaged total and has_more flag
    """
    try:
        filters = TransactionFilters(
            start_date=start_date,
            end_date=end_date,
            currency=require_currency(currency) if currency else None,
            type=type,
            account_id=account_id,
            counterparty=CounterpartyRef.from_ids(student_id, mentor_id, professor_id),
            limit=limit,
            offset=offset,
        )
        page = JournalService(db).list_transactions(filters)
    except DomainException as e:
        raise domain_http_error(e, get_request_id(request))

    return TransactionPageResponse(
        items=[TransactionSchema.from_model(t) for t in page.items],
        total=page.total,
        has_more=page.has_more,
        limit=filters.limit,
        offset=filters.offset,
    )


@router.get("/journal/export", response_class=Response)
def export_journal(
    background_tasks: BackgroundTasks,
    request: Request,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    currency: Optional[str] = Query(None),
    type: Optional[TransactionType] = Query(None),
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """
    Download the filtered journal as CSV, oldest first.

    Returns:
        UTF-8 CSV with a BOM, served as an attachment named journal_<today>.csv
    """
    request_id = get_request_id(request)
    try:
        filters = TransactionFilters(
            start_date=start_date,
            end_date=end_date,
            currency=require_currency(currency) if currency else None,
            type=type,
        )
        content, count = JournalExportService(db).export_csv(filters)
    except DomainException as e:
        raise domain_http_error(e, request_id)

    background_tasks.add_task(
        audit_client.send_event,
        audit_event(
            "JOURNAL_EXPORTED",
            "journal",
            "export",
            actor_id,
            count=count,
            filters={
                "start_date": start_date.isoformat() if start_date else None,
                "end_date": end_date.isoformat() if end_date else None,
                "currency": filters.currency.value if filters.currency else None,
                "type": type.value if type else None,
            },
        ),
    )
    filename = f"journal_{utcnow().date().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/journal/{transaction_id}", response_model=TransactionSchema)
def get_transaction(transaction_id: uuid.UUID, request: Request, db: Session = Depends(get_db)):
    try:
        txn = JournalService(db).get_transaction(transaction_id)
    except DomainException as e:
        raise domain_http_error(e, get_request_id(request))
    return TransactionSchema.from_model(txn)


@router.post("/journal/transfers", response_model=RecordedTransactionResponse, status_code=201)
def create_transfer(
    request_body: TransferRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """Move money between two active accounts of the same currency"""
    request_id = get_request_id(request)

    report = ValidationService(db).validate_transfer(
        request_body.source_account_id,
        request_body.destination_account_id,
        request_body.amount_cents,
        request_body.currency,
    )
    _require_clean(report, request_id)

    (txn,) = _committed(
        db,
        request_id,
        lambda journal: [
            journal.record_transfer(
                request_body.source_account_id,
                request_body.destination_account_id,
                request_body.amount_cents,
                request_body.currency,
                actor_id,
                notes=request_body.notes,
                on_date=request_body.on_date,
            )
        ],
    )
    _audit(background_tasks, audit_client, txn, actor_id)
    return _recorded(txn, report)


@router.post("/journal/fx-exchanges", response_model=FxExchangeResponse, status_code=201)
def create_fx_exchange(
    request_body: FxExchangeRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """Record both legs of a currency exchange; amounts are given, never converted"""
    request_id = get_request_id(request)

    outgoing, incoming = _committed(
        db,
        request_id,
        lambda journal: list(
            journal.record_fx_exchange(
                request_body.source_account_id,
                request_body.destination_account_id,
                request_body.source_amount_cents,
                request_body.source_currency,
                request_body.destination_amount_cents,
                request_body.destination_currency,
                request_body.exchange_rate,
                actor_id,
                fx_fees=request_body.fx_fees_cents,
                notes=request_body.notes,
                on_date=request_body.on_date,
            )
        ),
    )
    _audit(background_tasks, audit_client, outgoing, actor_id)
    _audit(background_tasks, audit_client, incoming, actor_id)
    return FxExchangeResponse(
        outgoing=TransactionSchema.from_model(outgoing),
        incoming=TransactionSchema.from_model(incoming),
    )


@router.post("/journal/expenses", response_model=RecordedTransactionResponse, status_code=201)
def create_expense(
    request_body: ExpenseRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """Pay an expense out of an account; large or supplier-less expenses come back as alerts"""
    request_id = get_request_id(request)

    report = ValidationService(db).validate_expense(
        request_body.source_account_id,
        request_body.amount_cents,
        request_body.currency,
        supplier=request_body.supplier,
    )
    _require_clean(report, request_id)

    (txn,) = _committed(
        db,
        request_id,
        lambda journal: [
            journal.record_expense(
                request_body.source_account_id,
                request_body.amount_cents,
                request_body.currency,
                actor_id,
                category=request_body.category,
                expense_id=request_body.expense_id,
                supplier=request_body.supplier,
                description=request_body.description,
                student_id=request_body.student_id,
                on_date=request_body.on_date,
            )
        ],
    )
    _audit(background_tasks, audit_client, txn, actor_id)
    return _recorded(txn, report)


@router.post("/journal/distributions", response_model=TransactionSchema, status_code=201)
def create_distribution(
    request_body: DistributionRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    (txn,) = _committed(
        db,
        get_request_id(request),
        lambda journal: [
            journal.record_distribution(
                request_body.source_account_id,
                request_body.amount_cents,
                request_body.currency,
                actor_id,
                distribution_id=request_body.distribution_id,
                on_date=request_body.on_date,
            )
        ],
    )
    _audit(background_tasks, audit_client, txn, actor_id)
    return TransactionSchema.from_model(txn)


@router.post("/journal/staff-payments", response_model=RecordedTransactionResponse, status_code=201)
def create_staff_payment(
    request_body: StaffPaymentRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """Pay a mentor or professor for a validated mission"""
    request_id = get_request_id(request)
    counterparty = CounterpartyRef.from_ids(mentor_id=request_body.mentor_id, professor_id=request_body.professor_id)

    report = ValidationService(db).validate_staff_payment(
        request_body.source_account_id,
        counterparty,
        request_body.amount_cents,
        request_body.currency,
        hours_worked=request_body.hours_worked,
    )
    _require_clean(report, request_id)

    (txn,) = _committed(
        db,
        request_id,
        lambda journal: [
            journal.record_staff_payment(
                request_body.mission_id,
                counterparty,
                request_body.amount_cents,
                request_body.currency,
                request_body.source_account_id,
                actor_id,
                description=request_body.description,
                on_date=request_body.on_date,
                hours_worked=request_body.hours_worked,
            )
        ],
    )
    _audit(background_tasks, audit_client, txn, actor_id)
    return _recorded(txn, report)


@router.post("/journal/{transaction_id}/reverse", response_model=TransactionSchema, status_code=201)
def reverse_transaction(
    transaction_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    request: Request,
    request_body: Optional[ReverseRequest] = None,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """Append the offsetting entry; the original row is never touched"""
    reason = request_body.reason if request_body else ""
    (txn,) = _committed(
        db,
        get_request_id(request),
        lambda journal: [journal.reverse_transaction(transaction_id, actor_id, reason=reason)],
    )
    _audit(background_tasks, audit_client, txn, actor_id)
    return TransactionSchema.from_model(txn)
