"""Payment endpoints - record, validate, reject and allocate payments"""

import time
import uuid
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from performup_ledger.api.dependencies import get_actor_id, get_audit_client, get_request_id
from performup_ledger.api.v1.errors import domain_http_error, unexpected_http_error
from performup_ledger.api.v1.schemas import (
    AlertSchema,
    AllocateRequest,
    AllocationResultResponse,
    AllocationSchema,
    AllocationStatsResponse,
    AllocationSuggestionSchema,
    PaymentCreateRequest,
    PaymentResponse,
    RejectPaymentRequest,
    ScheduleSchema,
    SettlementResponse,
    TransactionSchema,
    ValidatePaymentRequest,
)
from performup_ledger.domain.exceptions import DomainException, NotFoundError, ValidationAlertError
from performup_ledger.domain.models import AllocationFilters, PaymentInput
from performup_ledger.infrastructure.clients.audit import AuditClient, audit_event
from performup_ledger.infrastructure.database.repositories import PaymentRepository
from performup_ledger.infrastructure.database.session import get_db
from performup_ledger.infrastructure.observability.logging import log_allocation, log_settlement
from performup_ledger.infrastructure.observability.metrics import (
    record_alerts,
    record_allocations,
    record_journal_entry,
    record_payment_status,
)
from performup_ledger.services.allocation import AllocationService
from performup_ledger.services.settlement import SettlementResult, SettlementService
from performup_ledger.utils.money import require_currency

router = APIRouter()


def _settlement_response(result: SettlementResult) -> SettlementResponse:
    return SettlementResponse(
        payment=PaymentResponse.from_model(result.payment),
        alerts=[AlertSchema.from_alert(a) for a in result.alerts],
        allocations=[AllocationSchema.from_model(a) for a in result.allocations],
        schedules=[ScheduleSchema.from_model(s) for s in result.schedules],
        transaction=TransactionSchema.from_model(result.transaction) if result.transaction else None,
    )


def _after_settlement(result: SettlementResult, request_id: str, start_time: float) -> None:
    """Metrics and structured log for a committed settlement"""
    payment = result.payment
    record_payment_status(payment.status.value)
    record_alerts(result.alerts)
    record_allocations(result.allocations)
    if result.transaction:
        record_journal_entry(result.transaction.type.value)

    log_settlement(
        request_id,
        str(payment.id),
        payment.status.value,
        payment.amount,
        payment.currency.value,
        len(result.allocations),
        result.transaction.transaction_number if result.transaction else None,
        (time.time() - start_time) * 1000,
    )


@router.post("/payments", response_model=SettlementResponse, status_code=201)
def create_payment(
    request_body: PaymentCreateRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """
    Record a payment.

    Flow:
    1. Run business-rule validation (ERROR alerts reject the request, nothing is stored)
    2. Persist the payment as PENDING_VALIDATION
    3. With auto_validate: mark VALIDATED, allocate (explicit or suggested), journal it
    4. Commit everything as one transaction
    5. Send async audit event
    """
    start_time = time.time()
    request_id = get_request_id(request)
    counterparty, extra = request_body.counterparty_refs()

    try:
        result = SettlementService(db).record_payment(
            PaymentInput(
                amount=request_body.amount_cents,
                currency=request_body.currency,
                payment_date=request_body.payment_date,
                counterparty=counterparty,
                bank_account_id=request_body.bank_account_id,
                notes=request_body.notes,
                auto_validate=request_body.auto_validate,
                auto_allocate=request_body.auto_allocate,
                allocations=[a.to_input() for a in request_body.allocations] if request_body.allocations else None,
                extra_counterparties=extra,
            ),
            actor_id,
        )
        db.commit()

    except ValidationAlertError as e:
        db.rollback()
        record_alerts(e.alerts)
        raise domain_http_error(e, request_id)

    except DomainException as e:
        db.rollback()
        raise domain_http_error(e, request_id)

    except Exception as e:
        db.rollback()
        raise unexpected_http_error(e, request_id)

    _after_settlement(result, request_id, start_time)
    background_tasks.add_task(
        audit_client.send_event,
        audit_event(
            "PAYMENT_RECORDED",
            "payment",
            result.payment.id,
            actor_id,
            status=result.payment.status.value,
            amount_cents=result.payment.amount,
            currency=result.payment.currency.value,
            transaction_number=result.transaction.transaction_number if result.transaction else None,
        ),
    )
    return _settlement_response(result)


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
def get_payment(payment_id: uuid.UUID, db: Session = Depends(get_db)):
    payment = PaymentRepository(db).get_payment(payment_id)
    if payment is None:
        raise HTTPException(status_code=404, detail=NotFoundError("Payment", payment_id).to_dict())
    return PaymentResponse.from_model(payment)


@router.post("/payments/{payment_id}/validate", response_model=SettlementResponse)
def validate_payment(
    payment_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    request: Request,
    request_body: Optional[ValidatePaymentRequest] = None,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """Settle a payment recorded earlier without auto_validate"""
    start_time = time.time()
    request_id = get_request_id(request)
    request_body = request_body or ValidatePaymentRequest()

    try:
        result = SettlementService(db).validate_pending_payment(
            payment_id,
            actor_id,
            allocations=[a.to_input() for a in request_body.allocations] if request_body.allocations else None,
            auto_allocate=request_body.auto_allocate,
        )
        db.commit()

    except DomainException as e:
        db.rollback()
        raise domain_http_error(e, request_id)

    except Exception as e:
        db.rollback()
        raise unexpected_http_error(e, request_id)

    _after_settlement(result, request_id, start_time)
    background_tasks.add_task(
        audit_client.send_event,
        audit_event("PAYMENT_VALIDATED", "payment", payment_id, actor_id, amount_cents=result.payment.amount),
    )
    return _settlement_response(result)


@router.post("/payments/{payment_id}/reject", response_model=PaymentResponse)
def reject_payment(
    payment_id: uuid.UUID,
    request_body: RejectPaymentRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    request_id = get_request_id(request)

    try:
        payment = SettlementService(db).reject_payment(payment_id, actor_id, request_body.reason)
        db.commit()

    except DomainException as e:
        db.rollback()
        raise domain_http_error(e, request_id)

    except Exception as e:
        db.rollback()
        raise unexpected_http_error(e, request_id)

    record_payment_status(payment.status.value)
    background_tasks.add_task(
        audit_client.send_event,
        audit_event("PAYMENT_REJECTED", "payment", payment_id, actor_id, reason=request_body.reason),
    )
    return PaymentResponse.from_model(payment)


@router.get("/payments/{payment_id}/allocation-suggestions", response_model=List[AllocationSuggestionSchema])
def get_allocation_suggestions(
    payment_id: uuid.UUID,
    request: Request,
    currency: Optional[str] = Query(None, description="Only suggest schedules in this currency"),
    db: Session = Depends(get_db),
):
    """
    Suggest how to split the unallocated part of a payment.

    Returns:
        Suggestions ordered OVERDUE, PARTIAL, PENDING then by due date
    """
    request_id = get_request_id(request)
    try:
        filters = AllocationFilters(currency=require_currency(currency) if currency else None)
        suggestions = AllocationService(db).suggest_allocation(payment_id, filters)
    except DomainException as e:
        raise domain_http_error(e, request_id)

    return [AllocationSuggestionSchema.from_suggestion(s) for s in suggestions]


@router.post("/payments/{payment_id}/allocations", response_model=AllocationResultResponse, status_code=201)
def allocate_payment(
    payment_id: uuid.UUID,
    request_body: AllocateRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """Allocate a validated payment to schedules; all or nothing"""
    request_id = get_request_id(request)

    try:
        result = AllocationService(db).allocate_payment(payment_id, [a.to_input() for a in request_body.allocations])
        db.commit()

    except DomainException as e:
        db.rollback()
        raise domain_http_error(e, request_id)

    except Exception as e:
        db.rollback()
        raise unexpected_http_error(e, request_id)

    record_allocations(result.allocations)
    log_allocation(request_id, str(payment_id), [str(s.id) for s in result.schedules], result.total_allocated)
    background_tasks.add_task(
        audit_client.send_event,
        audit_event(
            "PAYMENT_ALLOCATED",
            "payment",
            payment_id,
            actor_id,
            schedule_ids=[str(s.id) for s in result.schedules],
            total_allocated_cents=result.total_allocated,
        ),
    )
    return AllocationResultResponse(
        allocations=[AllocationSchema.from_model(a) for a in result.allocations],
        schedules=[ScheduleSchema.from_model(s) for s in result.schedules],
        total_allocated_cents=result.total_allocated,
    )


@router.get("/payments/{payment_id}/allocation-stats", response_model=AllocationStatsResponse)
def get_allocation_stats(payment_id: uuid.UUID, request: Request, db: Session = Depends(get_db)):
    request_id = get_request_id(request)
    try:
        stats = AllocationService(db).get_allocation_stats(payment_id)
    except DomainException as e:
        raise domain_http_error(e, request_id)

    return AllocationStatsResponse(
        payment_id=str(payment_id),
        total_allocated_cents=stats.total_allocated,
        remaining_amount_cents=stats.remaining_amount,
        schedules_fully_paid=stats.schedules_fully_paid,
        schedules_partially_paid=stats.schedules_partially_paid,
    )
