"""Schedule endpoints - installment plans for quotes and schedule lookup"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from performup_ledger.api.dependencies import get_actor_id, get_audit_client, get_request_id
from performup_ledger.api.v1.errors import domain_http_error, unexpected_http_error
from performup_ledger.api.v1.schemas import (
    InstallmentPlanRequest,
    RefreshStatusResponse,
    ScheduleRemovalResponse,
    ScheduleSchema,
)
from performup_ledger.domain.exceptions import DomainException
from performup_ledger.domain.models import CounterpartyRef, QuotePlanInput
from performup_ledger.infrastructure.clients.audit import AuditClient, audit_event
from performup_ledger.infrastructure.database.session import get_db
from performup_ledger.services.allocation import AllocationService
from performup_ledger.services.schedules import ScheduleService

router = APIRouter()


@router.post("/quotes/{quote_id}/schedules", response_model=List[ScheduleSchema], status_code=201)
def create_installment_plan(
    quote_id: uuid.UUID,
    request_body: InstallmentPlanRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """
    Create the installment plan of a validated quote.

    The installments must sum exactly to the quote total. When only
    installment_count is given the total is split evenly, the last installment
    absorbing the rounding remainder.
    """
    request_id = get_request_id(request)
    counterparty, extra = request_body.counterparty_refs()
    if counterparty is None or extra:
        raise HTTPException(
            status_code=422,
            detail={"code": "INVALID_COUNTERPARTY", "message": "Set exactly one of student_id, mentor_id, professor_id"},
        )

    try:
        service = ScheduleService(db)
        if request_body.installments:
            installments = [i.to_installment() for i in request_body.installments]
        elif request_body.installment_count:
            installments = service.generate_even_installments(
                request_body.quote_total_cents,
                request_body.installment_count,
                first_due_date=request_body.first_due_date,
                interval_days=request_body.interval_days,
            )
        else:
            installments = []

        schedules = service.create_installment_plan(
            QuotePlanInput(
                quote_id=quote_id,
                counterparty=counterparty,
                quote_total_cents=request_body.quote_total_cents,
                contractual_currency=request_body.contractual_currency,
                installments=installments,
                payment_currency=request_body.payment_currency,
            )
        )
        db.commit()

    except DomainException as e:
        db.rollback()
        raise domain_http_error(e, request_id)

    except Exception as e:
        db.rollback()
        raise unexpected_http_error(e, request_id)

    background_tasks.add_task(
        audit_client.send_event,
        audit_event(
            "INSTALLMENT_PLAN_CREATED",
            "quote",
            quote_id,
            actor_id,
            schedule_ids=[str(s.id) for s in schedules],
            total_cents=request_body.quote_total_cents,
        ),
    )
    return [ScheduleSchema.from_model(s) for s in schedules]


@router.get("/schedules", response_model=List[ScheduleSchema])
def list_schedules(
    student_id: Optional[str] = Query(None),
    mentor_id: Optional[str] = Query(None),
    professor_id: Optional[str] = Query(None),
    quote_id: Optional[uuid.UUID] = Query(None),
    db: Session = Depends(get_db),
):
    counterparty = CounterpartyRef.from_ids(student_id, mentor_id, professor_id)
    schedules = ScheduleService(db).list_schedules(counterparty=counterparty, quote_id=quote_id)
    return [ScheduleSchema.from_model(s) for s in schedules]


@router.post("/schedules/refresh-status", response_model=RefreshStatusResponse)
def refresh_schedule_status(request: Request, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    """Re-derive stored statuses so schedules past their due date read OVERDUE"""
    request_id = get_request_id(request)

    try:
        changed = AllocationService(db).refresh_overdue()
        db.commit()

    except DomainException as e:
        db.rollback()
        raise domain_http_error(e, request_id)

    except Exception as e:
        db.rollback()
        raise unexpected_http_error(e, request_id)

    logging.info(
        "Schedule statuses refreshed",
        extra={"request_id": request_id, "actor_id": actor_id, "schedules_changed": len(changed)},
    )
    return RefreshStatusResponse(schedules_changed=len(changed), schedule_ids=[str(s.id) for s in changed])


@router.get("/schedules/{schedule_id}", response_model=ScheduleSchema)
def get_schedule(schedule_id: uuid.UUID, request: Request, db: Session = Depends(get_db)):
    try:
        schedule = ScheduleService(db).get_schedule(schedule_id)
    except DomainException as e:
        raise domain_http_error(e, get_request_id(request))
    return ScheduleSchema.from_model(schedule)


@router.delete("/schedules/{schedule_id}", response_model=ScheduleRemovalResponse)
def remove_schedule(
    schedule_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """Delete an unpaid schedule, or cancel it when payments were already allocated to it"""
    request_id = get_request_id(request)

    try:
        outcome = ScheduleService(db).remove_schedule(schedule_id)
        db.commit()

    except DomainException as e:
        db.rollback()
        raise domain_http_error(e, request_id)

    except Exception as e:
        db.rollback()
        raise unexpected_http_error(e, request_id)

    background_tasks.add_task(
        audit_client.send_event,
        audit_event(
            "SCHEDULE_DELETED" if outcome.deleted else "SCHEDULE_CANCELLED", "schedule", schedule_id, actor_id
        ),
    )
    return ScheduleRemovalResponse(
        schedule_id=str(schedule_id), deleted=outcome.deleted, cancelled=outcome.cancelled
    )
