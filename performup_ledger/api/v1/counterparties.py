"""Counterparty directory endpoints - the people directory pushes students, mentors and professors here"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from performup_ledger.api.dependencies import get_actor_id, get_audit_client, get_request_id
from performup_ledger.api.v1.errors import domain_http_error, unexpected_http_error
from performup_ledger.api.v1.schemas import CounterpartyResponse, CounterpartySyncRequest
from performup_ledger.domain.exceptions import DomainException, NotFoundError
from performup_ledger.domain.models import CounterpartyKind, CounterpartyRef
from performup_ledger.infrastructure.clients.audit import AuditClient, audit_event
from performup_ledger.infrastructure.database.repositories import CounterpartyRepository
from performup_ledger.infrastructure.database.session import get_db

router = APIRouter()


@router.put("/counterparties/{kind}/{counterparty_id}", response_model=CounterpartyResponse)
def sync_counterparty(
    kind: CounterpartyKind,
    counterparty_id: str,
    request_body: CounterpartySyncRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """
    Create or replace one directory entry.

    Deactivating an entry blocks new payments for that person; history is kept.
    """
    request_id = get_request_id(request)

    try:
        entry = CounterpartyRepository(db).upsert(
            CounterpartyRef(kind, counterparty_id),
            display_name=request_body.display_name,
            is_active=request_body.is_active,
        )
        db.commit()

    except DomainException as e:
        db.rollback()
        raise domain_http_error(e, request_id)

    except Exception as e:
        db.rollback()
        raise unexpected_http_error(e, request_id)

    logging.info(
        "Counterparty synced",
        extra={"request_id": request_id, "kind": kind.value, "counterparty_id": counterparty_id},
    )
    background_tasks.add_task(
        audit_client.send_event,
        audit_event(
            "COUNTERPARTY_SYNCED",
            "counterparty",
            f"{kind.value}:{counterparty_id}",
            actor_id,
            is_active=entry.is_active,
        ),
    )
    return CounterpartyResponse.from_model(entry)


@router.get("/counterparties/{kind}/{counterparty_id}", response_model=CounterpartyResponse)
def get_counterparty(kind: CounterpartyKind, counterparty_id: str, request: Request, db: Session = Depends(get_db)):
    entry = CounterpartyRepository(db).get(CounterpartyRef(kind, counterparty_id))
    if entry is None:
        raise domain_http_error(NotFoundError(kind.value.title(), counterparty_id), get_request_id(request))
    return CounterpartyResponse.from_model(entry)
