"""Money account endpoints - registry, balances and per-currency totals"""

import logging
import uuid
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from performup_ledger.api.dependencies import get_actor_id, get_audit_client, get_request_id
from performup_ledger.api.v1.errors import domain_http_error, unexpected_http_error
from performup_ledger.api.v1.schemas import (
    AccountCreateRequest,
    AccountRemovalResponse,
    AccountResponse,
    BalanceResponse,
    CurrencyTotalsResponse,
)
from performup_ledger.domain.exceptions import DomainException
from performup_ledger.infrastructure.clients.audit import AuditClient, audit_event
from performup_ledger.infrastructure.database.session import get_db
from performup_ledger.services.accounts import AccountService
from performup_ledger.services.journal import JournalService

router = APIRouter()


@router.post("/accounts", response_model=AccountResponse, status_code=201)
def create_account(
    request_body: AccountCreateRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    request_id = get_request_id(request)

    try:
        account = AccountService(db).create_account(
            owner_id=request_body.owner_id,
            account_name=request_body.account_name,
            currency=request_body.currency,
            account_type=request_body.account_type,
            bank_name=request_body.bank_name,
            country=request_body.country,
            is_organization_owned=request_body.is_organization_owned,
        )
        db.commit()

    except DomainException as e:
        db.rollback()
        raise domain_http_error(e, request_id)

    except Exception as e:
        db.rollback()
        raise unexpected_http_error(e, request_id)

    logging.info("Account created", extra={"request_id": request_id, "account_id": str(account.id)})
    background_tasks.add_task(
        audit_client.send_event,
        audit_event("ACCOUNT_CREATED", "account", account.id, actor_id, currency=account.currency.value),
    )
    return AccountResponse.from_model(account, balance=0)


@router.get("/accounts", response_model=List[AccountResponse])
def list_accounts(
    include_inactive: bool = Query(False, description="Include deactivated accounts"),
    db: Session = Depends(get_db),
):
    """
    List money accounts with their journal-derived balances.

    Returns:
        Accounts ordered by currency then name
    """
    return [
        AccountResponse.from_model(item.account, balance=item.balance)
        for item in AccountService(db).list_accounts(include_inactive=include_inactive)
    ]


@router.get("/accounts/totals", response_model=CurrencyTotalsResponse)
def get_currency_totals(db: Session = Depends(get_db)):
    """Sum of active account balances per currency (never converted)"""
    totals = JournalService(db).totals_by_currency()
    return CurrencyTotalsResponse(totals={currency.value: amount for currency, amount in totals.items()})


@router.get("/accounts/{account_id}/balance", response_model=BalanceResponse)
def get_account_balance(account_id: uuid.UUID, request: Request, db: Session = Depends(get_db)):
    try:
        service = AccountService(db)
        account = service.get_account(account_id)
        balance = service.compute_balance(account_id)
    except DomainException as e:
        raise domain_http_error(e, get_request_id(request))

    return BalanceResponse(account_id=str(account_id), currency=account.currency.value, balance_cents=balance)


@router.delete("/accounts/{account_id}", response_model=AccountRemovalResponse)
def remove_account(
    account_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    """Hard delete an account that never moved money; deactivate it otherwise"""
    request_id = get_request_id(request)

    try:
        outcome = AccountService(db).remove_account(account_id)
        db.commit()

    except DomainException as e:
        db.rollback()
        raise domain_http_error(e, request_id)

    except Exception as e:
        db.rollback()
        raise unexpected_http_error(e, request_id)

    background_tasks.add_task(
        audit_client.send_event,
        audit_event("ACCOUNT_DELETED" if outcome.deleted else "ACCOUNT_DEACTIVATED", "account", account_id, actor_id),
    )
    return AccountRemovalResponse(
        account_id=str(account_id), deleted=outcome.deleted, deactivated=outcome.deactivated
    )


@router.post("/accounts/{account_id}/reactivate", response_model=AccountResponse)
def reactivate_account(
    account_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit_client: AuditClient = Depends(get_audit_client),
):
    request_id = get_request_id(request)

    try:
        service = AccountService(db)
        account = service.reactivate_account(account_id)
        balance = service.compute_balance(account_id)
        db.commit()

    except DomainException as e:
        db.rollback()
        raise domain_http_error(e, request_id)

    except Exception as e:
        db.rollback()
        raise unexpected_http_error(e, request_id)

    background_tasks.add_task(
        audit_client.send_event, audit_event("ACCOUNT_REACTIVATED", "account", account_id, actor_id)
    )
    return AccountResponse.from_model(account, balance=balance)
