"""Money account registry - bank and cash accounts with journal-derived balances"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from performup_ledger.domain.exceptions import NotFoundError
from performup_ledger.domain.models import AccountType, Currency
from performup_ledger.infrastructure.database.models import MoneyAccount
from performup_ledger.infrastructure.database.repositories import AccountRepository
from performup_ledger.services.journal import JournalService
from performup_ledger.utils.money import require_currency


@dataclass
class AccountWithBalance:
    account: MoneyAccount
    balance: int


@dataclass
class RemovalOutcome:
    account_id: uuid.UUID
    deleted: bool
    deactivated: bool


class AccountService:
    """Create, list and retire money accounts"""

    def __init__(self, db: Session):
        self.db = db
        self.accounts = AccountRepository(db)
        self.journal = JournalService(db)

    def create_account(
        self,
        owner_id: str,
        account_name: str,
        currency: Currency,
        account_type: AccountType = AccountType.BANK,
        bank_name: Optional[str] = None,
        country: Optional[str] = None,
        is_organization_owned: bool = True,
    ) -> MoneyAccount:
        return self.accounts.create_account(
            owner_id=owner_id,
            account_name=account_name,
            currency=require_currency(currency),
            account_type=AccountType(account_type),
            bank_name=bank_name,
            country=country,
            is_active=True,
            is_organization_owned=is_organization_owned,
        )

    def get_account(self, account_id: uuid.UUID) -> MoneyAccount:
        account = self.accounts.get_account(account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        return account

    def compute_balance(self, account_id: uuid.UUID) -> int:
        return self.journal.compute_balance(account_id)

    def list_accounts(self, include_inactive: bool = False) -> List[AccountWithBalance]:
        return [
            AccountWithBalance(account=a, balance=self.compute_balance(a.id))
            for a in self.accounts.list_accounts(include_inactive=include_inactive)
        ]

    def remove_account(self, account_id: uuid.UUID) -> RemovalOutcome:
        """Hard delete when the account never moved money, otherwise deactivate"""
        account = self.get_account(account_id)

        if self.accounts.has_journal_history(account_id) or self.accounts.is_referenced_by_payment(account_id):
            account.is_active = False
            self.db.flush()
            logging.info("Account deactivated", extra={"account_id": str(account_id)})
            return RemovalOutcome(account_id=account_id, deleted=False, deactivated=True)

        self.accounts.delete_account(account)
        logging.info("Account deleted", extra={"account_id": str(account_id)})
        return RemovalOutcome(account_id=account_id, deleted=True, deactivated=False)

    def reactivate_account(self, account_id: uuid.UUID) -> MoneyAccount:
        account = self.get_account(account_id)
        account.is_active = True
        self.db.flush()
        return account
