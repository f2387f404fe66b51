"""Integration tests for the money account registry"""

import uuid
import pytest
from performup_ledger.domain.exceptions import CurrencyMismatchError, NotFoundError, UnsupportedCurrencyError
from performup_ledger.domain.models import AccountType, Currency
from performup_ledger.infrastructure.database.models import MoneyAccount
from performup_ledger.services.accounts import AccountService
from performup_ledger.services.journal import JournalService
from tests.conftest import MENTOR, fixed_clock


@pytest.fixture
def accounts(db):
    return AccountService(db)


def test_create_account(accounts, db):
    """Test a new account starts active with a zero balance"""
    account = accounts.create_account("org", "Casablanca MAD", "MAD", account_type=AccountType.CASH)
    db.commit()

    assert account.currency == Currency.MAD
    assert account.account_type == AccountType.CASH
    assert account.is_active is True
    assert accounts.compute_balance(account.id) == 0


def test_create_account_unsupported_currency(accounts):
    """Test accounts only hold EUR, MAD or USD"""
    with pytest.raises(UnsupportedCurrencyError):
        accounts.create_account("org", "London", "GBP")


def test_account_currency_cannot_change(accounts, db):
    """Test currency is fixed once the account exists"""
    account = accounts.create_account("org", "Paris EUR", Currency.EUR)
    db.commit()

    with pytest.raises(CurrencyMismatchError):
        account.currency = Currency.USD


def test_list_accounts_with_balances(accounts, db, make_account):
    """Test listed accounts carry their journal-derived balance"""
    funded = make_account(name="Funded")
    idle = make_account(name="Idle")
    retired = make_account(name="Retired", is_active=False)
    JournalService(db, clock=fixed_clock).record_staff_payment(
        "m-1", MENTOR, 700, Currency.EUR, funded.id, "tester"
    )

    listed = {entry.account.id: entry.balance for entry in accounts.list_accounts()}
    assert listed == {funded.id: -700, idle.id: 0}

    everything = accounts.list_accounts(include_inactive=True)
    assert retired.id in {entry.account.id for entry in everything}


def test_remove_unused_account_deletes(accounts, db, make_account):
    """Test an account with no history is deleted outright"""
    account = make_account()

    outcome = accounts.remove_account(account.id)
    db.commit()

    assert outcome.deleted and not outcome.deactivated
    assert db.get(MoneyAccount, outcome.account_id) is None


def test_remove_account_with_history_deactivates(accounts, db, make_account):
    """Test an account referenced by the journal is only deactivated"""
    account = make_account()
    JournalService(db, clock=fixed_clock).record_staff_payment("m-1", MENTOR, 100, Currency.EUR, account.id, "t")

    outcome = accounts.remove_account(account.id)
    db.commit()

    assert outcome.deactivated and not outcome.deleted
    assert db.get(MoneyAccount, account.id).is_active is False
    assert accounts.compute_balance(account.id) == -100


def test_remove_account_referenced_by_payment_deactivates(accounts, db, make_account, make_payment):
    """Test an account used by a payment is only deactivated"""
    account = make_account()
    make_payment(bank_account_id=account.id)

    outcome = accounts.remove_account(account.id)

    assert outcome.deactivated


def test_reactivate_account(accounts, db, make_account):
    """Test a deactivated account can be used again"""
    account = make_account(is_active=False)

    assert accounts.reactivate_account(account.id).is_active is True


def test_remove_unknown_account(accounts):
    """Test removing a missing account"""
    with pytest.raises(NotFoundError):
        accounts.remove_account(uuid.uuid4())
