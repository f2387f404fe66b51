"""
Journal export for the accountant.

Rows are written oldest first with the same filters as the journal listing,
minus paging. Amounts are shown in major units next to their currency and
are never converted.
"""

import csv
import enum
import io
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from performup_ledger.domain.models import CounterpartyKind, CounterpartyRef, TransactionFilters
from performup_ledger.infrastructure.database.models import LedgerTransaction
from performup_ledger.infrastructure.database.repositories import (
    AccountRepository,
    CounterpartyRepository,
    JournalRepository,
)
from performup_ledger.utils.money import format_major

UTF8_BOM = "\ufeff"

JOURNAL_COLUMNS = [
    {"key": "transaction_number", "header": "Number"},
    {"key": "date", "header": "Date"},
    {"key": "type", "header": "Type"},
    {"key": "amount", "header": "Amount"},
    {"key": "currency", "header": "Currency"},
    {"key": "source_account", "header": "Source Account"},
    {"key": "destination_account", "header": "Destination Account"},
    {"key": "description", "header": "Description"},
    {"key": "student", "header": "Student"},
    {"key": "mentor", "header": "Mentor"},
    {"key": "professor", "header": "Professor"},
    {"key": "notes", "header": "Notes"},
]


def format_value(value: Any) -> str:
    """Format a value for export"""
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return str(value.value)
    return str(value)


def export_to_csv(data: List[Dict[str, Any]], columns: List[Dict[str, str]], delimiter: str = ",") -> str:
    """
    Export data to CSV text.

    Args:
        data: List of dictionaries containing the data
        columns: List of column definitions with 'key' and 'header'
        delimiter: CSV delimiter

    Returns:
        CSV content with a header row
    """
    output = io.StringIO()
    writer = csv.writer(output, delimiter=delimiter, quoting=csv.QUOTE_MINIMAL)

    writer.writerow([col["header"] for col in columns])
    for row_data in data:
        writer.writerow([format_value(row_data.get(col["key"], "")) for col in columns])

    return output.getvalue()


class JournalExportService:
    """Builds the CSV export of the journal"""

    def __init__(self, db: Session):
        self.journal = JournalRepository(db)
        self.accounts = AccountRepository(db)
        self.counterparties = CounterpartyRepository(db)

    def export_csv(self, filters: TransactionFilters) -> Tuple[str, int]:
        """
        Returns:
            (csv content prefixed with a UTF-8 BOM, number of exported transactions)
        """
        transactions = self.journal.search_all(filters)
        rows = self.rows(transactions)
        return UTF8_BOM + export_to_csv(rows, JOURNAL_COLUMNS), len(rows)

    def rows(self, transactions: List[LedgerTransaction]) -> List[Dict[str, Any]]:
        account_names = {a.id: a.account_name for a in self.accounts.list_accounts(include_inactive=True)}
        names: Dict[CounterpartyRef, str] = {}

        def person(kind: CounterpartyKind, person_id: Optional[str]) -> Optional[str]:
            if not person_id:
                return None
            ref = CounterpartyRef(kind, person_id)
            if ref not in names:
                entry = self.counterparties.get(ref)
                names[ref] = entry.display_name if entry is not None and entry.display_name else person_id
            return names[ref]

        return [
            {
                "transaction_number": txn.transaction_number,
                "date": txn.date,
                "type": txn.type,
                "amount": format_major(txn.amount),
                "currency": txn.currency,
                "source_account": account_names.get(txn.source_account_id),
                "destination_account": account_names.get(txn.destination_account_id),
                "description": txn.description,
                "student": person(CounterpartyKind.STUDENT, txn.student_id),
                "mentor": person(CounterpartyKind.MENTOR, txn.mentor_id),
                "professor": person(CounterpartyKind.PROFESSOR, txn.professor_id),
                "notes": txn.notes,
            }
            for txn in transactions
        ]
