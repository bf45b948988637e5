"""Repository operations over the database spreadsheet.

:class:`DatabaseAPI` maps typed records to sheet rows and issues one transport call
per operation (updates need two: the id column is re-read to locate the row).
Nothing is cached; every fetch reads the sheet.
"""
import logging
from typing import Any, List

from . import mapper
from . import schema
from .models import (
    AccountBalance,
    Category,
    Person,
    Source,
    Subcategory,
    Transaction,
)
from .schema import Table
from .service import SheetsService
from ..status import status


class DatabaseAPI:
    """Read, append and update records of one database spreadsheet.

    Args:
        service: The transport used for every call.
        spreadsheet_id: The id of a provisioned spreadsheet.
    """

    def __init__(self, service: SheetsService, spreadsheet_id: str) -> None:
        if not spreadsheet_id:
            raise status.SpreadsheetNotConnectedException
        self.service = service
        self.spreadsheet_id = spreadsheet_id

    def fetch_all(self, table: Table) -> List[Any]:
        """Return every record of `table` in sheet order.

        Row 1 is the header and is skipped. Rows without a single non-empty cell
        are ignored.

        Raises:
            status.RemoteApiError: If the read fails.
            status.RecordInvalidException: If a row cannot be decoded.
        """
        table = Table(table)
        rows = self.service.get_values(self.spreadsheet_id, schema.full_range(table))
        if len(rows) <= 1:
            return []

        records = []
        for row in rows[1:]:
            if not any(str(cell).strip() for cell in row):
                continue
            records.append(mapper.decode(table, row))

        logging.debug(f'Fetched {len(records)} record(s) from "{table}".')
        return records

    def append(self, table: Table, record: Any) -> None:
        """Append `record` as a new row after the last row of `table`.

        Raises:
            status.RemoteApiError: If the write fails.
        """
        table = Table(table)
        row = mapper.encode(table, record)
        self.service.append_values(self.spreadsheet_id, schema.header_range(table), [row])
        logging.debug(f'Appended {record.id} to "{table}".')

    def find_row(self, table: Table, record_id: str) -> int:
        """Return the one-based row number holding `record_id`.

        Raises:
            status.RecordNotFoundException: If no data row has the id.
            status.RemoteApiError: If the read fails.
        """
        table = Table(table)
        rows = self.service.get_values(self.spreadsheet_id, schema.id_range(table))
        # Row 1 is the header
        for idx, row in enumerate(rows[1:], start=2):
            if row and row[0] == record_id:
                return idx
        raise status.RecordNotFoundException(f'No row with id "{record_id}" in "{table}".')

    def update(self, table: Table, record: Any) -> None:
        """Overwrite the row of `table` whose id equals the record's id.

        Raises:
            status.RecordNotFoundException: If the id is not in the sheet.
            status.RemoteApiError: If the read or write fails.
        """
        table = Table(table)
        row = mapper.encode(table, record)
        row_number = self.find_row(table, record.id)
        self.service.update_values(self.spreadsheet_id, schema.row_range(table, row_number), [row])
        logging.debug(f'Updated {record.id} at row {row_number} of "{table}".')

    def fetch_people(self) -> List[Person]:
        return self.fetch_all(Table.People)

    def fetch_sources(self) -> List[Source]:
        return self.fetch_all(Table.Sources)

    def fetch_categories(self) -> List[Category]:
        return self.fetch_all(Table.Categories)

    def fetch_subcategories(self) -> List[Subcategory]:
        return self.fetch_all(Table.Subcategories)

    def fetch_transactions(self) -> List[Transaction]:
        return self.fetch_all(Table.Transactions)

    def add_person(self, person: Person) -> None:
        self.append(Table.People, person)

    def add_source(self, source: Source) -> None:
        self.append(Table.Sources, source)

    def add_category(self, category: Category) -> None:
        self.append(Table.Categories, category)

    def add_subcategory(self, subcategory: Subcategory) -> None:
        self.append(Table.Subcategories, subcategory)

    def add_transaction(self, transaction: Transaction) -> None:
        self.append(Table.Transactions, transaction)

    def update_person(self, person: Person) -> None:
        self.update(Table.People, person)

    def update_source(self, source: Source) -> None:
        self.update(Table.Sources, source)

    def update_category(self, category: Category) -> None:
        self.update(Table.Categories, category)

    def update_subcategory(self, subcategory: Subcategory) -> None:
        self.update(Table.Subcategories, subcategory)

    def update_transaction(self, transaction: Transaction) -> None:
        self.update(Table.Transactions, transaction)

    def fetch_balances(self) -> List[AccountBalance]:
        # TODO: add a balances sheet to the schema registry using schema.BALANCE_COLUMNS
        raise NotImplementedError('Account balances have no sheet yet.')

    def add_balance(self, balance: AccountBalance) -> None:
        raise NotImplementedError('Account balances have no sheet yet.')
