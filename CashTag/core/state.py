"""In-memory application state mirroring the database spreadsheet.

:class:`AppState` is the single place a UI reads records from. It starts empty,
is populated by :meth:`AppState.hydrate` once a spreadsheet is attached and is
emptied by :meth:`AppState.clear` on disconnect or sign-out.

Writes are two-phase: the record is validated and applied locally first, then
written remotely. When the remote write fails the ``sync.on_failure`` policy
decides what happens to the local change:

- ``unsynced``: the change is kept and the record id is added to :attr:`AppState.unsynced`.
- ``revert``: the previous local state is restored.

The remote error is raised to the caller under both policies.
"""
import datetime
import logging
from typing import Any, Callable, Iterable, List, Optional, Set

import pandas as pd
from PySide6 import QtCore

from . import mapper
from .database import DatabaseAPI
from .models import (
    Category,
    EntryType,
    Person,
    Relation,
    Source,
    SourceType,
    SourceWithBalance,
    Subcategory,
    Transaction,
    new_id,
    now,
)
from .schema import Table
from .service import run_concurrently
from ..data import data
from ..signals import signals
from ..status import status

COLLECTIONS = {
    Table.People: 'people',
    Table.Sources: 'sources',
    Table.Categories: 'categories',
    Table.Subcategories: 'subcategories',
    Table.Transactions: 'transactions',
}


def _same_name(a: str, b: str) -> bool:
    return a.strip().casefold() == b.strip().casefold()


class AppState(QtCore.QObject):
    """The records of all tables of the attached spreadsheet.

    Signals:
        stateChanged: Emitted after the collections change.
        recordChanged (str, str): Emitted with the table and id of a record changed locally.
        syncFailed (str, str): Emitted with the table and id of a record whose remote write failed.
    """
    stateChanged = QtCore.Signal()
    recordChanged = QtCore.Signal(str, str)
    syncFailed = QtCore.Signal(str, str)

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._db: Optional[DatabaseAPI] = None
        self.spreadsheet_id: Optional[str] = None

        self.people: List[Person] = []
        self.sources: List[Source] = []
        self.categories: List[Category] = []
        self.subcategories: List[Subcategory] = []
        self.transactions: List[Transaction] = []

        self.unsynced: Set[str] = set()
        self.hydrated: bool = False

    @property
    def db(self) -> DatabaseAPI:
        if self._db is None:
            raise status.SpreadsheetNotConnectedException
        return self._db

    def attach(self, db: DatabaseAPI) -> None:
        """Use `db` for all further reads and writes. Does not fetch anything."""
        self._db = db
        self.spreadsheet_id = db.spreadsheet_id
        logging.debug(f'Attached spreadsheet {db.spreadsheet_id}.')

    def hydrate(self) -> None:
        """Fetch every table concurrently and replace the local collections.

        If any fetch fails the first error is raised and the local collections
        are left untouched.

        Raises:
            status.SpreadsheetNotConnectedException: If no spreadsheet is attached.
            status.RemoteApiError: If a fetch fails.
        """
        db = self.db
        signals.dataAboutToBeFetched.emit()

        people, sources, categories, subcategories, transactions = run_concurrently([
            db.fetch_people,
            db.fetch_sources,
            db.fetch_categories,
            db.fetch_subcategories,
            db.fetch_transactions,
        ])

        self.people = people
        self.sources = sources
        self.categories = categories
        self.subcategories = subcategories
        self.transactions = transactions
        self.unsynced.clear()
        self.hydrated = True

        logging.debug(
            f'Hydrated {len(people)} people, {len(sources)} sources, {len(categories)} categories, '
            f'{len(subcategories)} subcategories and {len(transactions)} transactions.'
        )
        self.stateChanged.emit()
        signals.dataFetched.emit()

    def clear(self) -> None:
        """Detach the spreadsheet and drop every record."""
        self._db = None
        self.spreadsheet_id = None
        self.people = []
        self.sources = []
        self.categories = []
        self.subcategories = []
        self.transactions = []
        self.unsynced.clear()
        self.hydrated = False

        self.stateChanged.emit()
        signals.dataCleared.emit()

    def records(self, table: Table) -> List[Any]:
        return getattr(self, COLLECTIONS[Table(table)])

    def get(self, table: Table, record_id: str) -> Optional[Any]:
        return next((r for r in self.records(table) if r.id == record_id), None)

    # --- validation ----------------------------------------------------------

    def _check_name(self, name: str, others: Iterable[Any], record_id: str, kind: str) -> None:
        if not name or not name.strip():
            raise status.RecordInvalidException(f'{kind} name must not be empty.')
        for other in others:
            if other.id != record_id and _same_name(other.name, name):
                raise status.RecordInvalidException(f'A {kind.lower()} named "{name.strip()}" already exists.')

    def _check_reference(self, table: Table, record_id: Optional[str], column: str) -> None:
        if not record_id or self.get(table, record_id) is None:
            raise status.RecordInvalidException(f'"{column}" refers to an unknown record: "{record_id}".')

    def validate(self, table: Table, record: Any) -> None:
        """Check `record` against the local collections.

        Raises:
            status.RecordInvalidException: If the record cannot be written.
        """
        table = Table(table)
        if not record.id:
            raise status.RecordInvalidException('Record id must not be empty.')

        if table == Table.People:
            self._check_name(record.name, self.people, record.id, 'Person')
            Relation(record.relation)
        elif table == Table.Sources:
            self._check_name(record.name, self.sources, record.id, 'Source')
            SourceType(record.type)
        elif table == Table.Categories:
            self._check_name(record.name, self.categories, record.id, 'Category')
        elif table == Table.Subcategories:
            self._check_reference(Table.Categories, record.parent_category_id, 'parentCategoryId')
            siblings = [s for s in self.subcategories if s.parent_category_id == record.parent_category_id]
            self._check_name(record.name, siblings, record.id, 'Subcategory')
        elif table == Table.Transactions:
            if not record.amount > 0:
                raise status.RecordInvalidException(f'Amount must be greater than zero, got {record.amount}.')
            EntryType(record.entry_type)
            self._check_reference(Table.Categories, record.category_id, 'categoryId')
            self._check_reference(Table.Sources, record.source_id, 'sourceId')
            if record.subcategory_id:
                self._check_reference(Table.Subcategories, record.subcategory_id, 'subcategoryId')
                if self.get(Table.Subcategories, record.subcategory_id).parent_category_id != record.category_id:
                    raise status.RecordInvalidException(
                        f'Subcategory "{record.subcategory_id}" does not belong to category "{record.category_id}".')
            for person_id in record.people_ids:
                self._check_reference(Table.People, person_id, 'peopleIds')

    # --- two-phase writes ----------------------------------------------------

    def _sync_policy(self, on_failure: Optional[str]) -> str:
        if on_failure:
            return on_failure
        from ..settings import lib
        return lib.settings.get_section('sync')['on_failure']

    def _write(self, table: Table, record: Any, remote: Callable[[Any], None],
               is_new: bool, on_failure: Optional[str]) -> Any:
        db = self.db
        try:
            self.validate(table, record)
        except ValueError as ex:
            raise status.RecordInvalidException(str(ex)) from ex

        items = self.records(table)
        index = next((i for i, r in enumerate(items) if r.id == record.id), None)
        if is_new and index is not None:
            raise status.RecordInvalidException(f'A record with id "{record.id}" already exists in "{table}".')
        if not is_new and index is None:
            raise status.RecordNotFoundException(f'No record with id "{record.id}" in "{table}".')

        previous = None if index is None else items[index]
        if index is None:
            items.append(record)
        else:
            items[index] = record
        self.recordChanged.emit(table.value, record.id)
        self.stateChanged.emit()

        try:
            remote(record)
        except Exception:
            policy = self._sync_policy(on_failure)
            logging.error(f'Failed to write {record.id} to "{table}", applying the "{policy}" policy.')
            if policy == 'revert':
                pos = next(i for i, r in enumerate(items) if r.id == record.id)
                if previous is None:
                    del items[pos]
                else:
                    items[pos] = previous
                self.recordChanged.emit(table.value, record.id)
                self.stateChanged.emit()
            else:
                self.unsynced.add(record.id)
            self.syncFailed.emit(table.value, record.id)
            raise

        self.unsynced.discard(record.id)
        logging.debug(f'{"Added" if is_new else "Updated"} {record.id} in "{table}" ({db.spreadsheet_id}).')
        return record

    def add_person(self, name: str, relation: Relation = Relation.Friend,
                   notes: Optional[str] = None, on_failure: Optional[str] = None) -> Person:
        person = Person(id=new_id(), name=name.strip(), relation=relation, created_at=now(), notes=notes or None)
        return self._write(Table.People, person, self.db.add_person, True, on_failure)

    def update_person(self, person: Person, on_failure: Optional[str] = None) -> Person:
        return self._write(Table.People, person, self.db.update_person, False, on_failure)

    def add_source(self, name: str, type: SourceType, starting_balance: float = 0.0,
                   notes: Optional[str] = None, on_failure: Optional[str] = None) -> Source:
        source = Source(id=new_id(), name=name.strip(), type=type, created_at=now(),
                        starting_balance=float(starting_balance), notes=notes or None)
        return self._write(Table.Sources, source, self.db.add_source, True, on_failure)

    def update_source(self, source: Source, on_failure: Optional[str] = None) -> Source:
        return self._write(Table.Sources, source, self.db.update_source, False, on_failure)

    def add_category(self, name: str, emoji: Optional[str] = None,
                     on_failure: Optional[str] = None) -> Category:
        category = Category(id=new_id(), name=name.strip(), created_at=now(), emoji=emoji or None)
        return self._write(Table.Categories, category, self.db.add_category, True, on_failure)

    def update_category(self, category: Category, on_failure: Optional[str] = None) -> Category:
        return self._write(Table.Categories, category, self.db.update_category, False, on_failure)

    def add_subcategory(self, parent_category_id: str, name: str,
                        on_failure: Optional[str] = None) -> Subcategory:
        subcategory = Subcategory(id=new_id(), parent_category_id=parent_category_id, name=name.strip(),
                                  created_at=now())
        return self._write(Table.Subcategories, subcategory, self.db.add_subcategory, True, on_failure)

    def update_subcategory(self, subcategory: Subcategory, on_failure: Optional[str] = None) -> Subcategory:
        return self._write(Table.Subcategories, subcategory, self.db.update_subcategory, False, on_failure)

    def add_transaction(self, amount: float, entry_type: EntryType, category_id: str, source_id: str,
                        date: Optional[datetime.datetime] = None, subcategory_id: Optional[str] = None,
                        people_ids: Iterable[str] = (), notes: Optional[str] = None,
                        on_failure: Optional[str] = None) -> Transaction:
        created_at = now()
        transaction = Transaction(
            id=new_id(),
            date=date or created_at,
            amount=float(amount),
            entry_type=entry_type,
            category_id=category_id,
            source_id=source_id,
            created_at=created_at,
            subcategory_id=subcategory_id or None,
            people_ids=frozenset(people_ids),
            notes=notes or None,
        )
        return self._write(Table.Transactions, transaction, self.db.add_transaction, True, on_failure)

    def update_transaction(self, transaction: Transaction, on_failure: Optional[str] = None) -> Transaction:
        return self._write(Table.Transactions, transaction, self.db.update_transaction, False, on_failure)

    # --- derived views -------------------------------------------------------

    def sources_with_balances(self) -> List[SourceWithBalance]:
        return mapper.sources_with_balances(self.sources, self.transactions)

    def monthly_total(self, entry_type: EntryType, reference: Optional[datetime.datetime] = None) -> float:
        return data.monthly_total(self.transactions, entry_type, reference)

    def personal_spending(self, reference: Optional[datetime.datetime] = None) -> float:
        return data.personal_spending(self.transactions, self.people, reference)

    def category_totals(self, reference: Optional[datetime.datetime] = None) -> pd.DataFrame:
        return data.category_totals(self.transactions, self.categories, reference)

    def daily_spending(self, days: int = 7, reference: Optional[datetime.datetime] = None) -> pd.DataFrame:
        return data.daily_spending(self.transactions, days, reference)

    def month_comparison(self, reference: Optional[datetime.datetime] = None) -> dict:
        return data.month_comparison(self.transactions, reference)
