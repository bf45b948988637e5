"""Typed records stored in the database spreadsheet.

Records are frozen dataclasses identified by an opaque string id generated by the
caller at creation time. Edit a record by building a changed copy with
:func:`dataclasses.replace` and passing it to the matching update operation. Timestamps are timezone-aware UTC datetimes with
millisecond precision, matching what the sheet can store.
"""
import dataclasses
import datetime
import enum
import uuid
from typing import FrozenSet, Optional


class Relation(enum.StrEnum):
    Self = 'Self'
    Friend = 'Friend'
    Family = 'Family'


class SourceType(enum.StrEnum):
    Bank = 'BANK'
    Card = 'CARD'
    Cash = 'CASH'


class EntryType(enum.StrEnum):
    Income = 'INCOME'
    Expense = 'EXPENSE'


class BalanceOrigin(enum.StrEnum):
    System = 'SYSTEM'
    Manual = 'MANUAL'


def new_id() -> str:
    """Return a new globally-unique record identifier."""
    return str(uuid.uuid4())


def now() -> datetime.datetime:
    """Return the current UTC time truncated to milliseconds."""
    value = datetime.datetime.now(datetime.timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


@dataclasses.dataclass(frozen=True)
class Person:
    id: str
    name: str
    relation: Relation
    created_at: datetime.datetime
    notes: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class Source:
    """A money source (bank account, card or cash) transactions are booked against.

    The current balance is never stored, see :class:`SourceWithBalance`.
    """
    id: str
    name: str
    type: SourceType
    created_at: datetime.datetime
    starting_balance: float = 0.0
    notes: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class SourceWithBalance(Source):
    """A source together with its balance derived from all transactions."""
    current_balance: float = 0.0


@dataclasses.dataclass(frozen=True)
class Category:
    id: str
    name: str
    created_at: datetime.datetime
    emoji: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class Subcategory:
    id: str
    parent_category_id: str
    name: str
    created_at: datetime.datetime


@dataclasses.dataclass(frozen=True)
class Transaction:
    """A single income or expense entry.

    The amount is always non-negative, the sign is implied by `entry_type`.
    `people_ids` is order-insignificant.
    """
    id: str
    date: datetime.datetime
    amount: float
    entry_type: EntryType
    category_id: str
    source_id: str
    created_at: datetime.datetime
    subcategory_id: Optional[str] = None
    people_ids: FrozenSet[str] = frozenset()
    notes: Optional[str] = None

    @property
    def signed_amount(self) -> float:
        """The amount as it affects the balance of its source."""
        if self.entry_type == EntryType.Expense:
            return -self.amount
        return self.amount


@dataclasses.dataclass(frozen=True)
class AccountBalance:
    """A balance snapshot of a source. Has no sheet yet."""
    id: str
    source_id: str
    date: datetime.datetime
    balance: float
    calculated_from: BalanceOrigin
    created_at: datetime.datetime
