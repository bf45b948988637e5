"""Row encode/decode pairs for every table.

A raw row is the ordered list of cell strings of one sheet row. Decoding pairs
the cells with the column names of :mod:`CashTag.core.schema` and builds the
typed record; encoding builds the cells of every column and orders them by the
same registry. Both directions agree on these canonical forms:

- numbers: ``repr`` of the float without a trailing ``.0`` (``50``, ``45.5``)
- timestamps: ISO-8601 UTC with milliseconds and a ``Z`` suffix
- id sets: sorted and comma-joined, an empty cell is an empty set
- optional values: an empty cell is ``None``
"""
import datetime
import enum
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from . import schema
from .models import (
    AccountBalance,
    BalanceOrigin,
    Category,
    EntryType,
    Person,
    Relation,
    Source,
    SourceType,
    SourceWithBalance,
    Subcategory,
    Transaction,
)
from .schema import Table
from ..status import status


def format_timestamp(value: datetime.datetime) -> str:
    """Serialize a datetime to its canonical timestamp string.

    Naive values are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    value = value.astimezone(datetime.timezone.utc)
    return value.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_timestamp(text: str, column: str = 'date') -> datetime.datetime:
    """Parse a stored timestamp (or bare date) into an aware UTC datetime.

    Raises:
        status.RecordInvalidException: If the text is not an ISO-8601 date or timestamp.
    """
    try:
        value = datetime.datetime.fromisoformat(text)
    except ValueError as ex:
        raise status.RecordInvalidException(f'Column "{column}" holds an invalid timestamp: "{text}".') from ex

    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def format_number(value: float) -> str:
    text = repr(float(value))
    if text.endswith('.0'):
        text = text[:-2]
    return text


def parse_number(text: str, column: str = 'amount') -> float:
    """
    Raises:
        status.RecordInvalidException: If the text is not a decimal number.
    """
    try:
        return float(text)
    except ValueError as ex:
        raise status.RecordInvalidException(f'Column "{column}" holds an invalid number: "{text}".') from ex


def format_ids(ids: Iterable[str]) -> str:
    return ','.join(sorted(ids))


def parse_ids(text: str) -> frozenset:
    return frozenset(i for i in text.split(',') if i)


def format_optional(value: Optional[Any]) -> str:
    return '' if value is None else str(value)


def parse_optional(text: str) -> Optional[str]:
    return text or None


def parse_enum(enum_type: Type[enum.StrEnum], text: str, column: str) -> Any:
    try:
        return enum_type(text)
    except ValueError as ex:
        allowed = ', '.join(e.value for e in enum_type)
        raise status.RecordInvalidException(
            f'Column "{column}" must be one of {allowed}, got "{text}".'
        ) from ex


def _fields(column_names: List[str], row: Sequence[Any]) -> Dict[str, str]:
    """Pair a raw row with column names.

    Missing trailing cells read as empty, cells beyond the schema are ignored.
    """
    cells = ['' if cell is None else str(cell) for cell in row[:len(column_names)]]
    cells += [''] * (len(column_names) - len(cells))
    return dict(zip(column_names, cells))


def _row(column_names: List[str], fields: Dict[str, str]) -> List[str]:
    return [fields[name] for name in column_names]


# --- person ------------------------------------------------------------------

def decode_person(row: Sequence[Any]) -> Person:
    f = _fields(schema.columns(Table.People), row)
    return Person(
        id=f['id'],
        name=f['name'],
        relation=parse_enum(Relation, f['relation'], 'relation'),
        created_at=parse_timestamp(f['createdAt'], 'createdAt'),
        notes=parse_optional(f['notes']),
    )


def encode_person(person: Person) -> List[str]:
    return _row(schema.columns(Table.People), {
        'id': person.id,
        'name': person.name,
        'relation': Relation(person.relation).value,
        'createdAt': format_timestamp(person.created_at),
        'notes': format_optional(person.notes),
    })


# --- source ------------------------------------------------------------------

def decode_source(row: Sequence[Any]) -> Source:
    f = _fields(schema.columns(Table.Sources), row)
    return Source(
        id=f['id'],
        name=f['name'],
        type=parse_enum(SourceType, f['type'], 'type'),
        created_at=parse_timestamp(f['createdAt'], 'createdAt'),
        # Rows written before starting balances existed leave the cell empty
        starting_balance=parse_number(f['startingBalance'], 'startingBalance') if f['startingBalance'] else 0.0,
        notes=parse_optional(f['notes']),
    )


def encode_source(source: Source) -> List[str]:
    return _row(schema.columns(Table.Sources), {
        'id': source.id,
        'name': source.name,
        'type': SourceType(source.type).value,
        'createdAt': format_timestamp(source.created_at),
        'startingBalance': format_number(source.starting_balance),
        'notes': format_optional(source.notes),
    })


# --- category ----------------------------------------------------------------

def decode_category(row: Sequence[Any]) -> Category:
    f = _fields(schema.columns(Table.Categories), row)
    return Category(
        id=f['id'],
        name=f['name'],
        emoji=parse_optional(f['emoji']),
        created_at=parse_timestamp(f['createdAt'], 'createdAt'),
    )


def encode_category(category: Category) -> List[str]:
    return _row(schema.columns(Table.Categories), {
        'id': category.id,
        'name': category.name,
        'emoji': format_optional(category.emoji),
        'createdAt': format_timestamp(category.created_at),
    })


# --- subcategory -------------------------------------------------------------

def decode_subcategory(row: Sequence[Any]) -> Subcategory:
    f = _fields(schema.columns(Table.Subcategories), row)
    return Subcategory(
        id=f['id'],
        parent_category_id=f['parentCategoryId'],
        name=f['name'],
        created_at=parse_timestamp(f['createdAt'], 'createdAt'),
    )


def encode_subcategory(subcategory: Subcategory) -> List[str]:
    return _row(schema.columns(Table.Subcategories), {
        'id': subcategory.id,
        'parentCategoryId': subcategory.parent_category_id,
        'name': subcategory.name,
        'createdAt': format_timestamp(subcategory.created_at),
    })


# --- transaction -------------------------------------------------------------

def decode_transaction(row: Sequence[Any]) -> Transaction:
    f = _fields(schema.columns(Table.Transactions), row)
    return Transaction(
        id=f['id'],
        date=parse_timestamp(f['date'], 'date'),
        amount=parse_number(f['amount'], 'amount'),
        entry_type=parse_enum(EntryType, f['entryType'], 'entryType'),
        category_id=f['categoryId'],
        subcategory_id=parse_optional(f['subcategoryId']),
        source_id=f['sourceId'],
        people_ids=parse_ids(f['peopleIds']),
        created_at=parse_timestamp(f['createdAt'], 'createdAt'),
        notes=parse_optional(f['notes']),
    )


def encode_transaction(transaction: Transaction) -> List[str]:
    return _row(schema.columns(Table.Transactions), {
        'id': transaction.id,
        'date': format_timestamp(transaction.date),
        'amount': format_number(transaction.amount),
        'entryType': EntryType(transaction.entry_type).value,
        'categoryId': transaction.category_id,
        'subcategoryId': format_optional(transaction.subcategory_id),
        'sourceId': transaction.source_id,
        'peopleIds': format_ids(transaction.people_ids),
        'createdAt': format_timestamp(transaction.created_at),
        'notes': format_optional(transaction.notes),
    })


# --- account balance ---------------------------------------------------------

def decode_balance(row: Sequence[Any]) -> AccountBalance:
    f = _fields(schema.BALANCE_COLUMNS, row)
    return AccountBalance(
        id=f['id'],
        source_id=f['sourceId'],
        date=parse_timestamp(f['date'], 'date'),
        balance=parse_number(f['balance'], 'balance'),
        calculated_from=parse_enum(BalanceOrigin, f['calculatedFrom'], 'calculatedFrom'),
        created_at=parse_timestamp(f['createdAt'], 'createdAt'),
    )


def encode_balance(balance: AccountBalance) -> List[str]:
    return _row(schema.BALANCE_COLUMNS, {
        'id': balance.id,
        'sourceId': balance.source_id,
        'date': format_timestamp(balance.date),
        'balance': format_number(balance.balance),
        'calculatedFrom': BalanceOrigin(balance.calculated_from).value,
        'createdAt': format_timestamp(balance.created_at),
    })


Decoder = Callable[[Sequence[Any]], Any]
Encoder = Callable[[Any], List[str]]

CODECS: Dict[Table, Tuple[Decoder, Encoder]] = {
    Table.Transactions: (decode_transaction, encode_transaction),
    Table.Sources: (decode_source, encode_source),
    Table.People: (decode_person, encode_person),
    Table.Categories: (decode_category, encode_category),
    Table.Subcategories: (decode_subcategory, encode_subcategory),
}

RECORD_TYPES: Dict[Table, type] = {
    Table.Transactions: Transaction,
    Table.Sources: Source,
    Table.People: Person,
    Table.Categories: Category,
    Table.Subcategories: Subcategory,
}


def decode(table: Table, row: Sequence[Any]) -> Any:
    return CODECS[Table(table)][0](row)


def encode(table: Table, record: Any) -> List[str]:
    table = Table(table)
    if not isinstance(record, RECORD_TYPES[table]):
        raise TypeError(f'Table "{table}" stores {RECORD_TYPES[table].__name__} records, got {type(record).__name__}.')
    return CODECS[table][1](record)


def sources_with_balances(sources: Iterable[Source],
                          transactions: Iterable[Transaction]) -> List[SourceWithBalance]:
    """Derive the current balance of every source.

    current balance = starting balance + sum of signed transaction amounts booked
    against the source. Computed from scratch on every call.

    Args:
        sources: All sources.
        transactions: All transactions.

    Returns:
        One :class:`SourceWithBalance` per source, in the order of `sources`.
    """
    totals: Dict[str, float] = {}
    for transaction in transactions:
        totals[transaction.source_id] = totals.get(transaction.source_id, 0.0) + transaction.signed_amount

    result = []
    for source in sources:
        result.append(SourceWithBalance(
            id=source.id,
            name=source.name,
            type=source.type,
            created_at=source.created_at,
            starting_balance=source.starting_balance,
            notes=source.notes,
            current_balance=source.starting_balance + totals.get(source.id, 0.0),
        ))

    unknown = set(totals) - {source.id for source in result}
    if unknown:
        logging.warning(f'{len(unknown)} source id(s) referenced by transactions were not found: '
                        f'[{",".join(sorted(unknown))}].')
    return result
