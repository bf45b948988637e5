"""Table registry for the database spreadsheet.

Every table is one sheet. Row 1 of each sheet holds the column names below,
verbatim and in order, and every data row carries exactly these columns. The
mapper indexes rows through this registry only.

Changing a column list is a breaking change: spreadsheets provisioned with the
old header must be re-provisioned.
"""
import enum
from typing import Dict, List


class Table(enum.StrEnum):
    """Enum for the spreadsheet tables. Values are the sheet titles."""
    Transactions = 'transactions'
    Sources = 'accounts'
    People = 'person'
    Categories = 'category'
    Subcategories = 'subcategory'


SCHEMA: Dict[Table, List[str]] = {
    Table.Transactions: [
        'id', 'date', 'amount', 'entryType', 'categoryId', 'subcategoryId',
        'sourceId', 'peopleIds', 'createdAt', 'notes',
    ],
    Table.Sources: ['id', 'name', 'type', 'createdAt', 'startingBalance', 'notes'],
    Table.People: ['id', 'name', 'relation', 'createdAt', 'notes'],
    Table.Categories: ['id', 'name', 'emoji', 'createdAt'],
    Table.Subcategories: ['id', 'parentCategoryId', 'name', 'createdAt'],
}

# Account balances have a record type but no sheet yet
BALANCE_COLUMNS: List[str] = ['id', 'sourceId', 'date', 'balance', 'calculatedFrom', 'createdAt']


def idx_to_col(idx: int) -> str:
    """Convert zero-based column index to spreadsheet letter(s).

    Args:
        idx: The zero-based column index.

    Returns:
        The spreadsheet column letter(s) (e.g., A, B, AA).
    """
    letters = ''
    while idx >= 0:
        letters = chr((idx % 26) + ord('A')) + letters
        idx = idx // 26 - 1
    return letters


def table_names() -> List[str]:
    """Sheet titles of all tables in registry order."""
    return [table.value for table in SCHEMA]


def columns(table: Table) -> List[str]:
    """Return a copy of the ordered column names of `table`."""
    return list(SCHEMA[Table(table)])


def column_count(table: Table) -> int:
    return len(SCHEMA[Table(table)])


def last_column(table: Table) -> str:
    return idx_to_col(column_count(table) - 1)


def header_range(table: Table) -> str:
    """Top-left cell of the sheet, used to write the header and as the append anchor."""
    return f'{Table(table).value}!A1'


def full_range(table: Table) -> str:
    """Every row of the sheet across all schema columns, e.g. ``person!A:E``."""
    return f'{Table(table).value}!A:{last_column(table)}'


def id_range(table: Table) -> str:
    """The id column of the sheet, header included."""
    return f'{Table(table).value}!A:A'


def row_range(table: Table, row_number: int) -> str:
    """A single one-based row across all schema columns, e.g. ``person!A3:E3``."""
    return f'{Table(table).value}!A{row_number}:{last_column(table)}{row_number}'
