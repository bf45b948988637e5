"""Spending summaries for the dashboard and trends views.

The functions take the in-memory records (see :class:`~CashTag.core.state.AppState`)
and build pandas frames from them on every call. Periods are calendar months and
days in UTC. `reference` is the point in time treated as "now".
"""
import datetime
import logging
from typing import Any, Dict, Iterable, Optional

import pandas as pd

from ..core.models import Category, EntryType, Person, Relation, Transaction, now

TRANSACTION_COLUMNS = [
    'id', 'date', 'amount', 'entry_type', 'category_id', 'subcategory_id',
    'source_id', 'people_ids', 'notes',
]
CATEGORY_TOTAL_COLUMNS = ['category_id', 'name', 'emoji', 'total', 'share']
DAILY_SPENDING_COLUMNS = ['date', 'day', 'amount']


def to_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """Convert transactions to a DataFrame sorted by date.

    Returns:
        pd.DataFrame: One row per transaction with the columns of TRANSACTION_COLUMNS.
            'date' is a UTC datetime column and 'amount' is float.
    """
    df = pd.DataFrame.from_records(
        [
            {
                'id': t.id,
                'date': t.date,
                'amount': t.amount,
                'entry_type': EntryType(t.entry_type).value,
                'category_id': t.category_id,
                'subcategory_id': t.subcategory_id,
                'source_id': t.source_id,
                'people_ids': t.people_ids,
                'notes': t.notes,
            }
            for t in transactions
        ],
        columns=TRANSACTION_COLUMNS,
    )
    df['date'] = pd.to_datetime(df['date'], utc=True)
    df['amount'] = df['amount'].astype(float)
    return df.sort_values(by='date', ascending=True).reset_index(drop=True)


def _month_start(reference: Optional[datetime.datetime], months_back: int = 0) -> pd.Timestamp:
    ts = pd.Timestamp(reference or now())
    if ts.tzinfo is None:
        ts = ts.tz_localize('UTC')
    start = ts.tz_convert('UTC').normalize().replace(day=1)
    if months_back:
        start = start - pd.DateOffset(months=months_back)
    return start


def _conform_period(df: pd.DataFrame, start: pd.Timestamp, end: pd.Timestamp) -> pd.DataFrame:
    """Select rows with start <= date < end."""
    return df[(df['date'] >= start) & (df['date'] < end)]


def _month_expenses(transactions: Iterable[Transaction],
                    reference: Optional[datetime.datetime],
                    entry_type: EntryType = EntryType.Expense,
                    months_back: int = 0) -> pd.DataFrame:
    df = to_frame(transactions)
    start = _month_start(reference, months_back)
    df = _conform_period(df, start, start + pd.DateOffset(months=1))
    return df[df['entry_type'] == EntryType(entry_type).value]


def monthly_total(transactions: Iterable[Transaction],
                  entry_type: EntryType,
                  reference: Optional[datetime.datetime] = None) -> float:
    """Sum of the amounts of `entry_type` transactions dated in the current month."""
    df = _month_expenses(transactions, reference, entry_type)
    return float(df['amount'].sum())


def personal_spending(transactions: Iterable[Transaction],
                      people: Iterable[Person],
                      reference: Optional[datetime.datetime] = None) -> float:
    """Sum of this month's expenses shared with the person whose relation is Self.

    Returns 0 when nobody has the Self relation.
    """
    self_id = next((p.id for p in people if p.relation == Relation.Self), None)
    if self_id is None:
        logging.debug('No person with the Self relation, personal spending is 0.')
        return 0.0

    df = _month_expenses(transactions, reference)
    if df.empty:
        return 0.0
    df = df[df['people_ids'].apply(lambda ids: self_id in ids)]
    return float(df['amount'].sum())


def category_totals(transactions: Iterable[Transaction],
                    categories: Iterable[Category],
                    reference: Optional[datetime.datetime] = None) -> pd.DataFrame:
    """Group this month's expenses by category.

    Args:
        transactions: All transactions.
        categories: All categories, used to resolve names and emojis.
        reference: The point in time treated as now.

    Returns:
        pd.DataFrame: Columns ['category_id', 'name', 'emoji', 'total', 'share'],
            sorted by descending total. 'share' is the fraction of the month's
            expenses. Unknown category ids are named 'Unknown'.
    """
    df = _month_expenses(transactions, reference)
    if df.empty:
        return pd.DataFrame(columns=CATEGORY_TOTAL_COLUMNS)

    lookup = {c.id: c for c in categories}
    df = df.groupby('category_id')['amount'].sum().reset_index(name='total')
    df['name'] = df['category_id'].apply(lambda i: lookup[i].name if i in lookup else 'Unknown')
    df['emoji'] = df['category_id'].apply(lambda i: lookup[i].emoji if i in lookup else None)

    grand_total = df['total'].sum()
    df['share'] = df['total'] / grand_total if grand_total else 0.0

    df = df.sort_values(by='total', ascending=False).reset_index(drop=True)
    return df[CATEGORY_TOTAL_COLUMNS]


def daily_spending(transactions: Iterable[Transaction],
                   days: int = 7,
                   reference: Optional[datetime.datetime] = None) -> pd.DataFrame:
    """Expenses per day for the last `days` days, today included.

    Returns:
        pd.DataFrame: Columns ['date', 'day', 'amount'], oldest day first. Days
            without expenses have an amount of 0.
    """
    days = max(int(days), 1)
    ts = pd.Timestamp(reference or now())
    if ts.tzinfo is None:
        ts = ts.tz_localize('UTC')
    index = pd.date_range(end=ts.tz_convert('UTC').normalize(), periods=days, freq='D')

    df = to_frame(transactions)
    df = df[df['entry_type'] == EntryType.Expense.value]
    totals = (
        df.groupby(df['date'].dt.date)['amount'].sum()
        .reindex(index.date, fill_value=0.0)
    )

    return pd.DataFrame({
        'date': index,
        'day': index.strftime('%a'),
        'amount': totals.to_numpy(dtype=float),
    }, columns=DAILY_SPENDING_COLUMNS)


def month_comparison(transactions: Iterable[Transaction],
                     reference: Optional[datetime.datetime] = None) -> Dict[str, Any]:
    """Compare this month's income and expenses with the previous month.

    Returns:
        dict: 'income' and 'expense' totals of this month, 'previous_income' and
            'previous_expense' of the month before, and 'expense_change', the
            relative change of expenses, None when the previous month had none.
    """
    transactions = list(transactions)
    result: Dict[str, Any] = {
        'income': float(_month_expenses(transactions, reference, EntryType.Income)['amount'].sum()),
        'expense': float(_month_expenses(transactions, reference, EntryType.Expense)['amount'].sum()),
        'previous_income': float(_month_expenses(transactions, reference, EntryType.Income, 1)['amount'].sum()),
        'previous_expense': float(_month_expenses(transactions, reference, EntryType.Expense, 1)['amount'].sum()),
    }
    if result['previous_expense']:
        result['expense_change'] = (result['expense'] - result['previous_expense']) / result['previous_expense']
    else:
        result['expense_change'] = None
    return result
