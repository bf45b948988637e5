"""
Unit tests for CashTag.core.mapper: row codecs and derived balances.

Run:
    python -m unittest tests.test_mapper
"""
import datetime
import unittest

from CashTag.core import mapper
from CashTag.core import schema
from CashTag.core.models import (
    AccountBalance,
    BalanceOrigin,
    Category,
    EntryType,
    Person,
    Relation,
    Source,
    SourceType,
    Subcategory,
    Transaction,
)
from CashTag.core.schema import Table
from CashTag.status import status

UTC = datetime.timezone.utc
CREATED = datetime.datetime(2024, 5, 1, 10, 0, 0, 123000, tzinfo=UTC)


def sample_records():
    return {
        Table.People: Person(id='p1', name='Me', relation=Relation.Self, created_at=CREATED, notes='hello'),
        Table.Sources: Source(id='s1', name='Wallet', type=SourceType.Cash, created_at=CREATED,
                              starting_balance=45.5),
        Table.Categories: Category(id='c1', name='Food', created_at=CREATED, emoji='🍔'),
        Table.Subcategories: Subcategory(id='sc1', parent_category_id='c1', name='Lunch', created_at=CREATED),
        Table.Transactions: Transaction(
            id='t1',
            date=datetime.datetime(2024, 5, 2, tzinfo=UTC),
            amount=50.0,
            entry_type=EntryType.Expense,
            category_id='c1',
            subcategory_id='sc1',
            source_id='s1',
            people_ids=frozenset({'p2', 'p1'}),
            created_at=CREATED,
        ),
    }


class CodecTests(unittest.TestCase):

    def test_round_trip_every_table(self):
        for table, record in sample_records().items():
            with self.subTest(table=table):
                row = mapper.encode(table, record)
                self.assertEqual(len(row), schema.column_count(table))
                self.assertEqual(mapper.decode(table, row), record)

    def test_encode_transaction_canonical_forms(self):
        row = mapper.encode(Table.Transactions, sample_records()[Table.Transactions])
        fields = dict(zip(schema.columns(Table.Transactions), row))
        self.assertEqual(fields['date'], '2024-05-02T00:00:00.000Z')
        self.assertEqual(fields['amount'], '50')
        self.assertEqual(fields['entryType'], 'EXPENSE')
        self.assertEqual(fields['peopleIds'], 'p1,p2')
        self.assertEqual(fields['createdAt'], '2024-05-01T10:00:00.123Z')
        self.assertEqual(fields['notes'], '')

    def test_well_formed_row_round_trips(self):
        row = ['t9', '2024-05-01T10:00:00.000Z', '45.5', 'INCOME', 'c1', '', 's1', '', '2024-05-01T10:00:00.000Z', '']
        self.assertEqual(mapper.encode(Table.Transactions, mapper.decode(Table.Transactions, row)), row)

    def test_short_row_reads_missing_cells_as_empty(self):
        person = mapper.decode(Table.People, ['p1', 'Me', 'Self', '2024-05-01T10:00:00.000Z'])
        self.assertIsNone(person.notes)

    def test_extra_cells_are_ignored(self):
        category = mapper.decode(Table.Categories, ['c1', 'Food', '', '2024-05-01T10:00:00.000Z', 'junk'])
        self.assertEqual(category.name, 'Food')
        self.assertIsNone(category.emoji)

    def test_empty_people_ids(self):
        row = mapper.encode(Table.Transactions, sample_records()[Table.Transactions])
        row[schema.columns(Table.Transactions).index('peopleIds')] = ''
        self.assertEqual(mapper.decode(Table.Transactions, row).people_ids, frozenset())

    def test_empty_starting_balance_reads_as_zero(self):
        source = mapper.decode(Table.Sources, ['s1', 'Bank', 'BANK', '2024-05-01T10:00:00.000Z'])
        self.assertEqual(source.starting_balance, 0.0)
        self.assertEqual(source.type, SourceType.Bank)

    def test_naive_and_bare_dates_read_as_utc(self):
        self.assertEqual(mapper.parse_timestamp('2024-05-01'), datetime.datetime(2024, 5, 1, tzinfo=UTC))
        self.assertEqual(mapper.parse_timestamp('2024-05-01T10:00:00'),
                         datetime.datetime(2024, 5, 1, 10, tzinfo=UTC))

    def test_format_number(self):
        self.assertEqual(mapper.format_number(50), '50')
        self.assertEqual(mapper.format_number(45.5), '45.5')
        self.assertEqual(mapper.format_number(0.1), '0.1')

    def test_invalid_values_raise(self):
        with self.assertRaises(status.RecordInvalidException):
            mapper.parse_number('fifty')
        with self.assertRaises(status.RecordInvalidException):
            mapper.parse_timestamp('yesterday')
        with self.assertRaises(status.RecordInvalidException):
            mapper.decode(Table.People, ['p1', 'Me', 'Stranger', '2024-05-01T10:00:00.000Z'])

    def test_encode_rejects_wrong_record_type(self):
        with self.assertRaises(TypeError):
            mapper.encode(Table.People, sample_records()[Table.Categories])

    def test_balance_codec(self):
        balance = AccountBalance(id='b1', source_id='s1', date=CREATED, balance=120.0,
                                 calculated_from=BalanceOrigin.System, created_at=CREATED)
        row = mapper.encode_balance(balance)
        self.assertEqual(len(row), len(schema.BALANCE_COLUMNS))
        self.assertEqual(mapper.decode_balance(row), balance)


class BalanceTests(unittest.TestCase):

    def _transaction(self, tid, amount, entry_type, source_id='s1'):
        return Transaction(id=tid, date=CREATED, amount=amount, entry_type=entry_type,
                           category_id='c1', source_id=source_id, created_at=CREATED)

    def test_current_balance(self):
        source = Source(id='s1', name='Bank', type=SourceType.Bank, created_at=CREATED, starting_balance=100)
        transactions = [
            self._transaction('t1', 50, EntryType.Income),
            self._transaction('t2', 30, EntryType.Expense),
        ]
        result = mapper.sources_with_balances([source], transactions)
        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].current_balance, 120)
        self.assertEqual(result[0].starting_balance, 100)

    def test_source_without_transactions(self):
        source = Source(id='s2', name='Card', type=SourceType.Card, created_at=CREATED, starting_balance=10)
        result = mapper.sources_with_balances([source], [self._transaction('t1', 5, EntryType.Expense)])
        self.assertEqual(result[0].current_balance, 10)

    def test_duplicate_source_rows_share_transactions(self):
        first = Source(id='s1', name='Bank', type=SourceType.Bank, created_at=CREATED, starting_balance=100)
        second = Source(id='s1', name='Bank', type=SourceType.Bank, created_at=CREATED, starting_balance=100)
        transactions = [self._transaction('t1', 50, EntryType.Income)]

        result = mapper.sources_with_balances([first, second], transactions)
        self.assertEqual([r.current_balance for r in result], [150, 150])

    def test_unknown_source_ids_are_reported(self):
        source = Source(id='s1', name='Bank', type=SourceType.Bank, created_at=CREATED)
        transactions = [
            self._transaction('t1', 5, EntryType.Expense),
            self._transaction('t2', 5, EntryType.Expense, source_id='ghost'),
        ]
        with self.assertLogs(level='WARNING') as logs:
            result = mapper.sources_with_balances([source], transactions)
        self.assertEqual(result[0].current_balance, -5)
        self.assertIn('[ghost]', logs.output[0])


if __name__ == '__main__':
    unittest.main()
