"""
Tests for CashTag.core.provision: finding, verifying and initializing the database spreadsheet.

Run:
    python -m unittest tests.test_provision
"""
from typing import List, Tuple

from CashTag.core import schema
from CashTag.core.database import DatabaseAPI
from CashTag.core.models import Relation, SourceType
from CashTag.core.provision import ProvisionState, Provisioner, get_spreadsheet_url
from CashTag.settings import lib
from CashTag.status import status
from tests.base import BaseFakeServiceTestCase


class ProvisionTests(BaseFakeServiceTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.provisioner = Provisioner(self.service)
        self.progress: List[Tuple[str, int]] = []
        self.states: List[str] = []
        self.provisioner.stateChanged.connect(self.states.append)

    def _on_progress(self, message: str, percent: int) -> None:
        self.progress.append((message, percent))

    def test_check_exists_uses_reserved_name(self):
        self.assertIsNone(self.provisioner.check_exists())
        spreadsheet_id = self.service.add_database('cash-tag-db.csv')
        self.assertEqual(self.provisioner.check_exists(), spreadsheet_id)
        self.assertEqual(self.service.calls_to('find_file')[0][1], 'cash-tag-db.csv')

    def test_check_exists_follows_settings(self):
        lib.settings.set_section('spreadsheet', {'filename': 'my-money'})
        spreadsheet_id = self.service.add_database('my-money')
        self.assertEqual(self.provisioner.check_exists(), spreadsheet_id)

    def test_verify_complete_spreadsheet(self):
        spreadsheet_id = self.service.add_database()
        self.assertTrue(self.provisioner.verify(spreadsheet_id))

    def test_verify_allows_extra_sheets(self):
        spreadsheet_id = self.service.add_database()
        self.service.files[spreadsheet_id]['sheets']['Notes'] = []
        self.assertTrue(self.provisioner.verify(spreadsheet_id))

    def test_verify_missing_sheet(self):
        spreadsheet_id = self.service.add_file('cash-tag-db.csv', {'transactions': [], 'person': []})
        self.assertFalse(self.provisioner.verify(spreadsheet_id))

    def test_verify_remote_failure_is_false(self):
        spreadsheet_id = self.service.add_database()
        self.service.fail_on['get_sheet_titles'] = status.RemoteApiError('Forbidden', http_status=403)
        self.assertFalse(self.provisioner.verify(spreadsheet_id))

    def test_initialize_empty_account(self):
        spreadsheet_id = self.provisioner.initialize(self._on_progress)

        self.assertEqual(len(self.service.calls_to('create_spreadsheet')), 1)
        self.assertEqual(self.service.files[spreadsheet_id]['name'], 'cash-tag-db.csv')
        self.assertTrue(self.provisioner.verify(spreadsheet_id))
        for table in schema.SCHEMA:
            self.assertEqual(self.service.rows(spreadsheet_id, table.value)[0], schema.columns(table))

        db = DatabaseAPI(self.service, spreadsheet_id)
        people = db.fetch_people()
        sources = db.fetch_sources()
        categories = db.fetch_categories()
        self.assertEqual([(p.name, p.relation) for p in people], [('Me', Relation.Self)])
        self.assertEqual([(s.name, s.type, s.starting_balance) for s in sources],
                         [('Cash Wallet', SourceType.Cash, 0.0)])
        self.assertEqual([(c.name, c.emoji) for c in categories], [('Food & Dining', '🍔')])
        self.assertEqual(db.fetch_transactions(), [])

    def test_initialize_progress_is_monotonic(self):
        self.provisioner.initialize(self._on_progress)

        percents = [p for _, p in self.progress]
        self.assertEqual(percents, sorted(set(percents)))
        self.assertEqual(percents[0], 10)
        self.assertIn(30, percents)
        self.assertIn(95, percents)
        self.assertEqual(self.progress[-1], ('Done!', 100))

        n = len(schema.SCHEMA)
        headers = [round(40 + (i + 1) / n * 50) for i in range(n)]
        self.assertEqual([p for p in percents if 40 <= p <= 90], headers)

    def test_initialize_writes_headers_with_batch_writes(self):
        spreadsheet_id = self.provisioner.initialize(seed_defaults=False)

        writes = self.service.calls_to('batch_update_values')
        self.assertEqual(len(writes), len(schema.SCHEMA))
        for call, table in zip(writes, schema.SCHEMA):
            self.assertEqual(call[1], spreadsheet_id)
            self.assertEqual(call[2], [{'range': schema.header_range(table), 'values': [schema.columns(table)]}])
        self.assertEqual(self.service.calls_to('update_values'), [])

    def test_initialize_existing_complete_spreadsheet_adds_no_sheets(self):
        spreadsheet_id = self.service.add_database()
        result = self.provisioner.initialize(self._on_progress, spreadsheet_id=spreadsheet_id)

        self.assertEqual(result, spreadsheet_id)
        self.assertEqual(self.service.calls_to('create_spreadsheet'), [])
        self.assertEqual(self.service.calls_to('add_sheets'), [])
        self.assertNotIn(30, [p for _, p in self.progress])
        # Existing tables are not reseeded by default
        self.assertEqual(self.service.calls_to('append_values'), [])

    def test_initialize_without_seeding(self):
        spreadsheet_id = self.provisioner.initialize(seed_defaults=False)
        self.assertEqual(DatabaseAPI(self.service, spreadsheet_id).fetch_people(), [])

    def test_seed_setting_disables_defaults(self):
        defaults = lib.settings.get_section('defaults')
        defaults['seed'] = False
        lib.settings.set_section('defaults', defaults)

        spreadsheet_id = self.provisioner.initialize()
        self.assertEqual(self.service.calls_to('append_values'), [])
        self.assertTrue(self.provisioner.verify(spreadsheet_id))

    def test_run_finds_valid_spreadsheet(self):
        spreadsheet_id = self.service.add_database()
        self.assertEqual(self.provisioner.run(self._on_progress), spreadsheet_id)

        self.assertEqual(self.states, ['searching', 'verifying', 'valid', 'done'])
        self.assertEqual([p for _, p in self.progress], [10, 50, 100])
        self.assertEqual(self.service.calls_to('create_spreadsheet'), [])

    def test_run_creates_when_not_found(self):
        spreadsheet_id = self.provisioner.run(self._on_progress)

        self.assertEqual(self.states[:3], ['searching', 'not_found', 'creating'])
        self.assertEqual(self.states[-1], 'done')
        self.assertEqual(self.provisioner.state, ProvisionState.Done)
        self.assertEqual(self.provisioner.spreadsheet_id, spreadsheet_id)
        self.assertTrue(self.provisioner.verify(spreadsheet_id))

    def test_run_completes_invalid_spreadsheet(self):
        spreadsheet_id = self.service.add_file('cash-tag-db.csv', {'Sheet1': []})
        result = self.provisioner.run(self._on_progress)

        self.assertEqual(result, spreadsheet_id)
        self.assertIn('invalid', self.states)
        self.assertEqual(self.service.calls_to('create_spreadsheet'), [])
        self.assertEqual(self.service.calls_to('add_sheets')[0][2], schema.table_names())
        self.assertTrue(self.provisioner.verify(spreadsheet_id))

        percents = [p for _, p in self.progress]
        self.assertEqual(percents, sorted(percents))

    def test_run_failure_sets_error_state(self):
        self.service.fail_on['add_sheets'] = status.RemoteApiError('Quota exceeded.', http_status=429)

        with self.assertRaises(status.RemoteApiError):
            self.provisioner.run(self._on_progress)

        self.assertEqual(self.provisioner.state, ProvisionState.Error)
        self.assertEqual(self.states[-1], 'error')
        self.assertTrue(self.provisioner.message.startswith('Adding'))

    def test_retry_runs_again(self):
        self.service.fail_on['find_file'] = status.RemoteApiError('Backend error.', http_status=503)
        with self.assertRaises(status.RemoteApiError):
            self.provisioner.run(self._on_progress)

        del self.service.fail_on['find_file']
        spreadsheet_id = self.provisioner.retry()
        self.assertEqual(self.provisioner.state, ProvisionState.Done)
        self.assertTrue(self.provisioner.verify(spreadsheet_id))

    def test_spreadsheet_url(self):
        self.assertEqual(get_spreadsheet_url('abc'), 'https://docs.google.com/spreadsheets/d/abc/edit')
        self.assertEqual(self.provisioner.get_spreadsheet_url('abc'), get_spreadsheet_url('abc'))
