"""Find, verify and initialize the database spreadsheet.

The database lives in a spreadsheet with a reserved name in the user's Drive. A
spreadsheet is valid when it contains a sheet for every table of the schema
registry. :class:`Provisioner` drives the guided flow::

    searching -> verifying -> valid -> done
                           \\-> invalid ----\\
              \\-> not_found -> creating -> adding_sheets -> writing_headers
                                          -> seeding_defaults -> done

Any failure moves the flow to ``error`` and the exception is raised to the caller.
"""
import enum
import logging
from typing import Callable, List, Optional

from PySide6 import QtCore

from . import schema
from .database import DatabaseAPI
from .models import Category, Person, Relation, Source, SourceType, new_id, now
from .service import SheetsService, get_service, run_concurrently
from ..signals import signals

ProgressCallback = Callable[[str, int], None]

SPREADSHEET_URL: str = 'https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit'


class ProvisionState(enum.StrEnum):
    Searching = 'searching'
    Verifying = 'verifying'
    Valid = 'valid'
    Invalid = 'invalid'
    NotFound = 'not_found'
    Creating = 'creating'
    AddingSheets = 'adding_sheets'
    WritingHeaders = 'writing_headers'
    SeedingDefaults = 'seeding_defaults'
    Done = 'done'
    Error = 'error'


def get_spreadsheet_url(spreadsheet_id: str) -> str:
    """Return the browser URL of a spreadsheet."""
    return SPREADSHEET_URL.format(spreadsheet_id=spreadsheet_id)


class Provisioner(QtCore.QObject):
    """Locate the database spreadsheet, creating and initializing it when needed.

    Progress is reported to the optional callback passed to :meth:`run` or
    :meth:`initialize`, to :attr:`progressChanged` and to
    ``signals.provisionProgress``. Reported percentages never decrease within one
    run.

    Signals:
        stateChanged (str): Emitted with the new :class:`ProvisionState`.
        progressChanged (str, int): Emitted with the step message and percentage.
    """
    stateChanged = QtCore.Signal(str)
    progressChanged = QtCore.Signal(str, int)

    def __init__(self, service: Optional[SheetsService] = None,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._service = service

        self.state: ProvisionState = ProvisionState.Searching
        self.message: str = ''
        self.percent: int = 0
        self.spreadsheet_id: Optional[str] = None

        self._on_progress: Optional[ProgressCallback] = None

    @property
    def service(self) -> SheetsService:
        if self._service is None:
            self._service = get_service()
        return self._service

    @property
    def filename(self) -> str:
        from ..settings import lib
        return lib.settings.get_section('spreadsheet')['filename']

    def _set_state(self, state: ProvisionState) -> None:
        self.state = state
        logging.debug(f'Provisioning state: {state}')
        self.stateChanged.emit(state.value)
        signals.provisionStateChanged.emit(state.value)

    def _report(self, message: str, percent: int) -> None:
        percent = max(self.percent, percent)
        self.message = message
        self.percent = percent
        logging.debug(f'Provisioning {percent}%: {message}')

        if self._on_progress:
            self._on_progress(message, percent)
        self.progressChanged.emit(message, percent)
        signals.provisionProgress.emit(message, percent)

    def _reset(self, on_progress: Optional[ProgressCallback]) -> None:
        self._on_progress = on_progress
        self.message = ''
        self.percent = 0

    def check_exists(self) -> Optional[str]:
        """Return the id of the reserved-name spreadsheet, or None."""
        return self.service.find_file(self.filename)

    def verify(self, spreadsheet_id: str) -> bool:
        """Check that the spreadsheet has a sheet for every table.

        Extra sheets are allowed. Any failure reading the spreadsheet counts as
        invalid and is logged, not raised.
        """
        try:
            titles = set(self.service.get_sheet_titles(spreadsheet_id))
        except Exception as ex:
            logging.error(f'Could not verify spreadsheet {spreadsheet_id}: {ex}')
            return False

        missing = [t for t in schema.table_names() if t not in titles]
        if missing:
            logging.debug(f'Spreadsheet {spreadsheet_id} is missing sheets: {missing}')
            return False
        return True

    def initialize(self,
                   on_progress: Optional[ProgressCallback] = None,
                   spreadsheet_id: Optional[str] = None,
                   seed_defaults: Optional[bool] = None) -> str:
        """Create (or complete) the database spreadsheet.

        Args:
            on_progress: Called with a step message and percentage before each step.
            spreadsheet_id: Complete this existing spreadsheet instead of creating one.
            seed_defaults: Write the default person, source and category. When
                None, the ``defaults.seed`` setting decides, and defaults are only
                written if no table sheet existed before.

        Returns:
            The spreadsheet id.

        Raises:
            status.RemoteApiError: If any remote call fails.
        """
        self._reset(on_progress)
        try:
            return self._initialize(spreadsheet_id, seed_defaults)
        except Exception:
            logging.error(f'Initialization failed during: {self.message}')
            self._set_state(ProvisionState.Error)
            raise

    def _initialize(self, spreadsheet_id: Optional[str], seed_defaults: Optional[bool]) -> str:
        from ..settings import lib

        if spreadsheet_id is None:
            self._set_state(ProvisionState.Creating)
            self._report('Creating spreadsheet...', 10)
            spreadsheet_id = self.service.create_spreadsheet(self.filename)
        self.spreadsheet_id = spreadsheet_id

        tables: List[str] = schema.table_names()
        titles = self.service.get_sheet_titles(spreadsheet_id)
        missing = [t for t in tables if t not in titles]
        if missing:
            self._set_state(ProvisionState.AddingSheets)
            self._report(f'Adding {len(missing)} sheet(s)...', 30)
            self.service.add_sheets(spreadsheet_id, missing)

        self._set_state(ProvisionState.WritingHeaders)
        for i, table in enumerate(schema.SCHEMA):
            self._report(f'Writing headers for "{table}"...', round(40 + (i + 1) / len(tables) * 50))
            self.service.batch_update_values(spreadsheet_id, [
                {'range': schema.header_range(table), 'values': [schema.columns(table)]},
            ])

        if seed_defaults is None:
            seed_defaults = lib.settings.get_section('defaults')['seed'] and len(missing) == len(tables)
        if seed_defaults:
            self._set_state(ProvisionState.SeedingDefaults)
            self._report('Adding default person, source and category...', 95)
            self._seed_defaults(spreadsheet_id)

        self._set_state(ProvisionState.Done)
        self._report('Done!', 100)
        return spreadsheet_id

    def _seed_defaults(self, spreadsheet_id: str) -> None:
        from ..settings import lib
        defaults = lib.settings.get_section('defaults')
        db = DatabaseAPI(self.service, spreadsheet_id)

        person = Person(id=new_id(), name=defaults['person_name'], relation=Relation.Self, created_at=now())
        source = Source(id=new_id(), name=defaults['source_name'], type=SourceType.Cash, created_at=now())
        category = Category(id=new_id(), name=defaults['category_name'], created_at=now(),
                            emoji=defaults.get('category_emoji') or None)

        run_concurrently([
            lambda: db.add_person(person),
            lambda: db.add_source(source),
            lambda: db.add_category(category),
        ])

    def run(self, on_progress: Optional[ProgressCallback] = None) -> str:
        """Run the guided flow and return the id of a valid database spreadsheet.

        An existing but incomplete spreadsheet is completed in place.

        Raises:
            Exception: Whatever made the flow fail, after the state became ``error``.
        """
        self._reset(on_progress)
        self.spreadsheet_id = None
        try:
            self._set_state(ProvisionState.Searching)
            self._report('Searching for the database spreadsheet...', 10)
            spreadsheet_id = self.check_exists()

            if spreadsheet_id is None:
                self._set_state(ProvisionState.NotFound)
                return self._initialize(None, None)

            self._set_state(ProvisionState.Verifying)
            self._report('Verifying the database spreadsheet...', 50)
            if not self.verify(spreadsheet_id):
                self._set_state(ProvisionState.Invalid)
                return self._initialize(spreadsheet_id, None)

            self.spreadsheet_id = spreadsheet_id
            self._set_state(ProvisionState.Valid)
            self._set_state(ProvisionState.Done)
            self._report('Done!', 100)
            return spreadsheet_id
        except Exception:
            logging.error(f'Provisioning failed during: {self.message}')
            self._set_state(ProvisionState.Error)
            raise

    def retry(self, on_progress: Optional[ProgressCallback] = None) -> str:
        """Run the guided flow again from the start."""
        return self.run(on_progress or self._on_progress)

    def get_spreadsheet_url(self, spreadsheet_id: Optional[str] = None) -> str:
        return get_spreadsheet_url(spreadsheet_id or self.spreadsheet_id)
