"""
CashTag: personal finance tracker that keeps its data in the user's own Google Sheets spreadsheet.

This package provides:

- :mod:`CashTag.core` – The spreadsheet-as-database layer: authentication, transport, schema, records, provisioning and application state.
- :mod:`CashTag.data` – Spending analytics (:func:`CashTag.data.data.monthly_total`, :func:`CashTag.data.data.category_totals`, …) for dashboard and trends views.
- :mod:`CashTag.settings` – Settings management and schema validation.
- :mod:`CashTag.status` – Status codes and the exceptions raised by the data layer.
- :mod:`CashTag.log` – Logging setup with an in-memory log tank.
- :mod:`CashTag.signals` – Application-wide Qt signals a UI binds to.

Use :func:`CashTag.exec_` to connect to the database spreadsheet from the command line.
"""

import logging
import sys

from PySide6 import QtCore

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('CashTag requires Python 3.11 or higher.')

__version__ = '0.1.0'
__description__ = 'CashTag: personal finance tracker backed by a Google Sheets spreadsheet.'

from .log import log

log.setup_logging()


def exec_() -> None:
    """Sign in, provision the database spreadsheet and load its records.

    Runs without a GUI: progress and a summary of the loaded records are logged.
    """
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(sys.argv)

    from .core import auth
    from .core import service
    from .core.database import DatabaseAPI
    from .core.models import EntryType
    from .core.provision import Provisioner
    from .core.state import AppState

    try:
        auth.auth_manager.get_valid_credentials()
    except auth.AuthExpiredError:
        auth.auth_manager.refresh_credentials_interactive()

    sheets = service.get_service()
    provisioner = Provisioner(sheets)
    spreadsheet_id = provisioner.run(lambda message, percent: logging.info(f'[{percent:3d}%] {message}'))
    logging.info(f'Database spreadsheet: {provisioner.get_spreadsheet_url(spreadsheet_id)}')

    state = AppState()
    state.attach(DatabaseAPI(sheets, spreadsheet_id))
    state.hydrate()

    for source in state.sources_with_balances():
        logging.info(f'{source.name} ({source.type}): {source.current_balance:.2f}')
    logging.info(f'Income this month: {state.monthly_total(EntryType.Income):.2f}')
    logging.info(f'Expenses this month: {state.monthly_total(EntryType.Expense):.2f}')


if __name__ == '__main__':
    exec_()
