"""Google Sheets and Drive API transport.

:class:`SheetsService` exposes the handful of REST calls the database layer needs.
Every call is executed through one place that translates non-success responses
into :class:`~CashTag.status.status.RemoteApiError`. There is no retry, backoff
or response caching.

Blocking calls can be run on worker threads with :class:`AsyncWorker` and
:func:`run_concurrently`.
"""

import json
import logging
import socket
import ssl
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import google.oauth2.credentials
import google_auth_httplib2
import httplib2
from PySide6 import QtCore
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..signals import signals
from ..status import status

SPREADSHEET_MIME_TYPE: str = 'application/vnd.google-apps.spreadsheet'
VALUE_INPUT_OPTION: str = 'RAW'

# Cached transport built from the signed-in user's credentials
_cached_service: Any = None


class AsyncWorker(QtCore.QThread):
    """
    Worker thread running one blocking function.

    The outcome is kept on the worker (`result`, `error`) and announced by signals.

    Signals:
        resultReady (object): Emitted with the function's result on success.
        errorOccurred (object): Emitted with the raised exception on failure.
    """
    resultReady = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(object)

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self.func = func
        self.args = args
        self.kwargs = kwargs

        self.result: Any = None
        self.error: Optional[Exception] = None

    def run(self) -> None:
        try:
            self.result = self.func(*self.args, **self.kwargs)
        except Exception as ex:
            self.error = ex
            self.errorOccurred.emit(ex)
            return
        self.resultReady.emit(self.result)


def run_concurrently(funcs: Sequence[Callable[[], Any]]) -> List[Any]:
    """
    Run independent blocking functions on worker threads and join them.

    All functions run to completion; there is no cancellation. If any of them
    failed, the first failure to occur is raised and every result is discarded.

    Args:
        funcs: Callables taking no arguments.

    Returns:
        The results, in the order of `funcs`.

    Raises:
        Exception: The first exception raised by any of the functions.
    """
    failures: List[Exception] = []
    workers: List[AsyncWorker] = [AsyncWorker(func) for func in funcs]

    for worker in workers:
        worker.errorOccurred.connect(failures.append, QtCore.Qt.DirectConnection)
        worker.start()

    for worker in workers:
        worker.wait()

    if failures:
        logging.debug(f'{len(failures)} of {len(workers)} concurrent operations failed.')
        raise failures[0]
    return [worker.result for worker in workers]


def _error_message(ex: HttpError) -> Optional[str]:
    """Return the message reported in a Google API error body, if there is one."""
    content = ex.content
    try:
        if isinstance(content, bytes):
            content = content.decode('utf-8')
        data = json.loads(content)
    except (TypeError, UnicodeDecodeError, ValueError):
        return None

    error = data.get('error') if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get('message') or None
    if isinstance(error, str):
        # OAuth endpoints answer with {"error": "invalid_grant", ...}
        return data.get('error_description') or error
    return None


class SheetsService:
    """
    Authenticated client for the Sheets v4 and Drive v3 REST APIs.

    Args:
        credentials: Google credentials, or a bare OAuth access token used as
            the bearer credential for the client's lifetime.
        http: Optional pre-configured HTTP object used for every request instead
            of authorizing a new one per call.
    """

    def __init__(self,
                 credentials: Union[google.oauth2.credentials.Credentials, str, None],
                 http: Optional[Any] = None) -> None:
        if isinstance(credentials, str):
            credentials = google.oauth2.credentials.Credentials(token=credentials)

        self._credentials = credentials
        self._http = http

        if http is not None:
            self._sheets = build('sheets', 'v4', http=http, cache_discovery=False)
            self._drive = build('drive', 'v3', http=http, cache_discovery=False)
        else:
            self._sheets = build('sheets', 'v4', credentials=credentials, cache_discovery=False)
            self._drive = build('drive', 'v3', credentials=credentials, cache_discovery=False)
        logging.debug('Google Sheets and Drive service clients created successfully.')

    def _authorized_http(self) -> Any:
        # httplib2 connections are not thread-safe: authorize a new one per call
        return google_auth_httplib2.AuthorizedHttp(self._credentials, http=httplib2.Http())

    def _execute(self, request: Any) -> Dict[str, Any]:
        """
        Execute a prepared API request.

        Raises:
            status.RemoteApiError: On any non-success response or network failure.
        """
        http = self._http if self._http is not None else self._authorized_http()
        logging.debug(f'[Thread-{threading.get_ident()}] {request.method} {request.uri}')
        try:
            return request.execute(http=http)
        except HttpError as ex:
            http_status: Optional[int] = ex.resp.status if ex.resp else None
            logging.debug(f'Google API error ({http_status}) for {request.uri}: {ex.content!r}')
            raise status.RemoteApiError(_error_message(ex), url=ex.uri or request.uri,
                                        http_status=http_status) from ex
        except (socket.timeout, ssl.SSLError, httplib2.HttpLib2Error) as ex:
            raise status.RemoteApiError(f'Network error fetching {request.uri}: {ex}', url=request.uri) from ex

    def find_file(self, name: str) -> Optional[str]:
        """
        Search the user's Drive for a spreadsheet with exactly this name.

        Trashed files are excluded. When more than one file matches, the first
        one in the order returned by Drive wins.

        Returns:
            The file id, or None if there is no match.
        """
        escaped = name.replace('\\', '\\\\').replace("'", "\\'")
        query = f"name='{escaped}' and mimeType='{SPREADSHEET_MIME_TYPE}' and trashed=false"
        result = self._execute(self._drive.files().list(
            q=query,
            spaces='drive',
            fields='files(id, name)',
        ))
        files: List[Dict[str, Any]] = result.get('files', [])
        if not files:
            logging.debug(f'No spreadsheet named "{name}" found.')
            return None
        if len(files) > 1:
            logging.warning(f'{len(files)} spreadsheets named "{name}" found, using the first one.')
        return files[0]['id']

    def create_spreadsheet(self, title: str) -> str:
        """Create a new spreadsheet and return its id."""
        result = self._execute(self._sheets.spreadsheets().create(
            body={'properties': {'title': title}},
            fields='spreadsheetId',
        ))
        logging.debug(f'Created spreadsheet "{title}" ({result["spreadsheetId"]}).')
        return result['spreadsheetId']

    def get_sheet_titles(self, spreadsheet_id: str) -> List[str]:
        """Return the titles of all sheets of a spreadsheet, in tab order."""
        result = self._execute(self._sheets.spreadsheets().get(
            spreadsheetId=spreadsheet_id,
            fields='sheets(properties(title))',
        ))
        return [s.get('properties', {}).get('title', '') for s in result.get('sheets', [])]

    def add_sheets(self, spreadsheet_id: str, titles: Sequence[str]) -> Dict[str, Any]:
        """Add new sheets to a spreadsheet in a single batch request."""
        requests = [{'addSheet': {'properties': {'title': title}}} for title in titles]
        return self._execute(self._sheets.spreadsheets().batchUpdate(
            spreadsheetId=spreadsheet_id,
            body={'requests': requests},
        ))

    def batch_update_values(self, spreadsheet_id: str, data: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Overwrite several ranges at once.

        Args:
            spreadsheet_id: Spreadsheet ID.
            data: List of ``{'range': ..., 'values': [[...], ...]}`` items.
        """
        return self._execute(self._sheets.spreadsheets().values().batchUpdate(
            spreadsheetId=spreadsheet_id,
            body={'valueInputOption': VALUE_INPUT_OPTION, 'data': data},
        ))

    def update_values(self, spreadsheet_id: str, range_: str, values: List[List[Any]]) -> Dict[str, Any]:
        """Overwrite a single range."""
        return self._execute(self._sheets.spreadsheets().values().update(
            spreadsheetId=spreadsheet_id,
            range=range_,
            valueInputOption=VALUE_INPUT_OPTION,
            body={'values': values},
        ))

    def append_values(self, spreadsheet_id: str, range_: str, values: List[List[Any]]) -> Dict[str, Any]:
        """Insert rows after the last populated row of the range's sheet."""
        return self._execute(self._sheets.spreadsheets().values().append(
            spreadsheetId=spreadsheet_id,
            range=range_,
            valueInputOption=VALUE_INPUT_OPTION,
            insertDataOption='INSERT_ROWS',
            body={'values': values},
        ))

    def get_values(self, spreadsheet_id: str, range_: str) -> List[List[str]]:
        """
        Read a range as rows of strings.

        Trailing empty cells of a row and trailing empty rows are not returned
        by the API.
        """
        result = self._execute(self._sheets.spreadsheets().values().get(
            spreadsheetId=spreadsheet_id,
            range=range_,
        ))
        values: List[List[Any]] = result.get('values', [])
        return [[str(cell) for cell in row] for row in values]


def get_service() -> SheetsService:
    """
    Builds (or returns cached) transport for the signed-in user.

    Raises:
        AuthExpiredError: If interactive sign-in is required.
    """
    global _cached_service
    from .auth import AuthExpiredError, auth_manager

    try:
        creds = auth_manager.get_valid_credentials()
    except AuthExpiredError:
        # A UI answers this by starting the interactive sign-in
        signals.authenticationRequested.emit()
        raise
    if _cached_service is not None:
        return _cached_service

    _cached_service = SheetsService(creds)
    return _cached_service


def clear_service() -> None:
    """
    Clears the cached transport.
    """
    global _cached_service
    _cached_service = None


@QtCore.Slot(str)
def _reset_cached_service(section: str) -> None:
    """Clear the cached transport when client_secret changes."""
    if section == 'client_secret':
        logging.debug('Clearing cached Sheets service client due to client_secret change')
        clear_service()


signals.configSectionChanged.connect(_reset_cached_service)
