"""
Google OAuth2 authentication and credential management.

Provides functions and classes to authenticate with Google services and manage
credential storage. Every transport call needs a bearer credential scoped to
read/write spreadsheets and read Drive file metadata.
"""

import json
import logging
import threading
from typing import Dict, Union, Optional

import google.auth.exceptions
import google.auth.transport.requests
import google.oauth2.credentials
import google_auth_oauthlib.flow

from ..status import status

DEFAULT_SCOPES = [
    'https://www.googleapis.com/auth/spreadsheets',
    'https://www.googleapis.com/auth/drive.metadata.readonly',
]


class AuthExpiredError(Exception):
    """Raised when credentials have expired and require interactive refresh."""
    pass


class AuthManager:
    """Manages OAuth2 credentials with thread-safe refresh."""

    def __init__(self):
        self._lock = threading.Lock()
        self._creds: Optional[google.oauth2.credentials.Credentials] = None

    def get_valid_credentials(self) -> google.oauth2.credentials.Credentials:
        """
        Return valid credentials without any interaction.

        Raises:
            AuthExpiredError: if no credentials exist or a full interactive flow is required.
            status.AuthenticationExceptionException: if an auto-refresh fails.
            status.CredsInvalidException: if stored credentials are corrupt.
        """
        from ..settings import lib
        with self._lock:
            if self._creds is None:
                if not lib.settings.creds_path.exists():
                    raise AuthExpiredError(
                        'No credentials found; interactive authentication required')
                try:
                    self._creds = google.oauth2.credentials.Credentials.from_authorized_user_file(
                        str(lib.settings.creds_path))
                except (ValueError, json.JSONDecodeError) as ex:
                    logging.debug(f'Removing unreadable credentials file {lib.settings.creds_path}')
                    lib.settings.creds_path.unlink(missing_ok=True)
                    raise status.CredsInvalidException('Failed to load credentials') from ex

            if self._creds.expired:
                if self._creds.refresh_token:
                    try:
                        self._creds.refresh(
                            google.auth.transport.requests.Request())
                        save_creds(self._creds)
                    except Exception as ex:
                        raise status.AuthenticationExceptionException(
                            'Failed to auto-refresh credentials') from ex
                else:
                    raise AuthExpiredError(
                        'Credentials expired; interactive authentication required')

            return self._creds

    def refresh_credentials_interactive(self) -> google.oauth2.credentials.Credentials:
        """Run the interactive OAuth flow and keep the resulting credentials."""
        with self._lock:
            creds = authenticate()
            self._creds = creds
            return creds

    def force_reauthenticate(self) -> google.oauth2.credentials.Credentials:
        """
        Force interactive reauthentication and clear the cached transport.
        """
        from ..settings import lib
        if lib.settings.creds_path.exists():
            lib.settings.creds_path.unlink()

        from . import service
        service.clear_service()

        creds = self.refresh_credentials_interactive()
        self._creds = creds
        return creds

    def clear(self) -> None:
        """Forget the in-memory credentials."""
        with self._lock:
            self._creds = None


auth_manager = AuthManager()


def get_creds() -> google.oauth2.credentials.Credentials:
    """
    Load stored OAuth2 credentials, authenticating if there are none.

    Returns:
        google.oauth2.credentials.Credentials: Authorized credentials.

    Raises:
        status.ClientSecretNotFoundException: If client secret file is missing.
        status.CredsNotFoundException: If credentials cannot be obtained.
    """
    from ..settings import lib
    if not lib.settings.creds_path.exists():
        logging.debug('Credentials file not found. Attempting to authenticate...')
        creds = authenticate()
        if not creds:
            raise status.CredsNotFoundException
        return creds

    try:
        logging.debug(f'Loading credentials from {lib.settings.creds_path}...')
        creds = google.oauth2.credentials.Credentials.from_authorized_user_file(
            str(lib.settings.creds_path)
        )
        logging.debug(f'Credentials loaded successfully. Scopes={creds.scopes}')
        return creds
    except (ValueError, json.JSONDecodeError) as ex:
        logging.error(f'Failed to load credentials, will attempt to re-authenticate: {ex}')

    logging.debug(f'Deleting {lib.settings.creds_path}...')
    lib.settings.creds_path.unlink()
    return authenticate()


def save_creds(creds: Union[google.oauth2.credentials.Credentials, Dict]) -> None:
    """
    Save OAuth2 credentials to the configured token file.

    Args:
        creds (Union[google.oauth2.credentials.Credentials, Dict]): Credentials or dict to save.
    """
    from ..settings import lib
    with open(lib.settings.creds_path, 'w', encoding='utf-8') as token_file:
        data = creds if isinstance(creds, dict) else json.loads(creds.to_json())
        json.dump(data, token_file)

    logging.debug(f'Credentials saved to {lib.settings.creds_path}.')


def _load_cached_creds(scopes) -> Optional[google.oauth2.credentials.Credentials]:
    """Return stored credentials if they cover `scopes`, refreshing them when expired."""
    from ..settings import lib

    if not lib.settings.creds_path.exists():
        return None

    try:
        creds = google.oauth2.credentials.Credentials.from_authorized_user_file(str(lib.settings.creds_path))
    except (ValueError, json.JSONDecodeError) as ex:
        logging.error(f'Failed to load credentials: {ex}')
        return None

    if not set(scopes).issubset(set(creds.scopes or [])):
        logging.debug('Cached credentials have mismatched scopes. Re-authentication required.')
        return None

    if not creds.expired:
        logging.debug('Using valid cached credentials.')
        return creds

    if creds.refresh_token:
        logging.debug('Cached credentials expired; attempting refresh.')
        try:
            creds.refresh(google.auth.transport.requests.Request())
        except google.auth.exceptions.RefreshError as ex:
            logging.error(f'Refresh failed: {ex}; will perform new flow.')
            return None
        save_creds(creds)
        return creds
    return None


def authenticate() -> google.oauth2.credentials.Credentials:
    """
    Run OAuth flow to authenticate and obtain credentials.

    Valid cached credentials are reused and expired ones refreshed before a new
    browser flow is started.

    Returns:
        google.oauth2.credentials.Credentials: The authenticated credentials.

    Raises:
        status.AuthenticationExceptionException: If authentication fails or is cancelled.
        status.CredsInvalidException: If credentials returned are invalid.
        status.ClientSecretNotFoundException: If the client secret file is not found.
    """
    from ..settings import lib

    scopes = DEFAULT_SCOPES
    creds = _load_cached_creds(scopes)
    if creds:
        return creds

    if not lib.settings.client_secret_path.exists():
        raise status.ClientSecretNotFoundException
    lib.settings.validate_client_secret()
    client_config = lib.settings.get_section('client_secret')

    logging.debug('Starting new OAuth flow...')
    flow = google_auth_oauthlib.flow.InstalledAppFlow.from_client_config(client_config, scopes=scopes)
    try:
        creds = flow.run_local_server(port=0)
    except Exception as ex:
        raise status.AuthenticationExceptionException(f'OAuth flow failed: {ex}') from ex

    if not creds:
        raise status.AuthenticationExceptionException('Authentication was cancelled or no credentials obtained.')
    if not creds.valid:
        raise status.CredsInvalidException('Invalid credentials returned from OAuth flow.')

    logging.debug('Saving credentials...')
    save_creds(creds)
    return creds


def sign_out() -> None:
    """
    Delete stored credentials to sign out the user.
    """
    from ..settings import lib
    from . import service

    auth_manager.clear()
    service.clear_service()

    if lib.settings.creds_path.exists():
        logging.debug(f'Deleting {lib.settings.creds_path}...')
        lib.settings.creds_path.unlink()
        logging.debug('Successfully signed out.')
    else:
        logging.debug('No credentials file found. No action taken.')
