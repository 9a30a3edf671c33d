"""
Google OAuth2 authentication and credential management for the Drive remote store.

Credentials are stored as ``creds.json`` in the application's auth directory. Sync rounds
only ever use :meth:`AuthManager.get_valid_credentials`, which never opens a browser;
the interactive installed-app flow runs through :func:`authenticate`.
"""

import json
import logging
import threading
from typing import Optional

import google.auth.exceptions
import google.auth.transport.requests
import google.oauth2.credentials
import google_auth_oauthlib.flow

from .signals import signals
from ..status import status

DEFAULT_SCOPES = ['https://www.googleapis.com/auth/drive.appdata', ]


class AuthManager:
    """Manages OAuth2 credentials with thread-safe refresh."""

    def __init__(self):
        self._lock = threading.Lock()
        self._creds: Optional[google.oauth2.credentials.Credentials] = None

    def get_valid_credentials(self) -> google.oauth2.credentials.Credentials:
        """
        Return valid credentials without any UI.

        Raises:
            status.AuthenticationException: if no credentials exist, or a full interactive flow is required.
            status.CredsInvalidException: if stored credentials are corrupt.
        """
        from ..settings import lib
        with self._lock:
            if self._creds is None:
                if not lib.settings.creds_path.exists():
                    signals.authenticationRequested.emit()
                    raise status.AuthenticationException(
                        'No credentials found, interactive authentication required.')
                try:
                    self._creds = google.oauth2.credentials.Credentials.from_authorized_user_file(
                        str(lib.settings.creds_path))
                except (ValueError, json.JSONDecodeError) as ex:
                    # Corrupt credentials are removed so the next sign-in starts clean
                    lib.settings.creds_path.unlink(missing_ok=True)
                    raise status.CredsInvalidException(f'Failed to load credentials: {ex}') from ex

            if self._creds.expired:
                if not self._creds.refresh_token:
                    signals.authenticationRequested.emit()
                    raise status.AuthenticationException(
                        'Credentials expired, interactive authentication required.')
                try:
                    self._creds.refresh(google.auth.transport.requests.Request())
                except google.auth.exceptions.GoogleAuthError as ex:
                    raise status.AuthenticationException(f'Failed to auto-refresh credentials: {ex}') from ex
                save_creds(self._creds)

            return self._creds

    def reset(self) -> None:
        """Forget the cached credentials."""
        with self._lock:
            self._creds = None


auth_manager = AuthManager()


def save_creds(creds: google.oauth2.credentials.Credentials) -> None:
    """
    Save OAuth2 credentials to the configured token file.

    Args:
        creds (google.oauth2.credentials.Credentials): Credentials to save.
    """
    from ..settings import lib
    lib.settings.creds_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lib.settings.creds_path, 'w', encoding='utf-8') as token_file:
        token_file.write(creds.to_json())

    logging.debug(f'Credentials saved to {lib.settings.creds_path}.')


def authenticate() -> google.oauth2.credentials.Credentials:
    """
    Run the installed-app OAuth flow in the system browser and store the result.

    Returns:
        google.oauth2.credentials.Credentials: The authenticated credentials.

    Raises:
        status.ClientSecretNotFoundException: If the client secret file is missing.
        status.AuthenticationException: If authentication fails or is cancelled.
        status.CredsInvalidException: If the flow returned invalid credentials.
    """
    from ..settings import lib
    if not lib.settings.client_secret_path.exists():
        raise status.ClientSecretNotFoundException

    lib.settings.validate_client_secret()
    client_config = lib.settings.get_section('client_secret')

    logging.debug('Starting new OAuth flow...')
    flow = google_auth_oauthlib.flow.InstalledAppFlow.from_client_config(client_config, scopes=DEFAULT_SCOPES)
    try:
        creds = flow.run_local_server(port=0)
    except (OSError, ValueError, google.auth.exceptions.GoogleAuthError) as ex:
        raise status.AuthenticationException(f'OAuth flow failed: {ex}') from ex

    if not creds:
        raise status.AuthenticationException('Authentication was cancelled or no credentials obtained.')
    if not creds.valid:
        raise status.CredsInvalidException('Invalid credentials returned from OAuth flow.')

    save_creds(creds)
    auth_manager.reset()
    return creds


def sign_out() -> None:
    """
    Delete stored credentials to sign out the user.
    """
    from ..settings import lib
    from . import remote

    auth_manager.reset()
    remote.clear_service()

    if lib.settings.creds_path.exists():
        logging.debug(f'Deleting {lib.settings.creds_path}...')
        lib.settings.creds_path.unlink()
        logging.debug('Successfully signed out.')
    else:
        logging.debug('No credentials file found. No action taken.')


def is_connected() -> bool:
    """Return True if stored credentials exist."""
    from ..settings import lib
    return lib.settings.creds_path.exists()
