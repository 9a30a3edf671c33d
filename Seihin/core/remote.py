"""Remote snapshot stores.

A remote store holds exactly one snapshot file and supports two operations:

- :meth:`RemoteStore.fetch` returns the current content together with an opaque revision
  token, or None when the file does not exist yet.
- :meth:`RemoteStore.put` writes new content, conditional on the revision the caller last
  saw. A stale revision, or a create over an existing file, raises
  :class:`~Seihin.status.status.WriteConflictException`.

Two implementations are provided:

- :class:`FolderRemoteStore` keeps the file on a local or desktop-synced folder.
- :class:`DriveRemoteStore` keeps the file in the Google Drive ``appDataFolder`` of the
  signed-in user.

Use :func:`get_remote_store` to build the store selected in the settings.
"""
import dataclasses
import hashlib
import io
import logging
import os
import pathlib
import socket
import ssl
import tempfile
import threading
from typing import Any, Dict, Optional

import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from .auth import auth_manager
from ..settings import lib
from ..status import status

# Cached Drive API client to avoid repeated discovery/auth costs
_cached_service: Any = None

SNAPSHOT_MIME_TYPE: str = 'application/json'
DRIVE_SPACE: str = 'appDataFolder'


@dataclasses.dataclass(frozen=True)
class RemoteFile:
    """Raw snapshot content and the revision it was read at."""
    content: bytes
    revision: str


class RemoteStore:
    """Interface of a conditional-write snapshot store."""

    def fetch(self) -> Optional[RemoteFile]:
        """Return the current snapshot file, or None if it does not exist.

        Raises:
            status.RemoteUnavailableException: On transport or authentication failures.
        """
        raise NotImplementedError

    def put(self, content: bytes, expected_revision: Optional[str] = None) -> str:
        """Write the snapshot file.

        Args:
            content: The encoded snapshot.
            expected_revision: The revision the content was merged against. None creates
                the file and fails if it already exists.

        Returns:
            str: The revision of the written file.

        Raises:
            status.WriteConflictException: If the file changed since ``expected_revision``.
            status.RemoteUnavailableException: On transport or authentication failures.
        """
        raise NotImplementedError

    def describe(self) -> str:
        return type(self).__name__


class FolderRemoteStore(RemoteStore):
    """Snapshot file on a filesystem path.

    The revision is the SHA-256 of the file content. Writes go to a temporary file in the
    same directory and are moved into place with :func:`os.replace`. The compare and the
    replace are serialized within this process only.
    """

    def __init__(self, path: str) -> None:
        self.path = pathlib.Path(path)
        self._lock = threading.Lock()

    @staticmethod
    def revision_of(content: bytes) -> str:
        return hashlib.sha256(content).hexdigest()

    def _read(self) -> Optional[bytes]:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as ex:
            raise status.RemoteUnavailableException(f'Could not read {self.path}: {ex}') from ex

    def fetch(self) -> Optional[RemoteFile]:
        content = self._read()
        if content is None:
            logging.debug(f'No remote snapshot at {self.path}')
            return None
        revision = self.revision_of(content)
        logging.debug(f'Fetched {len(content)} bytes from {self.path}, revision {revision[:12]}')
        return RemoteFile(content=content, revision=revision)

    def put(self, content: bytes, expected_revision: Optional[str] = None) -> str:
        with self._lock:
            current = self._read()
            if expected_revision is None and current is not None:
                raise status.WriteConflictException(f'{self.path} was created by another device.')
            if expected_revision is not None:
                if current is None:
                    raise status.WriteConflictException(f'{self.path} was removed by another device.')
                if self.revision_of(current) != expected_revision:
                    raise status.WriteConflictException(f'{self.path} was changed by another device.')

            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp = tempfile.mkstemp(prefix=f'.{self.path.name}.', suffix='.tmp', dir=self.path.parent)
                try:
                    with os.fdopen(fd, 'wb') as f:
                        f.write(content)
                    os.replace(tmp, self.path)
                except OSError:
                    pathlib.Path(tmp).unlink(missing_ok=True)
                    raise
            except OSError as ex:
                raise status.RemoteUnavailableException(f'Could not write {self.path}: {ex}') from ex

        revision = self.revision_of(content)
        logging.debug(f'Wrote {len(content)} bytes to {self.path}, revision {revision[:12]}')
        return revision

    def describe(self) -> str:
        return f'folder:{self.path}'


def clear_service() -> None:
    """
    Clears the cached Drive API client.
    """
    global _cached_service

    if _cached_service is not None:
        try:
            _cached_service.close()
        except (AttributeError, OSError) as ex:
            logging.debug(f'Failed closing cached Drive service client: {ex}')

    _cached_service = None


def get_service() -> Any:
    """
    Builds (or returns cached) Google Drive service client.

    Returns:
        The Drive API Resource, reusing a single client per app run.

    Raises:
        status.AuthenticationException: If no usable credentials are stored.
        status.RemoteUnavailableException: If the client cannot be built.
    """
    global _cached_service
    # Non-interactive, may raise AuthenticationException
    creds: Any = auth_manager.get_valid_credentials()
    if _cached_service is not None:
        return _cached_service
    try:
        service: Any = build('drive', 'v3', credentials=creds, cache_discovery=False)
    except (HttpError, httplib2.HttpLib2Error, OSError) as ex:
        raise status.RemoteUnavailableException(f'Could not create the Drive client: {ex}') from ex
    logging.debug('Google Drive service client created successfully.')
    _cached_service = service
    return service


def _raise_for_http_error(ex: HttpError, action: str) -> None:
    code = getattr(ex.resp, 'status', None)
    if code in (401, 403):
        raise status.AuthenticationException(f'{action}: access denied ({code}).') from ex
    if code == 412:
        raise status.WriteConflictException(f'{action}: precondition failed.') from ex
    raise status.RemoteUnavailableException(f'{action}: HTTP {code}: {ex}') from ex


class DriveRemoteStore(RemoteStore):
    """Snapshot file in the Google Drive application data folder.

    The revision is the Drive file ``version``, which increases on every change. The version
    is read before the content, so a concurrent change between the two reads yields an
    older revision and surfaces as a conflict on the next write rather than a lost update.

    Drive has no conditional media update, so :meth:`put` compares the version and then
    uploads. A writer landing between those two requests is not detected.
    """

    def __init__(self, name: str, service: Any = None) -> None:
        self.name = name
        self._service = service

    @property
    def service(self) -> Any:
        return self._service if self._service is not None else get_service()

    def _find(self) -> Optional[Dict[str, Any]]:
        escaped = self.name.replace('\\', '\\\\').replace("'", "\\'")
        result = self.service.files().list(
            spaces=DRIVE_SPACE,
            q=f"name = '{escaped}' and trashed = false",
            fields='files(id, name, version)',
            pageSize=10,
        ).execute()
        files = result.get('files', [])
        if len(files) > 1:
            logging.warning(f'Found {len(files)} files named "{self.name}" in Drive, using the first one.')
        return files[0] if files else None

    def fetch(self) -> Optional[RemoteFile]:
        try:
            meta = self._find()
            if meta is None:
                logging.debug(f'No remote snapshot "{self.name}" in Drive')
                return None
            content = self.service.files().get_media(fileId=meta['id']).execute()
        except HttpError as ex:
            if getattr(ex.resp, 'status', None) == 404:
                return None
            _raise_for_http_error(ex, f'Fetching "{self.name}"')
        except (httplib2.HttpLib2Error, socket.timeout, socket.gaierror, ssl.SSLError, ConnectionError) as ex:
            raise status.RemoteUnavailableException(f'Fetching "{self.name}": {ex}') from ex

        if isinstance(content, str):
            content = content.encode('utf-8')
        revision = str(meta['version'])
        logging.debug(f'Fetched {len(content)} bytes from Drive "{self.name}", version {revision}')
        return RemoteFile(content=content, revision=revision)

    def put(self, content: bytes, expected_revision: Optional[str] = None) -> str:
        media = MediaIoBaseUpload(io.BytesIO(content), mimetype=SNAPSHOT_MIME_TYPE, resumable=False)
        try:
            meta = self._find()
            if expected_revision is None:
                if meta is not None:
                    raise status.WriteConflictException(f'"{self.name}" was created by another device.')
                result = self.service.files().create(
                    body={'name': self.name, 'parents': [DRIVE_SPACE], 'mimeType': SNAPSHOT_MIME_TYPE},
                    media_body=media,
                    fields='id, version',
                ).execute()
            else:
                if meta is None:
                    raise status.WriteConflictException(f'"{self.name}" was removed by another device.')
                if str(meta['version']) != expected_revision:
                    raise status.WriteConflictException(
                        f'"{self.name}" is at version {meta["version"]}, expected {expected_revision}.')
                result = self.service.files().update(
                    fileId=meta['id'],
                    media_body=media,
                    fields='id, version',
                ).execute()
        except HttpError as ex:
            _raise_for_http_error(ex, f'Writing "{self.name}"')
        except (httplib2.HttpLib2Error, socket.timeout, socket.gaierror, ssl.SSLError, ConnectionError) as ex:
            raise status.RemoteUnavailableException(f'Writing "{self.name}": {ex}') from ex

        revision = str(result['version'])
        logging.debug(f'Wrote {len(content)} bytes to Drive "{self.name}", version {revision}')
        return revision

    def describe(self) -> str:
        return f'drive:{self.name}'


def get_remote_store() -> Optional[RemoteStore]:
    """Build the remote store selected by the ``remote`` settings section.

    Returns:
        Optional[RemoteStore]: None when sync is not configured.
    """
    config = lib.settings.get_section('remote')
    provider = config['provider']
    path = config['path']

    if provider == 'none':
        return None
    if provider == 'folder':
        p = pathlib.Path(path).expanduser()
        if not p.is_absolute():
            p = lib.settings.config_dir / p
        return FolderRemoteStore(str(p))
    if provider == 'drive':
        return DriveRemoteStore(pathlib.PurePosixPath(path).name)
    raise status.SettingsInvalidException(f'Unknown remote provider: {provider}')
