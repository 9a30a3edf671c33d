"""
Tests for Seihin.core.remote: folder and Google Drive snapshot stores.

The Drive client is replaced by a small in-memory stub of the chained
``service.files().<method>(...).execute()`` API.
"""
import itertools
from typing import Any, Dict, List, Optional
from unittest.mock import patch

import httplib2
from googleapiclient.errors import HttpError

from Seihin.core import remote
from Seihin.settings import lib
from Seihin.status import status
from tests.base import BaseTestCase


def http_error(code: int) -> HttpError:
    return HttpError(httplib2.Response({'status': str(code)}), b'{}')


class _Request:
    def __init__(self, func):
        self.func = func

    def execute(self):
        return self.func()


class _Files:
    def __init__(self, service: 'DriveServiceStub') -> None:
        self.service = service

    def list(self, **kwargs: Any) -> _Request:
        self.service.calls.append(('list', kwargs))

        def run():
            self.service.raise_pending()
            return {'files': [
                {'id': f['id'], 'name': f['name'], 'version': str(f['version'])}
                for f in self.service.files_data.values()
                if f['name'] in kwargs['q']
            ]}

        return _Request(run)

    def get_media(self, fileId: str) -> _Request:
        self.service.calls.append(('get_media', fileId))

        def run():
            self.service.raise_pending()
            return self.service.files_data[fileId]['content']

        return _Request(run)

    def create(self, body: Dict[str, Any], media_body: Any, fields: str) -> _Request:
        self.service.calls.append(('create', body))

        def run():
            self.service.raise_pending()
            file_id = f'file{next(self.service.ids)}'
            self.service.files_data[file_id] = {
                'id': file_id,
                'name': body['name'],
                'parents': body['parents'],
                'version': 1,
                'content': media_body.getbytes(0, media_body.size()),
            }
            return {'id': file_id, 'version': '1'}

        return _Request(run)

    def update(self, fileId: str, media_body: Any, fields: str) -> _Request:
        self.service.calls.append(('update', fileId))

        def run():
            self.service.raise_pending()
            f = self.service.files_data[fileId]
            f['version'] += 1
            f['content'] = media_body.getbytes(0, media_body.size())
            return {'id': fileId, 'version': str(f['version'])}

        return _Request(run)


class DriveServiceStub:
    """Minimal in-memory Drive v3 ``files`` resource."""

    def __init__(self) -> None:
        self.files_data: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Any] = []
        self.errors: List[Exception] = []
        self.ids = itertools.count(1)

    def files(self) -> _Files:
        return _Files(self)

    def raise_pending(self) -> None:
        if self.errors:
            raise self.errors.pop(0)

    def touch(self, file_id: str, content: Optional[bytes] = None) -> None:
        """Change a file as another device would."""
        f = self.files_data[file_id]
        f['version'] += 1
        if content is not None:
            f['content'] = content


class FolderRemoteStoreTests(BaseTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.path = lib.settings.config_dir / 'shared' / 'data.json'
        self.store = remote.FolderRemoteStore(str(self.path))

    def test_absent(self):
        self.assertIsNone(self.store.fetch())

    def test_create_fetch_update(self):
        revision = self.store.put(b'{"a": 1}')
        self.assertEqual(revision, remote.FolderRemoteStore.revision_of(b'{"a": 1}'))

        remote_file = self.store.fetch()
        self.assertEqual(remote_file.content, b'{"a": 1}')
        self.assertEqual(remote_file.revision, revision)

        revision2 = self.store.put(b'{"a": 2}', expected_revision=revision)
        self.assertNotEqual(revision, revision2)
        self.assertEqual(self.path.read_bytes(), b'{"a": 2}')
        self.assertEqual([p.name for p in self.path.parent.iterdir()], ['data.json'])

    def test_create_over_existing_conflicts(self):
        self.store.put(b'1')
        with self.assertRaises(status.WriteConflictException):
            self.store.put(b'2')
        self.assertEqual(self.path.read_bytes(), b'1')

    def test_stale_revision_conflicts(self):
        revision = self.store.put(b'1')
        self.path.write_bytes(b'other device')
        with self.assertRaises(status.WriteConflictException):
            self.store.put(b'2', expected_revision=revision)
        self.assertEqual(self.path.read_bytes(), b'other device')

    def test_removed_file_conflicts(self):
        revision = self.store.put(b'1')
        self.path.unlink()
        with self.assertRaises(status.WriteConflictException):
            self.store.put(b'2', expected_revision=revision)

    def test_unreadable_path(self):
        self.path.mkdir(parents=True)
        with self.assertRaises(status.RemoteUnavailableException):
            self.store.fetch()


class DriveRemoteStoreTests(BaseTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.service = DriveServiceStub()
        self.store = remote.DriveRemoteStore('data.json', service=self.service)

    def test_absent(self):
        self.assertIsNone(self.store.fetch())

    def test_create_fetch_update(self):
        revision = self.store.put(b'{"a": 1}')
        self.assertEqual(revision, '1')
        created = next(iter(self.service.files_data.values()))
        self.assertEqual(created['parents'], ['appDataFolder'])

        remote_file = self.store.fetch()
        self.assertEqual(remote_file.content, b'{"a": 1}')
        self.assertEqual(remote_file.revision, '1')

        self.assertEqual(self.store.put(b'{"a": 2}', expected_revision='1'), '2')
        self.assertEqual(self.store.fetch().content, b'{"a": 2}')

    def test_list_is_scoped_to_app_data(self):
        self.store.fetch()
        kind, kwargs = self.service.calls[0]
        self.assertEqual(kind, 'list')
        self.assertEqual(kwargs['spaces'], 'appDataFolder')
        self.assertIn("name = 'data.json'", kwargs['q'])

    def test_version_read_before_content(self):
        self.store.put(b'1')
        self.service.calls.clear()
        self.store.fetch()
        self.assertEqual([c[0] for c in self.service.calls], ['list', 'get_media'])

    def test_conflicts(self):
        self.store.put(b'1')
        with self.assertRaises(status.WriteConflictException):
            self.store.put(b'2')

        self.service.touch('file1', b'other device')
        with self.assertRaises(status.WriteConflictException):
            self.store.put(b'2', expected_revision='1')
        self.assertEqual(self.store.fetch().content, b'other device')

        self.service.files_data.clear()
        with self.assertRaises(status.WriteConflictException):
            self.store.put(b'2', expected_revision='2')

    def test_http_errors(self):
        cases = [
            (401, status.AuthenticationException),
            (403, status.AuthenticationException),
            (412, status.WriteConflictException),
            (500, status.RemoteUnavailableException),
        ]
        for code, exc in cases:
            with self.subTest(code=code):
                self.service.errors.append(http_error(code))
                with self.assertRaises(exc):
                    self.store.put(b'1')

    def test_fetch_not_found_is_absent(self):
        self.store.put(b'1')
        with patch.object(_Files, 'get_media', side_effect=http_error(404)):
            self.assertIsNone(self.store.fetch())

    def test_transport_errors(self):
        self.service.errors.append(httplib2.HttpLib2Error('down'))
        with self.assertRaises(status.RemoteUnavailableException):
            self.store.fetch()
        self.service.errors.append(ConnectionResetError('reset'))
        with self.assertRaises(status.RemoteUnavailableException):
            self.store.put(b'1')

    def test_authentication_error_is_remote_unavailable(self):
        self.service.errors.append(http_error(401))
        with self.assertRaises(status.RemoteUnavailableException) as ctx:
            self.store.fetch()
        self.assertEqual(ctx.exception.status, status.Status.NotAuthenticated)


class RemoteFactoryTests(BaseTestCase):

    def test_not_configured(self):
        self.assertIsNone(remote.get_remote_store())

    def test_folder_relative_path(self):
        self.enable_remote('folder', 'sync/data.json')
        store = remote.get_remote_store()
        self.assertIsInstance(store, remote.FolderRemoteStore)
        self.assertEqual(store.path, lib.settings.config_dir / 'sync' / 'data.json')

    def test_drive(self):
        self.enable_remote('drive', 'seihin/data.json')
        store = remote.get_remote_store()
        self.assertIsInstance(store, remote.DriveRemoteStore)
        self.assertEqual(store.name, 'data.json')

    def test_get_service_is_cached(self):
        built = object()
        with patch.object(remote.auth_manager, 'get_valid_credentials', return_value='creds'), \
                patch.object(remote, 'build', return_value=built) as build:
            self.assertIs(remote.get_service(), built)
            self.assertIs(remote.get_service(), built)
        build.assert_called_once_with('drive', 'v3', credentials='creds', cache_discovery=False)
        remote.clear_service()

    def test_get_service_requires_credentials(self):
        with self.assertRaises(status.AuthenticationException):
            remote.get_service()
