"""
Tests for Seihin.settings.lib and Seihin.settings.locale.
"""
import json

from Seihin.settings import lib
from Seihin.settings import locale
from Seihin.core.signals import signals
from Seihin.status import status
from tests.base import BaseTestCase


class SettingsAPITests(BaseTestCase):

    def test_defaults_written(self):
        self.assertTrue(lib.settings.settings_path.exists())
        with lib.settings.settings_path.open('r', encoding='utf-8') as f:
            self.assertEqual(json.load(f), lib.DEFAULT_SETTINGS)
        self.assertEqual(lib.settings.get_section('remote')['provider'], 'none')
        self.assertTrue(lib.settings.auth_dir.is_dir())
        self.assertTrue(lib.settings.db_dir.is_dir())

    def test_get_section_returns_copy(self):
        section = lib.settings.get_section('sync')
        section['debounce_seconds'] = 1
        self.assertEqual(lib.settings.get_section('sync')['debounce_seconds'], 30)

    def test_set_section_persists_and_signals(self):
        changed = []

        def _slot(name: str) -> None:
            changed.append(name)

        signals.configSectionChanged.connect(_slot)
        try:
            lib.settings.set_section('remote', {'provider': 'folder', 'path': '/tmp/x.json'})
        finally:
            signals.configSectionChanged.disconnect(_slot)

        self.assertEqual(changed, ['remote'])
        reloaded = lib.SettingsAPI()
        self.assertEqual(reloaded.get_section('remote'), {'provider': 'folder', 'path': '/tmp/x.json'})
        # Other sections untouched
        self.assertEqual(reloaded.get_section('sync'), lib.DEFAULT_SETTINGS['sync'])

    def test_set_section_invalid_value_rollback(self):
        cases = [
            (ValueError, 'remote', {'provider': 'dropbox', 'path': 'x'}),
            (TypeError, 'sync', {'debounce_seconds': '30', 'sync_on_startup': True}),
            (TypeError, 'sync', {'debounce_seconds': True, 'sync_on_startup': True}),
            (ValueError, 'sync', {'debounce_seconds': -1, 'sync_on_startup': True}),
            (ValueError, 'ledger', {'default_category': 'rent', 'locale': 'ja_JP'}),
            (ValueError, 'ledger', {'default_category': 'food'}),
            (ValueError, 'ledger', {'default_category': 'food', 'locale': 'ja_JP', 'extra': 1}),
            (TypeError, 'ledger', ['food']),
        ]
        for exc, section, data in cases:
            with self.subTest(section=section, data=data):
                before = lib.settings.get_section(section)
                with self.assertRaises(exc):
                    lib.settings.set_section(section, data)
                self.assertEqual(lib.settings.get_section(section), before)

    def test_set_section_unknown(self):
        with self.assertRaises(ValueError):
            lib.settings.set_section('spreadsheet', {})

    def test_revert_section(self):
        lib.settings.set_section('sync', {'debounce_seconds': 5, 'sync_on_startup': False})
        lib.settings.revert_section('sync')
        self.assertEqual(lib.settings.get_section('sync'), lib.DEFAULT_SETTINGS['sync'])
        with self.assertRaises(ValueError):
            lib.settings.revert_section('client_secret')

    def test_missing_keys_filled_from_defaults(self):
        with lib.settings.settings_path.open('w', encoding='utf-8') as f:
            json.dump({'remote': {'provider': 'folder'}}, f)
        api = lib.SettingsAPI()
        self.assertEqual(api.get_section('remote'), {'provider': 'folder', 'path': 'data.json'})
        self.assertEqual(api.get_section('ledger'), lib.DEFAULT_SETTINGS['ledger'])

    def test_invalid_file(self):
        lib.settings.settings_path.write_text('{not json', encoding='utf-8')
        with self.assertRaises(status.SettingsInvalidException):
            lib.SettingsAPI()

        lib.settings.settings_path.write_text('[]', encoding='utf-8')
        with self.assertRaises(status.SettingsInvalidException):
            lib.SettingsAPI()

    def test_settings_not_found(self):
        lib.settings.settings_path.unlink()
        with self.assertRaises(status.SettingsNotFoundException):
            lib.settings.load_settings()

    def test_validate_client_secret_missing_section(self):
        with self.assertRaises(status.ClientSecretInvalidException):
            lib.settings.validate_client_secret({'other': {}})

    def test_validate_client_secret_missing_fields(self):
        with self.assertRaises(status.ClientSecretInvalidException):
            lib.settings.validate_client_secret({'installed': {'client_id': 'x'}})

    def test_client_secret_round_trip(self):
        data = {'web': {k: 'v' for k in lib.SettingsAPI.required_client_secret_keys}}
        lib.settings.set_section('client_secret', data)
        self.assertEqual(lib.SettingsAPI().get_section('client_secret'), data)

    def test_load_client_secret_errors(self):
        with self.assertRaises(status.ClientSecretNotFoundException):
            lib.settings.load_client_secret()
        lib.settings.client_secret_path.write_text('nope', encoding='utf-8')
        with self.assertRaises(status.ClientSecretInvalidException):
            lib.settings.load_client_secret()


class LocaleTests(BaseTestCase):

    def test_currency_from_locale(self):
        self.assertEqual(locale.get_currency_from_locale('ja_JP'), 'JPY')
        self.assertEqual(locale.get_currency_from_locale('en_US'), 'USD')
        self.assertEqual(locale.get_currency_from_locale('xx'), 'JPY')

    def test_minor_units(self):
        self.assertEqual(locale.to_major_units(1350, 'JPY'), 1350)
        self.assertEqual(locale.to_major_units(1350, 'USD'), 13.5)

    def test_format_currency_value(self):
        self.assertIn('1,350', locale.format_currency_value(1350, 'ja_JP'))
        self.assertIn('13.50', locale.format_currency_value(1350, 'en_US'))

    def test_unknown_locale_falls_back(self):
        self.assertEqual(locale.format_currency_value(5, 'zz_ZZ'), '5')
        self.assertEqual(locale.format_decimal(1.5, 'zz_ZZ'), '1.5')
