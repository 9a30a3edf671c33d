"""
Settings package for Seihin.

Modules:

- :mod:`Seihin.settings.lib` – Settings schema, validation, persistence and application paths.
- :mod:`Seihin.settings.locale` – Locale-aware currency and decimal formatting.
"""
