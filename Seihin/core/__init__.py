"""
Core package for Seihin providing the storage and synchronization engine.

This package includes:

- :mod:`Seihin.core.models` – Record dataclasses, category taxonomy and timestamp helpers.
- :mod:`Seihin.core.snapshot` – Normalization and encoding of the shared snapshot file.
- :mod:`Seihin.core.merge` – Pure Last-Writer-Wins merge of local and remote collections.
- :mod:`Seihin.core.database` – Local SQLite store with schema migrations.
- :mod:`Seihin.core.records` – Local add, update and delete API for expenses and week budgets.
- :mod:`Seihin.core.auth` – Google OAuth2 credential management for the Drive store.
- :mod:`Seihin.core.remote` – Folder and Google Drive snapshot stores with conditional writes.
- :mod:`Seihin.core.sync` – The sync orchestrator and its single-flight guard.
- :mod:`Seihin.core.trigger` – Debounced sync trigger driven by local changes.
- :mod:`Seihin.core.signals` – Application-wide Qt signal hub.
"""
