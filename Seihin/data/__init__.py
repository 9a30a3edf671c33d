"""
Seihin data package.

This package provides:

- :mod:`Seihin.data.data` – pandas-based weekly and per-category summaries of the local ledger, with week budget resolution and locale-aware budget text.
"""
