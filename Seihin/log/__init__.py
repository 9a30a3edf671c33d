"""
Logging subsystem for Seihin.

Modules:

- :mod:`Seihin.log.log` – Root logger setup, in-memory tank handler and the Qt message bridge.
"""
