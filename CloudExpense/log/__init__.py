"""
Logging subsystem.

Modules:

- :mod:`CloudExpense.log.log` – Root logger setup, the in-memory log tank and the Qt message bridge.
"""
