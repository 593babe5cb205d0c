"""
CloudExpense: expense tracking backed by a managed identity provider and a live document store.

This package provides:

- :mod:`CloudExpense.core` – Identity, document store adapters, the owner-scoped expense repository,
  location lookup, and the session and expense controllers that expose observable state.
- :mod:`CloudExpense.data` – Expense record, category and currency models, and pandas analytics.
- :mod:`CloudExpense.settings` – Settings management with schema validation and currency formatting.
- :mod:`CloudExpense.status` – Status codes and the exception taxonomy.
- :mod:`CloudExpense.log` – Logging setup with an in-memory log tank.

Use :func:`CloudExpense.core.app.create_controllers` to wire the controllers from the user settings.
"""
import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('CloudExpense requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'CloudExpense: expense tracking with live cloud sync.'

from .log import log

log.setup_logging()
