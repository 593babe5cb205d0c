"""
Settings package: configuration API and locale helpers.

This package provides:

- :mod:`CloudExpense.settings.lib` – Config paths, app.json loading and schema validation.
- :mod:`CloudExpense.settings.locale` – Babel based amount and currency formatting.
"""
