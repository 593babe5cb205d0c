"""
Core package for CloudExpense providing essential functionality.

This package includes:

- :mod:`CloudExpense.core.auth` – Identity providers and the authentication repository.
- :mod:`CloudExpense.core.store` – The document store interface and the in-memory store.
- :mod:`CloudExpense.core.firestore` – Firestore REST adapter with polling live queries.
- :mod:`CloudExpense.core.repository` – Owner-scoped expense data access and live subscriptions.
- :mod:`CloudExpense.core.location` – Location provider, reverse geocoding and the location service.
- :mod:`CloudExpense.core.session` – Session controller tracking authentication state.
- :mod:`CloudExpense.core.expenses` – Expense controller owning the observable view state.
- :mod:`CloudExpense.core.app` – Factory wiring controllers from the user settings.
- :mod:`CloudExpense.core.livedata` – Observable values used by the controllers.
- :mod:`CloudExpense.core.result` – Success or failure of an operation.
"""
