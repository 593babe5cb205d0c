"""
CloudExpense data package: records, enumerations and analytics.

This package provides:

- :mod:`CloudExpense.data.category` – The :class:`Category` enumeration and the keyword classifier.
- :mod:`CloudExpense.data.currency` – The :class:`Currency` enumeration.
- :mod:`CloudExpense.data.expense` – :class:`ExpenseRecord` and its storage map codec.
- :mod:`CloudExpense.data.user` – :class:`UserProfile` mirrored into the users collection.
- :mod:`CloudExpense.data.data` – pandas helpers summarizing record lists.
"""
