"""Status codes, their user-facing messages and the exceptions raised across CloudExpense.

Every exception derives from :class:`~CloudExpense.status.status.BaseStatusException`, which
logs itself and emits ``signals.error`` when raised.
"""
