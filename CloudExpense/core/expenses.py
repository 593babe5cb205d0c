"""View-state controller for the expense screens.

:class:`ExpenseController` keeps the live expense list, the running total and the status of
the last mutation as :class:`~CloudExpense.core.livedata.LiveData` values. The list follows
the store through a live subscription; the total is refetched after every successful mutation.
"""
import enum
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Union

import pandas as pd
from PySide6 import QtCore

from .livedata import LiveData
from .location import LocationData, LocationService
from .repository import ExpenseRepository, ExpenseSubscription
from .result import Result
from ..data import data
from ..data.category import Category, classify
from ..data.currency import Currency
from ..data.expense import ExpenseRecord
from ..settings import locale
from ..signals import signals
from ..status import status


class OperationStatus(enum.StrEnum):
    Idle = enum.auto()
    Loading = enum.auto()
    Success = enum.auto()
    Error = enum.auto()


@dataclass(frozen=True)
class OperationState:
    """Status of the last expense operation. ``message`` is set for Success and Error."""
    status: OperationStatus = OperationStatus.Idle
    message: str = ''

    @classmethod
    def idle(cls) -> 'OperationState':
        return cls(OperationStatus.Idle)

    @classmethod
    def loading(cls) -> 'OperationState':
        return cls(OperationStatus.Loading)

    @classmethod
    def success(cls, message: str) -> 'OperationState':
        return cls(OperationStatus.Success, message)

    @classmethod
    def error(cls, message: str) -> 'OperationState':
        return cls(OperationStatus.Error, message)


class ExpenseController(QtCore.QObject):
    """Exposes the signed-in user's expenses and runs expense operations.

    The live subscription starts on construction and is restarted when a user signs in.
    Call :meth:`close` to release it.

    Attributes:
        expenses (LiveData): List of :class:`ExpenseRecord`, newest first.
        total_spent (LiveData): Sum of all amounts as a Decimal.
        operation_state (LiveData): :class:`OperationState` of the last operation.
        current_location (LiveData): The last detected :class:`LocationData`, or None.
        selected_currency (LiveData): The :class:`Currency` used for new expenses.
        is_loading_location (LiveData): True while a location lookup runs.
    """

    def __init__(self, repository: ExpenseRepository, location_service: LocationService,
                 parent: QtCore.QObject = None) -> None:
        super().__init__(parent)
        self.repository = repository
        self.location_service = location_service

        self.expenses = LiveData([], parent=self)
        self.total_spent = LiveData(Decimal(0), parent=self)
        self.operation_state = LiveData(OperationState.idle(), parent=self)
        self.current_location = LiveData(None, parent=self)
        self.selected_currency = LiveData(self._initial_currency(), parent=self)
        self.is_loading_location = LiveData(False, parent=self)

        self._subscription: Optional[ExpenseSubscription] = None
        self._closed = False

        self._connect_signals()
        self.load_expenses()
        self.load_total_spent()

    @staticmethod
    def _initial_currency() -> Currency:
        from ..settings import lib
        return Currency.from_code(lib.settings['currency'])

    def _connect_signals(self) -> None:
        signals.signedIn.connect(self._on_signed_in)
        signals.signedOut.connect(self._on_signed_out)

    def _disconnect_signals(self) -> None:
        signals.signedIn.disconnect(self._on_signed_in)
        signals.signedOut.disconnect(self._on_signed_out)

    @QtCore.Slot(object)
    def _on_signed_in(self, identity: object) -> None:
        # A different account may have signed in without signing out first
        self.load_expenses()
        self.load_total_spent()

    @QtCore.Slot()
    def _on_signed_out(self) -> None:
        self._cancel_subscription()
        self.expenses.set_value([])
        self.total_spent.set_value(Decimal(0))

    @property
    def subscription(self) -> Optional[ExpenseSubscription]:
        return self._subscription

    def _cancel_subscription(self) -> None:
        if self._subscription is None:
            return
        self._subscription.cancel()
        self._subscription.snapshotReceived.disconnect(self._on_snapshot)
        self._subscription.errorOccurred.disconnect(self._on_subscription_error)
        self._subscription = None

    def load_expenses(self) -> None:
        """(Re)start the live subscription to the expense list."""
        self._cancel_subscription()
        try:
            subscription = self.repository.list()
        except status.BaseStatusException as ex:
            self.operation_state.set_value(OperationState.error(ex.message or 'Failed to load expenses'))
            return

        subscription.snapshotReceived.connect(self._on_snapshot)
        subscription.errorOccurred.connect(self._on_subscription_error)
        self._subscription = subscription
        subscription.start()

    @QtCore.Slot(object)
    def _on_snapshot(self, records: List[ExpenseRecord]) -> None:
        self.expenses.set_value(records)

    @QtCore.Slot(object)
    def _on_subscription_error(self, error: status.BaseStatusException) -> None:
        message = getattr(error, 'message', '') or 'Failed to load expenses'
        self.operation_state.set_value(OperationState.error(message))

    def load_total_spent(self) -> None:
        self.total_spent.set_value(self.repository.total_spent())

    def _finish(self, result: Result, message: str, fallback: str) -> Result:
        if result.is_failure:
            self.operation_state.set_value(OperationState.error(result.error_message(fallback)))
            return result
        self.operation_state.set_value(OperationState.success(message))
        self.load_total_spent()
        return result

    def add_expense(self, record: ExpenseRecord) -> Result[str]:
        self.operation_state.set_value(OperationState.loading())
        result = self._finish(self.repository.add(record), 'Expense added!', 'Failed to add expense')
        if result.is_success:
            signals.expenseAdded.emit(result.value)
        return result

    def update_expense(self, record: ExpenseRecord) -> Result[None]:
        self.operation_state.set_value(OperationState.loading())
        result = self._finish(self.repository.update(record), 'Expense updated!', 'Failed to update expense')
        if result.is_success:
            signals.expenseUpdated.emit(record.id)
        return result

    def delete_expense(self, expense_id: str) -> Result[None]:
        self.operation_state.set_value(OperationState.loading())
        result = self._finish(self.repository.delete(expense_id), 'Expense deleted!', 'Failed to delete expense')
        if result.is_success:
            signals.expenseDeleted.emit(expense_id)
        return result

    def add_expense_with_location(self, amount: Union[Decimal, float, int, str], description: str,
                                  category: Optional[Category] = None) -> Result[str]:
        """Add an expense in the selected currency, tagged with the current location if known.

        Args:
            amount: The amount spent.
            description: Free text notes.
            category: The category, or None to classify the description.

        Returns:
            Result[str]: The new expense's id.
        """
        try:
            value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        except InvalidOperation:
            result = Result.failure(status.ValidationError(f'Invalid amount "{amount}".'))
            self.operation_state.set_value(OperationState.error(result.error_message('Failed to add expense')))
            return result

        location: Optional[LocationData] = self.current_location.value
        record = ExpenseRecord(
            amount=value,
            currency=self.selected_currency.value.code,
            category=(category or classify(description)).name,
            description=description,
            location=location.address if location else '',
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
        )
        return self.add_expense(record)

    def get_current_location(self) -> Result[LocationData]:
        self.is_loading_location.set_value(True)
        try:
            result = self.location_service.get_current_location()
            if result.is_failure:
                self.operation_state.set_value(OperationState.error(result.error_message('Failed to get location')))
            else:
                self.current_location.set_value(result.value)
                self.operation_state.set_value(OperationState.success('Location detected!'))
        finally:
            self.is_loading_location.set_value(False)
        return result

    def set_currency(self, currency: Union[Currency, str]) -> None:
        """Select the currency for new expenses and remember it as the preference."""
        if not isinstance(currency, Currency):
            currency = Currency.from_code(currency)
        self.selected_currency.set_value(currency)

        from ..settings import lib
        if lib.settings['currency'] != currency.code:
            lib.settings['currency'] = currency.code

    def refresh(self) -> None:
        """Refetch the total, and resubscribe when the live list isn't running."""
        if self._subscription is None or not self._subscription.is_active:
            self.load_expenses()
        self.load_total_spent()

    def reset_operation_state(self) -> None:
        self.operation_state.set_value(OperationState.idle())

    def expenses_with_location(self) -> List[ExpenseRecord]:
        return [e for e in self.expenses.value if e.has_location]

    def has_location_permission(self) -> bool:
        return self.location_service.has_location_permission()

    def category_summary(self) -> pd.DataFrame:
        """Per-category totals of the current expense list."""
        return data.get_category_summary(self.expenses.value)

    def format_amount(self, value: Union[Decimal, float, int], currency: Optional[Currency] = None) -> str:
        """Format an amount for display in the configured locale."""
        from ..settings import lib
        currency = currency or self.selected_currency.value
        return locale.format_amount(value, currency.code, lib.settings['locale'] or locale.DEFAULT_LOCALE)

    def formatted_total(self) -> str:
        return self.format_amount(self.total_spent.value)

    def formatted_amount(self, record: ExpenseRecord) -> str:
        """Format an expense's amount in its own currency."""
        return self.format_amount(record.amount, record.currency_enum)

    def close(self) -> None:
        """Release the live subscription and stop following session changes."""
        if self._closed:
            return
        self._closed = True
        self._cancel_subscription()
        self._disconnect_signals()
        logging.debug('Expense controller closed')
