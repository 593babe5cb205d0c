"""Owner-scoped data access for expense records.

Every call resolves the signed-in identity first and fails with
:class:`~CloudExpense.status.status.AuthorizationError` when nobody is signed in. Records are
always read through an owner filter, and writes stamp or verify the owner, so a user can never
see or change another user's expenses.

Mutations return a :class:`~CloudExpense.core.result.Result`. The plain reads
:meth:`ExpenseRepository.get_by_id` and :meth:`ExpenseRepository.total_spent` substitute a
default on failure; their ``fetch_`` counterparts keep the error.

Example::

    repository = ExpenseRepository(store, provider)
    with repository.list() as subscription:
        subscription.snapshotReceived.connect(print)
        result = repository.add(ExpenseRecord(amount=Decimal('12.50')))

"""
import logging
from dataclasses import replace
from decimal import Decimal
from typing import List, Optional

from PySide6 import QtCore

from .auth import IdentityProvider
from .result import Result
from .store import Document, DocumentStore, Filter, ListenerRegistration, OrderBy
from ..data import expense
from ..data.expense import ExpenseRecord
from ..status import status


class ExpenseSubscription(QtCore.QObject):
    """Live, owner-filtered list of expenses ordered by timestamp, newest first.

    The subscription is created idle. :meth:`start` registers the live query; the full list is
    then emitted once straight away and again after every change. When the underlying query
    fails the error is emitted and the listener is released; :meth:`start` may be called
    again to resubscribe. :meth:`cancel` (or leaving the ``with`` block) releases the listener.

    Signals:
        snapshotReceived (object): The full list of :class:`ExpenseRecord` items.
        errorOccurred (object): The :class:`status.BaseStatusException` that ended the stream.
    """
    snapshotReceived = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(object)

    def __init__(self, store: DocumentStore, owner: str, parent: QtCore.QObject = None) -> None:
        super().__init__(parent)
        self._store = store
        self._owner = owner
        self._registration: Optional[ListenerRegistration] = None
        self._latest: Optional[List[ExpenseRecord]] = None
        self._failed = False

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def latest(self) -> Optional[List[ExpenseRecord]]:
        """The most recent snapshot, or None before the first one arrived."""
        return self._latest

    @property
    def is_active(self) -> bool:
        return self._registration is not None and not self._registration.removed

    def start(self) -> 'ExpenseSubscription':
        """Register the live query. Does nothing when already active."""
        if self.is_active:
            return self

        # The store may deliver the first snapshot, or an error, before listen() returns
        self._failed = False
        registration = self._store.listen(
            expense.COLLECTION,
            self._on_snapshot,
            self._on_error,
            filters=(Filter(expense.FIELD_OWNER, self._owner),),
            order_by=OrderBy(expense.FIELD_TIMESTAMP, descending=True),
        )
        self._registration = registration
        if self._failed:
            # The error arrived while listen() was registering
            registration.remove()
            self._registration = None
            return self
        logging.debug(f'Expense subscription started for {self._owner}')
        return self

    def cancel(self) -> None:
        """Release the listener. Cancelling an idle subscription is a no-op."""
        if self._registration is None:
            return
        self._registration.remove()
        self._registration = None
        logging.debug(f'Expense subscription cancelled for {self._owner}')

    def _on_snapshot(self, documents: List[Document]) -> None:
        records = [ExpenseRecord.from_storage_map(d.data, d.id) for d in documents]
        self._latest = records
        self.snapshotReceived.emit(records)

    def _on_error(self, error: Exception) -> None:
        self._failed = True
        if self._registration is not None:
            self._registration.remove()
            self._registration = None

        if not isinstance(error, status.BaseStatusException):
            error = status.StoreError(str(error))
        self.errorOccurred.emit(error)

    def __enter__(self) -> 'ExpenseSubscription':
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cancel()


class ExpenseRepository:
    """Expense CRUD, live listing and totals for the signed-in user.

    Args:
        store: The document store holding the ``expenses`` collection.
        provider: Identity provider reporting the signed-in user.
    """

    def __init__(self, store: DocumentStore, provider: IdentityProvider) -> None:
        self.store = store
        self.provider = provider

    def _require_owner(self) -> str:
        identity = self.provider.current_identity()
        if identity is None:
            raise status.AuthorizationError
        return identity.uid

    def _owner_filter(self, owner: str) -> tuple:
        return (Filter(expense.FIELD_OWNER, owner),)

    @staticmethod
    def _validate(record: ExpenseRecord) -> None:
        if not isinstance(record.amount, Decimal) or not record.amount.is_finite():
            raise status.ValidationError(f'Invalid amount "{record.amount}".')
        if record.amount < 0:
            raise status.ValidationError('Amount must not be negative.')
        if (record.latitude is None) != (record.longitude is None):
            raise status.ValidationError('Latitude and longitude must be set together.')

    def _check_owned(self, expense_id: str, owner: str) -> None:
        doc = self.store.get(expense.COLLECTION, expense_id)
        if doc is None:
            raise status.NotFoundError(f'No expense with id "{expense_id}".')
        if doc.data.get(expense.FIELD_OWNER) != owner:
            raise status.AuthorizationError(f'Expense "{expense_id}" belongs to another user.')

    def list(self) -> ExpenseSubscription:
        """Return a live subscription to the signed-in user's expenses.

        The subscription must be started, and cancelled when no longer needed.

        Raises:
            status.AuthorizationError: If nobody is signed in.
        """
        return ExpenseSubscription(self.store, self._require_owner())

    def fetch_by_id(self, expense_id: str) -> Result[ExpenseRecord]:
        """Look up a single expense, keeping the reason when it can't be returned."""
        try:
            owner = self._require_owner()
            doc = self.store.get(expense.COLLECTION, expense_id)
            # Another user's record is reported the same way as a missing one
            if doc is None or doc.data.get(expense.FIELD_OWNER) != owner:
                raise status.NotFoundError(f'No expense with id "{expense_id}".')
        except status.BaseStatusException as ex:
            return Result.failure(ex)
        return Result.success(ExpenseRecord.from_storage_map(doc.data, doc.id))

    def get_by_id(self, expense_id: str) -> Optional[ExpenseRecord]:
        result = self.fetch_by_id(expense_id)
        if result.is_failure:
            logging.debug(f'Expense "{expense_id}" not available: {result.error}')
            return None
        return result.value

    def add(self, record: ExpenseRecord) -> Result[str]:
        """Create an expense owned by the signed-in user.

        Any owner set on ``record`` is replaced with the signed-in identity.

        Returns:
            Result[str]: The id assigned by the store.
        """
        try:
            owner = self._require_owner()
            self._validate(record)
            doc_id = self.store.add(expense.COLLECTION, replace(record, owner=owner).to_storage_map())
        except status.BaseStatusException as ex:
            return Result.failure(ex)
        logging.debug(f'Added expense {doc_id}')
        return Result.success(doc_id)

    def update(self, record: ExpenseRecord) -> Result[None]:
        """Overwrite the stored fields of ``record`` by its id.

        The owner is never rewritten, and an unset timestamp keeps the stored one.
        """
        try:
            owner = self._require_owner()
            if not record.id:
                raise status.ValidationError('The expense has no id.')
            self._validate(record)
            self._check_owned(record.id, owner)

            data = record.to_storage_map()
            del data[expense.FIELD_OWNER]
            if record.timestamp is None:
                del data[expense.FIELD_TIMESTAMP]
            self.store.update(expense.COLLECTION, record.id, data)
        except status.BaseStatusException as ex:
            return Result.failure(ex)
        logging.debug(f'Updated expense {record.id}')
        return Result.success()

    def delete(self, expense_id: str) -> Result[None]:
        try:
            owner = self._require_owner()
            self._check_owned(expense_id, owner)
            self.store.delete(expense.COLLECTION, expense_id)
        except status.BaseStatusException as ex:
            return Result.failure(ex)
        logging.debug(f'Deleted expense {expense_id}')
        return Result.success()

    def fetch_total_spent(self) -> Result[Decimal]:
        """Sum the amounts of all the signed-in user's expenses."""
        try:
            owner = self._require_owner()
            documents = self.store.query(expense.COLLECTION, self._owner_filter(owner))
        except status.BaseStatusException as ex:
            return Result.failure(ex)
        total = sum((expense.to_decimal(d.data.get(expense.FIELD_AMOUNT)) for d in documents), Decimal(0))
        return Result.success(total)

    def total_spent(self) -> Decimal:
        result = self.fetch_total_spent()
        if result.is_failure:
            logging.debug(f'Could not compute the total: {result.error}')
            return Decimal(0)
        return result.value
