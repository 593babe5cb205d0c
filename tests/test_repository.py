"""
Tests for CloudExpense.core.repository
(covers owner scoping, validation, the result-returning mutations and the live subscription).
"""
import time
from decimal import Decimal
from unittest import mock

import httplib2
from PySide6 import QtCore

from CloudExpense.core import firestore
from CloudExpense.core.firestore import FirestoreStore
from CloudExpense.core.repository import ExpenseRepository, ExpenseSubscription
from CloudExpense.data import expense
from CloudExpense.data.expense import ExpenseRecord
from CloudExpense.status import status
from tests.base import BaseTestCase, EMAIL, OTHER_EMAIL, PASSWORD, Recorder


class RepositoryTestCase(BaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.repository = ExpenseRepository(self.store, self.provider)
        self.alice = self.create_user(EMAIL)

    def add(self, amount: str = '10.00', description: str = '', **kwargs) -> str:
        result = self.repository.add(self.make_record(amount, description, **kwargs))
        self.assertTrue(result.is_success, result.error)
        return result.value


class SignedOutTests(RepositoryTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.provider.sign_out()

    def test_list_raises(self):
        with self.assertRaises(status.AuthorizationError):
            self.repository.list()

    def test_mutations_fail(self):
        for result in (
                self.repository.add(self.make_record()),
                self.repository.update(self.make_record(id='x')),
                self.repository.delete('x'),
                self.repository.fetch_by_id('x'),
                self.repository.fetch_total_spent(),
        ):
            self.assertTrue(result.is_failure)
            self.assertIsInstance(result.error, status.AuthorizationError)
            self.assertEqual(result.error_message(), 'User not logged in.')

    def test_reads_substitute_defaults(self):
        self.assertIsNone(self.repository.get_by_id('x'))
        self.assertEqual(self.repository.total_spent(), Decimal(0))


class AddTests(RepositoryTestCase):
    def test_add_stamps_owner(self):
        doc_id = self.add(owner='someone-else')
        stored = self.store.get(expense.COLLECTION, doc_id)
        self.assertEqual(stored.data['userId'], self.alice.uid)
        self.assertEqual(self.repository.get_by_id(doc_id).owner, self.alice.uid)

    def test_add_resolves_timestamp(self):
        doc_id = self.add()
        record = self.repository.get_by_id(doc_id)
        self.assertEqual(record.timestamp, self.clock.now)
        self.assertEqual(record.id, doc_id)

    def test_add_rejects_negative_amount(self):
        result = self.repository.add(self.make_record('-1'))
        self.assertIsInstance(result.error, status.ValidationError)
        self.assertEqual(self.store.query(expense.COLLECTION), [])

    def test_add_rejects_half_a_coordinate(self):
        result = self.repository.add(self.make_record(latitude=1.0))
        self.assertIsInstance(result.error, status.ValidationError)

    def test_zero_amount_is_allowed(self):
        self.add('0')

    def test_ids_are_unique(self):
        ids = {self.add() for _ in range(10)}
        self.assertEqual(len(ids), 10)


class ReadTests(RepositoryTestCase):
    def test_get_after_delete_is_absent(self):
        doc_id = self.add()
        self.assertTrue(self.repository.delete(doc_id).is_success)
        self.assertIsNone(self.repository.get_by_id(doc_id))
        self.assertIsInstance(self.repository.fetch_by_id(doc_id).error, status.NotFoundError)

    def test_other_users_records_are_invisible(self):
        doc_id = self.add()
        self.provider.create_account(OTHER_EMAIL, PASSWORD)
        self.assertIsNone(self.repository.get_by_id(doc_id))
        self.assertIsInstance(self.repository.fetch_by_id(doc_id).error, status.NotFoundError)

    def test_store_failure_is_swallowed_by_get(self):
        doc_id = self.add()
        with self.assertLogs(level='DEBUG'):
            self.store.get = self._failing_get
            self.assertIsNone(self.repository.get_by_id(doc_id))
        result = self.repository.fetch_by_id(doc_id)
        self.assertIsInstance(result.error, status.StoreError)

    @staticmethod
    def _failing_get(collection, doc_id):
        raise status.StoreError('offline')

    def test_totals_are_owner_scoped(self):
        self.add('10.00')
        self.add('2.55')
        self.provider.create_account(OTHER_EMAIL, PASSWORD)
        self.add('100')

        self.assertEqual(self.repository.total_spent(), Decimal('100'))
        self.provider.sign_in(EMAIL, PASSWORD)
        self.assertEqual(self.repository.total_spent(), Decimal('12.55'))
        self.assertEqual(self.repository.fetch_total_spent().value, Decimal('12.55'))

    def test_total_is_zero_on_store_failure(self):
        self.add('10.00')

        def failing_query(*args, **kwargs):
            raise status.StoreError('offline')

        self.store.query = failing_query
        self.assertEqual(self.repository.total_spent(), Decimal(0))
        self.assertIsInstance(self.repository.fetch_total_spent().error, status.StoreError)


class UpdateDeleteTests(RepositoryTestCase):
    def test_update_fields(self):
        doc_id = self.add('10.00', 'Lunch')
        original = self.repository.get_by_id(doc_id)

        updated = ExpenseRecord(
            id=doc_id, amount=Decimal('12.00'), description='Late lunch', category='FOOD',
            created_at=original.created_at,
        )
        self.assertTrue(self.repository.update(updated).is_success)

        record = self.repository.get_by_id(doc_id)
        self.assertEqual(record.amount, Decimal('12.00'))
        self.assertEqual(record.description, 'Late lunch')
        self.assertEqual(record.category, 'FOOD')
        # owner and timestamp are kept
        self.assertEqual(record.owner, self.alice.uid)
        self.assertEqual(record.timestamp, original.timestamp)

    def test_update_missing(self):
        result = self.repository.update(self.make_record(id='missing'))
        self.assertIsInstance(result.error, status.NotFoundError)

    def test_update_without_id(self):
        result = self.repository.update(self.make_record())
        self.assertIsInstance(result.error, status.ValidationError)

    def test_update_negative_amount(self):
        doc_id = self.add()
        result = self.repository.update(self.make_record('-5', id=doc_id))
        self.assertIsInstance(result.error, status.ValidationError)
        self.assertEqual(self.repository.get_by_id(doc_id).amount, Decimal('10.00'))

    def test_cannot_touch_other_users_records(self):
        doc_id = self.add()
        self.provider.create_account(OTHER_EMAIL, PASSWORD)

        result = self.repository.update(self.make_record('1', id=doc_id))
        self.assertIsInstance(result.error, status.AuthorizationError)
        result = self.repository.delete(doc_id)
        self.assertIsInstance(result.error, status.AuthorizationError)
        self.assertIsNotNone(self.store.get(expense.COLLECTION, doc_id))

    def test_delete_missing(self):
        self.assertIsInstance(self.repository.delete('missing').error, status.NotFoundError)


class SubscriptionTests(RepositoryTestCase):
    def subscribe(self) -> tuple:
        subscription = self.repository.list()
        snapshots, errors = Recorder(), Recorder()
        subscription.snapshotReceived.connect(snapshots)
        subscription.errorOccurred.connect(errors)
        return subscription, snapshots, errors

    def test_list_is_idle_until_started(self):
        subscription, snapshots, _ = self.subscribe()
        self.assertIsInstance(subscription, ExpenseSubscription)
        self.assertFalse(subscription.is_active)
        self.assertEqual(self.store.active_listener_count, 0)
        self.assertEqual(snapshots.values, [])
        self.assertIsNone(subscription.latest)

    def test_snapshots_ordered_newest_first(self):
        subscription, snapshots, _ = self.subscribe()
        with subscription:
            self.assertEqual(snapshots.last, [])
            first = self.add('1')
            second = self.add('2')
            third = self.add('3')
            self.assertEqual([r.id for r in snapshots.last], [third, second, first])
            self.assertEqual(subscription.latest, snapshots.last)

            self.repository.delete(second)
            self.assertEqual([r.id for r in snapshots.last], [third, first])
            self.assertEqual(len(snapshots.values), 5)

    def test_only_own_records(self):
        self.add('1')
        subscription, snapshots, _ = self.subscribe()
        self.provider.create_account(OTHER_EMAIL, PASSWORD)
        with subscription:
            self.add('2')
            self.assertEqual(len(snapshots.last), 1)
            self.assertEqual(snapshots.last[0].owner, self.alice.uid)

    def test_cancel_releases_listener(self):
        subscription, snapshots, _ = self.subscribe()
        subscription.start()
        subscription.start()
        self.assertEqual(self.store.active_listener_count, 1)

        subscription.cancel()
        subscription.cancel()
        self.assertFalse(subscription.is_active)
        self.assertEqual(self.store.active_listener_count, 0)

        count = len(snapshots.values)
        self.add()
        self.assertEqual(len(snapshots.values), count)

    def test_context_manager_releases_listener(self):
        with self.repository.list():
            self.assertEqual(self.store.active_listener_count, 1)
        self.assertEqual(self.store.active_listener_count, 0)

    def test_error_terminates_and_restart(self):
        subscription, snapshots, errors = self.subscribe()
        subscription.start()

        self.store.fail_listeners(RuntimeError('connection lost'))
        self.assertIsInstance(errors.last, status.StoreError)
        self.assertFalse(subscription.is_active)
        self.assertEqual(self.store.active_listener_count, 0)

        subscription.start()
        self.assertTrue(subscription.is_active)
        doc_id = self.add()
        self.assertEqual([r.id for r in snapshots.last], [doc_id])
        subscription.cancel()

    def test_status_errors_are_passed_through(self):
        subscription, _, errors = self.subscribe()
        subscription.start()
        error = status.AuthorizationError('Token revoked.')
        self.store.fail_listeners(error)
        self.assertIs(errors.last, error)


class PizzaNightTests(RepositoryTestCase):
    def test_pizza_night(self):
        from CloudExpense.data.category import classify

        before = self.repository.total_spent()
        with self.repository.list() as subscription:
            doc_id = self.add('12.50', 'Pizza night', category=classify('Pizza night').name)

            self.assertEqual(self.repository.get_by_id(doc_id).category, 'FOOD')
            self.assertEqual(subscription.latest[0].id, doc_id)
        self.assertEqual(self.repository.total_spent() - before, Decimal('12.50'))


class OfflineFirestoreTests(BaseTestCase):
    """Repository over a Firestore store whose transport fails below the HTTP layer."""

    def setUp(self) -> None:
        super().setUp()
        build_patch = mock.patch.object(firestore, 'build')
        build = build_patch.start()
        self.addCleanup(build_patch.stop)

        documents = build.return_value.projects.return_value.databases.return_value.documents.return_value
        self.executes = [
            documents.runQuery.return_value.execute,
            documents.get.return_value.execute,
            documents.commit.return_value.execute,
            documents.delete.return_value.execute,
        ]
        self.fail_with(httplib2.ServerNotFoundError('offline'))

        self.store = FirestoreStore('demo', lambda: 'id-token', poll_interval=0.01)
        self.addCleanup(self.store.close)
        self.create_user(EMAIL)
        self.repository = ExpenseRepository(self.store, self.provider)

    def fail_with(self, error: Exception) -> None:
        for execute in self.executes:
            execute.side_effect = error

    def test_reads_fall_back_to_defaults(self):
        self.assertEqual(self.repository.total_spent(), Decimal(0))
        self.assertIsInstance(self.repository.fetch_total_spent().error, status.StoreError)

        self.fail_with(ConnectionResetError('reset'))
        self.assertIsNone(self.repository.get_by_id('abc'))
        self.assertIsInstance(self.repository.fetch_by_id('abc').error, status.StoreError)

    def test_mutations_return_failures(self):
        result = self.repository.add(self.make_record('5.00'))
        self.assertTrue(result.is_failure)
        self.assertIsInstance(result.error, status.StoreError)

        self.assertIsInstance(self.repository.update(self.make_record('5.00', id='abc')).error, status.StoreError)
        self.assertIsInstance(self.repository.delete('abc').error, status.StoreError)

    def test_subscription_ends_with_error(self):
        errors = Recorder()
        subscription = self.repository.list()
        subscription.errorOccurred.connect(errors)
        subscription.start()
        self.addCleanup(subscription.cancel)

        for _ in range(500):
            QtCore.QCoreApplication.processEvents()
            if errors.values and not subscription.is_active and self.store.active_listener_count == 0:
                break
            time.sleep(0.01)

        self.assertFalse(subscription.is_active)
        self.assertEqual(self.store.active_listener_count, 0)
        self.assertEqual(len(errors.values), 1)
        self.assertIsInstance(errors.last, status.StoreError)
