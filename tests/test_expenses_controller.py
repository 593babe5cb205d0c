"""
Tests for CloudExpense.core.expenses
(covers the observable state of the expense controller and its operations).
"""
from decimal import Decimal
from typing import Optional

import pandas as pd

from CloudExpense.core.expenses import ExpenseController, OperationState, OperationStatus
from CloudExpense.core.location import Address, Geocoder, LocationData, LocationService, StaticLocationProvider
from CloudExpense.core.repository import ExpenseRepository
from CloudExpense.data.category import Category
from CloudExpense.data.currency import Currency
from CloudExpense.settings import lib
from CloudExpense.signals import signals
from CloudExpense.status import status
from tests.base import BaseTestCase, EMAIL, OTHER_EMAIL, PASSWORD, Recorder, connected


class FixedGeocoder(Geocoder):
    def reverse(self, latitude: float, longitude: float) -> Optional[Address]:
        return Address('Main St', 'Springfield', 'Oregon', 'USA')


class ControllerTestCase(BaseTestCase):
    signed_in = True

    def setUp(self) -> None:
        super().setUp()
        if self.signed_in:
            self.alice = self.create_user(EMAIL)
        self.location_provider = StaticLocationProvider(enabled=True, latitude=44.05, longitude=-123.09)
        self.repository = ExpenseRepository(self.store, self.provider)
        self.controller = ExpenseController(
            self.repository, LocationService(self.location_provider, FixedGeocoder())
        )
        self.addCleanup(self.controller.close)

        self.states = Recorder()
        self.controller.operation_state.valueChanged.connect(self.states)


class InitialStateTests(ControllerTestCase):
    def test_initial_state(self):
        self.assertEqual(self.controller.expenses.value, [])
        self.assertEqual(self.controller.total_spent.value, Decimal(0))
        self.assertEqual(self.controller.operation_state.value, OperationState.idle())
        self.assertIsNone(self.controller.current_location.value)
        self.assertIs(self.controller.selected_currency.value, Currency.EUR)
        self.assertFalse(self.controller.is_loading_location.value)
        self.assertTrue(self.controller.subscription.is_active)

    def test_existing_expenses_are_loaded(self):
        self.repository.add(self.make_record('3.00'))
        controller = ExpenseController(self.repository, LocationService(self.location_provider))
        self.addCleanup(controller.close)
        self.assertEqual(len(controller.expenses.value), 1)
        self.assertEqual(controller.total_spent.value, Decimal('3.00'))

    def test_currency_from_settings(self):
        lib.settings['currency'] = 'GBP'
        controller = ExpenseController(self.repository, LocationService(self.location_provider))
        self.addCleanup(controller.close)
        self.assertIs(controller.selected_currency.value, Currency.GBP)


class SignedOutControllerTests(ControllerTestCase):
    signed_in = False

    def test_subscription_error_state(self):
        state = self.controller.operation_state.value
        self.assertEqual(state.status, OperationStatus.Error)
        self.assertEqual(state.message, 'User not logged in.')
        self.assertIsNone(self.controller.subscription)

    def test_sign_in_starts_subscription(self):
        identity = self.create_user(EMAIL)
        self.repository.add(self.make_record('4.00'))
        signals.signedIn.emit(identity)
        self.assertTrue(self.controller.subscription.is_active)
        self.assertEqual(len(self.controller.expenses.value), 1)
        self.assertEqual(self.controller.total_spent.value, Decimal('4.00'))


class MutationTests(ControllerTestCase):
    def test_add_expense(self):
        added = Recorder()
        with connected(signals.expenseAdded, added):
            result = self.controller.add_expense(self.make_record('10.00', 'Taxi'))

        self.assertTrue(result.is_success)
        self.assertEqual(added.values, [result.value])
        self.assertEqual(
            [s.status for s in self.states.values],
            [OperationStatus.Loading, OperationStatus.Success],
        )
        self.assertEqual(self.controller.operation_state.value.message, 'Expense added!')
        self.assertEqual(self.controller.total_spent.value, Decimal('10.00'))
        self.assertEqual([r.id for r in self.controller.expenses.value], [result.value])

    def test_add_expense_failure(self):
        result = self.controller.add_expense(self.make_record('-1'))
        self.assertTrue(result.is_failure)
        state = self.controller.operation_state.value
        self.assertEqual(state.status, OperationStatus.Error)
        self.assertEqual(state.message, 'Amount must not be negative.')
        self.assertEqual(self.controller.total_spent.value, Decimal(0))

    def test_update_expense(self):
        doc_id = self.controller.add_expense(self.make_record('10.00')).value
        record = self.repository.get_by_id(doc_id)

        updated = Recorder()
        with connected(signals.expenseUpdated, updated):
            from dataclasses import replace
            result = self.controller.update_expense(replace(record, amount=Decimal('15.00')))

        self.assertTrue(result.is_success)
        self.assertEqual(updated.values, [doc_id])
        self.assertEqual(self.controller.operation_state.value, OperationState.success('Expense updated!'))
        self.assertEqual(self.controller.total_spent.value, Decimal('15.00'))
        self.assertEqual(self.controller.expenses.value[0].amount, Decimal('15.00'))

    def test_update_missing_expense(self):
        self.controller.update_expense(self.make_record(id='missing'))
        state = self.controller.operation_state.value
        self.assertEqual(state.status, OperationStatus.Error)
        self.assertIn('No expense with id', state.message)

    def test_delete_expense(self):
        doc_id = self.controller.add_expense(self.make_record('10.00')).value

        deleted = Recorder()
        with connected(signals.expenseDeleted, deleted):
            self.controller.delete_expense(doc_id)

        self.assertEqual(deleted.values, [doc_id])
        self.assertEqual(self.controller.operation_state.value, OperationState.success('Expense deleted!'))
        self.assertEqual(self.controller.total_spent.value, Decimal(0))
        self.assertEqual(self.controller.expenses.value, [])

    def test_failure_without_message_uses_fallback(self):
        def failing_delete(expense_id):
            from CloudExpense.core.result import Result
            error = status.StoreError()
            error.message = ''
            return Result.failure(error)

        self.repository.delete = failing_delete
        self.controller.delete_expense('x')
        self.assertEqual(self.controller.operation_state.value, OperationState.error('Failed to delete expense'))

    def test_reset_operation_state(self):
        self.controller.add_expense(self.make_record())
        self.controller.reset_operation_state()
        self.assertEqual(self.controller.operation_state.value, OperationState.idle())


class LocationTests(ControllerTestCase):
    def test_get_current_location(self):
        loading = Recorder()
        self.controller.is_loading_location.valueChanged.connect(loading)

        result = self.controller.get_current_location()

        self.assertTrue(result.is_success)
        self.assertEqual(loading.values, [True, False])
        self.assertEqual(
            self.controller.current_location.value,
            LocationData(44.05, -123.09, 'Main St, Springfield, Oregon, USA'),
        )
        self.assertEqual(self.controller.operation_state.value, OperationState.success('Location detected!'))

    def test_permission_denied(self):
        self.location_provider.enabled = False
        self.assertFalse(self.controller.has_location_permission())

        result = self.controller.get_current_location()

        self.assertIsInstance(result.error, status.LocationPermissionError)
        self.assertIsNone(self.controller.current_location.value)
        self.assertFalse(self.controller.is_loading_location.value)
        state = self.controller.operation_state.value
        self.assertEqual(state.status, OperationStatus.Error)
        self.assertEqual(state.message, 'Location permission not granted.')

    def test_add_expense_with_location(self):
        self.controller.get_current_location()
        self.controller.set_currency(Currency.USD)

        doc_id = self.controller.add_expense_with_location('8.20', 'Coffee at the cafe').value

        record = self.repository.get_by_id(doc_id)
        self.assertEqual(record.amount, Decimal('8.20'))
        self.assertEqual(record.currency, 'USD')
        self.assertEqual(record.category, 'FOOD')
        self.assertEqual(record.location, 'Main St, Springfield, Oregon, USA')
        self.assertEqual((record.latitude, record.longitude), (44.05, -123.09))
        self.assertEqual(self.controller.expenses_with_location(), [record])

    def test_add_expense_without_location(self):
        doc_id = self.controller.add_expense_with_location(5, 'Something', Category.BILLS).value
        record = self.repository.get_by_id(doc_id)
        self.assertEqual(record.category, 'BILLS')
        self.assertEqual(record.location, '')
        self.assertFalse(record.has_location)
        self.assertEqual(self.controller.expenses_with_location(), [])

    def test_add_expense_with_invalid_amount(self):
        result = self.controller.add_expense_with_location('ten', 'Lunch')
        self.assertIsInstance(result.error, status.ValidationError)
        self.assertEqual(self.controller.operation_state.value.status, OperationStatus.Error)
        self.assertEqual(self.controller.expenses.value, [])


class MiscTests(ControllerTestCase):
    def test_set_currency_persists_preference(self):
        self.controller.set_currency('JPY')
        self.assertIs(self.controller.selected_currency.value, Currency.JPY)
        self.assertEqual(lib.settings['currency'], 'JPY')

    def test_refresh_restarts_failed_subscription(self):
        self.store.fail_listeners(RuntimeError('connection lost'))
        self.assertFalse(self.controller.subscription.is_active)
        self.assertEqual(self.controller.operation_state.value.status, OperationStatus.Error)

        self.controller.refresh()
        self.assertTrue(self.controller.subscription.is_active)
        self.assertEqual(self.store.active_listener_count, 1)

    def test_sign_out_clears_state(self):
        self.controller.add_expense(self.make_record('10.00'))
        self.provider.sign_out()
        signals.signedOut.emit()
        self.assertEqual(self.controller.expenses.value, [])
        self.assertEqual(self.controller.total_spent.value, Decimal(0))
        self.assertEqual(self.store.active_listener_count, 0)

    def test_switching_account_rescopes_the_list(self):
        self.controller.add_expense(self.make_record('5.00'))
        self.assertEqual(len(self.controller.expenses.value), 1)

        bob = self.provider.create_account(OTHER_EMAIL, PASSWORD)
        signals.signedIn.emit(bob)

        self.assertEqual(self.controller.subscription.owner, bob.uid)
        self.assertEqual(self.controller.expenses.value, [])
        self.assertEqual(self.controller.total_spent.value, Decimal(0))
        self.assertEqual(self.store.active_listener_count, 1)

        self.controller.add_expense(self.make_record('2.00'))
        self.assertEqual({e.owner for e in self.controller.expenses.value}, {bob.uid})
        self.assertEqual(self.controller.total_spent.value, Decimal('2.00'))

    def test_close_releases_listener(self):
        self.assertEqual(self.store.active_listener_count, 1)
        self.controller.close()
        self.controller.close()
        self.assertEqual(self.store.active_listener_count, 0)

    def test_category_summary(self):
        self.controller.add_expense(self.make_record('10.00', category='FOOD'))
        self.controller.add_expense(self.make_record('30.00', category='TRAVEL'))
        self.controller.add_expense(self.make_record('5.00', category='FOOD'))

        summary = self.controller.category_summary()
        self.assertIsInstance(summary, pd.DataFrame)
        self.assertEqual(list(summary['category']), ['TRAVEL', 'FOOD'])
        self.assertEqual(list(summary['total']), [30.0, 15.0])

    def test_formatted_total(self):
        self.controller.add_expense(self.make_record('1234.50'))
        self.assertEqual(self.controller.formatted_total(), '€1,234.50')

    def test_formatted_amount_uses_record_currency(self):
        self.assertEqual(self.controller.formatted_amount(self.make_record('12.50', currency='USD')), '$12.50')
        self.assertEqual(self.controller.formatted_amount(self.make_record('3', currency='XXX')), '€3.00')


class PizzaNightTests(ControllerTestCase):
    def test_pizza_night(self):
        self.controller.refresh()
        before = self.controller.total_spent.value

        result = self.controller.add_expense_with_location(Decimal('12.50'), 'Pizza night')
        self.controller.refresh()

        self.assertTrue(result.is_success)
        record = self.controller.expenses.value[0]
        self.assertEqual(record.id, result.value)
        self.assertIs(record.category_enum, Category.FOOD)
        self.assertEqual(self.controller.total_spent.value - before, Decimal('12.50'))
