"""Tests for the pandas analytics in CloudExpense.data.data."""
import datetime

import pandas as pd

from CloudExpense.data import data
from CloudExpense.data.category import Category
from tests.base import BaseTestCase


class ToDataFrameTests(BaseTestCase):
    def test_empty(self):
        df = data.to_dataframe([])
        self.assertTrue(df.empty)
        self.assertEqual(list(df.columns), data.EXPENSE_DATA_COLUMNS)

    def test_rows(self):
        timestamp = datetime.datetime(2024, 3, 1, 12, 30, tzinfo=datetime.timezone.utc)
        records = [
            self.make_record('12.50', 'Lunch', id='a', category='FOOD', timestamp=timestamp),
            self.make_record('3', 'Mystery', id='b', category='NOT_A_CATEGORY'),
        ]
        df = data.to_dataframe(records)

        self.assertEqual(list(df.columns), data.EXPENSE_DATA_COLUMNS)
        self.assertEqual(df['amount'].tolist(), [12.5, 3.0])
        self.assertEqual(df['category'].tolist(), ['FOOD', 'OTHER'])
        self.assertEqual(df.loc[0, 'timestamp'], pd.Timestamp('2024-03-01 12:30', tz='UTC'))
        self.assertTrue(pd.isna(df.loc[1, 'timestamp']))


class CategorySummaryTests(BaseTestCase):
    def records(self):
        return [
            self.make_record('20', 'Pizza', id='1', category='FOOD'),
            self.make_record('10', 'Cafe', id='2', category='FOOD'),
            self.make_record('30', 'Electricity', id='3', category='BILLS'),
            self.make_record('5', 'Bus', id='4', category='TRANSPORT'),
            self.make_record('0.1', 'Gum', id='5', category='OTHER'),
        ]

    def test_totals_and_order(self):
        summary = data.get_category_summary(self.records())

        self.assertEqual(list(summary.columns), data.SUMMARY_COLUMNS)
        self.assertEqual(summary['category'].tolist(), ['FOOD', 'BILLS', 'TRANSPORT', 'OTHER'])
        self.assertEqual(summary['total'].tolist()[:3], [30.0, 30.0, 5.0])
        self.assertEqual(summary['transactions'].tolist(), [2, 1, 1, 1])
        self.assertEqual(summary.loc[0, 'display_name'], Category.FOOD.display_name)
        self.assertEqual(summary.loc[1, 'color'], Category.BILLS.color)

    def test_weights(self):
        summary = data.get_category_summary(self.records()).set_index('category')

        self.assertEqual(summary.loc['FOOD', 'weight'], 1.0)
        self.assertEqual(summary.loc['BILLS', 'weight'], 1.0)
        self.assertAlmostEqual(summary.loc['TRANSPORT', 'weight'], 5 / 30)
        self.assertEqual(summary.loc['OTHER', 'weight'], 0.02)

    def test_custom_min_weight(self):
        summary = data.get_category_summary(self.records(), min_weight=0.1).set_index('category')
        self.assertEqual(summary.loc['OTHER', 'weight'], 0.1)

    def test_show_empty_categories(self):
        summary = data.get_category_summary(self.records(), hide_empty_categories=False)

        self.assertEqual(len(summary), len(Category))
        empty = summary[summary['transactions'] == 0]
        # Empty categories follow in declaration order
        self.assertEqual(
            empty['category'].tolist(),
            ['SHOPPING', 'ENTERTAINMENT', 'EDUCATION', 'HEALTHCARE', 'TRAVEL'],
        )
        self.assertTrue((empty['weight'] == 0.0).all())
        self.assertTrue((empty['total'] == 0.0).all())

    def test_empty_records(self):
        summary = data.get_category_summary([])
        self.assertTrue(summary.empty)
        self.assertEqual(list(summary.columns), data.SUMMARY_COLUMNS)

    def test_empty_records_with_empty_categories(self):
        summary = data.get_category_summary([], hide_empty_categories=False)
        self.assertEqual(summary['category'].tolist(), [c.name for c in Category])
        self.assertEqual(summary['total'].sum(), 0.0)
        self.assertTrue((summary['weight'] == 0.0).all())
