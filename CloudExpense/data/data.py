"""Analytics over lists of expense records.

Converts records to a :class:`pandas.DataFrame` and aggregates them per category for summary
views.
"""
import logging
from typing import Iterable, List

import pandas as pd

from .category import Category
from .expense import ExpenseRecord

EXPENSE_DATA_COLUMNS: List[str] = [
    'id',
    'owner',
    'amount',
    'currency',
    'category',
    'description',
    'location',
    'latitude',
    'longitude',
    'timestamp',
    'created_at',
]

SUMMARY_COLUMNS: List[str] = [
    'category',
    'display_name',
    'color',
    'total',
    'transactions',
    'weight',
]


def to_dataframe(records: Iterable[ExpenseRecord]) -> pd.DataFrame:
    """Convert records to a DataFrame with one row per expense.

    Amounts become floats and timestamps pandas datetimes. An empty input gives an empty
    frame with the expected columns.
    """
    rows = [
        {
            'id': r.id,
            'owner': r.owner,
            'amount': float(r.amount),
            'currency': r.currency,
            'category': r.category_enum.name,
            'description': r.description,
            'location': r.location,
            'latitude': r.latitude,
            'longitude': r.longitude,
            'timestamp': r.timestamp,
            'created_at': r.created_at,
        }
        for r in records
    ]
    if not rows:
        return pd.DataFrame(columns=EXPENSE_DATA_COLUMNS)

    df = pd.DataFrame(rows, columns=EXPENSE_DATA_COLUMNS)
    df['timestamp'] = pd.to_datetime(df['timestamp'], utc=True, errors='coerce')
    return df


def _calculate_weights(df: pd.DataFrame, min_weight: float = 0.02) -> pd.DataFrame:
    """Assign each category a 0..1 weight relative to the largest total.

    Non-zero totals get at least ``min_weight``.
    """
    max_val = df['total'].max() if not df.empty else 0

    def weight(row_total: float) -> float:
        if not max_val:
            return 0.0
        w = max(0.0, min(row_total / max_val, 1.0))
        if row_total != 0:
            w = max(w, min_weight)
        return w

    df['weight'] = df['total'].apply(weight)
    return df


def get_category_summary(records: Iterable[ExpenseRecord], hide_empty_categories: bool = True,
                         min_weight: float = 0.02) -> pd.DataFrame:
    """Aggregate expenses per category.

    Args:
        records: The expenses to summarize.
        hide_empty_categories: Leave out categories without expenses.
        min_weight: Minimum weight of a category with a non-zero total.

    Returns:
        pd.DataFrame: Columns ``category``, ``display_name``, ``color``, ``total``,
            ``transactions`` and ``weight``, ordered by total, largest first.
    """
    df = to_dataframe(records)

    if df.empty:
        logging.debug('No expenses to summarize.')
        summary = pd.DataFrame(columns=SUMMARY_COLUMNS)
    else:
        summary = (
            df.groupby('category')
            .agg(total=('amount', 'sum'), transactions=('id', 'count'))
            .reset_index()
        )

    if not hide_empty_categories:
        missing = [c.name for c in Category if c.name not in summary['category'].values]
        if missing:
            summary = pd.concat(
                [summary, pd.DataFrame({'category': missing, 'total': 0.0, 'transactions': 0})],
                ignore_index=True,
            )

    summary['display_name'] = summary['category'].apply(lambda x: Category.from_name(x).display_name)
    summary['color'] = summary['category'].apply(lambda x: Category.from_name(x).color)
    summary['total'] = summary['total'].astype(float)
    summary['transactions'] = summary['transactions'].astype(int)

    # Ties keep the category declaration order
    order = [c.name for c in Category]
    summary['__order'] = summary['category'].apply(order.index)
    summary = (
        summary.sort_values(['total', '__order'], ascending=[False, True])
        .drop(columns='__order')
        .reset_index(drop=True)
    )

    summary = _calculate_weights(summary, min_weight=min_weight)
    return summary[SUMMARY_COLUMNS]
