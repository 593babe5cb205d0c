"""Expense categories and the keyword based category classifier.

:func:`classify` guesses a category from a free-text description. Keywords are matched as
lower-cased substrings, and categories are tried in their declaration order, so the first
category with a matching keyword wins::

    >>> classify("Lunch at McDonald's")
    <Category.FOOD: ('Food & Dining', '#FF6F00')>
    >>> classify('')
    <Category.OTHER: ('Other', '#000000')>

"""
import enum
from typing import Dict, Tuple


class Category(enum.Enum):
    """Expense categories in classification priority order, with display name and color."""
    FOOD = ('Food & Dining', '#FF6F00')
    SHOPPING = ('Shopping', '#E91E63')
    BILLS = ('Bills & Utilities', '#757575')
    ENTERTAINMENT = ('Entertainment', '#9C27B0')
    TRANSPORT = ('Transportation', '#1976D2')
    EDUCATION = ('Education', '#3F51B5')
    HEALTHCARE = ('Healthcare', '#F44336')
    TRAVEL = ('Travel', '#00BCD4')
    OTHER = ('Other', '#000000')

    def __init__(self, display_name: str, color: str) -> None:
        self.display_name = display_name
        self.color = color

    @classmethod
    def from_name(cls, name: str) -> 'Category':
        """Return the category stored under ``name``, or the catch-all for unrecognized names."""
        try:
            return cls[name]
        except (KeyError, TypeError):
            return CATCH_ALL


CATCH_ALL: Category = Category.OTHER

KEYWORDS: Dict[Category, Tuple[str, ...]] = {
    Category.FOOD: ('food', 'restaurant', 'lunch', 'dinner', 'breakfast', 'cafe', 'pizza', 'burger'),
    Category.SHOPPING: ('shop', 'store', 'mall', 'amazon', 'flipkart', 'clothes'),
    Category.BILLS: ('electric', 'water', 'internet', 'phone', 'wifi', 'bill'),
    Category.ENTERTAINMENT: ('movie', 'concert', 'game', 'netflix', 'spotify', 'cinema'),
    Category.TRANSPORT: ('uber', 'taxi', 'gas', 'fuel', 'bus', 'train', 'metro', 'petrol'),
    Category.EDUCATION: ('school', 'course', 'book', 'tuition', 'fee', 'college'),
    Category.HEALTHCARE: ('doctor', 'hospital', 'medicine', 'pharmacy', 'clinic', 'medical'),
    Category.TRAVEL: ('flight', 'hotel', 'vacation', 'trip', 'tour', 'airbnb'),
}


def classify(description: str) -> Category:
    """Guess the category of an expense from its description.

    Args:
        description (str): Free text, may be empty.

    Returns:
        Category: The first category, in declaration order, with a keyword contained in
        the description, or :data:`CATCH_ALL` when none matches.
    """
    text = (description or '').lower()
    for category in Category:
        keywords = KEYWORDS.get(category, ())
        if any(keyword in text for keyword in keywords):
            return category
    return CATCH_ALL
