"""The expense record and its storage map codec.

Records are stored as flat key-value maps in the ``expenses`` collection. The document id is
assigned by the store and is never part of the map.
"""
import datetime
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from .category import CATCH_ALL, Category
from .currency import DEFAULT_CURRENCY, Currency
from ..core.store import SERVER_TIMESTAMP

COLLECTION: str = 'expenses'

FIELD_OWNER: str = 'userId'
FIELD_AMOUNT: str = 'amount'
FIELD_CURRENCY: str = 'currency'
FIELD_CATEGORY: str = 'category'
FIELD_DESCRIPTION: str = 'description'
FIELD_LOCATION: str = 'location'
FIELD_LATITUDE: str = 'latitude'
FIELD_LONGITUDE: str = 'longitude'
FIELD_TIMESTAMP: str = 'dateTime'
FIELD_RECEIPT_URL: str = 'receiptURL'
FIELD_CREATED_AT: str = 'createdAt'


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def to_decimal(value: Any) -> Decimal:
    """Convert a stored number to a Decimal, treating missing or malformed values as zero."""
    if value is None or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    try:
        # str() keeps 12.5 as Decimal('12.5') instead of its binary expansion
        return Decimal(str(value))
    except InvalidOperation:
        logging.warning(f'Invalid amount value "{value}", using 0.')
        return Decimal(0)


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logging.warning(f'Invalid coordinate value "{value}", ignoring.')
        return None


@dataclass(frozen=True)
class ExpenseRecord:
    """A single expense.

    Attributes:
        id: Store-assigned document id, empty until the record is created.
        owner: Id of the user who owns the record.
        amount: Non-negative amount spent.
        currency: ISO currency code.
        category: Name of a :class:`Category` member.
        description: Free text notes.
        location: Human readable address, empty when unknown.
        latitude: Optional latitude, set together with longitude.
        longitude: Optional longitude, set together with latitude.
        timestamp: Server-assigned creation time, None until the store resolves it.
        receipt_url: Optional reference to a receipt image.
        created_at: Client-assigned creation time in epoch milliseconds.
    """
    id: str = ''
    owner: str = ''
    amount: Decimal = Decimal(0)
    currency: str = DEFAULT_CURRENCY.code
    category: str = CATCH_ALL.name
    description: str = ''
    location: str = ''
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timestamp: Optional[datetime.datetime] = None
    receipt_url: Optional[str] = None
    created_at: int = field(default_factory=now_ms)

    @property
    def category_enum(self) -> Category:
        """The record's category, coercing unrecognized names to the catch-all."""
        return Category.from_name(self.category)

    @property
    def currency_enum(self) -> Currency:
        return Currency.from_code(self.currency)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_storage_map(self) -> Dict[str, Any]:
        """Serialize the record for the document store.

        The id is left out, and an unset timestamp is written as the server timestamp sentinel.

        Returns:
            dict: Field name to value mapping.
        """
        return {
            FIELD_OWNER: self.owner,
            FIELD_AMOUNT: float(self.amount),
            FIELD_CURRENCY: self.currency,
            FIELD_CATEGORY: self.category,
            FIELD_DESCRIPTION: self.description,
            FIELD_LOCATION: self.location,
            FIELD_LATITUDE: self.latitude,
            FIELD_LONGITUDE: self.longitude,
            FIELD_TIMESTAMP: self.timestamp if self.timestamp is not None else SERVER_TIMESTAMP,
            FIELD_RECEIPT_URL: self.receipt_url,
            FIELD_CREATED_AT: self.created_at,
        }

    @classmethod
    def from_storage_map(cls, data: Dict[str, Any], doc_id: str = '') -> 'ExpenseRecord':
        """Build a record from a stored map.

        Missing fields take their defaults and unrecognized categories become the catch-all.

        Args:
            data: The stored field map.
            doc_id: The document id assigned by the store.

        Returns:
            ExpenseRecord: The decoded record.
        """
        timestamp = data.get(FIELD_TIMESTAMP)
        if not isinstance(timestamp, datetime.datetime):
            timestamp = None

        created_at = data.get(FIELD_CREATED_AT)
        try:
            created_at = int(created_at) if created_at is not None else 0
        except (TypeError, ValueError):
            logging.warning(f'Invalid createdAt value "{created_at}" on expense "{doc_id}", using 0.')
            created_at = 0

        return cls(
            id=doc_id,
            owner=data.get(FIELD_OWNER) or '',
            amount=to_decimal(data.get(FIELD_AMOUNT)),
            currency=data.get(FIELD_CURRENCY) or DEFAULT_CURRENCY.code,
            category=Category.from_name(data.get(FIELD_CATEGORY)).name,
            description=data.get(FIELD_DESCRIPTION) or '',
            location=data.get(FIELD_LOCATION) or '',
            latitude=_to_float(data.get(FIELD_LATITUDE)),
            longitude=_to_float(data.get(FIELD_LONGITUDE)),
            timestamp=timestamp,
            receipt_url=data.get(FIELD_RECEIPT_URL),
            created_at=created_at,
        )
