"""User profile document mirrored into the ``users`` collection at sign-up."""
from dataclasses import dataclass, field
from typing import Any, Dict

from .currency import DEFAULT_CURRENCY
from .expense import now_ms

COLLECTION: str = 'users'


@dataclass(frozen=True)
class UserProfile:
    uid: str = ''
    email: str = ''
    display_name: str = ''
    photo_url: str = ''
    currency: str = DEFAULT_CURRENCY.code
    created_at: int = field(default_factory=now_ms)

    def to_storage_map(self) -> Dict[str, Any]:
        return {
            'uniqueID': self.uid,
            'email': self.email,
            'displayName': self.display_name,
            'photoURL': self.photo_url,
            'currency': self.currency,
            'createdAt': self.created_at,
        }

    @classmethod
    def from_storage_map(cls, data: Dict[str, Any]) -> 'UserProfile':
        return cls(
            uid=data.get('uniqueID') or '',
            email=data.get('email') or '',
            display_name=data.get('displayName') or '',
            photo_url=data.get('photoURL') or '',
            currency=data.get('currency') or DEFAULT_CURRENCY.code,
            created_at=int(data.get('createdAt') or 0),
        )
