"""Wires the stores, identity provider and controllers from the user settings.

The ``preferences.backend`` setting selects between Cloud Firestore with Firebase
authentication and the in-process ``memory`` backend.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from .auth import AuthRepository, FirebaseAuthProvider, IdentityProvider, MemoryAuthProvider
from .expenses import ExpenseController
from .firestore import FirestoreStore
from .location import Geocoder, LocationService, NominatimGeocoder, StaticLocationProvider
from .repository import ExpenseRepository
from .session import SessionController
from .store import DocumentStore, MemoryStore
from ..settings import lib
from ..status import status


@dataclass
class Controllers:
    session: SessionController
    expenses: ExpenseController
    store: DocumentStore
    provider: IdentityProvider

    def close(self) -> None:
        self.expenses.close()
        if isinstance(self.store, FirestoreStore):
            self.store.close()


def create_backend(backend: Optional[str] = None) -> Tuple[DocumentStore, IdentityProvider]:
    """Create the document store and identity provider for ``backend``.

    Args:
        backend: ``'firestore'`` or ``'memory'``. Defaults to the configured backend.

    Raises:
        status.ConfigInvalidException: If the backend is unknown or Firebase isn't configured.
    """
    backend = backend or lib.settings['backend']
    logging.debug(f'Creating "{backend}" backend')

    if backend == 'memory':
        return MemoryStore(), MemoryAuthProvider()

    if backend != 'firestore':
        raise status.ConfigInvalidException(f'Unknown backend "{backend}".')

    config = lib.settings.get_section('firebase')
    if not config.get('api_key'):
        raise status.ConfigInvalidException('The Firebase api key is not set.')

    provider = FirebaseAuthProvider(config['api_key'], lib.settings.creds_path)
    store = FirestoreStore(
        config['project_id'],
        provider.id_token,
        database=config.get('database') or '(default)',
        poll_interval=float(lib.settings['poll_interval']),
    )
    return store, provider


def create_controllers(backend: Optional[str] = None, geocoder: Optional[Geocoder] = None) -> Controllers:
    """Create the session and expense controllers sharing one store and identity provider."""
    store, provider = create_backend(backend)

    location_service = LocationService(
        StaticLocationProvider.from_settings(),
        geocoder if geocoder is not None else NominatimGeocoder(),
    )

    session = SessionController(AuthRepository(provider, store))
    expenses = ExpenseController(ExpenseRepository(store, provider), location_service)
    return Controllers(session=session, expenses=expenses, store=store, provider=provider)
