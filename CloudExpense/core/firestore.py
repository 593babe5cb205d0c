"""Cloud Firestore backed document store.

Talks to the Firestore v1 REST API through the Google API discovery client, authorised with the
signed-in user's id token. Field values are converted to and from Firestore's typed value maps,
:data:`~CloudExpense.core.store.SERVER_TIMESTAMP` fields are written as ``REQUEST_TIME``
transforms, and live queries are served by a background thread polling ``runQuery``.
"""
import datetime
import logging
import re
import secrets
import socket
import ssl
import string
import threading
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .store import (
    SERVER_TIMESTAMP, Document, DocumentStore, ErrorCallback, Filter, ListenerRegistration, OrderBy,
    SnapshotCallback, sort_documents
)
from ..status import status

AUTO_ID_ALPHABET: str = string.ascii_letters + string.digits
AUTO_ID_LENGTH: int = 20

DEFAULT_POLL_INTERVAL: float = 5.0

_SIMPLE_FIELD = re.compile(r'^[A-Za-z_][A-Za-z_0-9]*$')


def auto_id() -> str:
    """Return a random 20 character document id."""
    return ''.join(secrets.choice(AUTO_ID_ALPHABET) for _ in range(AUTO_ID_LENGTH))


def field_path(name: str) -> str:
    """Quote a field name for use in a field path when it isn't a plain identifier."""
    if _SIMPLE_FIELD.match(name):
        return name
    escaped = name.replace('\\', '\\\\').replace('`', '\\`')
    return f'`{escaped}`'


def _format_timestamp(value: datetime.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc).isoformat().replace('+00:00', 'Z')


def encode_value(value: Any) -> Dict[str, Any]:
    """Convert a Python value to a Firestore typed value.

    Raises:
        TypeError: If the value has no Firestore representation.
    """
    if value is None:
        return {'nullValue': None}
    # bool first, it is a subclass of int
    if isinstance(value, bool):
        return {'booleanValue': value}
    if isinstance(value, int):
        return {'integerValue': str(value)}
    if isinstance(value, (float, Decimal)):
        return {'doubleValue': float(value)}
    if isinstance(value, str):
        return {'stringValue': value}
    if isinstance(value, datetime.datetime):
        return {'timestampValue': _format_timestamp(value)}
    if isinstance(value, dict):
        return {'mapValue': {'fields': encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {'arrayValue': {'values': [encode_value(v) for v in value]}}
    raise TypeError(f'Cannot store value of type {type(value).__name__}')


def encode_fields(data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    return {k: encode_value(v) for k, v in data.items()}


def decode_value(value: Dict[str, Any]) -> Any:
    """Convert a Firestore typed value to a Python value."""
    if 'nullValue' in value:
        return None
    if 'booleanValue' in value:
        return bool(value['booleanValue'])
    if 'integerValue' in value:
        return int(value['integerValue'])
    if 'doubleValue' in value:
        return float(value['doubleValue'])
    if 'stringValue' in value:
        return value['stringValue']
    if 'timestampValue' in value:
        return datetime.datetime.fromisoformat(value['timestampValue'])
    if 'mapValue' in value:
        return decode_fields(value['mapValue'].get('fields', {}))
    if 'arrayValue' in value:
        return [decode_value(v) for v in value['arrayValue'].get('values', [])]
    if 'geoPointValue' in value:
        return dict(value['geoPointValue'])
    if 'referenceValue' in value:
        return value['referenceValue']
    if 'bytesValue' in value:
        return value['bytesValue']

    logging.warning(f'Unsupported Firestore value {value}, using None.')
    return None


def decode_fields(fields: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    return {k: decode_value(v) for k, v in fields.items()}


def decode_document(document: Dict[str, Any]) -> Document:
    doc_id = document['name'].rsplit('/', 1)[-1]
    return Document(doc_id, decode_fields(document.get('fields', {})))


def _split_server_timestamps(data: Dict[str, Any]) -> tuple:
    """Separate the sentinel fields from the plain ones.

    Returns:
        tuple: The fields to write and the ``REQUEST_TIME`` field transforms.
    """
    fields = {k: v for k, v in data.items() if v is not SERVER_TIMESTAMP}
    transforms = [
        {'fieldPath': field_path(k), 'setToServerValue': 'REQUEST_TIME'}
        for k, v in data.items() if v is SERVER_TIMESTAMP
    ]
    return fields, transforms


def _execute(request: Any, what: str) -> Any:
    """Execute an API request and translate its failures to store exceptions.

    Raises:
        status.NotFoundError: On HTTP 404.
        status.AuthorizationError: On HTTP 401 and 403.
        status.StoreError: On any other failure.
    """
    try:
        return request.execute()
    except HttpError as ex:
        stat: Optional[int] = ex.resp.status if ex.resp else None
        if stat == 404:
            raise status.NotFoundError(f'{what} not found (HTTP 404).') from ex
        elif stat in (401, 403):
            raise status.AuthorizationError(f'Access denied (HTTP {stat}) for {what}.') from ex
        else:
            raise status.StoreError(f'Error accessing {what}: {ex}') from ex
    except socket.timeout as ex:
        raise status.StoreError(f'Timeout error accessing {what}: {ex}') from ex
    except ssl.SSLError as ex:
        raise status.StoreError(f'SSL error accessing {what}: {ex}') from ex
    except Exception as ex:
        raise status.StoreError(f'Unexpected error accessing {what}: {ex}') from ex


class _PollingListener(threading.Thread):
    """Re-runs a query at a fixed interval and reports the result set when it changes."""

    def __init__(self, store: 'FirestoreStore', collection: str, filters: Sequence[Filter],
                 order_by: Optional[OrderBy], on_snapshot: SnapshotCallback, on_error: ErrorCallback,
                 interval: float, on_finished: Callable[['_PollingListener'], None]) -> None:
        super().__init__(name=f'FirestoreListener-{collection}', daemon=True)
        self.collection = collection
        self._store = store
        self._filters = tuple(filters)
        self._order_by = order_by
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._interval = interval
        self._on_finished = on_finished

        self._stopped = threading.Event()
        self._wake = threading.Event()
        self._last: Optional[List[Document]] = None

    def stop(self) -> None:
        self._stopped.set()
        self._wake.set()

    def wake(self) -> None:
        """Poll now instead of at the end of the interval."""
        self._wake.set()

    def run(self) -> None:
        try:
            while not self._stopped.is_set():
                try:
                    snapshot = self._store.query(self.collection, self._filters, self._order_by)
                except status.BaseStatusException as ex:
                    if not self._stopped.is_set():
                        self._on_error(ex)
                    return
                except Exception as ex:
                    if not self._stopped.is_set():
                        self._on_error(status.StoreError(f'Polling "{self.collection}" failed: {ex}'))
                    return

                if self._stopped.is_set():
                    return
                if snapshot != self._last:
                    self._last = snapshot
                    self._on_snapshot(snapshot)

                self._wake.wait(self._interval)
                self._wake.clear()
        finally:
            self._on_finished(self)


class FirestoreStore(DocumentStore):
    """Document store backed by Cloud Firestore.

    Args:
        project_id: The Firebase project id.
        token_source: Callable returning a valid id token for the signed-in user.
        database: The Firestore database id.
        poll_interval: Seconds between live query polls.
    """

    def __init__(self, project_id: str, token_source: Callable[[], str], database: str = '(default)',
                 poll_interval: float = DEFAULT_POLL_INTERVAL) -> None:
        if not project_id:
            raise status.ConfigInvalidException('The Firebase project id is not set.')

        self.project_id = project_id
        self.database = database
        self.poll_interval = poll_interval
        self._token_source = token_source

        self._local = threading.local()
        self._lock = threading.Lock()
        self._listeners: set = set()

    @property
    def database_path(self) -> str:
        return f'projects/{self.project_id}/databases/{self.database}'

    @property
    def documents_path(self) -> str:
        return f'{self.database_path}/documents'

    def document_name(self, collection: str, doc_id: str) -> str:
        return f'{self.documents_path}/{collection}/{doc_id}'

    @property
    def active_listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def _documents(self) -> Any:
        """Return the documents resource, building a client per thread and id token."""
        token = self._token_source()
        if getattr(self._local, 'token', None) != token:
            try:
                credentials = Credentials(token=token)
                self._local.service = build('firestore', 'v1', credentials=credentials, cache_discovery=False)
            except Exception as ex:
                raise status.StoreError(f'Could not create the Firestore client: {ex}') from ex
            self._local.token = token
            logging.debug('Firestore service client created successfully.')
        return self._local.service.projects().databases().documents()

    def _commit(self, write: Dict[str, Any], what: str) -> None:
        request = self._documents().commit(database=self.database_path, body={'writes': [write]})
        _execute(request, what)

    def _write(self, collection: str, doc_id: str, data: Dict[str, Any],
               precondition: Optional[Dict[str, Any]] = None, merge: bool = False) -> None:
        fields, transforms = _split_server_timestamps(data)
        write: Dict[str, Any] = {
            'update': {
                'name': self.document_name(collection, doc_id),
                'fields': encode_fields(fields),
            },
        }
        if transforms:
            write['updateTransforms'] = transforms
        if merge:
            write['updateMask'] = {'fieldPaths': [field_path(k) for k in fields]}
        if precondition:
            write['currentDocument'] = precondition

        self._commit(write, f'document "{collection}/{doc_id}"')
        self._wake_listeners(collection)

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = auto_id()
        self._write(collection, doc_id, data, precondition={'exists': False})
        logging.debug(f'Added document {collection}/{doc_id}')
        return doc_id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._write(collection, doc_id, data)

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        request = self._documents().get(name=self.document_name(collection, doc_id))
        try:
            document = _execute(request, f'document "{collection}/{doc_id}"')
        except status.NotFoundError:
            return None
        return decode_document(document)

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._write(collection, doc_id, data, precondition={'exists': True}, merge=True)

    def delete(self, collection: str, doc_id: str) -> None:
        request = self._documents().delete(name=self.document_name(collection, doc_id))
        _execute(request, f'document "{collection}/{doc_id}"')
        self._wake_listeners(collection)

    def query(self, collection: str, filters: Sequence[Filter] = (),
              order_by: Optional[OrderBy] = None) -> List[Document]:
        structured_query: Dict[str, Any] = {'from': [{'collectionId': collection}]}

        field_filters = [
            {'fieldFilter': {'field': {'fieldPath': field_path(f.field)}, 'op': 'EQUAL', 'value': encode_value(f.value)}}
            for f in filters
        ]
        if len(field_filters) == 1:
            structured_query['where'] = field_filters[0]
        elif field_filters:
            structured_query['where'] = {'compositeFilter': {'op': 'AND', 'filters': field_filters}}

        request = self._documents().runQuery(parent=self.documents_path, body={'structuredQuery': structured_query})
        response = _execute(request, f'collection "{collection}"')

        documents = [decode_document(r['document']) for r in response or [] if 'document' in r]
        # Sorted here so equality filters don't need a composite index
        return sort_documents(documents, order_by)

    def listen(self, collection: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback,
               filters: Sequence[Filter] = (), order_by: Optional[OrderBy] = None) -> ListenerRegistration:
        listener = _PollingListener(
            self, collection, filters, order_by, on_snapshot, on_error, self.poll_interval, self._discard_listener
        )
        with self._lock:
            self._listeners.add(listener)
        listener.start()
        logging.debug(f'Polling listener started on "{collection}"')
        return ListenerRegistration(listener.stop)

    def close(self) -> None:
        """Stop all live queries."""
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener.stop()

    def _discard_listener(self, listener: _PollingListener) -> None:
        with self._lock:
            self._listeners.discard(listener)
        logging.debug(f'Polling listener on "{listener.collection}" finished')

    def _wake_listeners(self, collection: str) -> None:
        with self._lock:
            listeners = [v for v in self._listeners if v.collection == collection]
        for listener in listeners:
            listener.wake()
