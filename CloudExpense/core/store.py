"""Document store interface and the in-memory store.

The store is collection oriented: documents are flat maps addressed by a store-assigned id.
Besides the usual CRUD calls, :meth:`DocumentStore.listen` registers a live query that pushes
the full, ordered result set to a callback every time it changes, until the returned
:class:`ListenerRegistration` is removed.

:class:`MemoryStore` keeps everything in-process. It is used for the offline ``memory``
backend and by the test-suite.
"""
import abc
import copy
import datetime
import itertools
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence

from ..status import status


class _ServerTimestamp:
    """Sentinel asking the store to set a field to its own write time."""

    def __repr__(self) -> str:
        return 'SERVER_TIMESTAMP'

    def __deepcopy__(self, memo):
        return self


SERVER_TIMESTAMP = _ServerTimestamp()


class Filter(NamedTuple):
    """Equality filter on a document field."""
    field: str
    value: Any

    def matches(self, data: Dict[str, Any]) -> bool:
        return self.field in data and data[self.field] == self.value


class OrderBy(NamedTuple):
    field: str
    descending: bool = False


class Document(NamedTuple):
    id: str
    data: Dict[str, Any]


SnapshotCallback = Callable[[List[Document]], None]
ErrorCallback = Callable[[Exception], None]


class ListenerRegistration:
    """Handle returned by :meth:`DocumentStore.listen`. Removing it stops the live query."""

    def __init__(self, on_remove: Callable[[], None]) -> None:
        self._on_remove = on_remove
        self._removed = False

    @property
    def removed(self) -> bool:
        return self._removed

    def remove(self) -> None:
        """Stop the live query. Calling it more than once is a no-op."""
        if self._removed:
            return
        self._removed = True
        self._on_remove()


class DocumentStore(abc.ABC):
    """Interface of a collection oriented document store with live queries.

    Implementations raise :class:`status.StoreError` when the store fails, and
    :class:`status.NotFoundError` when updating a document that does not exist.
    """

    @abc.abstractmethod
    def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a new id and return the id."""

    @abc.abstractmethod
    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or replace the document ``doc_id``."""

    @abc.abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Return the document, or None when it does not exist."""

    @abc.abstractmethod
    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Overwrite the given fields of an existing document."""

    @abc.abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Remove a document. Removing a missing document is not an error."""

    @abc.abstractmethod
    def query(self, collection: str, filters: Sequence[Filter] = (),
              order_by: Optional[OrderBy] = None) -> List[Document]:
        """Return the documents matching all filters, sorted by ``order_by``."""

    @abc.abstractmethod
    def listen(self, collection: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback,
               filters: Sequence[Filter] = (), order_by: Optional[OrderBy] = None) -> ListenerRegistration:
        """Start a live query.

        ``on_snapshot`` receives the initial result set and then the full result set after
        every change. When the query fails ``on_error`` is called once and the listener stops.
        """


def sort_documents(documents: List[Document], order_by: Optional[OrderBy]) -> List[Document]:
    """Sort documents the way the live queries order them.

    Documents without the ordering field are left out. ``None`` sorts before any value.
    """
    if order_by is None:
        return documents
    present = [d for d in documents if order_by.field in d.data]
    return sorted(
        present,
        key=lambda d: (d.data[order_by.field] is not None, d.data[order_by.field]),
        reverse=order_by.descending,
    )


@dataclass
class _Listener:
    collection: str
    filters: Sequence[Filter]
    order_by: Optional[OrderBy]
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback
    last: Optional[List[Document]] = None


class MemoryStore(DocumentStore):
    """Thread-safe in-process document store.

    Server timestamps are resolved with ``clock``. Live queries are delivered synchronously
    on the thread performing the write.

    Args:
        clock: Callable returning the current aware datetime.
    """

    def __init__(self, clock: Optional[Callable[[], datetime.datetime]] = None) -> None:
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._listeners: Dict[int, _Listener] = {}
        self._listener_ids = itertools.count()
        self._clock = clock or (lambda: datetime.datetime.now(datetime.timezone.utc))

    @property
    def active_listener_count(self) -> int:
        """Number of live queries that have not been removed."""
        with self._lock:
            return len(self._listeners)

    def _resolve(self, data: Dict[str, Any]) -> Dict[str, Any]:
        now = self._clock()
        return {k: (now if v is SERVER_TIMESTAMP else copy.deepcopy(v)) for k, v in data.items()}

    def _documents(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        with self._lock:
            doc_id = uuid.uuid4().hex
            self._documents(collection)[doc_id] = self._resolve(data)
        logging.debug(f'Added document {collection}/{doc_id}')
        self._notify(collection)
        return doc_id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._documents(collection)[doc_id] = self._resolve(data)
        self._notify(collection)

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            data = self._documents(collection).get(doc_id)
            if data is None:
                return None
            return Document(doc_id, copy.deepcopy(data))

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            documents = self._documents(collection)
            if doc_id not in documents:
                raise status.NotFoundError(f'No document {collection}/{doc_id}.')
            documents[doc_id].update(self._resolve(data))
        self._notify(collection)

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._documents(collection).pop(doc_id, None)
        self._notify(collection)

    def query(self, collection: str, filters: Sequence[Filter] = (),
              order_by: Optional[OrderBy] = None) -> List[Document]:
        with self._lock:
            documents = [
                Document(doc_id, copy.deepcopy(data))
                for doc_id, data in self._documents(collection).items()
                if all(f.matches(data) for f in filters)
            ]
        return sort_documents(documents, order_by)

    def listen(self, collection: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback,
               filters: Sequence[Filter] = (), order_by: Optional[OrderBy] = None) -> ListenerRegistration:
        listener = _Listener(collection, tuple(filters), order_by, on_snapshot, on_error)
        with self._lock:
            listener_id = next(self._listener_ids)
            self._listeners[listener_id] = listener
        logging.debug(f'Listener {listener_id} registered on "{collection}"')

        registration = ListenerRegistration(lambda: self._remove_listener(listener_id))
        self._deliver(listener_id, listener)
        return registration

    def fail_listeners(self, error: Exception, collection: Optional[str] = None) -> None:
        """Terminate live queries with ``error``, as if the backend had dropped them.

        Args:
            error: Exception handed to each listener's error callback.
            collection: Only fail listeners of this collection. All listeners when None.
        """
        with self._lock:
            failed = {
                k: v for k, v in self._listeners.items()
                if collection is None or v.collection == collection
            }
            for k in failed:
                del self._listeners[k]
        for listener in failed.values():
            listener.on_error(error)

    def _remove_listener(self, listener_id: int) -> None:
        with self._lock:
            self._listeners.pop(listener_id, None)
        logging.debug(f'Listener {listener_id} removed')

    def _notify(self, collection: str) -> None:
        with self._lock:
            listeners = [(k, v) for k, v in self._listeners.items() if v.collection == collection]
        for listener_id, listener in listeners:
            self._deliver(listener_id, listener)

    def _deliver(self, listener_id: int, listener: _Listener) -> None:
        snapshot = self.query(listener.collection, listener.filters, listener.order_by)
        with self._lock:
            if listener_id not in self._listeners or snapshot == listener.last:
                return
            listener.last = snapshot
        listener.on_snapshot(copy.deepcopy(snapshot))
