"""Realtime document store client abstraction.

The whole application state lives in one hierarchical JSON document
(branches, menu, orders, settings...). Every backend exposes the same three
primitives:

- ``read_all()``: the entire document.
- ``replace_subtree(path, value)``: overwrite everything under ``path``.
  This is a replace, never a merge. Two clients that read the same
  collection, modify it independently and write it back will lose one of
  the two updates (last write wins). There is no compare-and-swap.
- ``subscribe(callback)``: the callback receives the full document once on
  attach and again after every accepted write, in write order.

Like the hosted Realtime Database, the local backends do not keep empty
containers or nulls: writing ``[]`` to ``orders`` removes the node entirely.
Consumers must go through the sanitizer in ``sync_service`` rather than
trusting the raw shape.
"""

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import firebase_admin
from firebase_admin import credentials as fb_credentials
from firebase_admin import db as firebase_db
from firebase_admin.exceptions import FirebaseError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tableorder.core.config import Settings
from tableorder.core.errors import StoreError
from tableorder.db.base import Base
from tableorder.models.document import StoreNode

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
PushCallback = Callable[[Document], None]


def split_path(path: str) -> List[str]:
    """Split ``/orders/3`` into ``["orders", "3"]``; the root is ``[]``."""
    return [part for part in (path or "").strip("/").split("/") if part]


def prune_empty(value: Any) -> Any:
    """Drop nulls and empty containers the way the hosted store does."""
    if isinstance(value, dict):
        pruned = {str(k): prune_empty(v) for k, v in value.items()}
        pruned = {k: v for k, v in pruned.items() if v is not None}
        return pruned or None
    if isinstance(value, (list, tuple)):
        pruned = [prune_empty(v) for v in value]
        if all(v is None for v in pruned):
            return None
        return pruned
    return value


def to_wire(value: Any) -> Any:
    """JSON round-trip so stored values never alias caller objects."""
    try:
        return prune_empty(json.loads(json.dumps(value)))
    except (TypeError, ValueError) as e:
        raise StoreError(f"Value is not JSON serializable: {e}") from e


def get_in(document: Any, parts: List[str]) -> Any:
    node = document
    for part in parts:
        if isinstance(node, dict):
            node = node.get(part)
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            return None
    return node


def set_in(document: Document, parts: List[str], value: Any) -> Document:
    """Return ``document`` with ``value`` placed at ``parts`` (None deletes)."""
    if not parts:
        return value if isinstance(value, dict) else {}

    head, rest = parts[0], parts[1:]
    if isinstance(document, list):
        document = {str(i): v for i, v in enumerate(document) if v is not None}
    document = dict(document or {})

    if rest:
        child = set_in(document.get(head) or {}, rest, value)
        value = child if child else None
    if value is None:
        document.pop(head, None)
    else:
        document[head] = value
    return document


class DocumentStore(ABC):
    """Base class for store backends; owns the subscriber list."""

    def __init__(self):
        self._subscribers: List[PushCallback] = []
        self._subscribers_lock = threading.RLock()

    @abstractmethod
    def read_all(self) -> Document:
        """Read the entire document."""

    @abstractmethod
    def replace_subtree(self, path: str, value: Any) -> None:
        """Overwrite ``path`` with ``value`` (whole-subtree replace, last write wins)."""

    def subscribe(self, callback: PushCallback) -> Callable[[], None]:
        """Register ``callback`` for full-document pushes. Returns an unsubscribe function."""
        with self._subscribers_lock:
            self._subscribers.append(callback)
        self._on_subscribe(callback)

        def unsubscribe() -> None:
            with self._subscribers_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)
                remaining = len(self._subscribers)
            if remaining == 0:
                self._on_last_unsubscribe()

        return unsubscribe

    def _on_subscribe(self, callback: PushCallback) -> None:
        callback(self.read_all())

    def _on_last_unsubscribe(self) -> None:
        pass

    def _publish(self, document: Document) -> None:
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(copy.deepcopy(document))
            except Exception:
                # One broken client must not stop delivery to the others
                logger.exception("Store subscriber raised while handling a push")

    @property
    def subscriber_count(self) -> int:
        with self._subscribers_lock:
            return len(self._subscribers)


class InMemoryDocumentStore(DocumentStore):
    """Process-local store.

    With ``defer_pushes=True`` writes are applied immediately but pushes are
    queued until ``flush_pushes()``. This reproduces a client that writes
    from a snapshot which is already stale on the server.
    """

    def __init__(self, initial: Optional[Document] = None, defer_pushes: bool = False):
        super().__init__()
        self._lock = threading.RLock()
        self._document: Document = to_wire(initial or {}) or {}
        self._defer_pushes = defer_pushes
        self._pending: List[Document] = []

    def read_all(self) -> Document:
        with self._lock:
            return copy.deepcopy(self._document)

    def replace_subtree(self, path: str, value: Any) -> None:
        parts = split_path(path)
        wire_value = to_wire(value)
        with self._lock:
            self._document = set_in(self._document, parts, wire_value)
            snapshot = copy.deepcopy(self._document)
            if self._defer_pushes:
                self._pending.append(snapshot)
                logger.debug(f"Store write to '/{'/'.join(parts)}' queued ({len(self._pending)} pending)")
                return
        logger.debug(f"Store write to '/{'/'.join(parts)}'")
        self._publish(snapshot)

    def flush_pushes(self) -> int:
        """Deliver queued pushes in write order. Returns how many were delivered."""
        with self._lock:
            pending, self._pending = self._pending, []
        for document in pending:
            self._publish(document)
        return len(pending)

    @property
    def pending_pushes(self) -> int:
        with self._lock:
            return len(self._pending)


class SqlDocumentStore(DocumentStore):
    """Document store persisted through SQLAlchemy, one row per top-level path."""

    def __init__(self, session_factory: sessionmaker):
        super().__init__()
        self._session_factory = session_factory
        self._write_lock = threading.Lock()

    def create_schema(self) -> None:
        Base.metadata.create_all(bind=self._session_factory.kw["bind"])

    def _read(self, db: Session) -> Document:
        document: Document = {}
        for node in db.execute(select(StoreNode)).scalars():
            try:
                document[node.path] = json.loads(node.value)
            except ValueError:
                logger.warning(f"Skipping undecodable store node '{node.path}'")
        return document

    def read_all(self) -> Document:
        try:
            with self._session_factory() as db:
                return self._read(db)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read document: {e}") from e

    def replace_subtree(self, path: str, value: Any) -> None:
        parts = split_path(path)
        wire_value = to_wire(value)

        with self._write_lock:
            try:
                with self._session_factory() as db:
                    if not parts:
                        db.execute(delete(StoreNode))
                        for key, subtree in (wire_value or {}).items():
                            db.add(StoreNode(path=key, value=json.dumps(subtree)))
                    else:
                        top = parts[0]
                        node = db.get(StoreNode, top)
                        if len(parts) > 1:
                            current = json.loads(node.value) if node else None
                            subtree = set_in(current or {}, parts[1:], wire_value) or None
                        else:
                            subtree = wire_value

                        if subtree is None:
                            if node is not None:
                                db.delete(node)
                        elif node is None:
                            db.add(StoreNode(path=top, value=json.dumps(subtree)))
                        else:
                            node.value = json.dumps(subtree)
                    db.commit()
                    document = self._read(db)
            except SQLAlchemyError as e:
                raise StoreError(f"Failed to write '/{'/'.join(parts)}': {e}", path=path) from e

        logger.debug(f"Store write to '/{'/'.join(parts)}'")
        self._publish(document)


class FirebaseDocumentStore(DocumentStore):
    """Hosted Firebase Realtime Database backend.

    Pushes are driven by the Admin SDK listener, which delivers ``put`` and
    ``patch`` events relative to the root. A local copy of the document is
    kept up to date from those events so every subscriber always receives
    the full document.
    """

    def __init__(self, database_url: str, credentials_path: Optional[str] = None,
                 app_name: str = "tableorder"):
        super().__init__()
        if credentials_path:
            cred = fb_credentials.Certificate(credentials_path)
        else:
            cred = fb_credentials.ApplicationDefault()
        try:
            self._app = firebase_admin.get_app(app_name)
        except ValueError:
            self._app = firebase_admin.initialize_app(cred, {"databaseURL": database_url}, name=app_name)
        self._root = firebase_db.reference("/", app=self._app)
        self._cache: Optional[Document] = None
        self._cache_lock = threading.Lock()
        self._registration = None
        logger.info(f"Firebase document store attached to {database_url}")

    def read_all(self) -> Document:
        try:
            return self._root.get() or {}
        except (FirebaseError, ValueError) as e:
            raise StoreError(f"Failed to read document: {e}") from e

    def replace_subtree(self, path: str, value: Any) -> None:
        parts = split_path(path)
        ref = self._root.child("/".join(parts)) if parts else self._root
        try:
            ref.set(to_wire(value))
        except (FirebaseError, ValueError) as e:
            raise StoreError(f"Failed to write '/{'/'.join(parts)}': {e}", path=path) from e

    def _on_subscribe(self, callback: PushCallback) -> None:
        with self._cache_lock:
            cached = copy.deepcopy(self._cache) if self._cache is not None else None
            if self._registration is None:
                self._registration = self._root.listen(self._on_event)
                return
        if cached is not None:
            callback(cached)

    def _on_last_unsubscribe(self) -> None:
        with self._cache_lock:
            if self._registration is not None:
                self._registration.close()
                self._registration = None
                self._cache = None

    def _on_event(self, event) -> None:
        parts = split_path(event.path)
        with self._cache_lock:
            document = self._cache or {}
            if event.event_type == "put":
                document = set_in(document, parts, event.data)
            elif event.event_type == "patch":
                for key, subtree in (event.data or {}).items():
                    document = set_in(document, parts + split_path(key), subtree)
            else:
                logger.debug(f"Ignoring Firebase event type '{event.event_type}'")
                return
            self._cache = document
            snapshot = copy.deepcopy(document)
        self._publish(snapshot)


def create_store(config: Settings) -> DocumentStore:
    """Build the store backend selected in settings."""
    if config.store_backend == "memory":
        return InMemoryDocumentStore()

    if config.store_backend == "firebase":
        if not config.firebase_database_url:
            raise ValueError("FIREBASE_DATABASE_URL is required for the firebase store backend")
        return FirebaseDocumentStore(
            database_url=config.firebase_database_url,
            credentials_path=config.firebase_credentials_path,
        )

    from tableorder.db.session import SessionLocal, build_engine

    if config.database_url.startswith("sqlite:///") and not config.database_url.endswith(":memory:"):
        Path(config.database_url.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)

    session_factory = SessionLocal
    if config.database_url != str(SessionLocal.kw["bind"].url):
        session_factory = sessionmaker(autocommit=False, autoflush=False,
                                       bind=build_engine(config.database_url))
    store = SqlDocumentStore(session_factory)
    store.create_schema()
    return store
