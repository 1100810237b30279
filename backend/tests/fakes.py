"""
DocumentStore en mémoire pour les tests : mêmes contraintes d'unicité que les
index MongoDB, transactions annulables par tâche, flux de changements par file.
"""
import asyncio
import copy
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Callable, Optional

from core.exceptions import DuplicateKey, StoreUnavailable
from database import UNIQUE_KEYS, DocumentStore

# Journal d'annulation de la transaction en cours, propre à chaque tâche asyncio
_journal: ContextVar[Optional[list[Callable[[], None]]]] = ContextVar("fake_journal", default=None)


def _matches(document: dict, filters: dict) -> bool:
    for field, expected in filters.items():
        value = document.get(field)
        if isinstance(expected, dict) and "$in" in expected:
            if value not in expected["$in"]:
                return False
        elif isinstance(expected, dict) and "$nin" in expected:
            if value in expected["$nin"]:
                return False
        elif value != expected:
            return False
    return True


class InMemoryDocumentStore(DocumentStore):
    def __init__(self):
        self.collections: dict[str, list[dict]] = {}
        self._watchers: list[tuple[str, dict, asyncio.Queue]] = []
        self._failures: dict[str, int] = {}

    # ── Outils de test ────────────────────────────────────────────────────────
    def seed(self, collection: str, document: dict) -> dict:
        self._check_unique(collection, document)
        self.collections.setdefault(collection, []).append(copy.deepcopy(document))
        return document

    def all(self, collection: str) -> list[dict]:
        return copy.deepcopy(self.collections.get(collection, []))

    def fail_next_insert(self, collection: str) -> None:
        """La prochaine insertion dans `collection` lève StoreUnavailable."""
        self._failures[collection] = self._failures.get(collection, 0) + 1

    # ── Port DocumentStore ────────────────────────────────────────────────────
    def _check_unique(self, collection: str, document: dict, ignore: Optional[dict] = None) -> None:
        for keys in UNIQUE_KEYS.get(collection, []):
            values = tuple(document.get(key) for key in keys)
            if len(keys) == 1 and values[0] is None:
                continue
            for existing in self.collections.get(collection, []):
                if existing is ignore:
                    continue
                if tuple(existing.get(key) for key in keys) == values:
                    raise DuplicateKey(f"Valeur déjà utilisée : {collection}.{'+'.join(keys)}")

    def _notify(self, collection: str, document: dict) -> None:
        for watched, filters, queue in self._watchers:
            if watched == collection and _matches(document, filters):
                queue.put_nowait(copy.deepcopy(document))

    @staticmethod
    def _record(undo: Callable[[], None]) -> None:
        journal = _journal.get()
        if journal is not None:
            journal.append(undo)

    async def find_one(self, collection, filters):
        for document in self.collections.get(collection, []):
            if _matches(document, filters):
                return copy.deepcopy(document)
        return None

    async def find(self, collection, filters, sort=None, limit=None):
        results = [d for d in self.collections.get(collection, []) if _matches(d, filters)]
        for field, direction in reversed(sort or []):
            results.sort(
                key=lambda d: (d.get(field) is not None, d.get(field)),
                reverse=direction < 0,
            )
        if limit:
            results = results[:limit]
        return copy.deepcopy(results)

    async def insert_one(self, collection, document):
        if self._failures.get(collection):
            self._failures[collection] -= 1
            raise StoreUnavailable("Base de données indisponible")
        self._check_unique(collection, document)
        rows = self.collections.setdefault(collection, [])
        stored = copy.deepcopy(document)
        rows.append(stored)

        def undo():
            rows[:] = [row for row in rows if row is not stored]

        self._record(undo)
        self._notify(collection, document)

    async def update_one(self, collection, filters, fields):
        for document in self.collections.get(collection, []):
            if _matches(document, filters):
                self._check_unique(collection, {**document, **fields}, ignore=document)
                previous = copy.deepcopy(document)
                document.update(copy.deepcopy(fields))

                def undo(document=document, previous=previous):
                    document.clear()
                    document.update(previous)

                self._record(undo)
                self._notify(collection, document)
                return 1
        return 0

    @asynccontextmanager
    async def transaction(self):
        # Transactions imbriquées : le journal de la transaction englobante suffit
        if _journal.get() is not None:
            yield
            return

        journal: list[Callable[[], None]] = []
        token = _journal.set(journal)
        try:
            yield
        except BaseException:
            for undo in reversed(journal):
                undo()
            raise
        finally:
            _journal.reset(token)

    async def watch(self, collection, filters):
        queue: asyncio.Queue = asyncio.Queue()
        entry = (collection, filters, queue)
        self._watchers.append(entry)
        try:
            while True:
                yield await queue.get()
        finally:
            self._watchers.remove(entry)


class InterleavingDocumentStore(InMemoryDocumentStore):
    """Rend la main à la boucle après chaque lecture : les appels concurrents s'entrelacent."""

    async def find_one(self, collection, filters):
        document = await super().find_one(collection, filters)
        await asyncio.sleep(0)
        return document
