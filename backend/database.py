"""
Accès aux données : port DocumentStore + implémentation MongoDB (Motor).

Les services reçoivent le store en paramètre ; les routers l'obtiennent via
`Depends(get_store)`, ce qui permet de le remplacer par un faux en mémoire dans
les tests.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import IndexModel
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import settings
from core.exceptions import DuplicateKey, StoreTimeout, StoreUnavailable

logger = logging.getLogger(__name__)

Sort = list[tuple[str, int]]

# Contraintes d'unicité partagées par l'implémentation Mongo et les faux de test
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    "missions":         [("mission_id",), ("mission_code",)],
    "mission_logs":     [("log_id",), ("mission_id", "sequence")],
    "document_reports": [("report_id",)],
    "security_levels":  [("level_id",)],
    "users":            [("user_id",), ("anonymous_code",)],
    "driver_profiles":  [("driver_id",), ("driver_code",)],
}


class DocumentStore(ABC):
    """Port de persistance document, transactionnel par document uniquement."""

    @abstractmethod
    async def find_one(self, collection: str, filters: dict) -> Optional[dict]:
        ...

    @abstractmethod
    async def find(
        self,
        collection: str,
        filters: dict,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        ...

    @abstractmethod
    async def insert_one(self, collection: str, document: dict) -> None:
        """Lève DuplicateKey si un index unique est violé."""

    @abstractmethod
    async def update_one(self, collection: str, filters: dict, fields: dict) -> int:
        """Mise à jour partielle ($set). Retourne le nombre de documents trouvés."""

    @abstractmethod
    def transaction(self):
        """Context manager asynchrone regroupant plusieurs écritures."""

    @abstractmethod
    def watch(self, collection: str, filters: dict) -> AsyncIterator[dict]:
        """Flux des documents insérés/modifiés correspondant aux filtres."""

    async def exists(self, collection: str, filters: dict) -> bool:
        return await self.find_one(collection, filters) is not None


_session: ContextVar[Any] = ContextVar("mongo_session", default=None)


class MongoDocumentStore(DocumentStore):
    def __init__(
        self,
        client: AsyncIOMotorClient,
        db_name: str,
        timeout_seconds: float = 8.0,
        use_transactions: bool = False,
    ):
        self._client = client
        self._db = client[db_name]
        self._timeout = timeout_seconds
        self._use_transactions = use_transactions

    async def _run(self, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error(f"MongoDB : délai dépassé ({self._timeout}s)")
            raise StoreTimeout("Base de données injoignable (délai dépassé)") from exc
        except DuplicateKeyError as exc:
            raise DuplicateKey("Valeur déjà utilisée (index unique)") from exc
        except PyMongoError as exc:
            logger.error(f"MongoDB : {exc}")
            raise StoreUnavailable("Base de données indisponible") from exc

    async def find_one(self, collection, filters):
        return await self._run(
            self._db[collection].find_one(filters, {"_id": 0}, session=_session.get())
        )

    async def find(self, collection, filters, sort=None, limit=None):
        cursor = self._db[collection].find(filters, {"_id": 0}, session=_session.get())
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return await self._run(cursor.to_list(length=limit))

    async def insert_one(self, collection, document):
        # insert_one ajoute `_id` au dict reçu : on passe une copie
        await self._run(
            self._db[collection].insert_one(dict(document), session=_session.get())
        )

    async def update_one(self, collection, filters, fields):
        result = await self._run(
            self._db[collection].update_one(filters, {"$set": fields}, session=_session.get())
        )
        return result.matched_count

    @asynccontextmanager
    async def transaction(self):
        # Transactions imbriquées : on réutilise la session courante
        if not self._use_transactions or _session.get() is not None:
            yield
            return
        async with await self._client.start_session() as session:
            async with session.start_transaction():
                token = _session.set(session)
                try:
                    yield
                finally:
                    _session.reset(token)

    async def watch(self, collection, filters):
        pipeline = [{"$match": {f"fullDocument.{k}": v for k, v in filters.items()}}]
        async with self._db[collection].watch(pipeline, full_document="updateLookup") as stream:
            async for change in stream:
                document = change.get("fullDocument")
                if document is None:
                    continue
                document.pop("_id", None)
                yield document


client: AsyncIOMotorClient = None
_store: Optional[MongoDocumentStore] = None


def get_store() -> DocumentStore:
    """Dépendance FastAPI."""
    if _store is None:
        raise RuntimeError("Database not connected. Call connect_db() first.")
    return _store


async def connect_db() -> DocumentStore:
    global client, _store
    client = AsyncIOMotorClient(
        settings.MONGO_URL,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=10000,
        tz_aware=True,
    )
    _store = MongoDocumentStore(
        client,
        settings.DB_NAME,
        timeout_seconds=settings.STORE_TIMEOUT_SECONDS,
        use_transactions=settings.MONGO_TRANSACTIONS,
    )
    logger.info(f"Connected to MongoDB: {settings.DB_NAME}")
    try:
        await create_indexes()
    except Exception as e:
        logger.warning(f"Could not create indexes (non-blocking): {e}")
    return _store


async def close_db():
    global client
    if client:
        client.close()
        logger.info("MongoDB connection closed")


async def create_indexes():
    collections_to_index = {
        name: [
            IndexModel([(field, 1) for field in fields], unique=True, sparse=len(fields) == 1)
            for fields in keys
        ]
        for name, keys in UNIQUE_KEYS.items()
    }
    collections_to_index["missions"] += [
        IndexModel([("client_id", 1), ("created_at", -1)]),
        IndexModel([("driver_id", 1), ("scheduled_for", -1)]),
        IndexModel([("status", 1)]),
    ]
    collections_to_index["mission_logs"].append(
        IndexModel([("mission_id", 1), ("timestamp", 1)]),
    )
    collections_to_index["document_reports"].append(
        IndexModel([("mission_id", 1), ("generated_at", -1)]),
    )

    db = client[settings.DB_NAME]
    for collection_name, index_models in collections_to_index.items():
        try:
            await db[collection_name].create_indexes(index_models)
            logger.info(f"Indexes created for collection: {collection_name}")
        except Exception as e:
            logger.error(f"Failed to create indexes for collection {collection_name}: {e}")

    logger.info("All MongoDB indexes creation attempts completed.")
