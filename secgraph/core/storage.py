import logging
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from pymongo import MongoClient, IndexModel, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError
from secgraph.core.config import Settings

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MongoStorage:
    def __init__(self, db: Database, collection_name: str):
        self.db = db
        self.collection: Collection = self.db[collection_name]
        self._setup_indexes()

    def _setup_indexes(self):
        pass

    def _to_document(self, result: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if result:
            result["id"] = str(result["_id"])
            del result["_id"]
        return result

    def find_one(self, filter_dict: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._to_document(self.collection.find_one(filter_dict))

    def find_many(self, filter_dict: Dict[str, Any], sort: Optional[List] = None,
                  limit: int = 0) -> List[Dict[str, Any]]:
        cursor = self.collection.find(filter_dict)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return [self._to_document(result) for result in cursor]

    def delete_one(self, filter_dict: Dict[str, Any]) -> bool:
        result = self.collection.delete_one(filter_dict)
        return result.deleted_count > 0


class GraphVisualizationStorage(MongoStorage):
    """Stored graphs in their bucketed storage shape, one per (message_id, chat_id)."""

    def __init__(self, db: Database, collection_name: str = "graph_visualizations"):
        super().__init__(db, collection_name)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GraphVisualizationStorage":
        client = MongoClient(settings.mongodb_uri)
        return cls(client[settings.database_name], settings.graph_collection)

    def _setup_indexes(self):
        indexes = [
            IndexModel([("message_id", 1), ("chat_id", 1)], unique=True),
            IndexModel([("chat_id", 1), ("date_created", DESCENDING)]),
            IndexModel([("date_created", DESCENDING)]),
        ]
        try:
            self.collection.create_indexes(indexes)
        except PyMongoError as e:
            logger.warning("Could not create graph visualization indexes: %s", e)

    def upsert_graph(self, message_id: str, chat_id: str,
                     graph_visualization: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace the stored graph for a message. Returns the stored document."""
        now = utcnow()
        result = self.collection.find_one_and_update(
            {"message_id": message_id, "chat_id": chat_id},
            {
                "$set": {"graph_visualization": graph_visualization, "date_modified": now},
                "$setOnInsert": {"message_id": message_id, "chat_id": chat_id, "date_created": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return self._to_document(result)

    def find_by_message(self, message_id: str, chat_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        filter_dict = {"message_id": message_id}
        if chat_id:
            filter_dict["chat_id"] = chat_id
        return self.find_one(filter_dict)

    def find_by_chat_id(self, chat_id: str) -> List[Dict[str, Any]]:
        return self.find_many({"chat_id": chat_id}, sort=[("date_created", DESCENDING)])

    def find_recent(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self.find_many({}, sort=[("date_created", DESCENDING)], limit=limit)

    def delete_by_message(self, message_id: str, chat_id: Optional[str] = None) -> bool:
        filter_dict = {"message_id": message_id}
        if chat_id:
            filter_dict["chat_id"] = chat_id
        return self.delete_one(filter_dict)

    def close(self):
        self.db.client.close()
