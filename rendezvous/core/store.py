"""
store.py — Thin keyed-document store over a Motor collection.

Every service owns one or more DocCollections and never talks to Motor
directly. The wrapper adds two things on top of the raw driver:

  * date_created / date_updated timestamps on every write, so "most
    recently updated first" ordering is available everywhere
  * the atomic primitives the services build their race-free transitions
    on: find_one_and_update (conditional update) and pop_one
    (find-and-delete)

Filters and update documents are plain MongoDB syntax.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument

from rendezvous.core.errors import InvalidIdError

Sort = list[tuple[str, int]]

RECENT_FIRST: Sort = [("date_updated", -1), ("_id", -1)]


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def to_object_id(value: Any) -> ObjectId:
    """Parse a document id, raising InvalidIdError on garbage."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise InvalidIdError(id=value)


class DocCollection:
    def __init__(self, db, name: str) -> None:
        self.name = name
        self.collection = db[name]

    async def create_one(self, doc: dict) -> ObjectId:
        now = utcnow()
        doc = {**doc, "date_created": now, "date_updated": now}
        result = await self.collection.insert_one(doc)
        return result.inserted_id

    async def read_one(self, query: dict, sort: Optional[Sort] = None) -> Optional[dict]:
        if sort:
            return await self.collection.find_one(query, sort=sort)
        return await self.collection.find_one(query)

    async def read_many(
        self,
        query: dict,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        cursor = self.collection.find(query)
        if sort:
            cursor = cursor.sort(sort)
        if limit is not None:
            cursor = cursor.limit(limit)
        return [doc async for doc in cursor]

    async def count(self, query: dict) -> int:
        return await self.collection.count_documents(query)

    async def update_one(self, query: dict, patch: dict, upsert: bool = False) -> None:
        """Set the fields in *patch* on the first matching document."""
        await self.update_one_with_operators(query, {"$set": patch}, upsert=upsert)

    async def update_one_with_operators(self, query: dict, update: dict, upsert: bool = False) -> int:
        """Apply a raw operator update ($push, $pull, $inc, ...). Returns matched count."""
        result = await self.collection.update_one(query, self._stamp(update, upsert), upsert=upsert)
        return result.matched_count

    async def find_one_and_update(
        self,
        query: dict,
        update: dict,
        upsert: bool = False,
        return_new: bool = True,
    ) -> Optional[dict]:
        """
        Atomic conditional update.

        Returns the document after (or before, with return_new=False) the
        update, or None when nothing matched *query*. Callers encode their
        precondition in *query* so check and write are one round trip.
        """
        return await self.collection.find_one_and_update(
            query,
            self._stamp(update, upsert),
            upsert=upsert,
            return_document=ReturnDocument.AFTER if return_new else ReturnDocument.BEFORE,
        )

    async def delete_one(self, query: dict) -> int:
        result = await self.collection.delete_one(query)
        return result.deleted_count

    async def delete_many(self, query: dict) -> int:
        result = await self.collection.delete_many(query)
        return result.deleted_count

    async def pop_one(self, query: dict, sort: Optional[Sort] = None) -> Optional[dict]:
        """Atomically find and delete one document; None if nothing matched."""
        if sort:
            return await self.collection.find_one_and_delete(query, sort=sort)
        return await self.collection.find_one_and_delete(query)

    async def restore(self, doc: dict) -> None:
        """Re-insert a previously popped document unchanged (compensation)."""
        await self.collection.insert_one(doc)

    @staticmethod
    def _stamp(update: dict, upsert: bool) -> dict:
        now = utcnow()
        update = dict(update)
        update["$set"] = {**update.get("$set", {}), "date_updated": now}
        if upsert:
            update["$setOnInsert"] = {**update.get("$setOnInsert", {}), "date_created": now}
        return update
