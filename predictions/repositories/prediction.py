import logging

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import DESCENDING

log = logging.getLogger("predictions")

LATEST_SORT = [("createdAt", DESCENDING), ("_id", DESCENDING)]


class PredictionRepository:
    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(LATEST_SORT, name="createdAt_desc")

    async def insert(self, document: dict) -> dict:
        document = dict(document)
        result = await self.collection.insert_one(document)
        document["_id"] = result.inserted_id
        log.debug(f"Prediction inserted: _id={result.inserted_id}")
        return document

    async def find_latest(self, limit: int) -> list[dict]:
        cursor = self.collection.find().sort(LATEST_SORT).limit(limit)
        return await cursor.to_list(length=limit)

    async def delete_all(self) -> int:
        result = await self.collection.delete_many({})
        log.info(f"Predictions deleted: count={result.deleted_count}")
        return result.deleted_count


def make_prediction_repository(
    collection: AsyncIOMotorCollection,
) -> PredictionRepository:
    return PredictionRepository(collection)
