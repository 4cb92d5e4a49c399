from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from content_catalog.config import Settings


def get_mongo_client(settings: Settings) -> AsyncIOMotorClient:
    return AsyncIOMotorClient(settings.mongo_uri, tz_aware=True)


def get_mongo_db(client: AsyncIOMotorClient, settings: Settings) -> AsyncIOMotorDatabase:
    return client[settings.mongo_db]
