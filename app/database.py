import logging
from motor.motor_asyncio import AsyncIOMotorClient
from app.config import settings

logger = logging.getLogger(__name__)

client = None
db = None


async def connect_to_mongo():
    global client, db
    client = AsyncIOMotorClient(settings.MONGODB_URL)
    db = client[settings.MONGODB_DB_NAME]
    await ensure_indexes(db)
    logger.info("Connected to MongoDB database %s", settings.MONGODB_DB_NAME)


async def ensure_indexes(database):
    # User indexes
    await database.users.create_index("username", unique=True)
    await database.users.create_index("email", unique=True)

    # Video indexes
    await database.videos.create_index([("owner", 1), ("created_at", -1)])
    await database.videos.create_index([("is_published", 1), ("created_at", -1)])

    # Comment indexes
    await database.comments.create_index([("video", 1), ("created_at", -1)])

    # A like row targets exactly one of video/comment/tweet, so each pair is
    # only unique among rows carrying that target key
    for target in ("video", "comment", "tweet"):
        await database.likes.create_index(
            [("liked_by", 1), (target, 1)],
            unique=True,
            partialFilterExpression={target: {"$exists": True}},
        )

    # Subscription indexes
    await database.subscriptions.create_index([("subscriber", 1), ("channel", 1)], unique=True)
    await database.subscriptions.create_index("channel")

    # Playlist and tweet indexes
    await database.playlists.create_index("owner")
    await database.tweets.create_index([("owner", 1), ("created_at", -1)])


async def close_mongo_connection():
    global client
    if client:
        client.close()
        logger.info("MongoDB connection closed")


def get_database():
    return db
