import logging

from pymongo import ASCENDING, MongoClient
from pymongo.errors import ConfigurationError

logger = logging.getLogger(__name__)

_client = None
_db = None


def init_mongo(app, client=None):
    """
    Connect to MongoDB and ensure indexes.

    A ready-made client (e.g. an in-memory one in tests) can be passed in
    instead of connecting to ``MONGO_URI``.
    """
    global _client, _db
    if client is not None:
        _client = client
        _db = _client[app.config["MONGO_DB_NAME"]]
    else:
        _client = MongoClient(app.config["MONGO_URI"])
        # get_default_database() extracts DB name from URI; fall back to MONGO_DB_NAME
        try:
            _db = _client.get_default_database()
        except ConfigurationError:
            _db = _client[app.config["MONGO_DB_NAME"]]

    _db.users.create_index([("username", ASCENDING)], unique=True)
    _db.users.create_index([("email", ASCENDING)], unique=True)
    _db.payments.create_index([("authority", ASCENDING)], unique=True)
    _db.expenses.create_index([("paid_by", ASCENDING)])
    _db.expenses.create_index([("participants", ASCENDING)])

    logger.info("[MongoDB] Connected to database: %s", _db.name)


# Proxy that always resolves to the current database
class _DBProxy:
    def __getattr__(self, name):
        if _db is None:
            raise RuntimeError("Database not initialized. Call init_mongo first.")
        return getattr(_db, name)

    def __getitem__(self, name):
        if _db is None:
            raise RuntimeError("Database not initialized. Call init_mongo first.")
        return _db[name]

    def __bool__(self):
        return _db is not None


db = _DBProxy()
