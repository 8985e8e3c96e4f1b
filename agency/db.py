from pymongo import MongoClient
from pymongo.database import Database

from .config import MONGO_URI

# MongoClient connects lazily; importing this module does no I/O.
_client = MongoClient(MONGO_URI, tz_aware=True)
db: Database = _client.get_default_database()
