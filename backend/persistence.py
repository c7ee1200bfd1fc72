"""
Tracker record persistence.

MongoDB collection for tracker records, with an in-memory echo fallback
when no database is configured or reachable.

Layout:
    <database>.patient_trackers
        {patientId, procedureType, symptoms, notes, painLevel,
         medications, timestamp, followUpNeeded, warningSignsPresent}

Design:
- Both stores expose insert() and list_for_patient()
- The echo store never remembers anything (records are not queryable later)
- Indexes are created on connect; no schema enforcement beyond
  TrackerRecord.validate()
"""

import logging
from typing import Any, Dict, List, Optional

import pymongo
from pymongo.errors import PyMongoError

from backend.core.tracker_record import TrackerRecord
from backend.utils.helpers import generate_record_id
from backend.utils.retry import RetryExhausted, RetryPolicy

logger = logging.getLogger(__name__)

COLLECTION_NAME = "patient_trackers"

INDEXES = [
    [("patientId", pymongo.ASCENDING)],
    [("timestamp", pymongo.DESCENDING)],
    [("procedureType", pymongo.ASCENDING)],
    [("warningSignsPresent", pymongo.ASCENDING)],
]


class TrackerRepository:
    """
    MongoDB-backed tracker store.

    Args:
        collection: pymongo Collection (or a fake with the same methods)
        client: Owning MongoClient, closed by close()
    """

    persistent = True

    def __init__(self, collection, client=None):
        self.collection = collection
        self.client = client

    def ensure_indexes(self) -> None:
        """Create the query indexes. Failures are logged, not raised."""
        try:
            for keys in INDEXES:
                self.collection.create_index(keys)
            logger.info("Database indexes created successfully")
        except PyMongoError as e:
            logger.error(f"Failed to create database indexes: {e}")

    def insert(self, record: TrackerRecord) -> Dict[str, Any]:
        """
        Store a validated record.

        Returns:
            dict: Stored document including '_id'

        Raises:
            pymongo.errors.PyMongoError: On database failure
        """
        document = record.to_document()
        result = self.collection.insert_one(dict(document))
        document['_id'] = result.inserted_id
        logger.info(f"Tracker saved for patient {record.patient_id}: {result.inserted_id}")
        return document

    def list_for_patient(self, patient_id: str, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        """
        Newest-first page of a patient's records.

        Args:
            patient_id: Patient identifier
            limit: Max records (0 means no limit, as in MongoDB)
            offset: Records to skip

        Returns:
            list of stored documents
        """
        cursor = (
            self.collection
            .find({'patientId': patient_id})
            .sort('timestamp', pymongo.DESCENDING)
            .skip(offset)
            .limit(limit)
        )
        return list(cursor)

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("Database connection closed")


class EchoTrackerStore:
    """
    Fallback store used without a database.

    insert() returns the document with a generated id; nothing is kept.
    """

    persistent = False

    def insert(self, record: TrackerRecord) -> Dict[str, Any]:
        document = record.to_document()
        document['_id'] = generate_record_id()
        logger.info(f"Tracker saved (memory) for patient {record.patient_id}: {document['_id']}")
        return document

    def list_for_patient(self, patient_id: str, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        return []

    def close(self) -> None:
        pass


def connect_tracker_store(mongodb_uri: Optional[str], database_name: str = "aftercare_db",
                          retry_policy: Optional[RetryPolicy] = None,
                          client_factory=pymongo.MongoClient, **call_kwargs):
    """
    Connect to MongoDB, falling back to EchoTrackerStore.

    Args:
        mongodb_uri: Connection string (None disables the database)
        database_name: Database holding the tracker collection
        retry_policy: Backoff for the initial ping
        client_factory: Builds a MongoClient (injected in tests)
        **call_kwargs: Forwarded to RetryPolicy.call (sleep, clock)

    Returns:
        TrackerRepository or EchoTrackerStore
    """
    if not mongodb_uri:
        logger.info("MONGODB_URI not set (running without database)")
        return EchoTrackerStore()

    policy = retry_policy or RetryPolicy(max_attempts=1)
    logger.info("Connecting to MongoDB...")
    try:
        client = client_factory(
            mongodb_uri,
            maxPoolSize=10,
            serverSelectionTimeoutMS=5000,
            socketTimeoutMS=45000,
        )
    except PyMongoError as e:
        # Bad URI or unresolvable mongodb+srv host
        logger.warning(f"MongoDB client could not be created (running without database): {e}")
        return EchoTrackerStore()
    database = client[database_name]

    try:
        policy.call(
            lambda: database.command('ping'),
            retry_on=(PyMongoError,),
            description="MongoDB connect",
            **call_kwargs,
        )
    except RetryExhausted as e:
        logger.warning(f"MongoDB connection failed (running without database): {e.last_error}")
        client.close()
        return EchoTrackerStore()

    logger.info("Successfully connected to MongoDB")
    repository = TrackerRepository(database[COLLECTION_NAME], client=client)
    repository.ensure_indexes()
    return repository
