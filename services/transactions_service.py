"""Service layer for persisting transaction records."""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Union
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection # Type hint for collection
from pydantic import ValidationError
from models.transaction import Transaction, TransactionIn, utc_now
from services.errors import StoreError, TransactionValidationError

logger = logging.getLogger(__name__)

RecordInput = Union[TransactionIn, Mapping[str, Any]]


def describe_validation_error(error: ValidationError) -> str:
    """Flattens a pydantic error into 'field: message; field: message'."""
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "record"
        parts.append(f"{location}: {err.get('msg')}")
    return "; ".join(parts)


def _validate(record: RecordInput) -> TransactionIn:
    if isinstance(record, TransactionIn):
        return record
    try:
        return TransactionIn.model_validate(record)
    except ValidationError as e:
        raise TransactionValidationError(describe_validation_error(e)) from e


def _to_document(model: TransactionIn) -> Dict[str, Any]:
    # Ids are assigned here rather than by the driver so a failed bulk insert knows what to undo
    document = model.model_dump()
    document["_id"] = ObjectId()
    document["type"] = model.type.value
    document["date"] = model.date or utc_now()
    return document


def _from_document(document: Mapping[str, Any]) -> Transaction:
    data = dict(document)
    if "_id" in data:
        data["id"] = str(data.pop("_id"))
    return Transaction(**data)


# --- Database Interaction Functions (Depend on collection passed from route) ---

async def create_transaction(collection: AsyncIOMotorCollection, record: RecordInput) -> Transaction:
    """Validates a single record, assigns its id and default date, and stores it."""
    model = _validate(record)
    document = _to_document(model)
    try:
        await collection.insert_one(document)
    except Exception as e:
        logger.error(f"Database error saving transaction: {e}")
        raise StoreError(f"Database error saving transaction: {e}")
    stored = _from_document(document)
    logger.info(f"New transaction saved: {stored.id} ({stored.type.value} {stored.amount} '{stored.text}')")
    return stored


async def bulk_create_transactions(
    collection: AsyncIOMotorCollection,
    records: Iterable[RecordInput]
) -> List[Transaction]:
    """
    Stores a batch of records, all or nothing.

    - Every record is validated before anything is written; the first invalid one
      aborts the call with a TransactionValidationError naming its index.
    - The insert is ordered. If the database fails part way, the documents this call
      already inserted are deleted again and a StoreError is raised.
    - An empty batch is a no-op and never reaches the database.
    """
    records = list(records)
    if not records:
        logger.info("Bulk create called with no records. Nothing to insert.")
        return []

    models = []
    for item_index, record in enumerate(records):
        try:
            models.append(_validate(record))
        except TransactionValidationError as e:
            logger.warning(f"Rejecting bulk insert: item #{item_index} is invalid: {e}")
            raise TransactionValidationError(f"Item #{item_index}: {e}") from e

    documents = [_to_document(model) for model in models]
    logger.info(f"Attempting bulk insert of {len(documents)} transactions into '{collection.name}'.")
    try:
        await collection.insert_many(documents, ordered=True)
    except Exception as e:
        logger.error(f"Database error during bulk insert: {e}")
        await _roll_back(collection, [doc["_id"] for doc in documents])
        raise StoreError(f"Database error during bulk insert: {e}")

    logger.info(f"Imported {len(documents)} transactions.")
    return [_from_document(doc) for doc in documents]


async def _roll_back(collection: AsyncIOMotorCollection, ids: List[ObjectId]) -> None:
    try:
        result = await collection.delete_many({"_id": {"$in": ids}})
        logger.warning(f"Rolled back {result.deleted_count} partially inserted transactions.")
    except Exception as e:
        logger.exception(f"Rollback after failed bulk insert also failed; up to {len(ids)} documents may remain: {e}")


async def list_transactions(collection: AsyncIOMotorCollection) -> List[Transaction]:
    """Fetches every stored transaction in store order."""
    logger.info(f"Fetching all transactions from collection '{collection.name}'...")
    transactions = []
    try:
        async for doc in collection.find():
            try:
                transactions.append(_from_document(doc))
            except ValidationError as e:
                logger.error(f"Data validation error for document ID {doc.get('_id', 'N/A')}: {e}")
                # Skip invalid documents
                continue
    except Exception as e:
        logger.error(f"Database error fetching transactions: {e}")
        raise StoreError(f"Database error fetching transactions: {e}")
    logger.info(f"Fetched {len(transactions)} transactions successfully.")
    return transactions


async def delete_all_transactions(collection: AsyncIOMotorCollection) -> int:
    """Deletes every document in the collection. Returns how many were removed."""
    logger.warning(f"Attempting to delete ALL documents from collection '{collection.name}'.")
    try:
        result = await collection.delete_many({})
    except Exception as e:
        logger.error(f"Database error during delete_many operation: {e}")
        raise StoreError(f"Database error deleting transactions: {e}")
    logger.info(f"Successfully deleted {result.deleted_count} documents from collection '{collection.name}'.")
    return result.deleted_count
