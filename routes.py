"""API Routes for transactions"""
from fastapi import APIRouter, UploadFile, File, HTTPException, Body, Depends, Request, Query
from typing import List, Annotated, Literal
from services import aggregation, transactions_service
from services.csv_import import parse_transactions_csv
from services.errors import ParseError, StoreError, TransactionValidationError
from models.transaction import DeleteResult, Transaction, TransactionIn, TransactionSummary
from motor.motor_asyncio import AsyncIOMotorCollection
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

# --- Dependency Function ---
def get_transactions_collection(request: Request) -> AsyncIOMotorCollection:
    """Dependency to get the MongoDB transactions collection from the application state."""
    collection = getattr(request.app.state, "transactions_collection", None)
    if collection is None:
        logger.error("Transactions collection not found in application state. Check MongoDB connection.")
        raise HTTPException(status_code=503, detail="Database service not available.")
    return collection

# Type hint for the dependency
TransactionsCollectionDep = Annotated[AsyncIOMotorCollection, Depends(get_transactions_collection)]

# --- API Routes ---

@router.get("/transactions", response_model=List[Transaction], summary="Get All Transactions", description="Retrieves every transaction record, unfiltered and unpaginated.")
async def get_transactions(
    collection: TransactionsCollectionDep,
    order: Literal["store", "recent"] = Query("store", description="'store' for insertion order, 'recent' for newest date first.")
) -> List[Transaction]:
    logger.info(f"GET /transactions endpoint called. Order: '{order}'")
    try:
        transactions = await transactions_service.list_transactions(collection)
    except StoreError as se:
        logger.error(f"Store error fetching transactions: {se}")
        raise HTTPException(status_code=500, detail=str(se))
    except Exception as e:
        logger.exception(f"Unexpected error fetching transactions: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    if order == "recent":
        return aggregation.recent_first(transactions)
    return transactions

@router.post("/transactions", response_model=Transaction, summary="Add Transaction")
async def add_transaction(collection: TransactionsCollectionDep, transaction: Annotated[TransactionIn, Body(...)]) -> Transaction:
    logger.info(f"POST /transactions endpoint called: {transaction.type.value} {transaction.amount} '{transaction.text}'")
    try:
        return await transactions_service.create_transaction(collection, transaction)
    except TransactionValidationError as ve:
        raise HTTPException(status_code=422, detail=str(ve))
    except StoreError as se:
        logger.error(f"Store error saving transaction: {se}")
        raise HTTPException(status_code=500, detail=str(se))
    except Exception as e:
        logger.exception(f"Unexpected error saving transaction: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/transactions/bulk", response_model=List[Transaction], summary="Bulk Add Transactions", description="Stores an array of transactions. Either every record is stored or none is.")
async def add_transactions_bulk(collection: TransactionsCollectionDep, transactions: Annotated[List[TransactionIn], Body(...)]) -> List[Transaction]:
    logger.info(f"POST /transactions/bulk endpoint called with {len(transactions)} records.")
    return await _bulk_create(collection, transactions)

@router.post("/transactions/import", response_model=List[Transaction], summary="Import CSV", description="Parses an uploaded CSV (Date, Description, Amount, Type, Category) and stores every row.")
async def import_transactions_csv(collection: TransactionsCollectionDep, file: UploadFile = File(...)) -> List[Transaction]:
    logger.info(f"POST /transactions/import endpoint called for file: {file.filename}")

    if file.content_type not in ["text/csv", "text/plain", "application/vnd.ms-excel"] and not (file.filename or "").lower().endswith(".csv"):
        logger.warning(f"Invalid file type attempted upload: {file.filename} ({file.content_type})")
        raise HTTPException(status_code=400, detail=f"Invalid file type: {file.content_type}. Please upload a CSV file.")

    try:
        content = await file.read()
        try:
            text_content = content.decode("utf-8")
        except UnicodeDecodeError:
            raise ParseError("Could not read file. Ensure UTF-8 encoding.")
        candidates = parse_transactions_csv(text_content)
    except ParseError as pe:
        logger.error(f"ParseError processing file {file.filename}: {pe}")
        raise HTTPException(status_code=400, detail=str(pe))
    finally:
        await file.close()

    return await _bulk_create(collection, candidates)

async def _bulk_create(collection: AsyncIOMotorCollection, records) -> List[Transaction]:
    try:
        return await transactions_service.bulk_create_transactions(collection, records)
    except TransactionValidationError as ve:
        logger.error(f"Bulk insert rejected: {ve}")
        raise HTTPException(status_code=422, detail=str(ve))
    except StoreError as se:
        logger.error(f"Store error during bulk insert: {se}")
        raise HTTPException(status_code=500, detail=str(se))
    except Exception as e:
        logger.exception(f"Unexpected error during bulk insert: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/transactions/summary", response_model=TransactionSummary, summary="Get Summary", description="Income, expense, balance, per-category and per-day expense totals over all transactions.")
async def get_summary(collection: TransactionsCollectionDep) -> TransactionSummary:
    logger.info("GET /transactions/summary endpoint called.")
    try:
        transactions = await transactions_service.list_transactions(collection)
    except StoreError as se:
        logger.error(f"Store error building summary: {se}")
        raise HTTPException(status_code=500, detail=str(se))
    try:
        return aggregation.summarize(transactions)
    except Exception as e:
        logger.exception(f"Unexpected error building summary: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.delete("/transactions", response_model=DeleteResult, summary="Delete All Transactions", description="Deletes all transaction records from the database. Use with caution!")
async def delete_all_transactions_route(collection: TransactionsCollectionDep) -> DeleteResult:
    logger.warning("DELETE /transactions endpoint called. This will clear the database.")
    try:
        deleted_count = await transactions_service.delete_all_transactions(collection)
    except StoreError as se:
        logger.error(f"Store error deleting all transactions: {se}")
        raise HTTPException(status_code=500, detail=str(se))
    except Exception as e:
        logger.exception(f"Unexpected error deleting all transactions: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    logger.info(f"All data wiped: {deleted_count} transactions deleted.")
    return DeleteResult(message="All transactions deleted", deleted_count=deleted_count)
