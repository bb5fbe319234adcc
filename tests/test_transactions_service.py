import asyncio
from datetime import datetime, timezone

import pytest

from models.transaction import TransactionIn
from services import transactions_service as svc
from services.errors import StoreError, TransactionValidationError


def run(coro):
    return asyncio.run(coro)


def test_create_assigns_id_and_lists_it(collection):
    payload = {"text": "Salary", "amount": 5000, "type": "credit", "category": "Salary", "date": "2024-01-01"}
    stored = run(svc.create_transaction(collection, payload))

    assert stored.id
    assert stored.model_dump(exclude={"id"}) == {
        "text": "Salary",
        "amount": 5000.0,
        "type": "credit",
        "category": "Salary",
        "date": datetime(2024, 1, 1),
    }
    listed = run(svc.list_transactions(collection))
    assert listed == [stored]


def test_create_defaults_date_to_now(collection):
    before = datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)
    stored = run(svc.create_transaction(collection, TransactionIn(text="Tea", amount=2, type="debit")))
    assert stored.date >= before
    assert stored.category == "Others"
    # the stored copy reads back identical, millisecond truncation included
    assert run(svc.list_transactions(collection)) == [stored]


@pytest.mark.parametrize("missing", ["text", "amount", "type"])
def test_create_requires_fields(collection, missing):
    payload = {"text": "x", "amount": 1, "type": "debit"}
    payload.pop(missing)
    with pytest.raises(TransactionValidationError, match=missing):
        run(svc.create_transaction(collection, payload))
    assert collection.docs == []


def test_create_wraps_database_failure(collection):
    collection.fail_all = True
    with pytest.raises(StoreError, match="connection refused"):
        run(svc.create_transaction(collection, {"text": "x", "amount": 1, "type": "debit"}))


def test_ids_are_unique(collection):
    stored = run(svc.bulk_create_transactions(collection, [{"text": f"t{i}", "amount": i, "type": "debit"} for i in range(5)]))
    assert len({t.id for t in stored}) == 5


def test_bulk_create_empty_is_noop(collection):
    assert run(svc.bulk_create_transactions(collection, [])) == []
    assert collection.calls == []


def test_bulk_create_stores_all_in_order(collection):
    records = [
        {"text": "Coffee", "amount": 150, "type": "debit", "category": "Food", "date": datetime(2024, 1, 5)},
        {"text": "Salary", "amount": 5000, "type": "credit"},
    ]
    stored = run(svc.bulk_create_transactions(collection, records))
    assert [t.text for t in stored] == ["Coffee", "Salary"]
    assert run(svc.list_transactions(collection)) == stored


def test_bulk_create_rejects_whole_batch_on_invalid_record(collection):
    records = [
        {"text": "ok", "amount": 1, "type": "debit"},
        {"text": "bad", "amount": 1, "type": "expense"},
    ]
    with pytest.raises(TransactionValidationError, match="Item #1"):
        run(svc.bulk_create_transactions(collection, records))
    assert collection.docs == []
    assert "insert_many" not in collection.calls


def test_bulk_create_rolls_back_partial_insert(collection):
    run(svc.create_transaction(collection, {"text": "existing", "amount": 1, "type": "credit"}))
    collection.fail_after = 2
    records = [{"text": f"t{i}", "amount": i, "type": "debit"} for i in range(4)]

    with pytest.raises(StoreError, match="bulk insert"):
        run(svc.bulk_create_transactions(collection, records))

    assert [d["text"] for d in collection.docs] == ["existing"]


def test_list_is_idempotent(collection):
    run(svc.bulk_create_transactions(collection, [{"text": "a", "amount": 1, "type": "debit"}]))
    assert run(svc.list_transactions(collection)) == run(svc.list_transactions(collection))


def test_list_skips_invalid_documents(collection):
    run(svc.create_transaction(collection, {"text": "good", "amount": 1, "type": "debit"}))
    collection.docs.append({"_id": "legacy", "text": "", "amount": "n/a"})
    listed = run(svc.list_transactions(collection))
    assert [t.text for t in listed] == ["good"]


def test_list_wraps_database_failure(collection):
    collection.fail_all = True
    with pytest.raises(StoreError):
        run(svc.list_transactions(collection))


def test_delete_all_empties_the_store(collection):
    run(svc.bulk_create_transactions(collection, [{"text": str(i), "amount": 1, "type": "debit"} for i in range(3)]))
    assert run(svc.delete_all_transactions(collection)) == 3
    assert run(svc.list_transactions(collection)) == []
    assert run(svc.delete_all_transactions(collection)) == 0


def test_delete_all_wraps_database_failure(collection):
    collection.fail_all = True
    with pytest.raises(StoreError):
        run(svc.delete_all_transactions(collection))
