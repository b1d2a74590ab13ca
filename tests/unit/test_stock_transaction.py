import pytest
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConcurrentModification, ValidationError
from app.services.inventory.stock_transaction import StockTransaction
from app.utils.stock_lock import KeyedLockRegistry


class RecordingSession:
    """Stands in for AsyncSession; only commit and rollback are used"""

    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    async def commit(self):
        self.commits += 1

    async def rollback(self):
        self.rollbacks += 1


@pytest.mark.asyncio
async def test_version_conflict_is_retried_after_rollback():
    session = RecordingSession()
    locks = KeyedLockRegistry()
    calls = []

    async def operation(value):
        calls.append(locks.is_locked((1, 1)))
        if len(calls) == 1:
            raise StaleDataError("stock_records row version changed")
        return value * 2

    result = await StockTransaction(session, locks=locks, max_retries=3).run([(1, 1)], operation, 21)

    assert result == 42
    assert calls == [True, True]
    assert (session.rollbacks, session.commits) == (1, 1)
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_persistent_conflict_surfaces_after_bounded_retries():
    session = RecordingSession()
    attempts = []

    async def operation():
        attempts.append(1)
        raise ConcurrentModification(stock_record_id=5)

    with pytest.raises(ConcurrentModification) as exc:
        await StockTransaction(session, locks=KeyedLockRegistry(), max_retries=2).run([(2, 1), (1, 1)], operation)

    assert len(attempts) == 3
    assert exc.value.context["attempts"] == 3
    assert exc.value.context["keys"] == [[2, 1], [1, 1]]
    assert (session.rollbacks, session.commits) == (3, 0)


@pytest.mark.asyncio
async def test_other_errors_roll_back_without_retry():
    session = RecordingSession()
    attempts = []

    async def operation():
        attempts.append(1)
        raise ValidationError("bad quantity")

    with pytest.raises(ValidationError):
        await StockTransaction(session, locks=KeyedLockRegistry(), max_retries=3).run([(1, 1)], operation)

    assert len(attempts) == 1
    assert (session.rollbacks, session.commits) == (1, 0)
