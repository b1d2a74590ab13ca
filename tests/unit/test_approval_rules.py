import pytest

from app.core.exceptions import InvalidLedgerEntry
from app.models.inventory.stock_movement import StockMovement
from app.models.shared.enums import MovementReason, StockMovementType
from app.services.inventory.stock_movement_service import StockMovementService


def movement(movement_type, reason, quantity, before=500):
    return StockMovement(
        product_id=1,
        movement_type=movement_type,
        reason=reason,
        quantity=quantity,
        before_quantity=before,
        after_quantity=before + quantity,
    )


@pytest.fixture
def ledger():
    return StockMovementService(db=None, approval_threshold=100)


@pytest.mark.parametrize("movement_type", [
    StockMovementType.ADJUSTMENT,
    StockMovementType.DAMAGED,
    StockMovementType.EXPIRED,
])
def test_sensitive_types_need_approval(ledger, movement_type):
    assert ledger.needs_approval(movement(movement_type, MovementReason.OTHER, -1))


@pytest.mark.parametrize("reason", [
    MovementReason.MANUAL_ADJUSTMENT,
    MovementReason.DAMAGED_GOODS,
    MovementReason.EXPIRED_GOODS,
    MovementReason.STOCK_LOSS,
])
def test_sensitive_reasons_need_approval(ledger, reason):
    assert ledger.needs_approval(movement(StockMovementType.CYCLE_COUNT, reason, -1))


def test_size_threshold(ledger):
    assert not ledger.needs_approval(movement(StockMovementType.INBOUND, MovementReason.PURCHASE_ORDER, 100))
    assert ledger.needs_approval(movement(StockMovementType.INBOUND, MovementReason.PURCHASE_ORDER, 101))


@pytest.mark.parametrize("movement_type,reason,quantity", [
    (StockMovementType.OUTBOUND, MovementReason.SALES_ORDER, -400),
    (StockMovementType.INBOUND, MovementReason.ORDER_CANCELLATION, 400),
    (StockMovementType.TRANSFER, MovementReason.TRANSFER_ORDER, -400),
])
def test_document_driven_movements_skip_threshold(ledger, movement_type, reason, quantity):
    assert not ledger.needs_approval(movement(movement_type, reason, quantity))


def test_validate_entry_rejects_broken_snapshot():
    entry = movement(StockMovementType.INBOUND, MovementReason.PURCHASE_ORDER, 10)
    entry.after_quantity = 505
    with pytest.raises(InvalidLedgerEntry):
        StockMovementService.validate_entry(entry)


def test_validate_entry_rejects_zero_quantity():
    with pytest.raises(InvalidLedgerEntry):
        StockMovementService.validate_entry(movement(StockMovementType.INBOUND, MovementReason.PURCHASE_ORDER, 0))
