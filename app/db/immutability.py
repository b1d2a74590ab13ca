"""
ORM-level append-only enforcement for the stock movement ledger.

A movement may change while it is ``pending`` (approval, rejection) and in
the same flush that moves it out of ``pending``. Once it is ``completed``,
``cancelled`` or ``failed`` every column is frozen; corrections are new
movements that reference the original. Movements are never deleted.

Call ``register_immutability_listeners()`` once at startup, after models are
imported.
"""
import logging
from sqlalchemy import event
from sqlalchemy.orm.attributes import PASSIVE_NO_INITIALIZE, get_history

from app.core.exceptions import ImmutableLedgerEntry
from app.models.shared.enums import MovementStatus

logger = logging.getLogger("ledger")

# Bookkeeping columns the ORM may touch on any row
_AUDIT_FIELDS = {"updated_at", "updated_by"}

_registered = False


def _status_before_flush(target):
    status_history = get_history(target, "status")
    if status_history.deleted:
        return status_history.deleted[0]
    if status_history.unchanged:
        return status_history.unchanged[0]
    return target.status


def _check_movement_update(mapper, connection, target):
    previous_status = _status_before_flush(target)
    if previous_status == MovementStatus.PENDING:
        return

    changed = [
        attr.key
        for attr in mapper.column_attrs
        if attr.key not in _AUDIT_FIELDS and get_history(target, attr.key, passive=PASSIVE_NO_INITIALIZE).has_changes()
    ]
    if not changed:
        return

    logger.error(
        f"🚫 Blocked update of finalized stock movement {target.id} "
        f"(status={previous_status}, fields={changed})"
    )
    raise ImmutableLedgerEntry(target.id)


def _check_movement_delete(mapper, connection, target):
    logger.error(f"🚫 Blocked delete of stock movement {target.id}")
    raise ImmutableLedgerEntry(target.id, detail="Stock movements cannot be deleted")


def register_immutability_listeners():
    """Register the ledger guards; safe to call more than once."""
    global _registered
    if _registered:
        return

    from app.models.inventory.stock_movement import StockMovement

    event.listen(StockMovement, "before_update", _check_movement_update)
    event.listen(StockMovement, "before_delete", _check_movement_delete)
    _registered = True
    logger.info("🔒 Stock movement immutability listeners registered")


def unregister_immutability_listeners():
    """Remove the ledger guards (tests only)."""
    global _registered
    if not _registered:
        return

    from app.models.inventory.stock_movement import StockMovement

    event.remove(StockMovement, "before_update", _check_movement_update)
    event.remove(StockMovement, "before_delete", _check_movement_delete)
    _registered = False
