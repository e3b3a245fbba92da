"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A register's books must be append-only.  A recorded sale is evidence of money
changing hands; a closed session is the reconciliation a cashier signed off
on.  Neither may be edited or removed after the fact.  Corrections are new
rows (a later sale, a new session), never rewrites.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

If a check fails, we raise ImmutabilityViolationError and the flush is
aborted.  The database is never modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity           | When Immutable                     | Notes
-----------------|------------------------------------|----------------------------
Transaction      | ALWAYS (from creation)             | Ledger is append-only
RegisterSession  | Opening fields always              | Set once at open
RegisterSession  | Every field once status = CLOSED   | Closed is terminal
RegisterSession  | Never deletable                    | Session history is kept

The only permitted RegisterSession update is the close itself:
OPEN -> CLOSED together with closed_at, closing_amount, closing_details.

===============================================================================
USAGE
===============================================================================

Called during application startup (idempotent):

    from pos_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    from pos_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from pos_kernel.exceptions import ImmutabilityViolationError
from pos_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Row metadata maintained by the database or the ORM itself.
_METADATA_FIELDS = frozenset({"updated_at", "version"})

_SESSION_OPENING_FIELDS = ("opened_at", "opening_amount", "opening_details")
_SESSION_CLOSE_FIELDS = frozenset(
    {"status", "closed_at", "closing_amount", "closing_details"}
)


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field=None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in _METADATA_FIELDS and attr.history.has_changes()
    ]


# =============================================================================
# Transaction: append-only
# =============================================================================


def _check_transaction_immutability(mapper, connection, target):
    """Recorded sales are never updated."""
    changed = _changed_fields(target)
    if not changed:
        return
    _blocked(
        "Transaction",
        target.id,
        "UPDATE",
        f"Recorded transactions are immutable (attempted to change '{changed[0]}')",
        field=changed[0],
    )


def _check_transaction_delete(mapper, connection, target):
    """Recorded sales are never deleted."""
    _blocked(
        "Transaction",
        target.id,
        "DELETE",
        "Recorded transactions cannot be deleted",
    )


# =============================================================================
# RegisterSession: opening fields frozen, closed is terminal
# =============================================================================


def _check_register_session_immutability(mapper, connection, target):
    """
    Permit exactly one update over a session's life: the close.

    Blocked:
        Any change to opened_at, opening_amount, opening_details.
        Any change at all once the session was already CLOSED.
        CLOSED -> OPEN.
    """
    from sqlalchemy.orm.attributes import get_history

    from pos_kernel.models.register_session import SessionStatus

    for key in _SESSION_OPENING_FIELDS:
        if get_history(target, key).has_changes():
            _blocked(
                "RegisterSession",
                target.id,
                "UPDATE",
                f"Cannot modify field '{key}' after the session was opened",
                field=key,
            )

    status_history = get_history(target, "status")
    if status_history.deleted:
        previous = SessionStatus(status_history.deleted[0])
    else:
        previous = SessionStatus(target.status)

    changed = _changed_fields(target)

    if previous == SessionStatus.CLOSED and changed:
        _blocked(
            "RegisterSession",
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a closed register session",
            field=changed[0],
        )

    if status_history.added and SessionStatus(status_history.added[0]) != SessionStatus.CLOSED:
        _blocked(
            "RegisterSession",
            target.id,
            "UPDATE",
            "Register sessions may only transition from open to closed",
            field="status",
        )

    unexpected = [key for key in changed if key not in _SESSION_CLOSE_FIELDS]
    if unexpected:
        _blocked(
            "RegisterSession",
            target.id,
            "UPDATE",
            f"Cannot modify field '{unexpected[0]}' on a register session",
            field=unexpected[0],
        )


def _check_register_session_delete(mapper, connection, target):
    """Session history is never deleted."""
    _blocked(
        "RegisterSession",
        target.id,
        "DELETE",
        "Register sessions cannot be deleted",
    )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from pos_kernel.models.register_session import RegisterSession
    from pos_kernel.models.transaction import Transaction

    return [
        (Transaction, "before_update", _check_transaction_immutability),
        (Transaction, "before_delete", _check_transaction_delete),
        (RegisterSession, "before_update", _check_register_session_immutability),
        (RegisterSession, "before_delete", _check_register_session_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
