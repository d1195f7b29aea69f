"""
ORM-level immutability enforcement.

Journal entries and their lines are the financial record: once flushed they
are never edited or deleted, only compensated by a reversal entry.  System
accounts of the default chart are never deleted, and no account referenced
by a ledger line is deleted.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here raise ImmutabilityViolationError (or
SystemAccountError) from those hooks, which aborts the flush and leaves the
database untouched:

    session.flush()
         |
         v
    [before_flush]  --> account deletions checked
    [before_update] --> journal entry / line edits blocked
    [before_delete] --> journal entry / line deletes blocked

Bulk ``update()``/``delete()`` statements bypass mapper events; the services
never issue them against journal tables.

Usage:
    register_immutability_listeners()    # once at startup (idempotent)
    unregister_immutability_listeners()  # TESTS ONLY
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import Session

from farm_kernel.exceptions import ImmutabilityViolationError, SystemAccountError
from farm_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Audit metadata may change on otherwise immutable rows.
_MUTABLE_AUDIT_FIELDS = frozenset({"updated_at", "updated_by"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    return ImmutabilityViolationError(entity_type, str(entity_id), reason)


def _changed_columns(target) -> list[str]:
    state = inspect(target)
    return [
        attr.key
        for attr in state.mapper.column_attrs
        if attr.key not in _MUTABLE_AUDIT_FIELDS
        and state.attrs[attr.key].history.has_changes()
    ]


def _check_journal_entry_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        raise _blocked(
            "JournalEntry", target.id, "UPDATE",
            f"journal entries are immutable (attempted to change {', '.join(changed)})",
        )


def _check_journal_entry_delete(mapper, connection, target):
    raise _blocked("JournalEntry", target.id, "DELETE", "journal entries cannot be deleted")


def _check_journal_line_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        raise _blocked(
            "JournalLine", target.id, "UPDATE",
            f"journal lines are immutable (attempted to change {', '.join(changed)})",
        )


def _check_journal_line_delete(mapper, connection, target):
    raise _blocked("JournalLine", target.id, "DELETE", "journal lines cannot be deleted")


def _check_account_deletion_before_flush(session, flush_context, instances):
    """Block deletion of system accounts and of accounts with ledger lines."""
    from farm_kernel.models.account import Account
    from farm_kernel.models.journal import JournalLine

    for obj in list(session.deleted):
        if not isinstance(obj, Account):
            continue
        if obj.is_system:
            logger.error(
                "immutability_violation_blocked",
                extra={"entity_type": "Account", "entity_id": str(obj.id), "operation": "DELETE"},
            )
            raise SystemAccountError(obj.code)
        with session.no_autoflush:
            referenced = session.execute(
                select(JournalLine.id).where(JournalLine.account_id == obj.id).limit(1)
            ).first()
        if referenced is not None:
            raise _blocked("Account", obj.id, "DELETE", "account is referenced by ledger lines")



def _listeners():
    from farm_kernel.models.journal import JournalEntry, JournalLine

    return (
        (Session, "before_flush", _check_account_deletion_before_flush),
        (JournalEntry, "before_update", _check_journal_entry_update),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_update", _check_journal_line_update),
        (JournalLine, "before_delete", _check_journal_line_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners.  Safe to call more than once."""
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners() -> None:
    """Remove the listeners.  Only for tests that must bypass them."""
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
