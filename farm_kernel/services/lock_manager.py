"""
EventLockManager -- per-event processing leases.

Responsibility:
    Guarantees that at most one processor works on an event at a time.  A
    lease is a row in ``event_leases`` with an owner token and an expiry; an
    expired lease may be taken over so a crashed processor never blocks an
    event forever.

Architecture position:
    Kernel > Services.  Used by PostingEngine and ReversalService.  Every
    operation runs in its own short transaction from ``session_factory`` so a
    lease is visible to other processors as soon as it is taken, and released
    even when the caller's own transaction rolls back.

Invariants enforced:
    - One lease row per event (UNIQUE event_id).
    - Takeover is a conditional UPDATE matching an expired lease; two
      lockers racing for the same expired lease cannot both match.
    - acquire() never re-enters a live lease, not even the caller's own.
      A locker id stands for one processing attempt; extending a lease is
      the separate renew() call.
    - release() deletes only a lease owned by the caller.

Failure modes:
    - acquire() returns False while any unexpired lease exists on the event.
    - require() raises LockUnavailableError in the same situation.
"""

from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from farm_kernel.db.engine import session_scope
from farm_kernel.domain.clock import Clock, SystemClock, ensure_utc
from farm_kernel.exceptions import LockUnavailableError
from farm_kernel.logging_config import get_logger
from farm_kernel.models.lease import EventLease

logger = get_logger("services.lock_manager")

DEFAULT_LEASE_TTL_SECONDS = 300


@dataclass(frozen=True, slots=True)
class Lease:
    event_id: UUID
    tenant_id: str
    owner_token: str
    acquired_at: datetime
    expires_at: datetime


def _to_lease(row: EventLease) -> Lease:
    return Lease(
        event_id=row.event_id,
        tenant_id=row.tenant_id,
        owner_token=row.owner_token,
        acquired_at=ensure_utc(row.acquired_at),
        expires_at=ensure_utc(row.expires_at),
    )


class EventLockManager:
    """
    Exclusive, expiring leases on events.

    Contract:
        acquire() -> True means the caller owns the event until
        ``expires_at`` or until it calls release().

    Non-goals:
        - No fencing tokens: a processor that outlives its lease is stopped
          by the status compare-and-swap in EventStore, not here.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        default_ttl_seconds: int = DEFAULT_LEASE_TTL_SECONDS,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._default_ttl = default_ttl_seconds

    @property
    def default_ttl_seconds(self) -> int:
        return self._default_ttl

    def _expiry(self, now: datetime, ttl_seconds: int | None) -> datetime:
        if ttl_seconds is None:
            ttl_seconds = self._default_ttl
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must not be negative")
        return now + timedelta(seconds=ttl_seconds)

    def acquire(
        self,
        tenant_id: str,
        event_id: UUID,
        locker_id: str,
        ttl_seconds: int | None = None,
    ) -> bool:
        """Take the lease on ``event_id`` for ``locker_id``.

        Returns:
            True if the caller now holds the lease (new, or taken over after
            expiry), False if any locker, the caller included, holds a live
            lease on the event.
        """
        if not locker_id:
            raise ValueError("locker_id is required")
        now = self._clock.now()
        expires_at = self._expiry(now, ttl_seconds)

        try:
            with session_scope(self._session_factory) as session:
                session.add(
                    EventLease(
                        event_id=event_id,
                        tenant_id=tenant_id,
                        owner_token=locker_id,
                        acquired_at=now,
                        expires_at=expires_at,
                    )
                )
                session.flush()
            logger.info(
                "lock_acquired",
                extra={"event_id": str(event_id), "locker_id": locker_id},
            )
            return True
        except IntegrityError:
            pass

        with session_scope(self._session_factory) as session:
            result = session.execute(
                update(EventLease)
                .where(
                    EventLease.event_id == event_id,
                    EventLease.expires_at <= now,
                )
                .values(owner_token=locker_id, acquired_at=now, expires_at=expires_at)
                .execution_options(synchronize_session=False)
            )
            taken = result.rowcount == 1

        if taken:
            logger.info(
                "lock_taken_over",
                extra={"event_id": str(event_id), "locker_id": locker_id},
            )
        else:
            logger.info(
                "lock_contended",
                extra={"event_id": str(event_id), "locker_id": locker_id},
            )
        return taken

    def renew(self, event_id: UUID, locker_id: str, ttl_seconds: int | None = None) -> bool:
        """Extend a live lease owned by ``locker_id``.

        Returns False if the lease expired, was taken over or released.
        """
        now = self._clock.now()
        expires_at = self._expiry(now, ttl_seconds)
        with session_scope(self._session_factory) as session:
            result = session.execute(
                update(EventLease)
                .where(
                    EventLease.event_id == event_id,
                    EventLease.owner_token == locker_id,
                    EventLease.expires_at > now,
                )
                .values(expires_at=expires_at)
                .execution_options(synchronize_session=False)
            )
            renewed = result.rowcount == 1
        logger.info(
            "lock_renewed" if renewed else "lock_renew_refused",
            extra={"event_id": str(event_id), "locker_id": locker_id},
        )
        return renewed

    def release(self, event_id: UUID, locker_id: str) -> bool:
        """Release the lease if ``locker_id`` owns it.  Otherwise a no-op."""
        with session_scope(self._session_factory) as session:
            result = session.execute(
                delete(EventLease)
                .where(
                    EventLease.event_id == event_id,
                    EventLease.owner_token == locker_id,
                )
                .execution_options(synchronize_session=False)
            )
            released = result.rowcount == 1
        if released:
            logger.info(
                "lock_released",
                extra={"event_id": str(event_id), "locker_id": locker_id},
            )
        return released

    def get_lease(self, event_id: UUID) -> Lease | None:
        with session_scope(self._session_factory) as session:
            row = session.execute(
                select(EventLease).where(EventLease.event_id == event_id)
            ).scalar_one_or_none()
            return _to_lease(row) if row is not None else None

    def is_expired(self, lease: Lease, now: datetime | None = None) -> bool:
        now = ensure_utc(now) if now is not None else self._clock.now()
        return lease.expires_at <= now

    def is_held(self, event_id: UUID) -> bool:
        """True while an unexpired lease exists on the event."""
        lease = self.get_lease(event_id)
        return lease is not None and not self.is_expired(lease)

    def require(
        self,
        tenant_id: str,
        event_id: UUID,
        locker_id: str,
        ttl_seconds: int | None = None,
    ) -> None:
        if not self.acquire(tenant_id, event_id, locker_id, ttl_seconds):
            current = self.get_lease(event_id)
            raise LockUnavailableError(
                str(event_id),
                locker_id,
                held_by=current.owner_token if current else None,
            )

    @contextmanager
    def held(
        self,
        tenant_id: str,
        event_id: UUID,
        locker_id: str,
        ttl_seconds: int | None = None,
    ) -> Generator[None, None, None]:
        """Hold the lease for the duration of the block (raises if unavailable)."""
        self.require(tenant_id, event_id, locker_id, ttl_seconds)
        try:
            yield
        finally:
            self.release(event_id, locker_id)
