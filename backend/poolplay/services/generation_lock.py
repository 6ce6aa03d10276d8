"""
Per-division generation lock.

Each division carries two lock field sets (pool schedule, bracket) forming a
three-state machine: idle -> generating -> generated | idle. Acquire is a single
conditional UPDATE, so two callers can never both observe a free lock. A
`generating` state older than the timeout is stale and may be taken over; there is
no heartbeat.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from sqlalchemy import or_, update
from sqlmodel import Session

from poolplay.config import GENERATION_LOCK_TIMEOUT_SECONDS
from poolplay.errors import ConfigurationError, GenerationInProgressError
from poolplay.models.division import Division
from poolplay.utils.clock import utcnow

logger = logging.getLogger(__name__)


class LockFamily(str, Enum):
    SCHEDULE = "schedule"
    BRACKET = "bracket"


class LockStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    GENERATED = "generated"


@dataclass
class LockState:
    status: str
    changed_at: Optional[datetime]
    version: int
    generated_by: Optional[str] = None

    def to_dict(self):
        return {
            "status": self.status,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
            "version": self.version,
            "generated_by": self.generated_by,
        }


def read_lock_state(session: Session, division_id: int, family: LockFamily) -> LockState:
    division = session.get(Division, division_id)
    if division is None:
        raise ConfigurationError(f"Division {division_id} not found")
    session.refresh(division)
    prefix = LockFamily(family).value
    return LockState(
        status=getattr(division, f"{prefix}_status"),
        changed_at=getattr(division, f"{prefix}_status_changed_at"),
        version=getattr(division, f"{prefix}_version"),
        generated_by=getattr(division, f"{prefix}_generated_by"),
    )


class GenerationLock:
    """
    Lock for one (division, family).

    Use as a context manager around a generation unit of work: entering acquires and
    commits the `generating` flip; a clean exit releases to `generated` (version + 1)
    in the same commit as the caller's pending writes; an exception rolls the writes
    back, releases to `idle` and re-raises.
    """

    def __init__(
        self,
        session: Session,
        division_id: int,
        family: LockFamily,
        timeout_seconds: int = GENERATION_LOCK_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utcnow,
        owner: Optional[str] = None,
    ):
        self.session = session
        self.division_id = division_id
        self.family = LockFamily(family)
        self.timeout = timedelta(seconds=timeout_seconds)
        self.clock = clock
        self.owner = owner
        self.acquired_at: Optional[datetime] = None
        self.version: Optional[int] = None

    def _col(self, name: str):
        return getattr(Division, f"{self.family.value}_{name}")

    def is_stale(self, state: LockState, now: Optional[datetime] = None) -> bool:
        if state.status != LockStatus.GENERATING.value:
            return False
        if state.changed_at is None:
            return True
        return state.changed_at <= (now or self.clock()) - self.timeout

    def try_acquire(self) -> LockState:
        now = self.clock()
        cutoff = now - self.timeout
        previous = read_lock_state(self.session, self.division_id, self.family)

        stmt = (
            update(Division)
            .where(Division.id == self.division_id)
            .where(
                or_(
                    self._col("status") != LockStatus.GENERATING.value,
                    self._col("status_changed_at").is_(None),
                    self._col("status_changed_at") <= cutoff,
                )
            )
            .values(
                {
                    self._col("status"): LockStatus.GENERATING.value,
                    self._col("status_changed_at"): now,
                    self._col("generated_by"): self.owner,
                }
            )
        )
        result = self.session.connection().execute(stmt)
        if result.rowcount != 1:
            self.session.rollback()
            current = read_lock_state(self.session, self.division_id, self.family)
            age = (now - current.changed_at).total_seconds() if current.changed_at else 0
            raise GenerationInProgressError(
                f"{self.family.value.capitalize()} generation already in progress for division "
                f"{self.division_id} (started {int(age)}s ago). Try again later."
            )
        self.session.commit()

        if self.is_stale(previous, now):
            logger.warning(
                "Took over stale %s lock on division %s (held since %s)",
                self.family.value,
                self.division_id,
                previous.changed_at,
            )
        self.acquired_at = now
        logger.info("Acquired %s lock on division %s", self.family.value, self.division_id)
        return read_lock_state(self.session, self.division_id, self.family)

    def release(self, success: bool) -> bool:
        """
        Leave `generating`: success -> generated with version + 1, failure -> idle.
        Does not commit. Returns False when the lock was taken over meanwhile.
        """
        values = {self._col("status_changed_at"): self.clock()}
        if success:
            values[self._col("status")] = LockStatus.GENERATED.value
            values[self._col("version")] = self._col("version") + 1
        else:
            values[self._col("status")] = LockStatus.IDLE.value

        stmt = (
            update(Division)
            .where(Division.id == self.division_id)
            .where(self._col("status") == LockStatus.GENERATING.value)
            .where(self._col("status_changed_at") == self.acquired_at)
            .values(values)
        )
        result = self.session.connection().execute(stmt)
        if result.rowcount != 1:
            logger.warning(
                "%s lock on division %s was taken over before release", self.family.value, self.division_id
            )
            return False
        return True

    def __enter__(self) -> "GenerationLock":
        self.try_acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            try:
                released = self.release(success=True)
                if released:
                    self.session.commit()
            except Exception:
                logger.exception("Commit failed for %s generation on division %s", self.family.value, self.division_id)
                self._release_after_failure()
                raise
            if not released:
                self.session.rollback()
                raise GenerationInProgressError(
                    f"{self.family.value.capitalize()} lock on division {self.division_id} was taken over "
                    f"before this generation finished; its changes were discarded"
                )
            self.version = read_lock_state(self.session, self.division_id, self.family).version
            logger.info(
                "Released %s lock on division %s as generated (version %s)",
                self.family.value,
                self.division_id,
                self.version,
            )
            return False

        logger.error(
            "%s generation failed on division %s: %s; rolling back",
            self.family.value.capitalize(),
            self.division_id,
            exc,
        )
        self._release_after_failure()
        return False

    def _release_after_failure(self) -> None:
        self.session.rollback()
        try:
            self.release(success=False)
            self.session.commit()
        except Exception:
            # Leaves the lock to expire via the staleness timeout
            logger.exception("Could not reset %s lock on division %s", self.family.value, self.division_id)
            self.session.rollback()
