"""Periodic usage timer accrual.

A scheduler calls ``UsageTimerJob.run()`` at a fixed interval. For every
checked-out bike, the job sets ``current_usage_timer`` to the hours elapsed
since its last checkout and counts the bikes that are past the maximum
checkout time. The job takes the same global lock as submission runs, so a
timer update never interleaves with a checkout or return.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from bikeshare.lock import GlobalLock
from bikeshare.settings.cache import SettingsCache
from bikeshare.state.loader import StateLoader, bike_to_row
from bikeshare.steps.business import elapsed_hours
from bikeshare.store.models import WriteDescriptor, WriteKind
from bikeshare.store.persistence import BatchCommitter
from bikeshare.store.protocol import RowStore

logger = logging.getLogger(__name__)


class UsageTimerResult(BaseModel):
    """Summary of one timer run.

    Attributes:
        checked_out_bikes: Bikes found checked out.
        overdue_bikes: Names of bikes past the maximum checkout hours.
        updates_applied: Timer writes that reached the store.
        skipped: Names of checked-out bikes without a usable checkout date.
        failed_writes: Serialized descriptors of writes that failed.
    """

    checked_out_bikes: int = 0
    overdue_bikes: List[str] = Field(default_factory=list)
    updates_applied: int = 0
    skipped: List[str] = Field(default_factory=list)
    failed_writes: List[dict] = Field(default_factory=list)

    @property
    def overdue_count(self) -> int:
        return len(self.overdue_bikes)


class UsageTimerJob:
    """Recomputes the usage timer of every checked-out bike."""

    def __init__(
        self,
        store: RowStore,
        settings_cache: SettingsCache,
        lock: GlobalLock,
        committer: Optional[BatchCommitter] = None,
    ):
        self.store = store
        self.settings_cache = settings_cache
        self.lock = lock
        self.committer = committer or BatchCommitter(store)

    def run(self, now: Optional[datetime] = None) -> UsageTimerResult:
        """Accrue timers as of ``now`` (the current UTC time by default).

        Raises:
            LockTimeoutError: If the global lock is not acquired in time.
            ConfigLoadError: If configuration cannot be loaded.
            StateLoadError: If the bikes table cannot be read.
        """
        now = now or datetime.now(timezone.utc)
        with self.lock.hold(owner="usage-timer"):
            settings = self.settings_cache.get_snapshot()
            state = StateLoader(
                self.store, settings.bikes_table, settings.users_table
            ).load_state()
            max_hours = settings.get_max_checkout_hours()

            result = UsageTimerResult()
            writes = []
            for bike in state.bikes:
                if not bike.is_checked_out:
                    continue
                result.checked_out_bikes += 1

                if bike.last_checkout_date is None or bike.last_checkout_date > now:
                    logger.warning(
                        "Skipping timer update for bike without a valid checkout date",
                        extra={"bike": bike.name},
                    )
                    result.skipped.append(bike.name)
                    continue

                hours = elapsed_hours(bike.last_checkout_date, now)
                if hours > max_hours:
                    result.overdue_bikes.append(bike.name)

                updated = bike.model_copy(update={"current_usage_timer": hours})
                writes.append(
                    WriteDescriptor(
                        table=settings.bikes_table,
                        kind=WriteKind.UPDATE,
                        row_index=bike.row_index,
                        values=tuple(bike_to_row(updated)),
                        key=bike.name,
                    )
                )

            if writes:
                commit_results = self.committer.commit(writes)
                result.updates_applied = sum(1 for r in commit_results if r.success)
                result.failed_writes = [
                    r.descriptor.to_log_dict() for r in commit_results if not r.success
                ]

        logger.info(
            "Usage timers updated",
            extra={
                "checked_out_bikes": result.checked_out_bikes,
                "overdue": result.overdue_count,
                "updates_applied": result.updates_applied,
                "skipped": len(result.skipped),
            },
        )
        return result
