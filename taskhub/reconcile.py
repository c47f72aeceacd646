"""
Reconciliation Engine - make the local store match each source's current truth.

Per source, per pass:
1. Disabled source -> no-op.
2. Fetch through the adapter.
3. Upsert every fetched item, tagged with the source's durability class.
4. Purge stored items the source no longer reports, but only when the
   fetch succeeded, and never down to zero for a source that is normally
   populated: an empty success from such a source is treated as suspicious.
5. Upserts and purge commit together as one transaction.

One source's failure never aborts the others.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from taskhub.adapters.base import SourceAdapter
from taskhub.models import SyncResult
from taskhub.observability import RunContext
from taskhub.settings import Settings
from taskhub.state_store import StateStore

logger = logging.getLogger(__name__)

UNKNOWN_SOURCE = "Unknown source"
FETCH_FAILED = "fetch failed: source state unknown"


class ReconciliationEngine:
    def __init__(
        self,
        store: StateStore,
        adapters: dict[str, SourceAdapter],
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.adapters = adapters
        self.settings = settings
        self.clock = clock or datetime.now

    @property
    def source_names(self) -> list[str]:
        return list(self.adapters)

    def sync_source(self, name: str) -> SyncResult:
        """Run one source's pass and record its outcome in sync_state."""
        adapter = self.adapters.get(name)
        if adapter is None:
            return SyncResult(source=name, error=UNKNOWN_SOURCE)

        if not self.settings.is_source_enabled(name):
            logger.info("%s: skipped, sync disabled", name)
            return SyncResult(source=name)

        try:
            result = self._reconcile(adapter)
        except Exception as e:
            logger.error("%s: sync failed: %s", name, e, exc_info=True)
            result = SyncResult(source=name, error=str(e) or e.__class__.__name__)

        self.store.update_sync_state(
            name,
            success=result.ok,
            items=result.count,
            removed=result.removed,
            error=result.error,
            now=self.clock().isoformat(timespec="seconds"),
        )
        return result

    def sync_all(self) -> list[SyncResult]:
        """Every registered source, one after another."""
        with RunContext("sync"):
            results = [self.sync_source(name) for name in self.source_names]
            failed = [r.source for r in results if not r.ok]
            logger.info(
                "Sync pass complete: %d sources, %d failed%s",
                len(results),
                len(failed),
                f" ({', '.join(failed)})" if failed else "",
            )
            return results

    def _reconcile(self, adapter: SourceAdapter) -> SyncResult:
        source = adapter.source_name
        fetched = adapter.fetch()
        transient = self.settings.is_transient(source)
        now = self.clock().isoformat(timespec="seconds")

        removed = 0
        purge_skipped = False
        with self.store.transaction():
            fresh_ids = set()
            for task in fetched.tasks:
                task.transient = transient
                self.store.upsert_task(task, now=now)
                fresh_ids.add(task.key)

            if fetched.ok:
                if not fresh_ids and not self.settings.allows_empty(source):
                    logger.warning(
                        "%s: returned 0 items with ok=true, skipping stale cleanup to prevent accidental purge",
                        source,
                    )
                    purge_skipped = True
                else:
                    removed = self.store.delete_stale_by_source(source, fresh_ids)

        if not fetched.ok:
            logger.warning("%s: fetch not ok, stored items left untouched", source)

        logger.info(
            "%s: synced %d items%s",
            source,
            len(fetched.tasks),
            f", removed {removed} stale" if removed else "",
        )
        return SyncResult(
            source=source,
            count=len(fetched.tasks),
            removed=removed,
            error=None if fetched.ok else FETCH_FAILED,
            purge_skipped=purge_skipped,
        )
