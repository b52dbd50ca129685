"""Writes selector updates back to test steps and reverses them."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from ..core.audit_trail import AuditTrail, get_audit_trail
from ..core.metrics import MetricsCollector, get_metrics_collector
from ..core.models.healing_models import RollbackResult, SelectorUpdate, ValidationStatus
from .stores import SELECTOR_UPDATES, TEST_STEPS

logger = logging.getLogger("healing.updater")


class SelectorUpdater:
    """Applies and rolls back `SelectorUpdate` records.

    An update counts as applied only once the owning step's ``element`` field
    has been rewritten. Rollback restores the locator captured in the update's
    rollback data, byte for byte.
    """

    def __init__(self, store, audit: Optional[AuditTrail] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.audit = audit or get_audit_trail()
        self.metrics = metrics or get_metrics_collector()
        self._lock = asyncio.Lock()

    async def propose(self, update: SelectorUpdate) -> None:
        """Persist an update awaiting review without touching the step."""
        await self._persist(update)

    async def get(self, update_id: str) -> Optional[SelectorUpdate]:
        record = await self.store.find_by_id(SELECTOR_UPDATES, update_id)
        return SelectorUpdate.from_dict(record) if record else None

    async def apply(self, update: SelectorUpdate) -> bool:
        """Rewrite the step locator and mark the update validated.

        Applying the same update twice is a successful no-op.
        """
        async with self._lock:
            if update.is_applied:
                logger.debug(f"Selector update {update.id} already applied")
                return True

            stored = await self._find(update.id)
            if stored and stored.is_applied:
                update.validation_status = stored.validation_status
                update.applied_at = stored.applied_at
                logger.debug(f"Selector update {update.id} already applied (stored)")
                return True

            try:
                await self._rewrite_step(update.step_id, update.new_selector)
            except Exception as e:
                logger.error(f"Failed to apply selector update {update.id}: {e}")
                return False

            update.validation_status = ValidationStatus.VALIDATED
            update.applied_at = datetime.now()
            update.rolled_back_at = None
            await self._persist(update)

        logger.info(
            f"Applied selector update {update.id} to step {update.step_id}: "
            f"'{update.original_selector}' -> '{update.new_selector}'"
        )
        self.audit.log_selector_update_applied(update)
        self.metrics.record_update_applied()
        return True

    async def rollback(self, update_id: str, reason: str = "") -> RollbackResult:
        async with self._lock:
            update = await self._find(update_id)
            if update is None:
                return RollbackResult(success=False, update_id=update_id,
                                      error_message=f"Selector update not found: {update_id}")
            if not update.is_applied:
                return RollbackResult(success=False, update_id=update_id,
                                      error_message="Selector update is not applied")

            original = update.rollback_data.original_selector
            try:
                await self._rewrite_step(update.step_id, original)
            except Exception as e:
                logger.error(f"Failed to roll back selector update {update_id}: {e}")
                self.audit.log_selector_update_rolled_back(update, reason, False, str(e))
                return RollbackResult(success=False, update_id=update_id, error_message=str(e))

            update.rolled_back_at = datetime.now()
            await self._persist(update)

        logger.info(f"Rolled back selector update {update_id} on step {update.step_id} to '{original}'")
        self.audit.log_selector_update_rolled_back(update, reason, True)
        self.metrics.record_update_rolled_back()
        return RollbackResult(success=True, update_id=update_id, restored_selector=original)

    async def _rewrite_step(self, step_id: str, selector: str) -> None:
        # update() raises PersistenceFailure when the step does not exist.
        await self.store.update(TEST_STEPS, step_id, {"element": selector})

    async def _find(self, update_id: str) -> Optional[SelectorUpdate]:
        try:
            return await self.get(update_id)
        except Exception as e:
            logger.warning(f"Could not read selector update {update_id}: {e}")
            return None

    async def _persist(self, update: SelectorUpdate) -> None:
        record = update.to_dict()
        try:
            if await self.store.find_by_id(SELECTOR_UPDATES, update.id) is None:
                await self.store.insert(SELECTOR_UPDATES, record)
            else:
                record.pop("id")
                await self.store.update(SELECTOR_UPDATES, update.id, record)
        except Exception as e:
            logger.warning(f"Failed to persist selector update {update.id}: {e}")
