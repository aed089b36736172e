import asyncio
import logging

from genitakeoff.domain.aggregation import AggregateKey, AggregateQuantity, aggregate_items, uncalibrated_keys
from genitakeoff.domain.calibration import build_resolver

logger = logging.getLogger(__name__)


class QuantityEngine:
    """Recomputes project quantities from the stored items on every call."""

    def __init__(self, item_store, calibration_service):
        self.items = item_store
        self.calibrations = calibration_service

    async def aggregate(self, project_id) -> dict[AggregateKey, AggregateQuantity]:
        items, calibrations = await asyncio.gather(
            self.items.list_by_project(project_id),
            self.calibrations.list_for_project(project_id),
        )
        result = aggregate_items(items, build_resolver(calibrations))
        missing = uncalibrated_keys(result)
        if missing:
            logger.warning(
                "Project %s has uncalibrated takeoff groups: %s",
                project_id,
                ", ".join(f"{key.kind.value}/{key.layer_id or '-'}" for key in missing),
            )
        return result


__all__ = ["QuantityEngine"]
