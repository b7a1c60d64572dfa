"""
DetectionPipeline — the single entry point wiring one click to its dispatch.

Public contract:
    async with DetectionPipeline(...) as pipeline:
        cycle = pipeline.submit(trigger)
        outcome = await cycle.wait()

One cycle, strictly in this order:
    busy → resolve region → acquire raster → decode → intermediate(n)
    → under-cursor filter → open/copy selection → dispatch → complete(m)

Configuration is read from the provider at the stage that needs it:
the region policy when resolving, the open/copy policies after decoding.

Failure behavior:
    - UnreachableImageError: abort, badge complete(0), nothing dispatched.
    - No raster (nothing under the click): same, but not an error.
    - InvalidPolicyValueError: abort before any dispatch, badge complete(0).
    - Anything else: badge complete(0), then propagated to the sequencer,
      which logs it and moves on to the next cycle.
    - Open surface errors happen off the cycle: the dispatcher logs them and
      the copy hand-off proceeds.
"""

import logging
from typing import Optional

from clickscan.badge import BadgeStateMachine, LoggingBadgeRenderer
from clickscan.config import ConfigProvider, RegionStrategy
from clickscan.decoder import BarcodeDecoder
from clickscan.detection import DetectionTrigger
from clickscan.dispatch import Dispatcher
from clickscan.errors import InvalidPolicyValueError, UnreachableImageError
from clickscan.geometry import filter_under_cursor
from clickscan.policy import select_copy, select_open
from clickscan.region import RasterProvider, resolve_region
from clickscan.sequencer import (
    CycleOutcome,
    CycleStage,
    CycleStatus,
    DetectionCycle,
    TaskSequencer,
)

logger = logging.getLogger(__name__)


class DetectionPipeline:
    """Click-to-dispatch pipeline with FIFO cycle sequencing.

    Args:
        config: Live configuration provider.
        raster_source: Viewport capture and image fetching.
        decoder: Barcode decoder.
        dispatcher: Open/copy dispatch.
        badge: Progress indicator. Created from the badge configuration
               with a logging renderer when omitted.
    """

    def __init__(
        self,
        config: ConfigProvider,
        raster_source: RasterProvider,
        decoder: BarcodeDecoder,
        dispatcher: Dispatcher,
        badge: Optional[BadgeStateMachine] = None,
    ) -> None:
        if badge is None:
            badge = BadgeStateMachine(
                LoggingBadgeRenderer(),
                clear_delay=config.badge_config().clear_delay_ms / 1000.0,
            )

        self._config = config
        self._raster_source = raster_source
        self._decoder = decoder
        self._dispatcher = dispatcher
        self._badge = badge
        self._sequencer = TaskSequencer(self.run_cycle)

    @property
    def badge(self) -> BadgeStateMachine:
        return self._badge

    @property
    def sequencer(self) -> TaskSequencer:
        return self._sequencer

    async def start(self) -> None:
        await self._badge.start()
        await self._sequencer.start()

    def submit(self, trigger: DetectionTrigger) -> DetectionCycle:
        """Queue one detection cycle for trigger."""
        return self._sequencer.submit(trigger)

    async def drain(self) -> None:
        """Wait for all queued cycles, their open requests and badge transitions."""
        await self._sequencer.drain()
        await self._dispatcher.drain()
        await self._badge.drain()

    async def close(self) -> None:
        await self._sequencer.close()
        await self._dispatcher.drain()
        await self._badge.close()

    async def __aenter__(self) -> "DetectionPipeline":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def run_cycle(self, cycle: DetectionCycle) -> CycleOutcome:
        """Run one cycle to completion. Called by the sequencer only."""
        logger.info("Cycle %d started.", cycle.id)
        self._badge.busy()
        try:
            outcome = await self._run_stages(cycle)
        except UnreachableImageError as e:
            logger.warning("Cycle %d aborted, image unreachable: %s", cycle.id, e)
            outcome = CycleOutcome(status=CycleStatus.UNREACHABLE, error=e)
        except InvalidPolicyValueError as e:
            logger.warning("Cycle %d aborted, invalid configuration: %s", cycle.id, e)
            outcome = CycleOutcome(
                status=CycleStatus.INVALID_POLICY,
                decoded_count=len(cycle.decoded),
                error=e,
            )
        except Exception:
            self._badge.complete(0)
            raise

        self._badge.complete(outcome.dispatched_count)
        logger.info(
            "Cycle %d finished: %s (decoded=%d, dispatched=%d)",
            cycle.id, outcome.status.value, outcome.decoded_count, outcome.dispatched_count,
        )
        return outcome

    async def _run_stages(self, cycle: DetectionCycle) -> CycleOutcome:
        cycle.advance(CycleStage.RESOLVING_REGION)
        plan = resolve_region(cycle.trigger, self._config.region_policy(), self._raster_source)
        cycle.plan = plan

        cycle.advance(CycleStage.AWAITING_RASTER)
        raster = await plan.get_raster()
        if raster is None:
            logger.info("Cycle %d: nothing to analyze under the click.", cycle.id)
            return CycleOutcome(status=CycleStatus.NO_RASTER)

        cycle.advance(CycleStage.DECODING)
        cycle.decoded = list(await self._decoder.decode(raster))
        self._badge.intermediate(len(cycle.decoded))

        cycle.advance(CycleStage.FILTERING)
        if plan.effective_region is RegionStrategy.UNDER_CURSOR:
            cycle.relevant = filter_under_cursor(
                cycle.decoded,
                plan.x_ratio,
                plan.y_ratio,
                plan.tolerance_ratio,
                raster.width,
                raster.height,
            )
        else:
            cycle.relevant = list(cycle.decoded)

        open_policy = self._config.open_policy()
        copy_policy = self._config.copy_policy()
        open_items = select_open(cycle.relevant, open_policy)
        copy_items = select_copy(cycle.relevant, copy_policy)

        cycle.advance(CycleStage.DISPATCHING)
        self._dispatcher.dispatch_open(open_items, open_policy)
        await self._dispatcher.dispatch_copy(copy_items, copy_policy)

        dispatched = {id(item) for item in open_items} | {id(item) for item in copy_items}
        return CycleOutcome(
            status=CycleStatus.COMPLETED,
            decoded_count=len(cycle.decoded),
            dispatched_count=len(dispatched),
            opened=tuple(item.raw_value for item in open_items),
            copied=tuple(item.raw_value for item in copy_items),
        )
