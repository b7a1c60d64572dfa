"""
Region resolution: which pixels to analyze, and where the click is in them.

Responsibility:
    Turn a DetectionTrigger and the current RegionPolicy into a
    ResolvedDetectionPlan: the region strategy actually used, the click
    and tolerance as ratios of the reference rectangle, and a deferred,
    compute-once supplier for the raster that rectangle will become.

Invariant:
    The reference rectangle and the raster supplier are chosen together.
    Ratios are only meaningful against the raster they were computed for.

Non-goals:
    - No I/O here. The supplier is built, not run.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol
from urllib.parse import urlsplit

from clickscan.config import RegionPolicy, RegionStrategy
from clickscan.detection import DetectionTrigger, Raster
from clickscan.errors import InvalidPolicyValueError

logger = logging.getLogger(__name__)

RasterSupplier = Callable[[], Awaitable[Optional[Raster]]]

# URL schemes that only resolve inside the page that created them.
_PAGE_LOCAL_SCHEMES = {"blob"}


class RasterProvider(Protocol):
    """The capture/fetch operations the resolver schedules."""

    async def capture_viewport_raster(self) -> Raster: ...

    async def fetch_and_decode(
        self,
        url: str,
        target_width: Optional[int] = None,
        target_height: Optional[int] = None,
    ) -> Raster: ...


class LazyRaster:
    """Compute-once cell around an async raster supplier.

    The supplier is invoked on the first get() only. Every later or
    concurrent get() awaits the same result, or re-raises the same
    exception, without triggering another capture or download.
    """

    def __init__(self, supplier: Optional[RasterSupplier]) -> None:
        self._supplier = supplier
        self._future: Optional[asyncio.Future] = None

    @classmethod
    def empty(cls) -> "LazyRaster":
        """A cell that always yields None (nothing to analyze)."""
        return cls(None)

    @property
    def is_empty(self) -> bool:
        return self._supplier is None

    @property
    def started(self) -> bool:
        """Whether the supplier has been invoked."""
        return self._future is not None

    async def get(self) -> Optional[Raster]:
        if self._supplier is None:
            return None
        if self._future is None:
            self._future = asyncio.ensure_future(self._supplier())
        return await self._future


@dataclass(frozen=True)
class ResolvedDetectionPlan:
    """What one detection cycle will analyze.

    Attributes:
        x_ratio: Click x divided by the reference rectangle width.
        y_ratio: Click y divided by the reference rectangle height.
        tolerance_ratio: Tolerance divided by the reference rectangle width.
        effective_region: Region strategy after fallback resolution.
        raster: Deferred raster of the reference rectangle.
    """

    x_ratio: float
    y_ratio: float
    tolerance_ratio: float
    effective_region: RegionStrategy
    raster: LazyRaster

    async def get_raster(self) -> Optional[Raster]:
        return await self.raster.get()


def usable_image_url(url: Optional[str]) -> Optional[str]:
    """Return url if it can be fetched from outside the page, else None."""
    url = (url or "").strip()
    if not url:
        return None
    scheme = urlsplit(url).scheme.lower()
    if scheme in _PAGE_LOCAL_SCHEMES:
        logger.debug("Ignoring page-local image URL (scheme=%s).", scheme)
        return None
    return url


def _viewport_plan(
    trigger: DetectionTrigger,
    policy: RegionPolicy,
    effective_region: RegionStrategy,
    source: RasterProvider,
) -> ResolvedDetectionPlan:
    return ResolvedDetectionPlan(
        x_ratio=trigger.viewport_x / trigger.viewport_width,
        y_ratio=trigger.viewport_y / trigger.viewport_height,
        tolerance_ratio=policy.tolerance / trigger.viewport_width,
        effective_region=effective_region,
        raster=LazyRaster(source.capture_viewport_raster),
    )


def resolve_region(
    trigger: DetectionTrigger,
    policy: RegionPolicy,
    source: RasterProvider,
) -> ResolvedDetectionPlan:
    """Choose the region, the reference rectangle and the raster supplier.

    Rules, first match wins:
        1. whole-page: capture the viewport; reference = viewport.
        2. no usable image URL, dom-element, fallback enabled: analyze a
           viewport capture under the cursor; reference = viewport.
        3. no usable image URL otherwise: nothing to analyze.
        4. image URL present: decode that image; reference = the element
           box the image is drawn into.

    Raises:
        InvalidPolicyValueError: If policy.detect_region is not a known
            RegionStrategy.
    """
    region = policy.detect_region
    if not isinstance(region, RegionStrategy):
        raise InvalidPolicyValueError(f"Unknown region strategy: {region!r}.")

    image_url = usable_image_url(trigger.source_image_url)

    if region is RegionStrategy.WHOLE_PAGE:
        plan = _viewport_plan(trigger, policy, RegionStrategy.WHOLE_PAGE, source)
    elif image_url is None:
        if region is RegionStrategy.DOM_ELEMENT and policy.fallback_to_under_cursor:
            plan = _viewport_plan(trigger, policy, RegionStrategy.UNDER_CURSOR, source)
        else:
            plan = ResolvedDetectionPlan(
                x_ratio=trigger.x / trigger.ref_width,
                y_ratio=trigger.y / trigger.ref_height,
                tolerance_ratio=policy.tolerance / trigger.ref_width,
                effective_region=region,
                raster=LazyRaster.empty(),
            )
    else:
        target_width = max(1, round(trigger.ref_width))
        target_height = max(1, round(trigger.ref_height))

        async def fetch() -> Raster:
            return await source.fetch_and_decode(image_url, target_width, target_height)

        plan = ResolvedDetectionPlan(
            x_ratio=trigger.x / trigger.ref_width,
            y_ratio=trigger.y / trigger.ref_height,
            tolerance_ratio=policy.tolerance / trigger.ref_width,
            effective_region=region,
            raster=LazyRaster(fetch),
        )

    logger.debug(
        "Resolved region: requested=%s effective=%s ratios=(%.4f, %.4f) tol=%.4f",
        region.value,
        plan.effective_region.value,
        plan.x_ratio,
        plan.y_ratio,
        plan.tolerance_ratio,
    )
    return plan
