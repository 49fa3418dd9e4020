"""
Best-effort fiat conversion rate for the native asset.

The rate is display-only: failures keep the last good value flagged stale,
and before any successful poll the rate reads as zero ("unavailable").
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from ..config import settings
from ..core.errors import RateUnavailable, ValidationError
from ..providers.base import PriceProvider
from .units import to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionRate:
    """Display-fiat value of one unit of the native asset."""

    value_per_unit: Decimal
    observed_at: Optional[datetime] = None
    is_stale: bool = False

    @classmethod
    def unavailable(cls) -> "ConversionRate":
        return cls(value_per_unit=Decimal(0), observed_at=None, is_stale=True)

    @property
    def is_available(self) -> bool:
        return self.value_per_unit > 0


class RateOracle:
    """
    Polls a PriceProvider on an interval.

    At most one fetch is outstanding at a time: a tick that fires while a
    fetch is still running is skipped, not queued.

    Usage:
        oracle = RateOracle(CoingeckoProvider())
        await oracle.start()
        ...
        oracle.rate.value_per_unit
        await oracle.stop()
    """

    def __init__(
        self,
        provider: PriceProvider,
        *,
        timeout_s: Optional[float] = None,
        fiat_multiplier: Optional[Decimal] = None,
    ) -> None:
        self._provider = provider
        self._timeout_s = timeout_s if timeout_s is not None else settings.rate_timeout_seconds
        self._multiplier = fiat_multiplier if fiat_multiplier is not None else settings.rate_fiat_multiplier
        self._rate = ConversionRate.unavailable()
        self._in_flight = False
        self._loop_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self.poll_count = 0
        self.skipped_polls = 0

    @property
    def rate(self) -> ConversionRate:
        return self._rate

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    # ---------------------------
    # Lifecycle
    # ---------------------------
    async def start(self, interval_ms: Optional[int] = None) -> None:
        if self.is_running:
            return
        interval_s = (interval_ms if interval_ms is not None else settings.rate_poll_interval_ms) / 1000
        if interval_s <= 0:
            raise ValueError("Poll interval must be positive")
        logger.info("Rate oracle starting with %.1fs interval", interval_s)
        self._loop_task = asyncio.create_task(self._run_loop(interval_s), name="rate-oracle-loop")

    async def stop(self) -> None:
        loop_task, self._loop_task = self._loop_task, None
        poll_task, self._poll_task = self._poll_task, None
        for task in (loop_task, poll_task):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if loop_task is not None:
            logger.info("Rate oracle stopped")

    async def _run_loop(self, interval_s: float) -> None:
        try:
            while True:
                self._tick()
                await asyncio.sleep(interval_s)
        except asyncio.CancelledError:
            return

    def _tick(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self.skipped_polls += 1
            logger.debug("Rate poll still in flight; skipping tick")
            return
        self._poll_task = asyncio.create_task(self.poll_once(), name="rate-oracle-poll")

    # ---------------------------
    # Polling
    # ---------------------------
    async def poll_once(self) -> ConversionRate:
        """Fetch the rate once. Returns the current rate, fresh or stale."""
        if self._in_flight:
            self.skipped_polls += 1
            return self._rate

        self._in_flight = True
        self.poll_count += 1
        try:
            price = await asyncio.wait_for(self._provider.get_asset_price(), timeout=self._timeout_s)
            value = Decimal(price) * self._multiplier
            if value <= 0:
                raise RateUnavailable("Rate feed returned a non-positive price")
        except Exception as exc:  # noqa: BLE001
            logger.warning("Rate poll failed (%s); keeping last known rate", type(exc).__name__)
            self._rate = replace(self._rate, is_stale=True)
        else:
            self._rate = ConversionRate(
                value_per_unit=value,
                observed_at=datetime.now(timezone.utc),
                is_stale=False,
            )
        finally:
            self._in_flight = False
        return self._rate

    # ---------------------------
    # Conversion
    # ---------------------------
    def require_rate(self) -> ConversionRate:
        if not self._rate.is_available:
            raise RateUnavailable("No conversion rate has been observed")
        return self._rate

    def convert_fiat_to_native(self, fiat_amount: Any) -> Decimal:
        """Fiat → native units; ``Decimal(0)`` when no rate is available."""
        try:
            amount = to_decimal(fiat_amount)
        except ValueError as exc:
            raise ValidationError(str(exc), field_name="fiat_amount") from exc
        if not self._rate.is_available:
            return Decimal(0)
        return amount / self._rate.value_per_unit

    def convert_native_to_fiat(self, native_amount: Any) -> Decimal:
        try:
            amount = to_decimal(native_amount)
        except ValueError as exc:
            raise ValidationError(str(exc), field_name="native_amount") from exc
        return amount * self._rate.value_per_unit
