# rtls/simulator.py
# ------------------------------------------------------------
# Telemetry simulator: stand-in for real sensor ingestion.
#
# Each tick:
# 1. for every non-offline device, build a perturbed reading and
#    push it through RTLSService.report_telemetry (the same entry
#    point a real adapter uses); failures are per device
# 2. staleness sweep + alert retention purge
# 3. publish the {devices, alerts} snapshot to subscribers,
#    off the event loop so a slow subscriber never stalls ticks
#
# The interval is re-read from SystemSettings every tick.
#
# With generate=False step 1 is skipped: state only moves through
# the API or an ingestion adapter, but the loop still sweeps
# stale devices, purges old alerts and publishes to the feed.
# ------------------------------------------------------------

from __future__ import annotations

import asyncio
import random
from typing import Any, Dict, Optional

import structlog

from .generators import next_reading

logger = structlog.get_logger(__name__)


class TelemetrySimulator:
    def __init__(
        self,
        service,
        rng: Optional[random.Random] = None,
        *,
        generate: bool = True,
    ) -> None:
        self.service = service
        self.generate = generate
        self.rng = rng or random.Random()
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> Dict[str, Any]:
        """
        Apply one simulation step and return the resulting snapshot.
        """
        svc = self.service
        updated = 0
        failed = 0

        # hold the lock for the whole pass so an offline toggle from the
        # API cannot land between the status check and the reading
        with svc.lock:
            devices = svc.list_devices() if self.generate else []
            for device in devices:
                if device.status == "offline":
                    continue
                try:
                    svc.report_telemetry(device.id, next_reading(device, self.rng, svc.config))
                    updated += 1
                except Exception:
                    failed += 1
                    logger.exception("simulated_reading_failed", device_id=device.id)

            svc.sweep()

        self.ticks += 1
        logger.debug("simulator_tick", tick=self.ticks, updated=updated, failed=failed)
        return svc.snapshot()

    def step(self) -> Dict[str, Any]:
        """
        Synchronous tick + publish (tests, CLI-style driving).
        """
        snapshot = self.tick()
        self.service.publish(snapshot)
        return snapshot

    async def run_once(self) -> Dict[str, Any]:
        # tick takes the service lock, which route handlers hold from the threadpool
        snapshot = await asyncio.to_thread(self.tick)
        await asyncio.to_thread(self.service.publish, snapshot)
        return snapshot

    async def run(self) -> None:
        logger.info("simulator_started", generate=self.generate)
        try:
            while True:
                try:
                    await self.run_once()
                except Exception:
                    # never let one bad tick kill the loop
                    logger.exception("simulator_tick_failed")
                await asyncio.sleep(self.service.get_system_settings().update_interval)
        except asyncio.CancelledError:
            logger.info("simulator_stopped", ticks=self.ticks)
            raise

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
