"""Recurring trigger for the decay job."""

import asyncio
import logging

from .job import DecayJob, RunReport
from .scanner import ScanError

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


def _consume_exception(future: asyncio.Future) -> None:
    # Runs that outlive their deadline are never awaited again.
    if not future.cancelled() and future.exception() is not None:
        logger.debug("Background decay run ended with %r", future.exception())


class DecayScheduler:
    """Runs a DecayJob once per interval.

    The job is synchronous, so each run executes in a worker thread under
    an optional deadline. A timed-out run cannot be interrupted; until it
    returns, later ticks are skipped so that two runs never overlap.
    """

    def __init__(
        self,
        job: DecayJob,
        interval_seconds: float = DAY_SECONDS,
        run_timeout: float | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.job = job
        self.interval_seconds = interval_seconds
        self.run_timeout = run_timeout
        self.runs = 0
        self._inflight: asyncio.Future | None = None
        self._stop = asyncio.Event()

    @property
    def busy(self) -> bool:
        """True while a previous run is still executing."""
        return self._inflight is not None and not self._inflight.done()

    async def run_once(self) -> RunReport | None:
        """Run the job once.

        Returns:
            The run report, or None if the run was skipped, timed out or
            failed.
        """
        if self.busy:
            logger.warning("Previous decay run still in progress, skipping this tick")
            return None

        loop = asyncio.get_running_loop()
        self._inflight = loop.run_in_executor(None, self.job.run)
        self._inflight.add_done_callback(_consume_exception)
        self.runs += 1
        try:
            return await asyncio.wait_for(asyncio.shield(self._inflight), timeout=self.run_timeout)
        except asyncio.TimeoutError:
            logger.error("Decay run exceeded %ss, continuing in background", self.run_timeout)
            return None
        except ScanError as e:
            logger.error("Decay run aborted: %s", e)
            return None
        except Exception:
            # A failed tick must not stop later ticks.
            logger.exception("Decay run failed")
            return None

    async def run_forever(self, max_runs: int | None = None) -> None:
        """Run the job every interval until ``stop`` is called.

        Args:
            max_runs: Stop after this many ticks. Runs forever if None.
        """
        self._stop.clear()
        ticks = 0
        while not self._stop.is_set():
            await self.run_once()
            ticks += 1
            if max_runs is not None and ticks >= max_runs:
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        """Ask ``run_forever`` to return after the current tick."""
        self._stop.set()
