"""Periodic detection cycles over a frame source."""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

import numpy as np

from .errors import VehicleTallyError
from .service import VehicleDetectionService
from .types import Detection

logger = logging.getLogger(__name__)

FrameSource = Callable[[], Optional[np.ndarray]]


class DetectionMonitor:
    """Drive ``capture -> detect -> record`` cycles at a fixed interval.

    A cycle requested while another one is still running is skipped.  Once
    :meth:`stop` is called, detections from a cycle still in flight are
    discarded instead of being recorded.  A failing cycle is logged and yields
    no detections; monitoring continues with the next cycle.
    """

    def __init__(
        self,
        service: VehicleDetectionService,
        frame_source: FrameSource | None = None,
        interval: float | None = None,
        on_detection: Callable[[List[Detection]], None] | None = None,
    ) -> None:
        self.service = service
        self.frame_source = frame_source
        self.interval = interval if interval is not None else service.config.monitor_interval
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        self.on_detection = on_detection

        self.cycles = 0
        self.skipped = 0
        self.failures = 0
        self._busy = threading.Lock()
        self._record_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _next_frame(self) -> Optional[np.ndarray]:
        if self.frame_source is None:
            return None
        frame = self.frame_source()
        if frame is None:
            logger.info("Frame source exhausted; stopping monitor")
            self._stop.set()
        return frame

    def run_cycle(self) -> Optional[List[Detection]]:
        """Run one cycle, returning its detections or ``None`` when skipped."""

        if not self._busy.acquire(blocking=False):
            self.skipped += 1
            logger.debug("Previous detection cycle still running; skipping")
            return None

        try:
            frame = self._next_frame()
            if self._stop.is_set():
                return []
            try:
                detections = self.service.detect(frame, record=False)
            except (VehicleTallyError, ValueError) as exc:
                self.failures += 1
                logger.warning("Detection cycle failed: %s", exc)
                return []

            with self._record_lock:
                if self._stop.is_set():
                    logger.debug("Monitor stopped; discarding %d detections", len(detections))
                    return []
                self.service.record(detections)
                self.cycles += 1
            logger.debug("Cycle %d recorded %d detections", self.cycles, len(detections))
            if self.on_detection is not None:
                self.on_detection(detections)
            return detections
        finally:
            self._busy.release()

    def run(self, max_cycles: int | None = None) -> None:
        """Run cycles in the current thread until stopped or ``max_cycles``.

        A :meth:`stop` issued before this call is honoured and no cycle runs.
        Only :meth:`start` re-arms a stopped monitor.
        """

        self._loop(max_cycles)

    def _loop(self, max_cycles: int | None = None) -> None:
        attempts = 0
        logger.info("Detection monitor started (interval %.1fs)", self.interval)
        try:
            while not self._stop.is_set():
                self.run_cycle()
                attempts += 1
                if max_cycles is not None and attempts >= max_cycles:
                    break
                if self._stop.wait(self.interval):
                    break
        except KeyboardInterrupt:
            logger.info("Detection monitor interrupted by user")
        except Exception:
            logger.exception("Error occurred during detection monitoring.")
            raise
        finally:
            logger.info("Detection monitor finished after %d recorded cycles", self.cycles)

    def start(self) -> None:
        """Run cycles on a background thread."""

        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="detection-monitor", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Cancel monitoring; an in-flight cycle will not record its results."""

        self._stop.set()
        # Wait out a cycle that is recording right now.
        with self._record_lock:
            pass
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
