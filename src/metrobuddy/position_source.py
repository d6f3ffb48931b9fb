"""Position sources that push samples into a journey tracker."""

import asyncio
import logging
import threading
from typing import Callable, List, Optional, Protocol, Tuple

from .feed_client import VehicleFeedClient
from .models import PositionError, PositionSample

logger = logging.getLogger(__name__)

SampleCallback = Callable[[PositionSample], None]
ErrorCallback = Callable[[PositionError, str], None]

DEFAULT_POLL_INTERVAL = 15.0


class PositionSubscription(Protocol):
    def close(self) -> None:
        """Stop delivery; callbacks may still be in flight."""
        ...

    async def wait_closed(self) -> None:
        """Wait until no further callback can be invoked."""
        ...


class PositionSource(Protocol):
    """Anything that can deliver position samples to a subscriber."""

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> PositionSubscription:
        ...


class _CallbackSubscription:
    def __init__(self, source: "ManualPositionSource", callbacks: Tuple[SampleCallback, ErrorCallback]):
        self._source = source
        self._callbacks = callbacks

    def close(self) -> None:
        self._source._remove(self._callbacks)

    async def wait_closed(self) -> None:
        # Removal under the source lock is immediate
        return None


class ManualPositionSource:
    """
    Position source driven by the caller.

    Useful for replaying recorded traces and for feeding fixes obtained
    elsewhere. ``push`` and ``fail`` may be called from any thread.
    """

    def __init__(self):
        self._subscribers: List[Tuple[SampleCallback, ErrorCallback]] = []
        self._lock = threading.Lock()

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> PositionSubscription:
        callbacks = (on_sample, on_error)
        with self._lock:
            self._subscribers.append(callbacks)
        return _CallbackSubscription(self, callbacks)

    def _remove(self, callbacks: Tuple[SampleCallback, ErrorCallback]) -> None:
        with self._lock:
            if callbacks in self._subscribers:
                self._subscribers.remove(callbacks)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def push(self, sample: PositionSample) -> None:
        """Deliver a sample to every subscriber."""
        with self._lock:
            subscribers = list(self._subscribers)
        for on_sample, _ in subscribers:
            on_sample(sample)

    def fail(self, error: PositionError, message: str = "") -> None:
        """Report a position failure to every subscriber."""
        with self._lock:
            subscribers = list(self._subscribers)
        for _, on_error in subscribers:
            on_error(error, message)


class _PollingSubscription:
    def __init__(self, task: "asyncio.Task"):
        self._task = task

    def close(self) -> None:
        if not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        # asyncio.wait does not re-raise the poll task's CancelledError
        await asyncio.wait([self._task])


class FeedPositionSource:
    """
    Polls a GTFS-realtime vehicle feed for the vehicle the traveller rides.

    Only samples newer than the last delivered one are passed on. Fetch
    failures are reported as POSITION_UNAVAILABLE and polling continues.
    """

    def __init__(
        self,
        client: VehicleFeedClient,
        vehicle_id: Optional[str] = None,
        trip_id: Optional[str] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        if not vehicle_id and not trip_id:
            raise ValueError("A vehicle_id or trip_id is required to follow a vehicle")
        self.client = client
        self.vehicle_id = vehicle_id
        self.trip_id = trip_id
        self.poll_interval = poll_interval

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> PositionSubscription:
        """Start polling on the running event loop."""
        task = asyncio.get_running_loop().create_task(self._poll_loop(on_sample, on_error))
        logger.info(f"Following vehicle {self.vehicle_id or '-'} / trip {self.trip_id or '-'}")
        return _PollingSubscription(task)

    async def _poll_loop(self, on_sample: SampleCallback, on_error: ErrorCallback) -> None:
        loop = asyncio.get_running_loop()
        last_timestamp = None

        try:
            while True:
                try:
                    sample = await loop.run_in_executor(
                        None, self.client.get_vehicle_position, self.vehicle_id, self.trip_id
                    )
                except Exception as e:
                    logger.warning(f"Vehicle feed poll failed: {e}")
                    on_error(PositionError.POSITION_UNAVAILABLE, str(e))
                else:
                    if sample is None:
                        logger.debug("Vehicle not present in feed")
                    elif last_timestamp is None or sample.timestamp > last_timestamp:
                        last_timestamp = sample.timestamp
                        on_sample(sample)

                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.info("Vehicle feed polling stopped")
            raise
