"""Single-consumer actor that runs the tracking state machine for one journey."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from .eta import TripHistory
from .models import Journey, PositionError, PositionSample
from .position_source import PositionSource, PositionSubscription
from .tracking import (
    ArmOfflineTimer,
    CancelJourney,
    CancelOfflineTimer,
    Effect,
    Event,
    HistoricalEtaLoaded,
    JourneyContext,
    OfflineTimerElapsed,
    PositionFailed,
    PositionReceived,
    StartTracking,
    TrackingState,
    TripCompleted,
    transition,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EffectSink(Protocol):
    """Receives vibration, sound, progress and trip-completion effects."""

    def handle(self, effect: Effect) -> None:
        ...


class LoggingEffectSink:
    """Logs every effect and records completed trips into a trip history."""

    def __init__(self, trip_history: Optional[TripHistory] = None):
        self.trip_history = trip_history

    def handle(self, effect: Effect) -> None:
        logger.info(f"Effect: {effect}")
        if isinstance(effect, TripCompleted) and self.trip_history is not None:
            self.trip_history.add_trip(effect.trip)


class RecordingEffectSink:
    """Keeps every effect in order of emission."""

    def __init__(self):
        self.effects: List[Effect] = []

    def handle(self, effect: Effect) -> None:
        self.effects.append(effect)

    def of_type(self, effect_type) -> List[Effect]:
        return [effect for effect in self.effects if isinstance(effect, effect_type)]


class JourneyTracker:
    """
    Tracks one journey from start until completion or cancellation.

    Position samples, position errors, the offline timer and cancel requests
    all become events on one asyncio queue. A single task takes them off in
    arrival order and runs each through ``transition`` to completion before
    the next, so no partial update is ever observable. When the journey
    reaches a terminal state the position subscription is closed and the
    offline timer cancelled before the task exits. cancel(), shutdown() and
    wait_closed() return only once the source has stopped delivering.
    """

    def __init__(
        self,
        context: JourneyContext,
        sink: Optional[EffectSink] = None,
        position_source: Optional[PositionSource] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the tracker.

        Args:
            context: Journey, path stations, preferences and thresholds.
            sink: Receiver of emitted effects. Defaults to a LoggingEffectSink.
            position_source: Source subscribed to on start, if any. Samples can
                also be posted directly with post_position().
            clock: Returns the current time; injected for tests.
        """
        self.context = context
        self.sink = sink or LoggingEffectSink()
        self.position_source = position_source
        self._clock = clock
        self.state = TrackingState.initial(context.journey)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._subscription: Optional[PositionSubscription] = None
        self._closing_subscription: Optional[PositionSubscription] = None
        self._offline_handle: Optional[asyncio.TimerHandle] = None
        self._closed = False

    @property
    def journey(self) -> Journey:
        return self.context.journey

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, historical_eta_minutes: Optional[float] = None) -> None:
        """Start consuming events and subscribe to the position source."""
        if self._task is not None:
            logger.warning("Journey tracker already started")
            return

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._queue.put_nowait(StartTracking(now=self._clock(), historical_eta_minutes=historical_eta_minutes))
        self._task = asyncio.create_task(self._run())

        if self.position_source is not None:
            self._subscription = self.position_source.subscribe(self.post_position, self.post_position_error)

        logger.info(f"Tracking journey {self.journey.from_id} -> {self.journey.to_id}")

    def post_position(self, sample: PositionSample) -> None:
        """Queue a position sample. Safe to call from any thread."""
        self._post(PositionReceived(sample=sample, now=self._clock()))

    def post_position_error(self, error: PositionError, message: str = "") -> None:
        """Queue a position-source failure. Safe to call from any thread."""
        self._post(PositionFailed(error=error, message=message))

    def post_historical_eta(self, minutes: Optional[float]) -> None:
        """Queue a historical ETA that became known after start."""
        self._post(HistoricalEtaLoaded(minutes=minutes))

    async def cancel(self) -> None:
        """End the journey without recording a trip and wait for teardown."""
        if not self.running:
            return
        self._enqueue(CancelJourney(now=self._clock()))
        await self.wait_closed()

    async def shutdown(self) -> None:
        """Stop the consumer task immediately, whatever the journey state."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            logger.info("Journey tracker cancelled")
        if not self._closed:
            # Task was cancelled before it ever ran
            self._teardown()
        await self._wait_subscription_released()

    async def wait_closed(self) -> None:
        """Wait until the journey has ended and resources are released."""
        if self._task is not None:
            await asyncio.shield(self._task)
        await self._wait_subscription_released()

    async def _wait_subscription_released(self) -> None:
        subscription, self._closing_subscription = self._closing_subscription, None
        if subscription is not None:
            await subscription.wait_closed()

    async def idle(self) -> None:
        """Wait until every event posted so far has been processed."""
        await asyncio.sleep(0)
        if self.running:
            await self._queue.join()

    def _post(self, event: Event) -> None:
        if self._loop is None or self._closed:
            logger.debug(f"Dropping {type(event).__name__}; tracker not running")
            return
        self._loop.call_soon_threadsafe(self._enqueue, event)

    def _enqueue(self, event: Event) -> None:
        if self._closed:
            logger.debug(f"Dropping {type(event).__name__}; journey already ended")
            return
        self._queue.put_nowait(event)

    async def _run(self) -> None:
        try:
            while True:
                event = await self._queue.get()
                try:
                    self._handle(event)
                finally:
                    self._queue.task_done()
                if self.state.status.terminal:
                    break
        finally:
            self._teardown()

    def _handle(self, event: Event) -> None:
        self.state, effects = transition(self.context, self.state, event)
        for effect in effects:
            self._apply(effect)

    def _apply(self, effect: Effect) -> None:
        if isinstance(effect, ArmOfflineTimer):
            self._arm_offline_timer(effect.fire_at)
            return
        if isinstance(effect, CancelOfflineTimer):
            self._cancel_offline_timer()
            return

        try:
            self.sink.handle(effect)
        except Exception as e:
            logger.error(f"Effect sink failed on {type(effect).__name__}: {e}", exc_info=True)

    def _arm_offline_timer(self, fire_at: datetime) -> None:
        self._cancel_offline_timer()
        delay = max(0.0, (fire_at - self._clock()).total_seconds())
        self._offline_handle = self._loop.call_later(delay, self._enqueue, OfflineTimerElapsed(now=fire_at))
        logger.debug(f"Offline timer fires in {delay:.1f}s")

    def _cancel_offline_timer(self) -> None:
        if self._offline_handle is not None:
            self._offline_handle.cancel()
            self._offline_handle = None

    def _teardown(self) -> None:
        self._closed = True
        self._cancel_offline_timer()

        if self._subscription is not None:
            try:
                self._subscription.close()
            except Exception as e:
                logger.warning(f"Failed to close position subscription: {e}")
            else:
                self._closing_subscription = self._subscription
            self._subscription = None

        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

        logger.info(f"Stopped tracking journey {self.journey.from_id} -> {self.journey.to_id} ({self.state.status.value})")
