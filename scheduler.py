# The simulation loop: on every tick each sensor, in configuration order,
# produces a reading which is stored, evaluated and, if it raised alerts,
# dispatched to the resolved recipients. Failures are contained per sensor.

import asyncio
from datetime import datetime
import logging
from typing import Callable, Optional

from dispatcher import NotificationDispatcher
from models import (AlertRecord, Reading, SchedulerStatus, Sensor,
                    SensorRuntimeStats, SensorStatus)
from readings import ReadingGenerator
from recipients import RecipientResolver
from store import AlertStore
from thresholds import ThresholdEvaluator, validate_bands

logger = logging.getLogger(__name__)

STOPPED = "stopped"
RUNNING = "running"


class SensorState:
    """Runtime state for one sensor, only touched inside its own tick."""

    def __init__(self, sensor: Sensor):
        self.sensor = sensor
        self.stats = SensorRuntimeStats()
        self.last_reading: Optional[Reading] = None
        self.lock = asyncio.Lock()

    def snapshot(self) -> SensorStatus:
        return SensorStatus(
            id=self.sensor.id,
            name=self.sensor.name,
            location=self.sensor.location,
            status=self.sensor.status,
            battery_level=self.sensor.battery_level,
            signal_strength=self.sensor.signal_strength,
            stats=self.stats.model_copy(),
            last_reading=dict(self.last_reading.values) if self.last_reading else None,
        )


class SimulationScheduler:
    def __init__(self,
                 sensors: list[Sensor],
                 generator: ReadingGenerator,
                 evaluator: ThresholdEvaluator,
                 resolver: RecipientResolver,
                 dispatcher: NotificationDispatcher,
                 store: AlertStore,
                 tick_period: float = 30.0,
                 clock: Callable[[], datetime] = datetime.now):
        self.generator = generator
        self.evaluator = evaluator
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.store = store
        self.tick_period = tick_period
        self.clock = clock

        self.states: dict[str, SensorState] = {}
        for sensor in sensors:
            if sensor.id in self.states:
                raise ValueError(f"Duplicate sensor id: {sensor.id}")
            self.states[sensor.id] = SensorState(sensor)

        self.state = STOPPED
        self.tick_count = 0
        self._timer: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        # bumped by every start and stop so a superseded start never arms a timer
        self._generation = 0

    @property
    def running(self) -> bool:
        return self.state == RUNNING

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            state=self.state,
            tick_count=self.tick_count,
            tick_period=self.tick_period,
            sensors=[state.snapshot() for state in self.states.values()],
        )

    async def start(self) -> SchedulerStatus:
        """Run one tick immediately, then keep ticking every tick_period.

        Raises SchedulerFatalError if the band table is malformed. Calling
        start() on a running scheduler only reports its status.
        """
        if self.running:
            logger.info("Simulation already running")
            return self.status()

        validate_bands(self.evaluator.bands)
        if self.generator.bands is not self.evaluator.bands:
            validate_bands(self.generator.bands)

        self.state = RUNNING
        self._generation += 1
        generation = self._generation
        logger.info("Starting sensor simulation with %d sensors", len(self.states))
        await self.store.register_sensors([s.sensor for s in self.states.values()])
        await self.tick()

        if generation != self._generation:
            # stopped, and possibly restarted, while the initial tick was in flight
            return self.status()

        self._stop_event = asyncio.Event()
        self._timer = asyncio.create_task(self._run(self._stop_event))
        logger.info("Sensor simulation started, updates every %.1f seconds",
                    self.tick_period)
        return self.status()

    async def stop(self) -> SchedulerStatus:
        """Stop the timer. A tick already in flight runs to completion."""
        if not self.running:
            return self.status()

        self.state = STOPPED
        self._generation += 1
        timer, self._timer = self._timer, None
        if self._stop_event is not None:
            self._stop_event.set()
        if timer is not None:
            await timer
        logger.info("Sensor simulation stopped")
        return self.status()

    async def _run(self, stop_event: asyncio.Event) -> None:
        while True:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.tick_period)
                return
            except asyncio.TimeoutError:
                pass
            await self.tick()

    async def tick(self) -> None:
        self.tick_count += 1
        now = self.clock()
        for state in self.states.values():
            try:
                await self.process_sensor(state, now)
            except Exception:
                state.stats.failed_ticks += 1
                logger.exception("Error processing sensor %s", state.sensor.id)

    async def process_sensor(self, state: SensorState, now: datetime) -> None:
        async with state.lock:
            reading = self.generator.generate(state.sensor, now)
            state.sensor.apply_reading(reading)
            await self.store.record_reading(reading, state.sensor)

            alerts = self.evaluator.evaluate(reading)
            if alerts:
                record = AlertRecord.from_reading(reading, alerts)
                await self.store.record_alert(record)
                recipients = await self.resolver.resolve(record.severity,
                                                         reading.location)
                await self.dispatcher.dispatch(record, recipients)

            state.stats.record_tick(len(alerts))
            state.last_reading = reading

        logger.info("%s: pH=%s, E.coli=%s, status=%s%s", reading.sensor_id,
                    reading.values.get("ph"), reading.values.get("ecoli"),
                    reading.status,
                    f" ALERTS: {len(alerts)}" if alerts else "")
