#!/usr/bin/env python3

# Script to simulate water-quality sensors, evaluate every reading against
# tiered thresholds and notify officials about the resulting alerts. Readings,
# sensor state and alert records are published to a NATS server; start, stop
# and status commands are answered on the control subject.

import argparse
import asyncio
import json
import logging
import os
import random
from typing import Optional

import nats

from config import ConfigError, Settings, load_settings
from dispatcher import NotificationDispatcher
from errors import AquaWatchError
from readings import ReadingGenerator
from recipients import RecipientResolver
from scheduler import SimulationScheduler
from sinks import LoggingNotificationChannel, NatsNotificationChannel, NatsPersistenceSink
from store import AlertStore
from stream import Stream
from summary import build_daily_summary, render_summary
from thresholds import ThresholdEvaluator

logger = logging.getLogger(__name__)


def build_scheduler(settings: Settings,
                    connection: Optional[nats.NATS] = None) -> SimulationScheduler:
    """Wire the pipeline together; without a connection everything stays in memory."""
    if connection is not None and not settings.memory_only:
        sink = NatsPersistenceSink(connection, prefix=settings.subject_prefix,
                                   request_timeout=settings.lookup_timeout)
        channel = NatsNotificationChannel(connection, prefix=settings.subject_prefix)
    else:
        sink = None
        channel = LoggingNotificationChannel()

    store = AlertStore(sink, reading_capacity=settings.reading_buffer,
                       alert_capacity=settings.alert_buffer)
    return SimulationScheduler(
        sensors=settings.sensors,
        generator=ReadingGenerator(settings.bands, rng=random.Random(settings.seed)),
        evaluator=ThresholdEvaluator(settings.bands),
        resolver=RecipientResolver(sink, settings.fallback_recipients,
                                   lookup_timeout=settings.lookup_timeout),
        dispatcher=NotificationDispatcher(
            channel,
            emergency_contacts=tuple(settings.emergency_contacts),
            bands=settings.bands,
            send_timeout=settings.send_timeout,
            batch_timeout=settings.batch_timeout,
        ),
        store=store,
        tick_period=settings.tick_period,
    )


async def handle_command(scheduler: SimulationScheduler, command: str) -> dict:
    """Run a control command and return the reply payload."""
    command = command.strip().lower()
    try:
        if command == "start":
            status = await scheduler.start()
        elif command == "stop":
            status = await scheduler.stop()
        elif command == "status":
            status = scheduler.status()
        else:
            return {"error": f"Unknown command: {command}"}
    except AquaWatchError as e:
        logger.error("Command %s failed: %s", command, e)
        return {"error": str(e), "status": scheduler.status().model_dump(mode="json")}
    return status.model_dump(mode="json")


async def control_listener(connection: nats.NATS, subject: str,
                           scheduler: SimulationScheduler):
    """Answer start/stop/status requests on the control subject"""

    async def on_message(msg):
        logger.debug("Received control message: %s", msg.data.decode())
        reply = await handle_command(scheduler, msg.data.decode())
        if msg.reply:
            await msg.respond(json.dumps(reply).encode("utf-8"))

    logger.debug("Listening for control commands on %s", subject)
    return await connection.subscribe(subject, cb=on_message)


async def send_daily_summary(scheduler: SimulationScheduler):
    summary = build_daily_summary(scheduler.store, scheduler.status())
    subject, body = render_summary(summary)
    recipients = await scheduler.resolver.resolve_summary()
    return await scheduler.dispatcher.dispatch_summary(subject, body, recipients)


async def summary_loop(scheduler: SimulationScheduler, interval: float):
    while True:
        await asyncio.sleep(interval)
        try:
            await send_daily_summary(scheduler)
        except Exception:
            logger.exception("Failed to send daily summary")


async def main(settings: Settings):
    connection = None
    if not settings.memory_only:
        connection = await Stream.connect(settings.nats_server)

    scheduler = build_scheduler(settings, connection)
    tasks = []

    try:
        if connection is not None:
            await control_listener(connection, f"{settings.subject_prefix}.control",
                                   scheduler)
        await scheduler.start()

        if settings.summary_interval:
            tasks.append(asyncio.create_task(
                summary_loop(scheduler, settings.summary_interval)))

        # Run until cancelled
        await asyncio.Event().wait()
    finally:
        for task in tasks:
            task.cancel()
        await scheduler.stop()
        if connection is not None:
            await connection.drain()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="AquaWatch sensor simulator and alerting pipeline",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser.add_argument("--config", type=str, help="JSON settings file",
                        default=os.getenv("AQUAWATCH_CONFIG"))
    parser.add_argument("--nats-server", type=str, help="NATS server URL",
                        default=os.getenv("NATS_SERVER"))
    parser.add_argument("--subject-prefix", type=str,
                        help="Prefix for all NATS subjects",
                        default=os.getenv("AQUAWATCH_SUBJECT_PREFIX"))
    parser.add_argument("--tick-period", type=float,
                        help="Seconds between simulation ticks",
                        default=os.getenv("AQUAWATCH_TICK_PERIOD"))
    parser.add_argument("--summary-interval", type=float,
                        help="Seconds between daily summary reports, 0 to disable",
                        default=os.getenv("AQUAWATCH_SUMMARY_INTERVAL"))
    parser.add_argument("--seed", type=int, help="Random seed for reproducible runs",
                        default=os.getenv("AQUAWATCH_SEED"))
    parser.add_argument("--memory-only", action="store_true",
                        help="Run without NATS, keeping history in memory only")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


def run(argv=None):
    args = parse_args(argv)

    loglevel = logging.INFO
    if args.debug:
        loglevel = logging.DEBUG
    logging.basicConfig(level=loglevel,
                        format="%(asctime)s [%(levelname)s] %(message)s")

    try:
        settings = load_settings(
            args.config,
            nats_server=args.nats_server,
            subject_prefix=args.subject_prefix,
            tick_period=args.tick_period,
            summary_interval=args.summary_interval,
            seed=args.seed,
            memory_only=args.memory_only or None,
        )
    except ConfigError as e:
        logger.error("%s", e)
        raise SystemExit(2)

    try:
        asyncio.run(main(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except AquaWatchError as e:
        logger.error("Simulator failed: %s", e)
        raise SystemExit(1)


if __name__ == "__main__":
    run()
