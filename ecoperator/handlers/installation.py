import asyncio
import kopf
import time
from logging import Logger
from collections import defaultdict
from typing import Dict, Optional
from ecoperator.resources.base import BaseResource
from ecoperator.resources.installation import InstallationController
from ecoperator.resources.store import (
    INSTALLATION_GROUP,
    INSTALLATION_PLURAL,
    INSTALLATION_VERSION,
    InstallationStore,
)
from ecoperator.types.settings import RECONCILE_REQUEUE_SECONDS
from ecoperator.utils.errors import ReconcileError

INSTALLATION = (INSTALLATION_GROUP, INSTALLATION_VERSION, INSTALLATION_PLURAL)

# Use a set to track which names are already queued
names_in_queue = set()
# The actual queue for ordered processing
reconciliation_queue: Dict[str, asyncio.Queue] = defaultdict(asyncio.Queue)
# Locks to prevent race conditions when enqueueing reconciliation requests
reconciliation_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
# Every pass works on all installations, only one may run at a time
reconcile_lock = asyncio.Lock()
# Names of the installations seen by this process
known_installations = set()
# Completion time of the last pass, served by the probe
last_reconcile: Dict[str, float] = {}


def get_sensor():
    """Get sensor from the resource base class.

    Returns:
        Sensor instance or None
    """
    return getattr(BaseResource, "sensor", None)


async def latest_installation_name() -> Optional[str]:
    """Name of the newest installation, the one every pass ends up driving."""
    if known_installations:
        return max(known_installations)
    latest = await InstallationStore().latest()
    if latest is None:
        return None
    known_installations.add(latest.name)
    return latest.name


async def request_reconciliation(name: str, **kwargs):
    """Request a reconcile pass on behalf of the installation.

    Enqueues the request only if it's not already in the queue.
    Uses a lock to ensure atomicity of the check-and-add operation.
    """
    async with reconciliation_locks[name]:
        if name not in names_in_queue:
            names_in_queue.add(name)
            await reconciliation_queue[name].put(name)

            sensor = get_sensor()
            if sensor:
                sensor.on_reconcile_queued(name, reconciliation_queue[name].qsize())


async def reconcile(name: str, logger: Logger, trigger_source: str = "manual"):
    """Run one serialized reconcile pass."""
    sensor = get_sensor()
    sensor_state = None
    if sensor:
        sensor_state = sensor.on_reconcile_start(name, trigger_source)

    success = True
    error = None
    try:
        async with reconcile_lock:
            controller = InstallationController()
            controller.logger = logger
            record = await controller.reconcile()
        if record is not None:
            logger.debug(f"Installation {record.name} is {record.status.state}: {record.status.reason}")
    except ReconcileError as e:
        success = False
        error = e
        logger.error(f"Reconcile of {name} failed: {e}")
    except Exception as e:
        success = False
        error = e
        logger.error(f"Unexpected error during reconcilation: {e}")
        logger.exception(e)
    finally:
        last_reconcile["time"] = time.time()
        if sensor:
            sensor.on_reconcile_complete(name, sensor_state, success, error)


@kopf.on.resume(*INSTALLATION)
@kopf.on.create(*INSTALLATION)
async def on_create(name, logger: Logger, **kwargs):
    """Track a new installation and reconcile towards it."""
    known_installations.add(name)
    logger.info(f"Installation {name} observed")
    await request_reconciliation(name)


@kopf.on.update(*INSTALLATION, field="spec")
async def on_spec_update(name, logger: Logger, **kwargs):
    known_installations.add(name)
    await request_reconciliation(name)


@kopf.on.delete(*INSTALLATION, optional=True)
async def on_delete(name, **kwargs):
    """Drop the per installation state."""
    if name in reconciliation_queue:
        del reconciliation_queue[name]
    if name in reconciliation_locks:
        del reconciliation_locks[name]
    names_in_queue.discard(name)
    known_installations.discard(name)


@kopf.timer(*INSTALLATION, initial_delay=3.0, interval=1.5)
async def process_reconciliation_requests(name, logger: Logger, stopped, **kwargs):
    """Process reconciliation requests from the queue.

    Processes each request exactly once, even if it was
    requested multiple times while processing another request.
    """
    if stopped:
        return
    try:
        if not reconciliation_queue[name].empty():
            queue_start_time = time.time()
            reconciliation_queue[name].get_nowait()

            sensor = get_sensor()
            if sensor:
                sensor.on_reconcile_dequeued(name, time.time() - queue_start_time)

            start_time = time.time()
            await reconcile(name, logger, trigger_source="queue")
            execution_time = time.time() - start_time
            logger.info(f"Reconciliation for {name} completed in {execution_time:.2f} seconds")
            # Allow this name to be requeued after processing
            names_in_queue.remove(name)
            reconciliation_queue[name].task_done()
    except asyncio.QueueEmpty:
        pass
    except Exception as e:
        logger.error(f"Error processing reconciliation request: {e}")
        # Ensure we don't get stuck on failed requests
        names_in_queue.discard(name)


@kopf.timer(*INSTALLATION, initial_delay=30.0, interval=RECONCILE_REQUEUE_SECONDS)
async def periodic_reconciliation(name, **kwargs):
    """Reconcile even when nothing changed."""
    await request_reconciliation(name)
