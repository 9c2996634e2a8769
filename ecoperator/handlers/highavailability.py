import kopf
from logging import Logger
from ecoperator.common.models.labels import Labels
from ecoperator.handlers.installation import (
    INSTALLATION,
    get_sensor,
    reconcile_lock,
    request_reconciliation,
)
from ecoperator.resources.highavailability import HighAvailabilityCoordinator
from ecoperator.resources.store import InstallationStore
from ecoperator.utils.errors import HAPreconditionError

HA_ENABLED = "HighAvailabilityEnabled"
HA_FAILED = "HighAvailabilityFailed"


@kopf.on.field(
    *INSTALLATION,
    field="metadata.annotations",
    annotations={Labels.ENABLE_HA_ANNOTATION: kopf.PRESENT},
)
async def on_enable_ha_requested(name, body, annotations, patch, logger: Logger, **kwargs):
    """Enable high availability when the installer asks for it through an annotation.

    The outcome is posted as an event and the annotation is always removed.
    """
    sensor = get_sensor()
    sensor_state = sensor.on_ha_enablement_start(name) if sensor else None
    success = True
    error = None
    try:
        logger.info(f"High availability requested for {name}")
        async with reconcile_lock:
            record = await InstallationStore().fetch(name)
            if record is None:
                raise HAPreconditionError(f"installation {name} no longer exists")
            coordinator = HighAvailabilityCoordinator()
            coordinator.logger = logger
            await coordinator.enable(record)
        kopf.event(
            body,
            type="Normal",
            reason=HA_ENABLED,
            message=f"High availability enabled for '{name}'",
        )
    except HAPreconditionError as e:
        success = False
        error = e
        kopf.event(
            body,
            type="Warning",
            reason=HA_FAILED,
            message=f"Cannot enable high availability for '{name}': {e}",
        )
    except Exception as e:
        success = False
        error = e
        logger.exception(e)
        kopf.event(
            body,
            type="Warning",
            reason=HA_FAILED,
            message=f"Failed to enable high availability for '{name}': {e}",
        )
    finally:
        if sensor:
            sensor.on_ha_enablement_complete(name, sensor_state, success, error)
        # Always remove the annotation to prevent repeated attempts
        if Labels.ENABLE_HA_ANNOTATION in (annotations or {}):
            patch.metadata.annotations[Labels.ENABLE_HA_ANNOTATION] = None
            logger.info(f"Removed {Labels.ENABLE_HA_ANNOTATION} annotation from {name}")
    await request_reconciliation(name)
