import datetime
import kopf
from ecoperator.handlers.installation import last_reconcile, names_in_queue


# Liveness probe
@kopf.on.probe(id="now")
def get_current_timestamp(**kwargs):
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@kopf.on.probe(id="lastReconcile")
def get_last_reconcile(**kwargs):
    """Completion time of the last reconcile pass, None before the first one."""
    completed = last_reconcile.get("time")
    if completed is None:
        return None
    return datetime.datetime.fromtimestamp(completed, datetime.timezone.utc).isoformat()


@kopf.on.probe(id="queuedReconciles")
def get_queued_reconciles(**kwargs):
    return len(names_in_queue)
