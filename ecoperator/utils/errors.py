import json
import kubernetes_asyncio

_ALREADY_EXISTS = "alreadyexists"
_NOT_FOUND = "notfound"
_CONFLICT = "conflict"


class ReconcileError(Exception):
    """A reconcile pass could not complete."""


class StatusConflictError(ReconcileError):
    """The Installation status was written by someone else first.

    The pass ends early and the next triggered reconcile picks up the latest object.
    """


class MetadataError(ReconcileError):
    """Release metadata for a version could not be fetched or parsed."""


class HAPreconditionError(Exception):
    """High availability cannot be enabled right now."""


class MigrationError(Exception):
    """Registry data could not be copied into the object store."""


def _reason(ex: kubernetes_asyncio.client.ApiException) -> str:
    try:
        err = json.loads(ex.body)
    except (TypeError, ValueError):
        return ""
    if not isinstance(err, dict):
        return ""
    return (err.get("reason") or "").lower()


def already_exists_error(ex: kubernetes_asyncio.client.ApiException) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 409 and _reason(ex) == _ALREADY_EXISTS


def not_found_error(ex: kubernetes_asyncio.client.ApiException) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 404 or _reason(ex) == _NOT_FOUND


def conflict_error(ex: kubernetes_asyncio.client.ApiException) -> bool:
    """Optimistic concurrency failure (resourceVersion mismatch)."""
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 409 and _reason(ex) in (_CONFLICT, "")

