import copy
from typing import List, Optional
from kubernetes_asyncio.client import ApiException
from ecoperator.resources.base import BaseResource
from ecoperator.types.models import InstallationRecord
from ecoperator.types.schemas import dump_status, load_installation
from ecoperator.utils.errors import StatusConflictError, conflict_error

INSTALLATION_GROUP = "embeddedcluster.replicated.com"
INSTALLATION_VERSION = "v1beta1"
INSTALLATION_PLURAL = "installations"
INSTALLATION_KIND = "Installation"


def sort_installations(records: List[InstallationRecord]) -> List[InstallationRecord]:
    """Newest first. Names sort chronologically, creation time breaks ties."""
    return sorted(
        records,
        key=lambda r: (r.name or "", r.creation_timestamp or ""),
        reverse=True,
    )


class InstallationStore(BaseResource):
    """Reads and writes Installation objects."""

    async def list_installations(self) -> List[InstallationRecord]:
        """All installations, newest first."""
        items = await self.list_cluster_custom_objects(
            INSTALLATION_GROUP, INSTALLATION_VERSION, INSTALLATION_PLURAL
        )
        return sort_installations([load_installation(item) for item in items])

    async def latest(self) -> Optional[InstallationRecord]:
        records = await self.list_installations()
        return records[0] if records else None

    async def update_status(self, record: InstallationRecord) -> InstallationRecord:
        """Write the record's status, guarded by its resource version.

        Raises StatusConflictError when the object changed since it was read.
        """
        body = copy.deepcopy(record.body)
        body["status"] = dump_status(record.status)
        try:
            updated = await self.custom_objects_api.replace_cluster_custom_object_status(
                group=INSTALLATION_GROUP,
                version=INSTALLATION_VERSION,
                plural=INSTALLATION_PLURAL,
                name=record.name,
                body=body,
            )
        except ApiException as ex:
            if conflict_error(ex):
                self.sensor.on_status_conflict(record.name)
                raise StatusConflictError(f"conflict writing status of {record.name}") from ex
            raise
        return load_installation(updated)

    async def set_high_availability(self, record: InstallationRecord) -> None:
        body = copy.deepcopy(record.body)
        body.setdefault("spec", {})["highAvailability"] = True
        await self.custom_objects_api.replace_cluster_custom_object(
            group=INSTALLATION_GROUP,
            version=INSTALLATION_VERSION,
            plural=INSTALLATION_PLURAL,
            name=record.name,
            body=body,
        )

    async def fetch(self, name: str) -> Optional[InstallationRecord]:
        body = await self.get_cluster_custom_object(
            INSTALLATION_GROUP, INSTALLATION_VERSION, INSTALLATION_PLURAL, name
        )
        return load_installation(body) if body is not None else None
