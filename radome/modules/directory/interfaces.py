"""Directory interfaces following Black Box Design principles."""
from typing import Optional, Protocol

from radome.modules.api.models import WorkloadInstance


class InstanceStore(Protocol):
    """What the proxy needs from an instance directory."""

    def lookup(self, instance_id: str) -> Optional[WorkloadInstance]:
        """Return the in-memory record, if any."""
        ...

    async def lookup_or_hydrate(self, instance_id: str) -> Optional[WorkloadInstance]:
        """Return the record, reading it from the cluster on a miss."""
        ...

