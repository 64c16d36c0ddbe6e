"""
Radome shared data models.

These models define the structure of all data passed between
components in the Radome system.
"""

import re
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

INSTANCE_LABEL = "radome.instance"
NAME_ANNOTATION = "radome.instance/name"
DOCKER_HUB_ANNOTATION = "radome.instance/docker-hub-url"
RESOURCE_PREFIX = "radome-agent-"

ENV_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")

# Enums


class InstanceStatus(str, Enum):
    """Coarse lifecycle status of a workload."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


class TargetMode(str, Enum):
    """How the proxy reaches workloads."""

    DIRECT = "direct"
    TUNNEL = "tunnel"


# Naming helpers


def resource_name(instance_id: str) -> str:
    """Deployment and Service name for an instance."""
    return f"{RESOURCE_PREFIX}{instance_id}"


def service_host(instance_id: str, namespace: str) -> str:
    """Fully qualified in-cluster DNS name of an instance's Service."""
    return f"{resource_name(instance_id)}.{namespace}.svc.cluster.local"


# Domain Models


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WorkloadInstance(CamelModel):
    """A provisioned agent workload. Immutable; replaced wholesale by the directory."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    image: str
    docker_hub_url: Optional[str] = None
    container_port: int
    namespace: str
    deployment_name: str
    service_name: str
    service_host: str
    created_at: str
    name: Optional[str] = None
    status: InstanceStatus = InstanceStatus.STARTING
    status_message: Optional[str] = None

    @classmethod
    def build(
        cls,
        instance_id: str,
        image: str,
        container_port: int,
        namespace: str,
        created_at: str,
        name: Optional[str] = None,
        docker_hub_url: Optional[str] = None,
        status: InstanceStatus = InstanceStatus.STARTING,
        status_message: Optional[str] = None,
    ) -> "WorkloadInstance":
        """Create an instance with the conventional resource names filled in."""
        return cls(
            id=instance_id,
            image=image,
            docker_hub_url=docker_hub_url,
            container_port=container_port,
            namespace=namespace,
            deployment_name=resource_name(instance_id),
            service_name=resource_name(instance_id),
            service_host=service_host(instance_id, namespace),
            created_at=created_at,
            name=name,
            status=status,
            status_message=status_message,
        )

    def with_status(
        self, status: InstanceStatus, status_message: Optional[str] = None
    ) -> "WorkloadInstance":
        """Return a copy carrying a new status."""
        return self.model_copy(update={"status": status, "status_message": status_message})

    def to_dict(self) -> Dict:
        """Convert to the camelCase dictionary used on the control API."""
        return self.model_dump(mode="json", by_alias=True)


class AllowedImage(CamelModel):
    """An image the catalog permits provisioning from."""

    name: str = Field(..., min_length=1)
    docker_hub_url: str
    default_port: int = Field(..., ge=1, le=65535)
    description: str = ""
    env: Optional[Dict[str, str]] = None


# Request Models (API Input)


class CreateInstanceRequest(CamelModel):
    """Request to provision a workload."""

    image: str = Field(..., min_length=1, description="Allowed image name")
    container_port: Optional[int] = Field(
        None, ge=1, le=65535, description="Port the agent listens on (defaults to the image's)"
    )
    name: Optional[str] = Field(None, max_length=253, description="Friendly label")
    env: Optional[Dict[str, str]] = Field(None, description="Extra environment variables")
    command: Optional[List[str]] = Field(None, description="Container command override")

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        """Ensure environment variable names are valid."""
        if v is None:
            return v
        for key in v:
            if not ENV_NAME_PATTERN.match(key):
                raise ValueError(f"Invalid environment variable name: {key}")
        return v

