import asyncio
import logging
import re
import uuid
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from kubernetes import client

from radome.errors import ClusterQueryError
from radome.modules.api.models import (
    DOCKER_HUB_ANNOTATION,
    INSTANCE_LABEL,
    NAME_ANNOTATION,
    RESOURCE_PREFIX,
    AllowedImage,
    CreateInstanceRequest,
    InstanceStatus,
    WorkloadInstance,
    resource_name,
)
from radome.modules.kube import KubeModule, call_kube

from .status import derive_status, latest_pod

logger = logging.getLogger("radome.directory")

# Instance ids become part of DNS-1123 object names
_ID_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_MAX_ID_LENGTH = 63 - len(RESOURCE_PREFIX)


def is_valid_instance_id(instance_id: str) -> bool:
    """Check an identifier can name Kubernetes objects."""
    return len(instance_id) <= _MAX_ID_LENGTH and bool(_ID_PATTERN.match(instance_id))


def _timestamp(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class InstanceDirectory:
    """
    Authoritative in-memory record of provisioned workloads.

    The map is copy-on-write: every change builds a new dict and swaps it in
    with a single assignment, so readers always see a complete snapshot.
    Kubernetes calls run in worker threads; state is only swapped on the
    event loop.
    """

    def __init__(self, kube: KubeModule, namespace: str, image_pull_secret: Optional[str] = None):
        """
        Initialize instance directory.

        Args:
            kube: Kubernetes client module
            namespace: Namespace workloads live in
            image_pull_secret: Existing pull secret to reference from Deployments
        """
        self.kube = kube
        self.namespace = namespace
        self.image_pull_secret = image_pull_secret
        self._instances: Dict[str, WorkloadInstance] = {}
        self._refreshing: Dict[str, asyncio.Task] = {}

    # In-memory operations

    def snapshot(self) -> Mapping[str, WorkloadInstance]:
        """Read-only view of the current map."""
        return MappingProxyType(self._instances)

    def lookup(self, instance_id: str) -> Optional[WorkloadInstance]:
        return self._instances.get(instance_id)

    def upsert(self, instance: WorkloadInstance) -> None:
        self._instances = {**self._instances, instance.id: instance}

    def remove(self, instance_id: str) -> bool:
        if instance_id not in self._instances:
            return False
        self._instances = {k: v for k, v in self._instances.items() if k != instance_id}
        return True

    # Cluster reconciliation

    def _from_objects(
        self,
        instance_id: str,
        service: Optional[client.V1Service],
        deployment: Optional[client.V1Deployment],
        previous: Optional[WorkloadInstance] = None,
    ) -> Optional[WorkloadInstance]:
        """Rebuild a record from Service/Deployment metadata."""
        if service is None:
            return None

        metadata = service.metadata
        namespace = metadata.namespace or self.namespace
        annotations: Dict[str, str] = {}
        annotations.update(metadata.annotations or {})

        ports = service.spec.ports if service.spec and service.spec.ports else []
        container_port = ports[0].port if ports else None

        image = previous.image if previous else ""
        created_at = _timestamp(metadata.creation_timestamp)
        status = previous.status if previous else InstanceStatus.STARTING
        status_message = previous.status_message if previous else None

        if deployment is not None:
            annotations.update(deployment.metadata.annotations or {})
            created_at = _timestamp(deployment.metadata.creation_timestamp) or created_at
            containers = deployment.spec.template.spec.containers or []
            if containers:
                image = containers[0].image or image
                if container_port is None and containers[0].ports:
                    container_port = containers[0].ports[0].container_port
        else:
            status = InstanceStatus.ERROR
            status_message = f"Deployment {resource_name(instance_id)} not found"

        if container_port is None:
            logger.warning(f"Service for instance {instance_id} exposes no port; skipping")
            return None

        return WorkloadInstance.build(
            instance_id=instance_id,
            image=image,
            container_port=container_port,
            namespace=namespace,
            created_at=created_at or datetime.now(UTC).isoformat(),
            name=annotations.get(NAME_ANNOTATION),
            docker_hub_url=annotations.get(DOCKER_HUB_ANNOTATION),
            status=status,
            status_message=status_message,
        )

    async def hydrate(self, instance_id: str) -> Optional[WorkloadInstance]:
        """
        Read an instance from the cluster and add it to the directory.

        Returns:
            The hydrated instance, or None if the cluster has no such instance

        Raises:
            ClusterQueryError: If the cluster could not be queried
        """
        if not is_valid_instance_id(instance_id):
            return None

        name = resource_name(instance_id)
        service = await asyncio.to_thread(
            call_kube, self.kube.core_api.read_namespaced_service, name, self.namespace
        )
        if service is None:
            return None
        labels = service.metadata.labels or {}
        if labels.get(INSTANCE_LABEL) != instance_id:
            logger.warning(f"Service {name} is not labelled {INSTANCE_LABEL}={instance_id}")
            return None

        deployment = await asyncio.to_thread(
            call_kube, self.kube.apps_api.read_namespaced_deployment, name, self.namespace
        )
        if deployment is None:
            # Unlike sync_all, a lone Service is not routable, so it is not recorded
            return None

        instance = self._from_objects(instance_id, service, deployment)
        if instance is None:
            return None

        # A concurrent hydrate or create may have won the race
        existing = self._instances.get(instance_id)
        if existing is not None:
            return existing
        self.upsert(instance)
        logger.info(f"Hydrated instance {instance_id} from cluster")
        return instance

    async def lookup_or_hydrate(self, instance_id: str) -> Optional[WorkloadInstance]:
        instance = self.lookup(instance_id)
        if instance is not None:
            return instance
        return await self.hydrate(instance_id)

    async def sync_all(self) -> Mapping[str, WorkloadInstance]:
        """
        Rebuild the whole map from labelled Services and Deployments.

        Entries without a Service are dropped. Known instances keep their
        last derived status. Instances created or removed while the listing
        was in flight keep their newer state.

        Raises:
            ClusterQueryError: If listing fails (the map is left untouched)
        """
        before = self._instances

        services = await asyncio.to_thread(
            call_kube,
            self.kube.core_api.list_namespaced_service,
            self.namespace,
            label_selector=INSTANCE_LABEL,
            allow_missing=False,
        )
        deployments = await asyncio.to_thread(
            call_kube,
            self.kube.apps_api.list_namespaced_deployment,
            self.namespace,
            label_selector=INSTANCE_LABEL,
            allow_missing=False,
        )

        deployments_by_id = {}
        for deployment in deployments.items:
            instance_id = (deployment.metadata.labels or {}).get(INSTANCE_LABEL)
            if instance_id:
                deployments_by_id[instance_id] = deployment

        rebuilt: Dict[str, WorkloadInstance] = {}
        for service in services.items:
            instance_id = (service.metadata.labels or {}).get(INSTANCE_LABEL)
            if not instance_id:
                continue
            instance = self._from_objects(
                instance_id, service, deployments_by_id.get(instance_id), before.get(instance_id)
            )
            if instance is not None:
                rebuilt[instance_id] = instance

        current = self._instances
        for instance_id in current.keys() - before.keys():
            rebuilt.setdefault(instance_id, current[instance_id])
        for instance_id in before.keys() - current.keys():
            rebuilt.pop(instance_id, None)

        dropped = before.keys() - rebuilt.keys()
        self._instances = rebuilt
        logger.info(f"Synced {len(rebuilt)} instances from cluster ({len(dropped)} dropped)")
        return self.snapshot()

    # Status

    async def _refresh(self, instance_id: str) -> Optional[WorkloadInstance]:
        instance = self._instances.get(instance_id)
        if instance is None:
            return None

        try:
            pods = await asyncio.to_thread(
                call_kube,
                self.kube.core_api.list_namespaced_pod,
                instance.namespace,
                label_selector=f"{INSTANCE_LABEL}={instance_id}",
                allow_missing=False,
            )
            status, message = derive_status(latest_pod(pods.items))
        except ClusterQueryError as e:
            logger.warning(f"Status query failed for instance {instance_id}: {e.message}")
            status, message = InstanceStatus.ERROR, e.message

        # Removed while the query was in flight
        current = self._instances.get(instance_id)
        if current is None:
            return None
        updated = current.with_status(status, message)
        self.upsert(updated)
        return updated

    def _forget_refresh(self, instance_id: str, task: asyncio.Task) -> None:
        if self._refreshing.get(instance_id) is task:
            del self._refreshing[instance_id]

    async def refresh_status(self, instance_id: str) -> Optional[WorkloadInstance]:
        """
        Re-derive an instance's status from its pods.

        Concurrent callers for the same id share one cluster query. Readers
        keep seeing the previous record until the new one is swapped in.
        """
        task = self._refreshing.get(instance_id)
        if task is None:
            task = asyncio.create_task(self._refresh(instance_id))
            self._refreshing[instance_id] = task
            task.add_done_callback(lambda t: self._forget_refresh(instance_id, t))
        return await asyncio.shield(task)

    async def refresh_all(self) -> List[WorkloadInstance]:
        """Refresh every known instance and return the refreshed records."""
        ids = list(self._instances)
        refreshed = await asyncio.gather(*(self.refresh_status(i) for i in ids))
        return [instance for instance in refreshed if instance is not None]

    # Provisioning

    def _build_deployment(
        self,
        instance_id: str,
        image: AllowedImage,
        request: CreateInstanceRequest,
        container_port: int,
    ) -> client.V1Deployment:
        labels = {INSTANCE_LABEL: instance_id}
        annotations = {}
        if request.name:
            annotations[NAME_ANNOTATION] = request.name
        if image.docker_hub_url:
            annotations[DOCKER_HUB_ANNOTATION] = image.docker_hub_url

        env = {**(image.env or {}), **(request.env or {})}
        container = client.V1Container(
            name="agent",
            image=image.name,
            ports=[client.V1ContainerPort(container_port=container_port)],
            env=[client.V1EnvVar(name=k, value=v) for k, v in env.items()] or None,
            command=request.command or None,
        )

        pull_secrets = None
        if self.image_pull_secret:
            pull_secrets = [client.V1LocalObjectReference(name=self.image_pull_secret)]

        return client.V1Deployment(
            api_version="apps/v1",
            kind="Deployment",
            metadata=client.V1ObjectMeta(
                name=resource_name(instance_id),
                labels=labels,
                annotations=annotations or None,
            ),
            spec=client.V1DeploymentSpec(
                replicas=1,
                selector=client.V1LabelSelector(match_labels=labels),
                template=client.V1PodTemplateSpec(
                    metadata=client.V1ObjectMeta(labels=labels),
                    spec=client.V1PodSpec(
                        containers=[container],
                        image_pull_secrets=pull_secrets,
                    ),
                ),
            ),
        )

    def _build_service(
        self, instance_id: str, request: CreateInstanceRequest, container_port: int
    ) -> client.V1Service:
        labels = {INSTANCE_LABEL: instance_id}
        annotations = {NAME_ANNOTATION: request.name} if request.name else None
        return client.V1Service(
            api_version="v1",
            kind="Service",
            metadata=client.V1ObjectMeta(
                name=resource_name(instance_id),
                labels=labels,
                annotations=annotations,
            ),
            spec=client.V1ServiceSpec(
                selector=labels,
                ports=[client.V1ServicePort(port=container_port, target_port=container_port)],
            ),
        )

    async def create_instance(
        self, image: AllowedImage, request: CreateInstanceRequest
    ) -> WorkloadInstance:
        """
        Provision a Deployment and Service for a new instance.

        Args:
            image: Catalog record the request was validated against
            request: Provisioning request

        Returns:
            The new instance, status "starting"

        Raises:
            ClusterQueryError: If the cluster rejects either object
        """
        instance_id = str(uuid.uuid4())
        container_port = request.container_port or image.default_port
        deployment = self._build_deployment(instance_id, image, request, container_port)
        service = self._build_service(instance_id, request, container_port)

        created = await asyncio.to_thread(
            call_kube,
            self.kube.apps_api.create_namespaced_deployment,
            self.namespace,
            deployment,
            allow_missing=False,
        )
        try:
            await asyncio.to_thread(
                call_kube,
                self.kube.core_api.create_namespaced_service,
                self.namespace,
                service,
                allow_missing=False,
            )
        except ClusterQueryError:
            logger.error(f"Service creation failed for instance {instance_id}; removing Deployment")
            try:
                await asyncio.to_thread(
                    call_kube,
                    self.kube.apps_api.delete_namespaced_deployment,
                    resource_name(instance_id),
                    self.namespace,
                )
            except ClusterQueryError as cleanup_error:
                logger.error(f"Failed to remove Deployment for {instance_id}: {cleanup_error.message}")
            raise

        created_at = None
        if created is not None and getattr(created, "metadata", None) is not None:
            created_at = _timestamp(created.metadata.creation_timestamp)

        instance = WorkloadInstance.build(
            instance_id=instance_id,
            image=image.name,
            container_port=container_port,
            namespace=self.namespace,
            created_at=created_at or datetime.now(UTC).isoformat(),
            name=request.name,
            docker_hub_url=image.docker_hub_url,
        )
        self.upsert(instance)
        logger.info(f"Created instance {instance_id} from image {image.name} on port {container_port}")
        return instance

    async def remove_instance(self, instance_id: str) -> bool:
        """
        Delete an instance's Service and Deployment and drop its record.

        Returns:
            False if the instance is unknown to both the directory and the cluster
        """
        instance = await self.lookup_or_hydrate(instance_id)
        if instance is None:
            return False

        await asyncio.to_thread(
            call_kube,
            self.kube.core_api.delete_namespaced_service,
            instance.service_name,
            instance.namespace,
        )
        await asyncio.to_thread(
            call_kube,
            self.kube.apps_api.delete_namespaced_deployment,
            instance.deployment_name,
            instance.namespace,
        )
        self.remove(instance_id)
        logger.info(f"Removed instance {instance_id}")
        return True
