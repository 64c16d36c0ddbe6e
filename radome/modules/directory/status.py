"""
Workload status derivation.

Turns raw pod state into the coarse lifecycle status shown for an instance.
Everything here is a pure function of the pod objects handed in.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple

from kubernetes import client

from radome.modules.api.models import InstanceStatus

IMAGE_PULL_FAILURES = frozenset({"ErrImagePull", "ImagePullBackOff", "InvalidImageName"})

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

DerivedStatus = Tuple[InstanceStatus, Optional[str]]


def _created_at(pod: client.V1Pod) -> datetime:
    created = pod.metadata.creation_timestamp if pod.metadata else None
    if created is None:
        return _EPOCH
    if isinstance(created, str):
        created = datetime.fromisoformat(created.replace("Z", "+00:00"))
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created


def latest_pod(pods: Iterable[client.V1Pod]) -> Optional[client.V1Pod]:
    """Most recently created pod; the first one read wins a tie."""
    latest = None
    for pod in pods:
        if latest is None or _created_at(pod) > _created_at(latest):
            latest = pod
    return latest


def derive_status(pod: Optional[client.V1Pod]) -> DerivedStatus:
    """
    Derive an instance status from its most recent pod.

    Args:
        pod: Latest pod for the instance, or None if none exist yet

    Returns:
        Tuple of (status, optional status message)
    """
    if pod is None:
        return InstanceStatus.STARTING, None

    pod_status = pod.status
    phase = (pod_status.phase if pod_status else None) or "Pending"
    pod_message = (pod_status.message or pod_status.reason) if pod_status else None
    container_statuses = (pod_status.container_statuses if pod_status else None) or []

    waiting_states = [
        cs.state.waiting
        for cs in container_statuses
        if cs.state is not None and cs.state.waiting is not None
    ]

    # Any container failing to pull fails the pod, even behind a slower sidecar
    pull_failure = next((w for w in waiting_states if w.reason in IMAGE_PULL_FAILURES), None)
    if pull_failure is not None:
        return InstanceStatus.ERROR, pull_failure.message or pull_failure.reason

    waiting_message = waiting_states[0].message if waiting_states else None

    if phase == "Failed":
        return InstanceStatus.ERROR, pod_message or None

    if phase == "Succeeded":
        return InstanceStatus.STOPPED, pod_message or None

    if phase == "Running":
        all_ready = bool(container_statuses) and all(cs.ready for cs in container_statuses)
        if all_ready:
            return InstanceStatus.RUNNING, waiting_message or pod_message or None
        return InstanceStatus.STARTING, waiting_message or pod_message or None

    return InstanceStatus.STARTING, waiting_message or pod_message or None
