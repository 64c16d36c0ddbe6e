"""
API Module - Black Box Interface

Purpose: Shared models and HTTP routing for the control API
Interface: REST API endpoints, data models
Hidden: Module orchestration, error responses

The API module only orchestrates - it contains no business logic.
All logic is delegated to appropriate modules.
"""

from .models import (
    AllowedImage,
    CreateInstanceRequest,
    InstanceStatus,
    TargetMode,
    WorkloadInstance,
)

__all__ = [
    "AllowedImage",
    "CreateInstanceRequest",
    "InstanceStatus",
    "TargetMode",
    "WorkloadInstance",
]
