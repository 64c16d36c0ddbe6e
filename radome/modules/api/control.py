"""
Control API for Radome

Endpoints to list, provision and remove agent instances, and to see which
images may be provisioned. Catalog and user administration live elsewhere.
"""

import logging
from typing import Dict

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse

from radome.config.provider import ProxyConfig
from radome.errors import ClusterQueryError
from radome.modules.catalog import CatalogModule
from radome.modules.directory import InstanceDirectory

from .models import CreateInstanceRequest

logger = logging.getLogger(__name__)


def instance_urls(instance_id: str, proxy_config: ProxyConfig, proxy_port: int) -> Dict[str, str]:
    """Client-facing URLs an instance is reachable at through the proxy."""
    authority = proxy_config.base_domain
    if proxy_port not in (80, 443):
        authority = f"{authority}:{proxy_port}"
    urls = {"url": f"http://{instance_id}.{authority}"}
    if proxy_config.path_prefix:
        urls["pathUrl"] = f"http://{authority}{proxy_config.path_prefix}/{instance_id}/"
    return urls


def create_control_router(
    directory: InstanceDirectory,
    catalog: CatalogModule,
    proxy_config: ProxyConfig,
    proxy_port: int,
) -> APIRouter:
    """
    Create the control API router with injected modules.

    Args:
        directory: Instance directory
        catalog: Allowed-image catalog
        proxy_config: Proxy routing configuration (for instance URLs)
        proxy_port: Port the proxy listens on

    Returns:
        FastAPI router with instance and image endpoints
    """
    router = APIRouter(tags=["instances"])

    @router.get("/images")
    async def list_images() -> Dict:
        """List images instances may be provisioned from."""
        images = await catalog.list_images()
        return {"allowed": [image.model_dump(mode="json", by_alias=True) for image in images]}

    @router.get("/instances")
    async def list_instances() -> Dict:
        """
        List instances with freshly derived status.

        Status is re-derived from pod state on every call.
        """
        instances = await directory.refresh_all()
        return {"instances": [instance.to_dict() for instance in instances]}

    @router.get("/instances/{instance_id}")
    async def get_instance(instance_id: str):
        """Get one instance, hydrating it from the cluster if needed."""
        try:
            instance = await directory.lookup_or_hydrate(instance_id)
        except ClusterQueryError as e:
            return JSONResponse(status_code=500, content={"error": e.message})
        if instance is None:
            return JSONResponse(status_code=404, content={"error": "instance not found"})

        instance = await directory.refresh_status(instance_id) or instance
        return {
            "instance": instance.to_dict(),
            **instance_urls(instance.id, proxy_config, proxy_port),
        }

    @router.post("/instances", status_code=201)
    async def create_instance(request: CreateInstanceRequest):
        """
        Provision a new instance from an allowed image.

        Returns:
            201: Instance record and its proxy URL
            400: Image not in the catalog
            500: Cluster rejected the Deployment or Service
        """
        image = await catalog.get_image(request.image)
        if image is None:
            allowed = await catalog.list_images()
            return JSONResponse(
                status_code=400,
                content={
                    "error": "image not allowed",
                    "allowedImages": [i.model_dump(mode="json", by_alias=True) for i in allowed],
                },
            )

        try:
            instance = await directory.create_instance(image, request)
        except ClusterQueryError as e:
            logger.error(f"Failed to create instance from {request.image}: {e.message}")
            return JSONResponse(status_code=500, content={"error": e.message})

        return {
            "instance": instance.to_dict(),
            **instance_urls(instance.id, proxy_config, proxy_port),
        }

    @router.delete("/instances/{instance_id}", status_code=204)
    async def delete_instance(instance_id: str):
        """Remove an instance's Deployment and Service."""
        try:
            removed = await directory.remove_instance(instance_id)
        except ClusterQueryError as e:
            logger.error(f"Failed to remove instance {instance_id}: {e.message}")
            return JSONResponse(status_code=500, content={"error": e.message})

        if not removed:
            return JSONResponse(status_code=404, content={"error": "instance not found"})
        return Response(status_code=204)

    return router
