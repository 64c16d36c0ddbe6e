"""
Catalog Module for Radome.

Read side of the allowed-image catalog. Records live in a single Redis hash
keyed by image name; the control API only provisions workloads from images
found here. Editing the catalog belongs to the administrative surface and is
not exposed by this module beyond seeding defaults.
"""

import json
import logging
from typing import List, Optional

from pydantic import ValidationError

from radome.modules.api.models import AllowedImage

logger = logging.getLogger("radome.catalog")

DEFAULT_IMAGES: List[AllowedImage] = [
    AllowedImage(
        name="langchain/langchain",
        docker_hub_url="https://hub.docker.com/r/langchain/langchain",
        default_port=8000,
        description="LangChain agent container (example).",
    ),
    AllowedImage(
        name="crewai/crewai",
        docker_hub_url="https://hub.docker.com/r/crewai/crewai",
        default_port=8000,
        description="CrewAI agent container (example).",
    ),
    AllowedImage(
        name="modelcontextprotocol/server",
        docker_hub_url="https://hub.docker.com/r/modelcontextprotocol/server",
        default_port=3000,
        description="MCP server base image (example).",
    ),
]


class CatalogModule:
    """
    Allowed-image lookups backed by Redis.

    Follows the same patterns as the other Redis-backed modules:
    - Receives redis_client in __init__
    - Uses consistent key naming (catalog:images)
    - Stores one JSON document per image
    """

    KEY = "catalog:images"

    def __init__(self, redis_client):
        """
        Initialize catalog module.

        Args:
            redis_client: Async Redis client
        """
        self.redis = redis_client

    @staticmethod
    def _decode(raw) -> Optional[AllowedImage]:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return AllowedImage.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Skipping malformed catalog record: {e}")
            return None

    async def seed_defaults(self, images: Optional[List[AllowedImage]] = None) -> int:
        """
        Populate the catalog when it is empty.

        Returns:
            Number of images written (0 if the catalog already had entries)
        """
        if await self.redis.hlen(self.KEY) > 0:
            return 0

        images = images if images is not None else DEFAULT_IMAGES
        mapping = {
            image.name: json.dumps(image.model_dump(mode="json", by_alias=True))
            for image in images
        }
        if mapping:
            await self.redis.hset(self.KEY, mapping=mapping)
            logger.info(f"Seeded catalog with {len(mapping)} default images")
        return len(mapping)

    async def get_image(self, name: str) -> Optional[AllowedImage]:
        """
        Look up an allowed image by name.

        Args:
            name: Image name as requested (e.g. "crewai/crewai")

        Returns:
            AllowedImage if the image is allowed, None otherwise
        """
        return self._decode(await self.redis.hget(self.KEY, name))

    async def list_images(self) -> List[AllowedImage]:
        """List all allowed images, sorted by name."""
        records = await self.redis.hgetall(self.KEY)
        images = [self._decode(raw) for raw in records.values()]
        return sorted((image for image in images if image is not None), key=lambda i: i.name)
