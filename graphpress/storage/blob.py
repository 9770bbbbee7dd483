"""
Object storage for binary assets referenced by pages.
"""

import logging
from typing import Optional, Protocol

import httpx

from ..config import config


class BlobStore(Protocol):
    """Uploads an asset and returns the URL it is served from."""

    async def upload(self, workspace_id: str, asset_path: str, data: bytes, content_type: str) -> str:
        ...


class HttpBlobStore:
    """
    Uploads assets with plain HTTP PUTs to an S3-compatible endpoint.

    Objects are stored under ``{bucket}/workspaces/{workspace_id}/{asset_path}``
    and served from the same URL.
    """

    def __init__(self, base_url: Optional[str] = None, bucket: Optional[str] = None,
                 timeout: Optional[float] = None, client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or config.require("storage.blob_base_url")).rstrip("/")
        self.bucket = bucket or config.get("storage.bucket", "graphpress-assets")
        self.client = client or httpx.AsyncClient(timeout=timeout or config.get("storage.timeout", 30.0))

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.client.aclose()

    def object_url(self, workspace_id: str, asset_path: str) -> str:
        return f"{self.base_url}/{self.bucket}/workspaces/{workspace_id}/{asset_path.lstrip('/')}"

    async def upload(self, workspace_id: str, asset_path: str, data: bytes, content_type: str) -> str:
        url = self.object_url(workspace_id, asset_path)
        response = await self.client.put(url, content=data, headers={"Content-Type": content_type})
        response.raise_for_status()
        logging.info(f"Uploaded asset {asset_path} ({len(data)} bytes)")
        return url
