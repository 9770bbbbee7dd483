"""
Rewriting of local asset references in rendered HTML to blob store URLs.
"""

import logging
import mimetypes
import re
from pathlib import Path
from typing import Dict, Optional

import httpx

from ..storage.blob import BlobStore


ASSET_REF_RE = re.compile(r'(?:src|href)="([^"]*(?:assets|attachments)[^"]*)"', re.IGNORECASE)


def normalize_asset_path(asset_path: str) -> str:
    """Pages reference ../assets/x.png; resolve relative to the repository root."""
    return re.sub(r"^(?:\.\.?/)+", "", asset_path)


class AssetRewriter:
    """
    Uploads assets referenced from HTML and swaps in their public URLs.

    Each asset is uploaded once per rewriter, however many blocks use it.
    """

    def __init__(self, blob_store: Optional[BlobStore], workspace_id: str, repo_path: str):
        self.blob_store = blob_store
        self.workspace_id = workspace_id
        self.repo_path = Path(repo_path)
        self._uploaded: Dict[str, Optional[str]] = {}

    async def _upload(self, asset_path: str) -> Optional[str]:
        normalized = normalize_asset_path(asset_path)
        if normalized in self._uploaded:
            return self._uploaded[normalized]

        url = None
        full_path = (self.repo_path / normalized).resolve()
        if not full_path.is_relative_to(self.repo_path.resolve()):
            logging.warning(f"Asset {asset_path} points outside the repository; not uploaded")
            self._uploaded[normalized] = None
            return None

        try:
            data = full_path.read_bytes()
            content_type = mimetypes.guess_type(normalized)[0] or "application/octet-stream"
            url = await self.blob_store.upload(self.workspace_id, normalized, data, content_type)
        except (OSError, httpx.HTTPError) as e:
            logging.warning(f"Asset upload failed for {normalized}: {e}")

        self._uploaded[normalized] = url
        return url

    async def rewrite(self, html: str) -> str:
        """Replace local asset paths in ``html``. External URLs are left alone."""
        if self.blob_store is None:
            return html

        for asset_path in dict.fromkeys(ASSET_REF_RE.findall(html)):
            if asset_path.startswith(("http://", "https://", "//")):
                continue
            url = await self._upload(asset_path)
            if url:
                html = html.replace(f'"{asset_path}"', f'"{url}"')

        return html
