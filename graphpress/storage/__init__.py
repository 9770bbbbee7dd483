"""External storage collaborators: asset blobs and the block HTML cache."""

from .blob import BlobStore, HttpBlobStore
from .cache import BlockHtmlCache, InMemoryBlockHtmlCache, block_key

__all__ = ["BlobStore", "HttpBlobStore", "BlockHtmlCache", "InMemoryBlockHtmlCache", "block_key"]
