from mpybuild.adapters.cache.base import BlobCache
from mpybuild.adapters.cache.local import LocalBlobCache

__all__ = ["BlobCache", "LocalBlobCache"]
