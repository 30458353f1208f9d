from propgrid_offline.storage.cache_storage import CacheGeneration, CacheStorage
from propgrid_offline.storage.models import GenerationKeys
from propgrid_offline.storage.pending import PendingSubmissionStore

__all__ = ["CacheGeneration", "CacheStorage", "GenerationKeys", "PendingSubmissionStore"]
