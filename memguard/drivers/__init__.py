"""Backend drivers — one session to the cache endpoint each."""

from memguard.drivers.aiomcache_driver import AiomcacheDriver, parse_location
from memguard.drivers.base import VERBS, CacheDriver, CasResult, DriverFactory

__all__ = [
    "VERBS",
    "AiomcacheDriver",
    "CacheDriver",
    "CasResult",
    "DriverFactory",
    "parse_location",
]
