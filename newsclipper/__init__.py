"""
News Clipper - dynamic content for static documents.

This package provides:
- Handler lifecycle management: install, update and load handlers from a
  remote registry
- A content cache with schedule-based freshness and a size limit
- Update time evaluation for cron-like refresh schedules
- Document processing for <!--newsclipper ...--> tags
"""

__version__ = "1.18.0"
__author__ = "News Clipper Team"

from newsclipper.config import ClipperConfig, HandlerKind
from newsclipper.handler import Handler
from newsclipper.models import (
    CacheEntry,
    CacheStatus,
    HandlerDescriptor,
    RemoteVersionInfo,
    UpdateKind,
    UpdateTimeSpec,
)

__all__ = [
    "__version__",
    "ClipperConfig",
    "HandlerKind",
    "Handler",
    "CacheEntry",
    "CacheStatus",
    "HandlerDescriptor",
    "RemoteVersionInfo",
    "UpdateKind",
    "UpdateTimeSpec",
]
