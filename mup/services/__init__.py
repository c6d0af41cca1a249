"""
mup 服务层

包含业务逻辑服务：版本匹配、依赖解析、目录同步。
"""

from mup.services.version_matcher import VersionMatcher
from mup.services.resolver import Resolver
from mup.services.synchronizer import Synchronizer, SyncPlan, SyncReport, compute_diff

__all__ = [
    "VersionMatcher",
    "Resolver",
    "Synchronizer",
    "SyncPlan",
    "SyncReport",
    "compute_diff",
]
