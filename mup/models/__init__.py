"""
mup 数据模型包

包含清单配置模型、API 模型与锁文件模型。
"""

from mup.models.config import (
    LATEST,
    Loader,
    RepositoryKind,
    ServerProfile,
    Requirement,
    Settings,
    Manifest,
)
from mup.models.api import (
    DependencyInfo,
    VersionSummary,
    VersionMetadata,
)
from mup.models.lockfile import (
    SCHEMA_VERSION,
    Origin,
    ResolvedArtifact,
    ServerJar,
    DependencyEdge,
    Lockfile,
)

__all__ = [
    # 配置模型
    "LATEST",
    "Loader",
    "RepositoryKind",
    "ServerProfile",
    "Requirement",
    "Settings",
    "Manifest",
    # API 模型
    "DependencyInfo",
    "VersionSummary",
    "VersionMetadata",
    # 锁文件模型
    "SCHEMA_VERSION",
    "Origin",
    "ResolvedArtifact",
    "ServerJar",
    "DependencyEdge",
    "Lockfile",
]
