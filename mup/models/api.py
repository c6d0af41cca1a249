"""
API 数据模型

各仓库客户端统一返回的版本概要、版本元数据与依赖信息。
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from mup.models.config import LATEST, Loader


@dataclass(frozen=True)
class DependencyInfo:
    """依赖信息"""

    project_id: str
    version_id: Optional[str] = None
    required: bool = True

    @property
    def constraint(self) -> str:
        return self.version_id or LATEST


@dataclass(frozen=True)
class VersionSummary:
    """
    版本概要，来自版本列表接口。
    """

    project_id: str
    version_id: str
    published_at: datetime
    loaders: List[Loader] = field(default_factory=list)
    game_versions: List[str] = field(default_factory=list)
    version_number: str = ""

    def is_compatible(self, loader: Loader, game_version: str) -> bool:
        return loader in self.loaders and game_version in self.game_versions


@dataclass(frozen=True)
class VersionMetadata:
    """
    完整的版本元数据。

    content_hash 带算法前缀，例如 sha512:<hex>。
    """

    project_id: str
    version_id: str
    published_at: datetime
    loaders: List[Loader]
    game_versions: List[str]
    dependencies: List[DependencyInfo]
    url: str
    filename: str
    content_hash: str
    name: str = ""
    version_number: str = ""

    def is_compatible(self, loader: Loader, game_version: str) -> bool:
        return loader in self.loaders and game_version in self.game_versions

    @property
    def required_dependencies(self) -> List[DependencyInfo]:
        return [dep for dep in self.dependencies if dep.required]
