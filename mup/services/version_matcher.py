"""
版本匹配服务

实现服务端配置兼容性检查与"最新兼容版本"选择策略。
"""

from typing import List, Optional, Sequence, Union

from mup.exceptions import IncompatibleLoaderError
from mup.models import ServerProfile, VersionMetadata, VersionSummary

Version = Union[VersionSummary, VersionMetadata]


class VersionMatcher:
    """版本匹配器"""

    def __init__(self, profile: ServerProfile):
        self.profile = profile

    def matches(self, version: Version) -> bool:
        """版本是否声明兼容当前加载器与 Minecraft 版本"""
        return version.is_compatible(self.profile.loader, self.profile.minecraft_version)

    def compatible(self, versions: Sequence[VersionSummary]) -> List[VersionSummary]:
        return [v for v in versions if self.matches(v)]

    def select_latest(self, candidates: Sequence[VersionSummary]) -> Optional[VersionSummary]:
        """
        选择最新的候选版本

        按发布时间取最新，发布时间相同时取字典序最大的版本 ID。
        """
        if not candidates:
            return None
        return max(candidates, key=lambda v: (v.published_at, v.version_id))

    def check(self, metadata: VersionMetadata, project: str) -> VersionMetadata:
        if not self.matches(metadata):
            raise IncompatibleLoaderError(
                f"{project} 版本 {metadata.version_id} 不兼容 {self.profile}",
                context={
                    "project": project,
                    "version_id": metadata.version_id,
                    "loaders": [loader.value for loader in metadata.loaders],
                    "game_versions": metadata.game_versions,
                },
            )
        return metadata
