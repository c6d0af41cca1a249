"""
仓库客户端接口

每种仓库（Modrinth、Hangar、CurseForge）各自独立实现 RepositoryClient，
共享的 HTTP 细节由组合进来的 HttpTransport (mup.http) 提供。
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional

from mup.models import Loader, RepositoryKind, VersionMetadata, VersionSummary


class RepositoryClient(ABC):
    """仓库客户端能力集合"""

    kind: RepositoryKind

    @abstractmethod
    async def list_versions(
        self,
        project: str,
        loader: Optional[Loader] = None,
        game_version: Optional[str] = None,
    ) -> List[VersionSummary]:
        """
        列出项目版本，按发布时间从新到旧排序。

        loader/game_version 仅作为查询提示，调用方仍需自行过滤。
        """

    @abstractmethod
    async def get_version_metadata(self, project: str, version_id: str) -> VersionMetadata:
        """获取版本的完整元数据"""

    @abstractmethod
    def download(self, url: str) -> AsyncIterator[bytes]:
        """以字节块流的形式下载文件"""

    async def close(self):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
