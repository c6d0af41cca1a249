"""
CurseForge 仓库客户端（未实现）
"""

from typing import AsyncIterator, List, Optional

from mup.api.base import RepositoryClient
from mup.exceptions import RepositoryUnavailableError
from mup.models import Loader, RepositoryKind, VersionMetadata, VersionSummary


class CurseForgeClient(RepositoryClient):
    """CurseForge 占位实现，所有操作都返回仓库不可用"""

    kind = RepositoryKind.CURSEFORGE

    def _unavailable(self, project: Optional[str] = None) -> RepositoryUnavailableError:
        return RepositoryUnavailableError(
            "暂不支持 CurseForge 仓库",
            context={"repository": self.kind.value, "project": project},
        )

    async def list_versions(
        self,
        project: str,
        loader: Optional[Loader] = None,
        game_version: Optional[str] = None,
    ) -> List[VersionSummary]:
        raise self._unavailable(project)

    async def get_version_metadata(self, project: str, version_id: str) -> VersionMetadata:
        raise self._unavailable(project)

    async def download(self, url: str) -> AsyncIterator[bytes]:
        raise self._unavailable()
        yield b""
