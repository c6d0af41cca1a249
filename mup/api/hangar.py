"""
Hangar 仓库客户端

Hangar 的版本按发布渠道划分：版本列表只返回 Release 渠道，
指定版本时直接按名称获取，不限渠道。
"""

from typing import AsyncIterator, Dict, List, Optional

from loguru import logger

from mup.api.base import RepositoryClient
from mup.exceptions import NotFoundError
from mup.http import HttpTransport
from mup.models import (
    DependencyInfo,
    Loader,
    RepositoryKind,
    VersionMetadata,
    VersionSummary,
)
from mup.utils import format_hash, parse_timestamp

HANGAR_BASE_URL = "https://hangar.papermc.io/api/v1"

PLATFORMS: Dict[str, Loader] = {
    "PAPER": Loader.PAPER,
}

RELEASE_CHANNEL = "Release"
PAGE_SIZE = 25
MAX_PAGES = 4


class HangarClient(RepositoryClient):
    """Hangar API 客户端"""

    kind = RepositoryKind.HANGAR

    def __init__(self, transport: Optional[HttpTransport] = None, base_url: str = HANGAR_BASE_URL):
        self.transport = transport or HttpTransport("hangar")
        self.base_url = base_url
        self._names: Dict[str, str] = {}

    async def _project_name(self, project: str) -> str:
        if project not in self._names:
            data = await self.transport.get_json(f"{self.base_url}/projects/{project}")
            self._names[project] = data["name"]
        return self._names[project]

    def _summary(self, name: str, data: dict) -> VersionSummary:
        loaders, game_versions = _platforms(data)
        return VersionSummary(
            project_id=name,
            version_id=data["name"],
            version_number=data["name"],
            published_at=parse_timestamp(data["createdAt"]),
            loaders=loaders,
            game_versions=game_versions,
        )

    async def list_versions(
        self,
        project: str,
        loader: Optional[Loader] = None,
        game_version: Optional[str] = None,
    ) -> List[VersionSummary]:
        name = await self._project_name(project)

        params = {"limit": str(PAGE_SIZE)}
        if loader is Loader.PAPER:
            params["platform"] = "PAPER"
        if game_version is not None:
            params["platformVersion"] = game_version

        summaries = []
        for page in range(MAX_PAGES):
            params["offset"] = str(page * PAGE_SIZE)
            data = await self.transport.get_json(
                f"{self.base_url}/projects/{name}/versions", dict(params)
            )
            results = data.get("result", [])
            for version in results:
                channel = (version.get("channel") or {}).get("name")
                if channel != RELEASE_CHANNEL:
                    continue
                if _download(version) is None:
                    continue
                summaries.append(self._summary(name, version))

            total = (data.get("pagination") or {}).get("count", 0)
            if len(results) < PAGE_SIZE or (page + 1) * PAGE_SIZE >= total:
                break

        summaries.sort(key=lambda s: (s.published_at, s.version_id), reverse=True)
        return summaries

    async def get_version_metadata(self, project: str, version_id: str) -> VersionMetadata:
        name = await self._project_name(project)
        data = await self.transport.get_json(
            f"{self.base_url}/projects/{name}/versions/{version_id}"
        )

        download = _download(data)
        if download is None:
            raise NotFoundError(
                f"{name} 版本 {version_id} 没有托管在 Hangar 上的下载",
                context={
                    "repository": self.kind.value,
                    "project": name,
                    "version_id": version_id,
                },
            )

        dependencies = []
        for platform, deps in (data.get("pluginDependencies") or {}).items():
            if platform not in PLATFORMS:
                continue
            for dep in deps:
                if dep.get("externalUrl"):
                    logger.warning(
                        f"{name} 依赖外部插件 {dep.get('name')} ({dep['externalUrl']})，需手动安装"
                    )
                    continue
                dependencies.append(
                    DependencyInfo(project_id=dep["name"], required=bool(dep.get("required")))
                )

        loaders, game_versions = _platforms(data)
        file_info = download["fileInfo"]
        return VersionMetadata(
            project_id=name,
            version_id=data["name"],
            name=name,
            version_number=data["name"],
            published_at=parse_timestamp(data["createdAt"]),
            loaders=loaders,
            game_versions=game_versions,
            dependencies=dependencies,
            url=download["downloadUrl"],
            filename=file_info["name"],
            content_hash=format_hash("sha256", file_info["sha256Hash"]),
        )

    def download(self, url: str) -> AsyncIterator[bytes]:
        return self.transport.stream(url)

    async def close(self):
        await self.transport.close()


def _platforms(version: dict):
    loaders: List[Loader] = []
    game_versions: List[str] = []
    for platform, versions in (version.get("platformDependencies") or {}).items():
        loader = PLATFORMS.get(platform)
        if loader is None:
            continue
        loaders.append(loader)
        game_versions.extend(v for v in versions if v not in game_versions)
    return loaders, game_versions


def _download(version: dict) -> Optional[dict]:
    for platform in PLATFORMS:
        download = (version.get("downloads") or {}).get(platform)
        if download and download.get("downloadUrl") and download.get("fileInfo"):
            return download
    return None
