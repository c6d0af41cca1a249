"""
Modrinth 仓库客户端
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional

from loguru import logger

from mup.api.base import RepositoryClient
from mup.exceptions import IncompatibleLoaderError, NotFoundError
from mup.http import HttpTransport
from mup.models import (
    DependencyInfo,
    Loader,
    RepositoryKind,
    VersionMetadata,
    VersionSummary,
)
from mup.utils import format_hash, parse_timestamp

MODRINTH_BASE_URL = "https://api.modrinth.com/v2"

# Modrinth 加载器标签 -> 服务端加载器
LOADER_TAGS: Dict[str, Loader] = {
    "bukkit": Loader.PAPER,
    "spigot": Loader.PAPER,
    "paper": Loader.PAPER,
    "purpur": Loader.PAPER,
    "fabric": Loader.FABRIC,
    "forge": Loader.FORGE,
    "neoforge": Loader.NEOFORGE,
    "datapack": Loader.VANILLA,
    "minecraft": Loader.VANILLA,
}


def loader_tags(loader: Loader) -> List[str]:
    return sorted(tag for tag, value in LOADER_TAGS.items() if value is loader)


class ModrinthClient(RepositoryClient):
    """Modrinth API 客户端"""

    kind = RepositoryKind.MODRINTH

    def __init__(self, transport: Optional[HttpTransport] = None, base_url: str = MODRINTH_BASE_URL):
        self.transport = transport or HttpTransport("modrinth")
        self.base_url = base_url
        self._projects: Dict[str, dict] = {}
        self._versions: Dict[str, dict] = {}

    async def _get_project(self, project: str) -> dict:
        """获取项目信息（带缓存），并检查服务端支持"""
        if project in self._projects:
            return self._projects[project]

        data = await self.transport.get_json(f"{self.base_url}/project/{project}")
        if data.get("server_side") == "unsupported":
            raise IncompatibleLoaderError(
                f"项目 {project} 不支持服务端",
                context={"repository": self.kind.value, "project": project},
            )
        if data.get("server_side") == "unknown":
            logger.warning(f"项目 {project} 可能不支持服务端")

        self._projects[project] = data
        self._projects[data["id"]] = data
        if data.get("slug"):
            self._projects[data["slug"]] = data
        return data

    async def _get_version(self, version_id: str) -> dict:
        if version_id not in self._versions:
            self._versions[version_id] = await self.transport.get_json(
                f"{self.base_url}/version/{version_id}"
            )
        return self._versions[version_id]

    def _summary(self, data: dict) -> VersionSummary:
        return VersionSummary(
            project_id=data["project_id"],
            version_id=data["id"],
            version_number=data.get("version_number", ""),
            published_at=parse_timestamp(data["date_published"]),
            loaders=_map_loaders(data.get("loaders", [])),
            game_versions=list(data.get("game_versions", [])),
        )

    async def list_versions(
        self,
        project: str,
        loader: Optional[Loader] = None,
        game_version: Optional[str] = None,
    ) -> List[VersionSummary]:
        info = await self._get_project(project)

        params = {}
        if loader is not None:
            params["loaders"] = json.dumps(loader_tags(loader))
        if game_version is not None:
            params["game_versions"] = json.dumps([game_version])

        versions = await self.transport.get_json(
            f"{self.base_url}/project/{info['id']}/version", params or None
        )
        for version in versions:
            self._versions[version["id"]] = version

        summaries = [self._summary(version) for version in versions]
        summaries.sort(key=lambda s: (s.published_at, s.version_id), reverse=True)
        return summaries

    async def get_version_metadata(self, project: str, version_id: str) -> VersionMetadata:
        info = await self._get_project(project)
        data = await self._get_version(version_id)

        if data["project_id"] != info["id"]:
            raise NotFoundError(
                f"版本 {version_id} 不属于项目 {project}",
                context={
                    "repository": self.kind.value,
                    "project": project,
                    "version_id": version_id,
                },
            )

        primary = _primary_file(data)
        if primary is None:
            raise NotFoundError(
                f"版本 {version_id} 没有可下载的文件",
                context={"repository": self.kind.value, "version_id": version_id},
            )

        dependencies = []
        for dep in data.get("dependencies", []):
            dep_type = dep.get("dependency_type", "required")
            project_id = dep.get("project_id")
            if not project_id and dep.get("version_id"):
                # 仅给出版本 ID 的依赖，需要查询所属项目
                project_id = (await self._get_version(dep["version_id"]))["project_id"]
            if not project_id:
                logger.debug(f"忽略无法识别的依赖: {dep}")
                continue
            dependencies.append(
                DependencyInfo(
                    project_id=project_id,
                    version_id=dep.get("version_id"),
                    required=dep_type == "required",
                )
            )

        return VersionMetadata(
            project_id=data["project_id"],
            version_id=data["id"],
            name=info.get("slug", project),
            version_number=data.get("version_number", ""),
            published_at=parse_timestamp(data["date_published"]),
            loaders=_map_loaders(data.get("loaders", [])),
            game_versions=list(data.get("game_versions", [])),
            dependencies=dependencies,
            url=primary["url"],
            filename=primary["filename"],
            content_hash=format_hash("sha512", primary["hashes"]["sha512"]),
        )

    def download(self, url: str) -> AsyncIterator[bytes]:
        return self.transport.stream(url)

    async def close(self):
        await self.transport.close()


def _map_loaders(tags: List[str]) -> List[Loader]:
    loaders: List[Loader] = []
    for tag in tags:
        loader = LOADER_TAGS.get(tag)
        if loader is not None and loader not in loaders:
            loaders.append(loader)
    return loaders


def _primary_file(version: dict) -> Optional[Dict[str, Any]]:
    """获取主文件信息，优先 primary，其次第一个 .jar"""
    files = version.get("files", [])
    if not files:
        return None

    for file in files:
        if file.get("primary", False):
            return file

    for file in files:
        if file.get("filename", "").endswith(".jar"):
            return file

    return files[0]
