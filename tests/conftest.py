import asyncio
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest

from mup.api import RepositoryClient, RepositoryRouter
from mup.exceptions import NetworkError, NotFoundError
from mup.loader import LoaderClient
from mup.models import (
    LATEST,
    DependencyInfo,
    Loader,
    RepositoryKind,
    ServerJar,
    ServerProfile,
    Settings,
    VersionMetadata,
    VersionSummary,
)
from mup.utils import format_hash

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def sha512(data: bytes) -> str:
    return format_hash("sha512", hashlib.sha512(data).hexdigest())


def sha256(data: bytes) -> str:
    return format_hash("sha256", hashlib.sha256(data).hexdigest())


class FakeRepository(RepositoryClient):
    """内存中的仓库，记录调用次数，可注入网络错误与损坏的下载"""

    def __init__(self, kind: RepositoryKind = RepositoryKind.MODRINTH):
        self.kind = kind
        self.versions: Dict[str, List[VersionMetadata]] = {}
        self.aliases: Dict[str, str] = {}
        self.blobs: Dict[str, bytes] = {}
        self.network_failures: Dict[str, int] = {}
        self.corrupted: set = set()
        self.delays: Dict[str, float] = {}
        self.downloads: List[str] = []
        self.list_calls: List[str] = []
        self.metadata_calls: List[tuple] = []

    def publish(
        self,
        project_id: str,
        version_id: str,
        day: int = 0,
        deps: Sequence = (),
        loaders: Sequence[Loader] = (Loader.FABRIC,),
        game_versions: Sequence[str] = ("1.20.1",),
        name: Optional[str] = None,
        filename: Optional[str] = None,
        content: Optional[bytes] = None,
    ) -> VersionMetadata:
        name = name or project_id
        if name != project_id:
            self.aliases[name] = project_id
        filename = filename or f"{name}-{version_id}.jar"
        content = content if content is not None else f"{project_id}:{version_id}".encode()
        url = f"https://cdn.example/{project_id}/{version_id}/{filename}"
        dependencies = [
            dep if isinstance(dep, DependencyInfo) else DependencyInfo(project_id=dep)
            for dep in deps
        ]
        metadata = VersionMetadata(
            project_id=project_id,
            version_id=version_id,
            name=name,
            version_number=version_id,
            published_at=EPOCH + timedelta(days=day),
            loaders=list(loaders),
            game_versions=list(game_versions),
            dependencies=dependencies,
            url=url,
            filename=filename,
            content_hash=sha512(content),
        )
        self.versions.setdefault(project_id, []).append(metadata)
        self.blobs[url] = content
        return metadata

    def _canonical(self, project: str) -> str:
        canonical = self.aliases.get(project, project)
        if canonical not in self.versions:
            raise NotFoundError(f"项目 {project} 不存在", context={"project": project})
        return canonical

    async def list_versions(self, project, loader=None, game_version=None):
        self.list_calls.append(project)
        canonical = self._canonical(project)
        await asyncio.sleep(self.delays.get(canonical, 0))
        summaries = [
            VersionSummary(
                project_id=m.project_id,
                version_id=m.version_id,
                version_number=m.version_number,
                published_at=m.published_at,
                loaders=m.loaders,
                game_versions=m.game_versions,
            )
            for m in self.versions[canonical]
        ]
        summaries.sort(key=lambda s: (s.published_at, s.version_id), reverse=True)
        return summaries

    async def get_version_metadata(self, project, version_id):
        self.metadata_calls.append((project, version_id))
        canonical = self._canonical(project)
        await asyncio.sleep(self.delays.get(canonical, 0))
        for metadata in self.versions[canonical]:
            if metadata.version_id == version_id:
                return metadata
        raise NotFoundError(f"版本 {version_id} 不存在", context={"version_id": version_id})

    async def download(self, url):
        self.downloads.append(url)
        if self.network_failures.get(url, 0) > 0:
            self.network_failures[url] -= 1
            raise NetworkError("connection reset", context={"url": url})
        data = self.blobs[url]
        if url in self.corrupted:
            data = b"corrupted" + data
        half = len(data) // 2
        yield data[:half]
        yield data[half:]


class FakeLoader(LoaderClient):
    """内存中的服务端核心来源；hashed=False 模拟不公布哈希的上游"""

    def __init__(self, kind: Loader = Loader.FABRIC, hashed: bool = True):
        self.kind = kind
        self.hashed = hashed
        self.latest = "1"
        self.blobs: Dict[str, bytes] = {}
        self.resolve_calls: List[tuple] = []
        self.downloads: List[str] = []

    async def resolve(self, minecraft_version, loader_version=LATEST):
        self.resolve_calls.append((minecraft_version, loader_version))
        version = self.latest if loader_version == LATEST else loader_version
        content = f"{self.kind.value}-{minecraft_version}-{version}".encode()
        url = f"https://loader.example/{self.kind.value}/{minecraft_version}/{version}/server.jar"
        self.blobs[url] = content
        return ServerJar(
            loader=self.kind,
            minecraft_version=minecraft_version,
            loader_version=version,
            filename=f"{self.kind.value}-{minecraft_version}-{version}.jar",
            url=url,
            content_hash=sha256(content) if self.hashed else None,
        )

    async def download(self, url):
        self.downloads.append(url)
        yield self.blobs[url]

    async def close(self):
        pass


@pytest.fixture
def fake() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def server_jars() -> Dict[Loader, FakeLoader]:
    return {loader: FakeLoader(loader) for loader in Loader}


@pytest.fixture
def router(fake, server_jars) -> RepositoryRouter:
    return RepositoryRouter(clients={RepositoryKind.MODRINTH: fake}, loaders=server_jars)


@pytest.fixture
def profile() -> ServerProfile:
    return ServerProfile(Loader.FABRIC, "1.20.1")


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(max_concurrent=4, max_retries=2, retry_delay=0.0)
