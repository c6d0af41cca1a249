"""
mup 仓库客户端层

包含统一的仓库接口、各仓库实现以及按仓库类型选择客户端的路由。
路由同时负责按加载器提供服务端核心客户端。
"""

from typing import Dict, Optional

from mup.api.base import RepositoryClient
from mup.api.curseforge import CurseForgeClient
from mup.api.hangar import HangarClient
from mup.api.modrinth import ModrinthClient
from mup.http import USER_AGENT, HttpTransport
from mup.loader import LoaderClient, create_loader_client
from mup.models import Loader, RepositoryKind, Settings


def create_client(kind: RepositoryKind, settings: Optional[Settings] = None) -> RepositoryClient:
    """按仓库类型创建客户端"""
    settings = settings or Settings()
    if kind is RepositoryKind.CURSEFORGE:
        return CurseForgeClient()

    transport = HttpTransport(
        kind.value,
        max_concurrent=settings.max_concurrent,
        max_retries=settings.max_retries,
        retry_delay=settings.retry_delay,
        request_timeout=settings.request_timeout,
    )
    if kind is RepositoryKind.HANGAR:
        return HangarClient(transport)
    return ModrinthClient(transport)


class RepositoryRouter:
    """仓库类型 -> 客户端、加载器 -> 服务端核心客户端，按需创建"""

    def __init__(
        self,
        clients: Optional[Dict[RepositoryKind, RepositoryClient]] = None,
        settings: Optional[Settings] = None,
        loaders: Optional[Dict[Loader, LoaderClient]] = None,
    ):
        self._clients: Dict[RepositoryKind, RepositoryClient] = dict(clients or {})
        self._loaders: Dict[Loader, LoaderClient] = dict(loaders or {})
        self._settings = settings

    def get(self, kind: RepositoryKind) -> RepositoryClient:
        if kind not in self._clients:
            self._clients[kind] = create_client(kind, self._settings)
        return self._clients[kind]

    def loader(self, loader: Loader) -> LoaderClient:
        if loader not in self._loaders:
            self._loaders[loader] = create_loader_client(loader, self._settings)
        return self._loaders[loader]

    async def close(self):
        for client in self._clients.values():
            await client.close()
        for client in self._loaders.values():
            await client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


__all__ = [
    "HttpTransport",
    "RepositoryClient",
    "USER_AGENT",
    "ModrinthClient",
    "HangarClient",
    "CurseForgeClient",
    "RepositoryRouter",
    "create_client",
]
