"""
服务端核心客户端接口

每种加载器各自实现 LoaderClient：把 (Minecraft 版本, 加载器版本) 解析为
一个可下载的 ServerJar，下载与重试细节由组合进来的 HttpTransport 提供。
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from mup.http import HttpTransport
from mup.models import LATEST, Loader, ServerJar


class LoaderClient(ABC):
    """服务端核心客户端"""

    kind: Loader

    def __init__(self, transport: Optional[HttpTransport] = None):
        self.transport = transport or HttpTransport(self.kind.value)

    @abstractmethod
    async def resolve(self, minecraft_version: str, loader_version: str = LATEST) -> ServerJar:
        """
        解析服务端核心文件

        Args:
            minecraft_version: Minecraft 版本
            loader_version: 加载器版本，"latest" 表示最新版本

        Raises:
            NotFoundError: 版本不存在
            IncompatibleLoaderError: 加载器不支持该 Minecraft 版本
        """

    def download(self, url: str) -> AsyncIterator[bytes]:
        return self.transport.stream(url)

    async def close(self):
        await self.transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
