"""
mup 服务端核心客户端

按加载器解析并下载服务端核心文件（原版/Paper/Fabric 的服务端 jar，
Forge/NeoForge 的安装器）。
"""

from typing import Dict, Optional, Type

from mup.http import HttpTransport
from mup.loader.base import LoaderClient
from mup.loader.fabric import FabricClient
from mup.loader.forge import ForgeClient
from mup.loader.neoforge import NeoForgeClient
from mup.loader.paper import PaperClient
from mup.loader.vanilla import VanillaClient
from mup.models import Loader, Settings

LOADER_CLIENTS: Dict[Loader, Type[LoaderClient]] = {
    Loader.VANILLA: VanillaClient,
    Loader.PAPER: PaperClient,
    Loader.FABRIC: FabricClient,
    Loader.FORGE: ForgeClient,
    Loader.NEOFORGE: NeoForgeClient,
}


def create_loader_client(loader: Loader, settings: Optional[Settings] = None) -> LoaderClient:
    """按加载器创建服务端核心客户端"""
    settings = settings or Settings()
    transport = HttpTransport(
        loader.value,
        max_concurrent=settings.max_concurrent,
        max_retries=settings.max_retries,
        retry_delay=settings.retry_delay,
        request_timeout=settings.request_timeout,
    )
    return LOADER_CLIENTS[loader](transport)


__all__ = [
    "LoaderClient",
    "VanillaClient",
    "PaperClient",
    "FabricClient",
    "ForgeClient",
    "NeoForgeClient",
    "LOADER_CLIENTS",
    "create_loader_client",
]
