"""
Fabric 服务端

Fabric meta 提供可直接运行的服务端启动器 jar，不公布哈希。
"""

from typing import List

from mup.exceptions import IncompatibleLoaderError, NotFoundError
from mup.loader.base import LoaderClient
from mup.models import LATEST, Loader, ServerJar

FABRIC_META_URL = "https://meta.fabricmc.net/v2/versions"


def _latest_stable(entries: List[dict], what: str) -> str:
    if not entries:
        raise NotFoundError(f"Fabric meta 没有返回{what}版本", context={"loader": "fabric"})
    stable = [e for e in entries if e.get("stable")]
    return (stable or entries)[0]["version"]


class FabricClient(LoaderClient):
    kind = Loader.FABRIC

    def __init__(self, transport=None, base_url: str = FABRIC_META_URL):
        super().__init__(transport)
        self.base_url = base_url

    async def resolve(self, minecraft_version: str, loader_version: str = LATEST) -> ServerJar:
        games = await self.transport.get_json(f"{self.base_url}/game")
        if minecraft_version not in {g.get("version") for g in games}:
            raise IncompatibleLoaderError(
                f"Fabric 不支持 Minecraft {minecraft_version}",
                context={"loader": self.kind.value, "minecraft_version": minecraft_version},
            )

        loaders = await self.transport.get_json(f"{self.base_url}/loader")
        if loader_version == LATEST:
            loader_version = _latest_stable(loaders, "loader ")
        elif loader_version not in {entry.get("version") for entry in loaders}:
            raise NotFoundError(
                f"Fabric loader {loader_version} 不存在",
                context={"loader": self.kind.value, "version": loader_version},
            )

        installers = await self.transport.get_json(f"{self.base_url}/installer")
        installer = _latest_stable(installers, "安装器")

        return ServerJar(
            loader=self.kind,
            minecraft_version=minecraft_version,
            loader_version=loader_version,
            filename=f"fabric-server-mc.{minecraft_version}-loader.{loader_version}-launcher.{installer}.jar",
            url=f"{self.base_url}/loader/{minecraft_version}/{loader_version}/{installer}/server/jar",
        )
