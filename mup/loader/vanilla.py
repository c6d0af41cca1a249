"""
原版服务端

从 Mojang 版本清单找到对应版本，再读取该版本的 downloads.server。
"""

from loguru import logger

from mup.exceptions import NotFoundError
from mup.loader.base import LoaderClient
from mup.models import LATEST, Loader, ServerJar
from mup.utils import format_hash

VERSION_MANIFEST_URL = "https://launchermeta.mojang.com/mc/game/version_manifest.json"


class VanillaClient(LoaderClient):
    kind = Loader.VANILLA

    async def resolve(self, minecraft_version: str, loader_version: str = LATEST) -> ServerJar:
        if loader_version != LATEST:
            logger.warning(f"[服务端] 原版服务端没有加载器版本，忽略 {loader_version}")

        manifest = await self.transport.get_json(VERSION_MANIFEST_URL)
        entry = next(
            (v for v in manifest.get("versions", []) if v.get("id") == minecraft_version),
            None,
        )
        if entry is None:
            raise NotFoundError(
                f"Mojang 版本清单中没有 {minecraft_version}",
                context={"loader": self.kind.value, "minecraft_version": minecraft_version},
            )

        data = await self.transport.get_json(entry["url"])
        server = data.get("downloads", {}).get("server")
        if not server:
            raise NotFoundError(
                f"{minecraft_version} 没有提供服务端下载",
                context={"loader": self.kind.value, "minecraft_version": minecraft_version},
            )

        return ServerJar(
            loader=self.kind,
            minecraft_version=minecraft_version,
            loader_version=minecraft_version,
            filename=f"vanilla-{minecraft_version}-server.jar",
            url=server["url"],
            content_hash=format_hash("sha1", server["sha1"]),
        )
