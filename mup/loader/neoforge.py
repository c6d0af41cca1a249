"""
NeoForge 服务端

NeoForge 版本号由 Minecraft 的 minor.patch 开头（1.20.4 -> 20.4.x），
Maven API 可按该前缀查询最新版本。同 Forge，只提供安装器。
"""

from loguru import logger

from mup.exceptions import IncompatibleLoaderError, NotFoundError
from mup.loader.base import LoaderClient
from mup.models import LATEST, Loader, ServerJar

NEOFORGE_API_URL = "https://maven.neoforged.net/api/maven/latest/version/releases/net/neoforged/neoforge"
NEOFORGE_MAVEN_URL = "https://maven.neoforged.net/releases/net/neoforged/neoforge"

MINECRAFT_CUTOFF = (1, 20, 2)


class NeoForgeClient(LoaderClient):
    kind = Loader.NEOFORGE

    async def resolve(self, minecraft_version: str, loader_version: str = LATEST) -> ServerJar:
        parts = tuple(int(p) for p in minecraft_version.split("."))
        if len(parts) == 2:
            parts += (0,)
        if parts < MINECRAFT_CUTOFF:
            raise IncompatibleLoaderError(
                "NeoForge 只支持 Minecraft 1.20.2 及以上版本，更早的版本请使用 forge",
                context={"loader": self.kind.value, "minecraft_version": minecraft_version},
            )

        prefix = f"{parts[1]}.{parts[2]}"
        if loader_version == LATEST:
            data = await self.transport.get_json(NEOFORGE_API_URL, params={"filter": prefix})
            loader_version = data.get("version")
            if not loader_version:
                raise NotFoundError(
                    f"NeoForge 没有 {minecraft_version} 的版本",
                    context={"loader": self.kind.value, "minecraft_version": minecraft_version},
                )
        elif not loader_version.startswith(prefix + "."):
            raise IncompatibleLoaderError(
                f"NeoForge {loader_version} 不适用于 Minecraft {minecraft_version}",
                context={"loader": self.kind.value, "version": loader_version},
            )

        logger.warning("[服务端] NeoForge 只提供安装器，请在服务端目录运行: java -jar <安装器> --installServer")
        return ServerJar(
            loader=self.kind,
            minecraft_version=minecraft_version,
            loader_version=loader_version,
            filename=f"neoforge-{loader_version}-installer.jar",
            url=f"{NEOFORGE_MAVEN_URL}/{loader_version}/neoforge-{loader_version}-installer.jar",
            installer=True,
        )
