"""
Forge 服务端

Forge 只提供安装器：下载后需在服务端目录手动运行一次 --installServer。
Maven 上的版本标签格式随 Minecraft 版本变化，见 version_tag。
"""

from typing import Tuple

from loguru import logger

from mup.exceptions import IncompatibleLoaderError, NotFoundError
from mup.loader.base import LoaderClient
from mup.models import LATEST, Loader, ServerJar

PROMOS_URL = "https://files.minecraftforge.net/maven/net/minecraftforge/forge/promotions_slim.json"
FORGE_MAVEN_URL = "https://maven.minecraftforge.net/net/minecraftforge/forge"
RECOMMENDED = "recommended"

# 1.5.2 之前没有安装器
MINECRAFT_CUTOFF = (1, 5, 2)
# 1.9/1.10 中此构建之后的标签为 1.X-<installer>-1.X.0
LOADER_CUTOFF_TRIPLE = (12, 16, 1, 1938)
# 1.9 中此构建之前的标签为 1.9-<installer>-1.9
LOADER_CUTOFF_DOUBLE = (12, 16, 0, 1885)


def _numbers(version: str) -> Tuple[int, ...]:
    try:
        return tuple(int(part) for part in version.split("."))
    except ValueError:
        raise NotFoundError(f"无法识别的 Forge 版本 {version}", context={"version": version})


def version_tag(minecraft_version: str, installer: str) -> str:
    """Minecraft 版本 + 安装器版本 -> Forge Maven 版本标签"""
    minecraft = _numbers(minecraft_version)
    if minecraft < MINECRAFT_CUTOFF:
        raise IncompatibleLoaderError(
            "Forge 没有提供 Minecraft 1.5.2 之前的安装器",
            context={"loader": "forge", "minecraft_version": minecraft_version},
        )

    minor = minecraft[1]
    if len(minecraft) == 3:
        if not 7 <= minor <= 9:
            return f"{minecraft_version}-{installer}"
        if minecraft == (1, 7, 2):
            return f"1.7.2-{installer}-mc172"
        return f"{minecraft_version}-{installer}-{minecraft_version}"

    loader = _numbers(installer)
    if minor in (9, 10) and loader >= LOADER_CUTOFF_TRIPLE:
        return f"{minecraft_version}-{installer}-{minecraft_version}.0"
    if minor == 9 and loader <= LOADER_CUTOFF_DOUBLE:
        return f"{minecraft_version}-{installer}-{minecraft_version}"
    return f"{minecraft_version}-{installer}"


class ForgeClient(LoaderClient):
    kind = Loader.FORGE

    async def resolve(self, minecraft_version: str, loader_version: str = LATEST) -> ServerJar:
        installer = loader_version
        if loader_version in (LATEST, RECOMMENDED):
            data = await self.transport.get_json(PROMOS_URL)
            installer = data.get("promos", {}).get(f"{minecraft_version}-{loader_version}")
            if installer is None:
                raise NotFoundError(
                    f"Forge 没有 {minecraft_version} 的 {loader_version} 版本",
                    context={"loader": self.kind.value, "minecraft_version": minecraft_version},
                )

        tag = version_tag(minecraft_version, installer)
        logger.warning("[服务端] Forge 只提供安装器，请在服务端目录运行: java -jar <安装器> --installServer")
        return ServerJar(
            loader=self.kind,
            minecraft_version=minecraft_version,
            loader_version=installer,
            filename=f"forge-{tag}-installer.jar",
            url=f"{FORGE_MAVEN_URL}/{tag}/forge-{tag}-installer.jar",
            installer=True,
        )
