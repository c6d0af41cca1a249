"""
Paper 服务端

PaperMC v2 API：按 Minecraft 版本列出构建，latest 取最新的稳定构建。
"""

from typing import Optional

from loguru import logger

from mup.exceptions import NotFoundError
from mup.loader.base import LoaderClient
from mup.models import LATEST, Loader, ServerJar
from mup.utils import format_hash

PAPER_BASE_URL = "https://api.papermc.io/v2/projects/paper"


class PaperClient(LoaderClient):
    kind = Loader.PAPER

    def __init__(self, transport=None, base_url: str = PAPER_BASE_URL):
        super().__init__(transport)
        self.base_url = base_url

    async def resolve(self, minecraft_version: str, loader_version: str = LATEST) -> ServerJar:
        data = await self.transport.get_json(f"{self.base_url}/versions/{minecraft_version}/builds")
        builds = data.get("builds", [])
        build = _pick_build(builds, loader_version)
        if build is None:
            raise NotFoundError(
                f"Paper {minecraft_version} 没有构建 {loader_version}",
                context={"loader": self.kind.value, "minecraft_version": minecraft_version,
                         "version": loader_version},
            )
        if build.get("channel", "default") != "default":
            logger.warning(f"[服务端] Paper 构建 {build['build']} 属于 {build['channel']} 渠道")

        application = build["downloads"]["application"]
        filename = application["name"]
        return ServerJar(
            loader=self.kind,
            minecraft_version=minecraft_version,
            loader_version=str(build["build"]),
            filename=filename,
            url=f"{self.base_url}/versions/{minecraft_version}/builds/{build['build']}/downloads/{filename}",
            content_hash=format_hash("sha256", application["sha256"]),
        )


def _pick_build(builds, loader_version: str) -> Optional[dict]:
    if not builds:
        return None
    if loader_version != LATEST:
        return next((b for b in builds if str(b.get("build")) == loader_version), None)
    stable = [b for b in builds if b.get("channel", "default") == "default"]
    return (stable or builds)[-1]
