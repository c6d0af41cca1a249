"""
主协调器

整合清单、解析器、同步器与锁文件存储，实现 解析 -> 同步 -> 提交 流程。
只有整个流程成功后才提交新的锁文件。
"""

import asyncio
import os
from dataclasses import dataclass, replace
from typing import Collection, Optional

from loguru import logger

from mup.api import RepositoryRouter
from mup.exceptions import Cancelled, NotFoundError
from mup.lockfile import LockfileStore
from mup.manifest import ManifestStore
from mup.models import (
    LATEST,
    Lockfile,
    Loader,
    Manifest,
    RepositoryKind,
    Requirement,
    ServerJar,
    ServerProfile,
)
from mup.services import Resolver, SyncReport, Synchronizer

EULA_TEXT = "# Signed by mup\neula=true\n"


@dataclass
class ApplyResult:
    lockfile: Lockfile
    report: SyncReport
    committed: bool


class MupOrchestrator:
    """mup 主协调器"""

    def __init__(self, directory: str = ".", router: Optional[RepositoryRouter] = None):
        self.directory = directory
        self.manifests = ManifestStore(directory)
        self.lockfiles = LockfileStore(directory)
        self._router = router

    def _make_router(self, manifest: Manifest) -> RepositoryRouter:
        return self._router or RepositoryRouter(settings=manifest.settings)

    async def init_server(
        self, minecraft_version: str, loader: str, loader_version: str = LATEST
    ) -> ApplyResult:
        """
        初始化服务端

        写入清单（已存在时保留需求，只替换服务端配置），解析并下载服务端核心文件，
        最后签署 eula.txt。服务端配置变更时，全部需求按新配置重新解析。
        """
        profile = ServerProfile(Loader.parse(loader), minecraft_version)
        loader_version = loader_version or LATEST
        if self.manifests.exists():
            old = self.manifests.load()
            if old.profile != profile:
                logger.warning(f"服务端配置由 {old.profile} 变更为 {profile}，重新解析全部需求")
            manifest = replace(old, profile=profile, loader_version=loader_version)
        else:
            manifest = Manifest(profile, loader_version=loader_version)

        result = await self.apply(manifest, refresh_server=True)
        self.manifests.save(manifest)
        self.sign_eula()
        logger.success(f"已初始化服务端: {profile}")
        return result

    def sign_eula(self) -> str:
        path = os.path.join(self.directory, "eula.txt")
        logger.info("覆盖写入 eula.txt")
        with open(path, "w", encoding="utf-8") as f:
            f.write(EULA_TEXT)
        return path

    async def add_plugin(
        self,
        project: str,
        version: str = LATEST,
        repository: str = "modrinth",
        dependencies: bool = True,
    ) -> ApplyResult:
        manifest = self.manifests.load()
        requirement = Requirement(
            repository=RepositoryKind.parse(repository),
            project=project,
            constraint=version or LATEST,
            dependencies=dependencies,
        )
        logger.info(f"添加 {requirement}")
        result = await self.apply(manifest.with_requirement(requirement), unlock=[project])
        self.manifests.save(manifest.with_requirement(requirement))
        return result

    async def remove_plugin(self, project: str, keep_jarfile: bool = False) -> ApplyResult:
        manifest = self.manifests.load()
        requirement = manifest.find(project)
        if requirement is None:
            locked = self.lockfiles.load()
            artifact = locked.find(project) if locked else None
            if artifact is not None:
                requirement = manifest.find(artifact.name) or manifest.find(artifact.project_id)
        if requirement is None:
            raise NotFoundError(f"清单中没有 {project}", context={"project": project})

        keep = ()
        if keep_jarfile:
            locked = self.lockfiles.load()
            artifact = locked.find(requirement.project) if locked else None
            if artifact is not None:
                keep = (artifact.install_path,)

        logger.info(f"移除 {requirement}")
        updated = manifest.without(requirement)
        result = await self.apply(updated, keep=keep)
        self.manifests.save(updated)
        return result

    async def update_plugin(self, project: str = "all") -> ApplyResult:
        """
        将需求更新到最新兼容版本

        固定了精确版本的需求保持不变，只能通过重新 add 修改。
        """
        manifest = self.manifests.load()
        if project == "all":
            return await self.apply(manifest, unlock_all=True)

        previous = self.lockfiles.load()
        artifact = previous.find(project) if previous else None
        requirement = manifest.find(project)
        if requirement is None and artifact is None:
            raise NotFoundError(f"没有找到 {project}", context={"project": project})
        if requirement is not None and requirement.is_pinned:
            logger.warning(f"{requirement} 固定了版本，保持不变")

        unlock = [project]
        if artifact is not None:
            unlock += [name for name in (artifact.project_id, artifact.name) if name]
        return await self.apply(manifest, unlock=unlock)

    async def install(self) -> SyncReport:
        """
        按当前锁文件修复目录，不重新解析插件

        锁文件缺少服务端核心文件时补充解析；完成后签署 eula.txt。
        """
        manifest = self.manifests.load()
        lockfile = self.lockfiles.load()
        if lockfile is None:
            raise NotFoundError("没有锁文件，请先初始化服务端", context={"path": self.lockfiles.path})

        router = self._make_router(manifest)
        try:
            installed, report = await self._with_deadline(
                self._install(manifest, lockfile, router),
                manifest.settings.timeout,
            )
        finally:
            if self._router is None:
                await router.close()

        self.lockfiles.commit(installed)
        self.sign_eula()
        return report

    async def _install(self, manifest, lockfile, router):
        installed = replace(lockfile)
        if installed.server_jar is None:
            installed.server_jar = await self._server_jar(
                router, lockfile.profile, manifest.loader_version
            )
        synchronizer = Synchronizer(router, self.directory, manifest.settings)
        report = await synchronizer.sync(lockfile, installed)
        installed.stamp(lockfile)
        return installed, report

    async def apply(
        self,
        manifest: Manifest,
        unlock: Collection[str] = (),
        unlock_all: bool = False,
        keep: Collection[str] = (),
        refresh_server: bool = False,
    ) -> ApplyResult:
        """解析 -> 同步 -> 提交"""
        previous = self.lockfiles.load()
        router = self._make_router(manifest)
        try:
            lockfile, report = await self._with_deadline(
                self._resolve_and_sync(
                    manifest, previous, router, unlock, unlock_all, keep, refresh_server
                ),
                manifest.settings.timeout,
            )
        finally:
            if self._router is None:
                await router.close()

        committed = self.lockfiles.commit(lockfile)
        return ApplyResult(lockfile=lockfile, report=report, committed=committed)

    async def _resolve_and_sync(
        self, manifest, previous, router, unlock, unlock_all, keep, refresh_server=False
    ):
        lockfile = await Resolver(router).resolve(
            manifest.profile,
            manifest.requirements,
            previous=previous,
            unlock=unlock,
            unlock_all=unlock_all,
        )
        locked = None
        if previous is not None and not refresh_server:
            locked = previous.server_jar
        lockfile.server_jar = await self._server_jar(
            router, manifest.profile, manifest.loader_version, locked
        )

        synchronizer = Synchronizer(router, self.directory, manifest.settings)
        report = await synchronizer.sync(previous, lockfile, keep=keep)
        lockfile.stamp(previous)
        return lockfile, report

    async def _server_jar(
        self,
        router: RepositoryRouter,
        profile: ServerProfile,
        loader_version: str,
        locked: Optional[ServerJar] = None,
    ) -> ServerJar:
        """沿用已锁定的服务端核心文件，服务端配置或加载器版本变化时重新解析"""
        if (
            locked is not None
            and locked.loader == profile.loader
            and locked.minecraft_version == profile.minecraft_version
            and loader_version in (LATEST, locked.loader_version)
        ):
            return locked

        jar = await router.loader(profile.loader).resolve(profile.minecraft_version, loader_version)
        logger.info(f"[服务端] {profile} -> {jar.filename}")
        return jar

    async def _with_deadline(self, coro, timeout: Optional[float]):
        try:
            return await asyncio.wait_for(coro, timeout)
        except asyncio.TimeoutError:
            raise Cancelled(f"操作超时 ({timeout}s)，未提交新的锁文件", context={"timeout": timeout})
        except asyncio.CancelledError:
            raise Cancelled("操作已取消，未提交新的锁文件")
