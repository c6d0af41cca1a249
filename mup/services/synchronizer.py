"""
同步服务

计算新旧锁文件的差异，并让服务端目录与新锁文件保持一致。

先下载、校验并原子替换全部新增/更新的文件，全部成功后才删除不再需要的文件。
未变化的条目同样会与磁盘比对，缺失或损坏的文件会被重新下载，
因此中断后重新运行即可恢复。服务端核心文件与插件一起安装，位于服务端根目录。
"""

import os
from dataclasses import dataclass, field, replace
from typing import Collection, List, Optional, Tuple, Union

from loguru import logger

from mup.api import RepositoryRouter
from mup.download import DownloadManager, DownloadStats, TEMP_SUFFIX, UNPINNED_ALGORITHM
from mup.exceptions import MupError
from mup.models import Lockfile, ResolvedArtifact, ServerJar, Settings

Removable = Union[ResolvedArtifact, ServerJar]


@dataclass
class SyncPlan:
    """差异计划"""

    to_add: List[ResolvedArtifact] = field(default_factory=list)
    to_update: List[Tuple[ResolvedArtifact, ResolvedArtifact]] = field(default_factory=list)
    to_remove: List[ResolvedArtifact] = field(default_factory=list)
    unchanged: List[ResolvedArtifact] = field(default_factory=list)

    @property
    def installs(self) -> List[ResolvedArtifact]:
        return self.to_add + [new for _, new in self.to_update] + self.unchanged

    @property
    def removals(self) -> List[ResolvedArtifact]:
        return self.to_remove + [old for old, _ in self.to_update]


@dataclass
class SyncReport:
    """同步结果"""

    added: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    repaired: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)
    stats: DownloadStats = field(default_factory=DownloadStats)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed or self.repaired)


def compute_diff(previous: Optional[Lockfile], new: Lockfile) -> SyncPlan:
    """
    按 (仓库, 项目 ID, 版本 ID) 计算差异

    同一项目版本不同的条目视为更新（删除旧版本 + 安装新版本）。
    """
    plan = SyncPlan()
    old_entries = {a.key: a for a in previous} if previous is not None else {}
    new_keys = set()

    for artifact in new:
        new_keys.add(artifact.key)
        old = old_entries.get(artifact.key)
        if old is None:
            plan.to_add.append(artifact)
        elif old.version_id != artifact.version_id:
            plan.to_update.append((old, artifact))
        else:
            plan.unchanged.append(artifact)

    plan.to_remove = [a for key, a in old_entries.items() if key not in new_keys]
    return plan


class Synchronizer:
    """目录同步器"""

    def __init__(
        self,
        router: RepositoryRouter,
        directory: str,
        settings: Optional[Settings] = None,
    ):
        settings = settings or Settings()
        self.router = router
        self.directory = directory
        self.download_manager = DownloadManager(
            max_concurrent=settings.max_concurrent,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
        )

    async def sync(
        self,
        previous: Optional[Lockfile],
        new: Lockfile,
        keep: Collection[str] = (),
    ) -> SyncReport:
        """
        同步目录

        Args:
            previous: 上一次提交的锁文件（可为空）
            new: 新锁文件；服务端核心文件没有哈希时，会写入本地文件的哈希
            keep: 即使不再需要也保留在磁盘上的安装路径

        Raises:
            ChecksumMismatchError: 下载内容与记录的哈希不一致
            NetworkError: 重试耗尽
        """
        plan = compute_diff(previous, new)
        logger.info(
            f"[同步] 新增 {len(plan.to_add)}，更新 {len(plan.to_update)}，"
            f"删除 {len(plan.to_remove)}，未变 {len(plan.unchanged)}"
        )

        self._discard_stale_temp(new, previous)

        installs = plan.installs
        jobs = [(self.router.get(a.repository), a) for a in installs]
        if new.server_jar is not None:
            jobs.append((self.router.loader(new.profile.loader), new.server_jar))
        try:
            downloaded = await self.download_manager.install_all(jobs, self.directory)
        except MupError:
            failed = self.download_manager.get_failed()
            if failed:
                logger.error(f"[同步] 下载失败: {', '.join(failed)}，未删除任何文件")
            raise

        report = SyncReport(stats=self.download_manager.get_stats())
        added = {a.key for a in plan.to_add}
        updated = {new_a.key for _, new_a in plan.to_update}
        for artifact, did_download in zip(installs, downloaded):
            if artifact.key in added:
                report.added.append(artifact.install_path)
            elif artifact.key in updated:
                report.updated.append(artifact.install_path)
            elif did_download:
                logger.warning(f"[修复] {artifact.install_path} 缺失或已损坏，已重新下载")
                report.repaired.append(artifact.install_path)

        removals: List[Removable] = list(plan.removals)
        old_jar = previous.server_jar if previous is not None else None
        if new.server_jar is not None:
            replaced = await self._record_server_jar(old_jar, new, downloaded[-1], report)
            if replaced:
                removals.append(old_jar)

        claimed = {a.install_path for a in new}
        if new.server_jar is not None:
            claimed.add(new.server_jar.install_path)
        for artifact in removals:
            if artifact.install_path in claimed:
                continue
            if artifact.install_path in keep:
                logger.info(f"[保留] {artifact.install_path}")
                report.kept.append(artifact.install_path)
                continue
            if self._remove(artifact):
                report.removed.append(artifact.install_path)

        logger.success(
            f"[同步] 完成: 下载 {report.stats.completed}，跳过 {report.stats.skipped}，"
            f"删除 {len(report.removed)}"
        )
        return report

    async def _record_server_jar(
        self, old: Optional[ServerJar], new: Lockfile, did_download: bool, report: SyncReport
    ) -> bool:
        """
        记录服务端核心文件的变化；上游没有公布哈希时把本地文件的哈希写入新锁文件

        Returns:
            旧的服务端核心文件是否被另一个文件取代
        """
        jar = new.server_jar
        replaced = old is not None and (old.filename, old.url) != (jar.filename, jar.url)
        if old is None:
            report.added.append(jar.install_path)
        elif replaced:
            report.updated.append(jar.install_path)
        elif did_download:
            logger.warning(f"[修复] {jar.install_path} 缺失或已损坏，已重新下载")
            report.repaired.append(jar.install_path)

        if not jar.content_hash:
            path = os.path.join(self.directory, jar.install_path)
            content_hash = await self.download_manager.verifier.calc_hash(path, UNPINNED_ALGORITHM)
            logger.info(f"[服务端] {jar.filename} 没有公布哈希，记录本地哈希 {content_hash}")
            new.server_jar = replace(jar, content_hash=content_hash)
        return replaced

    def _remove(self, artifact: Removable) -> bool:
        """尽力删除文件，文件不存在不视为错误"""
        path = os.path.join(self.directory, artifact.install_path)
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.debug(f"[删除] {artifact.install_path} 已不存在")
            return False
        except OSError as e:
            logger.warning(f"[删除] 无法删除 {artifact.install_path}: {e}")
            return False
        logger.info(f"[删除] {artifact.install_path}")
        return True

    def _discard_stale_temp(self, new: Lockfile, previous: Optional[Lockfile]):
        """清理上次中断遗留的临时文件：服务端根目录、安装目录与锁文件涉及的目录"""
        directories = {
            os.path.normpath(self.directory),
            os.path.normpath(os.path.join(self.directory, new.profile.loader.install_dir)),
        }
        for lockfile in (new, previous):
            if lockfile is None:
                continue
            directories.update(
                os.path.normpath(os.path.join(self.directory, os.path.dirname(a.install_path)))
                for a in lockfile
            )
        for directory in sorted(directories):
            if not os.path.isdir(directory):
                continue
            for name in os.listdir(directory):
                if name.endswith(TEMP_SUFFIX):
                    logger.debug(f"[清理] 删除遗留临时文件 {name}")
                    os.remove(os.path.join(directory, name))
