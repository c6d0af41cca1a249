"""
依赖解析服务

把清单中的需求解析为完整、固定版本、包含全部传递依赖的锁文件。

解析按广度优先的工作队列分轮进行：同一轮中的网络查询并发执行，
查询结果由协调协程按规范顺序依次写入备忘表，结果与响应到达顺序无关。
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Collection, Dict, List, Optional, Set, Tuple

from loguru import logger

from mup.api import RepositoryRouter
from mup.exceptions import ConflictError, IncompatibleLoaderError, MupError, NotFoundError
from mup.models import (
    LATEST,
    Lockfile,
    Origin,
    RepositoryKind,
    Requirement,
    ResolvedArtifact,
    ServerProfile,
    VersionMetadata,
)
from mup.services.version_matcher import VersionMatcher

Key = Tuple[str, str]


@dataclass(frozen=True)
class WorkItem:
    """工作队列中的一项需求"""

    repository: RepositoryKind
    project: str
    constraint: str
    origin: Origin
    source: str
    parent: Optional[Key] = None
    dependencies: bool = True

    @property
    def is_pinned(self) -> bool:
        return self.constraint != LATEST

    @property
    def alias(self) -> Key:
        return (self.repository.value, self.project)

    @property
    def fetch_key(self) -> Tuple[str, str, str]:
        return (self.repository.value, self.project, self.constraint)

    @property
    def sort_key(self):
        # 同一轮中精确版本优先
        return (0 if self.is_pinned else 1, self.repository.value, self.project, self.source)

    @classmethod
    def from_requirement(cls, requirement: Requirement) -> "WorkItem":
        return cls(
            repository=requirement.repository,
            project=requirement.project,
            constraint=requirement.constraint,
            origin=Origin.DIRECT,
            source=str(requirement),
            dependencies=requirement.dependencies,
        )


@dataclass
class Selection:
    metadata: VersionMetadata
    item: WorkItem


class Resolver:
    """依赖解析器"""

    def __init__(self, router: RepositoryRouter):
        self.router = router

    async def resolve(
        self,
        profile: ServerProfile,
        requirements: Collection[Requirement],
        previous: Optional[Lockfile] = None,
        unlock: Collection[str] = (),
        unlock_all: bool = False,
    ) -> Lockfile:
        """
        解析需求

        Args:
            profile: 服务端配置
            requirements: 直接需求
            previous: 上一次提交的锁文件，作为保留已锁定版本的提示与 generation 的基准
            unlock: 忽略锁定版本、重新选择最新兼容版本的项目
            unlock_all: 所有项目都重新选择最新兼容版本

        Returns:
            新的锁文件

        Raises:
            ConflictError: 存在版本冲突或循环依赖
            NotFoundError: 需求的项目或版本不存在
        """
        hint = previous
        if hint is not None and hint.profile != profile:
            logger.info(f"[解析] 服务端配置已变更为 {profile}，重新解析全部需求")
            hint = None

        state = _Resolution(
            router=self.router,
            profile=profile,
            previous=None if unlock_all else hint,
            unlock=set(unlock),
        )
        lockfile = await state.run([WorkItem.from_requirement(r) for r in requirements])
        lockfile.stamp(previous)
        return lockfile


class _Resolution:
    """单次解析的状态：工作队列、备忘表、依赖边与冲突记录"""

    def __init__(
        self,
        router: RepositoryRouter,
        profile: ServerProfile,
        previous: Optional[Lockfile],
        unlock: Set[str],
    ):
        self.router = router
        self.profile = profile
        self.previous = previous
        self.unlock = unlock
        self.matcher = VersionMatcher(profile)

        self.selected: Dict[Key, Selection] = {}
        self.aliases: Dict[Key, str] = {}
        self.edges: Dict[Key, Dict[Key, str]] = {}
        self.conflicts: List[dict] = []

    async def run(self, seeds: List[WorkItem]) -> Lockfile:
        wave = seeds
        depth = 0
        while wave:
            wave = sorted(wave, key=lambda item: item.sort_key)
            logger.debug(f"[解析] 第 {depth} 轮: {len(wave)} 项")
            wave = await self._process_wave(wave)
            depth += 1

        if self.conflicts:
            details = "; ".join(c["message"] for c in self.conflicts)
            raise ConflictError(f"无法满足的需求: {details}", conflicts=self.conflicts)

        lockfile = Lockfile(profile=self.profile, artifacts=self._artifacts())
        lockfile.validate()
        logger.success(f"[解析] 完成，共 {len(lockfile)} 个文件")
        return lockfile

    async def _process_wave(self, wave: List[WorkItem]) -> List[WorkItem]:
        # 需要查询的项按 fetch_key 去重后并发执行
        fetches: Dict[Tuple[str, str, str], WorkItem] = {}
        for item in wave:
            if self._memoized(item) is None and item.fetch_key not in fetches:
                fetches[item.fetch_key] = item

        keys = list(fetches)
        results = await asyncio.gather(
            *(self._lookup(fetches[key]) for key in keys), return_exceptions=True
        )
        fetched = dict(zip(keys, results))

        for key in keys:
            result = fetched[key]
            if isinstance(result, BaseException):
                if isinstance(result, MupError):
                    result.context.setdefault("requirement", fetches[key].source)
                raise result

        next_wave: List[WorkItem] = []
        for item in wave:
            selection = self._memoized(item)
            if selection is not None:
                self._reuse(item, selection)
                continue
            next_wave.extend(self._apply(item, fetched[item.fetch_key]))
        return next_wave

    def _memoized(self, item: WorkItem) -> Optional[Selection]:
        canonical = self.aliases.get(item.alias)
        if canonical is None:
            return None
        return self.selected.get((item.repository.value, canonical))

    def _locked_version(self, item: WorkItem) -> Optional[str]:
        if self.previous is None or item.is_pinned or item.project in self.unlock:
            return None
        for artifact in self.previous:
            if artifact.repository == item.repository and artifact.matches(item.project):
                if artifact.project_id in self.unlock or artifact.name in self.unlock:
                    return None
                return artifact.version_id
        return None

    async def _lookup(self, item: WorkItem) -> VersionMetadata:
        """按选择策略为一项需求查询版本元数据"""
        client = self.router.get(item.repository)

        if item.is_pinned:
            logger.info(f"[解析] 获取 {item.project} 版本 {item.constraint}")
            metadata = await client.get_version_metadata(item.project, item.constraint)
            return self.matcher.check(metadata, item.project)

        locked = self._locked_version(item)
        if locked is not None:
            try:
                metadata = await client.get_version_metadata(item.project, locked)
            except NotFoundError:
                logger.warning(f"[解析] 已锁定的 {item.project} 版本 {locked} 已不存在，重新选择")
            else:
                if self.matcher.matches(metadata):
                    logger.debug(f"[解析] 保留已锁定的 {item.project} 版本 {locked}")
                    return metadata

        logger.info(f"[解析] 查找 {item.project} 的最新兼容版本")
        summaries = await client.list_versions(
            item.project,
            loader=self.profile.loader,
            game_version=self.profile.minecraft_version,
        )
        best = self.matcher.select_latest(self.matcher.compatible(summaries))
        if best is None:
            context = {"repository": item.repository.value, "project": item.project}
            if summaries:
                raise IncompatibleLoaderError(
                    f"{item.project} 没有兼容 {self.profile} 的版本", context=context
                )
            raise NotFoundError(f"{item.project} 没有可用的版本", context=context)

        metadata = await client.get_version_metadata(item.project, best.version_id)
        return self.matcher.check(metadata, item.project)

    def _apply(self, item: WorkItem, metadata: VersionMetadata) -> List[WorkItem]:
        """记录查询结果，返回新发现的依赖"""
        repo = item.repository.value
        self.aliases[item.alias] = metadata.project_id
        self.aliases[(repo, metadata.project_id)] = metadata.project_id
        key = (repo, metadata.project_id)

        existing = self.selected.get(key)
        if existing is not None:
            self._reuse(item, existing)
            return []

        self.selected[key] = Selection(metadata, item)
        self.edges.setdefault(key, {})
        self._add_edge(item, key)
        logger.info(
            f"[解析] {metadata.name or metadata.project_id} -> {metadata.version_number or metadata.version_id}"
        )

        if not item.dependencies:
            return []

        name = metadata.name or metadata.project_id
        return [
            WorkItem(
                repository=item.repository,
                project=dep.project_id,
                constraint=dep.constraint,
                origin=Origin.TRANSITIVE,
                source=f"{repo}:{dep.project_id}@{dep.constraint} (required by {name})",
                parent=key,
            )
            for dep in metadata.required_dependencies
        ]

    def _reuse(self, item: WorkItem, selection: Selection):
        """已解析过的项目：检查精确版本冲突，否则复用已有选择"""
        chosen = selection.metadata
        if item.is_pinned and item.constraint != chosen.version_id:
            self.conflicts.append(
                {
                    "type": "version",
                    "repository": item.repository.value,
                    "project": chosen.project_id,
                    "selected": chosen.version_id,
                    "requested": item.constraint,
                    "requirements": [selection.item.source, item.source],
                    "message": (
                        f"{chosen.name or chosen.project_id}: "
                        f"{selection.item.source} 选择了 {chosen.version_id}，"
                        f"但 {item.source} 要求 {item.constraint}"
                    ),
                }
            )
            return
        self._add_edge(item, (item.repository.value, chosen.project_id))

    def _add_edge(self, item: WorkItem, target: Key):
        if item.parent is None:
            return
        path = self._path(target, item.parent)
        if path is not None:
            cycle = [item.parent[1]] + [node[1] for node in path]
            self.conflicts.append(
                {
                    "type": "cycle",
                    "repository": item.repository.value,
                    "path": cycle,
                    "requirements": [item.source],
                    "message": "循环依赖 " + " -> ".join(cycle),
                }
            )
            return
        self.edges.setdefault(item.parent, {})[target] = item.constraint

    def _path(self, start: Key, goal: Key) -> Optional[List[Key]]:
        """沿已记录的依赖边查找 start 到 goal 的路径"""
        previous: Dict[Key, Optional[Key]] = {start: None}
        queue = deque([start])
        while queue:
            node = queue.popleft()
            if node == goal:
                path = []
                current: Optional[Key] = node
                while current is not None:
                    path.append(current)
                    current = previous[current]
                return list(reversed(path))
            for child in sorted(self.edges.get(node, ())):
                if child not in previous:
                    previous[child] = node
                    queue.append(child)
        return None

    def _artifacts(self) -> List[ResolvedArtifact]:
        artifacts = []
        paths: Dict[str, str] = {}
        install_dir = self.profile.loader.install_dir
        for key, selection in self.selected.items():
            metadata = selection.metadata
            install_path = f"{install_dir}/{metadata.filename}"
            if install_path in paths:
                raise ConflictError(
                    f"{paths[install_path]} 与 {metadata.project_id} 使用同一安装路径 {install_path}",
                    conflicts=[
                        {
                            "type": "path",
                            "path": install_path,
                            "projects": [paths[install_path], metadata.project_id],
                        }
                    ],
                )
            paths[install_path] = metadata.project_id
            artifacts.append(
                ResolvedArtifact(
                    repository=selection.item.repository,
                    project_id=metadata.project_id,
                    name=metadata.name or selection.item.project,
                    version_id=metadata.version_id,
                    version_number=metadata.version_number,
                    filename=metadata.filename,
                    content_hash=metadata.content_hash,
                    install_path=install_path,
                    url=metadata.url,
                    origin=selection.item.origin,
                    source_requirement=selection.item.source,
                    dependencies=tuple(
                        sorted((dep[1], c) for dep, c in self.edges.get(key, {}).items())
                    ),
                )
            )
        return artifacts
