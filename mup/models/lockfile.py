"""
锁文件模型

ResolvedArtifact 只由解析器产生；Lockfile 是已安装内容的唯一依据。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from mup.exceptions import LockfileError
from mup.models.config import LATEST, Loader, RepositoryKind, ServerProfile

SCHEMA_VERSION = 1

Dependency = Tuple[str, str]


class Origin(Enum):
    DIRECT = "direct"
    TRANSITIVE = "transitive"


def _dump_dependency(dependency: Dependency) -> str:
    project_id, constraint = dependency
    return f"{project_id}@{constraint}"


def _load_dependency(text: str) -> Dependency:
    """"P7dR8mSH@latest" -> ("P7dR8mSH", "latest")；没有 @ 时视为 latest"""
    project_id, sep, constraint = text.rpartition("@")
    if not sep:
        return (text, LATEST)
    return (project_id, constraint or LATEST)


@dataclass(frozen=True)
class ResolvedArtifact:
    """一个已固定版本、可下载的文件"""

    repository: RepositoryKind
    project_id: str
    version_id: str
    filename: str
    content_hash: str
    install_path: str
    origin: Origin
    source_requirement: str
    url: str
    name: str = ""
    version_number: str = ""
    dependencies: Tuple[Dependency, ...] = ()

    @property
    def key(self) -> Tuple[str, str]:
        return (self.repository.value, self.project_id)

    @property
    def dependency_ids(self) -> Tuple[str, ...]:
        return tuple(project_id for project_id, _ in self.dependencies)

    @property
    def identity(self) -> Tuple[str, str, str]:
        return (self.repository.value, self.project_id, self.version_id)

    def matches(self, project: str) -> bool:
        """按项目 ID 或名称匹配"""
        return project in (self.project_id, self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repository": self.repository.value,
            "project_id": self.project_id,
            "name": self.name,
            "version_id": self.version_id,
            "version_number": self.version_number,
            "filename": self.filename,
            "path": self.install_path,
            "url": self.url,
            "hash": self.content_hash,
            "origin": self.origin.value,
            "source_requirement": self.source_requirement,
            "dependencies": [_dump_dependency(dep) for dep in self.dependencies],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResolvedArtifact":
        try:
            return cls(
                repository=RepositoryKind(data["repository"]),
                project_id=data["project_id"],
                name=data.get("name", ""),
                version_id=data["version_id"],
                version_number=data.get("version_number", ""),
                filename=data["filename"],
                install_path=data["path"],
                url=data["url"],
                content_hash=data["hash"],
                origin=Origin(data["origin"]),
                source_requirement=data["source_requirement"],
                dependencies=tuple(_load_dependency(str(d)) for d in data.get("dependencies", [])),
            )
        except (KeyError, ValueError) as e:
            raise LockfileError(f"锁文件条目无效: {e}", context={"entry": data})


@dataclass(frozen=True)
class ServerJar:
    """
    服务端核心文件（或安装器）

    安装在服务端根目录。content_hash 为空表示上游没有公布哈希，
    首次下载后由同步器计算并写入锁文件，此后按该哈希校验。
    """

    loader: Loader
    minecraft_version: str
    loader_version: str
    filename: str
    url: str
    content_hash: Optional[str] = None
    installer: bool = False

    @property
    def key(self) -> Tuple[str, str]:
        return ("server", self.loader.value)

    @property
    def install_path(self) -> str:
        return self.filename

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "version": self.loader_version,
            "filename": self.filename,
            "url": self.url,
        }
        if self.content_hash:
            data["hash"] = self.content_hash
        if self.installer:
            data["installer"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], profile: ServerProfile) -> "ServerJar":
        try:
            return cls(
                loader=profile.loader,
                minecraft_version=profile.minecraft_version,
                loader_version=str(data["version"]),
                filename=data["filename"],
                url=data["url"],
                content_hash=data.get("hash"),
                installer=bool(data.get("installer", False)),
            )
        except KeyError as e:
            raise LockfileError(f"锁文件 [server.jar] 缺少字段: {e}", context={"entry": data})


@dataclass(frozen=True)
class DependencyEdge:
    """依赖边：source 依赖 target（项目 ID + 约束）"""

    source: Tuple[str, str]
    target: str
    constraint: str


@dataclass
class Lockfile:
    """完整解析、固定版本、带内容哈希的文件集合"""

    profile: ServerProfile
    artifacts: List[ResolvedArtifact] = field(default_factory=list)
    generation: int = 0
    schema_version: int = SCHEMA_VERSION
    server_jar: Optional[ServerJar] = None

    def __post_init__(self):
        self.artifacts = sorted(self.artifacts, key=lambda a: a.key)

    def __iter__(self) -> Iterator[ResolvedArtifact]:
        return iter(self.artifacts)

    def __len__(self) -> int:
        return len(self.artifacts)

    def get(self, repository: RepositoryKind, project_id: str) -> Optional[ResolvedArtifact]:
        for artifact in self.artifacts:
            if artifact.repository == repository and artifact.project_id == project_id:
                return artifact
        return None

    def find(self, project: str) -> Optional[ResolvedArtifact]:
        """按项目 ID 或名称查找条目"""
        for artifact in self.artifacts:
            if artifact.matches(project):
                return artifact
        return None

    def edges(self) -> List[DependencyEdge]:
        return [
            DependencyEdge(source=artifact.key, target=project_id, constraint=constraint)
            for artifact in self.artifacts
            for project_id, constraint in artifact.dependencies
        ]

    def same_content(self, other: Optional["Lockfile"]) -> bool:
        if other is None:
            return False
        return (
            self.profile == other.profile
            and self.artifacts == other.artifacts
            and self.server_jar == other.server_jar
        )

    def stamp(self, previous: Optional["Lockfile"]) -> int:
        """内容与上一次提交相同时沿用其 generation，否则在其基础上加一"""
        if previous is not None and self.same_content(previous):
            self.generation = previous.generation
        else:
            self.generation = (previous.generation if previous is not None else 0) + 1
        return self.generation

    def validate(self) -> None:
        """校验锁文件不变量：唯一性、无悬空边、无环"""
        keys = {}
        paths = {}
        if self.server_jar is not None:
            if self.server_jar.loader != self.profile.loader:
                raise LockfileError(
                    f"服务端文件 {self.server_jar.filename} 与加载器 {self.profile.loader.value} 不符"
                )
            paths[self.server_jar.install_path] = self.server_jar.loader.value
        for artifact in self.artifacts:
            if artifact.key in keys:
                raise LockfileError(
                    f"重复的条目: {artifact.repository.value}:{artifact.project_id}"
                )
            if artifact.install_path in paths:
                raise LockfileError(
                    f"安装路径冲突: {artifact.install_path}",
                    context={
                        "path": artifact.install_path,
                        "projects": [paths[artifact.install_path], artifact.project_id],
                    },
                )
            keys[artifact.key] = artifact
            paths[artifact.install_path] = artifact.project_id

        graph: Dict[Tuple[str, str], List[Tuple[str, str]]] = {}
        for artifact in self.artifacts:
            targets = []
            for dep in artifact.dependency_ids:
                target = (artifact.repository.value, dep)
                if target not in keys:
                    raise LockfileError(
                        f"{artifact.project_id} 的依赖 {dep} 不在锁文件中",
                        context={"project_id": artifact.project_id, "dependency": dep},
                    )
                targets.append(target)
            graph[artifact.key] = targets

        # 迭代式三色 DFS
        state: Dict[Tuple[str, str], int] = {}
        for root in graph:
            if state.get(root):
                continue
            stack = [(root, iter(graph[root]))]
            state[root] = 1
            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    state[node] = 2
                    stack.pop()
                elif state.get(child) == 1:
                    raise LockfileError(
                        f"锁文件中存在循环依赖: {child[1]}",
                        context={"project_id": child[1]},
                    )
                elif not state.get(child):
                    state[child] = 1
                    stack.append((child, iter(graph[child])))

    def to_dict(self) -> Dict[str, Any]:
        server: Dict[str, Any] = dict(self.profile.to_dict())
        if self.server_jar is not None:
            server["jar"] = self.server_jar.to_dict()
        return {
            "schema_version": self.schema_version,
            "generation": self.generation,
            "server": server,
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lockfile":
        schema = data.get("schema_version")
        if schema != SCHEMA_VERSION:
            raise LockfileError(
                f"不支持的锁文件版本: {schema}",
                context={"schema_version": schema},
            )
        try:
            profile = ServerProfile.from_dict(data["server"])
        except KeyError:
            raise LockfileError("锁文件缺少 [server] 配置")
        jar = data["server"].get("jar")
        return cls(
            profile=profile,
            artifacts=[ResolvedArtifact.from_dict(a) for a in data.get("artifacts", [])],
            generation=int(data.get("generation", 0)),
            schema_version=schema,
            server_jar=ServerJar.from_dict(jar, profile) if jar else None,
        )
