"""
清单配置模型

定义服务端配置 (ServerProfile)、需求 (Requirement)、运行参数 (Settings)
以及由它们组成的清单 (Manifest)。
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from mup.exceptions import ConfigValidationError

LATEST = "latest"

_MC_VERSION_RE = re.compile(r"^\d+(\.\d+){1,2}$")


class Loader(Enum):
    """服务端加载器"""

    VANILLA = "vanilla"
    FABRIC = "fabric"
    FORGE = "forge"
    NEOFORGE = "neoforge"
    PAPER = "paper"

    @property
    def install_dir(self) -> str:
        """模组/插件安装目录"""
        if self is Loader.PAPER:
            return "plugins"
        return "mods"

    @classmethod
    def parse(cls, value: str) -> "Loader":
        try:
            return cls(value.lower())
        except ValueError:
            valid = ", ".join(loader.value for loader in cls)
            raise ConfigValidationError(
                f"无效的加载器 '{value}'，可选: {valid}",
                context={"loader": value},
            )


class RepositoryKind(Enum):
    """仓库类型"""

    MODRINTH = "modrinth"
    HANGAR = "hangar"
    CURSEFORGE = "curseforge"

    @classmethod
    def parse(cls, value: str) -> "RepositoryKind":
        try:
            return cls(value.lower())
        except ValueError:
            valid = ", ".join(kind.value for kind in cls)
            raise ConfigValidationError(
                f"无效的仓库 '{value}'，可选: {valid}",
                context={"repository": value},
            )


@dataclass(frozen=True)
class ServerProfile:
    """服务端配置：加载器 + Minecraft 版本"""

    loader: Loader
    minecraft_version: str

    def __post_init__(self):
        if not _MC_VERSION_RE.match(self.minecraft_version):
            raise ConfigValidationError(
                f"Minecraft 版本 {self.minecraft_version} 无效",
                context={"minecraft_version": self.minecraft_version},
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerProfile":
        if "loader" not in data or "minecraft_version" not in data:
            raise ConfigValidationError("server 配置缺少 loader 或 minecraft_version")
        return cls(
            loader=Loader.parse(str(data["loader"])),
            minecraft_version=str(data["minecraft_version"]),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "loader": self.loader.value,
            "minecraft_version": self.minecraft_version,
        }

    def __str__(self) -> str:
        return f"{self.loader.value} {self.minecraft_version}"


@dataclass(frozen=True)
class Requirement:
    """
    用户声明的需求。

    constraint 为精确版本 ID 或 "latest"（最新兼容版本）。
    """

    repository: RepositoryKind
    project: str
    constraint: str = LATEST
    direct: bool = True
    dependencies: bool = True

    @property
    def key(self) -> tuple:
        return (self.repository.value, self.project)

    @property
    def is_pinned(self) -> bool:
        return self.constraint != LATEST

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Requirement":
        project = data.get("project") or data.get("id") or data.get("slug")
        if not project:
            raise ConfigValidationError("plugins 条目缺少 project", context=dict(data))
        return cls(
            repository=RepositoryKind.parse(str(data.get("repository", "modrinth"))),
            project=str(project),
            constraint=str(data.get("version") or LATEST),
            dependencies=bool(data.get("dependencies", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "repository": self.repository.value,
            "project": self.project,
            "version": self.constraint,
        }
        if not self.dependencies:
            data["dependencies"] = False
        return data

    def __str__(self) -> str:
        return f"{self.repository.value}:{self.project}@{self.constraint}"


@dataclass
class Settings:
    """运行参数"""

    max_concurrent: int = 5
    max_retries: int = 3
    retry_delay: float = 1.0
    timeout: float = 600.0
    request_timeout: float = 30.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        data = data or {}
        settings = cls(
            max_concurrent=int(data.get("max_concurrent", 5)),
            max_retries=int(data.get("max_retries", 3)),
            retry_delay=float(data.get("retry_delay", 1.0)),
            timeout=float(data.get("timeout", 600.0)),
            request_timeout=float(data.get("request_timeout", 30.0)),
        )
        if settings.max_concurrent <= 0:
            raise ConfigValidationError("max_concurrent 必须大于 0")
        if settings.max_retries < 0:
            raise ConfigValidationError("max_retries 不能为负数")
        return settings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_concurrent": self.max_concurrent,
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "timeout": self.timeout,
            "request_timeout": self.request_timeout,
        }


@dataclass
class Manifest:
    """
    用户声明的期望状态

    loader_version 为服务端核心的版本（Paper 构建号、Fabric loader 版本等），
    默认 "latest"。
    """

    profile: ServerProfile
    requirements: List[Requirement] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)
    loader_version: str = LATEST

    def __post_init__(self):
        seen = set()
        for req in self.requirements:
            if req.key in seen:
                raise ConfigValidationError(
                    f"重复的需求: {req.repository.value}:{req.project}",
                    context={"project": req.project},
                )
            seen.add(req.key)

    def find(self, project: str) -> Optional[Requirement]:
        for req in self.requirements:
            if req.project == project:
                return req
        return None

    def with_requirement(self, requirement: Requirement) -> "Manifest":
        """返回添加或替换了指定需求的新清单"""
        requirements = [r for r in self.requirements if r.key != requirement.key]
        requirements.append(requirement)
        return replace(self, requirements=requirements)

    def without(self, requirement: Requirement) -> "Manifest":
        requirements = [r for r in self.requirements if r.key != requirement.key]
        return replace(self, requirements=requirements)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        if "server" not in data:
            raise ConfigValidationError("清单缺少 [server] 配置")
        return cls(
            profile=ServerProfile.from_dict(data["server"]),
            requirements=[Requirement.from_dict(p) for p in data.get("plugins", [])],
            settings=Settings.from_dict(data.get("settings")),
            loader_version=str(data["server"].get("loader_version") or LATEST),
        )

    def to_dict(self) -> Dict[str, Any]:
        server: Dict[str, Any] = dict(self.profile.to_dict())
        if self.loader_version != LATEST:
            server["loader_version"] = self.loader_version
        data: Dict[str, Any] = {"server": server}
        if self.requirements:
            data["plugins"] = [r.to_dict() for r in self.requirements]
        if self.settings != Settings():
            data["settings"] = self.settings.to_dict()
        return data
