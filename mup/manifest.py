"""
清单存储

读写用户声明的清单文件，支持 TOML、JSON 与 YAML。
"""

import json
import os
from pathlib import Path
from typing import Optional

import toml
import yaml

from mup.exceptions import ConfigError, ConfigParseError
from mup.models import Manifest
from mup.utils import atomic_write_text

MANIFEST_NAMES = ("mup.toml", "mup.json", "mup.yaml", "mup.yml")


def load_config(config_path: str) -> dict:
    """加载配置文件"""
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"配置文件不存在: {config_path}")

    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")

    try:
        if suffix == ".toml":
            data = toml.loads(text)
        elif suffix == ".json":
            data = json.loads(text)
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            raise ConfigError(f"不支持的配置文件格式: {suffix}")
    except (toml.TomlDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(f"配置文件解析失败: {e}", context={"path": config_path})

    if not isinstance(data, dict):
        raise ConfigParseError("配置文件顶层必须是表", context={"path": config_path})
    return data


def dump_config(data: dict, suffix: str) -> str:
    if suffix == ".json":
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    if suffix in (".yaml", ".yml"):
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    return toml.dumps(data)


class ManifestStore:
    """清单存储"""

    def __init__(self, directory: str, path: Optional[str] = None):
        self.directory = directory
        self.path = path or self._discover()

    def _discover(self) -> str:
        for name in MANIFEST_NAMES:
            candidate = os.path.join(self.directory, name)
            if os.path.isfile(candidate):
                return candidate
        return os.path.join(self.directory, MANIFEST_NAMES[0])

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def load(self) -> Manifest:
        if not self.exists():
            raise ConfigError(
                "当前目录尚未初始化服务端，请先运行 mup server init",
                context={"path": self.path},
            )
        return Manifest.from_dict(load_config(self.path))

    def save(self, manifest: Manifest) -> None:
        suffix = Path(self.path).suffix.lower()
        atomic_write_text(self.path, dump_config(manifest.to_dict(), suffix))
