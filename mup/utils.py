import os
import re
import tempfile
from datetime import datetime, timezone
from typing import Tuple

from mup.exceptions import MupError

SUPPORTED_HASHES = ("sha1", "sha256", "sha512")

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_timestamp(value: str) -> datetime:
    """解析 ISO 8601 时间（兼容 Z 后缀与任意位数的小数秒）"""
    text = value.strip().replace("Z", "+00:00")
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_hash(algorithm: str, digest: str) -> str:
    return f"{algorithm}:{digest.lower()}"


def split_hash(content_hash: str) -> Tuple[str, str]:
    """将 sha512:<hex> 拆分为 (算法, 摘要)"""
    algorithm, sep, digest = content_hash.partition(":")
    if not sep or algorithm not in SUPPORTED_HASHES or not digest:
        raise MupError(f"不支持的哈希格式: {content_hash}")
    return algorithm, digest.lower()


def atomic_write_text(path: str, text: str) -> None:
    """写入同目录临时文件后替换目标文件"""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
