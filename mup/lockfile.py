"""
锁文件存储

以 TOML 格式读写 mup.lock，写入前校验全部不变量并原子替换。
"""

import os
from typing import Optional

import toml
from loguru import logger

from mup.exceptions import LockfileError
from mup.models import Lockfile
from mup.utils import atomic_write_text

LOCKFILE_NAME = "mup.lock"
LOCKFILE_HEADER = "# 此文件由 mup 自动生成，请勿手动编辑。\n\n"


class LockfileStore:
    """锁文件存储"""

    def __init__(self, directory: str, filename: str = LOCKFILE_NAME):
        self.path = os.path.join(directory, filename)

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    @staticmethod
    def dumps(lockfile: Lockfile) -> str:
        lockfile.validate()
        return LOCKFILE_HEADER + toml.dumps(lockfile.to_dict())

    @staticmethod
    def loads(text: str) -> Lockfile:
        try:
            data = toml.loads(text)
        except toml.TomlDecodeError as e:
            raise LockfileError(f"锁文件解析失败: {e}")
        lockfile = Lockfile.from_dict(data)
        lockfile.validate()
        return lockfile

    def load(self) -> Optional[Lockfile]:
        """读取锁文件，不存在时返回 None"""
        if not self.exists():
            return None
        with open(self.path, encoding="utf-8") as f:
            text = f.read()
        try:
            return self.loads(text)
        except LockfileError as e:
            e.context.setdefault("path", self.path)
            raise

    def commit(self, lockfile: Lockfile) -> bool:
        """
        提交锁文件

        Returns:
            True 表示写入了新内容，内容未变化时不写入并返回 False
        """
        text = self.dumps(lockfile)
        if self.exists():
            with open(self.path, encoding="utf-8") as f:
                if f.read() == text:
                    logger.debug("[锁文件] 内容未变化，跳过写入")
                    return False
        try:
            atomic_write_text(self.path, text)
        except OSError as e:
            raise LockfileError(f"写入锁文件失败: {e}", context={"path": self.path})
        logger.info(f"[锁文件] 已写入 {self.path} (generation {lockfile.generation})")
        return True
