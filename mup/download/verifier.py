"""
文件校验器

实现带算法前缀的哈希校验（sha1/sha256/sha512）、文件存在性检查。
"""

import hashlib
import os
from typing import Optional

import aiofiles

from mup.utils import format_hash, split_hash


class FileVerifier:
    """文件校验器"""

    @staticmethod
    async def calc_hash(file_path: str, algorithm: str = "sha512") -> Optional[str]:
        """
        计算文件哈希

        Args:
            file_path: 文件路径
            algorithm: 哈希算法

        Returns:
            带算法前缀的哈希值，文件不存在时返回 None
        """
        if not os.path.isfile(file_path):
            return None

        hasher = hashlib.new(algorithm)
        try:
            async with aiofiles.open(file_path, "rb") as f:
                while True:
                    data = await f.read(65536)
                    if not data:
                        break
                    hasher.update(data)
            return format_hash(algorithm, hasher.hexdigest())
        except (IOError, OSError):
            return None

    @staticmethod
    async def verify(file_path: str, content_hash: str) -> bool:
        """校验文件哈希是否与 content_hash 一致"""
        algorithm, _ = split_hash(content_hash)
        current = await FileVerifier.calc_hash(file_path, algorithm)
        if current is None:
            return False
        return current == content_hash.lower()

    @staticmethod
    def exists(file_path: str) -> bool:
        return os.path.exists(file_path)

    @staticmethod
    async def is_valid(file_path: str, content_hash: Optional[str] = None) -> bool:
        """检查文件是否有效（存在且校验通过）"""
        if not FileVerifier.exists(file_path):
            return False

        if content_hash:
            return await FileVerifier.verify(file_path, content_hash)

        return True
