"""
下载管理器

负责并发控制、下载重试、边下载边计算哈希、校验后原子替换，以及下载统计。
"""

import asyncio
import hashlib
import os
from contextlib import aclosing
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

import aiofiles
from loguru import logger

from mup.api import RepositoryClient
from mup.loader import LoaderClient
from mup.download.verifier import FileVerifier
from mup.exceptions import ChecksumMismatchError, NetworkError
from mup.models import ResolvedArtifact, ServerJar
from mup.utils import format_hash, split_hash

TEMP_SUFFIX = ".mup-tmp"

# 上游没有公布哈希时使用的算法
UNPINNED_ALGORITHM = "sha256"

Downloader = Union[RepositoryClient, LoaderClient]
Installable = Union[ResolvedArtifact, ServerJar]


def temp_path_for(final_path: str) -> str:
    directory, filename = os.path.split(final_path)
    return os.path.join(directory, f".{filename}{TEMP_SUFFIX}")


@dataclass
class DownloadStats:
    """下载统计"""

    total: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    bytes_downloaded: int = 0


class DownloadManager:
    """下载管理器"""

    def __init__(
        self,
        max_concurrent: int = 5,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.max_concurrent = max_concurrent
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.verifier = FileVerifier()
        self.stats = DownloadStats()
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._failed_downloads: List[str] = []

    async def install(self, client: Downloader, artifact: Installable, root: str) -> bool:
        """
        下载并安装单个文件

        Returns:
            True 表示进行了下载，False 表示文件已存在且校验通过
        """
        final_path = os.path.join(root, artifact.install_path)
        self.stats.total += 1

        if await self.verifier.is_valid(final_path, artifact.content_hash):
            self.stats.skipped += 1
            logger.info(f"[跳过] '{artifact.filename}' 已存在且校验通过")
            return False

        os.makedirs(os.path.dirname(final_path), exist_ok=True)
        tmp_path = temp_path_for(final_path)
        logger.info(f"[下载] {artifact.filename}")

        for attempt in range(self.max_retries + 1):
            try:
                await self._fetch(client, artifact, tmp_path)
                os.replace(tmp_path, final_path)
                self.stats.completed += 1
                logger.success(f"[完成] '{artifact.filename}' 下载完成")
                return True
            except NetworkError as e:
                _discard(tmp_path)
                if attempt < self.max_retries:
                    delay = self.retry_delay * (2**attempt)
                    logger.warning(
                        f"[重试] 下载 '{artifact.filename}' 失败 (第 {attempt + 1} 次): {e}. "
                        f"{delay:.1f}s 后重试..."
                    )
                    await asyncio.sleep(delay)
                else:
                    self._fail(artifact)
                    logger.error(f"[错误] 下载 '{artifact.filename}' 最终失败: {e}")
                    raise
            except BaseException:
                _discard(tmp_path)
                self._fail(artifact)
                raise

        return False

    async def _fetch(self, client: Downloader, artifact: Installable, tmp_path: str):
        """下载到临时文件并校验哈希；没有记录哈希时只计算 sha256"""
        if artifact.content_hash:
            algorithm, _ = split_hash(artifact.content_hash)
        else:
            algorithm = UNPINNED_ALGORITHM
        hasher = hashlib.new(algorithm)

        async with self._semaphore:
            async with aiofiles.open(tmp_path, "wb") as f:
                async with aclosing(client.download(artifact.url)) as chunks:
                    async for chunk in chunks:
                        hasher.update(chunk)
                        await f.write(chunk)
                        self.stats.bytes_downloaded += len(chunk)

        actual = format_hash(algorithm, hasher.hexdigest())
        if artifact.content_hash and actual != artifact.content_hash.lower():
            repository, project_id = artifact.key
            raise ChecksumMismatchError(
                f"{algorithm} 校验失败: {artifact.filename}",
                context={
                    "repository": repository,
                    "project_id": project_id,
                    "file": artifact.filename,
                    "expected": artifact.content_hash,
                    "actual": actual,
                },
            )

    def _fail(self, artifact: Installable):
        self.stats.failed += 1
        self._failed_downloads.append(artifact.filename)

    async def install_all(
        self, jobs: Sequence[Tuple[Downloader, Installable]], root: str
    ) -> List[bool]:
        """
        并发安装多个文件

        所有任务结束后，若有失败则按任务顺序抛出第一个错误。
        """
        results = await asyncio.gather(
            *(self.install(client, artifact, root) for client, artifact in jobs),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    def get_stats(self) -> DownloadStats:
        return self.stats

    def get_failed(self) -> List[str]:
        return self._failed_downloads.copy()


def _discard(path: str):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
