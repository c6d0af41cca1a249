"""
HTTP 传输层

仓库客户端与服务端核心客户端共用：session 管理、请求超时、并发上限、
状态码映射与网络错误重试。
"""

import asyncio
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, TypeVar

import aiohttp
from loguru import logger

from mup import __version__
from mup.exceptions import NetworkError, NotFoundError, RepositoryUnavailableError

USER_AGENT = f"mup/{__version__}"

T = TypeVar("T")


class HttpTransport:
    """
    HTTP 传输层

    负责 session 管理、请求超时、并发上限、状态码映射与网络错误重试。
    """

    def __init__(
        self,
        name: str,
        max_concurrent: int = 5,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        request_timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.name = name
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.request_timeout = request_timeout
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._session = session
        self._owned_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"User-Agent": USER_AGENT})
        return self._session

    def _raise_for_status(self, response: aiohttp.ClientResponse, url: str):
        status = response.status
        context = {"repository": self.name, "url": url, "status_code": status}
        if status == 200:
            return
        if status == 404:
            raise NotFoundError(f"{self.name} 上不存在该资源: {url}", context=context)
        if status == 429 or status >= 500:
            raise NetworkError(f"{self.name} 请求失败 (状态码: {status})", context=context)
        raise RepositoryUnavailableError(
            f"{self.name} 请求失败 (状态码: {status})", context=context
        )

    async def _get_json_once(self, url: str, params: Optional[Dict[str, str]]) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        async with self._semaphore:
            try:
                async with self.session.get(url, params=params, timeout=timeout) as response:
                    self._raise_for_status(response, url)
                    return await response.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise NetworkError(
                    f"{self.name} 网络错误: {e}",
                    context={"repository": self.name, "url": url},
                )

    async def retry(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        """对 NetworkError 进行指数退避重试"""
        for attempt in range(self.max_retries + 1):
            try:
                return await operation()
            except NetworkError as e:
                if attempt >= self.max_retries:
                    logger.error(f"[错误] {description} 最终失败: {e}")
                    raise
                delay = self.retry_delay * (2**attempt)
                logger.warning(
                    f"[重试] {description} 失败 (第 {attempt + 1} 次): {e}. "
                    f"{delay:.1f}s 后重试..."
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    async def get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Any:
        return await self.retry(lambda: self._get_json_once(url, params), f"请求 {url}")

    async def stream(self, url: str, chunk_size: int = 65536) -> AsyncIterator[bytes]:
        """流式下载，单次尝试；重试由调用方负责"""
        timeout = aiohttp.ClientTimeout(
            total=None,
            sock_connect=self.request_timeout,
            sock_read=self.request_timeout,
        )
        async with self._semaphore:
            try:
                async with self.session.get(url, timeout=timeout) as response:
                    self._raise_for_status(response, url)
                    async for chunk in response.content.iter_chunked(chunk_size):
                        yield chunk
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise NetworkError(
                    f"下载网络错误: {e}",
                    context={"repository": self.name, "url": url},
                )

    async def close(self):
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()
