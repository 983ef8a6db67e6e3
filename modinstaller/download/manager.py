"""
下载管理器

负责并发控制、失败重试、完整性校验，并把文件放入游戏实例的资源目录。
"""

import asyncio
import os
import shutil
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

import aiofiles
import aiohttp
from loguru import logger

from modinstaller.download.verifier import FileVerifier
from modinstaller.exceptions import (
    DownloadChecksumError,
    DownloadError,
    DownloadFileError,
    DownloadNetworkError,
    UnsupportedPackageTypeError,
)
from modinstaller.models import FileInfo, Installation, PackageType
from modinstaller.models.config import DEFAULT_USER_AGENT, DownloadConfig


CHUNK_SIZE = 64 * 1024


@dataclass
class DownloadStats:
    """本管理器生命周期内的累计计数"""

    total: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    bytes_downloaded: int = 0


@dataclass
class DownloadResult:
    """已放置到资源目录的文件"""

    file_path: str
    file_name: str
    sha1: Optional[str]
    skipped: bool = False

    @property
    def directory(self) -> str:
        return os.path.dirname(self.file_path)


class DownloadManager:
    """
    资源下载器

    同时进行的下载数量由信号量限制，同一目录内的最终替换操作串行执行。
    """

    def __init__(
        self,
        max_concurrent: int = 5,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        session: Optional[aiohttp.ClientSession] = None,
        progress_callback: Optional[Callable[[str, float], None]] = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.max_concurrent = max_concurrent
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.user_agent = user_agent
        self.verifier = FileVerifier()
        self.stats = DownloadStats()
        self._session = session
        self._owned_session = session is None
        self._progress_callback = progress_callback
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._failed_downloads: List[str] = []

    @classmethod
    def from_config(cls, config: DownloadConfig, **kwargs) -> "DownloadManager":
        return cls(
            max_concurrent=config.max_concurrent,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            **kwargs,
        )

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": self.user_agent}
            )
            self._owned_session = True
        return self._session

    def _lock_for(self, directory: str) -> asyncio.Lock:
        return self._locks.setdefault(os.path.abspath(directory), asyncio.Lock())

    @staticmethod
    def target_directory(
        installation: Installation, file_name: str, package_type: PackageType
    ) -> str:
        """
        文件应放置的目录

        以 .jar 发布的数据包 / 资源包按模组处理，放入 mods。
        """
        package_type = PackageType.parse(package_type)
        if package_type is PackageType.MODPACK:
            raise UnsupportedPackageTypeError(
                "整合包不能直接下载到资源目录",
                context={"package_type": package_type.value, "file": file_name},
            )
        if package_type in (
            PackageType.DATAPACK,
            PackageType.RESOURCEPACK,
        ) and file_name.lower().endswith(".jar"):
            return installation.resource_directory(PackageType.MOD)
        return installation.resource_directory(package_type)

    async def download_resource(
        self,
        installation: Installation,
        file: FileInfo,
        package_type: PackageType,
    ) -> DownloadResult:
        """下载资源文件到游戏实例"""
        download_dir = self.target_directory(installation, file.filename, package_type)
        return await self.download_file(
            file.url, file.filename, download_dir, hashes=file.hashes
        )

    async def download_file(
        self,
        url: str,
        filename: str,
        download_dir: str,
        hashes: Optional[Dict[str, str]] = None,
    ) -> DownloadResult:
        """
        下载单个文件到 download_dir

        数据先写入同目录下的临时 .part 文件，校验通过后用 os.replace 移到最终位置，
        目标位置不会出现写了一半的文件。失败时按 retry_delay * 2^n 退避重试。

        Raises:
            DownloadError: 重试次数用尽
        """
        target = os.path.join(download_dir, filename)
        self.stats.total += 1

        async with self._semaphore:
            if self.verifier.has_checksum(hashes):
                async with self._lock_for(download_dir):
                    if await self.verifier.is_valid(target, hashes):
                        self.stats.skipped += 1
                        logger.info(f"[跳过] {filename} 已存在")
                        return await self._existing(target)

            logger.info(f"[下载] {filename}")
            attempt = 0
            while True:
                part_path = os.path.join(
                    download_dir, f".{filename}.{uuid.uuid4().hex[:8]}.part"
                )
                try:
                    os.makedirs(download_dir, exist_ok=True)
                    await self._transfer(url, part_path, filename, attempt)
                    if not await self.verifier.verify(part_path, hashes):
                        raise DownloadChecksumError(
                            f"文件哈希不匹配: {filename}",
                            context={"file": filename, "expected": dict(hashes or {})},
                        )
                    # 结果中的哈希必须取自替换前的临时文件
                    sha1 = await self.verifier.calc_sha1(part_path)
                    async with self._lock_for(download_dir):
                        os.replace(part_path, target)
                except asyncio.CancelledError:
                    self._discard(part_path)
                    raise
                except Exception as e:
                    self._discard(part_path)
                    if attempt >= self.max_retries:
                        self.stats.failed += 1
                        self._failed_downloads.append(filename)
                        logger.error(f"[错误] {filename} 下载失败: {e}")
                        if isinstance(e, DownloadError):
                            raise
                        raise self._as_download_error(e, url, target) from e

                    delay = self.retry_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        f"[重试] {filename} 第 {attempt} 次失败 ({e})，{delay:.1f}s 后重试"
                    )
                    await asyncio.sleep(delay)
                    continue

                self.stats.completed += 1
                logger.success(f"[完成] {filename}")
                return DownloadResult(file_path=target, file_name=filename, sha1=sha1)

    async def _existing(self, path: str) -> DownloadResult:
        return DownloadResult(
            file_path=path,
            file_name=os.path.basename(path),
            sha1=await self.verifier.calc_sha1(path),
            skipped=True,
        )

    @staticmethod
    def _as_download_error(error: Exception, url: str, target: str) -> DownloadError:
        """把最后一次失败的非下载异常归类为 DownloadError"""
        name = os.path.basename(target)
        if isinstance(error, aiohttp.ClientError):
            return DownloadNetworkError(
                f"网络错误: {name}", context={"url": url, "error": str(error)}
            )
        if isinstance(error, OSError):
            return DownloadFileError(
                f"文件写入失败: {name}", context={"file": target, "error": str(error)}
            )
        return DownloadError(f"下载失败: {name}", context={"error": str(error)})

    async def _transfer(self, url: str, part_path: str, filename: str, attempt: int):
        if urlparse(url).scheme == "file":
            await self._copy_local_file(url, part_path)
        else:
            await self._fetch(url, part_path, filename, attempt)

    async def _fetch(self, url: str, part_path: str, filename: str, attempt: int):
        async with self.session.get(url) as response:
            if response.status != 200:
                raise DownloadNetworkError(
                    f"服务器返回 {response.status}",
                    context={"url": url, "status": response.status},
                )

            size = response.content_length or 0
            if size and attempt == 0:
                logger.debug(f"[下载] {filename}: {size / 1048576:.2f} MB")

            received = 0
            reported = 0.0
            async with aiofiles.open(part_path, "wb") as f:
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    await f.write(chunk)
                    received += len(chunk)
                    self.stats.bytes_downloaded += len(chunk)
                    if not size:
                        continue
                    # 每前进 5% 报告一次
                    percent = received * 100 / size
                    if percent - reported >= 5:
                        reported = percent
                        self._report(filename, percent)

    async def _copy_local_file(self, url: str, part_path: str):
        source = url2pathname(urlparse(url).path)
        if not os.path.isfile(source):
            raise DownloadFileError(f"源文件不存在: {source}", context={"path": source})
        logger.debug(f"[下载] 复制本地文件 {source}")
        await asyncio.to_thread(shutil.copyfile, source, part_path)
        self.stats.bytes_downloaded += os.path.getsize(part_path)
        self._report(os.path.basename(source), 100.0)

    def _report(self, filename: str, percent: float):
        logger.debug(f"[进度] {filename}: {percent:.1f}%")
        if self._progress_callback is not None:
            self._progress_callback(filename, percent)

    @staticmethod
    def _discard(path: str):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[下载] 临时文件删除失败 {path}: {e}")

    def get_stats(self) -> DownloadStats:
        return self.stats

    def get_failed(self) -> List[str]:
        """重试用尽仍失败的文件名"""
        return list(self._failed_downloads)

    async def close(self):
        if self._owned_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
