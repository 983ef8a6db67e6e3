"""
资源目录扫描

列出资源目录中的 jar / zip / 禁用文件并计算 SHA1，支持分页扫描。
"""

import asyncio
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from loguru import logger

from modinstaller.download.verifier import FileVerifier
from modinstaller.exceptions import FileSystemError
from modinstaller.models import DISABLED_SUFFIX, InstalledEntry


RESOURCE_EXTENSIONS = (".jar", ".zip", DISABLED_SUFFIX)


@dataclass
class ScanPage:
    """一页扫描结果"""

    entries: List[InstalledEntry] = field(default_factory=list)
    page: int = 1
    page_size: int = 0
    total: int = 0
    has_more: bool = False


def calculate_page_range(
    total_count: int, page: int, page_size: int
) -> Optional[Tuple[int, int, bool]]:
    """
    计算分页范围

    页码和每页数量最小为 1，超出范围返回 None。

    Returns:
        (start, end, has_more) 或 None
    """
    if total_count <= 0:
        return None

    page = max(page, 1)
    page_size = max(page_size, 1)
    start = (page - 1) * page_size
    if start >= total_count:
        return None

    end = min(start + page_size, total_count)
    return start, end, end < total_count


def is_resource_file(file_name: str) -> bool:
    """是否是可扫描的资源文件（不区分大小写）"""
    return file_name.lower().endswith(RESOURCE_EXTENSIONS)


class ResourceScanner:
    """资源目录扫描器"""

    def __init__(self, page_size: int = 64, hash_concurrency: int = 8):
        self.page_size = max(page_size, 1)
        self.hash_concurrency = max(hash_concurrency, 1)
        self.verifier = FileVerifier()

    def list_files(self, directory: str) -> List[str]:
        """
        列出目录中的资源文件名（按名称排序）

        目录不存在返回空列表，无法读取抛出 FileSystemError。
        """
        if not os.path.isdir(directory):
            return []

        try:
            with os.scandir(directory) as it:
                names = [
                    entry.name
                    for entry in it
                    if entry.is_file() and is_resource_file(entry.name)
                ]
        except OSError as e:
            raise FileSystemError(
                f"无法读取资源目录: {directory}",
                context={"directory": directory, "error": str(e)},
            )

        return sorted(names)

    async def hash_files(self, directory: str, names: List[str]) -> List[InstalledEntry]:
        """并发计算文件哈希，期间消失或无法读取的文件被忽略"""
        semaphore = asyncio.Semaphore(self.hash_concurrency)

        async def hash_one(name: str) -> Optional[InstalledEntry]:
            async with semaphore:
                sha1 = await self.verifier.calc_sha1(os.path.join(directory, name))
            if sha1 is None:
                logger.warning(f"[扫描] 无法读取文件，已忽略: {name}")
                return None
            return InstalledEntry(hash=sha1, file_name=name)

        results = await asyncio.gather(*(hash_one(name) for name in names))
        return [entry for entry in results if entry is not None]

    async def scan(self, directory: str) -> List[InstalledEntry]:
        """完整扫描目录"""
        names = await asyncio.to_thread(self.list_files, directory)
        if not names:
            return []

        logger.debug(f"[扫描] {directory}: {len(names)} 个文件")
        return await self.hash_files(directory, names)

    async def scan_page(
        self, directory: str, page: int = 1, page_size: Optional[int] = None
    ) -> ScanPage:
        """只对当前页的文件计算哈希"""
        page_size = max(page_size or self.page_size, 1)
        page = max(page, 1)
        names = await asyncio.to_thread(self.list_files, directory)

        page_range = calculate_page_range(len(names), page, page_size)
        if page_range is None:
            return ScanPage(page=page, page_size=page_size, total=len(names))

        start, end, has_more = page_range
        entries = await self.hash_files(directory, names[start:end])
        return ScanPage(
            entries=entries,
            page=page,
            page_size=page_size,
            total=len(names),
            has_more=has_more,
        )
