"""
已安装内容索引

按资源目录维护 哈希 -> 条目 / 项目 ID -> 哈希 的映射，供"是否已安装"判断使用。
"""

import asyncio
import os
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Dict, List, Optional, Set

from loguru import logger

from modinstaller.exceptions import FileSystemError, ModInstallerError
from modinstaller.index.scanner import ResourceScanner, ScanPage
from modinstaller.logger import log_error
from modinstaller.models import Installation, InstalledEntry, PackageType
from modinstaller.services.resource_state import toggled_name


# 通过文件哈希反查项目 ID
ProjectIdentifier = Callable[[str], Awaitable[Optional[str]]]


class ProjectMetadataCache:
    """
    哈希 -> 项目 ID 缓存

    进程生命周期内有效，以哈希为键，文件改名后依然命中。
    """

    def __init__(self):
        self._projects: Dict[str, str] = {}

    def get(self, sha1: str) -> Optional[str]:
        return self._projects.get(sha1)

    def put(self, sha1: str, project_id: str):
        if sha1 and project_id:
            self._projects[sha1] = project_id

    def __contains__(self, sha1: str) -> bool:
        return sha1 in self._projects

    def __len__(self) -> int:
        return len(self._projects)


@dataclass
class _IndexState:
    """索引的一份完整快照，变更只作用于快照本身"""

    by_hash: Dict[str, InstalledEntry] = field(default_factory=dict)
    by_file: Dict[str, str] = field(default_factory=dict)
    by_project: Dict[str, Optional[str]] = field(default_factory=dict)

    def insert(self, entry: InstalledEntry):
        # 同名文件被新内容覆盖，旧哈希已不在磁盘上
        displaced = self.by_file.get(entry.file_name)
        if displaced is not None and displaced != entry.hash:
            self.remove(displaced)

        old = self.by_hash.get(entry.hash)
        if old is not None and old.file_name != entry.file_name:
            self.by_file.pop(old.file_name, None)
        if old is not None and entry.project_id is None:
            entry = replace(entry, project_id=old.project_id)

        self.by_hash[entry.hash] = entry
        self.by_file[entry.file_name] = entry.hash
        if entry.project_id:
            self.by_project[entry.project_id] = entry.hash

    def insert_project(self, project_id: str):
        self.by_project.setdefault(project_id, None)

    def remove(self, sha1: str):
        entry = self.by_hash.pop(sha1, None)
        if entry is None:
            return
        if self.by_file.get(entry.file_name) == sha1:
            del self.by_file[entry.file_name]
        for project_id in [p for p, h in self.by_project.items() if h == sha1]:
            del self.by_project[project_id]

    def remove_project(self, project_id: str):
        sha1 = self.by_project.pop(project_id, None)
        if sha1 is not None:
            self.remove(sha1)

    def rename(self, old_name: str, new_name: str):
        sha1 = self.by_file.pop(old_name, None)
        if sha1 is None:
            return
        entry = replace(self.by_hash[sha1], file_name=new_name)
        self.by_hash[sha1] = entry
        self.by_file[new_name] = sha1


class InstalledContentIndex:
    """
    单个资源目录的已安装内容索引

    所有变更都是同步的整表替换；重新扫描期间发生的变更会被记录，
    在新快照构建完成后重放，再一次性替换，判断时不会看到半成品索引。
    """

    def __init__(
        self,
        directory: str,
        scanner: Optional[ResourceScanner] = None,
        metadata: Optional[ProjectMetadataCache] = None,
        identifier: Optional[ProjectIdentifier] = None,
    ):
        self.directory = directory
        self.scanner = scanner or ResourceScanner()
        self.metadata = metadata or ProjectMetadataCache()
        self.identifier = identifier
        self.scanned = False
        self._state = _IndexState()
        self._journal: Optional[List[Callable[[_IndexState], None]]] = None
        self._scan_lock = asyncio.Lock()

    # ---- 查询 ----

    @property
    def entries(self) -> Set[InstalledEntry]:
        return set(self._state.by_hash.values())

    def __len__(self) -> int:
        return len(self._state.by_hash)

    def contains_hash(self, sha1: Optional[str]) -> bool:
        return bool(sha1) and sha1 in self._state.by_hash

    def contains_project(self, project_id: Optional[str]) -> bool:
        return bool(project_id) and project_id in self._state.by_project

    def entry_for_project(self, project_id: str) -> Optional[InstalledEntry]:
        sha1 = self._state.by_project.get(project_id)
        if sha1 is None:
            return None
        return self._state.by_hash.get(sha1)

    def entry_for_file(self, file_name: str) -> Optional[InstalledEntry]:
        """按文件名查找条目，同时匹配启用 / 禁用两种文件名"""
        for candidate in (file_name, toggled_name(file_name)):
            sha1 = self._state.by_file.get(candidate)
            if sha1 is not None:
                return self._state.by_hash.get(sha1)
        return None

    # ---- 变更 ----

    def _apply(self, mutation: Callable[[_IndexState], None]):
        mutation(self._state)
        if self._journal is not None:
            self._journal.append(mutation)

    def insert(self, sha1: str, file_name: str, project_id: Optional[str] = None):
        """安装成功后增量记录"""
        if project_id:
            self.metadata.put(sha1, project_id)
        entry = InstalledEntry(hash=sha1, file_name=file_name, project_id=project_id)
        self._apply(lambda state: state.insert(entry))

    def insert_project(self, project_id: str):
        """只按项目 ID 记录（哈希未知）"""
        self._apply(lambda state: state.insert_project(project_id))

    def remove(self, sha1: str):
        self._apply(lambda state: state.remove(sha1))

    def remove_project(self, project_id: str):
        self._apply(lambda state: state.remove_project(project_id))

    def remove_file(self, file_name: str):
        """删除文件后移除对应条目"""
        entry = self.entry_for_file(file_name)
        if entry is not None:
            self.remove(entry.hash)

    def rename(self, old_name: str, new_name: str):
        self._apply(lambda state: state.rename(old_name, new_name))

    # ---- 扫描 ----

    async def scan(self, force: bool = False) -> Set[InstalledEntry]:
        """
        扫描资源目录并重建索引

        扫描失败时视为目录为空，不向调用方抛出。
        """
        async with self._scan_lock:
            if self.scanned and not force:
                return self.entries

            self._journal = []
            try:
                try:
                    scanned = await self.scanner.scan(self.directory)
                except FileSystemError as e:
                    log_error(f"[扫描] 扫描 {self.directory} 失败，按空目录处理", e)
                    scanned = []

                entries = [await self._with_project_id(entry) for entry in scanned]

                state = _IndexState()
                for entry in entries:
                    state.insert(entry)
                for mutation in self._journal:
                    mutation(state)
                self._state = state
                self.scanned = True
            finally:
                self._journal = None

        logger.debug(f"[扫描] {self.directory}: 索引 {len(self)} 个条目")
        return self.entries

    async def scan_page(self, page: int = 1, page_size: Optional[int] = None) -> ScanPage:
        """分页扫描，结果合并进当前索引"""
        try:
            result = await self.scanner.scan_page(self.directory, page, page_size)
        except FileSystemError as e:
            log_error(f"[扫描] 分页扫描 {self.directory} 失败", e)
            return ScanPage(page=max(page, 1), page_size=page_size or 0)

        entries = [await self._with_project_id(entry) for entry in result.entries]
        for entry in entries:
            self._apply(lambda state, entry=entry: state.insert(entry))
        result.entries = entries
        return result

    async def _with_project_id(self, entry: InstalledEntry) -> InstalledEntry:
        project_id = self.metadata.get(entry.hash)
        if project_id is None and self.identifier is not None:
            try:
                project_id = await self.identifier(entry.hash)
            except ModInstallerError as e:
                logger.warning(f"[扫描] 无法识别 {entry.file_name}: {e}")
                project_id = None
            if project_id:
                self.metadata.put(entry.hash, project_id)
        if project_id is None:
            return entry
        return replace(entry, project_id=project_id)


class ContentIndexCache:
    """
    已安装内容索引的持有者

    进程生命周期内按资源目录缓存索引，作为依赖注入给解析器和编排器。
    """

    def __init__(
        self,
        scanner: Optional[ResourceScanner] = None,
        identifier: Optional[ProjectIdentifier] = None,
        metadata: Optional[ProjectMetadataCache] = None,
    ):
        self.scanner = scanner or ResourceScanner()
        self.identifier = identifier
        self.metadata = metadata or ProjectMetadataCache()
        self._indexes: Dict[str, InstalledContentIndex] = {}

    def index_for_directory(self, directory: str) -> InstalledContentIndex:
        key = os.path.abspath(directory)
        index = self._indexes.get(key)
        if index is None:
            index = InstalledContentIndex(
                key,
                scanner=self.scanner,
                metadata=self.metadata,
                identifier=self.identifier,
            )
            self._indexes[key] = index
        return index

    def index_for(
        self, installation: Installation, package_type: PackageType
    ) -> InstalledContentIndex:
        return self.index_for_directory(installation.resource_directory(package_type))

    async def ensure(
        self, installation: Installation, package_type: PackageType
    ) -> InstalledContentIndex:
        """获取索引，尚未扫描时先扫描一次"""
        index = self.index_for(installation, package_type)
        if not index.scanned:
            await index.scan()
        return index

    def invalidate(self, directory: Optional[str] = None):
        """丢弃索引，下次使用时重新扫描"""
        if directory is None:
            self._indexes.clear()
        else:
            self._indexes.pop(os.path.abspath(directory), None)
