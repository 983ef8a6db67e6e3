import asyncio
import hashlib

import pytest

from modinstaller.exceptions import FileSystemError
from modinstaller.index import (
    ContentIndexCache,
    InstalledContentIndex,
    ProjectMetadataCache,
    ResourceScanner,
    calculate_page_range,
)
from modinstaller.models import PackageType


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


@pytest.fixture
def mods(tmp_path):
    directory = tmp_path / "mods"
    directory.mkdir()
    return directory


@pytest.mark.parametrize(
    "total,page,page_size,expected",
    [
        (10, 1, 4, (0, 4, True)),
        (10, 3, 4, (8, 10, False)),
        (10, 4, 4, None),
        (8, 2, 4, (4, 8, False)),
        (0, 1, 4, None),
        (5, 0, 0, (0, 1, True)),
        (5, -3, 10, (0, 5, False)),
    ],
)
def test_calculate_page_range(total, page, page_size, expected):
    assert calculate_page_range(total, page, page_size) == expected


def test_list_files_filters_and_sorts(mods):
    for name in ("b.jar", "A.ZIP", "c.jar.disable", "notes.txt", "config.json"):
        (mods / name).write_bytes(name.encode())
    (mods / "folder.jar").mkdir()

    assert ResourceScanner().list_files(str(mods)) == ["A.ZIP", "b.jar", "c.jar.disable"]


async def test_scan_missing_directory_is_empty(tmp_path):
    scanner = ResourceScanner()
    assert await scanner.scan(str(tmp_path / "nowhere")) == []


async def test_scan_hashes_files(mods):
    (mods / "a.jar").write_bytes(b"alpha")
    (mods / "b.jar.disable").write_bytes(b"beta")

    entries = await ResourceScanner().scan(str(mods))

    by_name = {entry.file_name: entry for entry in entries}
    assert by_name["a.jar"].hash == sha1(b"alpha")
    assert by_name["b.jar.disable"].disabled
    assert not by_name["a.jar"].disabled


async def test_scan_page(mods):
    for i in range(5):
        (mods / f"m{i}.jar").write_bytes(f"mod {i}".encode())
    scanner = ResourceScanner(page_size=2)

    first = await scanner.scan_page(str(mods), 1)
    last = await scanner.scan_page(str(mods), 3)
    beyond = await scanner.scan_page(str(mods), 4)

    assert [e.file_name for e in first.entries] == ["m0.jar", "m1.jar"]
    assert first.has_more and first.total == 5
    assert [e.file_name for e in last.entries] == ["m4.jar"]
    assert not last.has_more
    assert beyond.entries == [] and not beyond.has_more


async def test_index_scan_and_queries(mods):
    (mods / "a.jar").write_bytes(b"alpha")
    metadata = ProjectMetadataCache()
    metadata.put(sha1(b"alpha"), "proj-a")
    index = InstalledContentIndex(str(mods), metadata=metadata)

    await index.scan()

    assert index.scanned
    assert index.contains_hash(sha1(b"alpha"))
    assert index.contains_project("proj-a")
    assert index.entry_for_project("proj-a").file_name == "a.jar"
    assert index.entry_for_file("a.jar.disable").hash == sha1(b"alpha")
    assert not index.contains_hash(None)
    assert not index.contains_project("")


async def test_index_insert_rename_remove(mods):
    index = InstalledContentIndex(str(mods))
    await index.scan()

    index.insert("h1", "one.jar", "p1")
    index.insert_project("shader-pack")
    assert index.contains_hash("h1")
    assert index.contains_project("p1")
    assert index.contains_project("shader-pack")
    assert index.metadata.get("h1") == "p1"

    index.rename("one.jar", "one.jar.disable")
    assert index.entry_for_file("one.jar.disable").project_id == "p1"
    assert index.entry_for_project("p1").disabled

    index.remove_file("one.jar")
    assert not index.contains_hash("h1")
    assert not index.contains_project("p1")

    index.remove_project("shader-pack")
    assert not index.contains_project("shader-pack")


async def test_overwritten_file_drops_previous_hash(mods):
    index = InstalledContentIndex(str(mods))
    await index.scan()

    index.insert("h-new", "lib.jar", "lib")
    index.insert("h-old", "lib.jar", "lib")

    assert not index.contains_hash("h-new")
    assert index.entry_for_file("lib.jar").hash == "h-old"
    assert index.entry_for_project("lib").hash == "h-old"


async def test_renamed_file_keeps_identity(mods):
    (mods / "sodium.jar").write_bytes(b"sodium")
    index = InstalledContentIndex(str(mods))
    await index.scan()
    index.insert(sha1(b"sodium"), "sodium.jar", "AANobbMI")

    (mods / "sodium.jar").rename(mods / "my-renamed-mod.jar")
    await index.scan(force=True)

    entry = index.entry_for_project("AANobbMI")
    assert entry.file_name == "my-renamed-mod.jar"
    assert index.contains_hash(sha1(b"sodium"))


async def test_scan_failure_degrades_to_empty(mods):
    class BrokenScanner(ResourceScanner):
        async def scan(self, directory):
            raise FileSystemError("无法读取资源目录")

    index = InstalledContentIndex(str(mods), scanner=BrokenScanner())

    assert await index.scan() == set()
    assert index.scanned
    assert len(index) == 0


async def test_mutations_during_scan_are_replayed(mods):
    (mods / "old.jar").write_bytes(b"old")
    release = asyncio.Event()
    started = asyncio.Event()

    class SlowScanner(ResourceScanner):
        async def scan(self, directory):
            entries = await super().scan(directory)
            started.set()
            await release.wait()
            return entries

    index = InstalledContentIndex(str(mods), scanner=SlowScanner())
    task = asyncio.create_task(index.scan())
    await started.wait()

    index.insert("fresh", "fresh.jar", "fresh-project")
    release.set()
    await task

    assert index.contains_hash("fresh")
    assert index.contains_project("fresh-project")
    assert index.contains_hash(sha1(b"old"))


async def test_unknown_hash_is_identified(mods):
    (mods / "unknown.jar").write_bytes(b"unknown")
    calls = []

    async def identify(digest):
        calls.append(digest)
        return "identified"

    cache = ContentIndexCache(identifier=identify)
    index = cache.index_for_directory(str(mods))
    await index.scan()
    await index.scan(force=True)

    assert index.contains_project("identified")
    assert calls == [sha1(b"unknown")]


async def test_index_scan_page_merges_entries(mods):
    for i in range(3):
        (mods / f"m{i}.jar").write_bytes(f"mod {i}".encode())
    index = InstalledContentIndex(str(mods), scanner=ResourceScanner(page_size=2))

    page = await index.scan_page(2)

    assert [e.file_name for e in page.entries] == ["m2.jar"]
    assert index.contains_hash(sha1(b"mod 2"))
    assert not index.contains_hash(sha1(b"mod 0"))


async def test_content_index_cache(installation):
    cache = ContentIndexCache()

    index = cache.index_for(installation, PackageType.MOD)
    assert cache.index_for(installation, "mod") is index
    assert cache.index_for(installation, PackageType.SHADER) is not index

    ensured = await cache.ensure(installation, PackageType.MOD)
    assert ensured is index and index.scanned

    cache.invalidate(index.directory)
    assert cache.index_for(installation, PackageType.MOD) is not index

    cache.invalidate()
    assert not cache.index_for(installation, PackageType.MOD).scanned
