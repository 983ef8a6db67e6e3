import asyncio
import hashlib
import os

import pytest
from aiohttp import test_utils, web

from modinstaller.download import DownloadManager, FileVerifier
from modinstaller.exceptions import (
    DownloadChecksumError,
    DownloadFileError,
    DownloadNetworkError,
    UnsupportedPackageTypeError,
)
from modinstaller.models import PackageType


@pytest.fixture
async def manager():
    manager = DownloadManager(max_concurrent=2, max_retries=0, retry_delay=0)
    yield manager
    await manager.close()


@pytest.fixture
async def file_server():
    payloads = {}
    hits = []

    async def handler(request):
        name = request.match_info["name"]
        hits.append(name)
        if name not in payloads:
            return web.Response(status=500)
        return web.Response(body=payloads[name])

    app = web.Application()
    app.router.add_get("/files/{name}", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    server.payloads = payloads
    server.hits = hits
    yield server
    await server.close()


def part_files(directory):
    return [name for name in os.listdir(directory) if name.endswith(".part")]


async def test_local_download(manager, artifacts, installation):
    file = artifacts.make("sodium.jar")

    result = await manager.download_resource(installation, file, PackageType.MOD)

    assert result.file_path == os.path.join(installation.game_dir, "mods", "sodium.jar")
    assert result.sha1 == file.sha1
    assert not result.skipped
    assert manager.get_stats().completed == 1
    assert part_files(result.directory) == []


async def test_checksum_mismatch_leaves_nothing_behind(manager, artifacts, installation):
    file = artifacts.make("broken.jar")
    file.hashes = {"sha1": "0" * 40}

    with pytest.raises(DownloadChecksumError):
        await manager.download_resource(installation, file, PackageType.MOD)

    mods = os.path.join(installation.game_dir, "mods")
    assert os.listdir(mods) == []
    assert manager.get_failed() == ["broken.jar"]


async def test_sha512_only_checksum(manager, artifacts, installation):
    file = artifacts.make("pack.zip")
    file.hashes = {"sha512": file.hashes["sha512"]}

    result = await manager.download_resource(installation, file, PackageType.RESOURCEPACK)

    assert os.path.basename(result.directory) == "resourcepacks"
    assert await FileVerifier.verify(result.file_path, file.hashes)


async def test_existing_valid_file_is_skipped(manager, artifacts, installation):
    file = artifacts.make("lithium.jar")
    await manager.download_resource(installation, file, PackageType.MOD)

    again = await manager.download_resource(installation, file, PackageType.MOD)

    assert again.skipped
    assert again.sha1 == file.sha1
    assert manager.get_stats().skipped == 1


async def test_missing_local_source(manager, installation, tmp_path):
    url = (tmp_path / "absent.jar").as_uri()

    with pytest.raises(DownloadFileError):
        await manager.download_file(url, "absent.jar", str(tmp_path / "out"))

    assert manager.get_stats().failed == 1


def test_target_directory_routing(installation):
    mods = os.path.join(installation.game_dir, "mods")

    assert DownloadManager.target_directory(installation, "pack.jar", PackageType.DATAPACK) == mods
    assert DownloadManager.target_directory(
        installation, "pack.zip", PackageType.DATAPACK
    ) == os.path.join(installation.game_dir, "datapacks")
    assert DownloadManager.target_directory(
        installation, "tex.JAR", PackageType.RESOURCEPACK
    ) == mods
    assert DownloadManager.target_directory(
        installation, "bsl.zip", "shader"
    ) == os.path.join(installation.game_dir, "shaderpacks")

    with pytest.raises(UnsupportedPackageTypeError):
        DownloadManager.target_directory(installation, "pack.mrpack", PackageType.MODPACK)


async def test_http_download_reports_progress(file_server, tmp_path):
    payload = os.urandom(256 * 1024)
    file_server.payloads["big.jar"] = payload
    progress = []
    manager = DownloadManager(
        max_retries=0, retry_delay=0, progress_callback=lambda name, p: progress.append(p)
    )

    try:
        result = await manager.download_file(
            str(file_server.make_url("/files/big.jar")),
            "big.jar",
            str(tmp_path),
            hashes={"sha1": hashlib.sha1(payload).hexdigest()},
        )
    finally:
        await manager.close()

    assert (tmp_path / "big.jar").read_bytes() == payload
    assert result.sha1 == hashlib.sha1(payload).hexdigest()
    assert progress and all(0 < p <= 100 for p in progress)
    assert manager.get_stats().bytes_downloaded == len(payload)


async def test_http_error_is_retried(file_server, tmp_path):
    manager = DownloadManager(max_retries=2, retry_delay=0)

    try:
        with pytest.raises(DownloadNetworkError):
            await manager.download_file(
                str(file_server.make_url("/files/missing.jar")),
                "missing.jar",
                str(tmp_path),
            )
    finally:
        await manager.close()

    assert file_server.hits == ["missing.jar"] * 3
    assert part_files(tmp_path) == []
    assert not (tmp_path / "missing.jar").exists()


async def test_verifier_without_checksum_only_checks_existence(tmp_path):
    path = tmp_path / "x.jar"

    assert not await FileVerifier.is_valid(str(path))
    path.write_bytes(b"x")
    assert await FileVerifier.is_valid(str(path))
    assert not FileVerifier.has_checksum({})
    assert FileVerifier.has_checksum({"sha1": "abc"})
    assert await FileVerifier.calc_sha1(str(tmp_path / "none.jar")) is None


async def test_same_name_downloads_report_own_hash(manager, artifacts, tmp_path):
    first = artifacts.make("same.jar", b"first")
    second = artifacts.make("same.jar", b"second")
    target = tmp_path / "mods"

    results = await asyncio.gather(
        manager.download_file(first.url, "same.jar", str(target), first.hashes),
        manager.download_file(second.url, "same.jar", str(target), second.hashes),
    )

    assert [r.sha1 for r in results] == [first.sha1, second.sha1]
    final = hashlib.sha1((target / "same.jar").read_bytes()).hexdigest()
    assert final in (first.sha1, second.sha1)
    assert part_files(target) == []


async def test_unusable_target_directory_is_file_error(manager, artifacts, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"")
    file = artifacts.make("a.jar")

    with pytest.raises(DownloadFileError):
        await manager.download_file(file.url, "a.jar", str(blocker / "mods"), file.hashes)

    assert manager.get_failed() == ["a.jar"]
