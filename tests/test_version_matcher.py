import pytest

from modinstaller.exceptions import UnsupportedPackageTypeError
from modinstaller.models import (
    DependencyInfo,
    FileInfo,
    Installation,
    PackageType,
    ProjectDetail,
    VersionRelease,
)
from modinstaller.services.dependency_resolver import declared_dependencies
from modinstaller.services.version_matcher import (
    filter_releases,
    find_release,
    loader_filters,
    select_default,
    select_primary_file,
)


INSTALLATION = Installation(
    name="test", game_version="1.20.1", loader="Fabric", game_dir="/tmp/game"
)


def release(version, loaders=("fabric",), game_versions=("1.20.1",), files=None):
    return VersionRelease(
        id=f"id-{version}",
        name=version,
        version_number=version,
        loaders=list(loaders),
        game_versions=list(game_versions),
        files=files if files is not None else [],
    )


@pytest.mark.parametrize(
    "package_type,expected",
    [
        (PackageType.MOD, ["fabric"]),
        (PackageType.DATAPACK, ["datapack"]),
        (PackageType.RESOURCEPACK, ["minecraft"]),
        (PackageType.SHADER, []),
        ("mod", ["fabric"]),
    ],
)
def test_loader_filters(package_type, expected):
    assert loader_filters(package_type, INSTALLATION) == expected


def test_unknown_package_type_rejected():
    with pytest.raises(UnsupportedPackageTypeError):
        loader_filters("plugin", INSTALLATION)


def test_filter_releases_by_version_and_loader():
    releases = [
        release("3.0", game_versions=["1.20.4"]),
        release("2.0", loaders=["forge"]),
        release("1.1", loaders=["Fabric", "quilt"]),
        release("1.0"),
    ]

    result = filter_releases(releases, ["1.20.1"], ["fabric"])

    assert [r.version_number for r in result] == ["1.1", "1.0"]


def test_empty_filters_match_everything():
    releases = [release("1.0", loaders=[]), release("2.0", game_versions=[])]
    assert filter_releases(releases, [], []) == releases


def test_select_default_takes_first():
    releases = [release("2.0"), release("1.0")]
    assert select_default(releases) is releases[0]
    assert select_default([]) is None


def test_select_primary_file():
    first = FileInfo(url="u1", filename="a.jar")
    primary = FileInfo(url="u2", filename="b.jar", primary=True)

    assert select_primary_file([first, primary]) is primary
    assert select_primary_file([first]) is first
    assert select_primary_file([]) is None
    assert select_primary_file(None) is None


def test_find_release_by_id_or_version_number():
    releases = [release("2.0"), release("1.0")]

    assert find_release(releases, "id-1.0") is releases[1]
    assert find_release(releases, "2.0") is releases[0]
    assert find_release(releases, "9.9") is None
    assert find_release(releases, None) is None


def test_declared_dependencies_merges_project_and_release():
    detail = ProjectDetail(
        id="p",
        slug="p-slug",
        title="P",
        package_type=PackageType.MOD,
        dependencies=["a", "p", "b"],
    )
    default = release("1.0")
    default.dependencies = [
        DependencyInfo("b"),
        DependencyInfo("c"),
        DependencyInfo("opt", "optional"),
        DependencyInfo("p-slug"),
        DependencyInfo(""),
    ]

    assert declared_dependencies(detail, default) == ["a", "b", "c"]
    assert declared_dependencies(detail, None) == ["a", "b"]
