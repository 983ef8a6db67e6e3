import pytest

from modinstaller.models import Installation, PackageType, ProjectDetail
from modinstaller.services import CompatibilityFilter


def make_installation(loader, game_version="1.20.1"):
    return Installation(
        name=f"{loader}-{game_version}",
        game_version=game_version,
        loader=loader,
        game_dir=f"/tmp/{loader}",
    )


def make_detail(package_type, loaders, game_versions=("1.20.1",)):
    return ProjectDetail(
        id="proj",
        slug="proj",
        title="Proj",
        package_type=package_type,
        game_versions=list(game_versions),
        loaders=list(loaders),
    )


@pytest.mark.parametrize(
    "loader,expected",
    [("fabric", True), ("Fabric", True), ("forge", False), ("vanilla", False)],
)
def test_mod_requires_installation_loader(loader, expected):
    detail = make_detail(PackageType.MOD, ["fabric", "quilt"])
    assert CompatibilityFilter.is_compatible(
        detail, make_installation(loader), PackageType.MOD
    ) is expected


def test_mod_requires_game_version():
    detail = make_detail(PackageType.MOD, ["fabric"], game_versions=["1.19.4"])
    assert not CompatibilityFilter.is_compatible(
        detail, make_installation("fabric"), PackageType.MOD
    )


def test_shader_ignores_loader_on_modded_installation():
    detail = make_detail(PackageType.SHADER, ["iris", "optifine"])
    assert CompatibilityFilter.is_compatible(
        detail, make_installation("fabric"), PackageType.SHADER
    )
    assert CompatibilityFilter.is_compatible(
        detail, make_installation("forge"), PackageType.SHADER
    )


def test_shader_on_vanilla_needs_vanilla_loader():
    detail = make_detail(PackageType.SHADER, ["iris"])
    assert not CompatibilityFilter.is_compatible(
        detail, make_installation("vanilla"), PackageType.SHADER
    )


def test_resourcepack_rules():
    minecraft = make_detail(PackageType.RESOURCEPACK, ["minecraft"])
    other = make_detail(PackageType.RESOURCEPACK, ["optifine"])

    assert CompatibilityFilter.is_compatible(
        minecraft, make_installation("vanilla"), PackageType.RESOURCEPACK
    )
    assert not CompatibilityFilter.is_compatible(
        other, make_installation("vanilla"), PackageType.RESOURCEPACK
    )
    assert CompatibilityFilter.is_compatible(
        other, make_installation("forge"), PackageType.RESOURCEPACK
    )
    assert not CompatibilityFilter.is_compatible(
        other, make_installation("forge", "1.16.5"), PackageType.RESOURCEPACK
    )


def test_datapack_on_vanilla_needs_datapack_loader():
    datapack = make_detail(PackageType.DATAPACK, ["datapack"])
    fabric_only = make_detail(PackageType.DATAPACK, ["fabric"])

    assert CompatibilityFilter.is_compatible(
        datapack, make_installation("vanilla"), PackageType.DATAPACK
    )
    assert not CompatibilityFilter.is_compatible(
        fabric_only, make_installation("vanilla"), PackageType.DATAPACK
    )
    assert CompatibilityFilter.is_compatible(
        fabric_only, make_installation("fabric"), PackageType.DATAPACK
    )


def test_package_type_given_as_string():
    detail = make_detail(PackageType.SHADER, [])
    assert CompatibilityFilter.is_compatible(detail, make_installation("forge"), "shader")


def test_filter_installations_keeps_order():
    detail = make_detail(PackageType.MOD, ["fabric"])
    installations = [
        make_installation("fabric", "1.20.1"),
        make_installation("forge", "1.20.1"),
        make_installation("fabric", "1.19.2"),
        make_installation("FABRIC", "1.20.1"),
    ]

    result = CompatibilityFilter.filter_installations(
        detail, installations, PackageType.MOD
    )

    assert result == [installations[0], installations[3]]
