import pytest

from modinstaller.plugins import (
    HookContext,
    HookResult,
    HookType,
    InstallerPlugin,
    PluginLoader,
    PluginLoadError,
    PluginManager,
)


class RecordingPlugin(InstallerPlugin):
    name = "recording"
    version = "0.1.0"

    def __init__(self):
        super().__init__()
        self.seen = []

    def register_hooks(self):
        return {
            HookType.PRE_DOWNLOAD: self.on_pre_download,
            HookType.POST_DOWNLOAD: self.on_post_download,
        }

    async def on_pre_download(self, context):
        self.seen.append(("pre", context.project_id))
        return HookResult(data="ok")

    def on_post_download(self, context):
        raise RuntimeError("boom")


class StopPlugin(InstallerPlugin):
    name = "stop"

    def register_hooks(self):
        return {HookType.PRE_DOWNLOAD: lambda context: HookResult(should_stop=True)}


@pytest.fixture
def manager():
    return PluginManager()


async def test_register_and_execute(manager):
    plugin = RecordingPlugin()

    assert await manager.register_plugin(plugin, {"key": "value"})
    assert not await manager.register_plugin(RecordingPlugin())
    assert plugin.config == {"key": "value"}

    results = await manager.execute_hook(
        HookType.PRE_DOWNLOAD, HookContext(project_id="sodium")
    )

    assert plugin.seen == [("pre", "sodium")]
    assert [r.data for r in results] == ["ok"]


async def test_handler_errors_become_failed_results(manager):
    await manager.register_plugin(RecordingPlugin())

    results = await manager.execute_hook(HookType.POST_DOWNLOAD, HookContext())

    assert len(results) == 1
    assert not results[0].success
    assert results[0].error == "boom"


async def test_should_stop_breaks_chain(manager):
    recording = RecordingPlugin()
    await manager.register_plugin(StopPlugin())
    await manager.register_plugin(recording)

    results = await manager.execute_hook(HookType.PRE_DOWNLOAD, HookContext())

    assert PluginManager.stopped(results)
    assert recording.seen == []


async def test_disabled_plugin_is_skipped(manager):
    plugin = RecordingPlugin()
    await manager.register_plugin(plugin)

    assert manager.disable_plugin("recording")
    await manager.execute_hook(HookType.PRE_DOWNLOAD, HookContext(project_id="x"))
    assert plugin.seen == []

    assert manager.enable_plugin("recording")
    await manager.execute_hook(HookType.PRE_DOWNLOAD, HookContext(project_id="x"))
    assert plugin.seen == [("pre", "x")]
    assert not manager.enable_plugin("missing")


async def test_unregister_removes_hooks(manager):
    plugin = RecordingPlugin()
    await manager.register_plugin(plugin)

    assert await manager.unregister_plugin("recording")
    assert not await manager.unregister_plugin("recording")
    assert await manager.execute_hook(HookType.PRE_DOWNLOAD, HookContext()) == []
    assert manager.list_plugins() == []


async def test_plugin_without_name_is_rejected(manager):
    class Nameless(InstallerPlugin):
        def register_hooks(self):
            return {}

    assert not await manager.register_plugin(Nameless())


async def test_load_builtin_plugins(manager):
    loader = PluginLoader(manager)

    results = await loader.load_multiple(
        ["filter", "progress", "notify", "no.such.module"],
        {"filter": {"blacklist": ["Sodium"]}},
    )

    assert results == {
        "filter": True,
        "progress": True,
        "notify": True,
        "no.such.module": False,
    }
    assert manager.get_plugin("filter").blacklist == {"sodium"}
    assert {p["name"] for p in manager.list_plugins()} == {"filter", "progress", "notify"}

    blocked = await manager.execute_hook(
        HookType.PRE_DOWNLOAD, HookContext(project_id="SODIUM")
    )
    assert PluginManager.stopped(blocked)


async def test_load_plugin_from_file(manager, tmp_path):
    source = tmp_path / "counter.py"
    source.write_text(
        "from modinstaller.plugins import InstallerPlugin, HookType\n"
        "\n"
        "class CounterPlugin(InstallerPlugin):\n"
        "    name = 'counter'\n"
        "\n"
        "    def register_hooks(self):\n"
        "        return {HookType.POST_INSTALL: lambda context: None}\n",
        encoding="utf-8",
    )

    assert await PluginLoader(manager).load_from_path(str(source))
    assert manager.get_plugin("counter") is not None


async def test_load_plugin_errors(manager, tmp_path):
    loader = PluginLoader(manager)
    broken = tmp_path / "broken.py"
    broken.write_text("def oops(:\n", encoding="utf-8")
    empty = tmp_path / "empty.py"
    empty.write_text("VALUE = 1\n", encoding="utf-8")
    lua = tmp_path / "plugin.lua"
    lua.write_text("return {}", encoding="utf-8")

    with pytest.raises(PluginLoadError):
        await loader.load_from_path(str(broken))
    with pytest.raises(PluginLoadError):
        await loader.load_from_path(str(empty))
    with pytest.raises(PluginLoadError):
        await loader.load_from_path(str(lua))
    with pytest.raises(PluginLoadError) as exc_info:
        await loader.load_from_path(str(tmp_path / "nothing_here"))

    assert exc_info.value.code == "E800"
