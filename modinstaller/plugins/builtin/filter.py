"""
项目过滤内置插件

根据黑名单阻止下载指定项目。
"""

from loguru import logger

from modinstaller.plugins.base import (
    InstallerPlugin,
    HookType,
    HookContext,
    HookResult,
)


class FilterPlugin(InstallerPlugin):
    """
    项目过滤插件

    配置 blacklist 中列出的项目 ID 在下载前被拦截。
    """

    name = "filter"
    version = "1.0.0"
    description = "根据黑名单阻止下载项目"
    author = "ModInstaller"

    def __init__(self):
        super().__init__()
        self._blacklist = set()

    async def initialize(self, config: dict) -> None:
        """初始化插件，加载黑名单"""
        await super().initialize(config)

        blacklist = config.get("blacklist", [])
        self._blacklist = {str(name).lower() for name in blacklist}

        if self._blacklist:
            logger.info(f"[过滤] 已加载黑名单: {', '.join(sorted(self._blacklist))}")

    @property
    def blacklist(self) -> set:
        return set(self._blacklist)

    def register_hooks(self):
        """注册 Hook 处理器"""
        return {
            HookType.PRE_DOWNLOAD: self.on_pre_download,
        }

    def on_pre_download(self, context: HookContext) -> HookResult:
        """下载前检查黑名单"""
        project_id = (context.project_id or "").lower()
        if project_id and project_id in self._blacklist:
            logger.warning(f"[过滤] 跳过黑名单项目: {context.project_id}")
            return HookResult(
                success=False,
                should_stop=True,
                error=f"项目 {context.project_id} 在黑名单中",
            )

        return HookResult()


# 插件入口点
plugin_class = FilterPlugin
