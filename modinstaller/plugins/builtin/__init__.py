"""
ModInstaller 内置插件

这些插件随 ModInstaller 一起打包，可在配置文件中按名称启用。
"""

# 内置插件列表
BUILTIN_PLUGINS = [
    "progress",
    "filter",
    "notify",
]

__all__ = ["BUILTIN_PLUGINS"]
