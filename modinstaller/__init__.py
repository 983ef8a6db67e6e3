"""
ModInstaller

Minecraft 资源（模组、数据包、光影、资源包）的依赖解析与安装。
"""

__version__ = "0.1.0"
