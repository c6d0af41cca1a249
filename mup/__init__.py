"""
mup - Minecraft 服务端插件/模组管理工具

将清单解析为固定版本的锁文件，并让服务端目录与锁文件保持一致。
"""

__version__ = "0.1.0"
