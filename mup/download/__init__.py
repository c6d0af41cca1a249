"""
mup 下载层

包含下载管理、文件校验等功能。
"""

from mup.download.manager import DownloadManager, DownloadStats, TEMP_SUFFIX, UNPINNED_ALGORITHM
from mup.download.verifier import FileVerifier

__all__ = [
    "DownloadManager",
    "DownloadStats",
    "FileVerifier",
    "TEMP_SUFFIX",
    "UNPINNED_ALGORITHM",
]
