"""
mup 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息、退出码和 JSON 序列化。
"""

from typing import Any, Dict, List, Optional


class MupError(Exception):
    """mup 基础异常类"""

    exit_code = 1

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(MupError):
    """配置相关错误"""

    exit_code = 7

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """配置解析错误"""

    def _get_default_code(self) -> str:
        return "E101"


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def _get_default_code(self) -> str:
        return "E102"


class RepositoryError(MupError):
    """仓库相关错误"""

    exit_code = 5

    def _get_default_code(self) -> str:
        return "E200"


class NetworkError(RepositoryError):
    """网络错误（可重试）"""

    def _get_default_code(self) -> str:
        return "E201"


class RepositoryUnavailableError(RepositoryError):
    """仓库不可用"""

    def _get_default_code(self) -> str:
        return "E202"


class NotFoundError(MupError):
    """项目或版本不存在"""

    exit_code = 4

    def _get_default_code(self) -> str:
        return "E404"


class IncompatibleLoaderError(NotFoundError):
    """
    版本存在，但未声明与当前服务端配置兼容

    选择候选版本时等同于不存在，因此继承自 NotFoundError。
    """

    def _get_default_code(self) -> str:
        return "E405"


class ConflictError(MupError):
    """依赖冲突或循环依赖"""

    exit_code = 3

    def __init__(
        self,
        message: str,
        conflicts: Optional[List[Dict[str, Any]]] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, context)
        self.conflicts = conflicts or []
        self.context.setdefault("conflicts", self.conflicts)

    def _get_default_code(self) -> str:
        return "E409"


class SyncError(MupError):
    """同步相关错误"""

    def _get_default_code(self) -> str:
        return "E300"


class ChecksumMismatchError(SyncError):
    """下载校验错误"""

    exit_code = 6

    def _get_default_code(self) -> str:
        return "E302"


class LockfileError(MupError):
    """锁文件读写或校验错误"""

    exit_code = 7

    def _get_default_code(self) -> str:
        return "E500"


class Cancelled(MupError):
    """用户中断或超时"""

    exit_code = 130

    def _get_default_code(self) -> str:
        return "E499"


__all__ = [
    "MupError",
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    "RepositoryError",
    "NetworkError",
    "RepositoryUnavailableError",
    "NotFoundError",
    "IncompatibleLoaderError",
    "ConflictError",
    "SyncError",
    "ChecksumMismatchError",
    "LockfileError",
    "Cancelled",
]
