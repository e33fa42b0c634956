"""
标准错误码体系
提供统一的错误码定义和异常处理
"""

from typing import Optional, Any, Dict
from enum import IntEnum
from fastapi import status
from fastapi.responses import JSONResponse


class ErrorCode(IntEnum):
    """
    标准错误码

    错误码规范：
    - 0: 成功
    - 1xxx: 系统级错误
    - 2xxx: 认证/授权错误
    - 3xxx: 业务通用错误
    - 4xxx: 模块级错误（各模块自定义）
    - 5xxx: 第三方服务错误
    """

    # ==================== 成功 ====================
    SUCCESS = 0

    # ==================== 系统级错误 (1xxx) ====================
    INTERNAL_ERROR = 1000           # 服务器内部错误
    DATABASE_ERROR = 1001           # 数据库错误
    CONFIG_ERROR = 1003             # 配置错误
    SERVICE_UNAVAILABLE = 1004      # 服务不可用

    # ==================== 认证/授权错误 (2xxx) ====================
    UNAUTHORIZED = 2001             # 未认证（未登录）
    TOKEN_EXPIRED = 2002            # 令牌过期
    TOKEN_INVALID = 2003            # 令牌无效
    PERMISSION_DENIED = 2004        # 权限不足

    # ==================== 业务通用错误 (3xxx) ====================
    VALIDATION_ERROR = 3001         # 参数验证失败
    RESOURCE_NOT_FOUND = 3002       # 资源不存在
    RESOURCE_CONFLICT = 3004        # 资源冲突
    OPERATION_FAILED = 3005         # 操作失败

    # ==================== 模块级错误 (4xxx) ====================
    # 4100-4199: 笔记模块
    NOTES_ITEM_NOT_FOUND = 4101
    NOTES_PARENT_NOT_FOUND = 4102
    NOTES_NAME_CONFLICT = 4103
    NOTES_INVALID_NODE_TYPE = 4104
    NOTES_INVALID_FIELD = 4105
    NOTES_REMINDER_NOT_FOUND = 4106

    # ==================== 第三方服务错误 (5xxx) ====================
    STORAGE_ERROR = 5004            # 存储服务错误


# 错误码对应的默认消息
ERROR_MESSAGES: Dict[int, str] = {
    ErrorCode.SUCCESS: "操作成功",

    # 系统级
    ErrorCode.INTERNAL_ERROR: "服务器内部错误，请稍后重试",
    ErrorCode.DATABASE_ERROR: "数据库操作失败",
    ErrorCode.CONFIG_ERROR: "系统配置错误",
    ErrorCode.SERVICE_UNAVAILABLE: "服务暂时不可用",

    # 认证/授权
    ErrorCode.UNAUTHORIZED: "请先登录",
    ErrorCode.TOKEN_EXPIRED: "登录已过期，请重新登录",
    ErrorCode.TOKEN_INVALID: "无效的认证凭据",
    ErrorCode.PERMISSION_DENIED: "没有权限执行此操作",

    # 业务通用
    ErrorCode.VALIDATION_ERROR: "参数验证失败",
    ErrorCode.RESOURCE_NOT_FOUND: "请求的资源不存在",
    ErrorCode.RESOURCE_CONFLICT: "资源冲突",
    ErrorCode.OPERATION_FAILED: "操作失败",

    # 模块级
    ErrorCode.NOTES_ITEM_NOT_FOUND: "条目不存在",
    ErrorCode.NOTES_PARENT_NOT_FOUND: "父文件夹不存在",
    ErrorCode.NOTES_NAME_CONFLICT: "同级目录下已存在同名条目",
    ErrorCode.NOTES_INVALID_NODE_TYPE: "无效的条目类型",
    ErrorCode.NOTES_INVALID_FIELD: "该条目类型不支持此字段",
    ErrorCode.NOTES_REMINDER_NOT_FOUND: "提醒不存在",

    # 第三方服务
    ErrorCode.STORAGE_ERROR: "存储服务异常",
}

# 错误码对应的 HTTP 状态码
ERROR_HTTP_STATUS: Dict[int, int] = {
    ErrorCode.SUCCESS: status.HTTP_200_OK,

    # 系统级 -> 500
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.DATABASE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.CONFIG_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,

    # 认证/授权 -> 401/403
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.TOKEN_EXPIRED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.TOKEN_INVALID: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,

    # 业务通用 -> 400/404/409
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.RESOURCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RESOURCE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.OPERATION_FAILED: status.HTTP_400_BAD_REQUEST,

    # 笔记模块
    ErrorCode.NOTES_ITEM_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.NOTES_PARENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.NOTES_NAME_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.NOTES_INVALID_NODE_TYPE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NOTES_INVALID_FIELD: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NOTES_REMINDER_NOT_FOUND: status.HTTP_404_NOT_FOUND,

    # 存储 -> 500
    ErrorCode.STORAGE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AppException(Exception):
    """
    应用异常基类

    用于抛出业务异常，包含错误码和详细信息

    Usage:
        raise AppException(ErrorCode.RESOURCE_NOT_FOUND, "条目不存在")
        raise AppException(ErrorCode.VALIDATION_ERROR, data={"field": "label", "error": "不能为空"})
    """

    def __init__(
        self,
        code: int = ErrorCode.INTERNAL_ERROR,
        message: Optional[str] = None,
        data: Any = None
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, "未知错误")
        self.data = data
        self.http_status = ERROR_HTTP_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        super().__init__(self.message)

    def to_response(self) -> JSONResponse:
        """转换为 JSONResponse"""
        return JSONResponse(
            status_code=self.http_status,
            content=self.to_dict()
        )

    def to_dict(self) -> dict:
        """转换为字典"""
        return {
            "code": self.code,
            "message": self.message,
            "data": self.data
        }


class ValidationException(AppException):
    """参数验证异常"""

    def __init__(self, message: str = "参数验证失败", errors: Optional[list] = None):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            data={"errors": errors} if errors else None
        )


# ==================== 笔记模块异常 ====================

class ItemNotFoundException(AppException):
    """条目不存在"""

    def __init__(self, item_id: Any = None):
        super().__init__(
            code=ErrorCode.NOTES_ITEM_NOT_FOUND,
            message=f"条目 (ID: {item_id}) 不存在" if item_id else None,
            data={"itemId": item_id} if item_id else None
        )


class ParentNotFoundException(AppException):
    """父文件夹不存在（或目标不是文件夹）"""

    def __init__(self, parent_id: Any = None):
        super().__init__(
            code=ErrorCode.NOTES_PARENT_NOT_FOUND,
            message=f"父文件夹 (ID: {parent_id}) 不存在" if parent_id else None,
            data={"parentId": parent_id} if parent_id else None
        )


class NameConflictException(AppException):
    """同级名称冲突"""

    def __init__(self, label: str):
        super().__init__(
            code=ErrorCode.NOTES_NAME_CONFLICT,
            message=f"同级目录下已存在名为 \"{label}\" 的条目",
            data={"label": label}
        )


class InvalidNodeTypeException(AppException):
    """条目类型不在 folder/note/task 之内"""

    def __init__(self, node_type: Any):
        super().__init__(
            code=ErrorCode.NOTES_INVALID_NODE_TYPE,
            message=f"无效的条目类型: {node_type}",
            data={"type": node_type if isinstance(node_type, str) else str(node_type)}
        )


class InvalidFieldException(AppException):
    """字段对该条目类型不合法，或字段不可修改"""

    def __init__(self, field: str, node_type: Optional[str] = None):
        if node_type:
            message = f"{node_type} 类型的条目不支持字段: {field}"
        else:
            message = f"字段不可修改: {field}"
        super().__init__(
            code=ErrorCode.NOTES_INVALID_FIELD,
            message=message,
            data={"field": field, "type": node_type}
        )


class ReminderNotFoundException(AppException):
    """条目上没有提醒"""

    def __init__(self, item_id: Any = None):
        super().__init__(
            code=ErrorCode.NOTES_REMINDER_NOT_FOUND,
            data={"itemId": item_id} if item_id else None
        )


class StorageException(AppException):
    """存储读写失败"""

    def __init__(self, message: str = "存储服务异常", user_id: Any = None):
        super().__init__(
            code=ErrorCode.STORAGE_ERROR,
            message=message,
            data={"userId": user_id} if user_id is not None else None
        )


# ==================== 异常处理器 ====================

def register_exception_handlers(app):
    """
    注册异常处理器

    在 main.py 中调用：
        from core.errors import register_exception_handlers
        register_exception_handlers(app)
    """
    from fastapi.exceptions import RequestValidationError
    from starlette.exceptions import HTTPException as StarletteHTTPException

    @app.exception_handler(AppException)
    async def handle_app_exception(request, exc: AppException):
        return exc.to_response()

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "code": ErrorCode.VALIDATION_ERROR,
                "message": "参数验证失败",
                "data": {"errors": errors}
            }
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request, exc: StarletteHTTPException):
        # 映射 HTTP 状态码到业务错误码
        code_mapping = {
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.PERMISSION_DENIED,
            404: ErrorCode.RESOURCE_NOT_FOUND,
            500: ErrorCode.INTERNAL_ERROR,
        }

        code = code_mapping.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        message = str(exc.detail) if exc.detail else ERROR_MESSAGES.get(code, "请求失败")

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "code": code,
                "message": message,
                "data": None
            },
            headers=getattr(exc, "headers", None)
        )
