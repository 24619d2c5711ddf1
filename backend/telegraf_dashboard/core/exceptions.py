"""
全局异常处理模块 (Global Exception Handling Module)

定义业务异常类和 FastAPI 全局异常处理器，统一错误响应格式 {error, details?, code?}。
遥测库故障一律转换为 StoreUnavailableError，由调用方直接上抛，不做静默重试。

Defines business exception classes and FastAPI global exception handlers with a
unified {error, details?, code?} response body. Every telemetry store failure
becomes a StoreUnavailableError that callers surface without silent retries.
"""
import logging
import traceback
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ============================================================
# 业务异常类 (Business Exception Classes)
# ============================================================

class BusinessError(Exception):
    """业务异常基类 (Base Business Exception)"""
    status_code: int = 400

    def __init__(self, message: str, detail: Optional[str] = None, code: Optional[str] = None):
        self.message = message
        self.detail = detail
        self.code = code
        super().__init__(message)

    def to_content(self) -> dict:
        content = {"error": self.message}
        if self.detail is not None:
            content["details"] = self.detail
        if self.code is not None:
            content["code"] = self.code
        return content


class MissingParameterError(BusinessError):
    """缺少必填请求参数 (Missing Required Parameter)"""
    status_code = 400


class InvalidParameterError(BusinessError):
    """请求参数取值非法 (Invalid Parameter Value)"""
    status_code = 400


class StoreUnavailableError(BusinessError):
    """
    遥测库不可用 (Telemetry Store Unavailable)

    连接失败、获取连接超时或查询出错。message 为驱动原始信息，
    code 为 SQLSTATE（如有），store_detail 为服务端 detail 字段（如有）。
    """
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, store_detail: Optional[str] = None):
        super().__init__(message, detail=store_detail, code=code)
        self.store_detail = store_detail


class StatsUnavailableError(BusinessError):
    """概览查询失败：统一提示 + 驱动信息与错误码 (Overview query failed)"""
    status_code = 500

    def __init__(self, cause: StoreUnavailableError):
        super().__init__("Database error occurred", detail=cause.message, code=cause.code)


# ============================================================
# 全局异常处理器注册 (Global Exception Handler Registration)
# ============================================================

def register_exception_handlers(app: FastAPI) -> None:
    """
    注册全局异常处理器到 FastAPI 应用 (Register global exception handlers to FastAPI app)

    处理优先级：
    1. BusinessError 子类 → 对应 HTTP 状态码 + {error, details?, code?}
    2. RequestValidationError → 400（参数格式错误）
    3. HTTPException → 保持状态码，包装为统一格式
    4. Exception → 500 + 完整 traceback 日志
    """

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_content())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = ", ".join(".".join(str(part) for part in err.get("loc", ())) for err in exc.errors())
        content = {"error": "Invalid request parameters"}
        if fields:
            content["details"] = fields
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        # 记录完整 traceback 用于调试 (Log full traceback for debugging)
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.url.path,
            str(exc),
            traceback.format_exc(),
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
