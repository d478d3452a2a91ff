"""统一响应信封 + 异常处理

所有接口返回 {code, message, data}，成功时 code == 0。
WorkflowError 子类与请求体校验错误在这里统一渲染；
其他未捕获异常兜底为 500 + code 1000，同样走信封。
"""

from typing import Any

import aiosqlite
import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel
from starlette.responses import JSONResponse
from trainops.core.exceptions import (
    ErrorCode,
    InvalidStateTransitionError,
    StorageFailureError,
    WorkflowError,
    WorkflowValidationError,
)

log = structlog.get_logger()


def success(data: Any = None, message: str = "success", status_code: int = 200) -> JSONResponse:
    """成功响应；pydantic 模型按 camelCase 别名序列化"""
    if isinstance(data, BaseModel):
        payload = data.model_dump(by_alias=True, mode="json")
    elif isinstance(data, list):
        payload = [
            item.model_dump(by_alias=True, mode="json") if isinstance(item, BaseModel) else item
            for item in data
        ]
    else:
        payload = jsonable_encoder(data)
    return JSONResponse(
        status_code=status_code,
        content={"code": int(ErrorCode.SUCCESS), "message": message, "data": payload},
    )


def failure(
    status_code: int,
    code: int,
    message: str,
    data: Any = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": int(code), "message": message, "data": jsonable_encoder(data)},
    )


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    data: dict[str, Any] | None = None
    if isinstance(exc, InvalidStateTransitionError):
        data = {"taskId": exc.task_id, "action": exc.action, "currentStage": exc.current_stage}
    elif isinstance(exc, WorkflowValidationError) and exc.details:
        data = {"errors": exc.details}

    if isinstance(exc, StorageFailureError):
        log.error(
            "workflow_storage_failure",
            error=exc.message,
            cause=type(exc.__cause__).__name__ if exc.__cause__ else None,
        )
    else:
        log.info(
            "workflow_request_rejected",
            error_type=type(exc).__name__,
            code=int(exc.code),
            status_code=exc.status_code,
        )
    return failure(exc.status_code, exc.code, exc.message, data)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"loc": list(item.get("loc", ())), "msg": item.get("msg", ""), "type": item.get("type", "")}
        for item in exc.errors()
    ]
    return failure(400, ErrorCode.PARAM_ERROR, "Invalid request parameters", {"errors": errors})


async def sqlite_error_handler(request: Request, exc: aiosqlite.Error) -> JSONResponse:
    """未经 Store 转换的 aiosqlite 错误，按存储失败渲染"""
    error = StorageFailureError()
    log.error("workflow_storage_failure", error=error.message, cause=type(exc).__name__)
    return failure(error.status_code, error.code, error.message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("unhandled_request_error", error_type=type(exc).__name__)
    return failure(500, ErrorCode.SYSTEM_ERROR, "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    """注册统一异常处理器"""
    app.add_exception_handler(WorkflowError, workflow_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(aiosqlite.Error, sqlite_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
