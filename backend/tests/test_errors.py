"""
错误处理模块测试
"""
import json

import pytest
from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from httpx import AsyncClient, ASGITransport
from pydantic import BaseModel

from core.errors import (
    ErrorCode,
    AppException,
    ValidationException,
    ItemNotFoundException,
    ParentNotFoundException,
    NameConflictException,
    InvalidNodeTypeException,
    InvalidFieldException,
    ReminderNotFoundException,
    StorageException,
    register_exception_handlers,
    ERROR_MESSAGES,
)


class TestErrors:
    """错误处理测试"""

    def test_error_codes(self):
        """测试错误码定义"""
        assert ErrorCode.SUCCESS == 0
        assert ErrorCode.INTERNAL_ERROR == 1000
        assert ErrorCode.UNAUTHORIZED == 2001
        assert ErrorCode.NOTES_ITEM_NOT_FOUND == 4101

    def test_app_exception(self):
        """测试应用异常基类"""
        exc = AppException(code=ErrorCode.RESOURCE_NOT_FOUND)
        assert exc.code == ErrorCode.RESOURCE_NOT_FOUND
        assert exc.http_status == status.HTTP_404_NOT_FOUND
        assert exc.message == ERROR_MESSAGES[ErrorCode.RESOURCE_NOT_FOUND]

        # 测试 to_dict
        d = exc.to_dict()
        assert d["code"] == ErrorCode.RESOURCE_NOT_FOUND

        # 测试 to_response
        resp = exc.to_response()
        assert isinstance(resp, JSONResponse)
        assert resp.status_code == status.HTTP_404_NOT_FOUND
        assert json.loads(resp.body)["message"] == exc.message

    def test_generic_exceptions(self):
        """测试通用异常类"""
        v_exc = ValidationException(errors=["e1"])
        assert v_exc.code == ErrorCode.VALIDATION_ERROR
        assert v_exc.data["errors"] == ["e1"]
        assert ValidationException().data is None

    @pytest.mark.parametrize("exc,code,http_status", [
        (ItemNotFoundException("a"), ErrorCode.NOTES_ITEM_NOT_FOUND, 404),
        (ParentNotFoundException("p"), ErrorCode.NOTES_PARENT_NOT_FOUND, 404),
        (NameConflictException("Work"), ErrorCode.NOTES_NAME_CONFLICT, 409),
        (InvalidNodeTypeException("image"), ErrorCode.NOTES_INVALID_NODE_TYPE, 400),
        (InvalidFieldException("completed", "note"), ErrorCode.NOTES_INVALID_FIELD, 400),
        (ReminderNotFoundException("a"), ErrorCode.NOTES_REMINDER_NOT_FOUND, 404),
        (StorageException(user_id=3), ErrorCode.STORAGE_ERROR, 500),
    ])
    def test_notes_exceptions(self, exc, code, http_status):
        """测试笔记模块异常"""
        assert exc.code == code
        assert exc.http_status == http_status

    def test_exception_payloads(self):
        """测试异常携带的数据"""
        assert ItemNotFoundException("a").data == {"itemId": "a"}
        assert NameConflictException("Work").data == {"label": "Work"}
        assert InvalidFieldException("type").data == {"field": "type", "type": None}
        assert "note" in InvalidFieldException("completed", "note").message
        assert StorageException(user_id=3).data == {"userId": 3}


class _Body(BaseModel):
    name: str


def _build_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/conflict")
    async def conflict():
        raise NameConflictException("Work")

    @app.post("/body")
    async def body(data: _Body):
        return data

    return app


class TestExceptionHandlers:
    """测试异常处理器"""

    @pytest.mark.asyncio
    async def test_app_exception_handler(self):
        async with AsyncClient(transport=ASGITransport(app=_build_app()), base_url="http://test") as client:
            response = await client.get("/conflict")
        assert response.status_code == 409
        assert response.json() == {
            "code": ErrorCode.NOTES_NAME_CONFLICT,
            "message": NameConflictException("Work").message,
            "data": {"label": "Work"},
        }

    @pytest.mark.asyncio
    async def test_request_validation_handler(self):
        async with AsyncClient(transport=ASGITransport(app=_build_app()), base_url="http://test") as client:
            response = await client.post("/body", json={})
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == ErrorCode.VALIDATION_ERROR
        assert body["data"]["errors"][0]["field"] == "body.name"

    @pytest.mark.asyncio
    async def test_http_exception_handler(self):
        async with AsyncClient(transport=ASGITransport(app=_build_app()), base_url="http://test") as client:
            response = await client.get("/missing")
        assert response.status_code == 404
        assert response.json()["code"] == ErrorCode.RESOURCE_NOT_FOUND
