# app/auth/main.py
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.auth.core.config import get_settings
from app.auth.core.errors import register_exception_handlers
from app.auth.core.logging_config import (
    REQUEST_ID_HEADER,
    reset_request_id,
    set_request_id,
    setup_logging,
)

# 모델 모듈 임포트(테이블 등록 보장용)
from app.auth.models import refresh_token as _m_refresh  # noqa: F401
from app.auth.models import user as _m_user  # noqa: F401
from app.auth.models import verification_token as _m_verification  # noqa: F401

# 라우터
from app.auth.routers import auth, health

setup_logging()
logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(
    title="Auth Service",
    version=settings.app_version,
)

# CORS: 개발 환경에서는 전부 허용, prod는 CORS_ORIGINS 목록만
origins = settings.cors_origin_list if settings.env == "prod" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=settings.env == "prod",
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", REQUEST_ID_HEADER],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    token = set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        reset_request_id(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


register_exception_handlers(app)

# 라우터 등록
app.include_router(health.router)
app.include_router(auth.auth_router)
