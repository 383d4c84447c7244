import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from errors import MatcherError

# ====== ルーター（求人・履歴書・マッチング・履歴） ======
from routers.history import router as history_router
from routers.jobs import router as jobs_router
from routers.matching import router as matching_router
from routers.resumes import router as resumes_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Resume Matcher API",
    version="1.0.0",
)

# CORS（フロントエンドからの呼び出し許可）
# 環境変数 ALLOW_ORIGINS（カンマ区切り）で上書き可能にする
_env_origins = os.getenv("ALLOW_ORIGINS")
_allow_origins = (
    [o.strip() for o in _env_origins.split(",")] if _env_origins else ["http://localhost:3000"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# サービス層の例外はここで JSON に変換する
@app.exception_handler(MatcherError)
async def handle_matcher_error(request: Request, exc: MatcherError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
async def handle_db_error(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "database_error", "detail": "Database operation failed"},
    )


# ルーターを登録（プレフィックスやタグは各ファイル内で定義）
app.include_router(jobs_router)
app.include_router(resumes_router)
app.include_router(matching_router)
app.include_router(history_router)


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


# ローカル実行（python main.py）
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() == "true",
    )
