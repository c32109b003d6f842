"""
SupportFlow AI - FastAPI Backend
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from supportflow import __version__
from supportflow.config import get_settings
from supportflow.middleware.logging_middleware import LoggingMiddleware
from supportflow.routes import assist, health, hooks
from supportflow.utils.logger import setup_logger

settings = get_settings()
setup_logger("supportflow")

app = FastAPI(
    title="SupportFlow AI",
    description="Ticket categorization and reply suggestion API",
    version=__version__
)

# Middleware 순서 중요: 아래에서 위로 실행됨
# 1. CORS (가장 먼저)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 프로덕션에서는 제한 필요
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 2. Logging (요청/응답 로깅)
app.add_middleware(LoggingMiddleware)

# 라우터 등록 (prefix는 각 라우터 파일에서 정의됨)
app.include_router(hooks.router)
app.include_router(assist.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"message": "SupportFlow AI API", "version": __version__}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.fastapi_host, port=settings.fastapi_port)
