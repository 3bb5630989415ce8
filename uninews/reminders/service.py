import logging
import sys
import uvicorn
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from uninews.core.config import settings as core_settings
from .api import router as reminders_router
from .config import settings

logging.basicConfig(
    level=core_settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)


def create_app() -> FastAPI:
    app = FastAPI(title=core_settings.PROJECT_NAME, version=core_settings.VERSION)
    app.include_router(reminders_router, prefix=f"{core_settings.API_V1_STR}/channel", tags=["reminders"])

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "service": "reminders"}

    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=settings.SERVICE_HOST, port=settings.SERVICE_PORT)
