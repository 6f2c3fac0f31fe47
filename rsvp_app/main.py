from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
import os
import atexit
import logging
from .utils.background_tasks import (
    scheduler,
    start_background_tasks,
    stop_background_tasks,
)
from .services.notification_service import get_notification_scheduler
from .schemas.common import ResponseFactory
from . import routers
from .database import engine, Base

logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="RSVP API",
    description="Event RSVP responses for hosts and guests",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv(
        "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported as 400 like service validation errors"""
    logger.warning(f"Invalid request to {request.url.path}")
    error = ResponseFactory.error(
        message="Invalid request",
        error_code="validation_error",
        details={
            "errors": [
                {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]}
                for err in exc.errors()
            ]
        },
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={**error.model_dump(mode="json"), "detail": error.message},
    )


@app.on_event("startup")
async def startup_event():
    """Start background tasks when app starts"""
    logger.info("🚀 Starting RSVP API with notification housekeeping...")
    start_background_tasks()


@app.on_event("shutdown")
async def shutdown_event():
    """Stop background tasks when app shuts down"""
    logger.info("⏹️ Stopping background tasks...")
    stop_background_tasks()


app.include_router(routers.responses.router, prefix="/api/events", tags=["responses"])

atexit.register(stop_background_tasks)


@app.get("/")
async def root():
    return {"message": "Welcome to RSVP API", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "rsvp-api", "version": "1.0.0"}


@app.get("/api/health/notifications")
async def notification_health():
    return ResponseFactory.success(
        data={
            "notifications": get_notification_scheduler().get_status(),
            "housekeeping": scheduler.get_status(),
        }
    ).model_dump(mode="json")


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000, reload=True)
