import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request

from starlette.middleware.base import BaseHTTPMiddleware
from circulation.config import settings
from circulation.database import engine, Base
from circulation.exceptions import CirculationError, circulation_error_handler
from circulation.routes import auth, book, library_card, borrow, finance, system
from circulation.services.notifications import notification_service

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log incoming requests."""
    async def dispatch(self, request: Request, call_next):
        auth_header = request.headers.get("Authorization")
        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"{request.method} {request.url.path} - IP: {client_ip} - Auth: {'Present' if auth_header else 'Missing'}")

        response = await call_next(request)
        if response.status_code >= 400:
            logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
        return response

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager to start/stop the notification publisher."""
    logger.info("Starting notification service...")
    notification_service.connect()

    yield

    logger.info("Stopping notification service...")
    notification_service.disconnect()


app = FastAPI(
    title="Library Circulation API",
    description="Borrowing, returns and fines for the library",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(LoggingMiddleware)
app.add_exception_handler(CirculationError, circulation_error_handler)

# Include routers
app.include_router(auth.router)
app.include_router(book.router)
app.include_router(library_card.router)
app.include_router(borrow.router)
app.include_router(finance.router)
app.include_router(system.router)

@app.get("/")
async def root():
    return {"message": "Library Circulation API", "version": "1.0.0"}

@app.get("/api/health")
async def health_check():
    notifications = "connected" if notification_service.is_running() else (
        "disconnected" if settings.mqtt_enabled else "disabled"
    )
    return {"status": "healthy", "notifications": notifications}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "circulation.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
