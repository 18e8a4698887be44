from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from holy_travels.config import settings
from holy_travels.database import init_db
from holy_travels.errors import register_exception_handlers
from holy_travels.logger import configure_logging
from holy_travels.auth import router as auth_router
from holy_travels.tours import router as tours_router
from holy_travels.bookings import router as bookings_router
from holy_travels.payments import router as payments_router
from holy_travels.travellers import router as travellers_router
from holy_travels.notifications import router as notifications_router
from holy_travels.notifications.websocket import websocket_endpoint

configure_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.bind(event="startup").info("{} API started ({})", settings.PROJECT_NAME, settings.ENVIRONMENT)
    yield

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Pilgrimage tour booking API",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(
    auth_router.router,
    prefix=f"{settings.API_V1_STR}/auth",
    tags=["Authentication"]
)

app.include_router(
    tours_router.router,
    prefix=f"{settings.API_V1_STR}/tours",
    tags=["Tours"]
)

app.include_router(
    bookings_router.router,
    prefix=f"{settings.API_V1_STR}/bookings",
    tags=["Bookings"]
)

app.include_router(
    payments_router.router,
    prefix=f"{settings.API_V1_STR}/payments",
    tags=["Payments"]
)

app.include_router(
    travellers_router.router,
    prefix=f"{settings.API_V1_STR}/travellers",
    tags=["Travellers"]
)

app.include_router(
    notifications_router.router,
    prefix=f"{settings.API_V1_STR}/notifications",
    tags=["Notifications"]
)

app.add_api_websocket_route("/ws/notifications", websocket_endpoint)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": "Holy Travels API",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
