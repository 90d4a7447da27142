from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from booking_engine.core.config import settings
from booking_engine.core.errors import (
    BookingConflictError,
    BookingNotFoundError,
    DataUnavailableError,
    InvalidStatusTransitionError,
    ServiceNotFoundError,
    StoreWriteError,
)
from booking_engine.api import bookings
from booking_engine.core.logger import setup_logging, logger
from contextlib import asynccontextmanager
from datetime import datetime

setup_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🚀 Starting Booking Engine")
    yield
    # Shutdown
    logger.info("🛑 Shutting down Booking Engine")

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan
)

@app.exception_handler(BookingConflictError)
async def conflict_handler(request: Request, exc: BookingConflictError):
    return JSONResponse(
        status_code=409,
        content={
            "message": exc.message,
            "conflicts": [c.model_dump(mode="json") for c in exc.conflicts],
        }
    )

@app.exception_handler(InvalidStatusTransitionError)
async def transition_handler(request: Request, exc: InvalidStatusTransitionError):
    return JSONResponse(status_code=409, content={"message": exc.message})

@app.exception_handler(BookingNotFoundError)
@app.exception_handler(ServiceNotFoundError)
async def not_found_handler(request: Request, exc: BookingNotFoundError):
    return JSONResponse(status_code=404, content={"message": exc.message})

@app.exception_handler(DataUnavailableError)
@app.exception_handler(StoreWriteError)
async def store_error_handler(request: Request, exc: DataUnavailableError):
    logger.error(f"❌ Store failure on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=503, content={"message": "Booking store unavailable", "detail": exc.message})

# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"🔥 UNHANDLED ERROR: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "Internal Server Error", "detail": "An unexpected error occurred. Please contact support."}
    )

app.include_router(bookings.router, tags=["Bookings"])

@app.get("/health")
async def health_check():
    return {"status": "ok", "environment": settings.ENVIRONMENT, "timestamp": datetime.now().isoformat()}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("booking_engine.main:app", host="0.0.0.0", port=settings.PORT, reload=True)
