# dmchat/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI, Query, Request, WebSocket, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from dmchat.api.v1.router import api_router
from dmchat.config import get_settings
from dmchat.database import init_db
from dmchat.exceptions import CryptoError, MessagingError, StoreError
from dmchat.websockets.connection_manager import ConnectionManager, handle_connection

# Get settings
settings = get_settings()

# Setup logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    app.state.connection_manager = ConnectionManager()
    yield
    await app.state.connection_manager.close_all()


# Initialize app
app = FastAPI(
    title="Direct Messages API",
    description="One-to-one messaging with edits, soft deletes, reactions, search and realtime sync",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix=settings.API_PREFIX)


@app.get("/")
async def root():
    """Health check and welcome message"""
    return {
        "message": "Welcome to the Direct Messages API",
        "status": "online",
        "version": "0.1.0"
    }


@app.exception_handler(MessagingError)
async def messaging_exception_handler(request: Request, exc: MessagingError):
    if isinstance(exc, (CryptoError, StoreError)):
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "validation_error", "detail": "; ".join(messages)}
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "http_error", "detail": exc.detail},
        headers=getattr(exc, "headers", None)
    )


# Error handler for global exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_error", "detail": "Internal server error"}
    )


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, access_token: str = Query("")):
    """
    Realtime channel. The server pushes created/edited/deleted/reacted
    events for the authenticated user's conversations; clients merge them
    by message id.
    """
    await handle_connection(
        websocket=websocket,
        access_token=access_token,
        manager=websocket.app.state.connection_manager
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("dmchat.main:app", host="0.0.0.0", port=8000, reload=True)
