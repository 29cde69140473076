import logging

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError

from doorlock.api.routes import api_router
from doorlock.core.config import get_settings
from doorlock.core.exceptions import register_exception_handlers
from doorlock.core.logging import setup_logging
from doorlock.db.base import Base
from doorlock.db.session import SessionLocal, engine
from doorlock.middleware.request_context import RequestContextMiddleware
from doorlock.services.auth_service import ensure_admin
from doorlock.socket.server import sio

settings = get_settings()
setup_logging(logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)

fastapi_app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)
fastapi_app.include_router(api_router, prefix=settings.API_V1_PREFIX)
fastapi_app.add_middleware(RequestContextMiddleware)
fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(fastapi_app)


def _seed_dev_admin() -> None:
    db = SessionLocal()
    try:
        admin = ensure_admin(db, settings.DEFAULT_ADMIN_USERNAME, settings.DEFAULT_ADMIN_PASSWORD)
        logger.info("development admin available as %s", admin.username)
    except IntegrityError:
        # Another worker/process already inserted the admin.
        db.rollback()
    finally:
        db.close()


@fastapi_app.on_event("startup")
async def on_startup():
    Base.metadata.create_all(bind=engine)
    if settings.ENVIRONMENT.lower() == "development":
        _seed_dev_admin()


app = socketio.ASGIApp(
    sio,
    other_asgi_app=fastapi_app,
    socketio_path=settings.SOCKET_PATH.lstrip("/"),
)
