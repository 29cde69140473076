from doorlock.core.config import get_settings

settings = get_settings()

host = settings.BACKEND_HOST
port = settings.BACKEND_PORT
log_level = "debug" if settings.DEBUG else "info"
# Scan arming lives in process memory, so the gateway runs a single worker.
workers = 1
