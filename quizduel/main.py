"""FastAPI application entry point."""
import os

# Force UTC before anything caches timezone information
os.environ['TZ'] = 'UTC'

import asyncio
import time

if hasattr(time, "tzset"):
    time.tzset()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from contextlib import asynccontextmanager

from quizduel.config import get_settings
from quizduel.version import APP_VERSION
from quizduel.routers import challenges, health

# Create logs directory if it doesn't exist
logs_dir = Path("logs")
logs_dir.mkdir(exist_ok=True)

log_file = logs_dir / "quizduel.log"
api_log_file = logs_dir / "quizduel_api.log"
audit_log_file = logs_dir / "quizduel_audit.log"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# General logs: 1MB per file, keep 5 backups
rotating_handler = RotatingFileHandler(log_file, maxBytes=1024 * 1024, backupCount=5, encoding='utf-8')
rotating_handler.setFormatter(logging.Formatter(LOG_FORMAT))

# API request logs: 2MB per file, keep 15 backups
api_rotating_handler = RotatingFileHandler(api_log_file, maxBytes=2 * 1024 * 1024, backupCount=15, encoding='utf-8')
api_rotating_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))

# Challenge access audit trail: 2MB per file, keep 30 backups
audit_rotating_handler = RotatingFileHandler(audit_log_file, maxBytes=2 * 1024 * 1024, backupCount=30, encoding='utf-8')
audit_rotating_handler.setFormatter(logging.Formatter('%(asctime)s - %(message)s'))

# Force=True overrides any existing configuration (e.g., from uvicorn)
logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    handlers=[
        logging.StreamHandler(),
        rotating_handler,
    ],
    force=True,
)

logger = logging.getLogger(__name__)

api_logger = logging.getLogger("quizduel.api")
api_logger.handlers.clear()
api_logger.addHandler(api_rotating_handler)
api_logger.setLevel(logging.INFO)
api_logger.propagate = False

audit_logger = logging.getLogger("quizduel.audit")
audit_logger.handlers.clear()
audit_logger.addHandler(audit_rotating_handler)
audit_logger.setLevel(logging.INFO)
audit_logger.propagate = False

uvicorn_access_logger = logging.getLogger("uvicorn.access")
uvicorn_access_logger.setLevel(logging.INFO)
if rotating_handler not in uvicorn_access_logger.handlers:
    uvicorn_access_logger.addHandler(rotating_handler)

settings = get_settings()


@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    """Manage application startup and shutdown tasks."""
    from quizduel.tasks.evaluation_worker import evaluation_worker_cycle
    from quizduel.tasks.challenge_maintenance import schedule_periodic_maintenance
    from quizduel.services.email_client import close_email_dispatcher
    from quizduel.services.token_client import close_token_allocator

    logger.info("=" * 60)
    logger.info("QuizDuel Challenge API Starting")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Database: {settings.database_url.split('@')[-1] if '@' in settings.database_url else 'SQLite'}")
    logger.info(f"Redis: {'Enabled' if settings.redis_url else 'In-Memory Fallback'}")
    logger.info("=" * 60)

    evaluation_task = None
    sweep_task = None

    try:
        evaluation_task = asyncio.create_task(evaluation_worker_cycle())
        logger.info("Evaluation worker task started")
    except Exception as e:
        logger.error(f"Failed to start evaluation worker: {e}")

    try:
        sweep_task = asyncio.create_task(schedule_periodic_maintenance())
        logger.info("Expiry sweep task started")
    except Exception as e:
        logger.error(f"Failed to start expiry sweep: {e}")

    try:
        yield
    finally:
        logger.info("Shutting down background tasks...")

        tasks_to_cancel = []
        if evaluation_task:
            evaluation_task.cancel()
            tasks_to_cancel.append(("Evaluation worker", evaluation_task))
        if sweep_task:
            sweep_task.cancel()
            tasks_to_cancel.append(("Expiry sweep", sweep_task))

        for task_name, task in tasks_to_cancel:
            try:
                await asyncio.wait_for(task, timeout=2.0)
            except asyncio.CancelledError:
                logger.info(f"{task_name} task cancelled")
            except asyncio.TimeoutError:
                logger.warning(f"{task_name} task did not cancel within timeout, forcing shutdown")
            except Exception as e:
                logger.error(f"Error cancelling {task_name} task: {e}")

        try:
            await close_token_allocator()
            await close_email_dispatcher()
        except Exception as e:
            logger.error(f"Error closing outbound clients: {e}")

        logger.info("QuizDuel Challenge API Shutting Down... Goodbye!")


app = FastAPI(
    title="QuizDuel Challenge API",
    description="Head-to-head quiz challenge evaluation backend",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with user-friendly messages."""
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    errors = []
    for error in exc.errors():
        loc = error.get("loc", [])
        field_path = " -> ".join(str(x) for x in loc[1:]) if len(loc) > 1 else "unknown field"
        errors.append({
            "field": field_path,
            "message": error.get("msg", "Validation error"),
            "type": error.get("type", "unknown"),
        })

    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": errors,
        },
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request and its outcome to the dedicated API log."""
    start_time = time.time()

    client_ip = request.client.host if request.client else "unknown"
    user_agent = request.headers.get("user-agent", "unknown")
    method = request.method
    path = request.url.path
    request_id = f"{method}:{path}:{int(start_time * 1000) % 100000}"

    api_logger.info(f">> {request_id} | START | {method} {path} | IP: {client_ip} | UA: {user_agent[:50]}")
    if request.query_params:
        api_logger.info(f">> {request_id} | QUERY | {request.query_params}")

    try:
        response = await call_next(request)
    except Exception as e:
        api_logger.error(
            f"<< {request_id} | EXCEPTION | {method} {path} | "
            f"Error: {str(e)[:100]} | Time: {time.time() - start_time:.3f}s | IP: {client_ip}"
        )
        raise

    api_logger.info(
        f"<< {request_id} | COMPLETE | {method} {path} | "
        f"Status: {response.status_code} | Time: {time.time() - start_time:.3f}s | IP: {client_ip}"
    )
    return response


allowed_origins = os.getenv("ALLOWED_ORIGINS", "").split(",")
if not allowed_origins or allowed_origins == [""]:
    allowed_origins = [
        settings.frontend_url,
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(challenges.router, prefix="/challenges", tags=["challenges"])
app.include_router(health.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "QuizDuel Challenge API",
        "version": APP_VERSION,
        "environment": settings.environment,
        "docs": "/docs",
    }
