from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel
from typing import List, Optional
import json
import logging
import asyncio
import re
import uuid

from api.config import settings
from api.jobs import ProgressHub, run_scrape_job
from scraper.cache import ResultCache
from scraper.config import load_clients, get_client_summary, select_clients
from scraper.exceptions import ConfigurationError

# Setup logging directory
settings.log_dir.mkdir(exist_ok=True)


# Custom formatter to strip ANSI color codes from file logs
class ColorStripFormatter(logging.Formatter):
    """Formatter that strips ANSI color codes from log messages."""
    ansi_escape = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')

    def format(self, record):
        message = super().format(record)
        return self.ansi_escape.sub('', message)


# Setup logging with color support for console, stripped for file
file_handler = logging.FileHandler(settings.log_file, encoding='utf-8')
file_handler.setFormatter(ColorStripFormatter(settings.log_format))

console_handler = logging.StreamHandler()
console_handler.setFormatter(logging.Formatter(settings.log_format))

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    handlers=[file_handler, console_handler],
    force=True  # Override any existing configuration
)

logger = logging.getLogger(__name__)


# Filter to suppress noisy polling endpoint access logs
class PollingEndpointFilter(logging.Filter):
    # Endpoints that poll frequently and clutter logs
    SUPPRESSED_ENDPOINTS = ['/api/scrape/', '/api/scrape-progress']

    def filter(self, record):
        try:
            msg = record.getMessage()
        except Exception:
            msg = str(record.msg)
        for endpoint in self.SUPPRESSED_ENDPOINTS:
            if endpoint in msg:
                return False
        return True


# Apply filter to uvicorn access logger at module load time
uvicorn_access_logger = logging.getLogger("uvicorn.access")
uvicorn_access_logger.addFilter(PollingEndpointFilter())

# Seconds between SSE keep-alive comments
SSE_KEEPALIVE_SECONDS = 15.0


async def cleanup_resources(app: FastAPI):
    """Cancel running scrape jobs; each closes its own browser on cancellation."""
    logger.info("Cleaning up resources...")

    tasks = [t for t in app.state.tasks if not t.done()]
    for task in tasks:
        task.cancel()
    if tasks:
        logger.info(f"Cancelling {len(tasks)} running scrape job(s)...")
        await asyncio.gather(*tasks, return_exceptions=True)

    logger.info("Resource cleanup complete")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info("Listing Scraper Backend Starting Up")
    logger.info("=" * 60)
    logger.info(f"Log file: {settings.log_file}")
    logger.info(f"Environment: {settings.environment} (batch size {settings.effective_batch_size})")
    logger.info(f"CORS origins: {settings.cors_origins}")

    app.state.clients = load_clients(settings.clients_path)
    logger.info(f"Loaded {len(app.state.clients)} client(s) from {settings.clients_path}")

    app.state.cache = ResultCache(settings.cache_path, ttl_seconds=settings.cache_ttl_seconds)
    expired = app.state.cache.clear_expired()
    logger.info(f"Result cache: {len(app.state.cache)} entries ({expired} expired removed)")

    app.state.hub = ProgressHub(retention_seconds=settings.job_retention_seconds)
    app.state.tasks = set()
    logger.info("Backend ready to accept requests")

    yield  # Application runs here

    # Shutdown
    logger.info("=" * 60)
    logger.info("Listing Scraper Backend Shutting Down")
    logger.info("=" * 60)

    try:
        await asyncio.wait_for(cleanup_resources(app), timeout=5.0)
    except asyncio.TimeoutError:
        logger.warning("Shutdown cleanup timed out, forcing exit")
    except Exception as e:
        logger.error(f"Error during shutdown cleanup: {e}")

    logger.info("Shutdown complete")


app = FastAPI(
    title="Listing Scraper API",
    version="1.0.0",
    lifespan=lifespan
)

# Note: allow_credentials must be False when allow_origins is ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    """Return empty response for favicon requests"""
    return Response(status_code=204)


class ScrapeRequest(BaseModel):
    selected_options: Optional[List[str]] = None


# API Endpoints

@app.get("/")
async def root():
    return {"message": "Listing Scraper API", "version": "1.0.0"}


@app.get("/api/clients")
async def get_clients(request: Request):
    """Get all configured clients"""
    return {"clients": get_client_summary(request.app.state.clients)}


@app.post("/api/scrape")
async def start_scrape(body: ScrapeRequest, request: Request):
    """Start a background scrape of the selected clients"""
    state = request.app.state
    client_ids = [c for c in (body.selected_options or []) if c]
    if not client_ids:
        return JSONResponse(status_code=400, content={"success": False, "message": "Invalid selection."})

    try:
        select_clients(client_ids, state.clients)
    except ConfigurationError as e:
        return JSONResponse(status_code=400, content={"success": False, "message": str(e)})

    session_id = uuid.uuid4().hex
    state.hub.create(session_id, client_ids)
    logger.info(f"Starting scrape session {session_id} for {client_ids}")

    task = asyncio.create_task(run_scrape_job(
        session_id,
        client_ids,
        state.hub,
        settings,
        state.clients,
        cache=state.cache,
    ))
    state.tasks.add(task)
    task.add_done_callback(state.tasks.discard)

    return {"success": True, "message": "Scraping started.", "session_id": session_id}


@app.get("/api/scrape-progress")
async def scrape_progress(request: Request, session_id: str = Query(..., description="Scrape session id")):
    """Stream progress for a scrape session as server-sent events"""
    hub: ProgressHub = request.app.state.hub
    if hub.get(session_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")

    async def event_generator():
        queue = hub.subscribe(session_id)
        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=SSE_KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    if await request.is_disconnected():
                        logger.info(f"Progress client for {session_id} disconnected")
                        return
                    yield ": keep-alive\n\n"
                    continue

                yield f"data: {json.dumps(event)}\n\n"
                if event.get('type') == 'complete':
                    return
        finally:
            hub.unsubscribe(session_id, queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.get("/api/scrape/{session_id}")
async def get_scrape_status(session_id: str, request: Request):
    """Get the status and summary of a scrape session"""
    status = request.app.state.hub.get(session_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return status.to_dict()


@app.delete("/api/cache")
async def clear_cache(request: Request):
    """Clear the scrape result cache"""
    cache: ResultCache = request.app.state.cache
    cleared = len(cache)
    cache.clear()
    logger.info(f"Cleared {cleared} cached client result(s)")
    return {"message": "Cache cleared", "cleared": cleared}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        access_log=True,
        log_config=None,  # Use default but our filter will handle it
        timeout_keep_alive=5,  # Reduce keep-alive timeout
        timeout_graceful_shutdown=5.0,  # Graceful shutdown timeout (5 seconds)
    )
