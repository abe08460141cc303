import os
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from .routes import router
from .core import CHANGE_SOURCE, FEED_CAPACITY, init_metrics, redis_startup, shutdown_connections
from .identity import IdentityClient
from .sources import create_change_source
from .ws_manager import SessionRegistry
import logging
from pythonjsonlogger import jsonlogger

# setup structured logging
logger = logging.getLogger('church_notify')
handler = logging.StreamHandler()
formatter = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s')
handler.setFormatter(formatter)
logger.addHandler(handler)
logger.setLevel(logging.INFO)

CORS_ORIGINS = [o.strip() for o in os.getenv('CORS_ORIGINS', '*').split(',') if o.strip()]

app = FastAPI(title="Church Admin Notifications", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(router, prefix="/api")


@app.get('/healthz')
async def healthz():
    return {'status': 'ok', 'change_source': CHANGE_SOURCE, 'sessions': len(app.state.registry.sessions)}


@app.middleware('http')
async def log_requests(request: Request, call_next):
    logger.info({'msg': 'request_start', 'method': request.method, 'path': request.url.path})
    response = await call_next(request)
    logger.info({'msg': 'request_end', 'status': response.status_code})
    return response


@app.on_event("startup")
async def startup():
    # Best-effort init, don't block app from starting if a dependency fails
    if CHANGE_SOURCE == 'redis':
        try:
            await redis_startup()
        except Exception as e:
            logger.warning({'msg': 'redis_start_failed', 'error': str(e)})
    try:
        init_metrics()
    except Exception as e:
        logger.warning({'msg': 'metrics_init_failed', 'error': str(e)})

    source = create_change_source(CHANGE_SOURCE)
    try:
        await source.start()
    except Exception as e:
        logger.warning({'msg': 'change_source_start_failed', 'error': str(e)})
    app.state.change_source = source
    app.state.registry = SessionRegistry(source, capacity=FEED_CAPACITY)
    app.state.identity = IdentityClient()


@app.on_event("shutdown")
async def shutdown():
    await app.state.registry.close_all()
    try:
        await app.state.change_source.stop()
    except Exception as e:
        logger.error({'msg': 'change_source_stop_failed', 'error': str(e)})
    await app.state.identity.aclose()
    await shutdown_connections()
