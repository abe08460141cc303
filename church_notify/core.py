import os
import asyncio
from prometheus_client import Counter, Gauge, start_http_server
import logging

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
KAFKA_BOOTSTRAP_SERVERS = os.getenv('KAFKA_BOOTSTRAP_SERVERS', 'kafka:9092')

# memory | redis | kafka
CHANGE_SOURCE = os.getenv('CHANGE_SOURCE', 'redis').lower()
REDIS_CHANNEL_PREFIX = os.getenv('REDIS_CHANNEL_PREFIX', 'realtime:public')
KAFKA_TOPIC_PREFIX = os.getenv('KAFKA_TOPIC_PREFIX', 'church.public')
KAFKA_GROUP_ID = os.getenv('KAFKA_GROUP_ID') or None

FEED_CAPACITY = int(os.getenv('FEED_CAPACITY', '50'))
SUBSCRIBE_MAX_RETRIES = int(os.getenv('SUBSCRIBE_MAX_RETRIES', '3'))
SUBSCRIBE_RETRY_DELAY = float(os.getenv('SUBSCRIBE_RETRY_DELAY', '0.5'))

METRICS_PORT = int(os.getenv('METRICS_PORT', '8001'))

REDIS = None

NOTIFICATIONS_RECEIVED = Counter(
    'church_notifications_received_total',
    'Notifications added to admin feeds',
    ['category'],
)
DUPLICATES_DROPPED = Counter(
    'church_notifications_duplicates_total',
    'Re-delivered insert events dropped by feed deduplication',
    ['category'],
)
SUBSCRIPTION_FAILURES = Counter(
    'church_subscription_failures_total',
    'Failed attempts to establish a change stream listener',
    ['stream'],
)
LIVE_SESSIONS = Gauge(
    'church_feed_sessions',
    'Admin notification feed sessions currently open',
)


def init_metrics(port: int = METRICS_PORT):
    """Initialize Prometheus metrics server"""
    if not port:
        logger.info("Prometheus metrics server disabled")
        return
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except Exception as e:
        logger.warning(f'Prometheus start failed: {e}')


async def redis_startup():
    """Start Redis connection with retries"""
    global REDIS

    import redis.asyncio as aioredis

    max_retries = 3
    retry_delay = 3  # seconds

    for attempt in range(max_retries):
        try:
            logger.info(f"Attempting to connect to Redis: {REDIS_URL} (attempt {attempt + 1}/{max_retries})")

            REDIS = aioredis.from_url(
                REDIS_URL,
                decode_responses=False,
                max_connections=20,
                retry_on_timeout=True,
                health_check_interval=30,
                socket_connect_timeout=5,
            )

            await REDIS.ping()

            logger.info("Redis connected successfully")
            break

        except Exception as e:
            logger.warning(f'Redis startup attempt {attempt + 1} failed: {e}')
            if REDIS:
                try:
                    await REDIS.aclose()
                except Exception as close_error:
                    logger.debug(f'Ignoring Redis close error: {close_error}')
                REDIS = None

            if attempt < max_retries - 1:
                logger.info(f"Retrying Redis connection in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Failed to connect to Redis after all retries")


async def shutdown_connections():
    """Gracefully shutdown all connections"""
    global REDIS
    logger.info("Shutting down connections...")

    if REDIS:
        try:
            await REDIS.aclose()
            logger.info("Redis connection closed")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")
        REDIS = None
