import os
import json
import logging
import base64
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from client.redis import Client as RedisClient
from client.bigQuery import Client as BigQueryClient
from feed import (
    BatchCache, CandidateBlender, CollaborativeScorer, FeedAssembler,
    FeedConfig, InvalidCursor, LoggingConfig, PrefetchScheduler, UpstreamUnavailable
)
from feed.bigQueryStores import BigQueryContentCatalog, BigQueryInteractionHistory
from feed.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT

# Configure logging
LoggingConfig.configure_logging()
logger = logging.getLogger(__name__)


class FeedServer:
    def __init__(self, assembler: FeedAssembler = None, redis_client: RedisClient = None,
                 prefetcher: PrefetchScheduler = None):
        """
        Initialize feed server

        Args:
            assembler: Feed assembler; built from environment settings when omitted
            redis_client: Redis client used for health checks
            prefetcher: Prefetch scheduler shut down with the app
        """
        if assembler is None:
            assembler, redis_client, prefetcher = self.build_from_env()

        self.assembler = assembler
        self.redis_client = redis_client
        self.prefetcher = prefetcher
        self.app = FastAPI(title="Feed Server", lifespan=self.lifespan)
        self.setup_exception_handlers()
        self.setup_routes()

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        """Stop background prefetching when the app shuts down"""
        yield
        if self.prefetcher is not None:
            self.prefetcher.shutdown(wait=False)
            logger.info("Prefetch scheduler stopped")

    @staticmethod
    def build_from_env():
        """Wire the production assembler from environment settings"""
        config = FeedConfig.from_env()

        credentials_json = json.loads(os.environ['BIGQUERY_CREDENTIALS_JSON'])
        bq_client = BigQueryClient(
            credentials_json,
            os.environ['BIGQUERY_PROJECT_ID'],
            dataset=os.getenv('BIGQUERY_DATASET', 'data')
        )
        redis_client = RedisClient()

        catalog = BigQueryContentCatalog(bq_client)
        history = BigQueryInteractionHistory(bq_client)
        scorer = CollaborativeScorer(history, config)
        blender = CandidateBlender(scorer, catalog, config)
        batch_cache = BatchCache(redis_client, config)
        prefetcher = PrefetchScheduler()

        assembler = FeedAssembler(
            catalog, history,
            blender=blender,
            batch_cache=batch_cache,
            prefetcher=prefetcher,
            config=config
        )
        logger.info("Feed assembler initialized from environment")
        return assembler, redis_client, prefetcher

    def decode_user_id(self, auth_header: str) -> Optional[str]:
        """Extract the user id ('sub' claim) from a bearer JWT without verifying it"""
        try:
            if not auth_header or not auth_header.startswith('Bearer '):
                return None

            jwt_token = auth_header.replace('Bearer ', '')
            parts = jwt_token.split('.')
            if len(parts) != 3:
                return None

            # Decode payload
            payload = parts[1]
            payload += '=' * (-len(payload) % 4)

            decoded = base64.urlsafe_b64decode(payload)
            payload_data = json.loads(decoded)

            return payload_data.get('sub')

        except Exception as e:
            logger.warning(f"Failed to decode JWT: {e}")
            return None

    def setup_exception_handlers(self):
        """Map feed errors to HTTP responses"""

        @self.app.exception_handler(UpstreamUnavailable)
        async def upstream_unavailable(request: Request, exc: UpstreamUnavailable):
            logger.error(f"Upstream unavailable serving {request.url.path}: {exc}")
            return JSONResponse(status_code=503, content={"error": str(exc), "source": exc.source})

        @self.app.exception_handler(InvalidCursor)
        async def invalid_cursor(request: Request, exc: InvalidCursor):
            return JSONResponse(status_code=400, content={"error": str(exc)})

    def setup_routes(self):
        """Setup FastAPI routes"""

        def unauthorized():
            return JSONResponse(status_code=401, content={"error": "Missing or invalid bearer token"})

        @self.app.get("/")
        def root():
            return {"status": "healthy", "service": "feed-server"}

        @self.app.get("/api/v1/feed")
        def get_main_feed(
            request: Request,
            cursor: Optional[str] = None,
            limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT)
        ):
            user_id = self.decode_user_id(request.headers.get('authorization', ''))
            if not user_id:
                return unauthorized()
            return self.assembler.main_feed(user_id, cursor, limit).to_dict()

        @self.app.get("/api/v1/feed/following")
        def get_following_feed(
            request: Request,
            cursor: Optional[str] = None,
            limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT)
        ):
            user_id = self.decode_user_id(request.headers.get('authorization', ''))
            if not user_id:
                return unauthorized()
            return self.assembler.following_feed(user_id, cursor, limit).to_dict()

        @self.app.get("/api/v1/feed/recommended")
        def get_recommended_feed(
            request: Request,
            cursor: Optional[str] = None,
            limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT)
        ):
            user_id = self.decode_user_id(request.headers.get('authorization', ''))
            if not user_id:
                return unauthorized()
            return self.assembler.recommended_feed(user_id, cursor, limit).to_dict()

        @self.app.delete("/api/v1/feed/recommendations")
        def invalidate_recommendations(request: Request):
            user_id = self.decode_user_id(request.headers.get('authorization', ''))
            if not user_id:
                return unauthorized()
            cleared = self.assembler.invalidate_recommendations(user_id)
            logger.info(f"Invalidated recommendation batches for user {user_id}")
            return {"cleared": cleared}

        @self.app.get("/health")
        def health_check():
            if self.redis_client is None:
                return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

            if not self.redis_client.ping():
                return JSONResponse(status_code=503, content={"status": "unhealthy", "redis": "unreachable"})

            stats = self.redis_client.get_stats()
            return {
                "status": "healthy",
                "redis_memory": stats.get('used_memory_human', '0B'),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }


def create_app() -> FastAPI:
    """App factory for `uvicorn server.feedServer:create_app --factory`"""
    return FeedServer().app


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv('PORT', 8080))
    host = os.getenv('HOST', '0.0.0.0')

    logger.info(f"Starting feed server on {host}:{port}")
    uvicorn.run(create_app(), host=host, port=port)
