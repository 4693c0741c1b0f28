"""FastAPI server exposing the ranked best stories."""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from beststories.container import Container, build_container
from beststories.exceptions import BadRequestError, register_exception_handlers
from beststories.services.models import RankedStory
from beststories.settings import Settings, global_settings


class StoriesServer:
    """HTTP routes for the best stories service."""

    def __init__(self, container: Container):
        self.container = container
        self.settings = container.settings

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            logger.info("Best stories API starting")
            yield
            await self.container.close()
            logger.info("Best stories API stopped")

        self.app = FastAPI(title="Best Stories API", lifespan=lifespan)
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=self.settings.cors_origin_list,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        register_exception_handlers(self.app)

        # Register routes
        self.app.get(
            "/api/stories/best",
            response_model=list[RankedStory],
            responses={400: {"description": "n out of range"}},
        )(self.get_best_stories)
        self.app.get("/health")(self.health_check)

    async def get_best_stories(
        self,
        n: int = Query(10, description="Number of stories to return"),
    ) -> list[RankedStory]:
        """Return the n best stories, highest score first."""
        if n <= 0:
            raise BadRequestError("n must be greater than 0.")

        if n > self.settings.max_items:
            raise BadRequestError(
                f"n must be less than or equal to {self.settings.max_items}."
            )

        return await self.container.service.get_best_stories(n)

    async def health_check(self):
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "beststories",
            **self.container.get_health_status(),
        }


def create_app(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create the FastAPI app with a freshly wired pipeline.

    Args:
        settings: Settings to use, global_settings by default
        http_client: Optional pre-built httpx client for the upstream feed

    Returns:
        FastAPI app
    """
    container = build_container(settings or global_settings, http_client=http_client)
    server = StoriesServer(container)
    server.app.state.container = container
    return server.app
