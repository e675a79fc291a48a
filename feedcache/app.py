import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse

from feedcache import config
from feedcache.errors import FeedError
from feedcache.models import db, init_db
from feedcache.schemas import FeedItem, FeedOrdering, FeedStatus
from feedcache.services import FeedServices, build_services

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(services: FeedServices | None = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up: opening feed cache...")
        init_db(config.DATABASE_PATH)
        app.state.services = services or build_services()
        yield
        logger.info("Shutting down: closing feed cache...")
        db.close()

    app = FastAPI(lifespan=lifespan)

    def get_feed(request: Request, feed: str):
        services = request.app.state.services
        controller = services.controllers.get(feed)
        if controller is None:
            raise HTTPException(status_code=404, detail=f"Unknown feed {feed}")
        return controller, services.stores[feed]

    async def run(command, filter_key: str):
        try:
            await command(filter_key)
        except FeedError as e:
            raise HTTPException(status_code=503, detail=str(e))

    @app.get("/", response_class=HTMLResponse)
    async def index():
        return """<pre>
    Local news feed cache

    /feeds/latest/items?filter_key=560001
    /feeds/trending/items?filter_key=560001
    </pre>"""

    @app.get("/feeds/{feed}/items", response_model=list[FeedItem])
    async def list_items(request: Request, feed: str, filter_key: str, order: FeedOrdering | None = None):
        controller, store = get_feed(request, feed)
        try:
            return store.fetch_all(filter_key, order_by=order or controller.ordering)
        except FeedError as e:
            raise HTTPException(status_code=503, detail=str(e))

    @app.get("/feeds/{feed}/status", response_model=FeedStatus)
    async def feed_status(request: Request, feed: str, filter_key: str | None = None):
        controller, _ = get_feed(request, feed)
        return controller.status(filter_key)

    @app.post("/feeds/{feed}/load", response_model=FeedStatus)
    async def load_feed(request: Request, feed: str, filter_key: str):
        controller, _ = get_feed(request, feed)
        await run(controller.initial_load, filter_key)
        return controller.status(filter_key)

    @app.post("/feeds/{feed}/refresh", response_model=FeedStatus)
    async def refresh_feed(request: Request, feed: str, filter_key: str):
        controller, _ = get_feed(request, feed)
        await run(controller.refresh, filter_key)
        return controller.status(filter_key)

    @app.post("/feeds/{feed}/load-more", response_model=FeedStatus)
    async def load_more(request: Request, feed: str, filter_key: str, current_id: str):
        controller, store = get_feed(request, feed)
        try:
            # The view is whatever the store currently shows for this feed
            in_view = store.fetch_all(filter_key, order_by=controller.ordering)
            current = next((item for item in in_view if item.id == current_id), None)
            if current is not None:
                await controller.load_more_if_needed(filter_key, current, in_view)
        except FeedError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return controller.status(filter_key)

    @app.post("/sign-out")
    async def sign_out(request: Request):
        key = request.headers.get("x-api-key")
        if not config.API_KEY or key != config.API_KEY:
            raise HTTPException(status_code=401, detail="Invalid API key")

        try:
            request.app.state.services.sign_out()
        except FeedError as e:
            logger.error("Error in /sign-out: %s", e, exc_info=True)
            raise HTTPException(status_code=503, detail=str(e))
        return {"status": "cleared"}

    return app


app = create_app()


if __name__ == "__main__":
    logger.info("Starting feed cache server...")
    uvicorn.run(app, host=config.HOST, port=config.PORT)
