"""FastAPI service: vote submission, search proxy and bank distribution."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .config import ServerConfig
from .counter_store import CounterStore, connect
from .errors import FetchError, MalformedPayload, StoreError
from .remote import RegistryHolder, RegistryReloader, RemoteRegistry, fetch_registry
from .search import SearchIndexClient, sync_search
from .votes import decode_votes, diff_and_map

logger = logging.getLogger("dining_votes.server")
logging.basicConfig(level=logging.INFO)


class VoteResponse(BaseModel):
    deltas: int
    applied: int


class HealthResponse(BaseModel):
    status: str
    foods: int
    locations: int
    next_food_id: int


class VoteService:
    """Everything a request needs: the live bank, the counter store and the search index."""

    def __init__(
        self,
        holder: RegistryHolder,
        store: CounterStore,
        search_index: Optional[SearchIndexClient] = None,
        reloader: Optional[RegistryReloader] = None,
    ):
        self.holder = holder
        self.store = store
        self.search_index = search_index
        self.reloader = reloader

    @classmethod
    def start(cls, config: ServerConfig) -> "VoteService":
        """Fetch the bank and connect to the counter store; either failing is fatal."""
        remote = fetch_registry(config.bank_source, timeout=config.http_timeout_seconds)
        logger.info(
            "Loaded bank with %s foods and %s locations",
            len(remote.registry.foods),
            len(remote.registry.locations),
        )
        holder = RegistryHolder(remote)
        store = connect(
            config.redis_url,
            timeout=config.redis_timeout_seconds,
            hash_key=config.votes_hash_key,
        )
        search_index = None
        if config.enable_search_sync:
            search_index = SearchIndexClient(
                config.meili_url,
                config.meili_key,
                index=config.meili_index,
                timeout=config.http_timeout_seconds,
            )
        reloader = RegistryReloader(
            holder,
            config.bank_source,
            interval_seconds=config.reload_interval_seconds,
            timeout=config.http_timeout_seconds,
        )
        service = cls(holder, store, search_index, reloader)
        counts = service.initialize_counters()
        logger.info("Initialized %s vote counters", len(counts))
        if search_index is not None:
            try:
                search_index.configure()
                service.sync_search()
            except (FetchError, StoreError) as exc:
                logger.warning("Initial search sync failed: %s", exc)
        return service

    def initialize_counters(self) -> Dict[Any, int]:
        lookup = self.holder.current.food_id_to_name
        return self.store.initialize(food_id for food_id, name in enumerate(lookup) if name)

    def submit_votes(self, body: bytes) -> VoteResponse:
        remote = self.holder.current
        request = decode_votes(body)
        deltas = diff_and_map(request, remote.food_id_to_name)
        applied = self.store.apply_deltas(deltas)
        return VoteResponse(deltas=len(deltas), applied=applied)

    def sync_search(self) -> int:
        if self.search_index is None:
            return 0
        return sync_search(self.holder.current, self.store.all_counts(), self.search_index)

    def reload_bank(self) -> bool:
        if self.reloader is None:
            return False
        before = self.holder.current
        reloaded = self.reloader.reload_once()
        if reloaded and self.holder.current is not before:
            self.initialize_counters()
        return reloaded

    def health(self) -> HealthResponse:
        remote: RemoteRegistry = self.holder.current
        return HealthResponse(
            status="ok",
            foods=len(remote.registry.foods),
            locations=len(remote.registry.locations),
            next_food_id=remote.registry.next_food_id,
        )


config = ServerConfig.load()
app = FastAPI(title="Dining Votes API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.frontend_origins),
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
    max_age=60 * 60,
)

SERVICE: Optional[VoteService] = None
_BACKGROUND_TASKS: List[asyncio.Task] = []


def _require_service() -> VoteService:
    if SERVICE is None:
        raise HTTPException(status_code=503, detail="Service is still starting. Try again shortly.")
    return SERVICE


async def _reload_loop(service: VoteService) -> None:
    assert service.reloader is not None
    while True:
        await asyncio.sleep(service.reloader.next_delay())
        try:
            await asyncio.to_thread(service.reload_bank)
        except Exception:  # pragma: no cover - keep the loop alive
            logger.exception("Bank reload run failed")


async def _search_sync_loop(service: VoteService, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(service.sync_search)
        except (FetchError, StoreError) as exc:
            logger.warning("Search sync failed: %s", exc)
        except Exception:  # pragma: no cover - keep the loop alive
            logger.exception("Search sync run failed")


@app.on_event("startup")
async def _startup() -> None:
    global SERVICE
    SERVICE = await asyncio.to_thread(VoteService.start, config)
    _BACKGROUND_TASKS.append(asyncio.create_task(_reload_loop(SERVICE)))
    if SERVICE.search_index is not None:
        logger.info("Starting search sync every %s seconds", config.search_sync_interval_seconds)
        _BACKGROUND_TASKS.append(
            asyncio.create_task(_search_sync_loop(SERVICE, config.search_sync_interval_seconds))
        )


@app.on_event("shutdown")
async def _shutdown() -> None:
    for task in _BACKGROUND_TASKS:
        task.cancel()
    _BACKGROUND_TASKS.clear()
    logger.info("Server shutting down")


@app.post("/votes", response_model=VoteResponse)
async def votes(request: Request) -> VoteResponse:
    service = _require_service()
    body = await request.body()
    try:
        return await asyncio.to_thread(service.submit_votes, body)
    except MalformedPayload as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreError as exc:
        logger.warning("Vote submission failed: %s", exc)
        raise HTTPException(status_code=500, detail="Internal error") from exc


@app.get("/search")
async def search(
    q: str = "",
    location: Optional[str] = None,
    sort: Optional[str] = Query(None, pattern=r"^votes:(asc|desc)$"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Dict[str, Any]:
    service = _require_service()
    if service.search_index is None:
        raise HTTPException(status_code=503, detail="Search is disabled.")
    try:
        return await asyncio.to_thread(
            service.search_index.search, q, location=location, sort=sort, limit=limit, offset=offset
        )
    except FetchError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.get("/bank")
def bank() -> Response:
    remote = _require_service().holder.current
    return Response(
        content=remote.snapshot,
        media_type="application/x-protobuf",
        headers={"Cache-Control": "no-store"},
    )


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return _require_service().health()


def main() -> None:
    uvicorn.run(app, host="0.0.0.0", port=config.port)


if __name__ == "__main__":  # pragma: no cover
    main()
