from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status
from jsonschema import ValidationError

from .admin import bidders as admin_bidders
from .admin import config as admin_config
from .admin import health as admin_health
from .admin import stats as admin_stats
from .bidders.registry import BidderRegistry
from .config import ServerConfig, get_bidder_config_path, get_server_config
from .events.constants import Events
from .render.pixels import PixelClient
from .render.surface import HostFrame, Surface
from .runtime import Runtime, build_runtime
from .transport.serialization import to_jsonable
from .validation.validator import SchemaRegistry, get_schema_registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    server_config = get_server_config()
    schema_registry = get_schema_registry()
    bidder_registry = BidderRegistry(get_bidder_config_path())
    runtime = build_runtime(server_config, bidder_registry, pixels=PixelClient())

    app.state.server_config = server_config
    app.state.schema_registry = schema_registry
    app.state.bidder_registry = bidder_registry
    app.state.runtime = runtime
    app.state.start_time = datetime.now(timezone.utc)

    yield

    await runtime.close()


app = FastAPI(
    title="hbcore Header Bidding Server",
    version="1.0.0",
    docs_url="/docs",
    lifespan=lifespan,
)

app.include_router(admin_health.router)
app.include_router(admin_stats.router)
app.include_router(admin_config.router)
app.include_router(admin_bidders.router)


# Dependency helpers ---------------------------------------------------------


def get_server_settings(request: Request) -> ServerConfig:
    return request.app.state.server_config


def get_schema_service(request: Request) -> SchemaRegistry:
    return request.app.state.schema_registry


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def _validate(schemas: SchemaRegistry, name: str, payload: Any) -> None:
    try:
        schemas.validate(name, payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc.message)) from exc


# Routes ---------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root(
    settings: ServerConfig = Depends(get_server_settings),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    return {
        "service": "hbcore",
        "version": app.version,
        "auction": {
            "bidder_timeout_ms": runtime.get_config("bidder_timeout"),
            "suppress_stale_render": runtime.get_config("auction_options.suppress_stale_render", False),
            "distribution_backend": settings.auction.distribution.get("backend", "local"),
        },
        "s2s_bidders": sorted({bidder for block in settings.s2s for bidder in block.bidders}),
    }


@app.get("/hb/ping", tags=["platform"])
async def ping() -> dict[str, Any]:
    return {"status": "ok", "version": app.version}


@app.post("/hb/ad-units", tags=["ad-units"], status_code=status.HTTP_201_CREATED)
async def add_ad_units(
    payload: dict[str, Any] = Body(...),
    schemas: SchemaRegistry = Depends(get_schema_service),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    _validate(schemas, "ad_units", payload)
    runtime.add_ad_units(payload["ad_units"])
    return {"status": "accepted", "ad_unit_codes": runtime.ad_units.codes()}


@app.delete("/hb/ad-units", tags=["ad-units"])
async def remove_ad_units(
    code: list[str] | None = Query(default=None),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    runtime.remove_ad_unit(code)
    return {"status": "removed", "ad_unit_codes": runtime.ad_units.codes()}


@app.post("/hb/request-bids", tags=["auction"], status_code=status.HTTP_202_ACCEPTED)
async def request_bids(
    payload: dict[str, Any] | None = Body(default=None),
    schemas: SchemaRegistry = Depends(get_schema_service),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    payload = payload or {}
    _validate(schemas, "request_bids", payload)
    options = dict(payload)
    auction_id = options.pop("auction_id", None) or str(uuid4())
    await runtime.request_bids(auction_id=auction_id, **options)
    auction = runtime.auctions.get_auction(auction_id)
    if auction is None:
        return {"status": "no_bids_requested", "auction_id": None, "ad_unit_codes": []}
    return {
        "status": auction.status.value,
        "auction_id": auction.id(),
        "ad_unit_codes": list(auction.ad_unit_codes),
    }


@app.post("/hb/bid-response", tags=["auction"], status_code=status.HTTP_202_ACCEPTED)
async def submit_bid_response(
    payload: dict[str, Any] = Body(...),
    schemas: SchemaRegistry = Depends(get_schema_service),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, str]:
    _validate(schemas, "bid_response", payload)
    try:
        bid = runtime.add_bid_response(payload["auction_id"], payload["bid"])
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"status": "accepted", "ad_id": bid.ad_id}


@app.post("/hb/render", tags=["render"])
async def render(
    payload: dict[str, Any] = Body(...),
    schemas: SchemaRegistry = Depends(get_schema_service),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    """Render a winning bid into an in-memory surface and report the outcome.

    The outcome is read back from the render events rather than from the call,
    since the pipeline itself never raises.
    """
    _validate(schemas, "render_request", payload)
    surface = build_surface(payload.get("surface"))
    ad_id = payload.get("ad_id")
    outcome: dict[str, Any] = {"status": "suppressed", "stale": False}

    # the bus is shared, so only events for this ad id belong to this request
    def on_success(event: dict[str, Any]) -> None:
        if event.get("ad_id") == ad_id:
            outcome["status"] = "rendered"

    def on_failure(event: dict[str, Any]) -> None:
        if event.get("ad_id") == ad_id:
            outcome.update(status="failed", reason=event["reason"], message=event["message"])

    def on_stale(bid: Any) -> None:
        if getattr(bid, "ad_id", None) == ad_id:
            outcome["stale"] = True

    handlers = (
        (Events.AD_RENDER_SUCCEEDED, on_success),
        (Events.AD_RENDER_FAILED, on_failure),
        (Events.STALE_RENDER, on_stale),
    )
    for event, handler in handlers:
        runtime.events.on(event, handler)
    try:
        await runtime.render_ad(surface, ad_id, payload.get("options"))
    finally:
        for event, handler in handlers:
            runtime.events.off(event, handler)
    outcome["ad_id"] = ad_id
    outcome["surface"] = surface.describe() if surface is not None else None
    return to_jsonable(outcome)


@app.get("/hb/bids", tags=["bids"])
async def bid_responses(
    code: str | None = Query(default=None),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    if code:
        return to_jsonable({code: runtime.get_bid_responses_for_ad_unit_code(code)})
    return to_jsonable(runtime.get_bid_responses())


@app.get("/hb/bids/winning", tags=["bids"])
async def winning_bids(runtime: Runtime = Depends(get_runtime)) -> list[dict[str, Any]]:
    return to_jsonable(runtime.get_all_winning_bids())


@app.get("/hb/bids/highest", tags=["bids"])
async def highest_bids(
    code: list[str] | None = Query(default=None),
    runtime: Runtime = Depends(get_runtime),
) -> list[dict[str, Any]]:
    return to_jsonable(runtime.get_highest_cpm_bids(code))


@app.get("/hb/no-bids", tags=["bids"])
async def no_bids(
    code: str | None = Query(default=None),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    if code:
        return to_jsonable({code: runtime.get_no_bids_for_ad_unit_code(code)})
    return to_jsonable(runtime.get_no_bids())


@app.post("/hb/bids/mark-used", tags=["bids"])
async def mark_used(
    payload: dict[str, Any] | None = Body(default=None),
    schemas: SchemaRegistry = Depends(get_schema_service),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    payload = payload or {}
    _validate(schemas, "mark_used", payload)
    bid = runtime.mark_winning_bid_as_used(payload.get("ad_unit_code"), payload.get("ad_id"))
    return {"marked": bid.ad_id if bid is not None else None}


@app.post("/hb/targeting", tags=["bids"])
async def set_targeting(
    code: list[str] | None = Query(default=None),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    return runtime.set_targeting(code)


@app.get("/hb/events", tags=["events"])
async def events(runtime: Runtime = Depends(get_runtime)) -> list[dict[str, Any]]:
    return to_jsonable(runtime.get_events())


def build_surface(raw: dict[str, Any] | None) -> Surface | None:
    if raw is None:
        return None
    frame = raw.get("frame")
    host_frame = HostFrame(width=frame.get("width"), height=frame.get("height")) if frame is not None else None
    return Surface(
        main_document=bool(raw.get("main_document", False)),
        embedded=bool(raw.get("embedded", False)),
        host_frame=host_frame,
    )
