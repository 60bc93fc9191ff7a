"""Flashduty enrichment: HTTP tool API.

Exposes every query operation of the enrichment engine as a POST endpoint
under /tools/. Each endpoint fetches raw records from Flashduty, resolves the
persons, channels, teams and schedules they reference, and returns the
denormalized result.

    POST /tools/query_incidents           incidents by id or time window
    POST /tools/query_incidents/stream    same, streaming resolution events as NDJSON
    POST /tools/query_incident_timeline   enriched feeds of several incidents
    POST /tools/query_incident_alerts     alert previews per incident
    POST /tools/query_channels            channels by id or name
    POST /tools/query_members             members by id, name or email
    POST /tools/query_teams               teams with their members, by id or name
    POST /tools/query_escalation_rules    escalation rules of a channel
    POST /tools/query_changes             change records
    GET  /health

Every /tools/ endpoint accepts ?format=json|compact to override the output
format configured by FLASHDUTY_OUTPUT_FORMAT.

Error mapping:
    invalid input (ValueError, pydantic ValidationError)  → 400
    upstream failure (ResolutionError, FlashdutyAPIError) → 502

Run locally:
    uv run uvicorn main:app --reload
"""

import asyncio
import json
import logging
import logging.handlers
import pathlib
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from config import build_client, load_settings
from core.engine import DEFAULT_ALERTS_LIMIT, EnrichmentEngine
from core.resolver import ResolutionError
from integrations.flashduty import FlashdutyAPIError
from schemas.query import DEFAULT_QUERY_LIMIT, ChangeFilters, IncidentFilters
from utils.format import OutputFormat, render_result

settings = load_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_FILE = pathlib.Path(__file__).parent / "flashduty_enrichment.log"
LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_file_handler = logging.handlers.RotatingFileHandler(
    LOG_FILE, maxBytes=1_000_000, backupCount=3, encoding="utf-8",
)
_file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

_root_logger = logging.getLogger()
_root_logger.setLevel(settings.log_level)
_root_logger.addHandler(_file_handler)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App + engine lifecycle
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the client and engine once; close the client on shutdown."""
    client = build_client(settings)
    app.state.engine = EnrichmentEngine(client)
    logger.info("Enrichment engine ready (%s mode).", "live" if settings.live else "fixture")
    try:
        yield
    finally:
        await client.aclose()


app = FastAPI(title="Flashduty Enrichment", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allowed_origins),
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def get_engine(request: Request) -> EnrichmentEngine:
    return request.app.state.engine


def _output_format(format: OutputFormat | None = None) -> OutputFormat:
    return format or settings.output_format


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

@app.exception_handler(ValueError)
async def _bad_request(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning("Rejected %s: %s", request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ResolutionError)
async def _resolution_failed(request: Request, exc: ResolutionError) -> JSONResponse:
    logger.error("Resolution failed on %s (%s): %s", request.url.path, exc.kind.value, exc)
    return JSONResponse(status_code=502, content={"detail": str(exc), "kind": exc.kind.value})


@app.exception_handler(FlashdutyAPIError)
async def _upstream_failed(request: Request, exc: FlashdutyAPIError) -> JSONResponse:
    logger.error("Flashduty call failed on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=502,
        content={"detail": str(exc), "code": exc.code, "request_id": exc.request_id},
    )


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class QueryIncidentsRequest(BaseModel):
    """Either incident_ids, or a time window with optional filters.

    When incident_ids is non-empty every other filter is ignored.
    """
    incident_ids: list[str] | None = None
    start_time: int = 0
    end_time: int = 0
    progress: str = ""
    severity: str = ""
    channel_id: int = 0
    title: str = ""
    limit: int = DEFAULT_QUERY_LIMIT
    include_alerts: bool = True
    alerts_limit: int = DEFAULT_ALERTS_LIMIT

    def filters(self) -> IncidentFilters | None:
        if self.incident_ids:
            return None
        return IncidentFilters(
            start_time=self.start_time,
            end_time=self.end_time,
            progress=self.progress,
            severity=self.severity,
            channel_id=self.channel_id,
            title=self.title,
            limit=self.limit,
        )


class IncidentIdsRequest(BaseModel):
    incident_ids: list[str]


class QueryAlertsRequest(BaseModel):
    incident_ids: list[str]
    limit: int = DEFAULT_ALERTS_LIMIT


class QueryChannelsRequest(BaseModel):
    channel_ids: list[int] | None = None
    name: str | None = None


class QueryEscalationRulesRequest(BaseModel):
    channel_id: int


class QueryMembersRequest(BaseModel):
    person_ids: list[int] | None = None
    name: str | None = None
    email: str | None = None


class QueryTeamsRequest(BaseModel):
    team_ids: list[int] | None = None
    name: str | None = None


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "ok", "mode": "live" if settings.live else "fixture"}


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@app.post("/tools/query_incidents")
async def query_incidents(
    body: QueryIncidentsRequest,
    output_format: OutputFormat = Depends(_output_format),
    engine: EnrichmentEngine = Depends(get_engine),
):
    incidents = await engine.query_incidents(
        incident_ids=body.incident_ids or None,
        filters=body.filters(),
        include_alerts=body.include_alerts,
        alerts_limit=body.alerts_limit,
    )
    return render_result({"incidents": incidents, "total": len(incidents)}, output_format)


@app.post("/tools/query_incidents/stream")
async def stream_query_incidents(
    body: QueryIncidentsRequest,
    output_format: OutputFormat = Depends(_output_format),
    engine: EnrichmentEngine = Depends(get_engine),
):
    """Run query_incidents and stream resolution events, then the result, as NDJSON.

    Lines are {"type": "resolution_event", ...} while lookups run, then one
    {"type": "result", ...} or {"type": "error", "detail": ...} line.
    """
    filters = body.filters()

    async def stream():
        eq: asyncio.Queue = asyncio.Queue()

        async def run():
            try:
                return await engine.query_incidents(
                    incident_ids=body.incident_ids or None,
                    filters=filters,
                    include_alerts=body.include_alerts,
                    alerts_limit=body.alerts_limit,
                    event_queue=eq,
                )
            finally:
                await eq.put(None)

        task = asyncio.create_task(run())
        try:
            while True:
                event = await eq.get()
                if event is None:
                    break
                yield json.dumps({"type": "resolution_event", **event.model_dump(mode="json")}) + "\n"

            try:
                incidents = await task
            except (ValueError, ResolutionError, FlashdutyAPIError) as exc:
                logger.error("Streamed incident query failed: %s", exc)
                yield json.dumps({"type": "error", "detail": str(exc)}) + "\n"
                return
            except Exception as exc:
                logger.exception("Streamed incident query crashed")
                yield json.dumps({"type": "error", "detail": str(exc)}) + "\n"
                return

            result = render_result({"incidents": incidents, "total": len(incidents)}, output_format)
            yield json.dumps({"type": "result", **result}) + "\n"
        finally:
            # Client went away mid-stream.
            if not task.done():
                task.cancel()

    return StreamingResponse(stream(), media_type="application/x-ndjson")


@app.post("/tools/query_incident_timeline")
async def query_incident_timeline(
    body: IncidentIdsRequest,
    output_format: OutputFormat = Depends(_output_format),
    engine: EnrichmentEngine = Depends(get_engine),
):
    timelines = await engine.query_timelines(body.incident_ids)
    return render_result({"timelines": timelines, "total": len(timelines)}, output_format)


@app.post("/tools/query_incident_alerts")
async def query_incident_alerts(
    body: QueryAlertsRequest,
    output_format: OutputFormat = Depends(_output_format),
    engine: EnrichmentEngine = Depends(get_engine),
):
    results = await engine.query_alerts(body.incident_ids, body.limit)
    return render_result({"results": results, "total": len(results)}, output_format)


@app.post("/tools/query_channels")
async def query_channels(
    body: QueryChannelsRequest,
    output_format: OutputFormat = Depends(_output_format),
    engine: EnrichmentEngine = Depends(get_engine),
):
    channels = await engine.query_channels(channel_ids=body.channel_ids or None, name=body.name)
    return render_result({"channels": channels, "total": len(channels)}, output_format)


@app.post("/tools/query_members")
async def query_members(
    body: QueryMembersRequest,
    output_format: OutputFormat = Depends(_output_format),
    engine: EnrichmentEngine = Depends(get_engine),
):
    members, total = await engine.query_members(
        person_ids=body.person_ids or None, name=body.name, email=body.email,
    )
    return render_result({"members": members, "total": total}, output_format)


@app.post("/tools/query_teams")
async def query_teams(
    body: QueryTeamsRequest,
    output_format: OutputFormat = Depends(_output_format),
    engine: EnrichmentEngine = Depends(get_engine),
):
    teams, total = await engine.query_teams(team_ids=body.team_ids or None, name=body.name)
    return render_result({"teams": teams, "total": total}, output_format)


@app.post("/tools/query_escalation_rules")
async def query_escalation_rules(
    body: QueryEscalationRulesRequest,
    output_format: OutputFormat = Depends(_output_format),
    engine: EnrichmentEngine = Depends(get_engine),
):
    rules = await engine.query_escalation_rules(body.channel_id)
    return render_result({"rules": rules, "total": len(rules)}, output_format)


@app.post("/tools/query_changes")
async def query_changes(
    body: ChangeFilters,
    output_format: OutputFormat = Depends(_output_format),
    engine: EnrichmentEngine = Depends(get_engine),
):
    changes, total = await engine.query_changes(body)
    return render_result({"changes": changes, "total": total}, output_format)
