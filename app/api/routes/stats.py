from dataclasses import asdict

from fastapi import APIRouter, Depends, Request
from starlette.responses import Response

from app.api import deps
from app.api.channel import BufferedChannel
from app.api.responses import (
    FORBIDDEN,
    RATE_LIMITED,
    SERVICE_UNAVAILABLE,
    error_response,
)
from app.core.metrics import CounterStore
from app.schemas.common import ErrorCode
from app.schemas.stats import CounterSnapshotOut
from app.services.stats import RenderRequest, StatsRenderer

router = APIRouter(tags=["stats"])


def build_render_request(request: Request) -> RenderRequest:
    http_version = request.scope.get("http_version", "1.1")
    return RenderRequest(
        accept=request.headers.get("accept"),
        stat_page=request.app.state.settings.stat_page,
        client_ip=request.client.host if request.client else None,
        request_line=f"{request.method} {request.url.path} HTTP/{http_version}",
    )


def render_stats(request: Request, renderer: StatsRenderer) -> Response:
    channel = BufferedChannel()
    if renderer.render(channel, build_render_request(request)) < 0:
        return error_response(
            request,
            503,
            ErrorCode.stats_unavailable,
            "Statistics page could not be sent",
        )
    return channel.to_response()


@router.get("/stats", responses={**FORBIDDEN, **RATE_LIMITED, **SERVICE_UNAVAILABLE})
def stats_page(
    request: Request,
    renderer: StatsRenderer = Depends(deps.get_stats_renderer),
):
    return render_stats(request, renderer)


@router.get("/metrics", response_model=CounterSnapshotOut)
def counters_snapshot(counters: CounterStore = Depends(deps.get_counters)):
    return CounterSnapshotOut(**asdict(counters.snapshot()))
