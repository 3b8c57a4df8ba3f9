from fastapi import Request

from app.core.metrics import CounterStore
from app.services.stats import StatsRenderer


def get_counters(request: Request) -> CounterStore:
    return request.app.state.counters


def get_stats_renderer(request: Request) -> StatsRenderer:
    return request.app.state.stats_renderer
