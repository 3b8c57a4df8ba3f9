"""Run-time statistics page with content negotiation and a built-in fallback."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Iterable, Protocol, Sequence

from app.core.metrics import CounterSet, CounterStore
from app.services.templates import TemplateVariables, substitute

logger = logging.getLogger("stats")

FALLBACK_CONTENT_TYPE = "text/html"
RENDER_FAILED = -1

BUILTIN_PAGE = (
    '<?xml version="1.0" encoding="UTF-8" ?>\n'
    '<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.1//EN" '
    '"http://www.w3.org/TR/xhtml11/DTD/xhtml11.dtd">\n'
    "<html>\n"
    "<head><title>{package} version {version} run-time statistics</title></head>\n"
    "<body>\n"
    "<h1>{package} version {version} run-time statistics</h1>\n"
    "<p>\n"
    "Number of open connections: {opens}<br />\n"
    "Number of requests: {reqs}<br />\n"
    "Number of bad connections: {badconns}<br />\n"
    "Number of denied connections: {deniedconns}<br />\n"
    "Number of refused connections due to high load: {refusedconns}\n"
    "</p>\n"
    "<hr />\n"
    "<p><em>Generated by {package} version {version}.</em></p>\n"
    "</body>\n"
    "</html>\n"
)


class TemplateUnavailable(Exception):
    pass


class RenderTransmissionError(Exception):
    pass


class ResponseChannel(Protocol):
    """Transport for one response; ``send_body`` consumes every chunk before returning."""

    def send_headers(self, status: int, reason: str, content_type: str) -> None: ...
    def send_body(self, chunks: Iterable[bytes]) -> None: ...
    def send_message(self, status: int, reason: str, body: str) -> None: ...


@dataclass(frozen=True)
class RenderRequest:
    accept: str | None = None
    stat_page: Path | None = None
    client_ip: str | None = None
    request_line: str | None = None


@dataclass(frozen=True)
class TemplateChoice:
    path: Path
    content_type: str


class FormatRegistry:
    def __init__(self, entries: Iterable[tuple[str, Path | str]] = ()) -> None:
        self._entries: tuple[tuple[str, Path], ...] = tuple(
            (content_type, Path(template)) for content_type, template in entries
        )

    @property
    def entries(self) -> Sequence[tuple[str, Path]]:
        return self._entries

    def match(self, accept: str | None) -> TemplateChoice | None:
        if not accept:
            return None
        for content_type, template in self._entries:
            if content_type in accept:
                return TemplateChoice(path=template, content_type=content_type)
        return None


def counter_variables(counters: CounterSet) -> dict[str, str]:
    return {
        "opens": str(counters.open_connections),
        "reqs": str(counters.requests),
        "badconns": str(counters.bad_connections),
        "deniedconns": str(counters.denied_connections),
        "refusedconns": str(counters.refused_connections),
    }


class StatsRenderer:
    def __init__(
        self,
        counters: CounterStore,
        registry: FormatRegistry,
        *,
        product_name: str,
        product_version: str,
        product_website: str = "",
    ) -> None:
        self.counters = counters
        self.registry = registry
        self.product_name = product_name
        self.product_version = product_version
        self.product_website = product_website
        self._render_lock = Lock()

    def select(self, request: RenderRequest) -> TemplateChoice | None:
        choice = self.registry.match(request.accept)
        if choice is not None:
            return choice
        if request.stat_page:
            return TemplateChoice(path=Path(request.stat_page), content_type=FALLBACK_CONTENT_TYPE)
        return None

    def render(self, channel: ResponseChannel, request: RenderRequest) -> int:
        with self._render_lock:
            try:
                return self._render_locked(channel, request)
            except RenderTransmissionError:
                logger.exception("Failed to send statistics page")
                return RENDER_FAILED

    def _render_locked(self, channel: ResponseChannel, request: RenderRequest) -> int:
        counters = self.counters.snapshot()
        choice = self.select(request)
        if choice is None:
            return self._send_builtin(channel, counters)
        try:
            template = self._open_template(choice.path)
        except TemplateUnavailable as exc:
            logger.warning(
                "Statistics template unavailable, using built-in page",
                extra={"event": {"template": str(choice.path), "reason": str(exc)}},
            )
            return self._send_builtin(channel, counters)
        with template:
            variables = self._variables(counters, request, choice.content_type)
            channel.send_headers(200, "Statistic requested", choice.content_type)
            channel.send_body(substitute(template, variables))
        logger.info(
            "Statistics page sent",
            extra={"event": {"template": str(choice.path), "content_type": choice.content_type}},
        )
        return 200

    def _open_template(self, path: Path):
        try:
            return path.open("rb")
        except OSError as exc:
            raise TemplateUnavailable(str(exc)) from exc

    def _variables(
        self, counters: CounterSet, request: RenderRequest, content_type: str
    ) -> TemplateVariables:
        variables = TemplateVariables(escape_html="html" in content_type)
        for name, value in counter_variables(counters).items():
            variables.add(name, value)
        variables.add_standard_vars(
            package=self.product_name,
            version=self.product_version,
            website=self.product_website,
            request_line=request.request_line,
            client_ip=request.client_ip,
        )
        return variables

    def builtin_page(self, counters: CounterSet) -> str:
        return BUILTIN_PAGE.format(
            package=self.product_name,
            version=self.product_version,
            **counter_variables(counters),
        )

    def _send_builtin(self, channel: ResponseChannel, counters: CounterSet) -> int:
        channel.send_message(200, "OK", self.builtin_page(counters))
        return 200
