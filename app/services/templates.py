"""``{name}`` substitution for on-disk page templates."""
from __future__ import annotations

import re
from email.utils import formatdate
from typing import Iterable, Iterator

from app.services.security import sanitize_text

VARIABLE_PATTERN = re.compile(r"\{([A-Za-z0-9_]+)\}")
UNKNOWN_VALUE = "(unknown)"


class TemplateVariables:
    def __init__(self, escape_html: bool = False) -> None:
        self.escape_html = escape_html
        self._values: dict[str, str] = {}

    def add(self, name: str, value: object) -> None:
        self._values[name] = str(value)

    def add_untrusted(self, name: str, value: str) -> None:
        # request line and client address come straight from the client
        self.add(name, sanitize_text(value) if self.escape_html else value)

    def add_standard_vars(
        self,
        *,
        package: str,
        version: str,
        website: str,
        request_line: str | None = None,
        client_ip: str | None = None,
    ) -> None:
        self.add("package", package)
        self.add("version", version)
        self.add("website", website)
        self.add("date", formatdate(usegmt=True))
        if request_line:
            self.add_untrusted("request", request_line)
        if client_ip:
            self.add_untrusted("clientip", client_ip)
            self.add_untrusted("clienthost", client_ip)

    def get(self, name: str) -> str | None:
        return self._values.get(name)

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)


def substitute_line(line: str, variables: TemplateVariables) -> str:
    def _replace(match: re.Match[str]) -> str:
        value = variables.get(match.group(1))
        return UNKNOWN_VALUE if value is None else value

    return VARIABLE_PATTERN.sub(_replace, line)


def substitute(lines: Iterable[bytes], variables: TemplateVariables) -> Iterator[bytes]:
    for raw in lines:
        line = raw.decode("utf-8", errors="replace")
        yield substitute_line(line, variables).encode("utf-8")
