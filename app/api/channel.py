from typing import Iterable

from starlette.responses import Response

from app.services.stats import RenderTransmissionError


class BufferedChannel:
    """Collects one rendered response so it can be returned as a Starlette response."""

    def __init__(self) -> None:
        self.status: int | None = None
        self.reason: str | None = None
        self.content_type = "text/html"
        self._chunks: list[bytes] = []
        self.closed = False

    def _ensure_open(self) -> None:
        if self.closed:
            raise RenderTransmissionError("Response channel already closed")

    def send_headers(self, status: int, reason: str, content_type: str) -> None:
        self._ensure_open()
        self.status = status
        self.reason = reason
        self.content_type = content_type

    def send_body(self, chunks: Iterable[bytes]) -> None:
        self._ensure_open()
        try:
            for chunk in chunks:
                self._chunks.append(chunk)
        except OSError as exc:
            raise RenderTransmissionError(str(exc)) from exc

    def send_message(self, status: int, reason: str, body: str) -> None:
        self.send_headers(status, reason, "text/html")
        self.send_body([body.encode("utf-8")])

    @property
    def body(self) -> bytes:
        return b"".join(self._chunks)

    def to_response(self) -> Response:
        self.closed = True
        return Response(
            content=self.body,
            status_code=self.status or 200,
            media_type=self.content_type,
        )
