"""Backend transport contract."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from typing import Protocol

from ..core.segments import StreamSignal, Turn
from ..tools.catalog import CapabilityCatalog


class BackendTransport(Protocol):
    """Opens one backend stream per round.

    Implementations raise ``BackendStatusError`` for HTTP error statuses,
    ``BackendTimeoutError`` for timeouts and ``BackendConnectionError`` for
    other transport failures. Error events inside an open stream are yielded
    as ``StreamError`` signals.
    """

    def open_round_stream(
        self,
        history: Sequence[Turn],
        catalog: CapabilityCatalog,
    ) -> AsyncGenerator[StreamSignal, None]: ...
