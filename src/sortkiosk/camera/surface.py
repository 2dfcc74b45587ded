"""Display surfaces a camera stream is bound to while active."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from sortkiosk.camera.devices import VideoStream

READY_POLL_SECONDS: float = 0.05


class DisplaySurface(Protocol):
    """Protocol for something that renders a live stream."""

    def bind(self, stream: VideoStream) -> None:
        """Attach a stream to the surface."""
        ...

    async def wait_until_ready(self) -> None:
        """Return once the surface can play the bound stream."""
        ...

    def unbind(self) -> None:
        """Detach the stream and clear the surface."""
        ...


class PreviewSurface:
    """Keeps the most recent frame of the bound stream for JPEG previews.

    The surface counts as ready once the stream has produced its first frame.
    """

    def __init__(self, poll_interval: float = READY_POLL_SECONDS) -> None:
        self._poll_interval = poll_interval
        self._stream: VideoStream | None = None
        self.latest_frame: NDArray[np.uint8] | None = None

    @property
    def is_bound(self) -> bool:
        return self._stream is not None

    def bind(self, stream: VideoStream) -> None:
        self._stream = stream
        self.latest_frame = None

    async def wait_until_ready(self) -> None:
        while True:
            stream = self._stream
            if stream is None:
                raise RuntimeError("No stream bound to the preview surface")
            frame = await asyncio.to_thread(stream.read)
            if frame is not None:
                self.latest_frame = frame
                return
            await asyncio.sleep(self._poll_interval)

    def refresh(self) -> NDArray[np.uint8] | None:
        """Read a new frame from the bound stream, keeping the last one on failure."""
        if self._stream is not None:
            frame = self._stream.read()
            if frame is not None:
                self.latest_frame = frame
        return self.latest_frame

    def unbind(self) -> None:
        self._stream = None
        self.latest_frame = None
