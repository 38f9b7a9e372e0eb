class ViewerlogError(Exception):
    """Base class for tracker errors."""


class StreamStateConflict(ViewerlogError):
    """A stream was started while a different stream is being tracked."""

    def __init__(self, active_stream_id: int, requested_stream_id: int) -> None:
        self.active_stream_id = active_stream_id
        self.requested_stream_id = requested_stream_id
        super().__init__(
            f"Cannot start stream {requested_stream_id}: "
            f"stream {active_stream_id} is already active"
        )
