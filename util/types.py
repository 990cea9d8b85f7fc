# util/types.py
from typing import Awaitable, Callable, Literal, TypedDict, Union


# Flow: Narrow types for NDJSON events.
EventType = Literal["status", "done", "error"]

# Engine-level progress callback; receives 0..100 and may be sync or async.
ProgressCallback = Callable[[float], Union[Awaitable[None], None]]


class ErrorPayload(TypedDict, total=False):
    message: str
