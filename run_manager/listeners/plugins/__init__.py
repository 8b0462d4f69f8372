from .log_listener import LogListener
from .queue_listener import QueueListener, RunEvent

__all__ = [
    'LogListener',
    'QueueListener',
    'RunEvent',
]
