"""
Optional push channel: listeners receive run status and epoch events.
"""

from .listener import RunListener
from .listener_manager import ListenerManager
from .listener_factory import ListenerFactory
from .plugins.log_listener import LogListener
from .plugins.queue_listener import QueueListener, RunEvent

__all__ = [
    'RunListener',
    'ListenerManager',
    'ListenerFactory',
    'LogListener',
    'QueueListener',
    'RunEvent',
]
