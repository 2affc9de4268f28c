"""push-dispatch - fan out chat message push notifications to every device.

One inbound "new message" event is delivered to all devices its recipient
has registered, under a process-wide rate limit and concurrency cap, with
an early response once a latency deadline passes and automatic removal of
devices the push provider reports as gone.
"""

from push_dispatch.__main__ import main

__all__ = ["main"]
