"""Last-write-wins guard for overlapping requests on one client channel."""

import itertools
import time

from trialscope.services.query_translator import TrialQueryError
from trialscope.utils.cache import Clock, TTLCache


class StaleRequestError(TrialQueryError):
    """A newer request on the same channel started before this one finished."""

    code = "STALE_REQUEST"


class RequestSequencer:
    """
    Issues increasing sequence numbers per channel (e.g. a browser session).

    A response may only be applied if its sequence number is still the
    latest one issued for its channel, regardless of completion order.
    """

    def __init__(self, ttl: float, clock: Clock = time.monotonic):
        self._counter = itertools.count(1)
        self._latest: TTLCache[int] = TTLCache(ttl, clock, name="sequencer")

    def begin(self, channel: str) -> int:
        seq = next(self._counter)
        self._latest.set(channel, seq)
        return seq

    def is_latest(self, channel: str, seq: int) -> bool:
        return self._latest.get(channel) == seq

    def check(self, channel: str, seq: int) -> None:
        """Raise StaleRequestError unless `seq` is still current for `channel`."""
        if not self.is_latest(channel, seq):
            raise StaleRequestError(
                "A newer request superseded this one", channel=channel, sequence=seq
            )
