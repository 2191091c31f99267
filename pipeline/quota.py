"""
Quota windows and the response cache used by the fetcher.

QuotaBook keeps one QuotaState per source per window (daily resets at UTC
midnight, monthly on the 1st). Budgets are reserved before a live call and
settled after it: a call that never got an HTTP response hands its
reservation back, so timeouts and cancellations cost nothing.

  reject mode: unit = calls. No budget left -> QuotaExhausted.
  clip mode:   unit = items. The request shrinks to what is left; only the
               items actually returned are charged.
"""

import threading

from models import QuotaState, QuotaExhausted, utc_now


def window_start(period, now):
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "monthly":
        return day.replace(day=1)
    return day


class Reservation:

    def __init__(self, source_key, allowed):
        self.source_key = source_key
        self.allowed = allowed
        self.charges = []  # (period, mode, amount)
        self.settled = False


class QuotaBook:

    def __init__(self, store, clock=None):
        self.store = store
        self.clock = clock or utc_now
        self._lock = threading.Lock()

    def _current(self, source_key, quota):
        """Stored state for this window, rolled over if the window has passed."""
        period = quota["period"]
        start = window_start(period, self.clock()).isoformat()
        state = self.store.get_quota(source_key, period)
        if state is None or state.window_start != start:
            state = QuotaState(scope_key=source_key, period=period, window_start=start,
                               used=0, limit=quota["limit"], mode=quota.get("mode", "reject"))
        else:
            state.limit = quota["limit"]
            state.mode = quota.get("mode", state.mode)
        return state

    def status(self, source_key, quotas):
        with self._lock:
            return [self._current(source_key, q) for q in quotas]

    def reserve(self, source_key, quotas, requested):
        """Reserve budget for one call. Returns a Reservation; raises QuotaExhausted."""
        with self._lock:
            states = [self._current(source_key, q) for q in quotas]
            allowed = requested
            for state in states:
                if state.remaining < 1:
                    raise QuotaExhausted(source_key, state.period)
                if state.mode == "clip":
                    allowed = min(allowed, state.remaining)

            reservation = Reservation(source_key, allowed)
            for state in states:
                amount = allowed if state.mode == "clip" else 1
                state.used += amount
                reservation.charges.append((state.period, state.mode, amount))
                self.store.save_quota(state)
            return reservation

    def settle(self, reservation, responded, items_returned=0):
        """Refund unused budget: everything if no response, unused items for clip windows."""
        with self._lock:
            if reservation.settled:
                return
            reservation.settled = True
            for period, mode, amount in reservation.charges:
                if responded and mode != "clip":
                    continue
                refund = amount if not responded else max(0, amount - items_returned)
                if not refund:
                    continue
                state = self.store.get_quota(reservation.source_key, period)
                if state is None:
                    continue
                state.used = max(0, state.used - refund)
                self.store.save_quota(state)


class ResponseCache:
    """In-process cache of raw payload lists keyed by FetchRequest.cache_key()."""

    def __init__(self, ttl_seconds=300, clock=None):
        self.ttl_seconds = ttl_seconds
        self.clock = clock or utc_now
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, key, allow_stale=False):
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, items = entry
        age = (self.clock() - stored_at).total_seconds()
        if allow_stale or age < self.ttl_seconds:
            return list(items)
        return None

    def put(self, key, items):
        with self._lock:
            self._entries[key] = (self.clock(), list(items))

    def clear(self):
        with self._lock:
            self._entries.clear()
