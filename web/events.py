# HEARTH v1.0 - Server-sent app list events
import json
import logging
import queue
import threading

_log = logging.getLogger(__name__)

SUBSCRIBER_BUFFER = 16


class AppEventHub:
    '''
    Fans out app list snapshots to every open event stream.
    A subscriber whose buffer is full misses that event instead of
    blocking the others.
    '''

    def __init__(self, buffer_size=SUBSCRIBER_BUFFER):
        self.buffer_size = buffer_size
        self._subscribers = set()
        self._lock = threading.Lock()

    def subscribe(self):
        q = queue.Queue(maxsize=self.buffer_size)
        with self._lock:
            self._subscribers.add(q)
        return q

    def unsubscribe(self, q):
        with self._lock:
            self._subscribers.discard(q)

    def subscriber_count(self):
        with self._lock:
            return len(self._subscribers)

    def broadcast(self, apps):
        '''Send apps (a list of dicts) to every subscriber; returns drops'''
        with self._lock:
            subscribers = list(self._subscribers)
        dropped = 0
        for q in subscribers:
            try:
                q.put_nowait(apps)
            except queue.Full:
                dropped += 1
        if dropped:
            _log.debug("dropped app event for slow subscribers count=%d", dropped)
        return dropped

    def close(self):
        '''Wake every stream so it can exit'''
        with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for q in subscribers:
            # a full buffer gives up its oldest snapshot to the end marker
            while True:
                try:
                    q.put_nowait(None)
                    break
                except queue.Full:
                    try:
                        q.get_nowait()
                    except queue.Empty:
                        pass


def format_event(apps):
    return f"data: {json.dumps(apps)}\n\n"
