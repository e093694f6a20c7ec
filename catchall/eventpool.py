"""A simulated event bus that keeps producing delivered and bounced events."""

import queue
import random
import threading
from collections import deque
from dataclasses import dataclass
from typing import Optional

from catchall.models import EventType

ALPHA_RUNES = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"

_QUEUE_SIZE = 50_000
_FAN_OUT = 20
_ITERATIONS = 100_000
_MAX_EVENTS_PER_DOMAIN = 2_500
_BOUNCE_SHARE = 0.35
_CATCH_ALL_EVERY = 25
_POLL = 0.05


def random_runes(prefix: str, length: int, *args: str) -> str:
    """Return prefix followed by length random characters drawn from the given strings."""
    chars = "".join(args)
    if not chars:
        raise ValueError("no characters to choose from")
    modulus = len(chars) % 256
    if modulus == 0:
        raise ValueError("character set size must not be a multiple of 256")
    return prefix + "".join(chars[b % modulus] for b in random.randbytes(length))


def random_alpha(prefix: str, length: int) -> str:
    """Return prefix followed by length random ASCII letters."""
    return random_runes(prefix, length, ALPHA_RUNES)


def random_item(*args: str) -> str:
    """Return one of the given strings at random."""
    if not args:
        raise ValueError("no items to choose from")
    return args[random.randbytes(1)[0] % (len(args) % 256 or 256)]


def random_domain_name() -> str:
    """Return a random domain name such as 'AbCdEfGhIjKlMn.net'."""
    return f"{random_alpha('', 14)}.{random_item('net', 'com', 'org', 'io', 'gov')}"


@dataclass
class Event:
    """One simulated delivery event."""

    type: EventType = EventType.DELIVERED
    domain: str = ""


class EventPool:
    """Background generator of simulated events.

    Call get_event() to receive an event and recycle_event() once it has been
    processed so the object can be reused. Close the pool to stop generation.
    """

    def __init__(self) -> None:
        self._events: "queue.Queue[Event]" = queue.Queue(maxsize=_QUEUE_SIZE)
        self._free: deque[Event] = deque(maxlen=_QUEUE_SIZE)
        self._done = threading.Event()
        self._slots = threading.BoundedSemaphore(_FAN_OUT)
        self._workers: set[threading.Thread] = set()
        self._workers_lock = threading.Lock()
        self._dispatcher = threading.Thread(
            target=self._dispatch, name="eventpool-dispatcher", daemon=True
        )
        self._dispatcher.start()

    def __enter__(self) -> "EventPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get_event(self) -> Event:
        """Block until an event is available and return it."""
        return self._events.get()

    def recycle_event(self, event: Event) -> None:
        """Hand an event back so its object can be reused."""
        self._free.append(event)

    def close(self) -> None:
        """Stop generating events and wait for the generators to finish."""
        self._done.set()
        if self._dispatcher is not threading.current_thread():
            self._dispatcher.join()
        with self._workers_lock:
            workers = list(self._workers)
        for worker in workers:
            worker.join()

    def _dispatch(self) -> None:
        while not self._done.is_set():
            for iteration in range(_ITERATIONS):
                if not self._acquire_slot():
                    return
                worker = threading.Thread(
                    target=self._run_worker, args=(iteration,), daemon=True
                )
                with self._workers_lock:
                    self._workers.add(worker)
                worker.start()

    def _acquire_slot(self) -> bool:
        while not self._done.is_set():
            if self._slots.acquire(timeout=_POLL):
                return True
        return False

    def _run_worker(self, iteration: int) -> None:
        try:
            self._generate(iteration)
        finally:
            self._slots.release()
            with self._workers_lock:
                self._workers.discard(threading.current_thread())

    def _new_event(self) -> Event:
        try:
            return self._free.pop()
        except IndexError:
            return Event()

    def _put(self, event: Event) -> bool:
        while not self._done.is_set():
            try:
                self._events.put(event, timeout=_POLL)
                return True
            except queue.Full:
                continue
        return False

    def _generate(self, iteration: int) -> None:
        """Emit up to 2,500 events for one random domain, 35% of them bounces.

        Every 25th domain gets no bounces, making it a catch-all candidate.
        """
        domain = random_domain_name()
        count = random.randrange(_MAX_EVENTS_PER_DOMAIN)
        bounced: Optional[int] = int(_BOUNCE_SHARE * count)
        if iteration % _CATCH_ALL_EVERY == 0:
            bounced = 0
        for index in range(count):
            event = self._new_event()
            event.domain = domain
            event.type = (
                EventType.BOUNCED if bounced and index % bounced == 0 else EventType.DELIVERED
            )
            if not self._put(event):
                return


def spawn_event_pool() -> EventPool:
    """Start a new event pool producing simulated events."""
    return EventPool()