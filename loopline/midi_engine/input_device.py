"""Input device reading MIDI notes and dispatching them to listeners."""

import threading
from typing import List, Optional

from ..config import get_config
from ..logging_config import get_logger
from . import clock
from .interfaces import NoteListener
from .streams import MidiEvent, MidiInputStream
from .structures import Note

logger = get_logger(__name__)

STATUS_MASK = 0xF0
NOTE_ON = 0x90
NOTE_OFF = 0x80


def note_from_event(event: MidiEvent) -> Note:
    return Note(pitch=event.data1, velocity=event.data2)


class InputListener:
    """Read loop for one input stream with a mutable set of subscribers.

    Subscribers may be added or removed while the loop is running; each batch
    of events is dispatched to a snapshot of the subscribers.
    """

    def __init__(self, device_id: int, stream: MidiInputStream):
        self.device_id = device_id
        self.stream = stream
        self.poll_interval_ns = clock.ms_to_ns(get_config().midi.input_poll_interval_ms)
        self._subscribers: List[NoteListener] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._read_loop, name=f"input-{self.device_id}-reader", daemon=True
        )
        self._thread.start()
        logger.info(f"Listening on input device {self.device_id}")

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        if threading.current_thread() is not self._thread:
            self._thread.join()
        self._thread = None
        logger.info(f"Stopped listening on input device {self.device_id}")

    def add(self, subscriber: NoteListener) -> None:
        with self._lock:
            if subscriber not in self._subscribers:
                self._subscribers.append(subscriber)

    def remove(self, subscriber: NoteListener) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def subscribers(self) -> List[NoteListener]:
        with self._lock:
            return list(self._subscribers)

    def _read_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                events = self.stream.read()
            except (OSError, IOError) as e:
                logger.error(f"Reading input device {self.device_id} failed: {e}")
                break
            for event in events:
                self.dispatch(event)
            self._stop_event.wait(self.poll_interval_ns / clock.NS_PER_SECOND)

    def dispatch(self, event: MidiEvent) -> None:
        """Translate one raw event into note_on/note_off calls."""
        kind = event.status & STATUS_MASK
        if kind == NOTE_ON and event.data2 > 0:
            note_on = True
        elif kind == NOTE_OFF or kind == NOTE_ON:
            # note on with velocity 0 means note off
            note_on = False
        else:
            return
        note = note_from_event(event)
        for subscriber in self.subscribers():
            try:
                if note_on:
                    subscriber.note_on(note)
                else:
                    subscriber.note_off(note)
            except Exception as e:
                logger.exception(
                    f"Listener {subscriber!r} failed on input {self.device_id}: {e}"
                )


class InputDevice:
    """One hardware input stream and its listener."""

    def __init__(self, device_id: int, stream: MidiInputStream):
        self.id = device_id
        self.stream = stream
        self.listener = InputListener(device_id, stream)

    def stop_listener(self) -> None:
        self.listener.stop()

    def close(self) -> None:
        self.stop_listener()
        self.stream.close()
