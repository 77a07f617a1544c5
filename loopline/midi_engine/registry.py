"""Device registry opening and caching MIDI input and output devices."""

import contextlib
import threading
import time
from typing import Dict, Iterator, List, Optional, Protocol, Tuple

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from ..config import get_config
from ..errors import DeviceError
from ..logging_config import get_logger
from .commands import (
    ChannelCommand,
    EchoCommand,
    InputDeviceCommand,
    Message,
    MissingArgumentError,
    OutputDeviceCommand,
    UnknownCommandError,
    parse_device_command,
)
from .input_device import InputDevice
from .interfaces import NoteListener, Sequenceable, TimelineEvent
from .output_device import OutputDevice
from .streams import DeviceInfo, MidiInputStream, MidiOutputStream, MidiStreamRegistry

console = Console()

logger = get_logger(__name__)


class StreamRegistry(Protocol):
    """Opens hardware streams by id; implemented by MidiStreamRegistry."""

    def devices(self) -> List[DeviceInfo]:
        ...

    def info(self, device_id: int) -> Optional[DeviceInfo]:
        ...

    def default_output_id(self) -> int:
        ...

    def default_input_id(self) -> int:
        ...

    def output(self, device_id: int) -> MidiOutputStream:
        ...

    def input(self, device_id: int) -> MidiInputStream:
        ...

    def close(self) -> None:
        ...


class ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextlib.contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextlib.contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class DeviceRegistry:
    """Owns every opened input and output device, keyed by device id.

    Devices are opened on first access and reused afterwards. The registry
    also acts as the AudioDevice of the engine by delegating to the default
    output device.
    """

    def __init__(self, streams: Optional[StreamRegistry] = None):
        """Initialize the registry.

        Args:
            streams: Stream opener; defaults to mido ports
        """
        self._lock = ReadWriteLock()
        self._in: Dict[int, InputDevice] = {}
        self._out: Dict[int, OutputDevice] = {}
        self.streams = streams if streams is not None else MidiStreamRegistry()
        self.default_input_id = self.streams.default_input_id()
        self.default_output_id = self.streams.default_output_id()
        if self.default_output_id == -1:
            logger.warning("No default output MIDI device available")
        logger.debug(
            f"DeviceRegistry initialized (in={self.default_input_id}, "
            f"out={self.default_output_id})"
        )

    def io(self) -> Tuple[int, int]:
        return self.default_input_id, self.default_output_id

    def change_input_device_id(self, device_id: int) -> None:
        self.default_input_id = device_id

    def change_output_device_id(self, device_id: int) -> None:
        self.default_output_id = device_id

    def output(self, device_id: int) -> OutputDevice:
        """Get the output device for an id, opening it on first use.

        Raises:
            DeviceError: if the stream cannot be opened
        """
        with self._lock.read():
            device = self._out.get(device_id)
        if device is not None:
            return device

        with self._lock.write():
            # another thread may have opened it while we waited
            device = self._out.get(device_id)
            if device is not None:
                return device
            try:
                stream = self.streams.output(device_id)
            except (DeviceError, OSError, IOError) as e:
                raise DeviceError("Output", device_id, e) from e
            device = OutputDevice(
                device_id, stream, default_channel=get_config().midi.default_channel
            )
            self._out[device_id] = device
            device.start()
            return device

    def input(self, device_id: int) -> InputDevice:
        """Get the input device for an id, opening it on first use.

        Raises:
            DeviceError: if the stream cannot be opened
        """
        with self._lock.read():
            device = self._in.get(device_id)
        if device is not None:
            return device

        with self._lock.write():
            device = self._in.get(device_id)
            if device is not None:
                return device
            try:
                stream = self.streams.input(device_id)
            except (DeviceError, OSError, IOError) as e:
                raise DeviceError("Input", device_id, e) from e
            device = InputDevice(device_id, stream)
            self._in[device_id] = device
            return device

    def default_output(self) -> OutputDevice:
        if self.default_output_id == -1:
            raise DeviceError(
                "Output", -1, "no default output MIDI device available"
            )
        return self.output(self.default_output_id)

    # AudioDevice

    def play(self, seq: Sequenceable, bpm: float, begin_at_ns: int) -> int:
        try:
            device = self.default_output()
        except DeviceError as e:
            logger.warning(f"Cannot play: {e}")
            return begin_at_ns
        return device.play(seq, bpm, begin_at_ns)

    def schedule(self, event: TimelineEvent, begin_at_ns: int) -> None:
        try:
            device = self.default_output()
        except DeviceError as e:
            logger.warning(f"Cannot schedule {event!r}: {e}")
            return
        device.schedule(event, begin_at_ns)

    def set_echo_notes(self, on: bool) -> None:
        try:
            self.default_output().echo = on
        except DeviceError as e:
            logger.warning(f"Cannot change echo: {e}")

    def has_input_capability(self) -> bool:
        return self.default_input_id != -1

    def listen(self, device_id: int, who: NoteListener, start: bool) -> None:
        """Attach or detach a note listener on an input device."""
        logger.debug(f"listen id={device_id}, start={start}")
        try:
            device = self.input(device_id)
        except DeviceError as e:
            logger.warning(f"Input creation failed: {e}")
            return
        if start:
            device.listener.start()
            # let stale buffered events drain before anyone hears them
            time.sleep(get_config().midi.listen_grace_ms / 1000)
            device.listener.add(who)
        else:
            # keep reading so incoming events are simply ignored
            device.listener.remove(who)

    def command(self, args: List[str]) -> Optional[Message]:
        """Run a device access command such as ``echo`` or ``out 2``."""
        if not args:
            self.print_info()
            return None
        try:
            parsed = parse_device_command(args)
        except (UnknownCommandError, MissingArgumentError) as e:
            return Message.warning(str(e))
        except ValidationError as e:
            first = e.errors()[0]
            return Message.warning(f"bad {args[0]} argument {args[1]!r}: {first['msg']}")

        if isinstance(parsed, EchoCommand):
            try:
                device = self.default_output()
            except DeviceError as e:
                return Message.warning(str(e))
            device.echo = not device.echo
            return Message.info(f"printing notes enabled:{device.echo}")
        if isinstance(parsed, InputDeviceCommand):
            self.change_input_device_id(parsed.device_id)
            return Message.info(f"Current input device id:{parsed.device_id}")
        if isinstance(parsed, OutputDeviceCommand):
            self.change_output_device_id(parsed.device_id)
            return Message.info(f"Current output device id:{parsed.device_id}")
        if isinstance(parsed, ChannelCommand):
            try:
                device = self.default_output()
            except DeviceError as e:
                return Message.warning(str(e))
            device.default_channel = parsed.channel
            return Message.info(f"Current output channel:{parsed.channel}")
        return Message.warning(f"unhandled device access command: {args[0]}")

    def print_info(self) -> None:
        """Print usage, available devices and the current defaults."""
        console.print("[bold yellow]Usage:[/bold yellow]")
        console.print(":m echo                --- toggle printing the notes that are sent")
        console.print(":m in      <device-id> --- change the default MIDI input  device id")
        console.print(":m out     <device-id> --- change the default MIDI output device id")
        console.print(":m channel <1..16>     --- change the default MIDI output channel")
        console.print()

        table = Table(title="Available MIDI devices")
        table.add_column("Id", style="cyan")
        table.add_column("Name", style="green")
        table.add_column("Interface", style="blue")
        table.add_column("Usage", style="magenta")
        table.add_column("State", style="yellow")
        for info in self.streams.devices():
            table.add_row(
                str(info.id),
                info.name,
                info.interface,
                "input" if info.input_capable else "output",
                "open" if info.opened else "closed",
            )
        console.print(table)

        console.print("[bold yellow]Current:[/bold yellow]")
        for label, device_id in (
            ("input", self.default_input_id),
            ("output", self.default_output_id),
        ):
            info = self.streams.info(device_id)
            name = f"{info.interface}/{info.name}" if info else "(none)"
            console.print(f"\\[midi] device {device_id} = default {label}, {name}")
        try:
            device = self.default_output()
        except DeviceError:
            return
        console.print(
            f"\\[midi] channel {device.default_channel} = default MIDI output channel"
        )
        console.print(f"\\[midi] echo notes = {device.echo}")

    def reset(self) -> None:
        with self._lock.read():
            outputs = list(self._out.values())
            inputs = list(self._in.values())
        for each in outputs:
            each.reset()
        for each in inputs:
            each.stop_listener()

    def close(self) -> None:
        """Stop all listeners, release all streams and the backend."""
        with self._lock.write():
            inputs = list(self._in.values())
            outputs = list(self._out.values())
        for each in inputs:
            each.stop_listener()
        for each in outputs:
            each.close()
        for each in inputs:
            each.close()
        self.streams.close()
        logger.info("DeviceRegistry closed")
