"""Hardware MIDI streams backed by mido ports.

Devices are addressed by integer id: input ports are numbered first,
followed by output ports, in the order the mido backend lists them.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import mido

from ..errors import DeviceError
from ..logging_config import get_logger
from . import clock

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeviceInfo:
    """Description of one MIDI port."""

    id: int
    name: str
    interface: str
    input_capable: bool
    opened: bool


@dataclass(frozen=True)
class MidiEvent:
    """A short MIDI message read from an input stream."""

    status: int
    data1: int
    data2: int
    timestamp_ns: int


class MidiOutputStream:
    """Output stream writing three-byte short messages."""

    def __init__(self, port):
        self._port = port

    @property
    def name(self) -> str:
        return getattr(self._port, "name", "?")

    def write_short(self, status: int, data1: int, data2: int) -> None:
        self._port.send(mido.Message.from_bytes([status, data1, data2]))

    def close(self) -> None:
        if not self._port.closed:
            self._port.close()


class MidiInputStream:
    """Input stream yielding pending short messages."""

    def __init__(self, port):
        self._port = port

    @property
    def name(self) -> str:
        return getattr(self._port, "name", "?")

    def read(self) -> List[MidiEvent]:
        """Return all messages received since the last read, without blocking."""
        events = []
        for message in self._port.iter_pending():
            data = message.bytes()
            if len(data) != 3:
                # clock, sysex and other non-short messages
                continue
            events.append(MidiEvent(data[0], data[1], data[2], clock.now_ns()))
        return events

    def close(self) -> None:
        if not self._port.closed:
            self._port.close()


class MidiStreamRegistry:
    """Opens mido ports by device id and keeps them until closed."""

    def __init__(self):
        self._outputs: Dict[int, MidiOutputStream] = {}
        self._inputs: Dict[int, MidiInputStream] = {}

    def _input_names(self) -> List[str]:
        return list(mido.get_input_names())

    def _output_names(self) -> List[str]:
        return list(mido.get_output_names())

    def devices(self) -> List[DeviceInfo]:
        """Enumerate every input and output port."""
        interface = getattr(mido.backend, "name", "mido")
        devices = []
        for name in self._input_names():
            device_id = len(devices)
            devices.append(
                DeviceInfo(
                    device_id, name, interface, True, device_id in self._inputs
                )
            )
        for name in self._output_names():
            device_id = len(devices)
            devices.append(
                DeviceInfo(
                    device_id, name, interface, False, device_id in self._outputs
                )
            )
        return devices

    def info(self, device_id: int) -> Optional[DeviceInfo]:
        for each in self.devices():
            if each.id == device_id:
                return each
        return None

    def default_output_id(self) -> int:
        """Id of the first output port, or -1 when there is none."""
        for each in self.devices():
            if not each.input_capable:
                return each.id
        return -1

    def default_input_id(self) -> int:
        """Id of the first input port, or -1 when there is none."""
        for each in self.devices():
            if each.input_capable:
                return each.id
        return -1

    def output(self, device_id: int) -> MidiOutputStream:
        if device_id in self._outputs:
            return self._outputs[device_id]
        info = self.info(device_id)
        if info is None or info.input_capable:
            raise DeviceError("open output", device_id, "no such output device")
        try:
            port = mido.open_output(info.name)
        except (OSError, IOError, ValueError) as e:
            raise DeviceError("open output", device_id, e) from e
        stream = MidiOutputStream(port)
        self._outputs[device_id] = stream
        logger.info(f"Opened MIDI output {device_id}: {info.name}")
        return stream

    def input(self, device_id: int) -> MidiInputStream:
        if device_id in self._inputs:
            return self._inputs[device_id]
        info = self.info(device_id)
        if info is None or not info.input_capable:
            raise DeviceError("open input", device_id, "no such input device")
        try:
            port = mido.open_input(info.name)
        except (OSError, IOError, ValueError) as e:
            raise DeviceError("open input", device_id, e) from e
        stream = MidiInputStream(port)
        self._inputs[device_id] = stream
        logger.info(f"Opened MIDI input {device_id}: {info.name}")
        return stream

    def close(self) -> None:
        """Close every stream opened through this registry."""
        for device_id, stream in list(self._inputs.items()) + list(
            self._outputs.items()
        ):
            try:
                stream.close()
            except (OSError, IOError) as e:
                logger.warning(f"Failed to close MIDI stream {device_id}: {e}")
        self._inputs.clear()
        self._outputs.clear()
        logger.debug("All MIDI streams closed")
