#!/usr/bin/env python3

"""Command-line interface for playing and looping sequences live."""

from typing import List, Optional

import click
from rich.console import Console
from rich.prompt import Prompt

from .control import BeatLoopController, Context, Listen, Loop, PlayTrigger, Variable
from .control.variables import VariableStore
from .config import is_debug_mode
from .errors import InputUnavailableError
from .logging_config import set_log_level, setup_logging
from .midi_engine import clock
from .midi_engine.registry import DeviceRegistry
from .midi_engine.structures import Note, Sequence

console = Console()

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# loggers that carry their own level in the logging configuration
ENGINE_LOGGERS = (
    "loopline",
    "loopline.midi_engine",
    "loopline.midi_engine.timeline",
    "loopline.control",
)

PEDAL_TOKENS = {
    "pedal-down": Note.pedal_down,
    "pedal-up": Note.pedal_up,
    "pedal-updown": Note.pedal_up_down,
}


def parse_note(token: str) -> Note:
    """Parse ``<midi>[/<factor>]``, ``r/<factor>`` or a pedal token."""
    if token in PEDAL_TOKENS:
        return PEDAL_TOKENS[token]()
    pitch_part, _, factor_part = token.partition("/")
    factor = float(factor_part) if factor_part else 0.25
    if pitch_part == "r":
        return Note.rest(factor)
    return Note(pitch=int(pitch_part), duration_factor=factor)


def parse_sequence(sequence_str: str) -> Sequence:
    """Parse a sequence string into a Sequence object.

    Format: groups separated by spaces, notes of a group joined by ``+``.
    Example: ``60+64+67/1 62/0.5 r/0.25 pedal-down``

    Raises:
        ValueError: If the sequence format is invalid.
    """
    groups = []
    for group_str in sequence_str.split():
        groups.append([parse_note(token) for token in group_str.split("+") if token])
    if not groups:
        raise ValueError("Sequence must contain at least one group")
    return Sequence(groups)


def configure_logging(log_level: Optional[str] = None) -> None:
    """Set up logging, then apply a level override to every engine logger.

    Without an explicit level, DEBUG=true in the environment selects DEBUG.
    """
    setup_logging()
    if log_level is None and is_debug_mode():
        log_level = "DEBUG"
    if log_level is None:
        return
    for name in ENGINE_LOGGERS:
        set_log_level(name, log_level)


def print_help():
    """Print available commands."""
    help_text = """
[bold]Available Commands:[/bold]

[bold cyan]Devices:[/bold cyan]
    [yellow]m[/yellow] - Show devices and the device commands
    [yellow]m echo | in <id> | out <id> | channel <1..16>[/yellow] - Device settings

[bold cyan]Timing:[/bold cyan]
    [yellow]bpm <1..300>[/yellow] - Set beats per minute
    [yellow]biab <1..6>[/yellow] - Set beats in a bar
    [yellow]where[/yellow] - Show the current beat and bar

[bold cyan]Playing:[/bold cyan]
    [yellow]set <var> <sequence>[/yellow] - Assign a sequence to a variable
    [yellow]play <var|sequence> ...[/yellow] - Play one after the other
    [yellow]go <var|sequence> ...[/yellow] - Play all together in the background

[bold cyan]Loops:[/bold cyan]
    [yellow]loop <name> <var>[/yellow] - Create a loop over a variable
    [yellow]begin <name> ...[/yellow] - Start loops at the next bar
    [yellow]end \\[name ...][/yellow] - End loops (all when no name is given)

[bold cyan]Input:[/bold cyan]
    [yellow]listen <device-id> <var> \\[target-var][/yellow]
        - Store played notes in var, play target-var while a key is held
    [yellow]unlisten <var>[/yellow] - Stop listening

[bold cyan]General:[/bold cyan]
    [yellow]help[/yellow] - Show this help message
    [yellow]exit[/yellow] - Exit the program

[bold]Sequence Format:[/bold]
    60+64+67/1 62/0.5 r/0.25 pedal-down
    - notes are MIDI numbers, /factor is the fraction of a whole note (default 0.25)
    - reassigning a looped variable is heard from the next bar on
    """
    console.print(help_text)


class LiveSession:
    """Wires the device registry, loop controller and variables for the CLI."""

    def __init__(self, registry: DeviceRegistry, controller: BeatLoopController):
        self.registry = registry
        self.controller = controller
        self.variables = VariableStore()
        self.ctx = Context(
            control=controller, device=registry, variables=self.variables
        )
        self.listens = {}

    def resolve(self, token: str):
        _, ok = self.variables.get(token)
        if ok:
            return Variable(self.variables, token)
        return parse_sequence(token)

    def handle_set(self, parts: List[str]) -> None:
        if len(parts) < 3:
            console.print("[red]Usage: set <var> <sequence>[/red]")
            return
        try:
            self.variables.put(parts[1], parse_sequence(" ".join(parts[2:])))
        except ValueError as e:
            console.print(f"[red]Error in sequence format: {str(e)}[/red]")

    def handle_play(self, parts: List[str], together: bool) -> None:
        if len(parts) < 2:
            console.print(f"[red]Usage: {parts[0]} <var|sequence> ...[/red]")
            return
        moment = clock.now_ns()
        for token in parts[1:]:
            try:
                playable = self.resolve(token)
            except ValueError:
                console.print(f"[yellow]cannot {parts[0]} {token}[/yellow]")
                continue
            ending = self.registry.play(playable, self.controller.bpm(), moment)
            if not together:
                moment = ending

    def handle_timing(self, parts: List[str]) -> None:
        if len(parts) != 2:
            console.print(f"[red]Usage: {parts[0]} <value>[/red]")
            return
        try:
            if parts[0] == "bpm":
                value = float(parts[1])
                if not (1 <= value <= 300):
                    raise ValueError(f"invalid beats-per-minute [1..300], {value}")
                self.controller.set_bpm(value)
            else:
                value = int(parts[1])
                if not (1 <= value <= 6):
                    raise ValueError(f"invalid beats-in-a-bar [1..6], {value}")
                self.controller.set_biab(value)
        except ValueError as e:
            console.print(f"[red]{str(e)}[/red]")

    def handle_loop(self, parts: List[str]) -> None:
        if len(parts) != 3:
            console.print("[red]Usage: loop <name> <var>[/red]")
            return
        name, var = parts[1], parts[2]
        self.variables.put(name, Loop(Variable(self.variables, var), name=name))
        console.print(f"[green]Loop {name} created over {var}[/green]")

    def _loop_named(self, name: str) -> Optional[Loop]:
        value, _ = self.variables.get(name)
        if not isinstance(value, Loop):
            console.print(f"[yellow]{name} is not a loop[/yellow]")
            return None
        return value

    def handle_begin(self, parts: List[str]) -> None:
        for name in parts[1:]:
            loop = self._loop_named(name)
            if loop is not None:
                self.controller.start_loop(loop)
                console.print(f"[green]started loop: {name}[/green]")

    def handle_end(self, parts: List[str]) -> None:
        if len(parts) == 1:
            for loop in self.controller.loops():
                self.controller.end_loop(loop)
            console.print("[yellow]stopped all loops[/yellow]")
            return
        for name in parts[1:]:
            loop = self._loop_named(name)
            if loop is not None:
                console.print(f"[green]stopping loop: {name}[/green]")
                self.controller.end_loop(loop)

    def handle_listen(self, parts: List[str]) -> None:
        if len(parts) not in (3, 4):
            console.print("[red]Usage: listen <device-id> <var> \\[target-var][/red]")
            return
        try:
            device_id = int(parts[1])
        except ValueError:
            console.print("[red]Device id must be an integer![/red]")
            return
        var = parts[2]
        target = PlayTrigger(Variable(self.variables, parts[3])) if len(parts) == 4 else None
        listen = Listen(self.ctx, device_id, var, target)
        try:
            listen.play()
        except InputUnavailableError as e:
            console.print(f"[red]{str(e)}[/red]")
            return
        self.listens[var] = listen
        console.print(f"[green]listening on device {device_id} into {var}[/green]")

    def handle_unlisten(self, parts: List[str]) -> None:
        if len(parts) != 2 or parts[1] not in self.listens:
            console.print("[red]Usage: unlisten <var>[/red]")
            return
        self.listens.pop(parts[1]).stop()

    def handle_where(self) -> None:
        beats, bars = self.controller.beats_and_bars()
        console.print(
            f"[blue]beat {beats}, bar {bars} at {self.controller.bpm()} BPM, "
            f"{self.controller.biab()} beats in a bar[/blue]"
        )

    def handle_command(self, command: str, parts: List[str]) -> Optional[bool]:
        """Handle a single command.

        Returns:
            True if should exit, None otherwise.
        """
        if command == "exit":
            return True

        command_handlers = {
            "help": lambda: print_help(),
            "m": lambda: self._device_command(parts[1:]),
            "bpm": lambda: self.handle_timing(parts),
            "biab": lambda: self.handle_timing(parts),
            "set": lambda: self.handle_set(parts),
            "play": lambda: self.handle_play(parts, together=False),
            "go": lambda: self.handle_play(parts, together=True),
            "loop": lambda: self.handle_loop(parts),
            "begin": lambda: self.handle_begin(parts),
            "end": lambda: self.handle_end(parts),
            "listen": lambda: self.handle_listen(parts),
            "unlisten": lambda: self.handle_unlisten(parts),
            "where": lambda: self.handle_where(),
        }

        handler = command_handlers.get(command)
        if handler:
            handler()
        else:
            console.print(f"[red]Unknown command: {command}[/red]")
            print_help()
        return None

    def _device_command(self, args: List[str]) -> None:
        message = self.registry.command(args)
        if message is not None:
            message.print()

    def close(self) -> None:
        for listen in self.listens.values():
            listen.stop()
        self.controller.stop()
        self.registry.close()


@click.command()
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Override the configured log level of the engine.",
)
def main(log_level: Optional[str]):
    """Play and loop sequences on MIDI devices."""
    console.print("[bold blue]loopline[/bold blue]")
    console.print("Type 'help' for available commands")

    configure_logging(log_level)

    registry = DeviceRegistry()
    controller = BeatLoopController(registry)
    session = LiveSession(registry, controller)

    try:
        while True:
            try:
                command = Prompt.ask("\n[bold green]loopline>[/bold green]").strip()
                parts = command.split()

                if not parts:
                    continue

                if session.handle_command(parts[0].lower(), parts):
                    break

            except KeyboardInterrupt:
                console.print("\n[yellow]Use 'exit' to quit[/yellow]")
            except Exception as e:
                console.print(f"[red]Error: {str(e)}[/red]")
    finally:
        try:
            session.close()
        except Exception as e:
            console.print(f"[red]Error during cleanup: {str(e)}[/red]")
        console.print("[blue]Goodbye![/blue]")


if __name__ == "__main__":
    main()
