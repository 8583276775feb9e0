"""Terminal chat front end.

Reads messages from stdin, streams the assistant's reply to stdout as the
transcript changes, and exposes the session and sampling settings as
slash commands.
"""

import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Callable
from typing import TextIO

from .chat import ChatController
from .llm import SamplingParameters, Timings
from .session import CHAR_SPEAKER, Session
from .template import TemplateError

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  /reset                 Clear the conversation
  /history               Show the transcript
  /stats                 Show the last generation speed
  /params                Show sampling parameters
  /set NAME VALUE        Change a sampling parameter
  /session FIELD VALUE   Change prompt, template, history_template, char or user
  /help                  Show this help
  /quit                  Exit
Press Ctrl+C while a reply is streaming to stop it."""


class ChatConsole:
    """Line-oriented chat loop around a ChatController."""

    def __init__(
        self,
        controller: ChatController,
        output: TextIO | None = None,
        read_line: Callable[[str], str] = input,
    ) -> None:
        """Initialize the console.

        Args:
            controller: Controller driving the conversation
            output: Stream to write to (defaults to stdout)
            read_line: Blocking line reader, called off the event loop
        """
        self._controller = controller
        self._context = controller.context
        self._output = output or sys.stdout
        self._read_line = read_line
        self._printed = ""
        self._streaming = False
        self._timed = False

        self._context.store.subscribe(self._on_session)
        self._context.telemetry.subscribe(self._on_timing)
        self._context.subscribe_faults(self._on_fault)

    def write(self, text: str) -> None:
        """Write text and flush."""
        self._output.write(text)
        self._output.flush()

    async def run(self) -> None:
        """Read and handle lines until /quit or end of input."""
        try:
            char = self._context.render(CHAR_SPEAKER)
        except TemplateError as e:
            self.write(f"Error: {e}\n")
            char = self._context.session.char
        self.write(f"Chatting with {char}. Type /help for commands.\n")
        while True:
            try:
                line = await asyncio.to_thread(self._read_line, "> ")
            except EOFError:
                break
            if not await self.handle_line(line):
                break

    async def handle_line(self, line: str) -> bool:
        """Handle one line of input.

        Args:
            line: Raw input line

        Returns:
            False if the console should exit
        """
        line = line.strip()
        if not line:
            return True
        try:
            if line.startswith("/"):
                return self._handle_command(line)
            await self.send(line)
        except TemplateError as e:
            self.write(f"Error: {e}\n")
        return True

    async def send(self, message: str) -> None:
        """Submit a message and stream the reply."""
        try:
            task = self._controller.submit_turn(message)
        except TemplateError:
            # Already printed by the fault listener
            return

        if task is None:
            self.write("A reply is still being generated.\n")
            return

        self._printed = ""
        self._streaming = True
        self._timed = False
        self.write(f"{self._context.render(CHAR_SPEAKER)}: ")

        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, self._controller.cancel_turn)
        try:
            await self._controller.wait_for_turn()
        finally:
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)
            self._streaming = False
            self.write("\n")
            if self._timed:
                self.write(f"{self._context.telemetry.summary()}\n")

    def _on_session(self, session: Session) -> None:
        if not self._streaming or not session.transcript:
            return
        speaker, message = session.transcript[-1]
        if speaker != CHAR_SPEAKER:
            return
        if message.startswith(self._printed):
            self.write(message[len(self._printed) :])
        else:
            self.write(f"\n{message}")
        self._printed = message

    def _on_timing(self, sample: Timings | None) -> None:
        if self._streaming and sample is not None:
            self._timed = True

    def _on_fault(self, error: Exception | None) -> None:
        if error is not None:
            self.write(f"\nError: {error}\n")

    def _handle_command(self, line: str) -> bool:
        command, _, rest = line.partition(" ")
        command = command.lower()

        if command in ("/quit", "/exit"):
            return False
        if command == "/help":
            self.write(HELP_TEXT + "\n")
        elif command == "/reset":
            self._controller.reset_conversation()
            self.write("Conversation cleared.\n")
        elif command == "/history":
            for name, message in self._context.display_transcript():
                self.write(f"{name}: {message}\n")
        elif command == "/stats":
            self.write((self._context.telemetry.summary() or "No generation stats yet.") + "\n")
        elif command == "/params":
            for name in SamplingParameters.field_names():
                self.write(f"{name} = {getattr(self._context.params, name)}\n")
        elif command == "/set":
            self._set_parameter(rest)
        elif command == "/session":
            self._set_session_field(rest)
        else:
            self.write(f"Unknown command: {command}. Type /help for commands.\n")
        return True

    def _set_parameter(self, args: str) -> None:
        name, _, value = args.strip().partition(" ")
        if not name or not value:
            self.write("Usage: /set NAME VALUE\n")
            return
        try:
            self._context.params.set(name, value.strip())
        except ValueError as e:
            self.write(f"Error: {e}\n")
            return
        logger.info(f"Sampling parameter {name} set to {getattr(self._context.params, name)}")
        self.write(f"{name} = {getattr(self._context.params, name)}\n")

    def _set_session_field(self, args: str) -> None:
        name, _, value = args.strip().partition(" ")
        if name not in Session.editable_fields() or not value:
            fields_list = ", ".join(Session.editable_fields())
            self.write(f"Usage: /session FIELD VALUE (FIELD is one of {fields_list})\n")
            return
        # Allow typing multi-line templates on one line
        self._context.update_session(**{name: value.replace("\\n", "\n")})
        self.write(f"{name} updated.\n")


__all__ = ["HELP_TEXT", "ChatConsole"]
