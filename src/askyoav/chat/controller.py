"""Generation session controller.

Turns a user message into a rendered prompt, streams one completion and
folds the partial output into the conversation as it arrives.

State machine:
    IDLE --submit_turn--> GENERATING
    GENERATING --cancel_turn / stream end / transport error--> IDLE

Only one generation runs at a time. A message submitted while a turn is
generating is dropped, not queued, so outputs never interleave.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum

from ..llm.cancellation import CancellationToken
from ..llm.model import CompletionClient
from ..session.state import CHAR_SPEAKER, USER_SPEAKER, TranscriptEntry
from ..template.engine import TemplateError
from .context import ChatContext

logger = logging.getLogger(__name__)

END_OF_TURN = "</s>"


class GenerationState(Enum):
    """Controller state."""

    IDLE = "idle"
    GENERATING = "generating"


@dataclass(frozen=True)
class GenerationHandle:
    """An in-flight generation and the means to cancel it.

    Attributes:
        turn_id: Sequential turn number
        cancellation: Token passed to the transport for this turn only
    """

    turn_id: int
    cancellation: CancellationToken = field(default_factory=CancellationToken)


class ChatController:
    """Drives streaming turns against a completion client.

    Progress is published through the context: the transcript is replaced
    on every chunk and telemetry is overwritten whenever the server sends
    timings. Callers do not need the return value of submit_turn() to
    observe a turn.

    Example:
        controller = ChatController(ChatContext(), MockCompletionClient())
        task = controller.submit_turn("Hi")
        await task
    """

    def __init__(self, context: ChatContext, client: CompletionClient) -> None:
        """Initialize the controller.

        Args:
            context: Shared session state
            client: Streaming completion transport
        """
        self._context = context
        self._client = client
        self._handle: GenerationHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._turn_ids = itertools.count(1)

    @property
    def context(self) -> ChatContext:
        """Get the shared session state."""
        return self._context

    @property
    def state(self) -> GenerationState:
        """Get the current controller state."""
        if self._handle is None:
            return GenerationState.IDLE
        return GenerationState.GENERATING

    @property
    def is_generating(self) -> bool:
        """Return True while a turn is in flight."""
        return self._handle is not None

    @property
    def handle(self) -> GenerationHandle | None:
        """Get the active generation handle."""
        return self._handle

    def build_history(self, transcript: tuple[TranscriptEntry, ...]) -> str:
        """Render each transcript entry through the history template.

        Args:
            transcript: Entries to render

        Returns:
            Rendered entries joined with newlines
        """
        history_template = self._context.session.history_template
        return "\n".join(
            self._context.render(history_template, {"name": speaker, "message": message})
            for speaker, message in transcript
        )

    def build_prompt(self, message: str, transcript: tuple[TranscriptEntry, ...]) -> str:
        """Render the request prompt for a message.

        Args:
            message: The new user message
            transcript: Prior turns, excluding the new message

        Returns:
            Rendered prompt
        """
        return self._context.render(
            self._context.session.template,
            {"message": message, "history": self.build_history(transcript)},
        )

    def stop_sequences(self) -> list[str]:
        """Get the stop sequences for the next request.

        The model is stopped before it starts speaking for either party.
        """
        return [
            END_OF_TURN,
            self._context.render(f"{CHAR_SPEAKER}:"),
            self._context.render(f"{USER_SPEAKER}:"),
        ]

    def submit_turn(self, message: str) -> asyncio.Task[None] | None:
        """Start a generation turn for a user message.

        Must be called from a running event loop. The user message is in the
        transcript by the time this returns; the assistant reply streams in
        from the returned task.

        Args:
            message: User message text

        Returns:
            Task running the turn, or None if a turn was already running

        Raises:
            TemplateError: If the prompt or stop sequences cannot be rendered
        """
        if self._handle is not None:
            logger.info("Generation already running, dropping message")
            return None

        loop = asyncio.get_running_loop()

        handle = GenerationHandle(turn_id=next(self._turn_ids))
        self._handle = handle
        self._context.clear_fault()
        logger.debug(f"Turn {handle.turn_id}: generating")

        history = self._context.store.transcript
        prior = self._context.store.append_entry(USER_SPEAKER, message)

        try:
            prompt = self.build_prompt(message, history)
            stop = self.stop_sequences()
        except TemplateError as e:
            logger.error(f"Turn {handle.turn_id}: prompt rendering failed: {e}")
            self._release(handle)
            self._context.record_fault(e)
            raise

        parameters = self._context.params.to_payload(stop)
        task = loop.create_task(self._run_turn(handle, prompt, parameters, prior))
        task.add_done_callback(self._on_turn_done)
        self._task = task
        return task

    async def chat(self, message: str) -> bool:
        """Submit a turn and wait for it to finish.

        Returns:
            True if the turn ran, False if it was dropped
        """
        task = self.submit_turn(message)
        if task is None:
            return False
        await task
        return True

    async def wait_for_turn(self) -> None:
        """Wait for the most recent turn's task to finish.

        Errors from the turn are not raised here; they are available as
        the context fault.
        """
        if self._task is None:
            return
        await asyncio.wait({self._task})

    def cancel_turn(self) -> None:
        """Stop the active turn, keeping whatever text it produced.

        No-op when idle.
        """
        handle = self._handle
        if handle is None:
            return
        handle.cancellation.cancel()
        self._handle = None
        logger.info(f"Turn {handle.turn_id}: cancelled")

    def reset_conversation(self) -> None:
        """Cancel any active turn and empty the transcript."""
        self.cancel_turn()
        self._context.store.clear_transcript()
        logger.info("Conversation reset")

    async def aclose(self) -> None:
        """Cancel any active turn and close the transport."""
        self.cancel_turn()
        await self.wait_for_turn()
        await self._client.aclose()

    async def _run_turn(
        self,
        handle: GenerationHandle,
        prompt: str,
        parameters: dict[str, object],
        prior: tuple[TranscriptEntry, ...],
    ) -> None:
        token = handle.cancellation
        store = self._context.store
        telemetry = self._context.telemetry
        reply = ""

        try:
            stream = self._client.stream_completion(prompt, parameters, token)
            async with contextlib.aclosing(stream):
                async for chunk in stream:
                    if token.cancelled:
                        break

                    # Models sometimes open with blank lines; strip the whole
                    # reply so the trim holds however the text is split.
                    reply = (reply + chunk.content).lstrip()
                    store.set_transcript((*prior, TranscriptEntry(CHAR_SPEAKER, reply)))

                    if chunk.stop:
                        logger.info(f"Turn {handle.turn_id}: completion finished: '{reply[:80]}'")

                    if chunk.timings is not None:
                        telemetry.observe_timing(chunk.timings)

        except Exception as e:
            logger.error(f"Turn {handle.turn_id}: generation failed: {e}")
            self._release(handle)
            self._context.record_fault(e)
            raise
        finally:
            self._release(handle)

    def _release(self, handle: GenerationHandle) -> None:
        # A cancelled turn may finish after a newer turn has started
        if self._handle is handle:
            self._handle = None
            logger.debug(f"Turn {handle.turn_id}: idle")

    def _on_turn_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        # Already logged and published as a fault
        task.exception()


__all__ = ["END_OF_TURN", "ChatController", "GenerationHandle", "GenerationState"]
