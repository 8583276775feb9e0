"""Unit tests for the generation session controller."""

import pytest

from askyoav.chat import END_OF_TURN, ChatContext, ChatController, GenerationState
from askyoav.llm import (
    CompletionChunk,
    CompletionConnectivityError,
    CompletionError,
    MockCompletionClient,
    Timings,
)
from askyoav.session import CHAR_SPEAKER, USER_SPEAKER
from askyoav.template import TemplateRecursionError


def make_controller() -> tuple[ChatController, ChatContext, MockCompletionClient]:
    context = ChatContext()
    client = MockCompletionClient()
    return ChatController(context, client), context, client


class TestSubmitTurn:
    """Tests for starting and completing a turn."""

    @pytest.mark.asyncio
    async def test_user_message_appended_before_any_chunk(self) -> None:
        """Test the user entry is visible as soon as submit_turn returns."""
        controller, context, client = make_controller()
        client.pause_after(0)

        task = controller.submit_turn("Hi")

        assert task is not None
        assert context.store.transcript == ((USER_SPEAKER, "Hi"),)
        assert controller.state is GenerationState.GENERATING

        controller.cancel_turn()
        await task

    @pytest.mark.asyncio
    async def test_streaming_builds_reply_and_telemetry(self) -> None:
        """Test chunks fold into one assistant entry and timings are kept."""
        controller, context, client = make_controller()
        client.set_chunks(
            [
                CompletionChunk(content="Hello"),
                CompletionChunk(
                    content=" there",
                    stop=True,
                    timings=Timings(predicted_per_token_ms=12.3, predicted_per_second=81.3),
                ),
            ]
        )

        assert await controller.chat("Hi") is True

        assert context.store.transcript == (
            (USER_SPEAKER, "Hi"),
            (CHAR_SPEAKER, "Hello there"),
        )
        assert context.telemetry.current_timing() == Timings(12.3, 81.3)
        assert controller.state is GenerationState.IDLE

    @pytest.mark.asyncio
    async def test_last_entry_replaced_per_chunk(self) -> None:
        """Test the live-typing effect: one growing entry, never appended twice."""
        controller, context, client = make_controller()
        client.set_response("one two three")
        snapshots: list[tuple] = []
        context.store.subscribe(lambda session: snapshots.append(session.transcript))

        await controller.chat("Hi")

        assistant_snapshots = [t for t in snapshots if len(t) == 2]
        assert [t[-1].message for t in assistant_snapshots] == [
            "one",
            "one two",
            "one two three",
        ]
        assert all(len(t) <= 2 for t in snapshots)

    @pytest.mark.asyncio
    async def test_leading_whitespace_stripped(self) -> None:
        """Test whitespace at the start of the reply is trimmed across chunks."""
        controller, context, client = make_controller()
        client.set_chunks(
            [
                CompletionChunk(content="   Hi"),
                CompletionChunk(content=" there", stop=True),
            ]
        )

        await controller.chat("Hello")

        assert context.store.transcript[-1] == (CHAR_SPEAKER, "Hi there")

    @pytest.mark.asyncio
    async def test_whitespace_only_chunks_then_text(self) -> None:
        """Test blank opening chunks leave no leading newline."""
        controller, context, client = make_controller()
        client.set_chunks(
            [
                CompletionChunk(content="\n"),
                CompletionChunk(content="\n  "),
                CompletionChunk(content="Yes", stop=True),
            ]
        )

        await controller.chat("Well?")

        assert context.store.transcript[-1] == (CHAR_SPEAKER, "Yes")

    @pytest.mark.asyncio
    async def test_telemetry_overwritten_not_merged(self) -> None:
        """Test each turn's timings replace the previous ones."""
        controller, context, client = make_controller()
        client.set_response("first", timings=Timings(10.0, 100.0))
        await controller.chat("One")
        client.set_response("second", timings=Timings(20.0, 50.0))
        await controller.chat("Two")

        assert context.telemetry.current_timing() == Timings(20.0, 50.0)

    @pytest.mark.asyncio
    async def test_chunks_without_timings_keep_previous(self) -> None:
        """Test telemetry is untouched when a turn reports no timings."""
        controller, context, client = make_controller()
        client.set_response("first", timings=Timings(10.0, 100.0))
        await controller.chat("One")
        client.set_response("second")
        await controller.chat("Two")

        assert context.telemetry.current_timing() == Timings(10.0, 100.0)


class TestPromptConstruction:
    """Tests for the request sent to the transport."""

    @pytest.mark.asyncio
    async def test_first_turn_prompt_has_empty_history(self) -> None:
        """Test that history excludes the message being sent."""
        controller, context, client = make_controller()

        await controller.chat("Hi")

        prompt = client.last_request["prompt"]
        assert prompt == f"{context.session.prompt}\n\n\nYoav:"

    @pytest.mark.asyncio
    async def test_history_renders_prior_turns(self) -> None:
        """Test that earlier turns are rendered through the history template."""
        controller, context, client = make_controller()
        client.set_response("Hello there")
        await controller.chat("Hi")

        await controller.chat("How are you?")

        prompt = client.last_request["prompt"]
        assert prompt.endswith("\n\nUser: Hi\nYoav: Hello there\nYoav:")
        assert "How are you?" not in prompt

    @pytest.mark.asyncio
    async def test_message_placeholder_available_to_template(self) -> None:
        """Test that a custom template can place the new message."""
        controller, context, client = make_controller()
        context.update_session(template="{{history}}\n{{user}}: {{message}}\n{{char}}:")

        await controller.chat("Hi")

        assert client.last_request["prompt"] == "\nUser: Hi\nYoav:"

    @pytest.mark.asyncio
    async def test_renamed_character_applies_to_history(self) -> None:
        """Test that speakers resolve at render time."""
        controller, context, client = make_controller()
        client.set_response("Hello")
        await controller.chat("Hi")
        context.update_session(char="Ada")

        await controller.chat("Again")

        assert client.last_request["prompt"].endswith("User: Hi\nAda: Hello\nAda:")

    @pytest.mark.asyncio
    async def test_stop_sequences_and_parameters(self) -> None:
        """Test sampling parameters and derived stop list in the request."""
        controller, context, client = make_controller()
        context.params.set("temperature", 0.3)

        await controller.chat("Hi")

        parameters = client.last_request["parameters"]
        assert parameters["stop"] == [END_OF_TURN, "Yoav:", "User:"]
        assert parameters["temperature"] == 0.3
        assert parameters["n_predict"] == 400

    def test_stop_sequences_follow_session(self) -> None:
        """Test stop sequences use the current names."""
        controller, context, _ = make_controller()
        context.update_session(char="Ada", user="Sam")
        assert controller.stop_sequences() == ["</s>", "Ada:", "Sam:"]

    def test_build_history(self) -> None:
        """Test each entry is rendered independently and joined by newlines."""
        controller, context, _ = make_controller()
        history = controller.build_history(
            (
                (USER_SPEAKER, "Hi"),
                (CHAR_SPEAKER, "Hello"),
            )
        )
        assert history == "User: Hi\nYoav: Hello"


class TestConcurrencyGuard:
    """Tests for the one-generation-at-a-time rule."""

    @pytest.mark.asyncio
    async def test_second_submit_is_dropped(self) -> None:
        """Test back-to-back submits produce one turn."""
        controller, context, client = make_controller()

        first = controller.submit_turn("Hi")
        second = controller.submit_turn("Are you there?")

        assert first is not None
        assert second is None
        await first

        assert client.call_count == 1
        assert len(context.store.transcript) == 2
        assert context.store.transcript[0] == (USER_SPEAKER, "Hi")

    @pytest.mark.asyncio
    async def test_chat_returns_false_when_busy(self) -> None:
        """Test the awaitable helper reports a dropped message."""
        controller, _, client = make_controller()
        client.pause_after(1)
        task = controller.submit_turn("Hi")

        assert await controller.chat("Again") is False

        client.resume()
        await task

    @pytest.mark.asyncio
    async def test_each_turn_gets_fresh_token(self) -> None:
        """Test cancellation tokens are never reused."""
        controller, _, client = make_controller()
        client.pause_after(0)
        task = controller.submit_turn("Hi")
        first_handle = controller.handle
        controller.cancel_turn()
        await task

        client.pause_after(None)
        task = controller.submit_turn("Again")
        second_handle = controller.handle
        await task

        assert first_handle is not None and second_handle is not None
        assert first_handle.cancellation is not second_handle.cancellation
        assert first_handle.cancellation.cancelled
        assert not second_handle.cancellation.cancelled
        assert second_handle.turn_id == first_handle.turn_id + 1


class TestCancellation:
    """Tests for cancel_turn and reset_conversation."""

    @pytest.mark.asyncio
    async def test_cancel_keeps_partial_reply(self) -> None:
        """Test cancelling after one chunk keeps that chunk and stops the rest."""
        controller, context, client = make_controller()
        client.set_response("One Two Three")
        client.pause_after(1)

        task = controller.submit_turn("Hi")
        await client.wait_paused()
        assert context.store.transcript[-1] == (CHAR_SPEAKER, "One")

        controller.cancel_turn()
        assert controller.state is GenerationState.IDLE
        await task

        assert context.store.transcript == (
            (USER_SPEAKER, "Hi"),
            (CHAR_SPEAKER, "One"),
        )

    @pytest.mark.asyncio
    async def test_submit_accepted_after_cancel(self) -> None:
        """Test the controller is re-submittable after cancelling."""
        controller, context, client = make_controller()
        client.set_response("One Two")
        client.pause_after(1)
        task = controller.submit_turn("Hi")
        await client.wait_paused()
        controller.cancel_turn()
        await task

        client.pause_after(None)
        client.set_response("Next")
        assert await controller.chat("Again") is True

        assert context.store.transcript[-2:] == (
            (USER_SPEAKER, "Again"),
            (CHAR_SPEAKER, "Next"),
        )

    @pytest.mark.asyncio
    async def test_cancelled_turn_does_not_release_newer_turn(self) -> None:
        """Test a late-finishing cancelled turn leaves the next turn running."""
        controller, context, client = make_controller()
        client.set_response("One Two Three")
        client.pause_after(1)

        first = controller.submit_turn("Hi")
        await client.wait_paused()
        controller.cancel_turn()
        second = controller.submit_turn("Again")
        assert second is not None

        await first
        assert controller.state is GenerationState.GENERATING

        client.resume()
        await second
        assert controller.state is GenerationState.IDLE
        assert context.store.transcript == (
            (USER_SPEAKER, "Hi"),
            (CHAR_SPEAKER, "One"),
            (USER_SPEAKER, "Again"),
            (CHAR_SPEAKER, "One Two Three"),
        )

    def test_cancel_when_idle_is_noop(self) -> None:
        """Test cancel_turn without a turn does nothing."""
        controller, context, _ = make_controller()
        controller.cancel_turn()
        assert controller.state is GenerationState.IDLE
        assert context.store.transcript == ()

    @pytest.mark.asyncio
    async def test_reset_while_generating(self) -> None:
        """Test reset cancels the turn and empties the transcript."""
        controller, context, client = make_controller()
        client.set_response("One Two Three")
        client.pause_after(1)

        task = controller.submit_turn("Hi")
        await client.wait_paused()
        controller.reset_conversation()

        assert controller.state is GenerationState.IDLE
        assert context.store.transcript == ()
        await task
        assert context.store.transcript == ()

    @pytest.mark.asyncio
    async def test_reset_when_idle(self) -> None:
        """Test reset from idle clears history."""
        controller, context, _ = make_controller()
        await controller.chat("Hi")

        controller.reset_conversation()

        assert context.store.transcript == ()
        assert not context.chat_started


class TestFailures:
    """Tests for transport and rendering faults."""

    @pytest.mark.asyncio
    async def test_transport_error_returns_to_idle(self) -> None:
        """Test a failing stream releases the guard and surfaces the fault."""
        controller, context, client = make_controller()
        client.set_response("Partial reply")
        client.set_error("server went away", after_chunks=1)
        faults: list[Exception | None] = []
        context.subscribe_faults(faults.append)

        with pytest.raises(CompletionError, match="server went away"):
            await controller.chat("Hi")

        assert controller.state is GenerationState.IDLE
        assert isinstance(context.fault, CompletionError)
        assert faults == [context.fault]
        assert context.store.transcript[-1] == (CHAR_SPEAKER, "Partial")

    @pytest.mark.asyncio
    async def test_new_turn_after_transport_error(self) -> None:
        """Test the session is re-submittable and the fault is cleared."""
        controller, context, client = make_controller()
        client.set_error("boom")
        with pytest.raises(CompletionError):
            await controller.chat("Hi")

        client.set_response("Recovered")
        assert await controller.chat("Again") is True

        assert context.fault is None
        assert context.store.transcript[-1] == (CHAR_SPEAKER, "Recovered")

    @pytest.mark.asyncio
    async def test_wait_for_turn_does_not_raise(self) -> None:
        """Test waiting on a failed turn leaves the error to the fault."""
        controller, context, client = make_controller()
        client.set_error("boom")

        controller.submit_turn("Hi")
        await controller.wait_for_turn()

        assert controller.state is GenerationState.IDLE
        assert str(context.fault) == "boom"

    @pytest.mark.asyncio
    async def test_rendering_fault(self) -> None:
        """Test a self-referencing prompt is reported and leaves the guard free."""
        controller, context, client = make_controller()
        context.update_session(prompt="{{prompt}}!")

        with pytest.raises(TemplateRecursionError):
            controller.submit_turn("Hi")

        assert controller.state is GenerationState.IDLE
        assert isinstance(context.fault, TemplateRecursionError)
        assert client.call_count == 0
        assert context.store.transcript == ((USER_SPEAKER, "Hi"),)

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self) -> None:
        """Test shutting the controller down."""
        controller, _, client = make_controller()
        client.pause_after(0)
        controller.submit_turn("Hi")

        await controller.aclose()

        assert controller.state is GenerationState.IDLE
        assert client.closed

    def test_submit_requires_event_loop(self) -> None:
        """Test submit_turn outside a loop fails before changing state."""
        controller, context, _ = make_controller()

        with pytest.raises(RuntimeError):
            controller.submit_turn("Hi")

        assert controller.state is GenerationState.IDLE
        assert context.store.transcript == ()


class FailingOpenClient(MockCompletionClient):
    """Client whose stream fails when opened rather than when iterated."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self._failures = failures

    def stream_completion(self, prompt, parameters, cancellation):
        if self._failures > 0:
            self._failures -= 1
            raise CompletionConnectivityError("connection refused")
        return super().stream_completion(prompt, parameters, cancellation)


class TestStreamOpenFailure:
    """Tests for clients that raise before yielding a stream."""

    @pytest.mark.asyncio
    async def test_failed_open_returns_to_idle(self) -> None:
        """Test the guard is released and the fault recorded."""
        context = ChatContext()
        controller = ChatController(context, FailingOpenClient(failures=1))

        task = controller.submit_turn("Hi")
        assert task is not None
        with pytest.raises(CompletionConnectivityError):
            await task

        assert controller.state is GenerationState.IDLE
        assert isinstance(context.fault, CompletionConnectivityError)

    @pytest.mark.asyncio
    async def test_next_turn_accepted_after_failed_open(self) -> None:
        """Test a later message is not dropped."""
        context = ChatContext()
        client = FailingOpenClient(failures=1)
        client.set_response("Back")
        controller = ChatController(context, client)

        with pytest.raises(CompletionConnectivityError):
            await controller.chat("Hi")

        assert await controller.chat("Again") is True
        assert context.store.transcript[-1] == (CHAR_SPEAKER, "Back")
