"""Unit tests for the session controller lifecycle."""

import asyncio
from unittest.mock import Mock

import pytest

from conftest import FakeFrameSource, FakeStreamingSession, make_block, settle
from livescribe.errors import ConfigurationError, PermissionDeniedError, SessionConnectionError
from livescribe.models.session import SessionState
from livescribe.services.session_controller import SessionController

FULL_TEARDOWN = ["open", "detach", "stop_stream", "terminate"]


def make_controller(session_factory=FakeStreamingSession, source_factory=FakeFrameSource, **kwargs):
    return SessionController(session_factory=session_factory, source_factory=source_factory, **kwargs)


def published_states(publisher):
    return [c.args[1] for c in publisher.publish_state.call_args_list]


@pytest.mark.unit
class TestSessionControllerLifecycle:
    """Start/stop transitions."""

    def test_start_open_stop(self):
        async def scenario():
            publisher = Mock()
            controller = make_controller(publisher=publisher)

            assert await controller.start() is True
            assert controller.state is SessionState.CONNECTING
            await settle()
            assert controller.state is SessionState.OPEN
            assert controller.is_recording

            await controller.stop()
            return controller, publisher

        controller, publisher = asyncio.run(scenario())

        assert controller.state is SessionState.CLOSED
        assert controller.released
        assert published_states(publisher) == [
            SessionState.CONNECTING, SessionState.OPEN, SessionState.CLOSING, SessionState.CLOSED,
        ]
        session = FakeStreamingSession.instances[0]
        assert session.close_calls == 1
        assert FakeFrameSource.instances[0].calls == FULL_TEARDOWN

    def test_stop_from_idle_converges_to_closed(self):
        async def scenario():
            controller = make_controller()
            await controller.stop()
            return controller

        controller = asyncio.run(scenario())

        assert controller.state is SessionState.CLOSED
        assert FakeStreamingSession.instances == []

    def test_start_while_recording_is_ignored(self):
        async def scenario():
            controller = make_controller()
            await controller.start()
            second = await controller.start()
            await controller.stop()
            return second

        assert asyncio.run(scenario()) is False
        assert len(FakeStreamingSession.instances) == 1

    def test_toggle(self):
        async def scenario():
            controller = make_controller()
            first = await controller.toggle()
            await settle()
            second = await controller.toggle()
            return controller, first, second

        controller, first, second = asyncio.run(scenario())

        assert first is True
        assert second is False
        assert controller.state is SessionState.CLOSED

    def test_concurrent_stops_tear_down_once(self):
        async def scenario():
            controller = make_controller()
            await controller.start()
            await settle()
            await asyncio.gather(controller.stop(), controller.stop(), controller.stop())
            return controller

        controller = asyncio.run(scenario())

        assert controller.state is SessionState.CLOSED
        assert FakeStreamingSession.instances[0].close_calls == 1
        assert FakeFrameSource.instances[0].calls == FULL_TEARDOWN


@pytest.mark.unit
class TestSessionControllerFailures:
    """Error paths."""

    def test_permission_denied(self):
        on_error = Mock()

        async def scenario():
            controller = make_controller(
                source_factory=lambda: FakeFrameSource(open_error=OSError("denied")),
                on_error=on_error,
            )
            started = await controller.start()
            return controller, started

        controller, started = asyncio.run(scenario())

        assert started is False
        assert controller.state is SessionState.FAILED
        assert "denied" in controller.last_error
        assert FakeStreamingSession.instances == []
        assert FakeFrameSource.instances[0].calls == FULL_TEARDOWN
        assert controller.released
        error = on_error.call_args.args[0]
        assert isinstance(error, PermissionDeniedError)

    def test_session_open_failure(self):
        async def scenario():
            controller = make_controller(
                session_factory=lambda: FakeStreamingSession(open_error=SessionConnectionError("refused")),
            )
            await controller.start()
            await settle()
            return controller

        controller = asyncio.run(scenario())

        assert controller.state is SessionState.FAILED
        assert "refused" in controller.last_error
        assert FakeFrameSource.instances[0].calls == FULL_TEARDOWN
        assert controller.released

    def test_session_error_fails_and_tears_down(self):
        on_error = Mock()

        async def scenario():
            controller = make_controller(on_error=on_error)
            await controller.start()
            await settle()
            FakeStreamingSession.instances[0].push_error(RuntimeError("socket reset"))
            await settle()
            return controller

        controller = asyncio.run(scenario())

        assert controller.state is SessionState.FAILED
        assert controller.last_error == "socket reset"
        assert isinstance(on_error.call_args.args[0], SessionConnectionError)
        assert FakeStreamingSession.instances[0].close_calls == 1
        assert FakeFrameSource.instances[0].calls == FULL_TEARDOWN

    def test_send_failure_fails_session(self):
        async def scenario():
            controller = make_controller(
                session_factory=lambda: FakeStreamingSession(send_error=SessionConnectionError("gone")),
            )
            await controller.start()
            await settle()
            FakeFrameSource.instances[0].emit(0.1)
            await settle()
            return controller

        controller = asyncio.run(scenario())

        assert controller.state is SessionState.FAILED
        assert controller.last_error == "gone"

    def test_on_error_callback_exception_is_contained(self):
        async def scenario():
            controller = make_controller(on_error=Mock(side_effect=ValueError("ui gone")))
            await controller.start()
            await settle()
            FakeStreamingSession.instances[0].push_error(SessionConnectionError("boom"))
            await settle()
            return controller

        controller = asyncio.run(scenario())

        assert controller.state is SessionState.FAILED
        assert controller.released

    def test_remote_close(self):
        async def scenario():
            controller = make_controller()
            await controller.start()
            await settle()
            FakeStreamingSession.instances[0].push_close()
            await settle()
            return controller

        controller = asyncio.run(scenario())

        assert controller.state is SessionState.CLOSED
        assert controller.last_error is None
        assert FakeFrameSource.instances[0].calls == FULL_TEARDOWN

    def test_restart_after_failure(self):
        async def scenario():
            controller = make_controller()
            await controller.start()
            await settle()
            FakeStreamingSession.instances[0].push_error(SessionConnectionError("boom"))
            await settle()
            failed_state = controller.state

            restarted = await controller.start()
            await settle()
            open_state = controller.state
            await controller.stop()
            return controller, failed_state, restarted, open_state

        controller, failed_state, restarted, open_state = asyncio.run(scenario())

        assert failed_state is SessionState.FAILED
        assert restarted is True
        assert open_state is SessionState.OPEN
        assert controller.state is SessionState.CLOSED
        assert controller.last_error is None
        assert len(FakeStreamingSession.instances) == 2

    def test_stop_from_failed_moves_to_closed(self):
        async def scenario():
            controller = make_controller(
                source_factory=lambda: FakeFrameSource(open_error=OSError("denied")),
            )
            await controller.start()
            await controller.stop()
            return controller

        assert asyncio.run(scenario()).state is SessionState.CLOSED


@pytest.mark.unit
class TestSessionControllerAudioPath:
    """Queueing and sending of audio blocks."""

    def test_blocks_before_open_are_flushed_in_order(self):
        async def scenario():
            gate = asyncio.get_running_loop().create_future()
            controller = make_controller(session_factory=lambda: FakeStreamingSession(open_gate=gate))
            await controller.start()
            source = FakeFrameSource.instances[0]
            for _ in range(3):
                source.emit(0.1)
            await settle()
            queued = controller.status().blocks_queued
            gate.set_result(None)
            await settle()
            source.emit(0.2)
            await settle()
            sent = [b.sequence_number for b in FakeStreamingSession.instances[0].sent]
            blocks_sent = controller.blocks_sent
            await controller.stop()
            return queued, sent, blocks_sent

        queued, sent, blocks_sent = asyncio.run(scenario())

        assert queued == 3
        assert sent == [1, 2, 3, 4]
        assert blocks_sent == 4

    def test_full_queue_drops_oldest(self):
        async def scenario():
            gate = asyncio.get_running_loop().create_future()
            controller = make_controller(
                session_factory=lambda: FakeStreamingSession(open_gate=gate),
                max_queued_blocks=2,
            )
            await controller.start()
            source = FakeFrameSource.instances[0]
            for _ in range(5):
                source.emit(0.1)
            await settle()
            gate.set_result(None)
            await settle()
            sent = [b.sequence_number for b in FakeStreamingSession.instances[0].sent]
            dropped = controller.status().blocks_dropped
            await controller.stop()
            return sent, dropped

        sent, dropped = asyncio.run(scenario())

        assert sent == [4, 5]
        assert dropped == 3

    def test_encoded_payload_is_pcm(self):
        async def scenario():
            controller = make_controller()
            await controller.start()
            await settle()
            FakeFrameSource.instances[0].emit(0.5, size=8)
            await settle()
            await controller.stop()
            return FakeStreamingSession.instances[0].sent

        sent = asyncio.run(scenario())

        assert len(sent) == 1
        assert sent[0].mime_type == "audio/pcm;rate=16000"
        assert sent[0].data == b'\x00\x40' * 8

    def test_stop_before_open_closes_late_session(self):
        async def scenario():
            gate = asyncio.get_running_loop().create_future()
            controller = make_controller(session_factory=lambda: FakeStreamingSession(open_gate=gate))
            await controller.start()
            FakeFrameSource.instances[0].emit(0.1)
            await controller.stop()
            state_after_stop = controller.state

            gate.set_result(None)
            await settle()
            return controller, state_after_stop

        controller, state_after_stop = asyncio.run(scenario())

        session = FakeStreamingSession.instances[0]
        assert state_after_stop is SessionState.CLOSED
        assert controller.state is SessionState.CLOSED
        assert session.closed
        assert session.sent == []
        assert FakeFrameSource.instances[0].calls == FULL_TEARDOWN

    def test_blocks_after_stop_are_ignored(self):
        async def scenario():
            controller = make_controller()
            await controller.start()
            await settle()
            source = FakeFrameSource.instances[0]
            sink = source.sink
            await controller.stop()
            # A callback already in flight on the audio thread
            sink(make_block(99))
            await settle()
            return controller

        controller = asyncio.run(scenario())

        assert controller.status().blocks_queued == 0
        assert FakeStreamingSession.instances[0].sent == []


@pytest.mark.unit
class TestSessionControllerTranscripts:
    """Transcript events flowing into the aggregator."""

    def test_partial_then_final(self):
        async def scenario():
            publisher = Mock()
            controller = make_controller(publisher=publisher)
            await controller.start()
            await settle()
            session = FakeStreamingSession.instances[0]
            session.push_transcript("he")
            session.push_transcript("hello")
            session.push_transcript("hello there", is_final=True)
            segments = controller.segments
            await controller.stop()
            return segments, publisher

        segments, publisher = asyncio.run(scenario())

        assert [(s.text, s.is_final) for s in segments] == [("hello there", True), ("", False)]
        last_published = publisher.publish_transcript.call_args_list[-1].args[1]
        assert last_published == segments

    def test_stale_transcripts_are_ignored(self):
        async def scenario():
            controller = make_controller()
            await controller.start()
            await settle()
            old = FakeStreamingSession.instances[0]
            await controller.stop()
            await controller.start()
            await settle()
            old.handlers.on_transcript("stale", True)
            segments = controller.segments
            await controller.stop()
            return segments

        segments = asyncio.run(scenario())

        assert [(s.text, s.is_final) for s in segments] == [("", False)]

    def test_transcripts_before_open_are_ignored(self):
        async def scenario():
            gate = asyncio.get_running_loop().create_future()
            controller = make_controller(session_factory=lambda: FakeStreamingSession(open_gate=gate))
            await controller.start()
            await settle()
            FakeStreamingSession.instances[0].handlers.on_transcript("early", False)
            segments = controller.segments
            await controller.stop()
            gate.set_result(None)
            await settle()
            return segments

        segments = asyncio.run(scenario())

        assert [(s.text, s.is_final) for s in segments] == [("", False)]


@pytest.mark.unit
class TestSessionControllerStartInterleavings:
    """stop() or cancellation while start() is still setting up."""

    def test_stop_while_acquiring_microphone(self):
        async def scenario():
            controller = make_controller(source_factory=lambda: FakeFrameSource(open_delay=0.2))
            starting = asyncio.create_task(controller.start())
            await asyncio.sleep(0.05)
            await controller.stop()
            started = await starting
            return controller, started

        controller, started = asyncio.run(scenario())

        assert started is False
        assert controller.state is SessionState.CLOSED
        assert controller.released
        assert FakeStreamingSession.instances == []
        assert FakeFrameSource.instances[0].calls == FULL_TEARDOWN

    def test_cancelled_start_releases_microphone_on_stop(self):
        async def scenario():
            controller = make_controller(source_factory=lambda: FakeFrameSource(open_delay=0.2))
            starting = asyncio.create_task(controller.start())
            await asyncio.sleep(0.05)
            starting.cancel()
            with pytest.raises(asyncio.CancelledError):
                await starting
            await controller.stop()
            return controller

        controller = asyncio.run(scenario())

        source = FakeFrameSource.instances[0]
        assert controller.state is SessionState.CLOSED
        assert controller.released
        assert source.calls == FULL_TEARDOWN
        assert source.released
        assert FakeStreamingSession.instances == []

    def test_cancelled_start_settles_without_stop(self):
        async def scenario():
            controller = make_controller(source_factory=lambda: FakeFrameSource(open_delay=0.1))
            starting = asyncio.create_task(controller.start())
            await asyncio.sleep(0.02)
            starting.cancel()
            with pytest.raises(asyncio.CancelledError):
                await starting
            await settle(rounds=30)
            return controller

        controller = asyncio.run(scenario())

        assert controller.state is SessionState.CLOSED
        assert controller.released
        assert FakeFrameSource.instances[0].calls == FULL_TEARDOWN

    def test_session_factory_failure_fails_and_releases(self):
        on_error = Mock()

        def failing_factory():
            raise ConfigurationError("GEMINI_API_KEY not set")

        async def scenario():
            controller = make_controller(session_factory=failing_factory, on_error=on_error)
            started = await controller.start()
            await settle()
            return controller, started

        controller, started = asyncio.run(scenario())

        assert started is False
        assert controller.state is SessionState.FAILED
        assert controller.last_error == "GEMINI_API_KEY not set"
        assert isinstance(on_error.call_args.args[0], ConfigurationError)
        assert controller.released
        assert FakeFrameSource.instances[0].calls == FULL_TEARDOWN

    def test_unexpected_session_factory_error_becomes_connection_error(self):
        def failing_factory():
            raise ValueError("Google credentials path is required")

        async def scenario():
            controller = make_controller(session_factory=failing_factory)
            await controller.start()
            await settle()
            return controller

        controller = asyncio.run(scenario())

        assert controller.state is SessionState.FAILED
        assert "credentials path" in controller.last_error
        assert controller.released
