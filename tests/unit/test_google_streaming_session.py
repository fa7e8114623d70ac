"""Unit tests for GoogleSpeechStreamingSession with a fake Speech client."""

import asyncio
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from google.api_core import exceptions as gax_exceptions

from conftest import settle
from livescribe.config import ServiceCredentials
from livescribe.errors import SessionConnectionError
from livescribe.models.audio import EncodedAudioBlock
from livescribe.transcription.base import SessionHandlers
from livescribe.transcription.google_streaming import GoogleSpeechStreamingSession


def result(transcript, is_final=False, confidence=0.9):
    return SimpleNamespace(
        is_final=is_final,
        alternatives=[SimpleNamespace(transcript=transcript, confidence=confidence)],
    )


def response(*results):
    return SimpleNamespace(results=list(results))


class FakeSpeechClient:
    """Replays scripted responses, then consumes requests until the stream ends."""

    def __init__(self, responses=(), error=None, drain_requests=True):
        self.responses = list(responses)
        self.error = error
        self.drain_requests = drain_requests
        self.config = None
        self.audio = []
        self.transport = Mock()

    def streaming_recognize(self, config, requests):
        self.config = config
        return self._stream(requests)

    def _stream(self, requests):
        for item in self.responses:
            yield item
        if self.error is not None:
            raise self.error
        if self.drain_requests:
            for request in requests:
                self.audio.append(request.audio_content)


def make_handlers():
    return SessionHandlers(on_transcript=Mock(), on_error=Mock(), on_close=Mock())


def make_session(client):
    return GoogleSpeechStreamingSession(
        ServiceCredentials(credentials_path="/tmp/creds.json"),
        client_factory=lambda credentials: client,
    )


@pytest.mark.unit
class TestGoogleSpeechStreamingSession:
    """Test cases for GoogleSpeechStreamingSession."""

    def test_requires_credentials_path(self):
        with pytest.raises(ValueError):
            GoogleSpeechStreamingSession(ServiceCredentials())

    def test_streaming_config_requests_interim_results(self):
        session = make_session(FakeSpeechClient())

        assert session.streaming_config.interim_results is True
        assert session.streaming_config.config.sample_rate_hertz == 16000
        assert session.streaming_config.config.language_code == "en-US"

    def test_interim_and_final_results(self):
        client = FakeSpeechClient(responses=[
            response(result("hello ")),
            response(result("hello "), result("world")),
            response(result("hello world.", is_final=True)),
            response(),
        ])

        async def scenario():
            handlers = make_handlers()
            session = make_session(client)
            await session.open(handlers)
            await settle(rounds=20)
            await session.close()
            return handlers

        handlers = asyncio.run(scenario())

        assert [c.args for c in handlers.on_transcript.call_args_list] == [
            ("hello", False),
            ("hello world", False),
            ("hello world.", True),
        ]
        handlers.on_close.assert_not_called()
        client.transport.close.assert_called_once()

    def test_audio_is_forwarded_to_stream(self):
        client = FakeSpeechClient()

        async def scenario():
            session = make_session(client)
            await session.open(make_handlers())
            await session.send(EncodedAudioBlock(data=b'\x01\x00', sequence_number=1))
            await session.send(EncodedAudioBlock(data=b'\x02\x00', sequence_number=2))
            await settle(rounds=10)
            await session.close()

        asyncio.run(scenario())

        assert client.audio == [b'\x01\x00', b'\x02\x00']

    def test_server_end_reports_close(self):
        client = FakeSpeechClient(drain_requests=False)

        async def scenario():
            handlers = make_handlers()
            session = make_session(client)
            await session.open(handlers)
            await settle(rounds=20)
            await session.close()
            return handlers

        handlers = asyncio.run(scenario())

        handlers.on_close.assert_called_once_with()
        handlers.on_error.assert_not_called()

    def test_api_error_is_terminal(self):
        client = FakeSpeechClient(error=gax_exceptions.ServiceUnavailable("backend down"))

        async def scenario():
            handlers = make_handlers()
            session = make_session(client)
            await session.open(handlers)
            await settle(rounds=20)
            await session.close()
            return handlers

        handlers = asyncio.run(scenario())

        handlers.on_error.assert_called_once()
        assert isinstance(handlers.on_error.call_args.args[0], SessionConnectionError)
        handlers.on_close.assert_not_called()

    def test_client_setup_failure(self):
        def failing_factory(credentials):
            raise FileNotFoundError(credentials.credentials_path)

        async def scenario():
            session = GoogleSpeechStreamingSession(
                ServiceCredentials(credentials_path="/missing.json"),
                client_factory=failing_factory,
            )
            await session.open(make_handlers())

        with pytest.raises(SessionConnectionError):
            asyncio.run(scenario())

    def test_send_before_open_raises(self):
        async def scenario():
            session = make_session(FakeSpeechClient())
            await session.send(EncodedAudioBlock(data=b'\x00\x00', sequence_number=1))

        with pytest.raises(SessionConnectionError):
            asyncio.run(scenario())

    def test_close_is_idempotent(self):
        client = FakeSpeechClient()

        async def scenario():
            session = make_session(client)
            await session.open(make_handlers())
            await session.close()
            await session.close()
            return session

        session = asyncio.run(scenario())

        assert session.is_open is False
        client.transport.close.assert_called_once()
