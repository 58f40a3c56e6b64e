"""Unit tests for the recognition orchestrator with fake adapters."""

import asyncio
from unittest.mock import Mock

import pytest

from speak2doc.errors import BackendError, MicrophonePermissionError, StartError, UnsupportedError
from speak2doc.models.recognition import BackendSelection
from speak2doc.models.settings import RecognitionSettings
from speak2doc.recognition.buffered import BufferedBatchAdapter
from speak2doc.recognition.native import NativeStreamingAdapter
from speak2doc.recognition.orchestrator import RecognitionOrchestrator, create_adapter
from speak2doc.recognition.providers import WhisperDriver
from speak2doc.recognition.realtime import RealtimeStreamingAdapter


class FakeAdapter:
    """Adapter double that records its lifecycle in a shared event log."""

    def __init__(self, selection, settings, events, start_error=None, **callbacks):
        self.selection = selection
        self.settings = settings
        self.language = settings.language
        self.events = events
        self.start_error = start_error
        self.supports_language_update = selection.is_buffered
        self.on_transcript_update = callbacks["on_transcript_update"]
        self.on_error = callbacks["on_error"]
        self.transcript = callbacks["transcript"]
        self.listening = False

    async def start(self):
        self.events.append(("start", self.selection))
        if self.start_error is not None:
            raise self.start_error
        self.listening = True

    async def stop(self):
        if self.listening:
            self.events.append(("stop", self.selection))
        self.listening = False

    def is_listening(self):
        return self.listening

    def update_language(self, language):
        self.events.append(("update_language", language))
        self.language = language

    def deliver(self, text):
        self.on_transcript_update(self.transcript.append(text))

    async def crash(self, error):
        await self.stop()
        self.on_error(error)


class FakeAdapterFactory:

    def __init__(self, failures=None):
        self.failures = failures or {}
        self.events = []
        self.created = []

    def __call__(self, selection, settings, **callbacks):
        self.events.append(("create", selection))
        adapter = FakeAdapter(selection, settings, self.events,
                              start_error=self.failures.get(selection), **callbacks)
        self.created.append(adapter)
        return adapter


class HandshakeSession:
    """Realtime session whose handshake waits for the test, then succeeds or fails."""

    handshake = None
    error = None
    instances = []

    def __init__(self, settings, on_transcript, on_error):
        self.close_count = 0
        HandshakeSession.instances.append(self)

    async def connect(self):
        await HandshakeSession.handshake.wait()
        if HandshakeSession.error is not None:
            raise HandshakeSession.error

    def send_audio(self, pcm):
        pass

    async def close(self):
        self.close_count += 1


@pytest.fixture
def handshake_sessions():
    HandshakeSession.instances = []
    HandshakeSession.error = None
    yield HandshakeSession.instances
    HandshakeSession.instances = []
    HandshakeSession.error = None


class RecordingFactory:
    """Builds real adapters; realtime sessions use HandshakeSession."""

    def __init__(self):
        self.created = []

    def __call__(self, selection, settings, **kwargs):
        if selection == BackendSelection.REALTIME_ASSEMBLYAI:
            adapter = RealtimeStreamingAdapter(settings, session_factory=HandshakeSession, **kwargs)
        else:
            adapter = create_adapter(selection, settings, **kwargs)
        self.created.append(adapter)
        return adapter


class FakeClock:

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_orchestrator(backend, factory, **kwargs):
    settings = RecognitionSettings(backend=backend)
    kwargs.setdefault("on_transcript_update", Mock())
    return RecognitionOrchestrator(settings, adapter_factory=factory, microphone=Mock(), **kwargs)


@pytest.mark.unit
class TestStartAndFallback:

    def test_start_selected_backend(self):
        factory = FakeAdapterFactory()
        on_start = Mock()
        orchestrator = make_orchestrator(BackendSelection.WHISPER, factory, on_transcription_start=on_start)

        async def scenario():
            result = await orchestrator.start()
            listening = orchestrator.is_listening()
            await orchestrator.stop()
            return result, listening

        result, listening = asyncio.run(scenario())

        assert result.active == BackendSelection.WHISPER
        assert result.fell_back is False
        assert listening is True
        assert orchestrator.is_listening() is False
        on_start.assert_called_once()

    def test_failed_backend_falls_back_to_native(self):
        error = UnsupportedError("endpoint unreachable")
        factory = FakeAdapterFactory(failures={BackendSelection.ASSEMBLYAI: error})
        orchestrator = make_orchestrator(BackendSelection.ASSEMBLYAI, factory)

        async def scenario():
            result = await orchestrator.start()
            await orchestrator.stop()
            return result

        result = asyncio.run(scenario())

        assert result.fell_back is True
        assert result.requested == BackendSelection.ASSEMBLYAI
        assert result.active == BackendSelection.NATIVE_STREAMING
        assert result.error is error
        assert orchestrator.get_api() == BackendSelection.NATIVE_STREAMING
        assert orchestrator.fell_back_from == BackendSelection.ASSEMBLYAI
        assert orchestrator.requested_api == BackendSelection.ASSEMBLYAI

    def test_failed_fallback_raises_start_error(self):
        original = BackendError("token endpoint down")
        factory = FakeAdapterFactory(failures={
            BackendSelection.REALTIME_ASSEMBLYAI: original,
            BackendSelection.NATIVE_STREAMING: UnsupportedError("no credentials"),
        })
        orchestrator = make_orchestrator(BackendSelection.REALTIME_ASSEMBLYAI, factory)

        with pytest.raises(StartError) as exc_info:
            asyncio.run(orchestrator.start())

        assert exc_info.value.original_error is original
        assert orchestrator.is_listening() is False

    def test_native_failure_does_not_retry(self):
        factory = FakeAdapterFactory(failures={
            BackendSelection.NATIVE_STREAMING: MicrophonePermissionError("denied"),
        })
        orchestrator = make_orchestrator(BackendSelection.NATIVE_STREAMING, factory)

        with pytest.raises(StartError):
            asyncio.run(orchestrator.start())

        assert factory.events.count(("start", BackendSelection.NATIVE_STREAMING)) == 1


@pytest.mark.unit
class TestAdapterOwnership:

    def test_change_api_releases_old_adapter_first(self):
        factory = FakeAdapterFactory()
        orchestrator = make_orchestrator(BackendSelection.NATIVE_STREAMING, factory)

        async def scenario():
            await orchestrator.start()
            await orchestrator.change_api(BackendSelection.GOOGLE)

        asyncio.run(scenario())

        old, new = factory.created
        assert old.is_listening() is False
        assert factory.events.index(("stop", BackendSelection.NATIVE_STREAMING)) < \
            factory.events.index(("create", BackendSelection.GOOGLE))
        assert orchestrator.adapter is new
        assert orchestrator.get_api() == BackendSelection.GOOGLE
        assert orchestrator.is_listening() is False

    def test_transcript_survives_backend_swap(self):
        factory = FakeAdapterFactory()
        updates = []
        orchestrator = make_orchestrator(BackendSelection.WHISPER, factory,
                                         on_transcript_update=updates.append)

        async def scenario():
            await orchestrator.start()
            orchestrator.adapter.deliver("hello")
            await orchestrator.change_api(BackendSelection.GOOGLE)
            await orchestrator.start()
            orchestrator.adapter.deliver("world")
            await orchestrator.stop()

        asyncio.run(scenario())

        assert updates == ["hello", "hello world"]
        assert orchestrator.get_transcript() == "hello world"
        orchestrator.reset_transcript()
        assert orchestrator.get_transcript() == ""

    def test_stop_is_idempotent(self):
        factory = FakeAdapterFactory()
        orchestrator = make_orchestrator(BackendSelection.NATIVE_STREAMING, factory)

        async def scenario():
            await orchestrator.start()
            await orchestrator.stop()
            await orchestrator.stop()

        asyncio.run(scenario())

        assert factory.events.count(("stop", BackendSelection.NATIVE_STREAMING)) == 1


    def test_failed_build_keeps_current_backend(self):
        factory = FakeAdapterFactory()
        orchestrator = make_orchestrator(BackendSelection.NATIVE_STREAMING, factory)

        def failing_factory(selection, settings, **callbacks):
            raise ValueError(f"No endpoint configured for backend '{selection.value}'")

        orchestrator.adapter_factory = failing_factory

        with pytest.raises(ValueError):
            asyncio.run(orchestrator.change_api(BackendSelection.WHISPER))

        assert orchestrator.requested_api == BackendSelection.NATIVE_STREAMING
        assert orchestrator.get_api() == BackendSelection.NATIVE_STREAMING
        assert orchestrator.settings.backend == BackendSelection.NATIVE_STREAMING


@pytest.mark.unit
class TestPendingStart:

    def test_change_api_during_pending_start(self, recognition_settings, fake_microphone, handshake_sessions):
        factory = RecordingFactory()
        settings = recognition_settings.with_backend(BackendSelection.REALTIME_ASSEMBLYAI)
        orchestrator = RecognitionOrchestrator(settings, on_transcript_update=Mock(),
                                               adapter_factory=factory, microphone=fake_microphone)

        async def scenario():
            HandshakeSession.handshake = asyncio.Event()
            pending = asyncio.ensure_future(orchestrator.start())
            await asyncio.sleep(0)
            await orchestrator.change_api(BackendSelection.WHISPER)
            started = await orchestrator.start()
            HandshakeSession.handshake.set()
            superseded = await pending
            listening = [adapter.is_listening() for adapter in factory.created]
            await orchestrator.stop()
            return started, superseded, listening

        started, superseded, listening = asyncio.run(scenario())

        assert superseded.cancelled is True
        assert started.active == BackendSelection.WHISPER
        assert listening == [False, True]
        assert len(fake_microphone.streams) == 1
        assert fake_microphone.stream.released
        assert handshake_sessions[0].close_count == 1
        assert orchestrator.get_api() == BackendSelection.WHISPER

    def test_stop_during_pending_start_skips_fallback(self, recognition_settings, fake_microphone,
                                                      handshake_sessions):
        factory = RecordingFactory()
        settings = recognition_settings.with_backend(BackendSelection.REALTIME_ASSEMBLYAI)
        orchestrator = RecognitionOrchestrator(settings, on_transcript_update=Mock(),
                                               adapter_factory=factory, microphone=fake_microphone)
        HandshakeSession.error = BackendError("handshake refused")

        async def scenario():
            HandshakeSession.handshake = asyncio.Event()
            pending = asyncio.ensure_future(orchestrator.start())
            await asyncio.sleep(0)
            await orchestrator.stop()
            HandshakeSession.handshake.set()
            return await pending

        result = asyncio.run(scenario())

        assert result.cancelled is True
        assert result.fell_back is False
        assert len(factory.created) == 1
        assert orchestrator.get_api() == BackendSelection.REALTIME_ASSEMBLYAI
        assert orchestrator.is_listening() is False
        assert fake_microphone.streams == []


@pytest.mark.unit
class TestLanguageAndFinalize:

    def test_update_language_in_place_for_buffered(self):
        factory = FakeAdapterFactory()
        orchestrator = make_orchestrator(BackendSelection.ASSEMBLYAI, factory)

        async def scenario():
            await orchestrator.start()
            await orchestrator.update_language("es-ES")

        asyncio.run(scenario())

        assert len(factory.created) == 1
        assert orchestrator.adapter.language == "es-ES"
        assert orchestrator.is_listening() is False
        assert factory.events[-2:] == [("stop", BackendSelection.ASSEMBLYAI), ("update_language", "es-ES")]

    def test_update_language_rebuilds_streaming_adapter(self):
        factory = FakeAdapterFactory()
        orchestrator = make_orchestrator(BackendSelection.NATIVE_STREAMING, factory)

        async def scenario():
            await orchestrator.start()
            await orchestrator.update_language("fr-FR")

        asyncio.run(scenario())

        assert len(factory.created) == 2
        assert orchestrator.adapter.language == "fr-FR"
        assert orchestrator.settings.language == "fr-FR"
        assert orchestrator.is_listening() is False

    def test_force_finalize_stops_without_restart(self):
        factory = FakeAdapterFactory()
        clock = FakeClock()
        orchestrator = make_orchestrator(BackendSelection.WHISPER, factory, clock=clock)

        async def scenario():
            await orchestrator.start()
            await orchestrator.force_finalize()
            clock.now += 0.5
            return orchestrator.get_duration()

        elapsed = asyncio.run(scenario())

        assert orchestrator.is_listening() is False
        assert factory.events.count(("start", BackendSelection.WHISPER)) == 1
        assert elapsed == 500


@pytest.mark.unit
class TestErrorsAndDuration:

    def test_adapter_error_is_forwarded(self):
        factory = FakeAdapterFactory()
        on_error = Mock()
        durations = []
        clock = FakeClock()
        orchestrator = make_orchestrator(BackendSelection.REALTIME_ASSEMBLYAI, factory,
                                         on_error=on_error, on_duration_update=durations.append,
                                         clock=clock)
        error = BackendError("session closed")

        async def scenario():
            await orchestrator.start()
            clock.now += 1.25
            await orchestrator.adapter.crash(error)

        asyncio.run(scenario())

        on_error.assert_called_once_with(error)
        assert orchestrator.is_listening() is False
        assert orchestrator.get_duration() == 1250
        assert durations[-1] == 1250

    def test_duration_with_fake_clock(self):
        factory = FakeAdapterFactory()
        clock = FakeClock()
        orchestrator = make_orchestrator(BackendSelection.NATIVE_STREAMING, factory, clock=clock)

        async def scenario():
            await orchestrator.start()
            clock.now += 0.5
            await orchestrator.stop()

        asyncio.run(scenario())

        assert orchestrator.get_duration() == 500

    def test_close_stops_and_blocks_restart(self):
        factory = FakeAdapterFactory()
        orchestrator = make_orchestrator(BackendSelection.NATIVE_STREAMING, factory)

        async def scenario():
            await orchestrator.start()
            await orchestrator.close()
            with pytest.raises(StartError):
                await orchestrator.start()

        asyncio.run(scenario())

        assert orchestrator.is_listening() is False


@pytest.mark.unit
class TestCreateAdapter:

    def test_adapter_types(self, recognition_settings, fake_microphone):
        callbacks = {"on_transcript_update": Mock(), "microphone": fake_microphone}

        native = create_adapter(BackendSelection.NATIVE_STREAMING, recognition_settings, **callbacks)
        realtime = create_adapter(BackendSelection.REALTIME_ASSEMBLYAI, recognition_settings, **callbacks)
        whisper = create_adapter(BackendSelection.WHISPER, recognition_settings, **callbacks)

        assert isinstance(native, NativeStreamingAdapter)
        assert isinstance(realtime, RealtimeStreamingAdapter)
        assert isinstance(whisper, BufferedBatchAdapter)
        assert isinstance(whisper.driver, WhisperDriver)
        assert whisper.selection == BackendSelection.WHISPER
