"""Integration tests for PlaybackSupervisor against a local radio server."""

import asyncio
import json
from contextlib import asynccontextmanager
from unittest.mock import Mock

import aiohttp
import numpy as np
import pytest
from aiohttp import web
from aiohttp import test_utils

from coderadio.audio.decoder import FrameDecoder
from coderadio.config import CodeRadioConfig
from coderadio.errors import StationNotFoundError
from coderadio.models.metadata import MetadataEvent
from coderadio.models.station import Station
from coderadio.services.catalog import StationCatalog
from coderadio.services.supervisor import PlaybackSupervisor

FRAME_SECONDS = 1152 / 44100


def sse(payload) -> bytes:
    return f"data: {json.dumps(payload)}\n\n".encode()


def track(title, elapsed=0.0, duration=200.0):
    return {"title": title, "artist": "Artist", "duration": duration, "elapsed": elapsed}


class RadioServer:
    """Serves an audio stream and an event stream, one payload per connection.

    Earlier connections close after their payload (a disconnect); the last
    listed connection, and any after it, stay open until ``release`` is set.
    A payload may be a list of byte blocks and events; the server waits for
    each event before writing the blocks after it.
    """

    def __init__(self, audio_connections, sse_connections, audio_status=200):
        self.audio_connections = list(audio_connections)
        self.sse_connections = list(sse_connections)
        self.audio_status = audio_status
        self.audio_requests = 0
        self.sse_requests = 0
        self.release = asyncio.Event()

        self.app = web.Application()
        self.app.router.add_get("/radio.mp3", self.audio)
        self.app.router.add_get("/sse", self.events)

    async def audio(self, request):
        self.audio_requests += 1
        if self.audio_status != 200:
            return web.Response(status=self.audio_status)
        return await self._serve(request, "audio/mpeg", self.audio_connections, self.audio_requests - 1)

    async def events(self, request):
        self.sse_requests += 1
        return await self._serve(request, "text/event-stream", self.sse_connections, self.sse_requests - 1)

    async def _serve(self, request, content_type, connections, index):
        response = web.StreamResponse(headers={"Content-Type": content_type})
        await response.prepare(request)
        if index < len(connections):
            payload = connections[index]
            for part in payload if isinstance(payload, list) else [payload]:
                if isinstance(part, asyncio.Event):
                    await asyncio.wait_for(part.wait(), timeout=10.0)
                else:
                    await response.write(part)
        if index >= len(connections) - 1:
            try:
                await asyncio.wait_for(self.release.wait(), timeout=10.0)
            except asyncio.TimeoutError:
                pass
        return response


@asynccontextmanager
async def running_supervisor(radio, config=None, publisher=None, codec_factory=None):
    async with test_utils.TestServer(radio.app) as server, aiohttp.ClientSession() as session:
        catalog = StationCatalog([
            Station(
                id="coding",
                name="Coding",
                audio_url=str(server.make_url("/radio.mp3")),
                metadata_url=str(server.make_url("/sse")),
            )
        ])
        supervisor = PlaybackSupervisor(
            catalog,
            config or CodeRadioConfig(),
            http_session=session,
            decoder_factory=lambda: FrameDecoder(codec=codec_factory()),
            publisher=publisher,
        )
        try:
            yield supervisor
        finally:
            await supervisor.shutdown()
            radio.release.set()


def written_tags(mock_stream):
    return [int(np.frombuffer(c[0][0], dtype=np.int16)[0]) for c in mock_stream.write.call_args_list]


@pytest.mark.integration
class TestPlaybackSupervisor:

    @pytest.mark.asyncio
    async def test_plays_across_a_disconnect_without_losing_frames(
        self, mock_pyaudio, mp3_stream, codec_factory, wait_until
    ):
        radio = RadioServer(
            audio_connections=[mp3_stream(10), mp3_stream(10, first_tag=10)],
            sse_connections=[sse(track("Song 1", elapsed=30.0))],
        )

        async with running_supervisor(radio, codec_factory=codec_factory) as supervisor:
            session = await supervisor.start("coding")
            await wait_until(lambda: session.sink.frames_rendered >= 20)
            await wait_until(lambda: supervisor.snapshot().title == "Song 1")
            await wait_until(lambda: session.reconciler.pending_messages == 0)

            assert written_tags(mock_pyaudio['stream']) == list(range(20))
            assert session.reconnects == 1
            assert radio.audio_requests == 2

            state = supervisor.snapshot()
            assert 30.0 <= state.elapsed <= 30.0 + 20 * FRAME_SECONDS + 1e-6
            assert state.duration == 200.0
            assert state.healthy is True

        mock_pyaudio['instance'].terminate.assert_called_once()

    @pytest.mark.asyncio
    async def test_audio_keeps_playing_while_metadata_reconnects(
        self, mock_pyaudio, mp3_stream, codec_factory, wait_until
    ):
        more_audio = asyncio.Event()
        radio = RadioServer(
            audio_connections=[[mp3_stream(10), more_audio, mp3_stream(10, first_tag=10)]],
            sse_connections=[sse(track("Song 1", elapsed=5.0)), sse(track("Song 2"))],
        )

        async with running_supervisor(radio, codec_factory=codec_factory) as supervisor:
            session = await supervisor.start("coding")
            await wait_until(lambda: session.sink.frames_rendered == 10)
            await wait_until(lambda: supervisor.snapshot().title == "Song 2")
            assert radio.sse_requests == 2

            more_audio.set()
            await wait_until(lambda: session.sink.frames_rendered == 20)
            await wait_until(lambda: session.reconciler.pending_messages == 0)

            assert written_tags(mock_pyaudio['stream']) == list(range(20))
            assert radio.audio_requests == 1
            assert session.reconnects == 0
            assert not session.sink.stopped
            assert supervisor.fatal_error is None
            assert session.subscriber.connections == 2

            state = supervisor.snapshot()
            assert state.title == "Song 2"
            assert state.healthy is True
            assert state.elapsed >= 10 * FRAME_SECONDS - 1e-6

    @pytest.mark.asyncio
    async def test_stop_keeps_metadata_flowing(self, mock_pyaudio, mp3_stream, codec_factory, wait_until):
        radio = RadioServer(
            audio_connections=[mp3_stream(5)],
            sse_connections=[sse(track("Song 1")), sse(track("Song 2"))],
        )

        async with running_supervisor(radio, codec_factory=codec_factory) as supervisor:
            session = await supervisor.start("coding")
            await wait_until(lambda: supervisor.snapshot().title == "Song 1")

            await supervisor.stop()

            assert session.sink.stopped
            mock_pyaudio['instance'].terminate.assert_called_once()
            await wait_until(lambda: supervisor.snapshot().title == "Song 2")

    @pytest.mark.asyncio
    async def test_shutdown_while_enqueue_and_reads_are_blocked(
        self, mock_pyaudio, mp3_stream, codec_factory, wait_until
    ):
        config = CodeRadioConfig()
        config.set("audio.queue_frames", 2)
        radio = RadioServer(audio_connections=[mp3_stream(10)], sse_connections=[b""])

        async with running_supervisor(radio, config=config, codec_factory=codec_factory) as supervisor:
            session = await supervisor.start("coding")
            supervisor.pause()
            await wait_until(lambda: session.sink.queued_frames == 2 and radio.sse_requests == 1)
            await asyncio.sleep(0.05)

            await asyncio.wait_for(supervisor.shutdown(), timeout=2.0)
            await supervisor.shutdown()

            assert all(task.done() for task in session.tasks)
            assert session.sink.stopped
            assert session.sink.queued_frames == 0
            mock_pyaudio['stream'].write.assert_not_called()

        mock_pyaudio['instance'].terminate.assert_called_once()

    @pytest.mark.asyncio
    async def test_missing_stream_ends_the_session(self, mock_pyaudio, codec_factory):
        radio = RadioServer(audio_connections=[], sse_connections=[b""], audio_status=404)

        async with running_supervisor(radio, codec_factory=codec_factory) as supervisor:
            await supervisor.start("coding")

            with pytest.raises(StationNotFoundError) as exc_info:
                await asyncio.wait_for(supervisor.wait(), timeout=5.0)

            assert exc_info.value.station_id == "coding"
            assert isinstance(supervisor.fatal_error, StationNotFoundError)

        mock_pyaudio['instance'].terminate.assert_called_once()

    @pytest.mark.asyncio
    async def test_initial_event_primes_state(self, mock_pyaudio, codec_factory):
        radio = RadioServer(audio_connections=[b""], sse_connections=[b""])
        changes = []
        publisher = Mock()
        publisher.get_callback.return_value = changes.append
        initial = MetadataEvent(title="Welcome", artist="Quincy", station_id="coding", duration=None, elapsed=12.0)

        async with running_supervisor(radio, publisher=publisher, codec_factory=codec_factory) as supervisor:
            await supervisor.start("coding", initial_event=initial)

            state = supervisor.snapshot()
            assert state.title == "Welcome"
            assert state.elapsed == 12.0
            assert [s.title for s in changes] == ["Welcome"]

    @pytest.mark.asyncio
    async def test_volume_and_pause_controls(self, mock_pyaudio, codec_factory):
        radio = RadioServer(audio_connections=[b""], sse_connections=[b""])

        async with running_supervisor(radio, codec_factory=codec_factory) as supervisor:
            await supervisor.start("coding")

            assert supervisor.set_volume(4).level == 4
            assert supervisor.volume.level == 4
            supervisor.pause()
            assert supervisor.paused
            supervisor.resume()
            assert not supervisor.paused

    @pytest.mark.asyncio
    async def test_only_one_session(self, mock_pyaudio, codec_factory):
        radio = RadioServer(audio_connections=[b""], sse_connections=[b""])

        async with running_supervisor(radio, codec_factory=codec_factory) as supervisor:
            await supervisor.start("coding")

            with pytest.raises(RuntimeError):
                await supervisor.start("coding")

    @pytest.mark.asyncio
    async def test_unknown_station_acquires_nothing(self, mock_pyaudio, codec_factory):
        radio = RadioServer(audio_connections=[], sse_connections=[])

        async with running_supervisor(radio, codec_factory=codec_factory) as supervisor:
            with pytest.raises(StationNotFoundError):
                await supervisor.start("jazz")

            assert supervisor.session is None
            mock_pyaudio['class'].assert_not_called()

    @pytest.mark.asyncio
    async def test_controls_need_a_session(self):
        supervisor = PlaybackSupervisor(StationCatalog(), CodeRadioConfig(), http_session=Mock())

        assert supervisor.snapshot() is None
        with pytest.raises(RuntimeError):
            supervisor.set_volume(3)
