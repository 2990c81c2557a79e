"""End-to-end tests for VideoGenerator with a fake encoder."""

import asyncio
import re
import time
from pathlib import Path

import pytest
from PIL import Image

from quotereel.errors import EncodingError, InputValidationError
from quotereel.models import CitationData, VideoOptions
from quotereel.video.frames import FrameRenderer
from quotereel.video.generator import DEFAULT_VARIATIONS, safe_theme


def temp_leftovers(small_config):
    temp_dir = Path(small_config["video"]["temp_dir"])
    return list(temp_dir.iterdir()) if temp_dir.exists() else []


@pytest.mark.asyncio
async def test_generates_video_and_cleans_workspace(make_generator, small_config, citation):
    generator = make_generator()

    video = await generator.generate_video(citation, VideoOptions(duration=10))

    assert re.fullmatch(r"video-motivation-\d+\.mp4", video.filename)
    assert video.path.exists()
    assert video.path.parent == generator.output_dir
    assert video.buffer == video.path.read_bytes() == b"optimized-raw.mp4"
    assert video.metadata == {
        "duration": 10,
        "format": "instagram",
        "resolution": "54x96",
        "size": len(video.buffer),
        "theme": "motivation",
        "animation": "fade-in",
        "background": "gradient",
        "has_music": False,
    }
    assert generator.encoder.stages == ["assemble", "optimize"]
    assert generator.encoder.frames_at_assemble == 20
    assert temp_leftovers(small_config) == []


@pytest.mark.asyncio
async def test_square_ten_seconds_at_thirty_fps(make_generator, small_config, citation, monkeypatch):
    small_config["video"]["fps"] = 30
    small_config["video"]["formats"]["square"] = [1080, 1080]
    monkeypatch.setattr(FrameRenderer, "render", lambda self, progress: Image.new("RGB", (4, 4)))
    generator = make_generator()

    video = await generator.generate_video(citation, VideoOptions(duration=10, format="square"))

    assert generator.encoder.frames_at_assemble == 300
    assert video.metadata["resolution"] == "1080x1080"


@pytest.mark.asyncio
async def test_quality_and_platform_settings_reach_encoder(make_generator, citation):
    generator = make_generator()

    await generator.generate_video(citation, VideoOptions(duration=10, format="tiktok", quality="high"))

    calls = dict(generator.encoder.calls)
    assert calls["assemble"] == {"fps": 2, "preset": "slow", "crf": 18}
    assert calls["optimize"] == {"preset": "fast", "crf": 26, "maxrate": "3M", "bufsize": "6M"}


@pytest.mark.asyncio
async def test_music_placeholder_is_mixed(make_generator, small_config):
    generator = make_generator()
    citation = CitationData(content="Silence is golden.", theme="wisdom")
    options = VideoOptions(duration=10, include_music=True, music_mood="calm", music_volume=0.3)

    video = await generator.generate_video(citation, options)

    assert generator.encoder.stages == ["assemble", "mix_audio", "optimize"]
    mix = dict(generator.encoder.calls)["mix_audio"]
    assert mix["volume"] == 0.3
    assert mix["audio"].name == "5-Serenity.wav"
    assert mix["audio"].exists()
    assert video.metadata["has_music"] is True
    assert video.buffer == b"optimized-muxed.mp4"


@pytest.mark.asyncio
async def test_mood_without_tracks_renders_silent(make_generator, citation):
    generator = make_generator()
    options = VideoOptions(duration=10, include_music=True, music_mood="energetic")

    video = await generator.generate_video(citation, options)

    assert "mix_audio" not in generator.encoder.stages
    assert video.metadata["has_music"] is False


@pytest.mark.asyncio
async def test_mix_failure_is_not_fatal(make_generator, failing_encoder, citation):
    generator = make_generator(encoder=failing_encoder("mix_audio"))
    options = VideoOptions(duration=10, include_music=True, music_mood="motivational")

    video = await generator.generate_video(citation, options)

    assert generator.encoder.stages == ["assemble", "mix_audio", "optimize"]
    assert video.metadata["has_music"] is False
    assert video.buffer == b"optimized-raw.mp4"


@pytest.mark.asyncio
@pytest.mark.parametrize("stage", ["assemble", "optimize"])
async def test_encoder_failure_propagates_and_cleans_up(
    make_generator, failing_encoder, small_config, citation, stage
):
    generator = make_generator(encoder=failing_encoder(stage))

    with pytest.raises(EncodingError) as excinfo:
        await generator.generate_video(citation, VideoOptions(duration=10))

    assert excinfo.value.stage == stage
    assert temp_leftovers(small_config) == []
    assert not generator.output_dir.exists() or list(generator.output_dir.iterdir()) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("options", [
    VideoOptions(duration=5),
    VideoOptions(duration=61),
    VideoOptions(duration=10, format="landscape"),
    VideoOptions(duration=10, music_volume=1.5),
])
async def test_invalid_options_create_nothing(make_generator, small_config, citation, options):
    generator = make_generator()

    with pytest.raises(InputValidationError):
        await generator.generate_video(citation, options)

    assert generator.encoder.calls == []
    assert temp_leftovers(small_config) == []


@pytest.mark.asyncio
async def test_empty_quote_is_rejected(make_generator):
    with pytest.raises(InputValidationError):
        await make_generator().generate_video(CitationData(content="  ", theme="life"))


@pytest.mark.asyncio
async def test_consecutive_videos_get_distinct_files(make_generator, citation):
    generator = make_generator()

    first = await generator.generate_video(citation, VideoOptions(duration=10))
    second = await generator.generate_video(citation, VideoOptions(duration=10))

    assert first.path != second.path
    assert first.path.exists() and second.path.exists()


@pytest.mark.asyncio
async def test_slideshow_metadata(make_generator, citation, image_files):
    generator = make_generator()
    options = VideoOptions(duration=10, background="slideshow", background_images=image_files)

    video = await generator.generate_video(citation, options)

    assert video.metadata["background"] == "slideshow"


@pytest.mark.asyncio
async def test_variations_skip_failures(make_generator, citation):
    generator = make_generator()
    options_list = [
        VideoOptions(duration=10, format="instagram"),
        VideoOptions(duration=3, format="square"),
        VideoOptions(duration=10, format="tiktok", animation="typewriter"),
    ]

    videos = await generator.generate_variations(citation, options_list)

    assert [v.metadata["format"] for v in videos] == ["instagram", "tiktok"]


@pytest.mark.asyncio
async def test_default_variations(make_generator, citation):
    generator = make_generator()
    for options in DEFAULT_VARIATIONS:
        assert options.duration == 30

    videos = await generator.generate_variations(citation)

    assert [(v.metadata["format"], v.metadata["animation"]) for v in videos] == [
        ("instagram", "fade-in"),
        ("square", "slide-in"),
        ("tiktok", "typewriter"),
    ]
    assert {v.metadata["duration"] for v in videos} == {12}


def test_safe_theme():
    assert safe_theme("self care/2") == "self-care-2"


@pytest.mark.asyncio
async def test_slow_image_lookup_does_not_block_other_requests(make_generator, citation):
    def slow_provider(theme, width, height):
        time.sleep(0.5)
        return None

    generator = make_generator(image_provider=slow_provider)
    options = VideoOptions(duration=10, background="image")
    gaps = []

    async def ticker(stop):
        last = time.monotonic()
        while not stop.is_set():
            await asyncio.sleep(0.02)
            now = time.monotonic()
            gaps.append(now - last)
            last = now

    stop = asyncio.Event()
    tick = asyncio.create_task(ticker(stop))
    first, second = await asyncio.gather(
        generator.generate_video(citation, options),
        generator.generate_video(citation, options),
    )
    stop.set()
    await tick

    assert max(gaps) < 0.4
    assert first.path != second.path
    assert first.path.exists() and second.path.exists()


@pytest.mark.asyncio
async def test_missing_options_use_configured_default_duration(make_generator, citation):
    generator = make_generator()

    video = await generator.generate_video(citation)

    assert video.metadata["duration"] == 12
    assert generator.encoder.frames_at_assemble == 24


@pytest.mark.asyncio
async def test_malformed_variation_is_counted_not_fatal(make_generator, citation):
    generator = make_generator()

    videos = await generator.generate_variations(
        citation, [None, {"format": "square"}, VideoOptions(duration=10, format="square")]
    )

    assert [v.metadata["format"] for v in videos] == ["square"]
