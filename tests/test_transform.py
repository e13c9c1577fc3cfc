"""Tests for the per-scene clip transform (trim → frame → text).

Uses moviepy for probing outputs (imageio_ffmpeg does NOT bundle ffprobe).
"""

import pytest
from moviepy import VideoFileClip

from reelkit.errors import MediaDecodeError
from reelkit.styles import StyleRole, TextStyle, style_for
from reelkit.template import Scene, TrimData
from reelkit.transform import ClipTransformStage, caption_for, needs_trim
from reelkit.workspace import RenderWorkspace


def _probe(path):
    with VideoFileClip(str(path)) as clip:
        return clip.duration, tuple(clip.size), clip.fps


class TestNeedsTrim:
    def test_no_trim_data(self):
        assert not needs_trim(Scene(id=1, start_time=0, duration=2))

    def test_full_clip_window(self):
        scene = Scene(id=1, start_time=0, duration=2, trim_data=TrimData(0, 2))
        assert not needs_trim(scene)

    def test_offset_window(self):
        scene = Scene(id=1, start_time=0, duration=2, trim_data=TrimData(1, 3))
        assert needs_trim(scene)

    def test_short_window(self):
        scene = Scene(id=1, start_time=0, duration=2, trim_data=TrimData(0, 1.5))
        assert needs_trim(scene)


class TestCaptionFor:
    def test_decorated(self):
        scene = Scene(id=1, start_time=0, duration=2, text_overlay="Top 5",
                      text_style=style_for(StyleRole.HOOK))
        assert caption_for(scene) == "✨ Top 5 ✨"

    def test_blank_is_none(self):
        assert caption_for(Scene(id=1, start_time=0, duration=2, text_overlay="  ")) is None

    def test_missing_is_none(self):
        assert caption_for(Scene(id=1, start_time=0, duration=2)) is None


class TestClipTransformStage:
    def test_frame_normalizes_size_fps_and_duration(self, engine, small_settings, make_video, tmp_path):
        source = make_video("wide.mp4", duration=3, size="320x180")
        scene = Scene(id=11, start_time=0, duration=2)

        with RenderWorkspace(root=tmp_path) as ws:
            out = ClipTransformStage(engine, small_settings).transform(
                ws.write_source(0, source.read_bytes()), scene, ws, 0,
            )
            duration, size, fps = _probe(out)

        assert size == (180, 320)
        assert fps == pytest.approx(10, abs=0.01)
        assert abs(duration - 2) < 0.2

    def test_short_clip_padded_to_scene(self, engine, small_settings, make_video, tmp_path):
        source = make_video("short.mp4", duration=1)
        scene = Scene(id=11, start_time=0, duration=2.5)

        with RenderWorkspace(root=tmp_path) as ws:
            out = ClipTransformStage(engine, small_settings).transform(
                ws.write_source(0, source.read_bytes()), scene, ws, 0,
            )
            duration, _, _ = _probe(out)

        assert abs(duration - 2.5) < 0.2

    def test_trim_window(self, engine, small_settings, source_video, tmp_path):
        scene = Scene(id=11, start_time=0, duration=2, trim_data=TrimData(1, 3))

        with RenderWorkspace(root=tmp_path) as ws:
            out = ClipTransformStage(engine, small_settings).transform(
                ws.write_source(0, source_video.read_bytes()), scene, ws, 0,
            )
            duration, size, _ = _probe(out)
            history = list(ws.history)
            live = [p.name for p in ws.live]

        assert abs(duration - 2) < 0.2
        assert size == (180, 320)
        assert history == ["scene-00-source.mp4", "scene-00-trim.mp4", "scene-00-frame.mp4"]
        # Consumed inputs are released as soon as the next step exists.
        assert live == ["scene-00-frame.mp4"]

    def test_zoom_fills_frame(self, engine, small_settings, make_video, tmp_path):
        source = make_video("red.mp4", duration=1, size="320x180", color="red")
        fit = Scene(id=11, start_time=0, duration=1)
        zoom = Scene(id=12, start_time=0, duration=1,
                     trim_data=TrimData(0, 1, crop_scale=3))
        stage = ClipTransformStage(engine, small_settings)

        with RenderWorkspace(root=tmp_path) as ws:
            fit_out = stage.transform(ws.write_source(0, source.read_bytes()), fit, ws, 0)
            zoom_out = stage.transform(ws.write_source(1, source.read_bytes()), zoom, ws, 1)
            with VideoFileClip(str(fit_out)) as a, VideoFileClip(str(zoom_out)) as b:
                fit_top = a.get_frame(0.5)[5, 90]
                zoom_center = b.get_frame(0.5)[160, 90]

        # Fitted landscape clip is letterboxed: black bar at the top.
        assert fit_top.max() < 40
        # Zoomed into the middle of the frame: red content, no bars.
        assert zoom_center[0] > 150

    def test_caption_step(self, engine, small_settings, make_video, tmp_path):
        source = make_video("black.mp4", duration=1, size="180x320", color="black")
        scene = Scene(id=1, start_time=0, duration=1, text_overlay="Hello",
                      text_style=TextStyle(font_size=30))

        with RenderWorkspace(root=tmp_path) as ws:
            out = ClipTransformStage(engine, small_settings).transform(
                ws.write_source(0, source.read_bytes()), scene, ws, 0,
            )
            assert out.name == "scene-00-text.mp4"
            with VideoFileClip(str(out)) as clip:
                assert clip.get_frame(0.5).max() > 128

    def test_undecodable_source(self, engine, small_settings, tmp_path):
        scene = Scene(id=21, start_time=0, duration=1)
        with RenderWorkspace(root=tmp_path) as ws:
            source = ws.write_source(2, b"\x00not a video\x00" * 64)
            with pytest.raises(MediaDecodeError) as exc_info:
                ClipTransformStage(engine, small_settings).transform(source, scene, ws, 2)

        assert exc_info.value.scene_index == 2
        assert exc_info.value.scene_id == 21
        assert exc_info.value.stage == "frame"
