"""Tests for the render pipeline state machine.

End-to-end renders use real ffmpeg at 180x320; state machine edge cases
swap in a recording transform stage so they run in milliseconds.
"""

import logging
import shutil

import pytest
from moviepy import VideoFileClip

from reelkit.errors import (
    ConcatenationError,
    MediaDecodeError,
    RenderCancelledError,
    RenderInProgressError,
    TransformError,
    ValidationError,
)
from reelkit.pipeline import (
    ClipSource,
    RenderJob,
    RenderPipeline,
    RenderResult,
    RenderState,
)
from reelkit.progress import CancelToken, ProgressChannel, ProgressStage
from reelkit.template import Location, Scene, Template, TrimData
from reelkit.timing import build_template


class RecordingStage:
    """Transform stand-in: copies the source to a frame artifact.

    Optionally cancels a token or raises once a given scene is reached.
    """

    def __init__(self, cancel_after=None, token=None, fail_at=None, error=None):
        self.cancel_after = cancel_after
        self.token = token
        self.fail_at = fail_at
        self.error = error
        self.calls = []
        self.workspace = None

    def transform(self, source, scene, workspace, scene_index):
        self.workspace = workspace
        self.calls.append(scene_index)
        if scene_index == self.fail_at:
            raise self.error
        out = workspace.allocate_step(scene_index, "frame")
        shutil.copyfile(source, out)
        workspace.release(source)
        if scene_index == self.cancel_after:
            self.token.cancel()
        return out


def _single_scene_template(duration=2.0, **scene_kwargs):
    return Template(
        id="tmpl_single",
        locations=[Location(1, "Only", [Scene(id=11, start_time=0, duration=duration, **scene_kwargs)])],
    )


def _filled_five_scene_template(clip_path):
    template = build_template(["a", "b", "c"], 10, template_id="tmpl_five")
    clips = {}
    for location_id, scene_id in template.scene_keys():
        template.bind_clip(location_id, scene_id)
        clips[(location_id, scene_id)] = ClipSource.from_path(clip_path)
    return template, clips


class TestRenderEndToEnd:
    def test_single_scene_render(self, engine, small_settings, make_video):
        clip = make_video("two.mp4", duration=2, size="180x320")
        template = _single_scene_template(2.0)
        template.bind_clip(1, 11)
        job = RenderJob(template=template, clips={(1, 11): ClipSource.from_path(clip, duration=2)})
        channel = ProgressChannel()

        result = RenderPipeline(engine, small_settings).run(job, progress=channel)

        assert job.state is RenderState.COMPLETE
        assert result.content_type == "video/mp4"
        assert result.filename == "tmpl_single.mp4"
        assert abs(result.duration - 2) < 0.2
        assert result.data

        events = channel.drain()
        assert events[-1].stage is ProgressStage.COMPLETE
        assert events[-1].percent == 100
        percents = [e.percent for e in events]
        assert percents == sorted(percents)
        assert [e.stage for e in events] == [
            ProgressStage.INITIALIZING,
            ProgressStage.PROCESSING,
            ProgressStage.CONCATENATING,
            ProgressStage.COMPLETE,
        ]

    def test_multi_scene_render(self, engine, small_settings, make_video, tmp_path):
        red = make_video("red.mp4", duration=3, size="320x180", color="red")
        blue = make_video("blue.mp4", duration=3, size="180x320", color="blue")
        template = Template(
            id="tmpl_multi",
            locations=[
                Location(0, "Intro", [Scene(id=1, start_time=0, duration=1, text_overlay="Hi")]),
                Location(1, "Spot", [Scene(id=11, start_time=1, duration=1.5)]),
            ],
        )
        template.bind_clip(0, 1, trim_data=TrimData(0.5, 1.5, crop_scale=2))
        template.bind_clip(1, 11)
        clips = {(0, 1): ClipSource.from_path(red), (1, 11): ClipSource.from_path(blue)}
        channel = ProgressChannel()

        result = RenderPipeline(engine, small_settings).render(template, clips, progress=channel)
        saved = result.save(tmp_path)

        assert saved == tmp_path / "tmpl_multi.mp4"
        with VideoFileClip(str(saved)) as video:
            assert tuple(video.size) == (180, 320)
            assert abs(video.duration - 2.5) < 0.3

        processing = [e for e in channel.drain() if e.stage is ProgressStage.PROCESSING]
        assert [(e.current_clip, e.total_clips, e.percent) for e in processing] == [
            (1, 2, 35), (2, 2, 70),
        ]


class TestInitialization:
    def test_unfilled_scene_fails_before_transform(self, engine, small_settings):
        stage = RecordingStage()
        job = RenderJob(template=_single_scene_template())
        channel = ProgressChannel()

        with pytest.raises(ValidationError, match="no clip yet"):
            RenderPipeline(engine, small_settings, stage=stage).run(job, progress=channel)

        assert job.state is RenderState.FAILED
        assert isinstance(job.failure, ValidationError)
        assert stage.calls == []
        stages = [e.stage for e in channel.drain()]
        assert ProgressStage.PROCESSING not in stages
        assert stages[-1] is ProgressStage.FAILED

    def test_filled_without_clip(self, engine, small_settings):
        template = _single_scene_template()
        template.bind_clip(1, 11)
        with pytest.raises(ValidationError, match="no clip was supplied"):
            RenderPipeline(engine, small_settings).render(template, {})

    def test_carousel_rejected(self, engine, small_settings):
        template = Template(id="c", type="carousel")
        with pytest.raises(ValidationError, match="carousel"):
            RenderPipeline(engine, small_settings).render(template, {})

    def test_empty_template(self, engine, small_settings):
        with pytest.raises(ConcatenationError, match="no scenes"):
            RenderPipeline(engine, small_settings).render(Template(id="empty"), {})

    def test_undecodable_clip(self, engine, small_settings):
        template = _single_scene_template()
        template.bind_clip(1, 11)
        clips = {(1, 11): ClipSource(data=b"definitely not mp4" * 64)}
        with pytest.raises(MediaDecodeError) as exc_info:
            RenderPipeline(engine, small_settings).render(template, clips)
        assert exc_info.value.scene_index == 0
        assert exc_info.value.scene_id == 11

    def test_trim_past_clip_end(self, engine, small_settings, make_video):
        clip = make_video("short.mp4", duration=2)
        template = _single_scene_template(2.0)
        template.bind_clip(1, 11, trim_data=TrimData(1, 4))
        with pytest.raises(ValidationError, match="past the clip's end"):
            RenderPipeline(engine, small_settings).render(
                template, {(1, 11): ClipSource.from_path(clip)},
            )

    def test_reported_duration_mismatch_warns(self, engine, small_settings, make_video, caplog):
        clip = make_video("two.mp4", duration=2)
        template = _single_scene_template(1.0)
        template.bind_clip(1, 11)
        stage = RecordingStage()

        with caplog.at_level(logging.WARNING, logger="reelkit.pipeline"):
            RenderPipeline(engine, small_settings, stage=stage).render(
                template, {(1, 11): ClipSource.from_path(clip, duration=9)},
            )
        assert "using probed" in caplog.text

    def test_overlapping_render_rejected(self, engine, small_settings):
        template = _single_scene_template()
        job = RenderJob(template=template)
        with engine.claim(template.id):
            with pytest.raises(RenderInProgressError):
                RenderPipeline(engine, small_settings).run(job)
        assert job.state is RenderState.FAILED


class TestTransformingAndCancellation:
    def test_cancel_after_second_scene(self, engine, small_settings, make_video):
        template, clips = _filled_five_scene_template(make_video("a.mp4", duration=3))
        token = CancelToken()
        stage = RecordingStage(cancel_after=1, token=token)
        channel = ProgressChannel()
        job = RenderJob(template=template, clips=clips)

        with pytest.raises(RenderCancelledError) as exc_info:
            RenderPipeline(engine, small_settings, stage=stage).run(job, channel, token)

        assert stage.calls == [0, 1]
        assert exc_info.value.scene_index == 2
        assert job.state is RenderState.FAILED
        later = [n for n in stage.workspace.history if n.startswith(("scene-02", "scene-03", "scene-04"))]
        assert later == []
        assert not stage.workspace.is_open

        events = channel.drain()
        assert [e.current_clip for e in events if e.stage is ProgressStage.PROCESSING] == [1, 2]
        assert events[-1].stage is ProgressStage.FAILED

    def test_cancel_before_start(self, engine, small_settings, make_video):
        template, clips = _filled_five_scene_template(make_video("a.mp4", duration=3))
        token = CancelToken()
        token.cancel()
        stage = RecordingStage()
        with pytest.raises(RenderCancelledError):
            RenderPipeline(engine, small_settings, stage=stage).render(template, clips, cancel=token)
        assert stage.calls == []

    def test_transform_error_propagates(self, engine, small_settings, make_video, tmp_path):
        scratch = tmp_path / "scratch"
        scratch.mkdir()
        template, clips = _filled_five_scene_template(make_video("a.mp4", duration=3))
        error = TransformError("frame failed", scene_index=1, scene_id=21, stage="frame")
        stage = RecordingStage(fail_at=1, error=error)
        channel = ProgressChannel()
        job = RenderJob(template=template, clips=clips)

        pipeline = RenderPipeline(engine, small_settings, stage=stage, workspace_root=scratch)
        with pytest.raises(TransformError):
            pipeline.run(job, channel)

        assert job.failure is error
        assert list(scratch.iterdir()) == []
        failed = channel.drain()[-1]
        assert failed.stage is ProgressStage.FAILED
        assert failed.current_clip == 2

    def test_unexpected_os_error_wrapped(self, engine, small_settings, make_video):
        template, clips = _filled_five_scene_template(make_video("a.mp4", duration=3))
        stage = RecordingStage(fail_at=0, error=OSError("disk full"))
        with pytest.raises(TransformError, match="disk full"):
            RenderPipeline(engine, small_settings, stage=stage).render(template, clips)

    def test_caption_value_error_wrapped(self, engine, small_settings, make_video):
        from reelkit.transform import ClipTransformStage

        class BrokenCaptionStage(ClipTransformStage):
            def caption(self, source, text, style, output):
                raise ValueError("Invalid hex color: '#white'")

        clip = make_video("one.mp4", duration=1, size="180x320")
        template = _single_scene_template(1.0, text_overlay="Hello")
        template.bind_clip(1, 11)
        job = RenderJob(template=template, clips={(1, 11): ClipSource.from_path(clip)})
        channel = ProgressChannel()
        stage = BrokenCaptionStage(engine, small_settings)

        with pytest.raises(TransformError, match="Invalid hex color") as exc_info:
            RenderPipeline(engine, small_settings, stage=stage).run(job, channel)

        assert exc_info.value.stage == "text"
        assert exc_info.value.scene_index == 0
        assert job.state is RenderState.FAILED
        assert job.failure is exc_info.value
        assert channel.drain()[-1].stage is ProgressStage.FAILED

    def test_shadow_none_renders(self, engine, small_settings, make_video):
        from reelkit.styles import TextStyle

        clip = make_video("one.mp4", duration=1, size="180x320")
        template = _single_scene_template(
            1.0, text_overlay="Hello", text_style=TextStyle(text_shadow="none"),
        )
        template.bind_clip(1, 11)
        job = RenderJob(template=template, clips={(1, 11): ClipSource.from_path(clip)})

        result = RenderPipeline(engine, small_settings).run(job)
        assert job.state is RenderState.COMPLETE
        assert result.data

    def test_percent_monotonic_across_scenes(self, engine, small_settings, make_video):
        template, clips = _filled_five_scene_template(make_video("a.mp4", duration=3))
        channel = ProgressChannel()
        RenderPipeline(engine, small_settings, stage=RecordingStage()).render(
            template, clips, progress=channel,
        )
        percents = [e.percent for e in channel.drain()]
        assert percents == [0, 14, 28, 42, 56, 70, 75, 100]


class TestRenderJob:
    def test_illegal_transition(self):
        job = RenderJob(template=_single_scene_template())
        with pytest.raises(RuntimeError, match="Illegal render transition"):
            job.transition(RenderState.COMPLETE)

    def test_advance_never_goes_back(self):
        job = RenderJob(template=_single_scene_template())
        assert job.advance(40) == 40
        assert job.advance(10) == 40
        assert job.advance(150) == 100

    def test_job_runs_once(self, engine, small_settings):
        job = RenderJob(template=_single_scene_template())
        with pytest.raises(ValidationError):
            RenderPipeline(engine, small_settings).run(job)
        with pytest.raises(RuntimeError, match="already ran"):
            RenderPipeline(engine, small_settings).run(job)


class TestResultAndSource:
    def test_clip_source_from_path(self, tmp_path):
        path = tmp_path / "x.mp4"
        path.write_bytes(b"abc")
        source = ClipSource.from_path(path, duration=1.5)
        assert source.data == b"abc"
        assert source.name == "x.mp4"
        assert source.duration == 1.5

    def test_result_save_to_file(self, tmp_path):
        result = RenderResult(data=b"mp4", content_type="video/mp4", duration=1, filename="t.mp4")
        saved = result.save(tmp_path / "out" / "final.mp4")
        assert saved.read_bytes() == b"mp4"
