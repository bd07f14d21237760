from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import pytest
from pydub import AudioSegment
from pydub.generators import Sine

from scenecast.errors import AssemblyError
from scenecast.media.exceptions import CommandExecutionError
from scenecast.project import BackgroundAudio
from scenecast.timing import TimingPlan, VoiceoverTrack
from scenecast.video import AssemblyScene, EncodedSegment, FFmpegAssembler, Transition, TransitionType
from scenecast.video.assembly import build_video_filter


class _RecordingRunner:
    def __init__(self, *, fail: bool = False) -> None:
        self.calls: List[List[str]] = []
        self.timeouts: List[object] = []
        self.mix_existed: List[bool] = []
        self._fail = fail

    def __call__(self, command, *, timeout=None, **kwargs):  # noqa: ANN001
        command = list(command)
        self.calls.append(command)
        self.timeouts.append(timeout)
        mix = next(part for part in command if part.endswith(".mix.wav"))
        self.mix_existed.append(Path(mix).is_file())
        if self._fail:
            raise CommandExecutionError(command, returncode=1, stderr="Invalid filtergraph")
        Path(command[-1]).write_bytes(b"mp4")
        return None


def _scene(tmp_path: Path, index: int, duration: float, **kwargs) -> AssemblyScene:
    path = tmp_path / f"scene-{index}.mp4"
    path.write_bytes(b"segment")
    segment = EncodedSegment(
        scene_index=index,
        format_name="landscape",
        path=path,
        duration_seconds=duration,
        frame_count=int(duration * 30),
    )
    return AssemblyScene(
        scene_index=index,
        plan=TimingPlan(duration_seconds=duration, voiceover=kwargs.pop("voiceover", None)),
        segment=segment,
        **kwargs,
    )


def _assembler(runner: _RecordingRunner, loader=None) -> FFmpegAssembler:  # noqa: ANN001
    kwargs = {"audio_loader": loader} if loader is not None else {}
    return FFmpegAssembler(timeout=60.0, command_runner=runner, **kwargs)


def test_filter_graph_chains_xfade_and_concat() -> None:
    graph = build_video_filter(
        [4.0, 6.0, 3.0],
        [Transition(TransitionType.FADE, 0.5), None],
    )

    assert graph == (
        "[0:v][1:v]xfade=transition=fade:duration=0.500:offset=3.500[v1];"
        "[v1][2:v]concat=n=2:v=1:a=0[vout]"
    )


def test_assembles_scenes_in_declared_order(tmp_path: Path) -> None:
    runner = _RecordingRunner()
    scenes = [_scene(tmp_path, 1, 6.0), _scene(tmp_path, 0, 4.0)]
    destination = tmp_path / "out" / "demo-landscape.mp4"

    output = _assembler(runner).assemble(
        "landscape",
        scenes,
        [Transition(TransitionType.DISSOLVE, 0.5)],
        destination,
        fps=30,
    )

    command = runner.calls[0]
    inputs = [command[i + 1] for i, part in enumerate(command) if part == "-i"]
    assert inputs[:2] == [str(tmp_path / "scene-0.mp4"), str(tmp_path / "scene-1.mp4")]
    assert inputs[2].endswith("demo-landscape.mix.wav")
    assert command[command.index("-t") + 1] == "9.500"
    assert "xfade=transition=dissolve" in command[command.index("-filter_complex") + 1]
    assert output.duration_seconds == pytest.approx(9.5)
    assert output.scene_offsets == pytest.approx((0.0, 3.5))
    assert output.path == destination
    assert runner.timeouts == [60.0]
    assert runner.mix_existed == [True]
    assert not (tmp_path / "out" / "demo-landscape.mix.wav").exists()


def test_hard_cuts_sum_scene_durations(tmp_path: Path) -> None:
    runner = _RecordingRunner()
    scenes = [_scene(tmp_path, 0, 4.0), _scene(tmp_path, 1, 6.0)]

    output = _assembler(runner).assemble("landscape", scenes, [None], tmp_path / "o.mp4", fps=30)

    assert output.duration_seconds == pytest.approx(10.0)
    assert "concat=n=2" in runner.calls[0][runner.calls[0].index("-filter_complex") + 1]


def test_single_scene_copies_the_video_stream(tmp_path: Path) -> None:
    runner = _RecordingRunner()

    _assembler(runner).assemble("landscape", [_scene(tmp_path, 0, 2.0)], [], tmp_path / "o.mp4", fps=30)

    command = runner.calls[0]
    assert command[command.index("-c:v") + 1] == "copy"
    assert "-filter_complex" not in command


def test_missing_segment_is_an_assembly_error(tmp_path: Path) -> None:
    scene = AssemblyScene(scene_index=0, plan=TimingPlan(duration_seconds=1.0), segment=None)

    with pytest.raises(AssemblyError, match="missing segments"):
        _assembler(_RecordingRunner()).assemble("landscape", [scene], [], tmp_path / "o.mp4", fps=30)


def test_deleted_segment_file_is_an_assembly_error(tmp_path: Path) -> None:
    scene = _scene(tmp_path, 0, 1.0)
    scene.segment.path.unlink()

    with pytest.raises(AssemblyError, match="not found"):
        _assembler(_RecordingRunner()).assemble("landscape", [scene], [], tmp_path / "o.mp4", fps=30)


def test_transition_longer_than_a_scene_is_rejected(tmp_path: Path) -> None:
    scenes = [_scene(tmp_path, 0, 1.0), _scene(tmp_path, 1, 4.0)]

    with pytest.raises(AssemblyError, match="not shorter"):
        _assembler(_RecordingRunner()).assemble(
            "landscape", scenes, [Transition(TransitionType.FADE, 1.0)], tmp_path / "o.mp4", fps=30
        )


def test_transition_count_must_match_boundaries(tmp_path: Path) -> None:
    scenes = [_scene(tmp_path, 0, 1.0), _scene(tmp_path, 1, 1.0)]

    with pytest.raises(AssemblyError, match="one transition per scene boundary"):
        _assembler(_RecordingRunner()).assemble("landscape", scenes, [], tmp_path / "o.mp4", fps=30)


def test_ffmpeg_failure_is_an_assembly_error(tmp_path: Path) -> None:
    runner = _RecordingRunner(fail=True)

    with pytest.raises(AssemblyError, match="Invalid filtergraph") as excinfo:
        _assembler(runner).assemble("square", [_scene(tmp_path, 0, 1.0)], [], tmp_path / "o.mp4", fps=30)

    assert excinfo.value.format_name == "square"
    assert not (tmp_path / "o.mix.wav").exists()


def test_audio_is_placed_at_scene_offsets(tmp_path: Path) -> None:
    tone = Sine(440).to_audio_segment(duration=1000)
    sources: Dict[str, AudioSegment] = {
        str(tmp_path / "voice.wav"): tone,
        str(tmp_path / "bed.wav"): tone,
    }
    captured: List[AudioSegment] = []

    class _CapturingRunner(_RecordingRunner):
        def __call__(self, command, *, timeout=None, **kwargs):  # noqa: ANN001
            mix = next(part for part in command if part.endswith(".mix.wav"))
            captured.append(AudioSegment.from_wav(mix))
            return super().__call__(command, timeout=timeout, **kwargs)

    scenes = [
        _scene(tmp_path, 0, 2.0),
        _scene(
            tmp_path,
            1,
            3.0,
            voiceover=VoiceoverTrack(tmp_path / "voice.wav", 1.0, offset_seconds=0.5),
            background=BackgroundAudio(tmp_path / "bed.wav", volume=0.0),
        ),
    ]

    _assembler(_CapturingRunner(), loader=lambda path: sources[path]).assemble(
        "landscape", scenes, [Transition(TransitionType.FADE, 0.5)], tmp_path / "o.mp4", fps=30
    )

    mix = captured[0]
    assert len(mix) == 4500
    assert mix.channels == 2
    # scene 1 starts at 1.5s; its narration is delayed by another 0.5s
    assert mix[:1900].max == 0
    assert mix[2100:2900].max > 0
    assert mix[3100:].max == 0
