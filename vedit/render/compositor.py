"""Composition compiler: one render interval -> one FFmpeg command.

Graph layout for a content interval (labels in brackets):

    color source                                   [base]
    visual elements, one at a time in layer order:
      video i: trim -> setpts -> filters -> scale  [v{n}]  overlay onto running composite
      text  i: drawtext on running composite
      image i: trim -> setpts -> size -> filters   [v{n}]  overlay onto running composite
    running composite -> format                    [vout]
    audio  i: atrim -> asetpts -> adelay -> volume [a{k}]  amix -> apad [aout]

Every overlay is gated with ``enable='between(t,a,b)'`` to the part of the
interval where its segment is active. Higher layers are drawn over lower
layers whatever their kind.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from vedit.config import Settings, get_settings
from vedit.exceptions import MissingSourceAssetError
from vedit.render.planner import RenderInterval
from vedit.render.text_renderer import build_drawtext, resolve_font
from vedit.schemas.timeline import AudioSegment, ImageSegment, MediaSegment, TextSegment
from vedit.utils.ffmpeg_expr import between, fmt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputProfile:
    """Codec/quality profile shared by every interval and by the final concat."""

    fps: int = 30
    video_codec: str = "libx264"
    preset: str = "medium"
    crf: int = 18
    pix_fmt: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"
    audio_sample_rate: int = 48000
    audio_channels: int = 2
    background_color: str = "black"
    pad_silent_audio: bool = True

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "OutputProfile":
        settings = settings or get_settings()
        return cls(
            fps=settings.render_fps,
            video_codec=settings.render_video_codec,
            preset=settings.render_preset,
            crf=settings.render_crf,
            pix_fmt=settings.render_pix_fmt,
            audio_codec=settings.render_audio_codec,
            audio_bitrate=settings.render_audio_bitrate,
            audio_sample_rate=settings.render_audio_sample_rate,
            audio_channels=settings.render_audio_channels,
            background_color=settings.render_background_color,
            pad_silent_audio=settings.render_pad_silent_audio,
        )

    def video_args(self) -> list[str]:
        return [
            "-c:v", self.video_codec,
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", self.pix_fmt,
            "-r", str(self.fps),
        ]

    def audio_args(self) -> list[str]:
        return [
            "-c:a", self.audio_codec,
            "-b:a", self.audio_bitrate,
            "-ar", str(self.audio_sample_rate),
            "-ac", str(self.audio_channels),
        ]


@dataclass(frozen=True)
class EngineInput:
    path: str
    options: tuple[str, ...] = ()  # Input options placed before -i (e.g. -loop 1)

    def args(self) -> list[str]:
        return [*self.options, "-i", self.path]


@dataclass
class EngineCommand:
    """Everything FFmpeg needs to render one interval."""

    inputs: list[EngineInput]
    filter_complex: str
    duration: float
    video_label: str = "vout"
    audio_label: str | None = None
    interval_index: int | None = None
    skipped: list[str] = field(default_factory=list)  # Segment ids dropped for missing sources

    def to_args(self, ffmpeg_path: str, output_path: str, profile: OutputProfile) -> list[str]:
        args = [ffmpeg_path, "-y", "-hide_banner"]
        for item in self.inputs:
            args.extend(item.args())
        args.extend(["-filter_complex", self.filter_complex])
        args.extend(["-map", f"[{self.video_label}]"])
        if self.audio_label:
            args.extend(["-map", f"[{self.audio_label}]"])
        args.extend(profile.video_args())
        if self.audio_label:
            args.extend(profile.audio_args())
        else:
            args.append("-an")
        args.extend(["-t", fmt(self.duration), output_path])
        return args


class CompositionCompiler:
    """Compile render intervals into FFmpeg filter graphs."""

    def __init__(
        self,
        width: int,
        height: int,
        profile: OutputProfile | None = None,
        resolve_asset: Callable[[str], Path | None] | None = None,
        resolve_font: Callable[[str | None], str] = resolve_font,
    ) -> None:
        self.width = width
        self.height = height
        self.profile = profile or OutputProfile.from_settings()
        self.resolve_asset = resolve_asset or (lambda p: Path(p) if Path(p).is_file() else None)
        self.resolve_font = resolve_font

    def _base(self, duration: float) -> str:
        return (
            f"color=c={self.profile.background_color}:s={self.width}x{self.height}"
            f":r={self.profile.fps}:d={fmt(duration)}"
        )

    def _silence(self, duration: float) -> str:
        return f"anullsrc=r={self.profile.audio_sample_rate}:cl=stereo,atrim=duration={fmt(duration)}[aout]"

    def _source(self, segment, interval: RenderInterval, skipped: list[str]) -> str | None:
        path = self.resolve_asset(segment.source_path)
        if path is None:
            logger.warning(
                f"[COMPILE] Interval {interval.index}: source missing for {segment.kind} "
                f"{segment.id} ({segment.source_path}), skipping"
            )
            skipped.append(segment.id)
            return None
        return str(path)

    @staticmethod
    def _trim_window(segment: MediaSegment, interval: RenderInterval) -> tuple[float, float]:
        """Source-relative [start, end) of ``segment`` that plays inside ``interval``."""
        visible_start, visible_end = interval.visible_range(segment)
        limit = segment.source_duration if segment.source_duration is not None else float("inf")

        start = segment.source_start_time + max(0.0, interval.start - segment.timeline_start_time)
        start = min(max(start, 0.0), limit)
        end = min(segment.source_end_time, start + (visible_end - visible_start), limit)
        return start, end

    def compile_interval(self, interval: RenderInterval) -> EngineCommand:
        """Build the FFmpeg command for one interval.

        Raises:
            MissingSourceAssetError: If missing sources leave a content interval with nothing to draw
        """
        duration = interval.duration

        if interval.is_background:
            graph = [f"{self._base(duration)},format={self.profile.pix_fmt}[vout]"]
            audio_label = None
            if self.profile.pad_silent_audio:
                graph.append(self._silence(duration))
                audio_label = "aout"
            return EngineCommand(
                inputs=[],
                filter_complex=";".join(graph),
                duration=duration,
                audio_label=audio_label,
                interval_index=interval.index,
            )

        inputs: list[EngineInput] = []
        graph = [f"{self._base(duration)}[base]"]
        audio_chains: list[str] = []
        skipped: list[str] = []
        last = "base"
        n = 0

        def overlay(label: str, segment, visible: tuple[float, float]) -> None:
            nonlocal last, n
            x = segment.position_x or 0
            y = segment.position_y or 0
            graph.append(
                f"[{last}][{label}]overlay=(W-w)/2+{x}:(H-h)/2+{y}:enable='{between(*visible)}'[ov{n}]"
            )
            last = f"ov{n}"
            n += 1

        def add_audio(idx: int, segment: MediaSegment, window: tuple[float, float], visible_start: float) -> None:
            chain = [f"atrim=start={fmt(window[0])}:end={fmt(window[1])}", "asetpts=PTS-STARTPTS"]
            if visible_start > 0:
                delay_ms = round(visible_start * 1000)
                chain.append(f"adelay=delays={delay_ms}:all=1")
            if isinstance(segment, AudioSegment) and segment.volume != 1.0:
                chain.append(f"volume={fmt(segment.volume)}")
            audio_chains.append(f"[{idx}:a]{','.join(chain)}[a{len(audio_chains)}]")

        # Visual elements, layer-ascending (painter's order)
        drawn = 0
        for segment in interval.elements:
            if isinstance(segment, AudioSegment):
                continue

            if isinstance(segment, TextSegment):
                font_file = self.resolve_font(segment.font_family)
                drawtext = build_drawtext(
                    segment,
                    font_file=font_file,
                    offset=interval.start - segment.timeline_start_time,
                    visible=interval.visible_range(segment),
                )
                graph.append(f"[{last}]{drawtext}[ov{n}]")
                last = f"ov{n}"
                n += 1
                drawn += 1
                continue

            path = self._source(segment, interval, skipped)
            if path is None:
                continue
            visible = interval.visible_range(segment)

            if isinstance(segment, ImageSegment):
                idx = len(inputs)
                inputs.append(EngineInput(path, ("-loop", "1", "-t", fmt(duration))))

                chain = [f"trim=duration={fmt(visible[1] - visible[0])}", "setpts=PTS-STARTPTS"]
                if visible[0] > 0:
                    chain.append(f"setpts=PTS+{fmt(visible[0])}/TB")
                chain.append(self._image_size(segment))
                chain.extend(segment.filter_chain())
            else:
                start, end = self._trim_window(segment, interval)
                if end <= start:
                    logger.warning(f"[COMPILE] Interval {interval.index}: {segment.id} has no source left, skipping")
                    skipped.append(segment.id)
                    continue
                idx = len(inputs)
                inputs.append(EngineInput(path))

                chain = [f"trim=start={fmt(start)}:end={fmt(end)}", "setpts=PTS-STARTPTS"]
                if visible[0] > 0:
                    chain.append(f"setpts=PTS+{fmt(visible[0])}/TB")
                chain.extend(segment.filter_chain())
                scale = segment.scale if segment.scale is not None else 1.0
                chain.append(f"scale=iw*{fmt(scale)}:ih*{fmt(scale)}")
                if segment.has_audio:
                    add_audio(idx, segment, (start, end), visible[0])

            opacity = segment.opacity if segment.opacity is not None else 1.0
            if opacity < 1.0:
                chain.append(f"format=rgba,colorchannelmixer=aa={fmt(opacity)}")

            label = f"v{n}"
            graph.append(f"[{idx}:v]{','.join(chain)}[{label}]")
            overlay(label, segment, visible)
            drawn += 1

        # Audio segments
        for segment in interval.audios:
            path = self._source(segment, interval, skipped)
            if path is None:
                continue
            start, end = self._trim_window(segment, interval)
            if end <= start:
                skipped.append(segment.id)
                continue
            idx = len(inputs)
            inputs.append(EngineInput(path))
            add_audio(idx, segment, (start, end), interval.visible_range(segment)[0])

        has_visuals = len(interval.audios) < len(interval.elements)
        if (has_visuals and drawn == 0) or len(skipped) == len(interval.elements):
            first = next(e for e in interval.elements if e.id == skipped[0])
            raise MissingSourceAssetError(
                first.source_path,
                segment_id=first.id,
                interval_index=interval.index,
            )

        graph.append(f"[{last}]format={self.profile.pix_fmt}[vout]")

        audio_label = None
        if audio_chains:
            graph.extend(audio_chains)
            mix_inputs = "".join(f"[a{k}]" for k in range(len(audio_chains)))
            graph.append(f"{mix_inputs}amix=inputs={len(audio_chains)}:duration=longest:normalize=0,apad[aout]")
            audio_label = "aout"
        elif self.profile.pad_silent_audio:
            graph.append(self._silence(duration))
            audio_label = "aout"

        filter_complex = ";".join(graph)
        logger.debug(f"[COMPILE] Interval {interval.index} filter_complex: {filter_complex}")

        return EngineCommand(
            inputs=inputs,
            filter_complex=filter_complex,
            duration=duration,
            audio_label=audio_label,
            interval_index=interval.index,
            skipped=skipped,
        )

    @staticmethod
    def _image_size(segment: ImageSegment) -> str:
        """Sizing policy: exact custom size, aspect-locked fit, or intrinsic size x scale."""
        cw, ch = segment.custom_width, segment.custom_height
        keep = segment.maintain_aspect_ratio

        if cw and ch:
            if keep:
                return f"scale={cw}:{ch}:force_original_aspect_ratio=decrease"
            return f"scale={cw}:{ch}"
        if cw:
            return f"scale={cw}:-1" if keep else f"scale={cw}:{segment.height}"
        if ch:
            return f"scale=-1:{ch}" if keep else f"scale={segment.width}:{ch}"

        scale = segment.scale if segment.scale is not None else 1.0
        width = max(1, round(segment.width * scale))
        height = max(1, round(segment.height * scale))
        return f"scale={width}:{height}"
