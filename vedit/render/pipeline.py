"""Render orchestration: plan -> compile -> run intervals -> concatenate.

Intervals are rendered concurrently (bounded by ``render_max_workers``) into a
private work directory and stitched back together in interval order. A
timeline with a single interval is copied straight to the output.
"""

import asyncio
import logging
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

from vedit.config import get_settings
from vedit.exceptions import EmptyTimelineExportError
from vedit.render.compositor import CompositionCompiler, EngineCommand, OutputProfile
from vedit.render.engine import FFmpegRunner
from vedit.render.planner import plan_render
from vedit.render.text_renderer import resolve_font
from vedit.schemas.timeline import Timeline
from vedit.services.storage_service import AssetResolver

logger = logging.getLogger(__name__)


class RenderPipeline:
    """Render a timeline snapshot to a single output file."""

    def __init__(
        self,
        assets: AssetResolver | None = None,
        runner: FFmpegRunner | None = None,
        profile: OutputProfile | None = None,
        *,
        max_workers: int | None = None,
        work_dir_root: str | None = None,
        font_resolver: Callable[[str | None], str] = resolve_font,
    ) -> None:
        settings = get_settings()
        self.assets = assets
        self.runner = runner or FFmpegRunner()
        self.profile = profile or OutputProfile.from_settings(settings)
        self.max_workers = max(1, max_workers or settings.render_max_workers)
        self.work_dir_root = work_dir_root or settings.render_work_dir
        self.font_resolver = font_resolver
        self.ffmpeg_path = settings.ffmpeg_path
        self.default_width = settings.render_output_width
        self.default_height = settings.render_output_height
        self._progress_callback: Any = None

    def set_progress_callback(self, callback: Any) -> None:
        """Set callback for progress updates: ``callback(percent, stage)``."""
        self._progress_callback = callback

    def _update_progress(self, progress: int, stage: str) -> None:
        if self._progress_callback:
            self._progress_callback(progress, stage)

    def compile(self, timeline: Timeline) -> list[EngineCommand]:
        """Plan and compile every interval without running anything.

        Raises:
            EmptyTimelineExportError: If there is no video, image or text segment
            MissingSourceAssetError: If an interval is left with nothing to draw
        """
        if not timeline.has_visual_content():
            raise EmptyTimelineExportError()

        compiler = CompositionCompiler(
            timeline.canvas_width or self.default_width,
            timeline.canvas_height or self.default_height,
            self.profile,
            resolve_asset=self.assets.resolve if self.assets else None,
            resolve_font=self.font_resolver,
        )
        return [compiler.compile_interval(interval) for interval in plan_render(timeline)]

    async def render(self, timeline: Timeline, output_path: str) -> str:
        """
        Execute the full render pipeline.

        Args:
            timeline: Timeline snapshot (not mutated)
            output_path: Final output file

        Returns:
            output_path
        """
        self._update_progress(0, "Planning")
        commands = self.compile(timeline)
        logger.info(f"[RENDER] Rendering {len(commands)} interval(s) -> {output_path}")

        Path(self.work_dir_root).mkdir(parents=True, exist_ok=True)
        work_dir = tempfile.mkdtemp(prefix="vedit_render_", dir=self.work_dir_root)
        try:
            parts = await self._render_intervals(commands, work_dir)
            self._update_progress(90, "Concatenating")
            await self._concatenate(parts, commands, output_path, work_dir)
        except asyncio.CancelledError:
            logger.info(f"[RENDER] Render cancelled, discarding {work_dir}")
            self._cleanup(work_dir)
            raise
        except Exception:
            logger.error(f"[RENDER] Render failed, intermediates kept in {work_dir}")
            raise

        self._cleanup(work_dir)
        self._update_progress(100, "Complete")
        logger.info(f"[RENDER] Render complete: {output_path}")
        return output_path

    async def _render_intervals(self, commands: list[EngineCommand], work_dir: str) -> list[str]:
        """Run every interval command; results are returned in interval order."""
        semaphore = asyncio.Semaphore(self.max_workers)
        outputs = [str(Path(work_dir) / f"interval_{i:04d}.mp4") for i in range(len(commands))]
        done = 0

        async def run_one(command: EngineCommand, output: str) -> None:
            nonlocal done
            async with semaphore:
                args = command.to_args(self.ffmpeg_path, output, self.profile)
                logger.info(
                    f"[RENDER] Interval {command.interval_index} "
                    f"({command.duration:.3f}s, {len(command.inputs)} inputs)"
                )
                await self.runner.run(args)
            done += 1
            self._update_progress(5 + int(80 * done / len(commands)), f"Rendered interval {done}/{len(commands)}")

        tasks = [asyncio.create_task(run_one(c, o)) for c, o in zip(commands, outputs)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return outputs

    async def _concatenate(
        self,
        parts: list[str],
        commands: list[EngineCommand],
        output_path: str,
        work_dir: str,
    ) -> None:
        """Concatenate interval files with the concat demuxer, re-encoding with the shared profile."""
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)

        if len(parts) == 1:
            shutil.copy2(parts[0], output_path)
            logger.info("[CONCAT] Single interval, copied without concatenation")
            return

        concat_list_path = Path(work_dir) / "concat_list.txt"
        with open(concat_list_path, "w", encoding="utf-8") as f:
            for part in parts:
                escaped = part.replace("'", "'\\''")
                f.write(f"file '{escaped}'\n")

        has_audio = any(c.audio_label for c in commands)
        args = [
            self.ffmpeg_path,
            "-y",
            "-hide_banner",
            "-f", "concat",
            "-safe", "0",
            "-i", str(concat_list_path),
            "-map", "0:v",
        ]
        if has_audio:
            args.extend(["-map", "0:a?"])
        args.extend(self.profile.video_args())
        if has_audio:
            args.extend(self.profile.audio_args())
        else:
            args.append("-an")
        args.extend(["-movflags", "+faststart", output_path])

        logger.info(f"[CONCAT] Concatenating {len(parts)} intervals")
        await self.runner.run(args)
        logger.info(f"[CONCAT] Concatenation successful: {output_path}")

    @staticmethod
    def _cleanup(work_dir: str) -> None:
        """Remove the work directory and everything in it."""
        shutil.rmtree(work_dir, ignore_errors=True)
