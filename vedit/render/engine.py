"""Scoped FFmpeg subprocess runner.

The child process never outlives ``run``: it is killed on timeout, on
cancellation of the awaiting task and on any other error.
"""

import asyncio
import logging
from dataclasses import dataclass

from vedit.config import get_settings
from vedit.exceptions import RenderEngineFailureError, RenderTimeoutError

logger = logging.getLogger(__name__)

# Captured output kept on errors (tail)
MAX_OUTPUT_CHARS = 20_000


@dataclass
class EngineResult:
    returncode: int
    output: str


def _tail(text: str) -> str:
    if len(text) <= MAX_OUTPUT_CHARS:
        return text
    return text[-MAX_OUTPUT_CHARS:]


class FFmpegRunner:
    """Run one FFmpeg command with combined stdout/stderr capture and a hard timeout."""

    def __init__(self, timeout_s: float | None = None) -> None:
        self.timeout_s = timeout_s if timeout_s is not None else get_settings().render_timeout_s

    async def run(self, args: list[str]) -> EngineResult:
        """
        Execute ``args`` (argv, program first).

        Raises:
            RenderTimeoutError: If the process exceeds the timeout (it is killed)
            RenderEngineFailureError: If the process exits non-zero
        """
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            await self._kill(proc)
            logger.error(f"[RENDER] FFmpeg timed out after {self.timeout_s}s (pid={proc.pid})")
            raise RenderTimeoutError(self.timeout_s) from None
        except BaseException:
            # Cancellation or anything else: do not leave the child running
            await self._kill(proc)
            raise

        output = _tail(stdout.decode("utf-8", errors="replace")) if stdout else ""
        if proc.returncode != 0:
            logger.error(f"[RENDER] FFmpeg failed with exit code {proc.returncode}: {output}")
            raise RenderEngineFailureError(proc.returncode, output)

        return EngineResult(returncode=proc.returncode, output=output)

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
