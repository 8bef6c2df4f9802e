from __future__ import annotations

import asyncio
import json
import logging
import os
import subprocess

from transcribe_service.exceptions import ConversionError, ProbeError

logger = logging.getLogger(__name__)


async def _run(cmd: list[str]) -> bytes:
    """Run a command without blocking the event loop; raise on non-zero exit."""
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise subprocess.CalledProcessError(
            proc.returncode, cmd, output=stdout, stderr=stderr.decode(errors="replace").strip()
        )
    return stdout


async def probe_duration(path: str, *, ffprobe: str = "ffprobe") -> float:
    """Return the duration of an audio file in seconds."""
    if not os.path.isfile(path):
        raise ProbeError(path, FileNotFoundError(path))

    cmd = [
        ffprobe,
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "json",
        path,
    ]
    try:
        out = await _run(cmd)
        data = json.loads(out)
        duration = float(data["format"]["duration"])
    except (OSError, subprocess.CalledProcessError, ValueError, KeyError, TypeError) as exc:
        raise ProbeError(path, exc) from exc

    logger.debug("Probed %s: %.3fs", path, duration)
    return duration


async def extract_segment(
    input_path: str,
    output_path: str,
    start: float,
    duration: float,
    *,
    ffmpeg: str = "ffmpeg",
) -> None:
    """Write ``duration`` seconds of ``input_path`` starting at ``start`` to ``output_path``."""
    cmd = [
        ffmpeg,
        "-hide_banner",
        "-loglevel", "error",
        "-y",
        "-ss", f"{start:g}",
        "-t", f"{duration:g}",
        "-i", input_path,
        "-vn",
        output_path,
    ]
    await _run(cmd)


async def transcode_to_mp3(input_path: str, output_path: str, *, ffmpeg: str = "ffmpeg") -> str:
    """Convert ``input_path`` to mp3. Returns ``output_path``."""
    cmd = [
        ffmpeg,
        "-hide_banner",
        "-loglevel", "error",
        "-y",
        "-i", input_path,
        "-vn",
        "-f", "mp3",
        output_path,
    ]
    try:
        await _run(cmd)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise ConversionError(input_path, exc) from exc
    logger.info("Converted %s to %s", input_path, output_path)
    return output_path
