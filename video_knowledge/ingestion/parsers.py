"""Transcript parsers for timestamped text, VTT, and JSON formats."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

from video_knowledge.ingestion.models import TranscriptSegment

_TIMESTAMP_LINE_RE = re.compile(r"^\d+:\d{2}(:\d{2})?$")


def timestamp_to_seconds(timestamp: str) -> int:
    """Convert ``MM:SS`` or ``H:MM:SS`` to whole seconds (0 for anything else)."""
    parts = timestamp.strip().split(":")
    try:
        numbers = [int(p) for p in parts]
    except ValueError:
        return 0
    if len(numbers) == 2:
        minutes, seconds = numbers
        return minutes * 60 + seconds
    if len(numbers) == 3:
        hours, minutes, seconds = numbers
        return hours * 3600 + minutes * 60 + seconds
    return 0


def seconds_to_timestamp(seconds: int) -> str:
    """Format seconds as ``M:SS`` below an hour and ``H:MM:SS`` above."""
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def parse_timestamped(content: str) -> list[TranscriptSegment]:
    """Parse the YouTube "show transcript" copy format.

    A line holding only a timestamp (``0:00``, ``12:34``, ``1:02:03``) starts a
    new segment; the following non-blank lines are its text::

        0:00
        Intro
        1:30
        Main content

    Input without any timestamp line becomes a single segment at offset 0.
    """
    if not content.strip():
        return []

    segments: list[TranscriptSegment] = []
    current_seconds: int | None = None
    text_lines: list[str] = []

    def finish() -> None:
        if current_seconds is not None and text_lines:
            segments.append(
                TranscriptSegment(text="\n".join(text_lines), offset_ms=current_seconds * 1000)
            )

    for line in content.splitlines():
        stripped = line.strip()
        if _TIMESTAMP_LINE_RE.match(stripped):
            finish()
            current_seconds = timestamp_to_seconds(stripped)
            text_lines = []
        elif stripped:
            text_lines.append(stripped)

    finish()

    if not segments:
        # No timestamps at all: the whole input is one segment
        segments.append(TranscriptSegment(text=content.strip(), offset_ms=0))

    return segments


def _parse_vtt_timestamp(ts: str) -> float:
    """Convert a VTT timestamp (HH:MM:SS.mmm) to seconds."""
    parts = ts.strip().split(":")
    if len(parts) == 3:
        hours, minutes, seconds = parts
    elif len(parts) == 2:
        hours = "0"
        minutes, seconds = parts
    else:
        return 0.0
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_vtt(content: str) -> list[TranscriptSegment]:
    """Parse a WebVTT file into transcript segments.

    Handles cue timings like ``00:01:23.456 --> 00:01:30.789``. Speaker labels
    (``Speaker 1: Hello``) and inline voice tags (``<v Name>Hello</v>``) are
    stripped from the cue text; only the spoken text is kept.
    """
    segments: list[TranscriptSegment] = []

    timestamp_re = re.compile(
        r"(\d{1,2}:\d{2}:\d{2}[.,]\d{3}|\d{2}:\d{2}[.,]\d{3})\s*-->\s*"
        r"(\d{1,2}:\d{2}:\d{2}[.,]\d{3}|\d{2}:\d{2}[.,]\d{3})"
    )
    speaker_re = re.compile(r"^[^:]{1,40}:\s+(.+)$")
    voice_re = re.compile(r"^<v [^>]+>(.*?)(?:</v>)?$", re.DOTALL)

    lines = content.strip().splitlines()
    i = 0
    while i < len(lines):
        match = timestamp_re.search(lines[i].strip())
        if not match:
            i += 1
            continue

        start = _parse_vtt_timestamp(match.group(1).replace(",", "."))

        # Collect text lines until blank line or next timestamp / end
        text_lines: list[str] = []
        i += 1
        while i < len(lines) and lines[i].strip() and not timestamp_re.search(lines[i]):
            text_lines.append(lines[i].strip())
            i += 1

        full_text = " ".join(text_lines)
        voice_match = voice_re.match(full_text)
        if voice_match:
            full_text = voice_match.group(1).strip()
        else:
            speaker_match = speaker_re.match(full_text)
            if speaker_match:
                full_text = speaker_match.group(1)

        if full_text:
            segments.append(TranscriptSegment(text=full_text, offset_ms=round(start * 1000)))

    return segments


def _json_offset_ms(item: dict[str, Any]) -> int:
    if "offset" in item:
        return int(item["offset"])
    if "start" in item:
        return int(item["start"])
    if "start_time" in item and item["start_time"] is not None:
        return round(float(item["start_time"]) * 1000)
    return 0


def parse_json(content: str) -> list[TranscriptSegment]:
    """Parse a JSON transcript.

    Supported shapes (first matching key wins)::

        {"segments": [{"text": "...", "offset": ms}]}          # youtube-transcript
        {"utterances": [{"text": "...", "start": ms}]}         # AssemblyAI
        {"transcript": [{"text": "...", "start_time": s}]}     # seconds

    A bare top-level list is treated like ``segments``.
    """
    data = json.loads(content)

    items: list[dict[str, Any]]
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        for key in ("segments", "utterances", "transcript"):
            if isinstance(data.get(key), list):
                items = data[key]
                break
        else:
            msg = f"Unrecognized JSON transcript format. Keys: {list(data.keys())}"
            raise ValueError(msg)
    else:
        msg = f"Unrecognized JSON transcript format: {type(data).__name__}"
        raise ValueError(msg)

    return [
        TranscriptSegment(text=str(item.get("text", "")), offset_ms=_json_offset_ms(item))
        for item in items
        if isinstance(item, dict)
    ]


def parse_transcript(content: str, format: str = "timestamped") -> list[TranscriptSegment]:
    """Dispatch to the correct parser based on *format*.

    Args:
        content: Raw transcript text.
        format: One of ``"timestamped"`` / ``"youtube"``, ``"vtt"``, or ``"json"``.

    Returns:
        Parsed transcript segments.

    Raises:
        ValueError: If *format* is not recognized.
    """
    dispatch: dict[str, Callable[[str], list[TranscriptSegment]]] = {
        "timestamped": parse_timestamped,
        "youtube": parse_timestamped,
        "vtt": parse_vtt,
        "json": parse_json,
    }

    parser = dispatch.get(format)
    if parser is None:
        msg = f"Unknown transcript format: {format!r}. Supported: {list(dispatch.keys())}"
        raise ValueError(msg)

    return parser(content)
