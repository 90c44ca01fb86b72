"""Media analysis service using ffprobe."""

import json
import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

FFPROBE_TIMEOUT_SECONDS = 30


@dataclass
class MediaInfo:
    """Stream details extracted from a video file."""

    resolution_width: int = 0
    resolution_height: int = 0
    video_codec: str = "unknown"
    audio_codecs: list[str] = field(default_factory=list)
    duration_secs: float = 0.0

    def resolution_str(self) -> str:
        return f"{self.resolution_width}x{self.resolution_height}"

    def quality_str(self) -> str:
        """Nominal resolution label derived from the frame height."""
        height = self.resolution_height
        if height >= 2100:
            return "2160p"
        if height >= 1000:
            return "1080p"
        if height >= 700:
            return "720p"
        if height >= 500:
            return "576p"
        return "480p"

    def duration_str(self) -> str:
        """Duration as '23m' or '1h 52m'."""
        minutes = int(round(self.duration_secs / 60))
        if minutes >= 60:
            return f"{minutes // 60}h {minutes % 60}m"
        return f"{minutes}m"

    def audio_str(self) -> str:
        return " ".join(codec.upper() for codec in self.audio_codecs)

    @classmethod
    def from_status(cls, status) -> Optional["MediaInfo"]:
        """Rebuild from the media columns of an EpisodeStatus row, if probed."""
        if not status.resolution_height and not status.video_codec:
            return None
        return cls(
            resolution_width=status.resolution_width or 0,
            resolution_height=status.resolution_height or 0,
            video_codec=status.video_codec or "unknown",
            audio_codecs=status.audio_codec_list,
            duration_secs=status.duration_secs or 0.0,
        )


class MediaProbeService:
    """Service for reading stream details with ffprobe. Every failure yields None."""

    @staticmethod
    def is_available() -> bool:
        """Check if ffprobe is available on the system."""
        return shutil.which("ffprobe") is not None

    @staticmethod
    def probe_file(file_path: str) -> Optional[dict]:
        """Run ffprobe on a file and return the parsed JSON output."""
        if not MediaProbeService.is_available():
            logger.warning("ffprobe is not available")
            return None

        path = Path(file_path)
        if not path.exists():
            logger.warning(f"File does not exist: {file_path}")
            return None

        try:
            result = subprocess.run(
                [
                    "ffprobe",
                    "-v", "quiet",
                    "-print_format", "json",
                    "-show_format",
                    "-show_streams",
                    str(path),
                ],
                capture_output=True,
                text=True,
                timeout=FFPROBE_TIMEOUT_SECONDS,
            )
            if result.returncode != 0:
                logger.warning(f"ffprobe failed for {file_path}: {result.stderr}")
                return None

            return json.loads(result.stdout)
        except subprocess.TimeoutExpired:
            logger.warning(f"ffprobe timed out for {file_path}")
            return None
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"ffprobe error for {file_path}: {e}")
            return None

    @staticmethod
    def parse_probe(probe: dict) -> Optional[MediaInfo]:
        """Build MediaInfo from ffprobe JSON; None when there is no video stream."""
        streams = probe.get("streams", []) or []
        video = next((s for s in streams if s.get("codec_type") == "video"), None)
        if video is None:
            return None

        duration = _to_float(probe.get("format", {}).get("duration"))
        if duration is None:
            duration = _to_float(video.get("duration"))

        return MediaInfo(
            resolution_width=int(video.get("width", 0) or 0),
            resolution_height=int(video.get("height", 0) or 0),
            video_codec=(video.get("codec_name") or "unknown"),
            audio_codecs=[
                s["codec_name"] for s in streams
                if s.get("codec_type") == "audio" and s.get("codec_name")
            ],
            duration_secs=duration or 0.0,
        )

    def get_media_info(self, file_path: str) -> Optional[MediaInfo]:
        """Probe a file. Returns None if ffprobe is unavailable or the file can't be probed."""
        probe = self.probe_file(file_path)
        if not probe:
            return None
        info = self.parse_probe(probe)
        if info is None:
            logger.warning(f"No video stream found in {file_path}")
            return None
        logger.debug(
            f"Analyzed {file_path}: {info.resolution_str()} ({info.video_codec}), {info.duration_secs}s"
        )
        return info


def _to_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# Global instance
media_probe = MediaProbeService()
