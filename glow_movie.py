#!/usr/bin/env python3
"""
Glow Movie Files

Text format for pre-rendered LED animations:

    <frames> <leds> <bytes_per_led> <fps>
    <hex bytes of frame 0>
    <hex bytes of frame 1>
    ...

RGBW files store (r - w, g - w, b - w, w) per LED with w = min(r, g, b).
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from glow_color import RGB
from glow_protocol import LedProfile, ValidationError, to_movie


@dataclass
class Movie:
    """A sequence of frames and its playback rate."""
    frames: list[list[RGB]] = field(default_factory=list)
    fps: float = 20.0

    @property
    def num_leds(self) -> int:
        return len(self.frames[0]) if self.frames else 0

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'Movie':
        """
        Read a movie file.

        Raises:
            ValidationError: malformed header or frame data
        """
        with open(path, 'r') as f:
            header = f.readline().split()
            if len(header) != 4:
                raise ValidationError(f"{path}: invalid header format")
            try:
                num_frames, num_leds, bytes_per_led = (int(v) for v in header[:3])
                fps = float(header[3])
            except ValueError as e:
                raise ValidationError(f"{path}: invalid header values: {e}") from e
            if bytes_per_led not in (3, 4):
                raise ValidationError(f"{path}: unsupported bytes per LED: {bytes_per_led}")

            frames = []
            for index in range(num_frames):
                line = f.readline().strip()
                try:
                    data = bytes.fromhex(line)
                except ValueError as e:
                    raise ValidationError(f"{path}: frame {index} is not valid hex") from e
                if len(data) != num_leds * bytes_per_led:
                    raise ValidationError(
                        f"{path}: frame {index} has {len(data)} bytes, "
                        f"expected {num_leds * bytes_per_led}"
                    )
                frames.append(_decode_frame(data, bytes_per_led))

        return cls(frames=frames, fps=fps)

    def save(self, path: Union[str, Path], profile: LedProfile = LedProfile.RGB):
        """Write the movie in the text format."""
        with open(path, 'w') as f:
            f.write(f"{len(self.frames)} {self.num_leds} {profile.bytes_per_led} {self.fps}\n")
            for frame in self.frames:
                f.write(to_movie([frame], profile).hex().upper())
                f.write("\n")

    def to_bytes(self, profile: LedProfile = LedProfile.RGB) -> bytes:
        """Binary body for the movie upload endpoint."""
        return to_movie(self.frames, profile)


def _decode_frame(data: bytes, bytes_per_led: int) -> list[RGB]:
    frame = []
    for i in range(0, len(data), bytes_per_led):
        chunk = data[i:i + bytes_per_led]
        if bytes_per_led == 4:
            w = chunk[3]
            frame.append((chunk[0] + w, chunk[1] + w, chunk[2] + w))
        else:
            frame.append((chunk[0], chunk[1], chunk[2]))
    return frame
