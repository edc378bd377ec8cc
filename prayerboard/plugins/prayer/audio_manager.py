import array
import enum
import logging
import math
import os
import random
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import pygame

FALLBACK_TONE_HZ = 880
FALLBACK_TONE_SECONDS = 0.3
FALLBACK_TONE_VOLUME = 0.001  # near-silent; it only has to wake the audio device
SAMPLE_RATE = 22050


class PlaybackResult(enum.Enum):
    PLAYED = "played"
    BLOCKED = "blocked"  # device present but playback refused/failed
    UNSUPPORTED = "unsupported"  # no usable audio device or clip


class AdhanPlayer:
    """Plays the adhan clip for a prayer through pygame's mixer."""

    def __init__(self, config: Dict[str, Any], base_dir: Optional[Path] = None, rng: Optional[random.Random] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config = config
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.rng = rng or random.Random()
        self.is_playing = False
        self.current_clip: Optional[Path] = None
        self._mixer_ready = False
        self._lock = threading.Lock()

        clips = config.get("clips") or {}
        self.fajr_clip = self._resolve(clips.get("fajr", "audio/adhan_1.mp3"))
        self.other_clips: List[Path] = [self._resolve(p) for p in (clips.get("others") or [])] or [self.fajr_clip]

    def _resolve(self, path: str) -> Path:
        candidate = Path(os.path.expanduser(path))
        return candidate if candidate.is_absolute() else self.base_dir / candidate

    def pick_clip(self, prayer: str) -> Path:
        """Fajr always gets its own clip; other prayers pick one of the others at random."""
        if prayer == "fajr":
            return self.fajr_clip
        return self.rng.choice(self.other_clips)

    def _ensure_mixer(self) -> bool:
        if self._mixer_ready:
            return True
        try:
            pygame.mixer.init(frequency=SAMPLE_RATE, size=-16, channels=1)
            self._mixer_ready = True
        except pygame.error as e:
            self.logger.warning(f"Audio device unavailable: {e}")
        return self._mixer_ready

    def play(self, prayer: str) -> PlaybackResult:
        """Start the adhan for a prayer. Never raises."""
        clip = self.pick_clip(prayer)
        with self._lock:
            if not self._ensure_mixer():
                return PlaybackResult.UNSUPPORTED
            if not clip.exists():
                self.logger.error(f"Adhan clip not found: {clip}")
                return PlaybackResult.UNSUPPORTED
            try:
                self.logger.info(f"Playing adhan for {prayer} from {clip}")
                pygame.mixer.music.load(str(clip))
                pygame.mixer.music.set_volume(float(self.config.get("volume", 1.0)))
                pygame.mixer.music.play()
            except pygame.error as e:
                self.logger.warning(f"Adhan playback blocked: {e}")
                self.is_playing = False
                return PlaybackResult.BLOCKED
            self.is_playing = True
            self.current_clip = clip
            return PlaybackResult.PLAYED

    def resume(self, prayer: str) -> PlaybackResult:
        """Unpause the current clip, or start a fresh one if nothing was loaded."""
        if self.current_clip is None or not self._mixer_ready:
            return self.play(prayer)
        try:
            pygame.mixer.music.unpause()
            if not pygame.mixer.music.get_busy():
                pygame.mixer.music.play()
        except pygame.error as e:
            self.logger.warning(f"Adhan resume failed: {e}")
            return PlaybackResult.BLOCKED
        self.is_playing = True
        return PlaybackResult.PLAYED

    def play_fallback_tone(self) -> PlaybackResult:
        """Play a short near-silent tone so the audio device is unlocked for a manual replay."""
        with self._lock:
            if not self._ensure_mixer():
                return PlaybackResult.UNSUPPORTED
            try:
                sound = pygame.mixer.Sound(buffer=_tone_samples().tobytes())
                sound.set_volume(FALLBACK_TONE_VOLUME)
                sound.play()
            except pygame.error as e:
                self.logger.debug(f"Fallback tone failed: {e}")
                return PlaybackResult.BLOCKED
            return PlaybackResult.PLAYED

    def stop(self) -> None:
        """Stop playback and rewind to the start of the clip."""
        with self._lock:
            if not self._mixer_ready:
                return
            try:
                pygame.mixer.music.stop()
                pygame.mixer.music.rewind()
            except pygame.error as e:
                self.logger.debug(f"Error stopping adhan: {e}")
            self.is_playing = False


def _tone_samples() -> array.array:
    """16-bit mono sine samples for the fallback tone."""
    count = int(SAMPLE_RATE * FALLBACK_TONE_SECONDS)
    amplitude = 32767
    return array.array("h", (
        int(amplitude * math.sin(2 * math.pi * FALLBACK_TONE_HZ * i / SAMPLE_RATE))
        for i in range(count)
    ))
