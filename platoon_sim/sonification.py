"""
Warning Sonification

Notification sink that renders warnings as short tones. The waveform is
synthesized with numpy and handed to an optional player callback; no
audio device is required.
"""

import time
import logging
from typing import Any, Callable, Dict, Mapping, Optional

import numpy as np

from .models import WarningKind

logger = logging.getLogger(__name__)

# player(signal, sample_rate)
AudioPlayer = Callable[[np.ndarray, int], None]


class Sonificator:
    """Converts warnings into audio signals"""

    WARNING_TONES: Dict[WarningKind, float] = {
        WarningKind.COLLISION: 880.0,        # A5, highest priority
        WarningKind.EMERGENCY_BRAKE: 784.0,  # G5
        WarningKind.DISTANCE: 659.25,        # E5
        WarningKind.SPEED: 523.25,           # C5, lowest priority
    }

    def __init__(self, player: Optional[AudioPlayer] = None,
                 sample_rate: int = 44100,
                 tone_duration: float = 0.3,
                 min_interval: float = 0.25,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            player: Callback that plays (signal, sample_rate); None to only
                synthesize
            sample_rate: Samples per second
            tone_duration: Tone length (seconds)
            min_interval: Minimum wall time between two tones (seconds)
            clock: Time source for the tone interval
        """
        self.player = player
        self.sample_rate = sample_rate
        self.tone_duration = tone_duration
        self.min_interval = min_interval
        self.clock = clock

        self.is_enabled = True
        self.last_sound_time: Optional[float] = None
        self.last_signal: Optional[np.ndarray] = None

        logger.info("Sonificator initialized")

    def __call__(self, kind: WarningKind, message: str,
                 data: Mapping[str, Any], severity: float):
        self.sonify_warning(kind, severity)

    def enable(self):
        self.is_enabled = True

    def disable(self):
        self.is_enabled = False

    def sonify_warning(self, kind: WarningKind, severity: float) -> Optional[np.ndarray]:
        """
        Synthesize (and play, if a player is set) the tone for a warning

        Returns:
            The signal, or None when disabled, rate limited or the kind
            has no tone
        """
        if not self.is_enabled or kind not in self.WARNING_TONES:
            return None

        now = self.clock()
        if self.last_sound_time is not None and now - self.last_sound_time < self.min_interval:
            return None

        signal = self.generate_tone(self.WARNING_TONES[kind], severity)
        if self.player is not None:
            self.player(signal, self.sample_rate)

        self.last_sound_time = now
        self.last_signal = signal
        logger.debug(f"Playing {kind.value} warning tone (severity: {severity:.2f})")
        return signal

    def generate_tone(self, base_freq: float, severity: float) -> np.ndarray:
        """
        Enveloped tone with two harmonics

        Amplitude scales from 0.2 to 1.0 with severity; above 0.7 a 15 Hz
        tremolo is added.
        """
        severity = min(max(severity, 0.0), 1.0)
        t = np.arange(int(self.sample_rate * self.tone_duration) + 1) / self.sample_rate

        amplitude = 0.2 + 0.8 * severity
        envelope = np.sin(np.pi * t / self.tone_duration)

        signal = amplitude * envelope * (
            0.6 * np.sin(2 * np.pi * base_freq * t) +
            0.3 * np.sin(4 * np.pi * base_freq * t) +
            0.1 * np.sin(6 * np.pi * base_freq * t)
        )

        if severity > 0.7:
            mod_freq = 15.0
            mod_depth = 0.1
            signal = signal * (1 + mod_depth * np.sin(2 * np.pi * mod_freq * t))

        return signal
