"""
Speech Output for Cerveau

Cross-platform text-to-speech with automatic fallback and a cancel
operation, so a new alert can cut off the one still playing:
- espeak (Linux, lightweight)
- pico2wave + aplay (Linux, better quality)
- say (macOS)
- pyttsx3 (cross-platform, Python)

Usage:
    from cerveau.tts import SpeechSynthesizer, SpeechConfig

    speech = SpeechSynthesizer(SpeechConfig(lang="fr-FR", rate=1.1))
    speech.speak("Mur droit devant !")
    speech.cancel()
"""

import logging
import os
import platform
import shutil
import subprocess
import tempfile
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from .config import config

logger = logging.getLogger(__name__)

BASE_WPM = 150
HISTORY_SIZE = 20


def _remove(path: str) -> None:
    try:
        os.unlink(path)
    except OSError as e:
        logger.debug(f"Could not remove {path}: {e}")


class TTSEngine(str, Enum):
    AUTO = "auto"
    PYTTSX3 = "pyttsx3"
    ESPEAK = "espeak"
    PICO = "pico"
    SAY = "say"  # macOS


@dataclass
class SpeechConfig:
    """Speech configuration."""
    enabled: bool = True
    engine: TTSEngine = TTSEngine.AUTO
    voice: str = ""
    lang: str = "fr-FR"
    rate: float = 1.1  # multiplier of BASE_WPM

    @classmethod
    def from_env(cls) -> "SpeechConfig":
        """Load from environment/.env"""
        engine_str = config.get("CERVEAU_TTS_ENGINE", "auto").lower()
        try:
            engine = TTSEngine(engine_str)
        except ValueError:
            logger.warning(f"Unknown TTS engine '{engine_str}', using auto")
            engine = TTSEngine.AUTO

        return cls(
            enabled=config.get_bool("CERVEAU_TTS_ENABLED", True),
            engine=engine,
            voice=config.get("CERVEAU_TTS_VOICE", ""),
            lang=config.get("CERVEAU_TTS_LANG", "fr-FR"),
            rate=config.get_float("CERVEAU_TTS_RATE", 1.1),
        )

    @property
    def wpm(self) -> int:
        return max(40, int(BASE_WPM * self.rate))

    @property
    def short_lang(self) -> str:
        """``fr`` for ``fr-FR``."""
        return self.lang.split("-")[0].lower() if self.lang else ""


class SpeechSynthesizer:
    """Speaks alerts, one utterance at a time.

    ``speak`` never blocks the caller. ``cancel`` stops whatever is
    playing. Engines that fail are skipped and the next one in platform
    priority order is tried.
    """

    def __init__(self, speech_config: Optional[SpeechConfig] = None):
        self.config = speech_config or SpeechConfig.from_env()
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._pyttsx3_engine: Any = None
        self._available_engines: Optional[List[TTSEngine]] = None
        # Most recent utterances only
        self.spoken: Deque[str] = deque(maxlen=HISTORY_SIZE)

    def speak(self, text: str) -> bool:
        """Speak text.

        Returns:
            True if an engine accepted the text, False otherwise
        """
        text = self._clean_text(text)
        if not text:
            return False

        if not self.config.enabled:
            logger.info(f"[quiet] {text}")
            self.spoken.append(text)
            return True

        engine = self.config.engine
        if engine == TTSEngine.AUTO:
            engines_to_try = self._get_engine_priority()
        else:
            engines_to_try = [engine] + [e for e in self._get_engine_priority() if e != engine]

        for eng in engines_to_try:
            try:
                if self._speak_with_engine(eng, text):
                    logger.debug(f"Spoken with {eng.value}: {text}")
                    self.spoken.append(text)
                    return True
            except (OSError, subprocess.SubprocessError, RuntimeError, ImportError) as e:
                logger.debug(f"TTS engine {eng.value} failed: {e}")

        logger.warning(f"No TTS engine available, alert not spoken: {text}")
        return False

    def cancel(self) -> None:
        """Stop any utterance in progress. Safe when nothing plays."""
        with self._lock:
            process, self._process = self._process, None
            engine = self._pyttsx3_engine

        if process is not None and process.poll() is None:
            try:
                process.terminate()
            except OSError as e:
                logger.debug(f"Could not terminate speech process: {e}")

        if engine is not None:
            try:
                engine.stop()
            except RuntimeError as e:
                logger.debug(f"pyttsx3 stop failed: {e}")

    @property
    def speaking(self) -> bool:
        with self._lock:
            return self._process is not None and self._process.poll() is None

    def _clean_text(self, text: str) -> str:
        if not text:
            return ""
        text = text.replace('"', "").replace("`", "")
        text = " ".join(text.split())
        return text[:500]

    def _get_engine_priority(self) -> List[TTSEngine]:
        """Engines to try in priority order."""
        system = platform.system().lower()

        if system == "darwin":
            return [TTSEngine.SAY, TTSEngine.PYTTSX3]
        elif system == "windows":
            return [TTSEngine.PYTTSX3]
        else:  # Linux
            return [TTSEngine.ESPEAK, TTSEngine.PICO, TTSEngine.PYTTSX3]

    def _speak_with_engine(self, engine: TTSEngine, text: str) -> bool:
        if engine == TTSEngine.ESPEAK:
            return self._speak_espeak(text)
        elif engine == TTSEngine.PICO:
            return self._speak_pico(text)
        elif engine == TTSEngine.SAY:
            return self._speak_say(text)
        elif engine == TTSEngine.PYTTSX3:
            return self._speak_pyttsx3(text)
        return False

    def _start(self, cmd: List[str], cleanup: Optional[str] = None) -> bool:
        process = subprocess.Popen(
            cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, stdin=subprocess.DEVNULL
        )
        with self._lock:
            self._process = process
        if cleanup:
            threading.Thread(
                target=self._remove_when_done, args=(process, cleanup),
                daemon=True, name="cerveau-tts-cleanup",
            ).start()
        return True

    @staticmethod
    def _remove_when_done(process: subprocess.Popen, path: str) -> None:
        """Delete ``path`` once ``process`` has exited (or was terminated)."""
        process.wait()
        _remove(path)

    def _speak_espeak(self, text: str) -> bool:
        if not shutil.which("espeak"):
            return False
        cmd = ["espeak", "-s", str(self.config.wpm)]
        voice = self.config.voice or self.config.short_lang
        if voice:
            cmd.extend(["-v", voice])
        cmd.append(text)
        return self._start(cmd)

    def _speak_pico(self, text: str) -> bool:
        if not shutil.which("pico2wave") or not shutil.which("aplay"):
            return False
        fd, wav_path = tempfile.mkstemp(suffix=".wav", prefix="cerveau_")
        os.close(fd)

        cmd = ["pico2wave", "-w", wav_path]
        if self.config.lang:
            cmd.extend(["-l", self.config.lang])
        cmd.append(text)
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=10)
        except (OSError, subprocess.SubprocessError):
            _remove(wav_path)
            raise
        if result.returncode != 0:
            _remove(wav_path)
            return False
        try:
            return self._start(["aplay", "-q", wav_path], cleanup=wav_path)
        except OSError:
            _remove(wav_path)
            raise

    def _speak_say(self, text: str) -> bool:
        if not shutil.which("say"):
            return False
        cmd = ["say", "-r", str(self.config.wpm)]
        if self.config.voice:
            cmd.extend(["-v", self.config.voice])
        cmd.append(text)
        return self._start(cmd)

    def _speak_pyttsx3(self, text: str) -> bool:
        import pyttsx3

        engine = pyttsx3.init()
        engine.setProperty("rate", self.config.wpm)
        wanted = (self.config.voice or self.config.short_lang).lower()
        if wanted:
            for v in engine.getProperty("voices"):
                languages = [str(lang).lower() for lang in getattr(v, "languages", [])]
                if wanted in v.name.lower() or any(wanted in lang for lang in languages):
                    engine.setProperty("voice", v.id)
                    break

        with self._lock:
            self._pyttsx3_engine = engine

        def _do_speak():
            try:
                engine.say(text)
                engine.runAndWait()
            except RuntimeError as e:
                logger.debug(f"pyttsx3 thread failed: {e}")
            finally:
                with self._lock:
                    if self._pyttsx3_engine is engine:
                        self._pyttsx3_engine = None

        threading.Thread(target=_do_speak, daemon=True, name="cerveau-tts").start()
        return True

    def get_available_engines(self) -> List[TTSEngine]:
        """Check which TTS engines are available."""
        if self._available_engines is not None:
            return self._available_engines

        available = []
        if shutil.which("espeak"):
            available.append(TTSEngine.ESPEAK)
        if shutil.which("pico2wave") and shutil.which("aplay"):
            available.append(TTSEngine.PICO)
        if shutil.which("say"):
            available.append(TTSEngine.SAY)
        try:
            import pyttsx3  # noqa: F401
            available.append(TTSEngine.PYTTSX3)
        except ImportError:
            pass

        self._available_engines = available
        return available

    def status(self) -> Dict[str, Any]:
        """Engine availability, for ``cerveau test tts``."""
        return {
            "enabled": self.config.enabled,
            "configured_engine": self.config.engine.value,
            "available_engines": [e.value for e in self.get_available_engines()],
            "lang": self.config.lang,
            "wpm": self.config.wpm,
        }
