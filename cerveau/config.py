"""
Cerveau Configuration Module

Handles loading configuration from:
1. .env file
2. Environment variables
3. Default values

Usage:
    from cerveau.config import config

    model = config.get("CERVEAU_MODEL", "gemini-2.5-flash")
    config.set("CERVEAU_CYCLE_DELAY", "3")
    config.save()
"""

__all__ = ["config", "Config", "DEFAULTS", "CONFIG_CATEGORIES", "SECRET_MARKERS"]

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

# Default configuration values
DEFAULTS = {
    # Inference
    "CERVEAU_PROVIDER": "gemini",          # gemini, openai
    "CERVEAU_MODEL": "gemini-2.5-flash",
    "CERVEAU_API_KEY": "",
    "CERVEAU_ENDPOINT": "",                # empty = provider default
    "CERVEAU_INFERENCE_TIMEOUT": "15",
    "CERVEAU_TEMPERATURE": "0",

    # Camera
    "CERVEAU_CAMERA_DEVICE": "0",
    "CERVEAU_CAMERA_FACING": "environment",
    "CERVEAU_CAMERA_WIDTH": "640",
    "CERVEAU_CAMERA_HEIGHT": "480",
    "CERVEAU_CAMERA_FPS": "15",

    # Capture (what is sent to the model)
    "CERVEAU_CAPTURE_WIDTH": "320",
    "CERVEAU_CAPTURE_QUALITY": "0.5",      # 0.0 - 1.0

    # Loop
    "CERVEAU_CYCLE_DELAY": "2.5",          # seconds between the end of a cycle and the next
    "CERVEAU_NOT_READY_DELAY": "0.2",
    "CERVEAU_DEGRADED_AFTER": "3",         # consecutive inference failures
    "CERVEAU_DEGRADED_NOTICE": "Analyse indisponible.",
    "CERVEAU_ALERT_COOLDOWN": "3",

    # Speech
    "CERVEAU_TTS_ENABLED": "true",
    "CERVEAU_TTS_ENGINE": "auto",          # auto, espeak, pico, say, pyttsx3
    "CERVEAU_TTS_VOICE": "",
    "CERVEAU_TTS_LANG": "fr-FR",
    "CERVEAU_TTS_RATE": "1.1",             # multiplier of normal speed

    # Logging
    "CERVEAU_LOG_LEVEL": "INFO",
    "CERVEAU_LOG_FILE": "",
}

# Configuration categories, used for `cerveau config --show` and full saves
CONFIG_CATEGORIES = {
    "Inference": [
        ("CERVEAU_PROVIDER", "Provider", "Vision model provider: gemini, openai"),
        ("CERVEAU_MODEL", "Model", "Vision model name"),
        ("CERVEAU_API_KEY", "API Key", "API key for the provider (read on every call)"),
        ("CERVEAU_ENDPOINT", "Endpoint", "Override provider base URL"),
        ("CERVEAU_INFERENCE_TIMEOUT", "Timeout (seconds)", "HTTP timeout for one analysis call"),
        ("CERVEAU_TEMPERATURE", "Temperature", "Sampling temperature (0 = deterministic)"),
    ],
    "Camera": [
        ("CERVEAU_CAMERA_DEVICE", "Device", "Camera device index or video URL"),
        ("CERVEAU_CAMERA_FACING", "Facing", "Preferred facing: environment, user"),
        ("CERVEAU_CAMERA_WIDTH", "Ideal Width", "Requested camera width"),
        ("CERVEAU_CAMERA_HEIGHT", "Ideal Height", "Requested camera height"),
        ("CERVEAU_CAMERA_FPS", "Ideal FPS", "Requested camera frame rate"),
    ],
    "Capture": [
        ("CERVEAU_CAPTURE_WIDTH", "Width", "Width of the still sent to the model"),
        ("CERVEAU_CAPTURE_QUALITY", "Quality", "JPEG quality 0.0 - 1.0"),
    ],
    "Loop": [
        ("CERVEAU_CYCLE_DELAY", "Cycle Delay", "Seconds between two analysis cycles"),
        ("CERVEAU_NOT_READY_DELAY", "Not Ready Delay", "Retry delay while the camera warms up"),
        ("CERVEAU_DEGRADED_AFTER", "Degraded After", "Consecutive failures before degraded mode"),
        ("CERVEAU_DEGRADED_NOTICE", "Degraded Notice", "Spoken once when degraded (empty = silent)"),
        ("CERVEAU_ALERT_COOLDOWN", "Alert Cooldown", "Seconds before the same alert is repeated"),
    ],
    "Speech": [
        ("CERVEAU_TTS_ENABLED", "Enabled", "Speak alerts (true/false)"),
        ("CERVEAU_TTS_ENGINE", "Engine", "auto, espeak, pico, say, pyttsx3"),
        ("CERVEAU_TTS_VOICE", "Voice", "Preferred voice name (engine specific)"),
        ("CERVEAU_TTS_LANG", "Language", "Language tag, e.g. fr-FR"),
        ("CERVEAU_TTS_RATE", "Rate", "Speech rate multiplier (1.0 = normal)"),
    ],
    "Logging": [
        ("CERVEAU_LOG_LEVEL", "Log Level", "Logging level: DEBUG, INFO, WARNING, ERROR"),
        ("CERVEAU_LOG_FILE", "Log File", "Path to log file (empty = console only)"),
    ],
}

SECRET_MARKERS = ("PASS", "KEY", "TOKEN", "SECRET")


class Config:
    """Configuration manager for Cerveau"""

    def __init__(self):
        self._config: Dict[str, str] = {}
        self._env_file: Optional[Path] = None
        self._file_values: Dict[str, str] = {}
        self._load()

    def _find_env_file(self) -> Optional[Path]:
        """Find .env file in current directory or parent directories"""
        current = Path.cwd()

        for _ in range(5):
            env_path = current / ".env"
            if env_path.exists():
                return env_path
            current = current.parent

        return None

    def _load(self):
        """Load configuration from .env file and environment"""
        self._config = DEFAULTS.copy()
        self._file_values = {}

        self._env_file = self._find_env_file()
        if self._env_file:
            self._file_values = self._read_env_file(self._env_file)
            self._config.update(self._file_values)

        # Environment wins over .env
        for key in DEFAULTS.keys():
            env_val = os.environ.get(key)
            if env_val is not None:
                self._config[key] = env_val

    def _read_env_file(self, path: Path) -> Dict[str, str]:
        """Known keys and their values as written in a .env file"""
        values = {}
        try:
            with open(path, "r") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    if "=" in line:
                        key, _, value = line.partition("=")
                        key = key.strip()
                        value = value.strip().strip('"').strip("'")
                        if key in DEFAULTS:
                            values[key] = value
        except OSError:
            pass
        return values

    def get(self, key: str, default: Any = None) -> str:
        """Get configuration value"""
        return self._config.get(key, default or DEFAULTS.get(key, ""))

    def file_value(self, key: str) -> str:
        """Value of key in the .env file, ignoring the environment"""
        return self._file_values.get(key, "")

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get configuration value as boolean"""
        val = self.get(key, str(default))
        return val.lower() in ("true", "1", "yes", "on")

    def get_int(self, key: str, default: int = 0) -> int:
        """Get configuration value as integer"""
        try:
            return int(self.get(key, str(default)))
        except ValueError:
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Get configuration value as float"""
        try:
            return float(self.get(key, str(default)))
        except ValueError:
            return default

    def set(self, key: str, value: str):
        """Set configuration value"""
        self._config[key] = str(value)

    def save(self, path: Optional[Path] = None, full: bool = False, keys_only: List[str] = None):
        """Save configuration to .env file.

        Args:
            path: Path to save to (default: current .env file)
            full: If True, write all values. If False, only update existing keys.
            keys_only: If provided, only update these specific keys
        """
        if path is None:
            path = self._env_file or Path.cwd() / ".env"

        if path.exists() and not full:
            existing_lines = []
            try:
                with open(path, "r") as f:
                    existing_lines = f.readlines()
            except OSError:
                pass

            if existing_lines:
                wanted = set(keys_only) if keys_only else set(self._config)
                seen = set()
                updated_lines = []
                for line in existing_lines:
                    stripped = line.strip()
                    if stripped and not stripped.startswith("#") and "=" in stripped:
                        key = stripped.split("=", 1)[0].strip()
                        if key in wanted and key in self._config:
                            updated_lines.append(f"{key}={self._config[key]}\n")
                            seen.add(key)
                        else:
                            # Preserve unknown keys (user's custom variables)
                            updated_lines.append(line)
                    else:
                        updated_lines.append(line)

                # Explicitly requested keys missing from the file are appended
                for key in keys_only or []:
                    if key not in seen and key in self._config:
                        updated_lines.append(f"{key}={self._config[key]}\n")

                with open(path, "w") as f:
                    f.writelines(updated_lines)

                self._env_file = path
                self._file_values = self._read_env_file(path)
                return

        lines = []
        for category, items in CONFIG_CATEGORIES.items():
            lines.append(f"\n# {category}")
            for key, label, desc in items:
                if keys_only and key not in keys_only and not full:
                    continue
                value = self._config.get(key, DEFAULTS.get(key, ""))
                lines.append(f"{key}={value}")

        with open(path, "w") as f:
            f.write("# Cerveau Configuration\n")
            f.write("# Generated by: cerveau config --set\n")
            f.write("\n".join(lines))
            f.write("\n")

        self._env_file = path
        self._file_values = self._read_env_file(path)

    def to_dict(self) -> Dict[str, str]:
        """Get all configuration as dictionary"""
        return self._config.copy()

    def masked_dict(self) -> Dict[str, str]:
        """Configuration with secrets hidden, for display"""
        masked = {}
        for key, value in self._config.items():
            if any(marker in key.upper() for marker in SECRET_MARKERS):
                value = "*" * 8 if value else "(not set)"
            masked[key] = value
        return masked

    def reload(self):
        """Reload configuration from files"""
        self._load()


# Global config instance
config = Config()
