"""
Inference Client for Cerveau

Sends one compressed still plus a fixed instruction to a remote vision
model and returns its short verdict text.

- One attempt per call. The analysis loop owns retries through its own
  cadence.
- No connection pooling and no cached credential: every call is a fresh
  ``requests.post`` and the API key is resolved again each time.
- Failures are raised as typed errors (TransportError, QuotaError,
  AuthError, MissingCredentialError) for the caller to absorb.

Usage:
    from cerveau.inference import InferenceClient

    client = InferenceClient()
    text = client.analyze(frame)   # "RAS" or "Mur droit devant !"
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests
from pydantic import ValidationError

from .config import config
from .exceptions import (
    AuthError,
    ConfigurationError,
    MissingCredentialError,
    QuotaError,
    TransportError,
)
from .frame_sampler import Frame
from .schemas import ChatCompletionResponse, GeminiResponse, GoogleErrorEnvelope
from .verdict import SENTINEL

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = """Rôle: Cerveau IA pour aveugles.
Action: Analyse obstacle central.
Réponse courte, une seule ligne:
- Si danger imminent (mur, poteau, trou, marche, personne proche): "{Objet} droit devant !"
- Sinon, réponds exactement: RAS
"""

PROVIDERS = ("gemini", "openai")

DEFAULT_ENDPOINTS = {
    "gemini": "https://generativelanguage.googleapis.com",
    "openai": "https://api.openai.com",
}

# Provider specific variables consulted after CERVEAU_API_KEY
PROVIDER_KEY_VARS = {
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "openai": ("OPENAI_API_KEY",),
}

CredentialAccessor = Callable[[], Optional[str]]


@dataclass
class InferenceMetrics:
    """Counters for the CLI summary."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    total_time_ms: float = 0

    @property
    def avg_time_ms(self) -> float:
        return self.total_time_ms / max(1, self.total_calls)

    @property
    def success_rate(self) -> float:
        return self.successful_calls / max(1, self.total_calls)

    def to_dict(self) -> dict:
        return {
            "total_calls": self.total_calls,
            "successful": self.successful_calls,
            "failed": self.failed_calls,
            "avg_time_ms": round(self.avg_time_ms, 1),
            "success_rate": f"{self.success_rate:.1%}",
        }


@dataclass
class InferenceConfig:
    """Inference client configuration."""
    provider: str = "gemini"
    model: str = "gemini-2.5-flash"
    endpoint: str = ""
    timeout: float = 15.0
    temperature: float = 0.0
    max_tokens: int = 32

    def __post_init__(self):
        if self.provider not in PROVIDERS:
            raise ConfigurationError(
                f"Unknown provider: {self.provider} (expected one of {', '.join(PROVIDERS)})"
            )

    @classmethod
    def from_env(cls) -> "InferenceConfig":
        """Load config from environment/.env"""
        return cls(
            provider=config.get("CERVEAU_PROVIDER", "gemini").lower(),
            model=config.get("CERVEAU_MODEL", "gemini-2.5-flash"),
            endpoint=config.get("CERVEAU_ENDPOINT", ""),
            timeout=config.get_float("CERVEAU_INFERENCE_TIMEOUT", 15.0),
            temperature=config.get_float("CERVEAU_TEMPERATURE", 0.0),
        )

    @property
    def base_url(self) -> str:
        return (self.endpoint or DEFAULT_ENDPOINTS[self.provider]).rstrip("/")


def env_credential(provider: str = "gemini") -> CredentialAccessor:
    """Credential accessor reading the environment at call time.

    Order: CERVEAU_API_KEY, the provider's own variable(s), then the value
    written in .env. A key removed from the environment is not remembered.
    """
    names = ("CERVEAU_API_KEY",) + PROVIDER_KEY_VARS.get(provider, ())

    def _resolve() -> Optional[str]:
        for name in names:
            value = os.environ.get(name)
            if value:
                return value
        return config.file_value("CERVEAU_API_KEY") or None

    return _resolve


class InferenceClient:
    """Stateless client for the remote vision model."""

    def __init__(
        self,
        inference_config: Optional[InferenceConfig] = None,
        credential: Optional[CredentialAccessor] = None,
        system_instruction: str = SYSTEM_INSTRUCTION,
    ):
        self.config = inference_config or InferenceConfig.from_env()
        self.system_instruction = system_instruction
        self._credential = credential or env_credential(self.config.provider)
        self.metrics = InferenceMetrics()

    def analyze(self, frame: Frame) -> str:
        """Ask the model about one frame.

        Args:
            frame: Encoded still image

        Returns:
            Verdict text, stripped. An empty answer is returned as the
            no-obstacle sentinel.

        Raises:
            MissingCredentialError: no API key configured (no request sent)
            AuthError: key rejected
            QuotaError: rate limited
            TransportError: network, timeout, HTTP or payload error
        """
        api_key = self._credential()
        if not api_key:
            raise MissingCredentialError(
                f"No API key for provider '{self.config.provider}' (set CERVEAU_API_KEY)"
            )

        start_time = time.time()
        self.metrics.total_calls += 1
        try:
            if self.config.provider == "openai":
                text = self._call_openai(frame, api_key)
            else:
                text = self._call_gemini(frame, api_key)
        except Exception:
            self.metrics.failed_calls += 1
            raise
        finally:
            self.metrics.total_time_ms += (time.time() - start_time) * 1000

        self.metrics.successful_calls += 1
        if not text:
            logger.warning("Model returned an empty answer, treating as no obstacle")
            return SENTINEL
        logger.debug(f"Model answered: {text!r} ({(time.time() - start_time) * 1000:.0f}ms)")
        return text

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def _call_gemini(self, frame: Frame, api_key: str) -> str:
        url = f"{self.config.base_url}/v1beta/models/{self.config.model}:generateContent"
        payload = {
            "systemInstruction": {"parts": [{"text": self.system_instruction}]},
            "contents": [{
                "role": "user",
                "parts": [{
                    "inlineData": {
                        "mimeType": frame.mime_type,
                        "data": frame.to_base64(),
                    }
                }],
            }],
            "generationConfig": {
                "temperature": self.config.temperature,
                "maxOutputTokens": self.config.max_tokens,
            },
        }
        data = self._post(url, payload, headers={"x-goog-api-key": api_key})
        try:
            return GeminiResponse.model_validate(data).text()
        except ValidationError as e:
            raise TransportError(f"Unexpected Gemini response: {e}") from e

    def _call_openai(self, frame: Frame, api_key: str) -> str:
        url = f"{self.config.base_url}/v1/chat/completions"
        payload = {
            "model": self.config.model,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "messages": [
                {"role": "system", "content": self.system_instruction},
                {
                    "role": "user",
                    "content": [{
                        "type": "image_url",
                        "image_url": {"url": f"data:{frame.mime_type};base64,{frame.to_base64()}"},
                    }],
                },
            ],
        }
        data = self._post(url, payload, headers={"Authorization": f"Bearer {api_key}"})
        try:
            return ChatCompletionResponse.model_validate(data).text()
        except ValidationError as e:
            raise TransportError(f"Unexpected OpenAI response: {e}") from e

    def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Any:
        """Single POST, errors mapped to the inference taxonomy."""
        try:
            response = requests.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json", **headers},
                timeout=self.config.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Timeout after {self.config.timeout:g}s") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request failed: {e}") from e

        if not response.ok:
            raise self._http_error(response)

        try:
            return response.json()
        except ValueError as e:
            raise TransportError("Response is not valid JSON") from e

    def _http_error(self, response: requests.Response) -> Exception:
        status = response.status_code
        detail = response.text[:200]
        reasons = []
        try:
            envelope = GoogleErrorEnvelope.model_validate(response.json())
            detail = envelope.error.message or detail
            reasons = envelope.reasons()
        except (ValueError, ValidationError):
            pass

        if status in (401, 403) or "API_KEY_INVALID" in reasons:
            return AuthError(f"HTTP {status}: {detail}")
        if status == 429:
            return QuotaError(f"HTTP {status}: {detail}")
        return TransportError(f"HTTP {status}: {detail}")

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics."""
        return self.metrics.to_dict()
