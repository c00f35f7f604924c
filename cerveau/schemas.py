"""
Response schemas for the remote vision model APIs.

Pydantic models covering only the fields Cerveau reads. Unknown fields
are ignored so provider-side additions do not break parsing.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


# -----------------------------------------------------------------------------
# Gemini generateContent
# -----------------------------------------------------------------------------

class GeminiPart(BaseModel):
    text: Optional[str] = None


class GeminiContent(BaseModel):
    parts: List[GeminiPart] = Field(default_factory=list)
    role: Optional[str] = None


class GeminiCandidate(BaseModel):
    content: Optional[GeminiContent] = None
    finish_reason: Optional[str] = Field(default=None, alias="finishReason")


class GeminiResponse(BaseModel):
    """Body of a successful ``models/{model}:generateContent`` call."""

    candidates: List[GeminiCandidate] = Field(default_factory=list)

    def text(self) -> str:
        """Concatenated text of the first candidate, stripped."""
        if not self.candidates or self.candidates[0].content is None:
            return ""
        parts = self.candidates[0].content.parts
        return "".join(part.text or "" for part in parts).strip()


class GoogleErrorDetail(BaseModel):
    reason: Optional[str] = None


class GoogleErrorBody(BaseModel):
    code: Optional[int] = None
    message: str = ""
    status: Optional[str] = None
    details: List[GoogleErrorDetail] = Field(default_factory=list)


class GoogleErrorEnvelope(BaseModel):
    """Error body returned by Google APIs."""

    error: GoogleErrorBody

    def reasons(self) -> List[str]:
        return [d.reason for d in self.error.details if d.reason]


# -----------------------------------------------------------------------------
# OpenAI chat completions
# -----------------------------------------------------------------------------

class ChatMessage(BaseModel):
    role: Optional[str] = None
    content: Optional[str] = None


class ChatChoice(BaseModel):
    message: ChatMessage


class ChatCompletionResponse(BaseModel):
    """Body of a successful ``/v1/chat/completions`` call."""

    choices: List[ChatChoice] = Field(default_factory=list)

    def text(self) -> str:
        if not self.choices:
            return ""
        return (self.choices[0].message.content or "").strip()
