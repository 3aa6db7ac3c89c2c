from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Literal

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 800

class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str

class ConversationRequest(BaseModel):
    message: str
    # history 항목은 느슨하게 받는다. 유효하지 않은 항목은 prompt_context에서 조용히 버림
    history: List[Any] = Field(default_factory=list)
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS

    @field_validator("history", mode="before")
    @classmethod
    def _null_history(cls, v):
        # "history": null 은 빈 history 와 같다
        return [] if v is None else v

class OutboundMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str

class CompletionRequest(BaseModel):
    """업스트림 /chat/completions 요청 바디"""
    model: str
    stream: bool = True
    temperature: float
    max_tokens: int
    messages: List[OutboundMessage]

class ErrorResponse(BaseModel):
    error: str
