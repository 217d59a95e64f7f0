"""Transcript types and the provider protocol the agents talk to."""

from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """One role-tagged turn of an agent transcript."""

    role: MessageRole
    content: str

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content)

    def as_chat(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@runtime_checkable
class LLMProvider(Protocol):
    """
    A chat model backend.

    Providers are async context managers: the underlying client is opened on
    enter and closed on exit. Inside the block, `complete_messages` sends the
    whole transcript and returns the model's text, which may be empty.
    """

    async def __aenter__(self) -> "LLMProvider": ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None: ...

    async def complete_messages(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str: ...
