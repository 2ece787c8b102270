"""Conversation transcript for one chat session"""

from __future__ import annotations

from models.chat import Message, Role


class Transcript:
    """Ordered messages; only the tail assistant message may still grow"""

    def __init__(self):
        self._messages: list[Message] = []
        self._open = False

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> list[Message]:
        return [message.model_copy() for message in self._messages]

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    @property
    def open(self) -> bool:
        """True while an assistant message is streaming"""
        return self._open

    def append_user(self, text: str) -> Message:
        if self._open:
            raise RuntimeError("Cannot add a user message while the assistant is streaming")
        message = Message(role=Role.USER, content=text)
        self._messages.append(message)
        return message

    def open_assistant(self) -> Message:
        if self._open:
            raise RuntimeError("An assistant message is already streaming")
        message = Message(role=Role.ASSISTANT, content="")
        self._messages.append(message)
        self._open = True
        return message

    def append_delta(self, text: str):
        if not self._open:
            self.open_assistant()
        self._messages[-1].content += text

    def close(self):
        """Freeze the streaming message as-is"""
        self._open = False

    def rollback(self):
        """Remove the streaming message entirely"""
        if self._open:
            self._messages.pop()
            self._open = False

    def discard_if_empty(self) -> bool:
        """Remove the streaming message if no text reached it"""
        if self._open and not self._messages[-1].content:
            self.rollback()
            return True
        return False
