"""
The fake chat model of the 'Debug' provider.

A Debug model does not connect to any vendor: it is LangChain's
`GenericFakeChatModel` fed with canned replies. It is used to try the
assistant offline, for example with `model = "Debug/echo"` in
config.toml. Fake models do not request tool calls.
"""

from collections.abc import Iterator

from langchain_core.language_models.fake_chat_models import (
    GenericFakeChatModel,
)

from g0.config.config import LanguageModelSettings


class CannedReplies:
    """An endless iterator of replies. With a fixed `text`, every reply
    is that text; otherwise the replies are numbered: "Message 1",
    "Message 2", ...

    The attribute `count` holds the number of replies given so far.
    """

    def __init__(self, text: str | None = None, prefix: str = "Message"):
        self.text = text
        self.prefix = prefix
        self.count = 0

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        self.count += 1
        if self.text is not None:
            return self.text
        return f"{self.prefix} {self.count}"


def create_debug_model(settings: LanguageModelSettings) -> GenericFakeChatModel:
    """A fake model replying with the provider parameter 'message', if
    given, or with numbered messages."""
    message = settings.provider_params.get('message')
    replies = CannedReplies(None if message is None else str(message))
    return GenericFakeChatModel(
        name=settings.model,
        messages=replies,
    )
