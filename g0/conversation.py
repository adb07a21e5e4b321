"""
Persistence of the conversation history.

The messages of a conversation are saved as a JSON list. When saving,
the history is trimmed to the most recent messages; the system
messages at the head of the conversation are always kept.
"""

from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from g0.language_models.messages import Message

_messages_adapter = TypeAdapter(list[Message])


def trim_history(
    messages: list[Message], max_history_size: int
) -> list[Message]:
    """Keep the leading system messages and the most recent
    `max_history_size` other messages."""
    head = 0
    while head < len(messages) and messages[head].role == 'system':
        head += 1
    rest = messages[head:]
    if max_history_size <= 0:
        rest = []
    elif len(rest) > max_history_size:
        rest = rest[-max_history_size:]
        # a tool result is meaningless without the call that requested it
        while rest and rest[0].role == 'tool':
            rest = rest[1:]
    return messages[:head] + rest


def save_conversation(
    messages: list[Message],
    path: str | Path,
    max_history_size: int = 100,
) -> None:
    """Save a conversation to a JSON file.

    Raises:
        OSError: if the file cannot be written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = _messages_adapter.dump_json(
        trim_history(messages, max_history_size), indent=2
    )
    path.write_bytes(data)


def load_conversation(path: str | Path) -> list[Message]:
    """Load a conversation saved with `save_conversation`. A missing
    file is an empty conversation.

    Raises:
        ValueError: if the file content is not a valid conversation
    """
    path = Path(path)
    if not path.exists():
        return []
    try:
        return _messages_adapter.validate_json(path.read_bytes())
    except ValidationError as e:
        raise ValueError(f"Invalid conversation file {path}: {e}") from e
