"""
Conversation Store Module

JSON/JSONL document store for conversations and their messages. This is the
only durable state in the system; the match cache is process-local.

Layout under ``store_dir``:
    <conversation_id>.json             conversation record (no messages)
    <conversation_id>.messages.jsonl   append-only message log

Example Usage:
    from unimatch.utils.conversation_store import ConversationStore

    store = ConversationStore(store_dir="data/conversations")
    store.create(record)
    store.append_message(record.id, message)
    conversation = store.get(record.id)   # messages in insertion order
"""

import json
from pathlib import Path
from typing import Optional

import jsonlines

from unimatch.models.conversation import ConversationRecord, Message


class ConversationStore:
    """Persists conversation records and append-only message logs."""

    def __init__(self, store_dir: str | Path = "data/conversations"):
        """
        Initialize ConversationStore.

        Args:
            store_dir: Directory for conversation files (created if missing)
        """
        self.store_dir = Path(store_dir)
        self.store_dir.mkdir(parents=True, exist_ok=True)

    def _record_file(self, conversation_id: str) -> Path:
        return self.store_dir / f"{conversation_id}.json"

    def _messages_file(self, conversation_id: str) -> Path:
        return self.store_dir / f"{conversation_id}.messages.jsonl"

    def exists(self, conversation_id: str) -> bool:
        return self._record_file(conversation_id).exists()

    def create(self, record: ConversationRecord) -> ConversationRecord:
        """
        Store a new conversation and any messages already attached to it.

        Raises:
            IOError: If the conversation already exists or cannot be written
        """
        if self.exists(record.id):
            raise IOError(f"Conversation {record.id} already exists")

        self._write_record(record)
        for message in record.messages:
            self.append_message(record.id, message)
        return record

    def update(self, record: ConversationRecord) -> ConversationRecord:
        """
        Replace the stored conversation state. Messages are never rewritten.

        Raises:
            IOError: If the conversation does not exist or cannot be written
        """
        if not self.exists(record.id):
            raise IOError(f"Conversation {record.id} does not exist")

        self._write_record(record)
        return record

    def append_message(self, conversation_id: str, message: Message) -> Message:
        """
        Append one message to a conversation's log.

        Raises:
            IOError: If the message log cannot be written
        """
        self.append_messages(conversation_id, [message])
        return message

    def append_messages(
        self, conversation_id: str, messages: list[Message]
    ) -> list[Message]:
        """
        Append several messages to a conversation's log with a single open.

        Raises:
            IOError: If the message log cannot be written
        """
        lines = [message.model_dump(mode="json") for message in messages]
        try:
            with jsonlines.open(self._messages_file(conversation_id), mode="a") as writer:
                writer.write_all(lines)
        except Exception as e:
            raise IOError(
                f"Failed to append message to conversation {conversation_id}: {e}"
            ) from e
        return messages

    def get(self, conversation_id: str) -> Optional[ConversationRecord]:
        """
        Load a conversation with its messages in insertion order.

        Returns:
            ConversationRecord, or None if the conversation does not exist

        Raises:
            IOError: If stored files are corrupted
        """
        record_file = self._record_file(conversation_id)
        if not record_file.exists():
            return None

        try:
            with open(record_file, "r", encoding="utf-8") as f:
                record_data = json.load(f)
        except json.JSONDecodeError as e:
            raise IOError(f"Corrupted conversation file {record_file}: {e}") from e

        record_data["messages"] = self._load_messages(conversation_id)
        return ConversationRecord.model_validate(record_data)

    def _load_messages(self, conversation_id: str) -> list[dict]:
        messages_file = self._messages_file(conversation_id)
        if not messages_file.exists():
            return []

        try:
            with jsonlines.open(messages_file) as reader:
                return list(reader)
        except jsonlines.InvalidLineError as e:
            raise IOError(f"Corrupted message log {messages_file}: {e}") from e

    def _write_record(self, record: ConversationRecord) -> None:
        record_file = self._record_file(record.id)
        data = record.model_dump(mode="json", exclude={"messages"})
        tmp_file = record_file.with_suffix(".json.tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            tmp_file.replace(record_file)
        except OSError as e:
            raise IOError(f"Failed to write conversation {record.id}: {e}") from e
