"""Client side chat transcript with optimistic echoes.

Turns the user sends (and replies the relay returns) are shown immediately
under a temporary id. When the durable record arrives, either from the chat
call itself or from the conversation's change feed, it replaces the echo
instead of being appended a second time.
"""

import datetime
import uuid
from typing import Iterable, List, Optional

from .helpers import utcnow
from .models import ChatTurn

DEFAULT_TOLERANCE = datetime.timedelta(minutes=2)


class TranscriptEntry:
    def __init__(self, role, content, created_at, turn_id=None, temp_id=None):
        self.role = role
        self.content = content
        self.created_at = created_at
        self.turn_id = turn_id
        self.temp_id = temp_id

    @property
    def pending(self) -> bool:
        return self.turn_id is None

    def confirm(self, turn: ChatTurn):
        self.turn_id = turn.id
        self.created_at = turn.created_at
        self.content = turn.content

    def to_dict(self):
        return {
            "id": self.turn_id if self.turn_id is not None else self.temp_id,
            "role": self.role,
            "content": self.content,
            "createdAt": self.created_at.isoformat(),
            "pending": self.pending,
        }

    def __repr__(self):
        return f"TranscriptEntry({self.role!r}, id={self.turn_id or self.temp_id!r})"


class Transcript:
    def __init__(self, tolerance: datetime.timedelta = DEFAULT_TOLERANCE):
        self.tolerance = tolerance
        self.entries: List[TranscriptEntry] = []

    def echo(self, role: str, content: str, created_at: Optional[datetime.datetime] = None) -> str:
        """Show a turn right away, returns its temporary id"""
        temp_id = f"tmp-{uuid.uuid4().hex}"
        self.entries.append(
            TranscriptEntry(role, content, created_at or utcnow(), temp_id=temp_id)
        )
        return temp_id

    def discard(self, temp_id: str) -> bool:
        """Drop an echo that will never be confirmed (the call failed)"""
        for entry in self.entries:
            if entry.temp_id == temp_id and entry.pending:
                self.entries.remove(entry)
                return True
        return False

    def _by_turn_id(self, turn_id: int) -> Optional[TranscriptEntry]:
        for entry in self.entries:
            if entry.turn_id == turn_id:
                return entry
        return None

    def _by_temp_id(self, temp_id: str) -> Optional[TranscriptEntry]:
        for entry in self.entries:
            if entry.temp_id == temp_id:
                return entry
        return None

    def _matching_echo(self, turn: ChatTurn) -> Optional[TranscriptEntry]:
        for entry in self.entries:
            if (
                entry.pending
                and entry.role == turn.role
                and entry.content.strip() == turn.content.strip()
                and abs(entry.created_at - turn.created_at) <= self.tolerance
            ):
                return entry
        return None

    def bind(self, temp_id: str, turn: ChatTurn):
        """Replace an echo by the durable turn the server returned for it"""
        if self._by_turn_id(turn.id) is not None:
            # the feed got there first
            self.discard(temp_id)
            return
        entry = self._by_temp_id(temp_id)
        if entry is None or not entry.pending:
            # the echo already stands for another writer's identical turn
            self.reconcile([turn])
            return
        entry.confirm(turn)
        self._sort()

    def reconcile(self, turns: Iterable[ChatTurn]):
        """Merge durable turns from any writer without duplicating echoes"""
        for turn in turns:
            if turn.id is not None and self._by_turn_id(turn.id) is not None:
                continue
            entry = self._matching_echo(turn)
            if entry is not None:
                entry.confirm(turn)
            else:
                self.entries.append(
                    TranscriptEntry(turn.role, turn.content, turn.created_at, turn_id=turn.id)
                )
        self._sort()

    def _sort(self):
        # durable turns in store order, unconfirmed echoes after them
        self.entries.sort(
            key=lambda entry: (entry.pending, entry.created_at, entry.turn_id or 0)
        )

    @property
    def last_turn_id(self) -> Optional[int]:
        ids = [entry.turn_id for entry in self.entries if entry.turn_id is not None]
        return max(ids) if ids else None

    def __iter__(self):
        return iter(self.entries)

    def __len__(self):
        return len(self.entries)
