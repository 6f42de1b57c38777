"""Live subscriber set owned by the dispatcher."""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional

from nexboard.streaming.subscriber import Subscriber


class SubscriberRegistry:
    """Mapping from subscriber id to subscriber.

    Only the dispatcher task mutates the registry. Each mutation publishes a
    fresh mapping, so `snapshot` and `count` can be read from any task or
    thread without locking and never observe a half-applied change.
    """

    def __init__(self) -> None:
        self._members: Mapping[str, Subscriber] = MappingProxyType({})

    def insert(self, sub: Subscriber) -> None:
        members = dict(self._members)
        members[sub.id] = sub
        self._members = MappingProxyType(members)

    def remove(self, subscriber_id: str) -> Optional[Subscriber]:
        """Remove a subscriber if present and close its mailbox."""
        removed = self.remove_many([subscriber_id])
        return removed[0] if removed else None

    def remove_many(self, subscriber_ids: Iterable[str]) -> List[Subscriber]:
        members = dict(self._members)
        removed = []
        for subscriber_id in subscriber_ids:
            sub = members.pop(subscriber_id, None)
            if sub is None:
                continue
            sub.mailbox.close()
            removed.append(sub)
        if removed:
            self._members = MappingProxyType(members)
        return removed

    def clear(self) -> List[Subscriber]:
        return self.remove_many(list(self._members))

    def get(self, subscriber_id: str) -> Optional[Subscriber]:
        return self._members.get(subscriber_id)

    def snapshot(self) -> List[Subscriber]:
        return list(self._members.values())

    def count(self) -> int:
        return len(self._members)

    def __contains__(self, subscriber_id: object) -> bool:
        return subscriber_id in self._members

    def __len__(self) -> int:
        return self.count()


__all__ = ["SubscriberRegistry"]
