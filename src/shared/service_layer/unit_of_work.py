from __future__ import annotations

"""Abstract Unit of Work pattern for coordinating operations across repositories."""

import abc


class AbstractUnitOfWork(abc.ABC):
    """Abstract Unit of Work for coordinating operations across repositories."""

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(self, *args):
        self.rollback()

    def commit(self):
        self._commit()

    def record_event(self, event):
        """Queue a domain event to be dispatched once the handler returns."""
        if not hasattr(self, "new_events"):
            self.new_events = []
        self.new_events.append(event)

    def collect_new_events(self):
        """Hand queued domain events to the message bus, oldest first."""
        pending = getattr(self, "new_events", [])
        while pending:
            yield pending.pop(0)

    @abc.abstractmethod
    def _commit(self):
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self):
        raise NotImplementedError
