"""
Run State - Ephemeral bookkeeping owned by one executor run.

Created empty when a run starts and discarded when it ends. Entries are
only ever added. Every unit of work in the run reads and writes this state,
always through the methods below and never across an ``await`` between a
read and the write that depends on it.
"""

import asyncio
from dataclasses import dataclass, field


@dataclass
class RunState:
    """Shared state for the units of work of a single run."""

    run_id: str
    # node id -> its unit of work, resolving to the node's text or None
    pending: dict[str, asyncio.Task[str | None]] = field(default_factory=dict)
    # node id -> final text ("" for a failed node)
    completed_text: dict[str, str] = field(default_factory=dict)
    # decision node id -> selected child id
    chosen_child: dict[str, str] = field(default_factory=dict)
    skipped: set[str] = field(default_factory=set)
    failed: set[str] = field(default_factory=set)

    def register(self, node_id: str, task: "asyncio.Task[str | None]") -> None:
        if node_id in self.pending:
            raise ValueError(f"Unit of work for node '{node_id}' already registered")
        self.pending[node_id] = task

    def unit_for(self, node_id: str) -> "asyncio.Task[str | None] | None":
        return self.pending.get(node_id)

    def is_skipped(self, node_id: str) -> bool:
        return node_id in self.skipped

    def mark_skipped(self, node_id: str) -> bool:
        """Add ``node_id`` to the skipped set. Returns False if it was already there."""
        if node_id in self.skipped:
            return False
        self.skipped.add(node_id)
        return True

    def record_text(self, node_id: str, text: str | None) -> None:
        if text is None:
            self.failed.add(node_id)
        self.completed_text[node_id] = text or ""

    def record_choice(self, decision_node_id: str, child_id: str) -> None:
        self.chosen_child[decision_node_id] = child_id

    def chosen_for(self, decision_node_id: str) -> str | None:
        return self.chosen_child.get(decision_node_id)
