"""
Node Protocol - The reasoning steps of a flow.

A node wraps one prompt sent to a language model. Nodes in ``choose`` mode
are decision points: at run time exactly one of their children is selected
and the rest of the children (and everything below them) are skipped.

Only execution-relevant fields are typed here. Anything else the editor
stores on a node (position, size, colors) rides along as extra fields.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExecutionMode(StrEnum):
    """How a node continues into its children."""

    ALL = "all"  # Every child runs
    CHOOSE = "choose"  # Exactly one child is selected at runtime


class SelectionState(StrEnum):
    """Run-scoped branch outcome for a node."""

    SELECTED = "selected"
    SKIPPED = "skipped"


class FlowNode(BaseModel):
    """
    A vertex in the flow graph.

    Examples:
        # Plain generation step
        FlowNode(id="intro", label="Intro", prompt="Explain HTTP caching")

        # Decision point picking one child
        FlowNode(
            id="route",
            label="Router",
            prompt="Who is the audience?",
            execution_mode=ExecutionMode.CHOOSE,
            condition_prompt="Pick the most technical follow-up",
        )
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: str
    type: str = "conversation"
    label: str = ""
    prompt: str = ""
    execution_mode: ExecutionMode = Field(default=ExecutionMode.ALL, alias="executionMode")
    condition_prompt: str = Field(default="", alias="conditionPrompt")

    @field_validator("execution_mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if value is None:
            return ExecutionMode.ALL
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("prompt", "label", "condition_prompt", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def is_decision(self) -> bool:
        """True when the node selects one child instead of running all of them."""
        return self.execution_mode == ExecutionMode.CHOOSE

    @property
    def display_name(self) -> str:
        return self.label or self.id

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "FlowNode":
        """
        Build a node from an editor row.

        Editor rows keep the payload in a ``data`` bag next to the identity
        columns: ``{"id": ..., "type": ..., "data": {"prompt": ...}}``. Flat
        dicts without a ``data`` key are accepted as well.

        Run-scoped keys left over from a previous run (``response``,
        ``loading``, ``selectionState``) are dropped.
        """
        data = record.get("data")
        if not isinstance(data, dict):
            payload = dict(record)
        else:
            payload = {k: v for k, v in record.items() if k != "data"}
            for key, value in data.items():
                payload.setdefault(key, value)

        for key in RUN_SCOPED_KEYS:
            payload.pop(key, None)
        return cls.model_validate(payload)


# Keys that only describe the current run and are never part of a node's identity
RUN_SCOPED_KEYS = ("response", "loading", "selectionState", "selection_state")
