"""
State Container - Versioned key-channel store with per-channel merge rules.

Every graph declares a StateSchema: a fixed set of named channels, each with
a declared value type, a reducer and a default. Nodes never mutate state;
they return partial updates, and the executor folds each update into a new
immutable StateSnapshot:

    snapshot' = schema.apply(snapshot, {"messages": [reply], "attempts": 2})

Reducers:
- replace: the update value replaces the current one (default)
- append: ordered, append-only history; never reorders or deduplicates

Example:
    schema = StateSchema(
        [
            Channel.appending("messages", Message),
            Channel("attempts", int, default=lambda: 0),
        ]
    )
    snapshot = schema.initial({"messages": [user("hello")]})
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import Any

from pydantic import TypeAdapter, ValidationError

from stepgraph.errors import SchemaViolation
from stepgraph.graph.messages import Message

Reducer = Callable[[Any, Any], Any]


def replace(current: Any, update: Any) -> Any:
    """Default reducer: the update wins."""
    return update


def append(current: Any, update: Any) -> list[Any]:
    """Append-only reducer for ordered histories. Accepts one item or a list."""
    items = update if isinstance(update, list) else [update]
    return [*(current or []), *items]


class Channel:
    """A named, reducer-governed slot in shared state."""

    def __init__(
        self,
        name: str,
        type_: Any = Any,
        reducer: Reducer = replace,
        default: Callable[[], Any] | None = None,
        item_type: Any = None,
    ):
        self.name = name
        self.type = type_
        self.reducer = reducer
        self.default = default
        self.item_type = item_type
        self._adapter: TypeAdapter = TypeAdapter(type_)
        self._item_adapter: TypeAdapter | None = (
            TypeAdapter(item_type) if item_type is not None else None
        )

    @classmethod
    def appending(cls, name: str, item_type: Any = Any) -> Channel:
        """Append-only channel holding an ordered list of ``item_type``."""
        return cls(
            name,
            list[item_type],
            reducer=append,
            default=list,
            item_type=item_type,
        )

    @property
    def is_append(self) -> bool:
        return self.reducer is append

    def default_value(self) -> Any:
        return self.default() if self.default is not None else None

    def check(self, value: Any) -> None:
        """Strictly validate an update value against the declared type."""
        try:
            if self.is_append and self._item_adapter is not None:
                items = value if isinstance(value, list) else [value]
                for item in items:
                    self._item_adapter.validate_python(item, strict=True)
            elif not self.is_append:
                self._adapter.validate_python(value, strict=True)
        except ValidationError as e:
            raise SchemaViolation(
                self.name,
                f"value of type {type(value).__name__} does not match declared type "
                f"{self.type!r}: {e.errors()[0]['msg']}",
            ) from e

    def dump(self, value: Any) -> Any:
        return self._adapter.dump_python(value, mode="json")

    def restore(self, raw: Any) -> Any:
        return self._adapter.validate_python(raw)

    def __repr__(self) -> str:
        return f"Channel({self.name!r}, {self.type!r}, reducer={self.reducer.__name__})"


class StateSnapshot(Mapping[str, Any]):
    """Immutable mapping channel -> value at one point in execution."""

    __slots__ = ("_data", "_schema")

    def __init__(self, schema: StateSchema, data: dict[str, Any]):
        self._schema = schema
        self._data = dict(data)

    @property
    def schema(self) -> StateSchema:
        return self._schema

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, StateSnapshot):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return id(self)

    def __repr__(self) -> str:
        return f"StateSnapshot({self._data!r})"

    def to_dict(self) -> dict[str, Any]:
        """Shallow copy of the snapshot as a plain dict."""
        return dict(self._data)


class StateSchema:
    """The set of channels a graph's state is made of."""

    def __init__(self, channels: list[Channel]):
        self.channels: dict[str, Channel] = {}
        for channel in channels:
            if channel.name in self.channels:
                raise ValueError(f"Duplicate channel '{channel.name}'")
            self.channels[channel.name] = channel

    def __contains__(self, name: str) -> bool:
        return name in self.channels

    def empty(self) -> StateSnapshot:
        return StateSnapshot(self, {n: c.default_value() for n, c in self.channels.items()})

    def initial(self, values: Mapping[str, Any] | None = None) -> StateSnapshot:
        """Build the first snapshot: defaults with ``values`` applied on top."""
        return self.apply(self.empty(), values or {})

    def apply(self, snapshot: Mapping[str, Any], update: Mapping[str, Any]) -> StateSnapshot:
        """Fold a partial update into a new snapshot.

        Channels absent from ``update`` pass through unchanged.

        Raises:
            SchemaViolation: unknown channel or value of the wrong type
        """
        data = dict(snapshot)
        for name, value in update.items():
            channel = self.channels.get(name)
            if channel is None:
                raise SchemaViolation(name, f"unknown channel; declared: {sorted(self.channels)}")
            channel.check(value)
            current = data.get(name)
            if current is None:
                current = channel.default_value()
            data[name] = channel.reducer(current, value)
        return StateSnapshot(self, data)

    def dump(self, snapshot: Mapping[str, Any]) -> dict[str, Any]:
        """JSON-compatible form of a snapshot, for checkpoints."""
        return {
            name: self.channels[name].dump(value) if name in self.channels else value
            for name, value in snapshot.items()
        }

    def restore(self, raw: Mapping[str, Any]) -> StateSnapshot:
        """Rebuild a snapshot from its dumped form."""
        data = {n: c.default_value() for n, c in self.channels.items()}
        for name, value in raw.items():
            channel = self.channels.get(name)
            if channel is None:
                raise SchemaViolation(name, "unknown channel in stored state")
            data[name] = channel.restore(value) if value is not None else None
        return StateSnapshot(self, data)


def apply(snapshot: StateSnapshot, update: Mapping[str, Any]) -> StateSnapshot:
    """Apply ``update`` to ``snapshot`` using the snapshot's own schema."""
    return snapshot.schema.apply(snapshot, update)


def messages_schema(*extra: Channel) -> StateSchema:
    """Schema with an append-only ``messages`` channel plus ``extra`` channels."""
    return StateSchema([Channel.appending("messages", Message), *extra])
