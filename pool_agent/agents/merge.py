"""
Item-set merge reducer.

`merge_items(current, update)` is the LangGraph channel reducer for `items`.
Per-field policy (see WorkItem):

  payload          current value always kept (immutable source record)
  eligible         current AND update, never flips back to True
  sticky fields    current value unless it is empty
  cleared_fields   update value taken as-is (explicit reset)
  everything else  update value unless it is empty

Empty means None, "", False or an empty container. Ids missing from the update
are carried over untouched. Replaying an update is a no-op.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from pool_agent.agents.state import WorkItem

ItemT = TypeVar("ItemT", bound="WorkItem")

_IMMUTABLE_FIELDS = frozenset({"id", "payload"})


def is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (str, list, dict, set, frozenset, tuple)):
        return len(value) == 0
    return False


def merge_item(current: ItemT, update: ItemT) -> ItemT:
    """Field-wise merge of two records for the same id."""
    if current.id != update.id:
        raise ValueError(f"cannot merge item {update.id!r} into {current.id!r}")

    values: dict[str, Any] = {"cleared_fields": frozenset()}
    for name in type(current).model_fields:
        if name in _IMMUTABLE_FIELDS or name == "cleared_fields":
            continue
        old = getattr(current, name)
        new = getattr(update, name, None)

        if name == "eligible":
            values[name] = old and new
        elif name in current.sticky_fields:
            values[name] = new if is_empty(old) else old
        elif name in update.cleared_fields:
            values[name] = new
        else:
            values[name] = old if is_empty(new) else new

    return current.model_copy(update=values)


def merge_items(current: dict[str, ItemT] | None, update: dict[str, ItemT] | None) -> dict[str, ItemT]:
    """Fold a stage's partial update collection into the running collection."""
    merged: dict[str, ItemT] = dict(current or {})
    for item_id, item in (update or {}).items():
        if item_id != item.id:
            raise ValueError(f"update key {item_id!r} does not match item id {item.id!r}")
        existing = merged.get(item_id)
        if existing is None:
            merged[item_id] = item.model_copy(update={"cleared_fields": frozenset()})
        else:
            merged[item_id] = merge_item(existing, item)
    return merged
