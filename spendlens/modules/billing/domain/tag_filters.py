"""
Tag filter definitions and predicate evaluator.

A TagFilterSpec is one of five modes:

- all:            every line
- tagged:         line has a resource ref with at least one resolved tag
- untagged:       line has no resource ref, or no resolved tags
- key_null(key):  line has no value for key (no tags, key missing, or "" / "null")
- kv(key, value): line has key with exactly value

Keys and values are folded to lower case when a filter is built, and tag
stores hold folded tags, so evaluation compares strings directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from spendlens.modules.billing.domain.models import BillingDetailLine
from spendlens.modules.billing.domain.normalization import (
    is_null_tag_value,
    normalize_tag_key,
    normalize_tag_value,
)
from spendlens.modules.billing.domain.tag_store import TagStore
from spendlens.shared.core.exceptions import InvalidTagFilterError


class TagFilterMode(str, Enum):
    ALL = "all"
    TAGGED = "tagged"
    UNTAGGED = "untagged"
    KEY_NULL = "key_null"
    KV = "kv"


@dataclass(frozen=True, slots=True)
class TagFilterSpec:
    mode: TagFilterMode = TagFilterMode.ALL
    key: str | None = None
    value: str | None = None

    def __post_init__(self) -> None:
        try:
            mode = TagFilterMode(self.mode)
        except ValueError as exc:
            raise InvalidTagFilterError(
                f"Unknown tag filter mode '{self.mode}'.", details={"mode": self.mode}
            ) from exc
        object.__setattr__(self, "mode", mode)

        if mode in (TagFilterMode.KEY_NULL, TagFilterMode.KV):
            key = normalize_tag_key(self.key)
            if not key:
                raise InvalidTagFilterError(
                    f"Tag filter '{mode.value}' requires a tag key.",
                    details={"mode": mode.value},
                )
            object.__setattr__(self, "key", key)
        else:
            object.__setattr__(self, "key", None)

        if mode is TagFilterMode.KV:
            if self.value is None:
                raise InvalidTagFilterError(
                    "Tag filter 'kv' requires a tag value.",
                    details={"mode": mode.value, "key": self.key},
                )
            object.__setattr__(self, "value", normalize_tag_value(self.value))
        else:
            object.__setattr__(self, "value", None)

    @classmethod
    def all(cls) -> "TagFilterSpec":
        return cls(TagFilterMode.ALL)

    @classmethod
    def tagged(cls) -> "TagFilterSpec":
        return cls(TagFilterMode.TAGGED)

    @classmethod
    def untagged(cls) -> "TagFilterSpec":
        return cls(TagFilterMode.UNTAGGED)

    @classmethod
    def key_null(cls, key: str) -> "TagFilterSpec":
        return cls(TagFilterMode.KEY_NULL, key=key)

    @classmethod
    def kv(cls, key: str, value: Any) -> "TagFilterSpec":
        return cls(TagFilterMode.KV, key=key, value=value)

    @property
    def is_active(self) -> bool:
        return self.mode is not TagFilterMode.ALL


ALL_TAGS = TagFilterSpec.all()


def is_tagged(line: BillingDetailLine, tags: Mapping[str, str]) -> bool:
    return bool(line.resource_ref) and len(tags) > 0


def is_untagged(line: BillingDetailLine, tags: Mapping[str, str]) -> bool:
    return not line.resource_ref or len(tags) == 0


def matches_tag_filter(
    line: BillingDetailLine, spec: TagFilterSpec, tag_store: TagStore
) -> bool:
    """Whether line satisfies spec, using tags resolved in tag_store."""
    if spec.mode is TagFilterMode.ALL:
        return True

    tags = tag_store.tags_for(line)
    if spec.mode is TagFilterMode.TAGGED:
        return is_tagged(line, tags)
    if spec.mode is TagFilterMode.UNTAGGED:
        return is_untagged(line, tags)
    if spec.mode is TagFilterMode.KEY_NULL:
        return is_null_tag_value(tags.get(spec.key or ""))

    # kv
    if not line.resource_ref or not tags:
        return False
    return tags.get(spec.key or "") == spec.value
