"""
Session-scoped cache of resolved resource tags.

Entries are keyed by (provider, resource_ref) and hold the folded tag dict for
that resource. A resource that is absent from the store is "unresolved" and is
treated exactly like a resource with no tags, so renders can run against a
partially populated store and simply be re-run once resolution finishes.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Mapping, Protocol, Sequence

import structlog

from spendlens.modules.billing.domain.models import BillingDetailLine
from spendlens.modules.billing.domain.normalization import (
    normalize_provider,
    normalize_tags,
    normalize_text,
)
from spendlens.shared.core.config import Settings, get_settings
from spendlens.shared.core.retry import (
    RETRYABLE_RESOLVER_EXCEPTIONS,
    resolver_retrying,
)

logger = structlog.get_logger()

TagKey = tuple[str, str]
EMPTY_TAGS: Mapping[str, str] = MappingProxyType({})


class TagResolver(Protocol):
    """External collaborator that looks up tags for a batch of resources."""

    async def resolve(
        self, provider: str, resource_refs: Sequence[str]
    ) -> Mapping[str, Any]:
        """Return resource_ref -> raw tags for the refs it knows about."""
        ...


def resource_tag_key(provider: Any, resource_ref: Any) -> TagKey | None:
    ref = normalize_text(resource_ref)
    if not ref:
        return None
    return (normalize_provider(provider), ref)


class TagStore:
    def __init__(
        self,
        entries: Mapping[TagKey, Mapping[str, Any]] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings
        self._entries: dict[TagKey, Mapping[str, str]] = {}
        self._version = 0
        for (provider, ref), tags in (entries or {}).items():
            self.commit(provider, ref, tags)

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    @property
    def version(self) -> int:
        """Bumped whenever a commit changes an entry."""
        return self._version

    def __len__(self) -> int:
        return len(self._entries)

    def is_resolved(self, provider: Any, resource_ref: Any) -> bool:
        key = resource_tag_key(provider, resource_ref)
        return key is not None and key in self._entries

    def get(self, provider: Any, resource_ref: Any) -> Mapping[str, str] | None:
        """Resolved tags, or None when the resource has not been resolved yet."""
        key = resource_tag_key(provider, resource_ref)
        if key is None:
            return None
        return self._entries.get(key)

    def tags_for(self, line: BillingDetailLine) -> Mapping[str, str]:
        """Tags for a detail line; unresolved and ref-less lines have none."""
        return self.get(line.provider, line.resource_ref) or EMPTY_TAGS

    def commit(
        self, provider: Any, resource_ref: Any, raw_tags: Any
    ) -> Mapping[str, str]:
        """
        Store the folded tags for a resource.

        Committing the same tags again is a no-op; the stored mapping is
        read-only so callers can never reshape a committed entry.
        """
        key = resource_tag_key(provider, resource_ref)
        if key is None:
            return EMPTY_TAGS
        tags = normalize_tags(raw_tags)
        existing = self._entries.get(key)
        if existing is not None and dict(existing) == tags:
            return existing
        frozen = MappingProxyType(tags)
        self._entries[key] = frozen
        self._version += 1
        return frozen

    def missing_refs(self, lines: Iterable[BillingDetailLine]) -> dict[str, list[str]]:
        """Unresolved resource refs per provider, de-duplicated in first-seen order."""
        missing: dict[str, list[str]] = {}
        seen: set[TagKey] = set()
        for line in lines:
            key = resource_tag_key(line.provider, line.resource_ref)
            if key is None or key in seen or key in self._entries:
                continue
            seen.add(key)
            missing.setdefault(key[0], []).append(key[1])
        return missing

    def snapshot(self) -> "TagStore":
        """Independent copy; later commits to either store do not leak across."""
        clone = TagStore(settings=self._settings)
        clone._entries = dict(self._entries)
        clone._version = self._version
        return clone

    async def resolve_missing(
        self, lines: Iterable[BillingDetailLine], resolver: TagResolver
    ) -> int:
        """
        Fetch tags for every unresolved resource referenced by lines.

        Refs are sent to the resolver in batches of TAG_RESOLVE_BATCH_SIZE per
        provider. Refs the resolver does not return are committed with no tags
        so they are not requested again. Transient errors are retried; a batch
        that still fails, or fails with any other error, is logged and left
        unresolved while the remaining batches continue.
        Returns the number of resources committed.
        """
        batch_size = self.settings.TAG_RESOLVE_BATCH_SIZE
        committed = 0
        failed_batches = 0
        for provider, refs in self.missing_refs(lines).items():
            for start in range(0, len(refs), batch_size):
                batch = refs[start : start + batch_size]
                try:
                    async for attempt in resolver_retrying(self.settings):
                        with attempt:
                            result = await resolver.resolve(provider, batch)
                except Exception as exc:
                    failed_batches += 1
                    logger.warning(
                        "tag_resolution_batch_failed",
                        provider=provider,
                        batch_size=len(batch),
                        error=str(exc),
                        error_type=type(exc).__name__,
                        retried=isinstance(exc, RETRYABLE_RESOLVER_EXCEPTIONS),
                    )
                    continue

                resolved = {
                    normalize_text(ref): tags for ref, tags in (result or {}).items()
                }
                for ref in batch:
                    self.commit(provider, ref, resolved.get(ref, {}))
                    committed += 1

        logger.info(
            "tag_resolution_completed",
            committed=committed,
            failed_batches=failed_batches,
            store_size=len(self._entries),
        )
        return committed
