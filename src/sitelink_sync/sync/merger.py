"""Ordered merge of lazily produced log-event sequences.

Every log query (one per log kind, and per namespace where the site can
filter by namespace) returns events ascending by time.  The engine needs
them as a single ascending stream, so the sequences are merged pairwise
and the pairwise merges are chained.

Key design choices:

* **Lazy** -- each input is advanced only when its head has been
  emitted, so at most one element per input is buffered and pagination
  requests happen only as the consumer pulls.
* **Stable tie-break** -- when two heads compare equal the head of the
  *first* input is emitted first.
* **Fail fast** -- an exception raised while advancing any input
  propagates out of the merge; nothing further is emitted.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from functools import reduce
from typing import Any, TypeVar

from .models import event_sort_key

T = TypeVar("T")

_EXHAUSTED = object()


def ordered_merge(
    first: Iterable[T],
    second: Iterable[T],
    key: Callable[[T], Any] = event_sort_key,
) -> Iterator[T]:
    """Merge two ascending iterables into one ascending iterator.

    Args:
        first: Iterable sorted non-decreasingly by *key*.
        second: Iterable sorted non-decreasingly by *key*.
        key: Sort key; defaults to ``(timestamp, event_id)``.

    Yields:
        Elements of both inputs in non-decreasing *key* order.  On equal
        keys the element from *first* comes first.
    """
    it1 = iter(first)
    it2 = iter(second)
    head1 = next(it1, _EXHAUSTED)
    head2 = next(it2, _EXHAUSTED)
    while head1 is not _EXHAUSTED or head2 is not _EXHAUSTED:
        if head2 is _EXHAUSTED or (
            head1 is not _EXHAUSTED and key(head1) <= key(head2)
        ):
            yield head1  # type: ignore[misc]
            head1 = next(it1, _EXHAUSTED)
        else:
            yield head2  # type: ignore[misc]
            head2 = next(it2, _EXHAUSTED)


def merge_all(
    sequences: Iterable[Iterable[T]],
    key: Callable[[T], Any] = event_sort_key,
) -> Iterator[T]:
    """Merge any number of ascending iterables by chaining pairwise merges.

    ``merge_all([a, b, c])`` is ``ordered_merge(ordered_merge(a, b), c)``,
    so ties resolve in favour of the earlier sequence.

    Args:
        sequences: Ascending iterables.  Zero sequences yield nothing and
            a single sequence passes through unchanged.
        key: Sort key shared by all sequences.
    """
    iterators = [iter(s) for s in sequences]
    if not iterators:
        return iter(())
    return reduce(
        lambda merged, nxt: ordered_merge(merged, nxt, key),
        iterators,
    )
