"""Helpers for working with sliding windows over sequences."""

from __future__ import annotations

from typing import Iterator, List, Sequence, TypeVar

from ..types import Window

T = TypeVar("T")


def iter_windows(data: Sequence[T], size: int, step: int = 1) -> Iterator[Window]:
    """Yield ``Window`` objects describing slices of *data*.

    ``size`` is the window length and ``step`` controls how far the
    window advances each iteration.  ``ValueError`` is raised if the
    arguments are not sensible.
    """

    if size <= 0 or step <= 0:
        raise ValueError("size and step must be positive")
    if size > len(data):
        raise ValueError("size larger than data")
    for start in range(0, len(data) - size + 1, step):
        yield Window(start, start + size)


def covering_windows(n: int, size: int, step: int) -> List[Window]:
    """Return windows of ``size`` samples stepping by ``step`` over ``n`` samples.

    Unlike :func:`iter_windows` a series shorter than ``size`` yields a
    single window spanning everything, and a trailing remainder longer than
    half a step gets a final window aligned to the end of the series.
    """

    if size <= 0 or step <= 0:
        raise ValueError("size and step must be positive")
    if n <= 0:
        return []
    if n <= size:
        return [Window(0, n)]
    windows = [Window(s, s + size) for s in range(0, n - size + 1, step)]
    if n - windows[-1].end > step // 2:
        windows.append(Window(n - size, n))
    return windows
