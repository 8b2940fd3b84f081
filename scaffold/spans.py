from __future__ import annotations

from typing import Iterable

from scaffold.spec import nearest_size

# Remainders shorter than this are spread over the full spans instead of
# getting a trailing span of their own.
MIN_TRAILING_SPAN_MM = 100


def decompose_spans(wall_length_mm: int, preferred_span_mm: int, catalog: Iterable[int]) -> list[int]:
    """
    Split a wall run into catalog span lengths (mm), in placement order.

    The sum is only within catalog-snapping tolerance of ``wall_length_mm``:
    material counts follow the snapped spans, not the raw length.
    """
    sizes = tuple(sorted(int(s) for s in catalog))
    if not sizes:
        raise ValueError("span catalog is empty")
    length = int(wall_length_mm)
    if length <= 0:
        raise ValueError(f"wall length must be > 0, got {wall_length_mm}")

    fitting = [s for s in sizes if s <= int(preferred_span_mm)]
    best_span = fitting[-1] if fitting else sizes[0]

    num_spans = max(1, length // best_span)
    remainder = length - num_spans * best_span

    if remainder < MIN_TRAILING_SPAN_MM:
        even = nearest_size(length / num_spans, sizes)
        return [even] * num_spans

    return [best_span] * num_spans + [nearest_size(remainder, sizes)]


def decompose_segments(segment_lengths_mm: Iterable[int], preferred_span_mm: int, catalog: Iterable[int]) -> list[int]:
    """Decompose each straight segment of a stepped wall and concatenate the runs."""
    sizes = tuple(catalog)
    spans: list[int] = []
    for seg in segment_lengths_mm:
        spans.extend(decompose_spans(seg, preferred_span_mm, sizes))
    return spans


def group_spans(spans: Iterable[int]) -> dict[int, int]:
    """Span size -> count, ascending by size. E.g. [1800, 1800, 900] -> {900: 1, 1800: 2}."""
    counts: dict[int, int] = {}
    for s in spans:
        counts[int(s)] = counts.get(int(s), 0) + 1
    return dict(sorted(counts.items()))


def span_boundaries(spans: Iterable[int]) -> list[int]:
    out = [0]
    for s in spans:
        out.append(out[-1] + int(s))
    return out


def stair_span_indices(spans: list[int], stair_count: int, offsets_mm: Iterable[float] | None = None) -> list[int]:
    """
    Starting span index of each stair bay. A stair occupies a two-span window,
    so indices are clamped to ``len(spans) - 2``.
    """
    total = len(spans)
    upper = max(0, total - 2)
    offsets = [float(o) for o in (offsets_mm or [])]
    out: list[int] = []

    if offsets:
        bounds = span_boundaries(spans)
        for off in offsets:
            closest = min(range(len(bounds)), key=lambda i: abs(off - bounds[i]))
            if closest > 0 and off < bounds[closest]:
                idx = closest - 1
            else:
                idx = closest
            idx = max(0, min(idx, upper))
            if idx not in out:
                out.append(idx)
    else:
        for i in range(int(stair_count)):
            idx = ((i + 1) * total) // (int(stair_count) + 1)
            idx = max(0, min(idx, upper))
            if idx not in out:
                out.append(idx)

    return sorted(out)
