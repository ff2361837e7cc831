import typing as t


def collapse_ranges(numbers: t.Iterable[int]) -> t.List[t.Tuple[int, int]]:
    """Collapse sorted numbers into inclusive ``(start, end)`` ranges.

    >>> collapse_ranges([1, 2, 3, 5, 7, 8])
    [(1, 3), (5, 5), (7, 8)]
    """
    ranges: t.List[t.Tuple[int, int]] = []
    for n in numbers:
        if ranges and n == ranges[-1][1] + 1:
            ranges[-1] = (ranges[-1][0], n)
        elif not ranges or n != ranges[-1][1]:
            ranges.append((n, n))
    return ranges


def format_ranges(ranges: t.Iterable[t.Tuple[int, int]]) -> str:
    return ",".join(f"{start}-{end}" if start != end else str(start) for start, end in ranges)
