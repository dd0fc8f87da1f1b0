"""
Step the pixel size of Xft font descriptors.

A descriptor such as `xft:DejaVu Sans Mono:pixelsize=14:antialias=true` is a
sequence of colon-separated fields. Stepping changes the number in the one
`pixelsize=` field and leaves every other character alone. Most families step
by adding the delta. Bitmap-hinted families like Monaco only look right at a
handful of sizes; for those, the delta is an index step through the valid
sizes instead.
"""

from collections.abc import Mapping, Sequence
import logging
import re


__all__ = (
    'DescriptorError',
    'SPECIAL_FAMILIES',
    'is_special_family',
    'median',
    'pixel_size',
    'step',
    'step_fontset',
)


_logger = logging.getLogger(__name__)


PIXEL_SIZE = re.compile(r'pixelsize=(-?\d+)')


SPECIAL_FAMILIES: Mapping[str, tuple[int, ...]] = {
    'Monaco': (8, 9, 10, 11, 13, 15, 16, 18, 21, 22, 28),
}


class DescriptorError(ValueError):
    """An error indicating a malformed font descriptor."""
    pass


def median(sizes: Sequence[int]) -> int:
    """
    Determine the median of the ascending sizes, i.e., the average of the two
    middle sizes. For an odd number of sizes, both are the same. For an even
    number, the average need not be a valid size. Unlike the plain average,
    this function then picks the lower middle size, so that a reset always
    lands on a size in the table.
    """
    if not sizes:
        raise ValueError('no sizes to take the median of')
    lower = sizes[(len(sizes) - 1) // 2]
    upper = sizes[len(sizes) // 2]
    middle = (lower + upper) / 2
    return int(middle) if middle in sizes else lower


def _find_pixel_size(fields: Sequence[str]) -> None | int:
    index = None
    for position, field in enumerate(fields):
        if PIXEL_SIZE.search(field) is None:
            continue
        if index is not None:
            raise DescriptorError(
                f'font descriptor has more than one pixel size: "{":".join(fields)}"'
            )
        index = position
    return index


def _classify(
    fields: Sequence[str], skip: None | int
) -> None | tuple[str, tuple[int, ...]]:
    for position, field in enumerate(fields):
        if position == skip:
            continue
        for family, sizes in SPECIAL_FAMILIES.items():
            if family in field:
                return family, sizes
    return None


def is_special_family(descriptor: str) -> bool:
    """Determine whether the descriptor names a family with restricted sizes."""
    fields = descriptor.split(':')
    return _classify(fields, _find_pixel_size(fields)) is not None


def pixel_size(descriptor: str) -> None | int:
    """Get the descriptor's pixel size or `None` if it has none."""
    fields = descriptor.split(':')
    if (index := _find_pixel_size(fields)) is None:
        return None
    match = PIXEL_SIZE.search(fields[index])
    assert match is not None
    return int(match.group(1))


def _next_size(size: int, delta: int, sizes: None | tuple[int, ...]) -> int:
    if sizes is None:
        return size + delta

    if size not in sizes:
        reset = median(sizes)
        _logger.info('pixel size %d is not valid, resetting to %d', size, reset)
        return reset

    index = sizes.index(size) + delta
    if index < 0 or index >= len(sizes):
        _logger.info('pixel size %d already is at the limit', size)
        return size
    return sizes[index]


def step(descriptor: str, delta: int) -> str:
    """
    Step the descriptor's pixel size by the delta. If the descriptor has no
    pixel size, this function returns it unchanged. If it has more than one,
    this function raises a `DescriptorError`.
    """
    if delta == 0:
        raise ValueError('delta must not be zero')

    fields = descriptor.split(':')
    if (index := _find_pixel_size(fields)) is None:
        _logger.debug('font descriptor "%s" has no pixel size', descriptor)
        return descriptor

    special = _classify(fields, index)
    sizes = None if special is None else special[1]

    field = fields[index]
    match = PIXEL_SIZE.search(field)
    assert match is not None
    size = int(match.group(1))
    new_size = _next_size(size, delta, sizes)

    fields[index] = f'{field[:match.start()]}pixelsize={new_size}{field[match.end():]}'
    _logger.debug('stepped pixel size from %d to %d', size, new_size)
    return ':'.join(fields)


def step_fontset(value: str, delta: int) -> str:
    """
    Step every font in a comma-separated font set, such as a primary font
    followed by fallbacks.
    """
    return ','.join(step(font, delta) for font in value.split(','))
