"""Maps character ranges of the full text back to PDF pages and boxes.

Uses the page offset table and the text runs recorded at extraction
time. Runs may be ``TextRun`` objects or their stored dict form.
"""

from bisect import bisect_right
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Sequence, Union

from app.schemas.quote import BoundingBox, PageBoxes
from app.services.extraction.pdf_text_extractor import TextRun
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

RunLike = Union[TextRun, Dict[str, Any]]


def page_for_char(char_index: int, page_offsets: Sequence[int]) -> int:
    """Return the 1-indexed page containing ``char_index``.

    The page is the last one whose start offset is at or before the
    index. Positions before the first offset, or an empty table, map to
    page 1.
    """
    if not page_offsets:
        return 1
    return max(1, bisect_right(page_offsets, char_index))


def _as_run(run: RunLike) -> TextRun:
    return run if isinstance(run, TextRun) else TextRun.from_dict(run)


def bounding_boxes_for_range(
    start: int,
    end: int,
    text_runs: Iterable[RunLike],
    page_offsets: Sequence[int],
) -> List[PageBoxes]:
    """Collect the boxes of every run overlapping ``[start, end)``.

    Runs are grouped by page in ascending page order and keep their
    original order within a page. A run whose page was not recorded is
    placed by its ``char_start``.

    Args:
        start: Range start (inclusive)
        end: Range end (exclusive)
        text_runs: Runs of the document, as TextRun or dict
        page_offsets: Start offset of each page

    Returns:
        One PageBoxes per page touched by the range; empty if no run overlaps
    """
    if end <= start:
        return []

    by_page: Dict[int, List[BoundingBox]] = defaultdict(list)
    for raw in text_runs:
        run = _as_run(raw)
        if run.char_start < end and run.char_end > start:
            page = run.page or page_for_char(run.char_start, page_offsets)
            by_page[page].append(run.bbox)

    if not by_page:
        LOGGER.debug(
            "No text runs overlap character range",
            extra={"start": start, "end": end}
        )

    return [
        PageBoxes(page_number=page, boxes=boxes)
        for page, boxes in sorted(by_page.items())
    ]
