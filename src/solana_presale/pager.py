from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .errors import PartialHistoryError
from .project_constants import SIGNATURE_PAGE_SIZE

log = logging.getLogger(__name__)

FetchPage = Callable[[Optional[str], int], Awaitable[List[Dict[str, Any]]]]


async def collect_signatures(
    fetch_page: FetchPage,
    start_time: int,
    page_size: int = SIGNATURE_PAGE_SIZE,
) -> List[str]:
    """
    Walk `getSignaturesForAddress` history backwards, newest first.

    Stops on a short page (end of history) or once a page reaches back past
    `start_time`. This relies on the data source returning signatures in
    descending block-time order.

    Returns the signatures with blockTime >= start_time, deduplicated, in the
    order they were returned. Any page failure aborts the walk; a partial
    history is never returned.
    """
    out: List[str] = []
    seen: Set[str] = set()
    before: Optional[str] = None
    pages = 0

    while True:
        try:
            page = await fetch_page(before, page_size)
        except Exception as e:
            raise PartialHistoryError(
                f"Signature history incomplete after {pages} page(s): {e}",
                collected=len(out),
            ) from e
        pages += 1

        for item in page:
            sig = item.get("signature")
            block_time = item.get("blockTime")
            if not sig or sig in seen:
                continue
            seen.add(sig)
            # Not yet confirmed in a block; picked up on the next sync.
            if block_time is None or block_time < start_time:
                continue
            out.append(sig)

        log.debug("Page %d: %d signatures, %d kept so far", pages, len(page), len(out))

        if len(page) < page_size:
            break

        oldest = page[-1].get("blockTime")
        if oldest is not None and oldest < start_time:
            break

        before = page[-1].get("signature")
        if not before:
            break

    log.info("Collected %d signatures in window (%d pages)", len(out), pages)
    return out
