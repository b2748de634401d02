"""
Async API for live search.

The live-search client is blocking; these helpers run it in a shared thread
pool so that many lookups can be awaited concurrently from one event loop.

Example:
    import asyncio
    from award_reconciler.async_api import search_programs

    async def main():
        results = await search_programs("SEA", "NRT", "2024-05-01", 2, ["as", "aa"])
        for result in results:
            print(result.program, result.success, result.option_count)

    asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from functools import partial
from typing import Any, Callable, Iterable, List, Optional, Tuple, TypeVar, Union

from .cache import LiveSearchCache, generate_cache_key
from .config import get_config
from .errors import VerificationError
from .live_schema import LiveSearchResponse, ProgramSearchResult
from .live_search import LiveSearchClient, parse_response
from .utils import to_date

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Programs the live-search form queries by default
LIVE_SEARCH_PROGRAMS: Tuple[str, ...] = ("b6", "as", "ay", "aa")

_executor: Optional[ThreadPoolExecutor] = None
_max_workers: Optional[int] = None


def get_executor(max_workers: Optional[int] = None) -> ThreadPoolExecutor:
    """
    Get or create the thread pool executor for async operations.

    Args:
        max_workers: Maximum number of worker threads (default: from config)
    """
    global _executor, _max_workers

    if max_workers is not None:
        _max_workers = max_workers

    if _executor is None or _executor._shutdown:
        _executor = ThreadPoolExecutor(max_workers=_max_workers or get_config().max_workers)

    return _executor


def shutdown_executor(wait: bool = True) -> None:
    """
    Shutdown the thread pool executor.

    Args:
        wait: If True, wait for all pending futures to complete.
    """
    global _executor
    if _executor is not None:
        _executor.shutdown(wait=wait)
        _executor = None


async def run_in_executor(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run a synchronous function in the thread pool executor.

    Example:
        data = await run_in_executor(client.fetch, "as", "SEA", "NRT", "2024-05-01", 2)
    """
    loop = asyncio.get_running_loop()

    if kwargs:
        func = partial(func, **kwargs)

    return await loop.run_in_executor(get_executor(), func, *args)


async def cached_search(
    client: LiveSearchClient,
    cache: Optional[LiveSearchCache],
    program: str,
    from_iata: str,
    to_iata: str,
    depart: str,
    seats: int,
    retry: bool = True,
) -> Tuple[LiveSearchResponse, bool]:
    """
    Look a span up in the cache, falling back to live search.

    Only successful responses are stored. Pass ``retry=False`` for a
    single attempt.

    Returns:
        The parsed response and whether it came from the cache
    """
    key = generate_cache_key(program, from_iata, to_iata, depart, seats)

    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return parse_response(cached), True

    payload = await run_in_executor(
        client.fetch, program, from_iata, to_iata, depart, seats, retry=retry
    )
    response = parse_response(payload)

    if cache is not None:
        cache.set(key, payload)

    return response, False


async def search_programs(
    from_iata: str,
    to_iata: str,
    depart: str,
    seats: int,
    programs: Iterable[str] = LIVE_SEARCH_PROGRAMS,
    client: Optional[LiveSearchClient] = None,
    cache: Optional[LiveSearchCache] = None,
    max_concurrent: Optional[int] = None,
) -> List[ProgramSearchResult]:
    """
    Search one route on several programs concurrently.

    Failures are reported on the matching result instead of raised.

    Args:
        from_iata: Origin airport IATA code
        to_iata: Destination airport IATA code
        depart: Departure date (YYYY-MM-DD)
        seats: Number of seats
        programs: Program codes to query
        client: Live-search client (default: new client from config)
        cache: Optional cache shared with verification
        max_concurrent: Maximum concurrent searches

    Returns:
        One ProgramSearchResult per program, in input order
    """
    client = client or LiveSearchClient()
    semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent else None

    async def search_one(program: str) -> ProgramSearchResult:
        result = ProgramSearchResult(
            program=program,
            from_iata=from_iata,
            to_iata=to_iata,
            depart=depart,
            seats=seats,
        )
        try:
            if semaphore:
                async with semaphore:
                    data, hit = await cached_search(client, cache, program, from_iata, to_iata, depart, seats)
            else:
                data, hit = await cached_search(client, cache, program, from_iata, to_iata, depart, seats)
        except Exception as e:
            logger.warning(f"Live search {program.upper()} {from_iata}-{to_iata} {depart} failed: {e}")
            result.error = VerificationError.from_exception(e)
            return result

        result.data = data
        result.from_cache = hit
        return result

    return await asyncio.gather(*(search_one(p) for p in programs))


def dates_in_range(start: Union[str, date], end: Union[str, date]) -> List[str]:
    """
    Every date from ``start`` to ``end`` inclusive, as ISO strings.

    Examples:
        >>> dates_in_range("2024-05-01", "2024-05-03")
        ['2024-05-01', '2024-05-02', '2024-05-03']
    """
    current = to_date(start)
    last = to_date(end)
    dates = []
    while current <= last:
        dates.append(current.isoformat())
        current += timedelta(days=1)
    return dates


async def search_matrix(
    origins: Iterable[str],
    destinations: Iterable[str],
    dates: Iterable[str],
    seats: int,
    programs: Iterable[str] = LIVE_SEARCH_PROGRAMS,
    client: Optional[LiveSearchClient] = None,
    cache: Optional[LiveSearchCache] = None,
    max_concurrent: Optional[int] = 5,
) -> List[ProgramSearchResult]:
    """
    Search every program x origin x destination x date combination.

    Same-airport pairs are skipped.
    """
    client = client or LiveSearchClient()
    programs = list(programs)
    destinations = list(destinations)
    dates = list(dates)
    semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent else None

    async def run_route(from_iata: str, to_iata: str, depart: str) -> List[ProgramSearchResult]:
        if semaphore:
            async with semaphore:
                return await search_programs(from_iata, to_iata, depart, seats, programs, client, cache)
        return await search_programs(from_iata, to_iata, depart, seats, programs, client, cache)

    tasks = [
        run_route(o.upper(), d.upper(), day)
        for o in origins
        for d in destinations
        for day in dates
        if o.upper() != d.upper()
    ]
    logger.info(f"Live search matrix: {len(tasks) * len(programs)} lookups")

    results: List[ProgramSearchResult] = []
    for batch in await asyncio.gather(*tasks):
        results.extend(batch)
    return results


__all__ = [
    "LIVE_SEARCH_PROGRAMS",
    "get_executor",
    "shutdown_executor",
    "run_in_executor",
    "cached_search",
    "search_programs",
    "dates_in_range",
    "search_matrix",
]
