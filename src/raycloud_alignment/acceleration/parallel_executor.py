"""
Parallel execution of independent registration tasks.

Provides GridParallelExecutor for fanning independent work items (such as
the two density grids of a registration) out to worker processes and
collecting the results in input order.
"""

from __future__ import annotations

import logging
import time
from multiprocessing import Pool, cpu_count
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


def _worker_wrapper(args: Tuple[int, Any, Callable, Dict[str, Any]]) -> Tuple[int, Any, Optional[str]]:
    """
    Run one task and capture its error instead of raising.

    Must be at module level for pickling on Windows.

    Returns:
        Tuple of (item_index, result, error_message)
    """
    idx, item, worker_fn, worker_kwargs = args
    try:
        return (idx, worker_fn(item, **worker_kwargs), None)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {str(e)}"
        logger.error(f"Worker error on item {idx}: {error_msg}")
        return (idx, None, error_msg)


class GridParallelExecutor:
    """
    Fan-out/fan-in executor for independent tasks.

    Results are returned in the same order as the input items. There is no
    partial result: a failing task fails the whole map.

    Example:
        executor = GridParallelExecutor(n_workers=2)
        grids = executor.map_tasks(
            items=[source_points, target_points],
            worker_fn=build_spectrum,
            worker_kwargs={'voxel_width': 0.5, 'extent': extent},
        )
    """

    def __init__(self, n_workers: Optional[int] = None):
        """
        Args:
            n_workers: Number of worker processes. If None, uses cpu_count - 1
                to leave one core for coordination. Minimum is 1.
        """
        if n_workers is None:
            n_workers = max(1, cpu_count() - 1)
        else:
            n_workers = max(1, int(n_workers))
        self.n_workers = n_workers
        logger.debug(f"Initialized GridParallelExecutor with {self.n_workers} workers (total CPUs: {cpu_count()})")

    def map_tasks(
        self,
        items: Sequence[Any],
        worker_fn: Callable,
        worker_kwargs: Optional[Dict[str, Any]] = None,
    ) -> List[Any]:
        """
        Map worker_fn(item, **worker_kwargs) over items.

        Args:
            items: Work items. Must be picklable when more than one worker is used.
            worker_fn: Module-level function applied to each item
            worker_kwargs: Fixed keyword arguments passed to each call

        Returns:
            List of results in input order

        Raises:
            RuntimeError: If any task fails
        """
        worker_kwargs = worker_kwargs or {}
        n_items = len(items)
        if n_items == 0:
            logger.warning("No tasks to process")
            return []

        start_time = time.time()
        if self.n_workers == 1 or n_items == 1:
            results = []
            for i, item in enumerate(items):
                try:
                    results.append(worker_fn(item, **worker_kwargs))
                except Exception as e:
                    logger.error(f"Error processing item {i}: {e}", exc_info=True)
                    raise RuntimeError(f"Task processing failed: {e}") from e
            logger.debug(f"Sequential processing complete: {n_items} tasks in {time.time() - start_time:.2f}s")
            return results

        worker_args = [(i, item, worker_fn, worker_kwargs) for i, item in enumerate(items)]
        results_dict: Dict[int, Any] = {}
        errors: List[Tuple[int, str]] = []
        with Pool(processes=min(self.n_workers, n_items)) as pool:
            for idx, result, error in pool.imap_unordered(_worker_wrapper, worker_args):
                if error:
                    errors.append((idx, error))
                else:
                    results_dict[idx] = result

        if errors:
            error_msg = f"{len(errors)} tasks failed out of {n_items}"
            logger.error(error_msg)
            for idx, error in errors[:5]:
                logger.error(f"  Item {idx}: {error}")
            raise RuntimeError(error_msg)

        logger.debug(
            f"Parallel processing complete: {n_items} tasks on {min(self.n_workers, n_items)} "
            f"workers in {time.time() - start_time:.2f}s"
        )
        return [results_dict[i] for i in range(n_items)]
