#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Base class for processing agents.
All agents (Scanner, Resolver, Fixer) inherit from this.
"""

import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Iterable, Optional


class BaseAgent(ABC):
    """
    Abstract base class for processing agents.

    Agents are responsible for specific tasks in the pipeline:
    - Scanner: Discover audio files and classify their tags
    - Resolver: Match files against a catalog source
    - Fixer: Commit tag updates (automatic or manual)
    """

    def __init__(self, config, cancel_event: Optional[threading.Event] = None):
        """
        Initialize agent with configuration.

        Args:
            config: ConfigManager instance (anything with get(key, default))
            cancel_event: Shared event; once set, no new work is started
        """
        self.config = config
        self.cancel_event = cancel_event or threading.Event()
        self._start_time: Optional[float] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Agent name identifier"""
        pass

    @abstractmethod
    def process(self, item: Any) -> Any:
        """
        Process a single item (audio file).

        Returns:
            Result record for the item
        """
        pass

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def process_batch(
        self,
        items: Iterable[Any],
        callback: Optional[Callable[[Any, Any, int], None]] = None,
        workers: int = 1
    ) -> Dict[str, Any]:
        """
        Process multiple items, one result record per item.

        A failure in one item never stops the batch. Items are pulled lazily,
        so a generator (e.g. a directory walk) is never materialized.

        Args:
            items: Items to process
            callback: Optional callback(item, result, index) called after each item
            workers: Parallel workers; 1 processes items in order

        Returns:
            Summary of batch processing
        """
        results = {
            "total": 0,
            "counts": {},
            "items": [],
            "cancelled": False
        }

        self._start_time = time.time()

        if workers <= 1:
            for item in items:
                if self.cancelled:
                    break
                self._record(results, item, self._process_safely(item), callback)
        else:
            self._process_parallel(items, results, callback, workers)

        results["cancelled"] = self.cancelled
        results["duration"] = time.time() - self._start_time
        return results

    def _process_parallel(self, items, results, callback, workers) -> None:
        """Bounded pool: at most `workers` items in flight"""
        iterator = iter(items)
        pending = {}

        with ThreadPoolExecutor(max_workers=workers) as pool:
            while True:
                while len(pending) < workers and not self.cancelled:
                    try:
                        item = next(iterator)
                    except StopIteration:
                        break
                    pending[pool.submit(self._process_safely, item)] = item

                if not pending:
                    break

                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    item = pending.pop(future)
                    self._record(results, item, future.result(), callback)

    def _process_safely(self, item: Any) -> Any:
        try:
            return self.process(item)
        except Exception as e:
            self.log_error(f"Error processing {self._describe(item)}: {e}")
            return self.error_result(item, e)

    def _record(self, results, item, result, callback) -> None:
        index = results["total"]
        results["total"] += 1
        status = self._status_of(result)
        results["counts"][status] = results["counts"].get(status, 0) + 1
        results["items"].append(result)

        if callback:
            callback(item, result, index)

    def error_result(self, item: Any, error: Exception) -> Any:
        """Result record for an item whose processing raised"""
        return {
            "path": self._describe(item),
            "status": "error",
            "error": str(error)
        }

    def _status_of(self, result: Any) -> str:
        status = result.get("status") if isinstance(result, dict) else getattr(result, "status", None)
        return getattr(status, "value", status) or "unknown"

    def _describe(self, item: Any) -> str:
        return str(getattr(item, "path", item))

    def log(self, message: str) -> None:
        """Log a message with agent name prefix"""
        print(f"[{self.name}] {message}")

    def log_error(self, message: str) -> None:
        """Log an error message"""
        print(f"[{self.name}] ERROR: {message}")

    def get_config(self, key: str, default: Any = None) -> Any:
        """Get configuration value"""
        return self.config.get(key, default)
