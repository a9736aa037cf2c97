"""
Parse Worker
============
Message boundary for running parses off the caller's thread.

Request and response are plain dicts:
    {"text": "..."}                                   → request
    {"status": "success", "questions": [...]}         → response
    {"status": "error", "error": "..."}               → response

Usage:
    response = handle_message({"text": raw})

    # Or in the background
    spawn_parse_worker({"text": raw}, callback=on_done)
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Callable, Optional

from .engine import ParserConfig, ParsingEngine
from .models import ParseRequest

logger = logging.getLogger(__name__)

# ─── Active Worker Registry ──────────────────────────────────────────────────

_active_workers: dict[str, threading.Thread] = {}
_workers_lock = threading.Lock()
_worker_ids = itertools.count(1)


def active_workers() -> list[str]:
    """Names of the workers currently running."""
    with _workers_lock:
        return sorted(_active_workers)


def handle_message(
    message: dict,
    config: Optional[ParserConfig] = None,
) -> dict:
    """
    Parse the text carried by a request message.

    Never raises; failures are reported in the response.
    """
    try:
        request = ParseRequest.model_validate(message)
        if not request.text:
            return {"status": "error", "error": "No text provided"}

        questions = ParsingEngine(config).parse(request.text)
        return {
            "status": "success",
            "questions": [q.model_dump() for q in questions],
        }
    except Exception as e:
        logger.exception(f"Parse worker failed: {e}")
        return {"status": "error", "error": str(e)}


def spawn_parse_worker(
    message: dict,
    callback: Callable[[dict], None],
    config: Optional[ParserConfig] = None,
) -> threading.Thread:
    """
    Spawn a background thread that handles one request.

    Args:
        message: Request message, {"text": ...}.
        callback: Receives the response dict when the parse finishes.
        config: Parser configuration.

    Returns:
        The spawned Thread object.
    """
    name = f"parser-worker-{next(_worker_ids)}"

    def run():
        with _workers_lock:
            _active_workers[name] = threading.current_thread()
        try:
            callback(handle_message(message, config))
        finally:
            with _workers_lock:
                _active_workers.pop(name, None)

    thread = threading.Thread(target=run, daemon=True, name=name)
    thread.start()

    logger.info(f"Spawned worker thread {name}")
    return thread
