"""
Bounded worker pool for Mockup Studio.

Image work is CPU-bound, so requests run on a thread pool sized to the
available CPUs. Each submission gets its own cancellation token; a
timeout or an abandoned awaiting task cancels the token and the
pipeline stops at its next stage boundary.
"""

import asyncio
import os
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Optional, Tuple

from loguru import logger

from mockup_studio.config import get_config
from mockup_studio.errors import PipelineCancelled
from mockup_studio.models import CompositeRequest, MockupResult
from mockup_studio.pipeline import CancellationToken, MockupPipeline


class MockupWorkerPool:
    """Runs independent mockup requests concurrently, up to `max_workers` at a time."""

    def __init__(self, pipeline: MockupPipeline = None, max_workers: Optional[int] = None):
        if max_workers is None:
            max_workers = get_config().MAX_WORKERS
        self.max_workers = max_workers or os.cpu_count() or 1
        self.pipeline = pipeline or MockupPipeline()
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers,
                                            thread_name_prefix="mockup-worker")
        logger.info(f"Mockup worker pool started with {self.max_workers} workers")

    def submit(self, request: CompositeRequest,
               token: CancellationToken = None) -> Tuple[Future, CancellationToken]:
        """Queue a request; returns its future and the token that cancels it."""
        token = token or CancellationToken()
        future = self._executor.submit(self.pipeline.run, request, token)
        return future, token

    def run(self, request: CompositeRequest, timeout: Optional[float] = None) -> MockupResult:
        """Run a request and wait for it; on timeout the request is cancelled."""
        future, token = self.submit(request)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            token.cancel(f"timed out after {timeout}s")
            future.cancel()
            logger.warning(f"Mockup request {request.request_id} timed out after {timeout}s")
            raise PipelineCancelled("timeout", request.request_id)

    async def run_async(self, request: CompositeRequest) -> MockupResult:
        """Await a request without blocking the event loop."""
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, self.pipeline.run, request, token)
        except asyncio.CancelledError:
            token.cancel("awaiting task was cancelled")
            raise

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        logger.info("Mockup worker pool stopped")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False
