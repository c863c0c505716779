"""
Timeouts and bounded retries around calls to external services.
"""
import logging
import threading
from typing import Any, Callable, Dict, Optional

from langchain_core.runnables import RunnableLambda

from src.rag.error_handler import UpstreamUnavailable


class ResilientCaller:
    """
    Runs collaborator calls with a per-attempt deadline and exponential backoff.

    Each attempt runs on its own daemon thread and the deadline starts when
    that thread starts, so concurrent callers never wait behind each other and
    a hung HTTP call only ties up its own thread. Retries use LangChain's
    ``with_retry`` (exponential backoff with jitter). When attempts are
    exhausted the last error is wrapped in ``UpstreamUnavailable``.
    """

    def __init__(
        self,
        timeout_seconds: float = 60.0,
        max_attempts: int = 3,
        logger: Optional[logging.Logger] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.logger = logger or logging.getLogger(__name__)
        self._closed = False

    def call(self, service: str, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Invoke ``fn(*args, **kwargs)`` with timeout and retry.

        Args:
            service: Name of the collaborator (used in logs and errors)
            operation: Name of the operation being performed
            fn: The callable to run

        Returns:
            Whatever ``fn`` returns

        Raises:
            UpstreamUnavailable: If every attempt failed or timed out
        """
        if self._closed:
            raise UpstreamUnavailable(service, operation, RuntimeError("caller is closed"))

        def _attempt(_: Any) -> Any:
            outcome: Dict[str, Any] = {}

            def _target() -> None:
                try:
                    outcome["value"] = fn(*args, **kwargs)
                except Exception as e:
                    outcome["error"] = e

            worker = threading.Thread(target=_target, name=f"brain-call-{service}-{operation}", daemon=True)
            worker.start()
            worker.join(self.timeout_seconds)
            if worker.is_alive():
                # The abandoned thread finishes on its own; its result is discarded.
                self.logger.warning(f"{service}.{operation} timed out after {self.timeout_seconds}s")
                raise TimeoutError(f"{service}.{operation} timed out after {self.timeout_seconds}s")
            if "error" in outcome:
                raise outcome["error"]
            return outcome.get("value")

        runnable = RunnableLambda(_attempt)
        if self.max_attempts > 1:
            runnable = runnable.with_retry(
                retry_if_exception_type=(Exception,),
                wait_exponential_jitter=True,
                stop_after_attempt=self.max_attempts,
            )

        try:
            return runnable.invoke(None)
        except Exception as e:
            self.logger.error(
                f"{service}.{operation} failed after {self.max_attempts} attempt(s): {e}",
                exc_info=True,
            )
            raise UpstreamUnavailable(service, operation, e) from e

    def close(self) -> None:
        """Stop accepting calls. Attempts already running finish in their own threads."""
        if self._closed:
            return
        self._closed = True
