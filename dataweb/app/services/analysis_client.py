"""HTTP client for the external analysis service (``/analyze`` and ``/health``)."""

import logging
import threading
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from dataweb.app.config import settings
from dataweb.app.errors import InternalError, UpstreamTimeoutError, UpstreamUnavailableError
from dataweb.app.schemas.chat import AnalysisResult

logger = logging.getLogger("dataweb.analysis")


class AnalysisClient:
    def __init__(
        self,
        base_url: str,
        timeout: float,
        health_timeout: float = 3.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.health_timeout = health_timeout
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def analyze(
        self,
        file_path: str,
        schema: dict[str, Any],
        question: str,
        context: list[Any],
    ) -> AnalysisResult:
        """Forward a question to the analysis service.

        Timeouts and refused connections are reported as distinct errors so the
        caller can tell "slow" from "not running"; everything else is internal.
        """
        payload = {
            "file_path": file_path,
            "schema": schema,
            "question": question,
            "context": context,
        }
        try:
            response = self._client.post("/analyze", json=payload)
            response.raise_for_status()
            return AnalysisResult.model_validate(response.json())
        except httpx.TimeoutException as e:
            logger.warning("Analysis service timed out: %s", e)
            raise UpstreamTimeoutError()
        except httpx.ConnectError as e:
            logger.warning("Analysis service unreachable: %s", e)
            raise UpstreamUnavailableError()
        except httpx.HTTPStatusError as e:
            logger.error("Analysis service returned %s", e.response.status_code)
            raise InternalError()
        except httpx.HTTPError as e:
            logger.error("Analysis request failed: %s", e)
            raise InternalError()
        except (ValueError, PydanticValidationError) as e:
            # Non-JSON body or JSON that is not an analysis result
            logger.error("Malformed analysis response: %s", e)
            raise InternalError()

    def is_healthy(self) -> bool:
        try:
            response = self._client.get("/health", timeout=self.health_timeout)
            response.raise_for_status()
            return True
        except httpx.HTTPError:
            return False

    def close(self) -> None:
        self._client.close()


_client: AnalysisClient | None = None
_client_lock = threading.Lock()


def get_analysis_client() -> AnalysisClient:
    """Process-wide client, created on first use."""
    global _client
    if _client is not None:
        return _client
    with _client_lock:
        if _client is None:
            _client = AnalysisClient(
                base_url=settings.ANALYSIS_SERVICE_URL,
                timeout=settings.ANALYSIS_TIMEOUT_SECONDS,
                health_timeout=settings.HEALTH_PROBE_TIMEOUT_SECONDS,
            )
    return _client


def close_analysis_client() -> None:
    global _client
    with _client_lock:
        if _client is not None:
            _client.close()
            _client = None
