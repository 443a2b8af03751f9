"""
FIPE API client with adaptive throttling and retry logic.

This module provides:
- A self-tuning minimum interval between requests (see fipe.throttle)
- Exponential backoff for rate limiting (HTTP 429) and other failures
- Detection of FIPE error payloads returned with HTTP 200
- Pydantic validation of every response

Endpoints (all JSON POST under FIPE_BASE_URL):
- ConsultarTabelaDeReferencia: reference periods
- ConsultarMarcas: brands of a period
- ConsultarModelos: models of a brand
- ConsultarAnoModelo: year/fuel combinations of a model
- ConsultarValorComTodosParametros: price of a model-year
"""

import asyncio
import math
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from core.config import settings
from core.exceptions import (
    DomainError,
    RateLimited,
    TransportFailure,
    ValidationError,
)
from fipe.throttle import ThrottleController
from schemas.fipe import (
    BrandPayload,
    FipeErrorPayload,
    ModelsPayload,
    ModelYearPayload,
    PricePayload,
    ReferenceTablePayload,
)
import logging

logger = logging.getLogger(__name__)

RATE_LIMIT_BACKOFF_SECONDS = 5.0
FAILURE_BACKOFF_SECONDS = 1.0
MAX_RETRY_AFTER_SECONDS = 300.0

_periods_adapter = TypeAdapter(List[ReferenceTablePayload])
_brands_adapter = TypeAdapter(List[BrandPayload])
_models_adapter = TypeAdapter(ModelsPayload)
_years_adapter = TypeAdapter(List[ModelYearPayload])
_price_adapter = TypeAdapter(PricePayload)


class FipeClient:
    """
    Async client for the FIPE vehicle price API.

    One instance owns one ThrottleController, so every request made through
    it shares the same adaptive interval.

    Attributes:
        base_url: FIPE API root
        vehicle_type: 1 cars, 2 motorcycles, 3 trucks
        max_retries: Retries per logical call (attempts = max_retries + 1)
        throttle: Adaptive interval state
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        vehicle_type: Optional[int] = None,
        throttle: Optional[ThrottleController] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = (base_url or settings.FIPE_BASE_URL).rstrip("/")
        self.vehicle_type = vehicle_type if vehicle_type is not None else settings.FIPE_VEHICLE_TYPE
        self.max_retries = max_retries if max_retries is not None else settings.MAX_RETRIES
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT
        self.throttle = throttle or ThrottleController(
            base_interval_ms=settings.RATE_LIMIT_MS,
            max_interval_ms=settings.MAX_THROTTLE_MS,
        )

        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": "fipe-sync/1.0"},
        )
        self._clock = clock
        self._sleep = sleep
        self._last_request_at: Optional[float] = None

    async def __aenter__(self) -> "FipeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        if self._owns_http:
            await self._http.aclose()

    # =========================================================================
    # Transport
    # =========================================================================

    async def _wait_for_slot(self):
        """Block until the current interval has passed since the last request completed."""
        if self._last_request_at is None:
            return
        elapsed = self._clock() - self._last_request_at
        remaining = self.throttle.interval_seconds - elapsed
        if remaining > 0:
            await self._sleep(remaining)

    @staticmethod
    def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
        value = response.headers.get("Retry-After")
        if value is None:
            return None
        try:
            seconds = float(value)
        except ValueError:
            return None
        if not math.isfinite(seconds) or seconds < 0:
            return None
        return min(seconds, MAX_RETRY_AFTER_SECONDS)

    async def _request(self, endpoint: str, body: Dict[str, Any]) -> Any:
        """
        POST to a FIPE endpoint with throttling and retries.

        Returns:
            Parsed JSON body

        Raises:
            RateLimited: Still rate limited after max_retries
            TransportFailure: Non-2xx, network or decoding error after max_retries
            DomainError: FIPE error payload (not retried)
            ValidationError: Body is not JSON
        """
        url = f"{self.base_url}/{endpoint}"

        for attempt in range(self.max_retries + 1):
            await self._wait_for_slot()

            response: Optional[httpx.Response] = None
            error: Optional[httpx.RequestError] = None
            try:
                logger.debug(f"POST {endpoint} attempt {attempt + 1}/{self.max_retries + 1}")
                response = await self._http.post(url, json=body, timeout=self.timeout)
            except httpx.RequestError as e:
                error = e
            finally:
                self._last_request_at = self._clock()

            retries_left = attempt < self.max_retries
            context = {"endpoint": endpoint, "retry_count": attempt}

            if response is not None and response.status_code == 429:
                interval = self.throttle.on_rate_limited()
                hint = self._retry_after_seconds(response)
                delay = hint if hint is not None else RATE_LIMIT_BACKOFF_SECONDS * (2 ** attempt)
                logger.warning(
                    f"Rate limited on {endpoint}. Interval now {interval:.0f}ms, "
                    f"waiting {delay:.1f}s (attempt {attempt + 1}/{self.max_retries + 1})"
                )
                # Cool down even when giving up, the upstream is already degraded
                await self._sleep(delay)
                if retries_left:
                    continue
                raise RateLimited(
                    f"Rate limit exceeded for {endpoint}",
                    context=context,
                    retry_after=hint,
                )

            if error is not None or not response.is_success:
                reason = (
                    f"{type(error).__name__}: {error}" if error is not None
                    else f"HTTP {response.status_code}"
                )
                if retries_left:
                    delay = FAILURE_BACKOFF_SECONDS * (2 ** attempt)
                    logger.warning(
                        f"{reason} on {endpoint}. Retrying in {delay:.1f}s "
                        f"(attempt {attempt + 1}/{self.max_retries + 1})"
                    )
                    await self._sleep(delay)
                    continue
                if response is not None:
                    context["response_body"] = response.text[:500]
                raise TransportFailure(
                    f"{reason} on {endpoint} after {self.max_retries} retries",
                    context=context,
                    original_exception=error,
                    status_code=response.status_code if response is not None else None,
                )

            return self._parse(endpoint, response)

        # range() always ends in continue/raise/return above
        raise TransportFailure(f"Retry budget exhausted for {endpoint}", context={"endpoint": endpoint})

    def _parse(self, endpoint: str, response: httpx.Response) -> Any:
        try:
            data = response.json()
        except ValueError as e:
            raise ValidationError(
                "Failed to parse JSON response",
                context={"endpoint": endpoint, "response_body": response.text[:500]},
                original_exception=e,
            )

        if isinstance(data, dict) and "erro" in data and "codigo" in data:
            error = FipeErrorPayload.model_validate(data)
            raise DomainError(
                f"FIPE error: {error.message}",
                context={"endpoint": endpoint},
                code=error.code,
            )

        self.throttle.on_success()
        return data

    @staticmethod
    def _validate(adapter: TypeAdapter, data: Any, endpoint: str):
        try:
            return adapter.validate_python(data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Unexpected payload shape from {endpoint}",
                context={"endpoint": endpoint, "errors": e.error_count()},
                original_exception=e,
            )

    # =========================================================================
    # Endpoints
    # =========================================================================

    async def list_periods(self) -> List[ReferenceTablePayload]:
        endpoint = "ConsultarTabelaDeReferencia"
        data = await self._request(endpoint, {})
        return self._validate(_periods_adapter, data, endpoint)

    async def list_brands(self, period_code: int) -> List[BrandPayload]:
        endpoint = "ConsultarMarcas"
        data = await self._request(endpoint, {
            "codigoTipoVeiculo": self.vehicle_type,
            "codigoTabelaReferencia": period_code,
        })
        return self._validate(_brands_adapter, data, endpoint)

    async def list_models(self, period_code: int, brand_code: str) -> ModelsPayload:
        endpoint = "ConsultarModelos"
        data = await self._request(endpoint, {
            "codigoTipoVeiculo": self.vehicle_type,
            "codigoTabelaReferencia": period_code,
            "codigoMarca": brand_code,
        })
        return self._validate(_models_adapter, data, endpoint)

    async def list_model_years(
        self, period_code: int, brand_code: str, model_code: str
    ) -> List[ModelYearPayload]:
        endpoint = "ConsultarAnoModelo"
        data = await self._request(endpoint, {
            "codigoTipoVeiculo": self.vehicle_type,
            "codigoTabelaReferencia": period_code,
            "codigoMarca": brand_code,
            "codigoModelo": model_code,
        })
        return self._validate(_years_adapter, data, endpoint)

    async def get_price(
        self,
        period_code: int,
        brand_code: str,
        model_code: str,
        year: Union[int, str],
        fuel_code: int,
    ) -> PricePayload:
        endpoint = "ConsultarValorComTodosParametros"
        data = await self._request(endpoint, {
            "codigoTipoVeiculo": self.vehicle_type,
            "codigoTabelaReferencia": period_code,
            "codigoMarca": brand_code,
            "codigoModelo": model_code,
            "anoModelo": str(year),
            "codigoTipoCombustivel": fuel_code,
            "tipoConsulta": "tradicional",
        })
        return self._validate(_price_adapter, data, endpoint)
