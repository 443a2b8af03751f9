"""
Pytest configuration and fixtures
"""

import json
import os
from typing import AsyncGenerator, Dict, List, Optional, Set, Tuple

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

import models  # noqa: F401  (registers every table on Base.metadata)
from core.database import get_session_maker
from crawler.repository import SyncRepository
from fipe.client import FipeClient
from fipe.throttle import ThrottleController
from models.base import Base

# Defaults to a throwaway SQLite file per test
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

FIPE_TEST_URL = "https://fipe.test/api/veiculos"


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine"""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'fipe_test.db'}"
    engine = create_async_engine(
        url,
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return get_session_maker(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def repository(db_session):
    return SyncRepository(db_session)


# ============================================================================
# Fake FIPE service
# ============================================================================

class FakeFipe:
    """
    In-process stand-in for the FIPE API, mounted with httpx.MockTransport.

    Catalogue: three periods, two brands with one model each, one
    model-year per model. Tests mutate the dictionaries to shape responses.
    """

    def __init__(self):
        self.periods = [
            {"Codigo": 328, "Mes": "dezembro/2025 "},
            {"Codigo": 327, "Mes": "novembro/2025 "},
            {"Codigo": 316, "Mes": "dezembro/2024 "},
        ]
        self.brands = [
            {"Label": "Fiat", "Value": "21"},
            {"Label": "VW - VolksWagen", "Value": "59"},
        ]
        self.models: Dict[str, List[dict]] = {
            "21": [{"Label": "Uno Mille 1.0 Fire", "Value": 4828}],
            "59": [{"Label": "Gol 1.0 12V", "Value": 5940}],
        }
        self.years: Dict[Tuple[str, str], List[dict]] = {
            ("21", "4828"): [{"Label": "2020 Gasolina", "Value": "2020-1"}],
            ("59", "5940"): [{"Label": "2021 Gasolina", "Value": "2021-1"}],
        }
        self.prices: Dict[Tuple[str, str, str, int], dict] = {
            ("21", "4828", "2020", 1): self.price("R$ 40.000,00", "Fiat", "Uno Mille 1.0 Fire", 2020, "001004-9"),
            ("59", "5940", "2021", 1): self.price("R$ 52.345,67", "VW - VolksWagen", "Gol 1.0 12V", 2021, "005340-6"),
        }

        # Keys answered with a FIPE error payload, e.g. ("ConsultarModelos", "21")
        self.broken: Set[tuple] = set()
        # Keys answered with a gzip header over a body that is not gzip
        self.corrupt: Set[tuple] = set()
        # Responses served before normal routing, oldest first
        self.queue: List[httpx.Response] = []
        self.requests: List[Tuple[str, dict]] = []

    @staticmethod
    def price(amount: str, brand: str, model: str, year: int, fipe_code: str) -> dict:
        return {
            "Valor": amount,
            "Marca": brand,
            "Modelo": model,
            "AnoModelo": year,
            "Combustivel": "Gasolina",
            "CodigoFipe": fipe_code,
            "MesReferencia": "dezembro de 2025 ",
            "Autenticacao": "abc123",
            "TipoVeiculo": 1,
            "SiglaCombustivel": "G",
            "DataConsulta": "segunda-feira, 1 de dezembro de 2025 10:00",
        }

    def enqueue(self, status_code: int, json_body=None, headers: Optional[dict] = None, content: bytes = None):
        if json_body is not None:
            self.queue.append(httpx.Response(status_code, json=json_body, headers=headers))
        else:
            self.queue.append(httpx.Response(status_code, content=content or b"", headers=headers))

    def calls(self, endpoint: str) -> int:
        return sum(1 for name, _ in self.requests if name == endpoint)

    def reset_calls(self):
        self.requests.clear()

    def _error(self) -> httpx.Response:
        return httpx.Response(200, json={"codigo": "0", "erro": "Parâmetros inválidos"})

    def handler(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content or b"{}")
        self.requests.append((endpoint, body))

        if self.queue:
            return self.queue.pop(0)

        if endpoint == "ConsultarTabelaDeReferencia":
            key = (endpoint,)
            payload = self.periods
        elif endpoint == "ConsultarMarcas":
            key = (endpoint,)
            payload = self.brands
        elif endpoint == "ConsultarModelos":
            brand = str(body["codigoMarca"])
            key = (endpoint, brand)
            payload = {"Modelos": self.models.get(brand, []), "Anos": []}
        elif endpoint == "ConsultarAnoModelo":
            key = (endpoint, str(body["codigoMarca"]), str(body["codigoModelo"]))
            payload = self.years.get(key[1:], [])
        elif endpoint == "ConsultarValorComTodosParametros":
            key = (
                endpoint,
                str(body["codigoMarca"]),
                str(body["codigoModelo"]),
                str(body["anoModelo"]),
                int(body["codigoTipoCombustivel"]),
            )
            payload = self.prices.get(key[1:])
            if payload is None:
                return self._error()
        else:
            return httpx.Response(404, text="Not Found")

        if key in self.corrupt:
            return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip")
        if key in self.broken:
            return self._error()
        return httpx.Response(200, json=payload)


class RecordingSleep:
    """Awaitable replacement for asyncio.sleep that records delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.fixture
def fake_fipe():
    return FakeFipe()


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


def make_client(fake_fipe, fake_sleep, throttle=None, max_retries=2) -> FipeClient:
    return FipeClient(
        base_url=FIPE_TEST_URL,
        vehicle_type=1,
        throttle=throttle or ThrottleController(base_interval_ms=0, max_interval_ms=0),
        max_retries=max_retries,
        timeout=5.0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(fake_fipe.handler)),
        clock=lambda: 0.0,
        sleep=fake_sleep,
    )


@pytest_asyncio.fixture
async def fipe_client(fake_fipe, fake_sleep):
    """FIPE client wired to the fake service with no throttle delay"""
    client = make_client(fake_fipe, fake_sleep)
    yield client
    await client._http.aclose()


@pytest.fixture
def client_factory(fake_fipe, fake_sleep):
    """Build FIPE clients against the fake service with a custom throttle or retry budget"""
    def factory(**kwargs) -> FipeClient:
        return make_client(fake_fipe, fake_sleep, **kwargs)
    return factory
