"""
Configuración de pytest y fixtures comunes para las pruebas.
"""

import json
from typing import Any, Callable, Dict, List
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from pipefy_api.integrations.pipefy_client import PipefyClient
from pipefy_api.utils.error_handler import reset_error_handler


def _make_response(body: Any, status_code: int = 200) -> MagicMock:
    """Crea un mock de httpx.Response con el cuerpo JSON indicado."""
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.json.return_value = body
    mock_response.raise_for_status.return_value = None
    return mock_response


def _request_query(request: httpx.Request) -> str:
    return json.loads(request.content)["query"]


@pytest.fixture
def make_response():
    """Fábrica de respuestas HTTP simuladas con cuerpo JSON."""
    return _make_response


@pytest.fixture
def request_query():
    """Extrae la query GraphQL de un httpx.Request."""
    return _request_query


@pytest.fixture(autouse=True)
def clean_error_handler():
    """Aísla el historial global de errores entre pruebas."""
    reset_error_handler()
    yield
    reset_error_handler()


@pytest.fixture
def pipefy_client():
    """Cliente sin tabla de logs."""
    return PipefyClient("test_token", "300", "America/Santiago", "es-CL")


@pytest.fixture
def logging_client():
    """Cliente con tabla de logs configurada."""
    return PipefyClient("test_token", "300", "America/Santiago", "es-CL", log_table="log_table_1")


@pytest.fixture
def mock_fetch(pipefy_client):
    """Reemplaza `pipefy_fetch` por un AsyncMock; configurar `return_value`/`side_effect`."""
    fetch = AsyncMock(return_value=_make_response({"data": {}}))
    pipefy_client.pipefy_fetch = fetch
    return fetch


@pytest.fixture
def recorded_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def transport_factory(recorded_requests):
    """
    Construye un cliente Pipefy sobre httpx.MockTransport.

    `handler(request)` retorna un httpx.Response; todas las solicitudes
    quedan en `recorded_requests`.
    """
    def factory(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> PipefyClient:
        def recording_handler(request: httpx.Request) -> httpx.Response:
            recorded_requests.append(request)
            return handler(request)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
        return PipefyClient("test_token", "300", "America/Santiago", "es-CL", http_client=http_client, **kwargs)

    return factory


@pytest.fixture
def sample_fields() -> List[Dict[str, Any]]:
    """Campos de ejemplo tal como los entrega Pipefy."""
    return [
        {"indexName": "razon_social", "name": "Razón Social", "value": "Empresa Teste LTDA", "report_value": "Empresa Teste LTDA"},
        {"indexName": "monto", "name": "Monto (CLP)", "value": "1500", "report_value": "$ 1.500"},
        {"indexName": "responsables", "name": "Responsables", "value": '["Ana", "Luis"]', "report_value": "Ana, Luis"},
    ]


@pytest.fixture
def sample_card(sample_fields) -> Dict[str, Any]:
    return {
        "id": "123456",
        "title": "Card de prueba",
        "current_phase": {"id": "338000017", "name": "Pendencias"},
        "pipe": {"id": "789", "name": "Pipe de prueba", "suid": "abc"},
        "fields": sample_fields,
        "child_relations": [
            {"id": "rel_1", "name": "Documentos", "cards": [{"id": "c1", "title": "Doc 1"}, {"id": "c2", "title": "Doc 2"}]}
        ],
        "parent_relations": [],
    }
