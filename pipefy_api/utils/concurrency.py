"""
Fan-out acotado para operaciones masivas (borrado de registros y cards).
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class DeleteOutcome:
    """Resultado de una operación individual dentro de un fan-out."""
    id: str
    success: bool
    error: Optional[str] = None
    response: Any = None


async def gather_bounded(
    ids: Sequence[str],
    worker: Callable[[str], Awaitable[Any]],
    limit: int = 10,
    is_success: Optional[Callable[[Any], bool]] = None
) -> List[DeleteOutcome]:
    """
    Ejecuta `worker(id)` para cada id con a lo sumo `limit` en paralelo.

    Nunca falla rápido: cada excepción queda registrada en su
    `DeleteOutcome` y se espera a todos antes de retornar.

    Args:
        ids: Identificadores a procesar
        worker: Corrutina a ejecutar por id
        limit: Máximo de solicitudes simultáneas
        is_success: Evalúa el resultado del worker; por defecto, éxito si no
            lanzó excepción

    Returns:
        Un resultado por id, en el mismo orden de entrada
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run_with_semaphore(item_id: str) -> DeleteOutcome:
        async with semaphore:
            try:
                response = await worker(item_id)
            except Exception as e:
                logger.error(f"Falló la operación sobre {item_id}: {e}")
                return DeleteOutcome(id=item_id, success=False, error=str(e))

        if is_success is not None and not is_success(response):
            error = getattr(response, "first_error_message", None) or "operación rechazada"
            return DeleteOutcome(id=item_id, success=False, error=error, response=response)
        return DeleteOutcome(id=item_id, success=True, response=response)

    tasks = [run_with_semaphore(item_id) for item_id in ids]
    return list(await asyncio.gather(*tasks))
