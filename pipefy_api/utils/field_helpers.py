"""
Utilidades puras para normalizar respuestas de Pipefy.

Todas aceptan tanto diccionarios (JSON crudo) como los modelos pydantic
de `pipefy_api.integrations.models`.
"""
import logging
import re
import unicodedata
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import unquote, urlparse

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def _as_dict(item: Any) -> Dict[str, Any]:
    if isinstance(item, BaseModel):
        return item.model_dump()
    if isinstance(item, dict):
        return item
    return {}


def _get(item: Any, key: str) -> Any:
    if isinstance(item, BaseModel):
        return getattr(item, key, None)
    if isinstance(item, dict):
        return item.get(key)
    return None


def normalize_field_key(name: Any) -> str:
    """
    Normaliza el nombre visible de un campo para usarlo como clave.

    "Razón Social (*)" -> "razonsocial"
    """
    text = unicodedata.normalize("NFKD", str(name or ""))
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    return _NON_ALNUM.sub("", text)


def infer_value_type(value: Any) -> str:
    """Etiqueta de tipo escalar para un valor de campo."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "object"


def index_fields(fields: Optional[Sequence[Any]], full: bool = False) -> Dict[str, Any]:
    """
    Indexa los campos de un card como un diccionario.

    Args:
        fields: Campos tal como los entrega Pipefy
        full: Si True, indexa por `indexName` y guarda el campo completo más
            una clave `type` con el tipo inferido del valor; si False,
            indexa por el nombre normalizado y guarda solo `value`

    Returns:
        Diccionario indexado. Ante colisiones de clave gana el último campo.
    """
    indexed: Dict[str, Any] = {}
    for item in fields or []:
        data = _as_dict(item)
        if full:
            key = data.get("indexName")
            if key is None:
                continue
            indexed[key] = {**data, "type": infer_value_type(data.get("value"))}
        else:
            indexed[normalize_field_key(data.get("name"))] = data.get("value")
    return indexed


def get_value_from_field(
    fields: Optional[Sequence[Any]],
    index_name: str,
    empty: bool = False,
    report_value: bool = True
) -> Optional[Any]:
    """
    Busca el primer campo cuyo `indexName` coincida y retorna su valor.

    Args:
        fields: Campos del card o registro
        index_name: `indexName` buscado
        empty: Si True retorna "" cuando el campo no existe; si False, None
        report_value: Si True retorna `report_value`; si False, `value`
    """
    for item in fields or []:
        if _get(item, "indexName") == index_name:
            return _get(item, "report_value" if report_value else "value")
    return "" if empty else None


def find_cards_by_id(cards: Optional[Sequence[Any]], target_id: str) -> Optional[Any]:
    """Retorna el card con el id indicado, o None si no existe."""
    for card in cards or []:
        if _get(card, "id") == target_id:
            return card
    return None


def get_cards_by_relation_id(relations: Optional[Sequence[Any]], target_id: str) -> List[Any]:
    """
    Retorna los cards de la relación con el id indicado.

    A diferencia de `find_cards_by_id`, retorna una lista vacía (no None)
    cuando la relación no existe.
    """
    for relation in relations or []:
        if _get(relation, "id") == target_id:
            return list(_get(relation, "cards") or [])
    return []


def get_file_name_from_url(url: str) -> Optional[str]:
    """Extrae el nombre de archivo (decodificado) del último segmento de la URL."""
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError) as e:
        logger.error(f"Error al parsear la URL {url!r}: {e}")
        return None
    if not parsed.scheme or not parsed.netloc:
        logger.error(f"URL inválida: {url!r}")
        return None
    file_name = unquote(parsed.path.split("/")[-1])
    return file_name or None


def extract_path_from_url(url: str) -> Optional[str]:
    """Retorna el path de la URL sin el '/' inicial (ruta del archivo en Pipefy)."""
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError) as e:
        logger.error(f"Error al parsear la URL {url!r}: {e}")
        return None
    if not parsed.scheme or not parsed.netloc:
        logger.error(f"URL inválida: {url!r}")
        return None
    return parsed.path[1:]
