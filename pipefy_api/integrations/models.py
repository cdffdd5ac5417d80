"""
Tipos de respuesta de la API GraphQL de Pipefy.

Los modelos se decodifican de forma tolerante: las claves desconocidas se
conservan como extras y todo lo que no sea `id` es opcional, de modo que
una respuesta incompleta nunca provoca un error de acceso.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PipefyModel(BaseModel):
    """Base común: conserva claves extra y permite poblar por nombre."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @field_validator("id", mode="before", check_fields=False)
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        # Pipefy a veces entrega ids numéricos
        if isinstance(value, int):
            return str(value)
        return value


class PipefyField(PipefyModel):
    """Campo de un card o de un registro de tabla."""
    indexName: Optional[str] = Field(None, description="Identificador estable del campo")
    name: Optional[str] = Field(None, description="Etiqueta visible del campo")
    value: Any = Field(None, description="Valor crudo")
    report_value: Any = Field(None, description="Valor formateado")
    date_value: Optional[str] = None
    datetime_value: Optional[str] = None


class Phase(PipefyModel):
    id: str
    name: Optional[str] = None


class Pipe(PipefyModel):
    id: str
    name: Optional[str] = None
    suid: Optional[str] = None


class CardRelation(PipefyModel):
    """Relación (padre o hijo) de un card, vía conector."""
    id: str
    name: Optional[str] = None
    cards: List["Card"] = Field(default_factory=list)


class Card(PipefyModel):
    """Card de Pipefy. Nunca se cachea: siempre se obtiene bajo demanda."""
    id: str
    title: Optional[str] = None
    fields: List[PipefyField] = Field(default_factory=list)
    current_phase: Optional[Phase] = None
    child_relations: Optional[List[CardRelation]] = None
    parent_relations: Optional[List[CardRelation]] = None


class TableRecord(PipefyModel):
    id: str
    fields: List[PipefyField] = Field(default_factory=list)


class CardInfoOptions(BaseModel):
    """Opciones de selección para `get_card_info`."""
    date_value: bool = False
    datetime_value: bool = False
    second_level: bool = False


class GraphQLResponse(BaseModel):
    """Cuerpo JSON de una respuesta GraphQL."""
    model_config = ConfigDict(extra="allow")

    data: Optional[Dict[str, Any]] = None
    errors: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("errors", mode="before")
    @classmethod
    def _errors_as_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (dict, str)):
            value = [value]
        if isinstance(value, list):
            # Algunos gateways entregan errores como texto plano
            return [{"message": item} if isinstance(item, str) else item for item in value]
        return value

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def first_error_message(self) -> Optional[str]:
        if not self.errors:
            return None
        return self.errors[0].get("message")

    def get_path(self, *path: str) -> Any:
        """
        Navega `data` por la ruta indicada.

        Returns:
            El valor encontrado o None si algún tramo falta o no es un objeto
        """
        node: Any = self.data
        for key in path:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        return node

    def get_edges(self, *path: str) -> List[Dict[str, Any]]:
        """Retorna los `node` de `<path>.edges`, ignorando entradas malformadas."""
        edges = self.get_path(*path, "edges")
        if not isinstance(edges, list):
            return []
        return [edge["node"] for edge in edges if isinstance(edge, dict) and isinstance(edge.get("node"), dict)]


CardRelation.model_rebuild()
