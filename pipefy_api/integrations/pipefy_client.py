"""
Cliente GraphQL para la API de Pipefy.
Expone cards, pipes, fases, tablas, emails y carga de archivos como
métodos asíncronos, sin escribir queries a mano.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Sequence, Type, TypeVar, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
from babel import Locale, UnknownLocaleError
from babel.dates import format_datetime
from pydantic import BaseModel, ValidationError

from pipefy_api.config.settings import DEFAULT_ENDPOINT, PipefyConfig
from pipefy_api.integrations import queries
from pipefy_api.integrations.models import (
    Card,
    CardInfoOptions,
    GraphQLResponse,
    Pipe,
    TableRecord,
)
from pipefy_api.utils.concurrency import DeleteOutcome, gather_bounded
from pipefy_api.utils.error_handler import get_error_handler, with_error_handling
from pipefy_api.utils.field_helpers import (
    extract_path_from_url,
    find_cards_by_id,
    get_cards_by_relation_id,
    get_file_name_from_url,
    get_value_from_field,
    index_fields,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class PipefyAPIError(Exception):
    """Excepción personalizada para errores de la API de Pipefy."""

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message
        self.status_code = status_code
        self.errors = errors or []
        super().__init__(self.message)


class PipefyClient:
    """Cliente para interactuar con la API GraphQL de Pipefy."""

    # Utilidades de normalización de respuestas
    index_fields = staticmethod(index_fields)
    get_value_from_field = staticmethod(get_value_from_field)
    find_cards_by_id = staticmethod(find_cards_by_id)
    get_cards_by_relation_id = staticmethod(get_cards_by_relation_id)

    def __init__(
        self,
        api_key: str,
        organization_id: str,
        time_zone: str,
        intl_code: str,
        log_table: Optional[str] = None,
        endpoint: str = DEFAULT_ENDPOINT,
        *,
        timeout: float = 30.0,
        max_concurrency: int = 10,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Inicializa el cliente de Pipefy.

        Args:
            api_key: Token de acceso a la API
            organization_id: ID de la organización en Pipefy
            time_zone: Zona horaria IANA para fechas (ej. "America/Santiago")
            intl_code: Código de idioma para formatear fechas (ej. "es-CL")
            log_table: ID de la tabla donde `log_error` registra errores
            endpoint: Endpoint GraphQL
            timeout: Timeout de cada solicitud HTTP en segundos
            max_concurrency: Máximo de solicitudes simultáneas en borrados masivos
            http_client: Cliente httpx compartido; si no se indica, se abre
                uno por solicitud
        """
        self.api_key = api_key
        self.organization_id = organization_id
        self.time_zone = time_zone
        self.intl_code = intl_code
        self.log_table = log_table or None
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self._http_client = http_client

    @classmethod
    def from_config(cls, config: PipefyConfig, http_client: Optional[httpx.AsyncClient] = None) -> "PipefyClient":
        """Construye el cliente desde un `PipefyConfig`."""
        return cls(
            config.api_key,
            config.organization_id,
            config.time_zone,
            config.intl_code,
            log_table=config.log_table,
            endpoint=config.endpoint,
            timeout=config.timeout,
            max_concurrency=config.max_concurrency,
            http_client=http_client,
        )

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    # ------------------------------------------------------------------
    # Transporte
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    async def pipefy_fetch(self, query: str, method: str = "POST") -> httpx.Response:
        """
        Envía una query GraphQL al endpoint configurado.

        Returns:
            La respuesta HTTP sin procesar
        """
        async with self._session() as client:
            return await client.request(
                method,
                self.endpoint,
                json={"query": query},
                headers=self.headers
            )

    @with_error_handling("pipefy")
    async def _graphql(self, query: str) -> GraphQLResponse:
        """
        Ejecuta una query y decodifica el cuerpo JSON.

        Raises:
            httpx.HTTPStatusError: Si Pipefy responde con un estado no exitoso
            PipefyAPIError: Si el cuerpo no es un objeto JSON
        """
        response = await self.pipefy_fetch(query)
        response.raise_for_status()
        try:
            body = response.json()
        except ValueError as e:
            raise PipefyAPIError(f"Respuesta no JSON de Pipefy: {e}", status_code=response.status_code)
        if not isinstance(body, dict):
            raise PipefyAPIError("Respuesta malformada de Pipefy", status_code=response.status_code)
        try:
            return GraphQLResponse.model_validate(body)
        except ValidationError as e:
            raise PipefyAPIError(f"Respuesta malformada de Pipefy: {e}", status_code=response.status_code)

    def _report_graphql_errors(self, result: GraphQLResponse, operation: str) -> None:
        """Clasifica y registra los errores GraphQL de una respuesta HTTP exitosa."""
        error_handler = get_error_handler()
        error = PipefyAPIError(
            f"Error GraphQL en {operation}: {result.first_error_message}",
            errors=result.errors
        )
        error_handler.log_error(
            error_handler.classify_error(error, "pipefy"),
            {"operation": operation, "errors": result.errors}
        )

    @staticmethod
    def _decode(model: Type[ModelT], node: Any) -> Optional[ModelT]:
        """Decodifica un nodo; retorna None si no cumple el esquema."""
        if not isinstance(node, dict):
            return None
        try:
            return model.model_validate(node)
        except ValidationError as e:
            logger.warning(f"Nodo {model.__name__} malformado ignorado: {e.error_count()} errores")
            return None

    @classmethod
    def _decode_all(cls, model: Type[ModelT], nodes: Iterable[Any]) -> List[ModelT]:
        decoded = (cls._decode(model, node) for node in nodes)
        return [item for item in decoded if item is not None]

    async def _mutate(self, query: str, operation: str) -> GraphQLResponse:
        result = await self._graphql(query)
        if not result.ok:
            self._report_graphql_errors(result, operation)
        return result

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    async def get_card_info(
        self,
        card_id: str,
        children: bool = False,
        parents: bool = False,
        options: Optional[CardInfoOptions] = None
    ) -> Optional[Card]:
        """
        Obtiene la información detallada de un card.

        Args:
            card_id: ID del card
            children: Si True, los cards hijos incluyen campos y fase actual
            parents: Si True, los cards padres incluyen campos y fase actual
            options: `date_value`, `datetime_value` y `second_level`

        Returns:
            El card, o None si Pipefy no lo retorna
        """
        result = await self._graphql(queries.card_info_query(card_id, children, parents, options))
        if not result.ok:
            self._report_graphql_errors(result, "card")
        return self._decode(Card, result.get_path("card"))

    async def get_pipe_info(self, pipe_id: str) -> Optional[Pipe]:
        result = await self._graphql(queries.pipe_info_query(pipe_id))
        return self._decode(Pipe, result.get_path("pipe"))

    async def move_card_to_phase(self, card_id: str, phase_id: str) -> GraphQLResponse:
        return await self._mutate(queries.move_card_to_phase_mutation(card_id, phase_id), "moveCardToPhase")

    async def all_cards_ids(self, pipe_id: str, parents: bool = False, children: bool = False) -> List[Card]:
        """
        Lista los cards de un pipe (una sola página, en el orden de Pipefy).

        Args:
            pipe_id: ID del pipe
            parents: Incluir relaciones padre (solo título)
            children: Incluir relaciones hijo (solo título)
        """
        result = await self._graphql(queries.all_cards_query(pipe_id, parents, children))
        return self._decode_all(Card, result.get_edges("allCards"))

    async def find_card(self, card_title: str, pipe_id: str) -> Optional[str]:
        """
        Busca un card por título exacto recorriendo todos los cards del pipe.

        El filtrado es local y solo cubre la primera página de `allCards`.
        Si hay varios cards con el mismo título, retorna el último.
        """
        card_id = None
        for card in await self.all_cards_ids(pipe_id):
            if card.title == card_title:
                card_id = card.id
        return card_id

    async def find_card_from_title(self, title: str, pipe_id: str) -> Optional[str]:
        """Busca un card por título usando la búsqueda de Pipefy; retorna su ID o None."""
        result = await self._graphql(queries.cards_by_title_query(title, pipe_id))
        nodes = [node for node in result.get_edges("cards") if node.get("id") is not None]
        if not nodes:
            return None
        return str(nodes[0]["id"])

    async def find_card_from_field(
        self,
        field: str,
        value: str,
        pipe_id: str,
        first: bool = True,
        cards: bool = False
    ) -> Union[str, Card, List[Card], None]:
        """
        Busca cards de un pipe con un valor determinado en un campo.

        Args:
            field: ID del campo
            value: Valor buscado
            pipe_id: ID del pipe
            first: Si True retorna solo la primera coincidencia
            cards: Si True incluye campos y fase actual de los cards

        Returns:
            - first y cards: el primer Card
            - first sin cards: el ID del primer card
            - sin first: la lista de Cards
            - None si no hay coincidencias
        """
        result = await self._graphql(queries.find_cards_query(field, value, pipe_id, cards))
        nodes = [node for node in result.get_edges("findCards") if node.get("id") is not None]
        if not nodes:
            return None
        if not first:
            return self._decode_all(Card, nodes)
        if cards:
            return self._decode(Card, nodes[0])
        return str(nodes[0]["id"])

    async def make_comment(self, card_id: str, text: str) -> GraphQLResponse:
        """Crea un comentario en el card. Las comillas dobles del texto se eliminan."""
        return await self._mutate(queries.create_comment_mutation(card_id, text), "createComment")

    async def update_fase_field(
        self,
        card_id: str,
        name: str,
        value: Any,
        value_is_array: bool = False,
        operation: Optional[str] = None
    ) -> GraphQLResponse:
        """
        Actualiza un campo de un card.

        Args:
            card_id: ID del card
            name: ID del campo
            value: Nuevo valor (escalar o lista)
            value_is_array: Forzar el envío como lista
            operation: Operación opcional sobre listas (ADD, REMOVE, REPLACE)
        """
        query = queries.update_field_mutation(card_id, name, value, value_is_array, operation)
        return await self._mutate(query, "updateFieldsValues")

    async def clear_connector_field(self, card_id: str, field: str) -> GraphQLResponse:
        return await self._mutate(queries.clear_connector_field_mutation(card_id, field), "updateCardField")

    async def update_fase_fields(self, card_id: str, fields_to_update: Mapping[str, Any]) -> GraphQLResponse:
        """
        Actualiza varios campos de un card.

        Args:
            card_id: ID del card
            fields_to_update: Diccionario `{field_id: valor}`; las listas vacías
                y los valores None se omiten
        """
        return await self._mutate(queries.update_fields_mutation(card_id, fields_to_update), "updateFieldsValues")

    async def set_assignees(self, card_id: str, assignees: Sequence[str]) -> GraphQLResponse:
        return await self._mutate(queries.set_assignees_mutation(card_id, assignees), "updateCard")

    async def set_labels(self, card_id: str, labels: Optional[Sequence[str]]) -> GraphQLResponse:
        """Asigna etiquetas al card; con None se eliminan todas."""
        return await self._mutate(queries.set_labels_mutation(card_id, labels), "updateCard")

    async def set_due_date(self, card_id: str, due_date: str) -> GraphQLResponse:
        return await self._mutate(queries.set_due_date_mutation(card_id, due_date), "updateCard")

    async def delete_card(self, card_id: str) -> GraphQLResponse:
        return await self._mutate(queries.delete_card_mutation(card_id), "deleteCard")

    async def create_card(
        self,
        pipe_id: str,
        data: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
        report_error: bool = False
    ) -> Union[str, Dict[str, Any], None]:
        """
        Crea un card en un pipe.

        Args:
            pipe_id: ID del pipe
            data: `{field_id: valor}` o lista de `{"field_id", "field_value"}`
            report_error: Si True, ante un error retorna `{"errors": [...]}`
                en lugar del mensaje

        Returns:
            El ID del card creado, o el error según `report_error`
        """
        result = await self._graphql(queries.create_card_mutation(pipe_id, data))

        if not result.ok:
            message = f"Pipefy error: {result.first_error_message}"
            self._report_graphql_errors(result, "createCard")
            if report_error:
                return {"errors": result.errors}
            return message

        card_id = result.get_path("createCard", "card", "id")
        if card_id is None:
            logger.error(f"createCard no retornó ID en el pipe {pipe_id}")
            return None

        logger.info(f"Card {card_id} creado en el pipe {pipe_id}")
        return str(card_id)

    async def create_card_relation(
        self,
        child_id: str,
        parent_id: str,
        source_id: str,
        source_type: str
    ) -> GraphQLResponse:
        """
        Relaciona dos cards.

        Args:
            child_id: ID del card hijo
            parent_id: ID del card padre
            source_id: ID de la conexión o del campo conector
            source_type: "PipeRelation" o "Field"
        """
        query = queries.create_card_relation_mutation(child_id, parent_id, source_id, source_type)
        return await self._mutate(query, "createCardRelation")

    async def clear_pipe(self, pipe_id: str, max_iterations: int = 100) -> str:
        """
        Elimina todos los cards de un pipe, página por página.

        Se detiene cuando una página llega vacía, cuando ninguna eliminación
        de la página tuvo éxito o al alcanzar `max_iterations`.

        Returns:
            Mensaje con la cantidad de cards eliminados
        """
        deleted = 0
        for iteration in range(max_iterations):
            cards = await self.all_cards_ids(pipe_id)
            if not cards:
                break

            outcomes = await gather_bounded(
                [card.id for card in cards],
                self.delete_card,
                self.max_concurrency,
                is_success=lambda response: response.ok
            )
            succeeded = sum(1 for outcome in outcomes if outcome.success)
            deleted += succeeded
            logger.info(f"Pipe {pipe_id}: página {iteration + 1}, {succeeded}/{len(outcomes)} cards eliminados")

            if succeeded == 0:
                logger.warning(f"Pipe {pipe_id}: ninguna eliminación tuvo éxito, se detiene el borrado")
                break
        else:
            logger.warning(f"Pipe {pipe_id}: se alcanzó el máximo de {max_iterations} iteraciones")

        return f"Deleted {deleted} cards in pipe {pipe_id}"

    # ------------------------------------------------------------------
    # Tablas
    # ------------------------------------------------------------------

    async def find_record_in_table(
        self,
        table_id: str,
        field_id: str,
        value: str,
        full_data: bool = False
    ) -> Union[str, TableRecord, None]:
        """
        Busca un registro de tabla por el valor de un campo.

        Returns:
            El ID del primer registro (o el registro completo si `full_data`),
            o None si no hay coincidencias
        """
        result = await self._graphql(queries.find_records_query(table_id, field_id, value, full_data))
        nodes = [node for node in result.get_edges("findRecords") if node.get("id") is not None]
        if not nodes:
            return None
        if full_data:
            return self._decode(TableRecord, nodes[0])
        return str(nodes[0]["id"])

    async def create_table_record(self, table_id: str, data: Sequence[Mapping[str, Any]] = ()) -> Optional[str]:
        """
        Crea un registro en una tabla.

        Args:
            table_id: ID de la tabla
            data: Lista de `{"id": field_id, "value": valor}`; de cada valor se
                eliminan los caracteres `" [ ] ! ( )`

        Returns:
            El ID del registro creado, o None si hubo error
        """
        result = await self._graphql(queries.create_table_record_mutation(table_id, data))

        if not result.ok:
            self._report_graphql_errors(result, "createTableRecord")
            return None

        record_id = result.get_path("createTableRecord", "table_record", "id")
        if record_id is None:
            return None
        return str(record_id)

    async def delete_table_record(self, record_id: str) -> GraphQLResponse:
        return await self._mutate(queries.delete_table_record_mutation(record_id), "deleteTableRecord")

    async def list_table_records(self, table_id: str) -> List[TableRecord]:
        result = await self._graphql(queries.table_records_query(table_id))
        return self._decode_all(TableRecord, result.get_edges("table_records"))

    async def clear_table(self, table_id: str) -> List[DeleteOutcome]:
        """
        Elimina todos los registros de una tabla.

        Las eliminaciones corren en paralelo (hasta `max_concurrency`) y se
        espera a todas; un fallo individual no cancela las demás.

        Returns:
            Un `DeleteOutcome` por registro
        """
        records = await self.list_table_records(table_id)
        outcomes = await gather_bounded(
            [record.id for record in records],
            self.delete_table_record,
            self.max_concurrency,
            is_success=lambda response: response.ok
        )
        failed = [outcome.id for outcome in outcomes if not outcome.success]
        logger.info(f"Tabla {table_id}: {len(outcomes) - len(failed)}/{len(outcomes)} registros eliminados")
        if failed:
            logger.warning(f"Tabla {table_id}: registros no eliminados: {failed}")
        return outcomes

    async def log_error(self, message: str, error_code: int = 200, function_name: str = "") -> Optional[str]:
        """
        Registra un error en la tabla de logs configurada.

        Returns:
            El ID del registro creado, o None si no hay tabla de logs
        """
        if not self.log_table:
            return None

        return await self.create_table_record(self.log_table, [
            {"id": "error_code", "value": error_code},
            {"id": "message", "value": message},
            {"id": "date", "value": self._localized_now()},
            {"id": "function", "value": function_name},
        ])

    def _localized_now(self) -> str:
        """Fecha y hora actual en la zona horaria y el idioma configurados."""
        try:
            tz = ZoneInfo(self.time_zone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Zona horaria desconocida '{self.time_zone}', se usa UTC")
            tz = ZoneInfo("UTC")
        now = datetime.now(tz)

        try:
            locale = Locale.parse(self.intl_code.replace("-", "_"))
        except (UnknownLocaleError, ValueError):
            logger.warning(f"Código de idioma desconocido '{self.intl_code}', se usa formato ISO")
            return now.isoformat(timespec="seconds")
        return format_datetime(now, format="short", tzinfo=tz, locale=locale)

    # ------------------------------------------------------------------
    # Emails
    # ------------------------------------------------------------------

    async def create_email_to_send(
        self,
        card_id: str,
        pipe_id: str,
        from_: str,
        from_name: str,
        to: str,
        subject: str,
        html: str
    ) -> Optional[str]:
        """
        Crea un email en la bandeja del card, listo para `send_email`.

        Returns:
            El ID del email creado, o None si hubo error
        """
        query = queries.create_inbox_email_mutation(card_id, pipe_id, from_, from_name, to, subject, html)
        result = await self._graphql(query)
        if not result.ok:
            self._report_graphql_errors(result, "createInboxEmail")
            return None

        email_id = result.get_path("createInboxEmail", "inbox_email", "id")
        return str(email_id) if email_id is not None else None

    async def send_email(self, email_id: str) -> GraphQLResponse:
        return await self._mutate(queries.send_inbox_email_mutation(email_id), "sendInboxEmail")

    # ------------------------------------------------------------------
    # Archivos
    # ------------------------------------------------------------------

    async def get_pre_signed_url(self, file_name: str) -> Optional[str]:
        """Solicita una URL pre-firmada para subir un archivo a Pipefy."""
        result = await self._graphql(queries.presigned_url_mutation(self.organization_id, file_name))
        if not result.ok:
            self._report_graphql_errors(result, "createPresignedUrl")
        url = result.get_path("createPresignedUrl", "url")
        if not url or not isinstance(url, str):
            logger.warning(f"Pipefy no entregó URL pre-firmada para {file_name}")
            return None
        return url

    async def _put_file(self, upload_url: str, file_name: str, content: bytes, content_type: str) -> Optional[str]:
        async with self._session() as client:
            response = await client.put(upload_url, content=content, headers={"Content-Type": content_type})

        if response.is_success:
            logger.info(f"Archivo cargado con éxito: {file_name}")
            return extract_path_from_url(upload_url)

        logger.error(f"Error al cargar el archivo {file_name}. Estado: {response.status_code} {response.reason_phrase}")
        return None

    async def upload_file_from_url(self, source_url: str) -> Optional[str]:
        """
        Descarga un archivo remoto y lo sube a Pipefy.

        Returns:
            La ruta del archivo en Pipefy, o None ante cualquier fallo
        """
        file_name = get_file_name_from_url(source_url)
        if file_name is None:
            logger.error(f"No se pudo obtener el nombre de archivo de {source_url}")
            return None

        try:
            upload_url = await self.get_pre_signed_url(file_name)
            if not upload_url:
                return None

            async with self._session() as client:
                source = await client.get(source_url)
            if not source.is_success:
                logger.error(f"Error al descargar {source_url}. Estado: {source.status_code}")
                return None

            content_type = source.headers.get("Content-Type") or "application/octet-stream"
            return await self._put_file(upload_url, file_name, source.content, content_type)

        except (httpx.HTTPError, PipefyAPIError) as e:
            logger.error(f"Error durante la carga del archivo {file_name}: {e}")
            return None

    async def upload_file_from_buffer(self, file_name: str, file_data: bytes) -> Optional[str]:
        """
        Sube a Pipefy un archivo en memoria.

        Returns:
            La ruta del archivo en Pipefy, o None ante cualquier fallo
        """
        try:
            upload_url = await self.get_pre_signed_url(file_name)
            if not upload_url:
                return None
            return await self._put_file(upload_url, file_name, file_data, "application/octet-stream")

        except (httpx.HTTPError, PipefyAPIError) as e:
            logger.error(f"Error durante la carga del archivo {file_name}: {e}")
            return None
