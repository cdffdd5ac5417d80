"""
Construcción de queries y mutations GraphQL para Pipefy.

Funciones puras: reciben parámetros estructurados y retornan el texto
GraphQL listo para enviar. Todo string interpolado pasa por
`graphql_string`, que escapa comillas, barras y saltos de línea.
"""
import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from pipefy_api.integrations.models import CardInfoOptions

logger = logging.getLogger(__name__)

# Caracteres que se eliminan de los valores de registros de tabla
TABLE_VALUE_DENYLIST = '"[]!()'

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def graphql_string(value: Any) -> str:
    """Convierte un valor a literal de string GraphQL, con escape."""
    if isinstance(value, bool):
        # Los checkbox de Pipefy esperan "true" / "false"
        text = "true" if value else "false"
    else:
        text = str(value)
    return '"' + "".join(_ESCAPES.get(char, char) for char in text) + '"'


def strip_quotes(text: Any) -> str:
    """Elimina las comillas dobles de un texto (usado en comentarios)."""
    return str(text).replace('"', "")


def clear_special_chars(value: Any) -> str:
    """Elimina los caracteres `" [ ] ! ( )` de un valor de registro de tabla."""
    text = str(value)
    for char in TABLE_VALUE_DENYLIST:
        text = text.replace(char, "")
    return text


def graphql_list(values: Iterable[Any]) -> str:
    """Serializa una secuencia como lista de strings GraphQL, en orden."""
    return "[ " + ", ".join(graphql_string(value) for value in values) + " ]"


def graphql_value(value: Any, force_array: bool = False) -> str:
    if force_array or isinstance(value, (list, tuple)):
        if not isinstance(value, (list, tuple)):
            value = [value]
        return graphql_list(value)
    return graphql_string(value)


def wrap_field(field_id: str, value: Any) -> Optional[str]:
    """
    Envuelve un par campo/valor para `fields_attributes` de createCard.

    Returns:
        El fragmento GraphQL, o None si el valor es None
    """
    if value is None:
        logger.debug(f"Campo omitido (sin valor): {field_id}")
        return None
    return f"{{ field_id: {graphql_string(field_id)}, field_value: {graphql_value(value)} }}"


def field_value_entry(field_id: str, value: Any, operation: Optional[str] = None, force_array: bool = False) -> str:
    """Fragmento `{fieldId, value[, operation]}` para updateFieldsValues."""
    entry = f"fieldId: {graphql_string(field_id)}, value: {graphql_value(value, force_array)}"
    if operation:
        entry += f", operation: {operation.upper()}"
    return "{" + entry + "}"


# ---------------------------------------------------------------------------
# Selecciones de card
# ---------------------------------------------------------------------------

def card_fields_selection(options: Optional[CardInfoOptions] = None) -> str:
    """
    Selección de campos de un card.

    `date_value` y `datetime_value` solo se piden cuando se solicitan
    explícitamente, porque Pipefy los rechaza en algunos tipos de campo.
    """
    options = options or CardInfoOptions()
    parts = ["indexName", "name", "value", "report_value"]
    if options.date_value:
        parts.append("date_value")
    if options.datetime_value:
        parts.append("datetime_value")
    return "fields { " + " ".join(parts) + " }"


def relation_selection(
    kind: str,
    full: bool = False,
    options: Optional[CardInfoOptions] = None,
    second_level: bool = False
) -> str:
    """
    Selección de `child_relations` o `parent_relations`.

    Args:
        kind: "child" o "parent"
        full: Si True, los cards relacionados incluyen campos y fase actual;
            si False, solo id y título
        options: Opciones de selección de campos
        second_level: Si True, cada card relacionado incluye a su vez sus
            relaciones padre e hijo (un solo nivel adicional)
    """
    if kind not in ("child", "parent"):
        raise ValueError(f"Tipo de relación inválido: {kind}")

    card_parts = ["id", "title"]
    if full:
        card_parts.append(card_fields_selection(options))
        card_parts.append("current_phase { id name }")
    if second_level:
        card_parts.append(relation_selection("child", full, options))
        card_parts.append(relation_selection("parent", full, options))

    return f"{kind}_relations {{ name id cards {{ {' '.join(card_parts)} }} }}"


def card_info_query(
    card_id: str,
    children: bool = False,
    parents: bool = False,
    options: Optional[CardInfoOptions] = None
) -> str:
    """Query completa de información de un card."""
    options = options or CardInfoOptions()
    # second_level solo aplica cuando se expande alguna relación
    second_level = options.second_level and (children or parents)

    children_query = relation_selection("child", children, options, second_level and children)
    parents_query = relation_selection("parent", parents, options, second_level and parents)

    return (
        f"{{ card(id: {graphql_string(card_id)}) {{ id pipe {{ id name suid }} title "
        f"assignees {{ id name }} createdAt createdBy {{ id name email createdAt }} "
        f"{children_query} {parents_query} comments_count current_phase {{ name id }} "
        f"done due_date {card_fields_selection(options)} labels {{ id name }} "
        f"phases_history {{ phase {{ name id }} firstTimeIn lastTimeOut }} url }} }}"
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def pipe_info_query(pipe_id: str) -> str:
    return f"{{ pipe(id: {graphql_string(pipe_id)}) {{ id name }} }}"


def all_cards_query(pipe_id: str, parents: bool = False, children: bool = False) -> str:
    node_parts = ["id", "title"]
    if parents:
        node_parts.append(relation_selection("parent"))
    if children:
        node_parts.append(relation_selection("child"))
    return f"{{ allCards(pipeId: {graphql_string(pipe_id)}) {{ edges {{ node {{ {' '.join(node_parts)} }} }} }} }}"


def cards_by_title_query(title: str, pipe_id: str) -> str:
    return (
        f"{{ cards(pipe_id: {graphql_string(pipe_id)}, search: {{title: {graphql_string(title)}}}) "
        f"{{ edges {{ node {{ id }} }} }} }}"
    )


def find_cards_query(field: str, value: str, pipe_id: str, cards: bool = False) -> str:
    node_parts = ["id"]
    if cards:
        node_parts.append("title")
        node_parts.append(card_fields_selection())
        node_parts.append("current_phase { id name }")
    return (
        f"{{ findCards(pipeId: {graphql_string(pipe_id)}, search: {{fieldId: {graphql_string(field)}, "
        f"fieldValue: {graphql_string(value)}}}) {{ edges {{ node {{ {' '.join(node_parts)} }} }} }} }}"
    )


def find_records_query(table_id: str, field_id: str, value: str, full_data: bool = False) -> str:
    node = "id fields { indexName name report_value value }" if full_data else "id"
    return (
        f"{{ findRecords(tableId: {graphql_string(table_id)}, search: {{fieldId: {graphql_string(field_id)}, "
        f"fieldValue: {graphql_string(value)}}}) {{ edges {{ node {{ {node} }} }} }} }}"
    )


def table_records_query(table_id: str) -> str:
    return f"{{ table_records(table_id: {graphql_string(table_id)}) {{ edges {{ node {{ id }} }} }} }}"


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

def move_card_to_phase_mutation(card_id: str, phase_id: str) -> str:
    return (
        f"mutation {{ moveCardToPhase(input: {{ card_id: {graphql_string(card_id)}, "
        f"destination_phase_id: {graphql_string(phase_id)} }}) {{ clientMutationId }} }}"
    )


def create_comment_mutation(card_id: str, text: str) -> str:
    return (
        f"mutation {{ createComment(input: {{ card_id: {graphql_string(card_id)}, "
        f"text: {graphql_string(strip_quotes(text))} }}) {{ clientMutationId }} }}"
    )


def update_field_mutation(
    card_id: str,
    field_id: str,
    value: Any,
    value_is_array: bool = False,
    operation: Optional[str] = None
) -> str:
    entry = field_value_entry(field_id, value, operation, force_array=value_is_array)
    return (
        f"mutation {{ updateFieldsValues(input: {{nodeId: {graphql_string(card_id)}, values: {entry}}}) "
        f"{{ clientMutationId }} }}"
    )


def update_fields_mutation(card_id: str, fields_to_update: Mapping[str, Any]) -> str:
    """
    Mutation para actualizar varios campos de una vez.

    Los arreglos vacíos y los valores None se omiten; los arreglos se
    serializan como listas y el resto como strings (los booleanos como
    "true" / "false", sin etiquetado de tipo).
    """
    entries: List[str] = []
    for field_id, value in fields_to_update.items():
        if isinstance(value, (list, tuple)):
            if not value:
                continue
        elif value is None:
            logger.debug(f"Campo omitido (sin valor): {field_id}")
            continue
        entries.append(field_value_entry(field_id, value))
    return (
        f"mutation {{ updateFieldsValues(input: {{nodeId: {graphql_string(card_id)}, "
        f"values: [ {', '.join(entries)} ]}}) {{ clientMutationId }} }}"
    )


def clear_connector_field_mutation(card_id: str, field_id: str) -> str:
    return (
        f"mutation {{ updateCardField(input: {{card_id: {graphql_string(card_id)}, "
        f"field_id: {graphql_string(field_id)}, new_value: null}}) {{ clientMutationId success }} }}"
    )


def set_assignees_mutation(card_id: str, assignees: Sequence[str]) -> str:
    return (
        f"mutation {{ updateCard(input: {{id: {graphql_string(card_id)}, "
        f"assignee_ids: {graphql_list(assignees)}}}) {{ clientMutationId }} }}"
    )


def set_labels_mutation(card_id: str, labels: Optional[Sequence[str]]) -> str:
    return (
        f"mutation {{ updateCard(input: {{id: {graphql_string(card_id)}, "
        f"label_ids: {graphql_list(labels or [])}}}) {{ clientMutationId }} }}"
    )


def set_due_date_mutation(card_id: str, due_date: str) -> str:
    return (
        f"mutation {{ updateCard(input: {{id: {graphql_string(card_id)}, "
        f"due_date: {graphql_string(due_date)}}}) {{ clientMutationId }} }}"
    )


def create_table_record_mutation(table_id: str, data: Sequence[Mapping[str, Any]]) -> str:
    attributes = [
        f"{{field_id: {graphql_string(item['id'])}, field_value: {graphql_string(clear_special_chars(item.get('value')))}}}"
        for item in data
    ]
    return (
        f"mutation {{ createTableRecord(input: {{table_id: {graphql_string(table_id)}, "
        f"fields_attributes: [ {', '.join(attributes)} ]}}) {{ table_record {{ id }} }} }}"
    )


def delete_table_record_mutation(record_id: str) -> str:
    return f"mutation {{ deleteTableRecord(input: {{id: {graphql_string(record_id)}}}) {{ clientMutationId success }} }}"


def delete_card_mutation(card_id: str) -> str:
    return f"mutation {{ deleteCard(input: {{id: {graphql_string(card_id)}}}) {{ clientMutationId success }} }}"


def create_inbox_email_mutation(
    card_id: str,
    pipe_id: str,
    from_: str,
    from_name: str,
    to: str,
    subject: str,
    html: str
) -> str:
    return (
        f"mutation {{ createInboxEmail(input: {{ card_id: {graphql_string(card_id)}, "
        f"repo_id: {graphql_string(pipe_id)}, from: {graphql_string(from_)}, "
        f"fromName: {graphql_string(from_name)}, to: {graphql_string(to)}, "
        f"subject: {graphql_string(subject)}, html: {graphql_string(html)} }}) "
        f"{{ clientMutationId inbox_email {{ id }} }} }}"
    )


def send_inbox_email_mutation(email_id: str) -> str:
    return f"mutation {{ sendInboxEmail(input: {{id: {graphql_string(email_id)}}}) {{ clientMutationId }} }}"


def create_card_mutation(pipe_id: str, data: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> str:
    """
    Mutation createCard.

    `data` puede ser un mapeo `{field_id: valor}` o una secuencia de
    objetos `{"field_id": ..., "field_value": ...}`.
    """
    if isinstance(data, Mapping):
        pairs = list(data.items())
    else:
        pairs = [(item.get("field_id"), item.get("field_value")) for item in data]

    wrapped = [wrap_field(field_id, value) for field_id, value in pairs]
    fields_attributes = ", ".join(fragment for fragment in wrapped if fragment)
    return (
        f"mutation {{ createCard(input: {{ pipe_id: {graphql_string(pipe_id)}, "
        f"fields_attributes: [ {fields_attributes} ] }}) {{ clientMutationId card {{ id }} }} }}"
    )


def create_card_relation_mutation(child_id: str, parent_id: str, source_id: str, source_type: str) -> str:
    return (
        f"mutation {{ createCardRelation(input: {{ childId: {graphql_string(child_id)}, "
        f"parentId: {graphql_string(parent_id)}, sourceId: {graphql_string(source_id)}, "
        f"sourceType: {graphql_string(source_type)} }}) "
        f"{{ clientMutationId cardRelation {{ id name source_type }} }} }}"
    )


def presigned_url_mutation(organization_id: str, file_name: str) -> str:
    return (
        f"mutation {{ createPresignedUrl(input: {{ organizationId: {graphql_string(organization_id)}, "
        f"fileName: {graphql_string(file_name)} }}) {{ clientMutationId url }} }}"
    )
