"""
Cliente asíncrono para la API GraphQL de Pipefy.
"""
from pipefy_api.config import PipefyConfig, Settings
from pipefy_api.integrations import (
    Card,
    CardInfoOptions,
    CardRelation,
    GraphQLResponse,
    Phase,
    Pipe,
    PipefyAPIError,
    PipefyClient,
    PipefyField,
    TableRecord,
)
from pipefy_api.utils.concurrency import DeleteOutcome

__version__ = "1.0.0"

__all__ = [
    "Card",
    "CardInfoOptions",
    "CardRelation",
    "DeleteOutcome",
    "GraphQLResponse",
    "Phase",
    "Pipe",
    "PipefyAPIError",
    "PipefyClient",
    "PipefyConfig",
    "PipefyField",
    "Settings",
    "TableRecord"
]
