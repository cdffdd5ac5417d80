"""
Integración con la API GraphQL de Pipefy.
"""
from .models import Card, CardInfoOptions, CardRelation, GraphQLResponse, Phase, Pipe, PipefyField, TableRecord
from .pipefy_client import PipefyAPIError, PipefyClient

__all__ = [
    "Card",
    "CardInfoOptions",
    "CardRelation",
    "GraphQLResponse",
    "Phase",
    "Pipe",
    "PipefyAPIError",
    "PipefyClient",
    "PipefyField",
    "TableRecord"
]
