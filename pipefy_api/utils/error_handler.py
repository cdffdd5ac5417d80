"""
Manejo centralizado de errores de la API de Pipefy.
Clasifica las excepciones, las registra con logging estructurado y
mantiene un historial para estadísticas. No reintenta: los errores se
vuelven a lanzar tal cual al código que llama.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

MAX_ERROR_HISTORY = 1000


class APIErrorSeverity(Enum):
    """Niveles de severidad para errores de API."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class APIErrorType(Enum):
    """Tipos de errores de API."""
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    HTTP_ERROR = "http_error"
    AUTHENTICATION_ERROR = "authentication_error"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    GRAPHQL_ERROR = "graphql_error"
    VALIDATION_ERROR = "validation_error"
    UNKNOWN_ERROR = "unknown_error"


@dataclass
class APIError:
    """Estructura para representar errores de API."""
    api_name: str
    error_type: APIErrorType
    severity: APIErrorSeverity
    message: str
    status_code: Optional[int] = None
    response_body: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    context: Dict[str, Any] = field(default_factory=dict)


class APIErrorHandler:
    """Clasificador y registro de errores de APIs externas."""

    def __init__(self):
        self.error_history: List[APIError] = []

    def classify_error(
        self,
        exception: Exception,
        api_name: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None
    ) -> APIError:
        """
        Clasifica un error y determina su tipo y severidad.

        Args:
            exception: La excepción capturada
            api_name: Nombre de la API que falló
            status_code: Código de estado HTTP (si aplica)
            response_body: Cuerpo de la respuesta (si aplica)

        Returns:
            APIError clasificado
        """
        error_type = APIErrorType.UNKNOWN_ERROR
        severity = APIErrorSeverity.MEDIUM

        if isinstance(exception, httpx.HTTPStatusError):
            status_code = status_code or exception.response.status_code
            if response_body is None:
                response_body = exception.response.text
        status_code = status_code or getattr(exception, "status_code", None)

        if isinstance(exception, (httpx.TimeoutException, asyncio.TimeoutError)):
            error_type = APIErrorType.TIMEOUT

        elif isinstance(exception, (httpx.ConnectError, httpx.NetworkError, ConnectionError)):
            error_type = APIErrorType.CONNECTION_ERROR
            severity = APIErrorSeverity.HIGH

        elif status_code:
            error_type = APIErrorType.HTTP_ERROR
            if status_code in (401, 403):
                error_type = APIErrorType.AUTHENTICATION_ERROR
                severity = APIErrorSeverity.HIGH
            elif status_code == 429:
                error_type = APIErrorType.RATE_LIMIT
            elif 400 <= status_code < 500:
                error_type = APIErrorType.CLIENT_ERROR
                severity = APIErrorSeverity.LOW
            elif 500 <= status_code < 600:
                error_type = APIErrorType.SERVER_ERROR
                severity = APIErrorSeverity.HIGH

        elif getattr(exception, "errors", None):
            # Errores reportados en el cuerpo GraphQL
            error_type = APIErrorType.GRAPHQL_ERROR

        elif isinstance(exception, ValueError):
            error_type = APIErrorType.VALIDATION_ERROR
            severity = APIErrorSeverity.LOW

        return APIError(
            api_name=api_name,
            error_type=error_type,
            severity=severity,
            message=str(exception),
            status_code=status_code,
            response_body=response_body[:500] if response_body else None
        )

    def log_error(self, error: APIError, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Registra un error en los logs con el nivel apropiado.

        Args:
            error: El error a registrar
            context: Contexto adicional
        """
        if context:
            error.context.update(context)

        self.error_history.append(error)
        if len(self.error_history) > MAX_ERROR_HISTORY:
            self.error_history = self.error_history[-MAX_ERROR_HISTORY:]

        log_data = {
            "api_name": error.api_name,
            "error_type": error.error_type.value,
            "severity": error.severity.value,
            "error_message": error.message,
            "status_code": error.status_code,
            "timestamp": error.timestamp.isoformat(),
            "context": error.context
        }

        if error.severity == APIErrorSeverity.HIGH:
            logger.error(f"API Error - {error.api_name}: {error.message}", extra=log_data)
        elif error.severity == APIErrorSeverity.MEDIUM:
            logger.warning(f"API Error - {error.api_name}: {error.message}", extra=log_data)
        else:
            logger.info(f"API Error - {error.api_name}: {error.message}", extra=log_data)

    def get_error_stats(self, api_name: Optional[str] = None, hours: int = 24) -> Dict[str, Any]:
        """
        Obtiene estadísticas de errores.

        Args:
            api_name: Filtrar por API específica
            hours: Horas hacia atrás para analizar
        """
        cutoff_time = datetime.now() - timedelta(hours=hours)
        errors = [
            e for e in self.error_history
            if e.timestamp > cutoff_time and (not api_name or e.api_name == api_name)
        ]

        apis: Dict[str, int] = {}
        error_types: Dict[str, int] = {}
        severities: Dict[str, int] = {}
        for error in errors:
            apis[error.api_name] = apis.get(error.api_name, 0) + 1
            error_types[error.error_type.value] = error_types.get(error.error_type.value, 0) + 1
            severities[error.severity.value] = severities.get(error.severity.value, 0) + 1

        return {
            "total_errors": len(errors),
            "apis": apis,
            "error_types": error_types,
            "severities": severities
        }


def with_error_handling(api_name: str, context: Optional[Dict[str, Any]] = None):
    """
    Decorador que clasifica y registra las excepciones de una corrutina
    antes de volver a lanzarlas.

    Args:
        api_name: Nombre de la API
        context: Contexto adicional para logging
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            error_handler = get_error_handler()
            start_time = time.time()
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                response_time = time.time() - start_time
                error = error_handler.classify_error(e, api_name)
                error_handler.log_error(
                    error,
                    {**(context or {}), "function": func.__name__, "response_time": response_time}
                )
                raise

        return async_wrapper

    return decorator


# Instancia global del manejador de errores
_error_handler: Optional[APIErrorHandler] = None


def get_error_handler() -> APIErrorHandler:
    """Obtiene la instancia global del manejador de errores."""
    global _error_handler
    if _error_handler is None:
        _error_handler = APIErrorHandler()
    return _error_handler


def reset_error_handler() -> None:
    """Resetea el manejador de errores (útil para tests)."""
    global _error_handler
    _error_handler = None
