"""
Configuración del cliente de Pipefy.

`PipefyConfig` agrupa los parámetros inmutables con los que se construye
el cliente. `Settings` es un cargador opcional que lee esos parámetros
desde variables de entorno (o un archivo .env); el cliente en sí nunca
consulta el entorno.
"""
import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

DEFAULT_ENDPOINT = "https://api.pipefy.com/graphql"


@dataclass(frozen=True)
class PipefyConfig:
    """Parámetros de construcción del cliente de Pipefy."""
    api_key: str
    organization_id: str
    time_zone: str = "America/Santiago"
    intl_code: str = "es-CL"
    log_table: Optional[str] = None
    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = 30.0
    max_concurrency: int = 10


class Settings:
    """Configuración centralizada leída desde el entorno."""

    def __init__(self, env_file: Optional[str] = None):
        # Cargar variables de entorno desde .env
        load_dotenv(env_file)

        # Pipefy Configuration
        self.PIPEFY_TOKEN: str = os.getenv("PIPEFY_TOKEN", "")
        self.PIPEFY_ORGANIZATION_ID: str = os.getenv("PIPEFY_ORGANIZATION_ID", "")
        self.PIPEFY_TIME_ZONE: str = os.getenv("PIPEFY_TIME_ZONE", "America/Santiago")
        self.PIPEFY_INTL_CODE: str = os.getenv("PIPEFY_INTL_CODE", "es-CL")
        self.PIPEFY_LOG_TABLE: Optional[str] = os.getenv("PIPEFY_LOG_TABLE") or None
        self.PIPEFY_ENDPOINT: str = os.getenv("PIPEFY_ENDPOINT", DEFAULT_ENDPOINT)

        # Application Configuration
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
        self.API_TIMEOUT: int = int(os.getenv("API_TIMEOUT", "30"))
        self.PIPEFY_MAX_CONCURRENCY: int = int(os.getenv("PIPEFY_MAX_CONCURRENCY", "10"))

    def validate_required_vars(self) -> list[str]:
        """
        Valida que las variables de entorno requeridas estén configuradas.

        Returns:
            Lista de variables faltantes (vacía si todas están configuradas)
        """
        required_vars = {
            "PIPEFY_TOKEN": self.PIPEFY_TOKEN,
            "PIPEFY_ORGANIZATION_ID": self.PIPEFY_ORGANIZATION_ID,
        }

        missing_vars = [var for var, value in required_vars.items() if not value]
        return missing_vars

    def get_pipefy_headers(self) -> dict:
        """Retorna los headers para las llamadas a la API de Pipefy."""
        return {
            "Authorization": f"Bearer {self.PIPEFY_TOKEN}",
            "Content-Type": "application/json"
        }

    def to_pipefy_config(self) -> PipefyConfig:
        """
        Construye un `PipefyConfig` a partir de las variables cargadas.

        Raises:
            ValueError: Si faltan variables requeridas
        """
        missing_vars = self.validate_required_vars()
        if missing_vars:
            raise ValueError(f"Variables de entorno faltantes: {', '.join(missing_vars)}")

        return PipefyConfig(
            api_key=self.PIPEFY_TOKEN,
            organization_id=self.PIPEFY_ORGANIZATION_ID,
            time_zone=self.PIPEFY_TIME_ZONE,
            intl_code=self.PIPEFY_INTL_CODE,
            log_table=self.PIPEFY_LOG_TABLE,
            endpoint=self.PIPEFY_ENDPOINT,
            timeout=float(self.API_TIMEOUT),
            max_concurrency=self.PIPEFY_MAX_CONCURRENCY,
        )
