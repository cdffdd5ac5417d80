#!/usr/bin/env python3
"""
Script de validación de entorno para el cliente de Pipefy.

Verifica que las variables de entorno necesarias estén configuradas y que
el token permita consultar la API (y, opcionalmente, un pipe y la tabla
de logs).
"""

import asyncio
import logging
import sys
from typing import List, Optional

import httpx

from pipefy_api.config.settings import Settings
from pipefy_api.integrations.pipefy_client import PipefyAPIError, PipefyClient

logger = logging.getLogger(__name__)

ME_QUERY = "{ me { id name email } }"


class EnvironmentValidator:
    """Validador de configuración de entorno."""

    def __init__(self, settings: Settings, client: Optional[PipefyClient] = None):
        self.settings = settings
        self.client = client
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.success_count = 0
        self.total_checks = 0

    def check_required_env_vars(self) -> bool:
        """Verifica que las variables de entorno requeridas estén configuradas."""
        print("🔍 Verificando variables de entorno...")
        self.total_checks += 1

        missing_vars = self.settings.validate_required_vars()
        for var in missing_vars:
            self.errors.append(f"❌ {var} no está configurada")

        if not self.settings.PIPEFY_LOG_TABLE:
            self.warnings.append("⚠️  PIPEFY_LOG_TABLE no configurada (log_error no registrará errores)")

        if missing_vars:
            return False

        token = self.settings.PIPEFY_TOKEN
        print(f"  ✅ PIPEFY_TOKEN: {'*' * min(len(token), 20)}...")
        print(f"  ✅ PIPEFY_ORGANIZATION_ID: {self.settings.PIPEFY_ORGANIZATION_ID}")
        print(f"  ℹ️  Zona horaria: {self.settings.PIPEFY_TIME_ZONE} / Idioma: {self.settings.PIPEFY_INTL_CODE}")
        self.success_count += 1
        return True

    def get_client(self) -> PipefyClient:
        if self.client is None:
            self.client = PipefyClient.from_config(self.settings.to_pipefy_config())
        return self.client

    async def check_pipefy_connection(self) -> bool:
        """Verifica la autenticación contra Pipefy."""
        print("\n🔗 Verificando conexión con Pipefy...")
        self.total_checks += 1

        try:
            response = await self.get_client().pipefy_fetch(ME_QUERY)
        except httpx.TimeoutException:
            self.errors.append("❌ Timeout al conectar con Pipefy")
            return False
        except httpx.HTTPError as e:
            self.errors.append(f"❌ Error al conectar con Pipefy: {e}")
            return False

        if response.status_code != 200:
            self.errors.append(f"❌ Error HTTP en Pipefy: {response.status_code}")
            return False

        data = response.json()
        if data.get("errors"):
            self.errors.append(f"❌ Error GraphQL en Pipefy: {data['errors']}")
            return False

        user_name = ((data.get("data") or {}).get("me") or {}).get("name", "Usuario")
        print(f"  ✅ Conexión exitosa con Pipefy (Usuario: {user_name})")
        self.success_count += 1
        return True

    async def check_pipe(self, pipe_id: str) -> bool:
        """Verifica que el pipe indicado sea accesible."""
        print(f"\n📋 Verificando pipe {pipe_id}...")
        self.total_checks += 1

        try:
            pipe = await self.get_client().get_pipe_info(pipe_id)
        except (httpx.HTTPError, PipefyAPIError) as e:
            self.errors.append(f"❌ Error al consultar el pipe {pipe_id}: {e}")
            return False

        if pipe is None:
            self.errors.append(f"❌ El pipe {pipe_id} no existe o no es accesible")
            return False

        print(f"  ✅ Pipe encontrado: {pipe.name}")
        self.success_count += 1
        return True

    def print_summary(self):
        """Imprime un resumen de la validación."""
        print("\n" + "=" * 60)
        print("📋 RESUMEN DE VALIDACIÓN")
        print("=" * 60)

        print(f"✅ Verificaciones exitosas: {self.success_count}/{self.total_checks}")

        if self.errors:
            print(f"\n❌ ERRORES ENCONTRADOS ({len(self.errors)}):")
            for error in self.errors:
                print(f"  {error}")

        if self.warnings:
            print(f"\n⚠️  ADVERTENCIAS ({len(self.warnings)}):")
            for warning in self.warnings:
                print(f"  {warning}")

        if not self.errors:
            print("\n🎉 ¡Configuración válida! El cliente de Pipefy está listo para usar.")
        else:
            print("\n🔧 Corrige los errores antes de continuar.")

        print("=" * 60)


async def validate(settings: Settings, pipe_id: Optional[str] = None, client: Optional[PipefyClient] = None) -> bool:
    """
    Ejecuta todas las verificaciones.

    Returns:
        True si no hubo errores
    """
    validator = EnvironmentValidator(settings, client)

    if not validator.check_required_env_vars():
        validator.print_summary()
        return False

    # Las verificaciones remotas solo tienen sentido con el token válido
    if await validator.check_pipefy_connection() and pipe_id:
        await validator.check_pipe(pipe_id)

    validator.print_summary()
    return len(validator.errors) == 0


def main(argv: Optional[List[str]] = None) -> int:
    """Punto de entrada: `pipefy-validate-env [pipe_id]`."""
    args = sys.argv[1:] if argv is None else argv
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    print("🚀 VALIDADOR DE ENTORNO - Cliente de Pipefy")
    print("=" * 60)

    try:
        success = asyncio.run(validate(settings, args[0] if args else None))
    except KeyboardInterrupt:
        print("\n\n⚠️  Validación interrumpida por el usuario.")
        return 1
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
