from __future__ import annotations

from farmsync.core.errors import InfraError, TransientExternalError


class SheetsConfigError(InfraError):
    """La hoja de cálculo de la nube no es accesible con la configuración actual."""


class SheetsApiDisabledError(SheetsConfigError):
    pass


class SheetsPermissionError(SheetsConfigError):
    pass


class SheetsNotFoundError(SheetsConfigError):
    pass


class SheetsCredentialsError(SheetsConfigError):
    pass


class SheetsSchemaError(SheetsConfigError):
    """Faltan columnas obligatorias en la hoja de árboles o usuarios."""


class SheetsRateLimitError(TransientExternalError):
    pass
