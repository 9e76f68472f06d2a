import os
import logging
from typing import NamedTuple, Optional

import yaml

logger = logging.getLogger(__name__)

PROGRAM = "ftpd"
VERSION = 2
AUTHOR_EMAIL = "ftpd@localhost"

DEFAULT_CONFIG_FILE = "ftpd.yml"


class ConfigError(Exception):
    pass


class ServerConfig(NamedTuple):
    host: str = "127.0.0.1"
    port: int = 21
    clients: int = 5
    debug: bool = False
    root: Optional[str] = None
    timeout: Optional[float] = None


DEFAULTS = ServerConfig()

# Conversión de cada clave aceptada en el YAML / línea de comandos
_COERCE = {
    'host': str,
    'port': int,
    'clients': int,
    'root': str,
}


def _to_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('1', 'true', 'yes', 'on'):
            return True
        if lowered in ('0', 'false', 'no', 'off'):
            return False
    if isinstance(value, int):
        return bool(value)
    raise ValueError(f"not a boolean: {value!r}")


def _to_timeout(value):
    if value is None:
        return None
    timeout = float(value)
    if timeout <= 0:
        raise ValueError("timeout must be positive")
    return timeout


_COERCE['debug'] = _to_bool
_COERCE['timeout'] = _to_timeout


def coerce(key, value):
    """Convierte un valor de configuración al tipo del campo. Lanza ConfigError."""
    try:
        return _COERCE[key](value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value for '{key}': {value!r} ({e})")


def load_config_file(path, required=False):
    """
    Lee un fichero YAML y devuelve un dict con las claves reconocidas.
    Si el fichero no existe y no era obligatorio, devuelve {}.
    """
    if not os.path.isfile(path):
        if required:
            raise ConfigError(f"config file not found: {path}")
        return {}
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"malformed YAML in {path}: {e}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")

    values = {}
    for key, value in data.items():
        key = str(key)
        if key not in _COERCE:
            logger.warning(f"[CONFIG] Clave desconocida '{key}' en {path}, ignorada")
            continue
        values[key] = coerce(key, value)
    return values


def build_config(options=None, file_values=None):
    """
    Mezcla opciones de línea de comandos > fichero YAML > valores por defecto.
    Las opciones con valor None se consideran no indicadas.
    """
    merged = DEFAULTS._asdict()
    for source in (file_values or {}, options or {}):
        for key, value in source.items():
            if key in merged and value is not None:
                merged[key] = coerce(key, value)
    if merged['root'] is None:
        merged['root'] = os.getcwd()
    merged['root'] = os.path.abspath(merged['root'])
    if not os.path.isdir(merged['root']):
        raise ConfigError(f"root directory does not exist: {merged['root']}")
    if merged['clients'] < 1:
        raise ConfigError("clients must be at least 1")
    if not 0 <= merged['port'] <= 65535:
        raise ConfigError(f"port out of range: {merged['port']}")
    return ServerConfig(**merged)


def sample_yaml():
    """Documento YAML de ejemplo con los valores por defecto."""
    sample = {k: v for k, v in DEFAULTS._asdict().items() if v is not None}
    return yaml.safe_dump(sample, default_flow_style=False)
