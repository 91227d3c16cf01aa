import logging
import os

from pydantic import ValidationError

from wp_import.models.settings import ImportSettings
from wp_import.utils.errors import PreFlightCheckError

logger = logging.getLogger(__name__)


def _check_writable_dir(path: str, label: str) -> None:
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise PreFlightCheckError(f"Não foi possível criar o diretório de {label} '{path}': {e}")
    if not os.access(path, os.W_OK):
        raise PreFlightCheckError(f"O diretório de {label} '{path}' não tem permissão de escrita.")


def check_lock_free(lock) -> None:
    """Refuses the run while another import holds ``lock``."""
    if lock is not None and lock.is_locked():
        raise PreFlightCheckError("Outra importação já está em andamento (lock ativo).")


def run_pre_flight_checks(config: dict, export_path: str, lock=None) -> ImportSettings:
    """
    Verifies that the environment is ready for an import.

    Args:
        config: The application configuration dictionary.
        export_path: Path of the WXR export to import.
        lock: Optional run lock; the run is refused while it is held.

    Returns:
        The validated import settings.

    Raises:
        PreFlightCheckError: If any check fails.
    """
    logger.info("Running pre-flight checks...")

    # Check 1: the export file
    if not export_path or not os.path.isfile(export_path):
        raise PreFlightCheckError(f"Arquivo de exportação não encontrado: {export_path}")
    if not os.access(export_path, os.R_OK):
        raise PreFlightCheckError(f"Arquivo de exportação sem permissão de leitura: {export_path}")

    # Check 2: settings consistency
    try:
        settings = ImportSettings.from_config(config)
    except ValidationError as e:
        raise PreFlightCheckError(f"Configuração de importação inválida: {e}")

    # Check 3: writable destination directories
    destination = config.get("destination", {})
    db_path = destination.get("db_path", "")
    if db_path and db_path != ":memory:":
        _check_writable_dir(os.path.dirname(os.path.abspath(db_path)), "banco de dados")
    if destination.get("media_root"):
        _check_writable_dir(destination["media_root"], "mídia")
    if settings.include_media:
        _check_writable_dir(settings.media.download_dir, "download")
    _check_writable_dir(config.get("reports", {}).get("dir", os.path.join("reports", "migration")), "relatórios")

    # Check 4: no other import running
    check_lock_free(lock)

    logger.info("Pre-flight checks passed successfully.")
    return settings
