"""Configuration file access.

Reading never raises: any failure is logged and yields an empty string, which
the control plane treats as "empty configuration" for that cycle.
"""

import logging
from pathlib import Path

from dynprof.errors import ConfigReadError, ConfigWriteError

logger = logging.getLogger(__name__)


def read_config_file(path: str | Path) -> str:
    """Read a whole configuration file.

    Args:
        path: File to read

    Returns:
        The file contents, or "" if the file is missing or unreadable
    """
    file_path = Path(path)
    try:
        return file_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("Config file %s does not exist, treating as empty", file_path)
        return ""
    except (OSError, UnicodeDecodeError) as e:
        error = ConfigReadError(str(file_path), e)
        logger.error("Error in reading config from config file: %s", error.message)
        return ""


def write_config_file(path: str | Path, text: str) -> Path:
    """Write configuration text, replacing the file atomically.

    Args:
        path: Destination file
        text: Configuration text

    Returns:
        The written path

    Raises:
        ConfigWriteError: If the file cannot be written
    """
    file_path = Path(path)
    tmp_path = file_path.with_name(f".{file_path.name}.tmp")
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(text, encoding="utf-8")
        tmp_path.replace(file_path)
    except OSError as e:
        raise ConfigWriteError(str(file_path), e) from e
    logger.debug("Wrote %s bytes to %s", len(text), file_path)
    return file_path
