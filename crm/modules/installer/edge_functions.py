import logging
import tomllib
from pathlib import Path
from typing import Dict, List, Optional

from crm.config import settings

logger = logging.getLogger(__name__)


def list_edge_function_slugs(functions_dir: Optional[str] = None) -> List[str]:
    root = Path(functions_dir or settings.functions_dir)
    if not root.is_dir():
        return []
    # Directories starting with "_" hold shared code, not deployable functions
    return sorted(p.name for p in root.iterdir() if p.is_dir() and not p.name.startswith(("_", ".")))


def read_verify_jwt_by_slug(functions_dir: Optional[str] = None) -> Dict[str, bool]:
    """``[functions.<slug>] verify_jwt`` from the sibling ``config.toml``."""
    config_path = Path(functions_dir or settings.functions_dir).parent / "config.toml"
    if not config_path.is_file():
        return {}
    try:
        config = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        logger.warning("Could not parse %s: %s", config_path, e)
        return {}
    functions = config.get("functions") or {}
    return {
        slug: bool(section["verify_jwt"])
        for slug, section in functions.items()
        if isinstance(section, dict) and "verify_jwt" in section
    }


def list_edge_functions(functions_dir: Optional[str] = None) -> List[Dict[str, object]]:
    verify = read_verify_jwt_by_slug(functions_dir)
    return [
        {"slug": slug, "verify_jwt": verify.get(slug, True)}
        for slug in list_edge_function_slugs(functions_dir)
    ]
