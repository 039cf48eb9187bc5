# src/semantic_suggest/config.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Tuple

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_repo_root(start: Path) -> Path:
    """
    Best-effort repository root discovery.
    - Prefer the closest ancestor containing `pyproject.toml`.
    - Fallback to the start directory if not found.
    """
    cur = start.resolve()
    for _ in range(20):
        if (cur / "pyproject.toml").exists():
            return cur
        if cur.parent == cur:
            break
        cur = cur.parent
    return start.resolve()


PACKAGE_ROOT = Path(__file__).resolve().parent
REPO_ROOT = _find_repo_root(PACKAGE_ROOT)

# Load .env into process environment early so CLI entry points see the same values.
load_dotenv(str(REPO_ROOT / ".env"), override=False)

DATA_ROOT = REPO_ROOT / ".Local"


class Settings(BaseSettings):
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Solr connection
    SOLR_BASE_URL: str = "http://localhost:8983/solr"
    SOLR_TIMEOUT_S: float = 5.0
    SOLR_DEFAULT_CORE: str = "core_en"
    # "root:language=core" pairs, comma separated, e.g. "1:0=core_en,1:1=core_de"
    SOLR_CORES: str = ""

    # Site roots known to the routing layer, comma separated page uids.
    SITE_ROOT_IDS: str = ""
    # Last-resort root page id when a document cannot be mapped to any site.
    DEFAULT_ROOT_PAGE_ID: int = 1

    # Capability signal consumed by the "auto" similarity mode.
    VECTOR_SEARCH_ENABLED: bool = False
    DEFAULT_SIMILARITY_MODE: str = "auto"

    SEMANTIC_SUGGEST_DATABASE_URL: str = f"sqlite+aiosqlite:///{(DATA_ROOT / 'semantic_suggest.db').as_posix()}"
    PAGE_TREE_PATH: str | None = None

    model_config = SettingsConfigDict(
        env_file=str(REPO_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def core_map(self) -> Dict[Tuple[int, int], str]:
        """Parse SOLR_CORES into {(root_id, language_id): core}."""
        out: Dict[Tuple[int, int], str] = {}
        for item in str(self.SOLR_CORES or "").split(","):
            item = item.strip()
            if not item or "=" not in item:
                continue
            key, core = item.split("=", 1)
            root, _, lang = key.partition(":")
            try:
                out[(int(root.strip()), int(lang.strip() or 0))] = core.strip()
            except ValueError:
                raise ValueError(f"invalid SOLR_CORES entry: {item!r}") from None
        return out

    @property
    def site_root_ids(self) -> List[int]:
        return [int(v) for v in str(self.SITE_ROOT_IDS or "").split(",") if v.strip()]


settings = Settings()
