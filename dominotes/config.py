from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import os

from .reconciler import ClearPolicy

LEDGER_STORE_NAME = "dominotes-sync-storage"
DEFAULT_API_URL = "http://127.0.0.1:8000"
AUTOSAVE_DELAY = 2.0  # seconds of quiet before an edit is saved


def _flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def is_production() -> bool:
    return os.getenv("DOMINOTES_ENV", "").lower() == "production"


@dataclass(frozen=True)
class Settings:
    """Client-side settings, read from DOMINOTES_* environment variables."""
    api_url: str = DEFAULT_API_URL
    data_dir: Path = Path.home() / ".dominotes"
    pin: Optional[str] = None
    clear_policy: ClearPolicy = ClearPolicy.ALWAYS
    merge_into_create: bool = False
    autosave_delay: float = AUTOSAVE_DELAY

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / f"{LEDGER_STORE_NAME}.json"

    @classmethod
    def from_env(cls) -> "Settings":
        data_dir = os.getenv("DOMINOTES_DATA_DIR")
        return cls(
            api_url=os.getenv("DOMINOTES_API_URL", DEFAULT_API_URL),
            data_dir=Path(data_dir) if data_dir else Path.home() / ".dominotes",
            pin=os.getenv("DOMINOTES_PIN") or None,
            clear_policy=ClearPolicy(os.getenv("DOMINOTES_CLEAR_POLICY", ClearPolicy.ALWAYS.value)),
            merge_into_create=_flag("DOMINOTES_MERGE_INTO_CREATE"),
            autosave_delay=float(os.getenv("DOMINOTES_AUTOSAVE_DELAY", AUTOSAVE_DELAY)),
        )
