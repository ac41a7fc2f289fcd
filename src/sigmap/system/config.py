from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .signature import Signature
from ..modules.find_pairs import Pairer, get_pairer

# shipped as package data, see pyproject.toml
DEFAULT_CONFIG = Path(__file__).resolve().parents[1] / "configs" / "default.yaml"


def load_config(path: str | os.PathLike | None = None) -> dict:
    path = DEFAULT_CONFIG if path is None else Path(path)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Missing config: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@dataclass
class SignatureSettings:
    pairer: str = "unique"
    validate_depth_on_init: bool = False

    @classmethod
    def from_cfg(cls, cfg: dict) -> "SignatureSettings":
        sec = cfg.get("signature", {}) or {}
        settings = cls(
            pairer=str(sec.get("pairer", "unique")),
            validate_depth_on_init=bool(sec.get("validate_depth_on_init", False)),
        )
        # fail at load time, not on the first comparison
        settings.pairer_fn()
        return settings

    def pairer_fn(self) -> Pairer:
        return get_pairer(self.pairer)

    def new_signature(self, id: int, map_id: int = 0, **kwargs) -> Signature:
        return Signature(id, map_id, validate_depth=self.validate_depth_on_init, **kwargs)
