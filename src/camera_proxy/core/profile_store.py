#!/usr/bin/env python3
"""
Heuristic Profile Store
Durable per-shader-bytecode pinned bindings, loaded once at startup and
rewritten on every promotion, pin or clear
"""

import os
import json
import hashlib
import logging
import tempfile
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from .matrix_bank import MatrixSlot

logger = logging.getLogger(__name__)

PROFILE_FORMAT_VERSION = 1
DEFAULT_PROFILE_PATH = Path.home() / '.config' / 'camera-proxy' / 'profiles.json'


def compute_bytecode_hash(bytecode: bytes) -> str:
    """Stable content hash for shader bytecode"""
    return hashlib.blake2b(bytecode, digest_size=16).hexdigest()


class LayoutMode(Enum):
    """Register count of the pinned view window"""
    ROWS4 = "rows4"
    ROWS3 = "rows3"

    @classmethod
    def from_rows(cls, row_count: int) -> "LayoutMode":
        return cls.ROWS3 if row_count == 3 else cls.ROWS4

    @property
    def row_count(self) -> int:
        return 3 if self is LayoutMode.ROWS3 else 4


@dataclass
class HeuristicProfile:
    """Pinned View/Projection registers for one shader bytecode"""
    valid: bool = False
    view_base: int = -1
    proj_base: int = -1
    layout_mode: LayoutMode = LayoutMode.ROWS4
    transposed: bool = False
    inverse_view: bool = False

    def pinned_base(self, slot: MatrixSlot) -> Optional[int]:
        """Pinned register for a slot, None when the slot is not pinned"""
        if not self.valid:
            return None
        if slot == MatrixSlot.VIEW and self.view_base >= 0:
            return self.view_base
        if slot == MatrixSlot.PROJECTION and self.proj_base >= 0:
            return self.proj_base
        return None

    def to_dict(self) -> Dict:
        return {
            "valid": self.valid,
            "view_base": self.view_base,
            "proj_base": self.proj_base,
            "layout_mode": self.layout_mode.value,
            "transposed": self.transposed,
            "inverse_view": self.inverse_view,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "HeuristicProfile":
        return cls(
            valid=bool(data.get("valid", False)),
            view_base=int(data.get("view_base", -1)),
            proj_base=int(data.get("proj_base", -1)),
            layout_mode=LayoutMode(data.get("layout_mode", LayoutMode.ROWS4.value)),
            transposed=bool(data.get("transposed", False)),
            inverse_view=bool(data.get("inverse_view", False)),
        )


class ProfileStore:
    """
    Get/set/enumerate access to pinned profiles

    Backed by a JSON document, or memory only when no path is given.
    Failures are logged and reported as False; in-memory state always
    reflects the latest set/clear.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._profiles: Dict[str, HeuristicProfile] = {}
        self.loaded = False
        self.save_count = 0
        self.failed_writes = 0

    def load(self) -> bool:
        """Read every persisted profile, skipping invalid and malformed entries"""
        self.loaded = True
        if self.path is None or not self.path.exists():
            return True

        try:
            document = json.loads(self.path.read_text())
            entries = document.get("profiles", {}) if isinstance(document, dict) else None
            if not isinstance(entries, dict):
                raise ValueError("missing 'profiles' object")
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read profile store {self.path}: {e}")
            return False

        loaded = 0
        for bytecode_hash, data in entries.items():
            try:
                profile = HeuristicProfile.from_dict(data)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed profile {bytecode_hash}: {e}")
                continue
            if not profile.valid:
                continue
            self._profiles[str(bytecode_hash)] = profile
            loaded += 1

        logger.info(f"Loaded {loaded} shader profiles from {self.path}")
        return True

    def lookup(self, bytecode_hash: Optional[str]) -> Optional[HeuristicProfile]:
        """Copy of the valid profile for a hash, if any"""
        if bytecode_hash is None:
            return None
        profile = self._profiles.get(bytecode_hash)
        if profile is None or not profile.valid:
            return None
        return replace(profile)

    def keys(self) -> List[str]:
        return sorted(self._profiles)

    def enumerate(self) -> Dict[str, HeuristicProfile]:
        return {key: replace(profile) for key, profile in sorted(self._profiles.items())}

    def save(self, bytecode_hash: str, profile: HeuristicProfile) -> bool:
        self._profiles[bytecode_hash] = replace(profile)
        logger.debug(f"Profile {bytecode_hash}: {profile.to_dict()}")
        return self._persist()

    def clear(self, bytecode_hash: str) -> bool:
        """Invalidate a profile and persist the cleared entry"""
        if bytecode_hash not in self._profiles:
            return True
        self._profiles[bytecode_hash] = HeuristicProfile(valid=False)
        logger.info(f"Cleared profile {bytecode_hash}")
        return self._persist()

    def clear_all(self) -> bool:
        for bytecode_hash in list(self._profiles):
            self._profiles[bytecode_hash] = HeuristicProfile(valid=False)
        return self._persist()

    def _persist(self) -> bool:
        if self.path is None:
            return True

        document = {
            "version": PROFILE_FORMAT_VERSION,
            "profiles": {key: profile.to_dict() for key, profile in sorted(self._profiles.items())},
        }
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".profiles-", suffix=".tmp", dir=str(self.path.parent))
            with os.fdopen(fd, "w") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_name, self.path)
            tmp_name = None
            self.save_count += 1
            return True
        except (OSError, TypeError, ValueError) as e:
            self.failed_writes += 1
            logger.warning(f"Could not write profile store {self.path}: {e}")
            return False
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
