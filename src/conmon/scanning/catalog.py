"""In-memory control catalog, loadable from YAML."""

from __future__ import annotations

from pathlib import Path

import yaml

from conmon.errors.exceptions import ValidationError
from conmon.families import family_of
from conmon.integrations.base import ControlCatalog
from conmon.models.finding import Control


class StaticControlCatalog(ControlCatalog):
    """Controls grouped by family, kept in declaration order."""

    def __init__(self, controls: list[Control] | None = None) -> None:
        self._by_family: dict[str, list[Control]] = {}
        for control in controls or []:
            self.add(control)

    def add(self, control: Control) -> None:
        self._by_family.setdefault(control.family.upper(), []).append(control)

    async def get_controls(self, family: str) -> list[Control]:
        return list(self._by_family.get(family.upper(), []))

    @classmethod
    def from_yaml(cls, path: str | Path) -> StaticControlCatalog:
        """Load a catalog shaped as ``{family: [{control_id, title}, ...]}``.

        Bare strings are accepted as control ids.
        """
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ValidationError(f"Control catalog {path} must be a mapping of family codes")
        controls = []
        for family, entries in raw.items():
            for entry in entries or []:
                if isinstance(entry, str):
                    entry = {"control_id": entry}
                control_id = entry["control_id"]
                if family_of(control_id) != str(family).upper():
                    raise ValidationError(
                        f"Control {control_id} listed under family {family}"
                    )
                controls.append(Control(
                    control_id=control_id,
                    family=str(family).upper(),
                    title=entry.get("title", ""),
                    description=entry.get("description"),
                ))
        return cls(controls)
