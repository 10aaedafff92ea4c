"""Class legends for indexed classification bands.

A legend maps each class index of a scoring function to its external
label, plus a display name, description and RGB colour used by downstream
rendering.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
import yaml

from terratile.exceptions import ConfigurationError

_INT8 = np.iinfo(np.int8)

DESCRIPTION_SEPARATOR = "|"


@dataclass(frozen=True)
class ClassEntry:
    """One class of a legend."""

    label: int
    name: str
    description: str
    color: tuple[int, int, int]


@dataclass(frozen=True)
class ClassLegend:
    """Ordered classes; entry i describes class index i."""

    entries: tuple[ClassEntry, ...]

    def __post_init__(self) -> None:
        if not self.entries:
            raise ConfigurationError("Class legend must define at least one class")

        labels = [entry.label for entry in self.entries]
        if len(set(labels)) != len(labels):
            raise ConfigurationError(f"Class labels must be unique, got {labels}")

        for entry in self.entries:
            if not _INT8.min <= entry.label <= _INT8.max:
                raise ConfigurationError(
                    f"Class label {entry.label} ({entry.name}) does not fit the int8 class band"
                )
            if len(entry.color) != 3 or any(not 0 <= v <= 255 for v in entry.color):
                raise ConfigurationError(f"Invalid RGB colour {entry.color} for class {entry.name}")

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def labels(self) -> tuple[int, ...]:
        """Index to label remapping table."""
        return tuple(entry.label for entry in self.entries)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClassLegend":
        """Build a legend from a mapping with a ``classes`` list.

        Each class needs ``label`` and ``name``; ``description`` defaults to
        the name and ``color`` to black.
        """
        classes = data.get("classes")
        if not classes:
            raise ConfigurationError("Class legend has no 'classes' entries")

        entries = []
        for item in classes:
            try:
                label = int(item["label"])
                name = str(item["name"])
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid class legend entry {item!r}") from e
            entries.append(
                ClassEntry(
                    label=label,
                    name=name,
                    description=str(item.get("description", name)),
                    color=tuple(int(v) for v in item.get("color", (0, 0, 0))),
                )
            )
        return cls(entries=tuple(entries))

    @classmethod
    def from_names(cls, names: list[str]) -> "ClassLegend":
        """Legend labelling classes 0..N-1 after their score names."""
        return cls(
            entries=tuple(
                ClassEntry(label=i, name=name, description=name, color=(0, 0, 0))
                for i, name in enumerate(names)
            )
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "ClassLegend":
        """Load a legend from a YAML file."""
        if not path.exists():
            raise ConfigurationError(f"Class legend file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ConfigurationError(f"Class legend file {path} is empty or malformed")
        return cls.from_dict(data)

    def to_attrs(self) -> dict[str, Any]:
        """CF-style flag attributes for the class band.

        Only scalars, strings and flat integer lists are used so the
        attributes survive both NetCDF3 and GeoTIFF tags.
        """
        return {
            "flag_values": [entry.label for entry in self.entries],
            "flag_meanings": " ".join(entry.name.replace(" ", "_") for entry in self.entries),
            "flag_descriptions": DESCRIPTION_SEPARATOR.join(entry.description for entry in self.entries),
            "flag_colors": [v for entry in self.entries for v in entry.color],
        }

    @classmethod
    def from_attrs(cls, attrs: dict[str, Any]) -> "ClassLegend | None":
        """Rebuild a legend from class band attributes, or None if absent."""
        if "flag_values" not in attrs:
            return None
        values = [int(v) for v in np.atleast_1d(attrs["flag_values"])]
        names = str(attrs.get("flag_meanings", "")).split()
        if len(names) != len(values):
            names = [str(v) for v in values]

        descriptions = str(attrs.get("flag_descriptions", "")).split(DESCRIPTION_SEPARATOR)
        if len(descriptions) != len(values):
            descriptions = names

        colors = [int(v) for v in np.atleast_1d(attrs.get("flag_colors", []))]
        if len(colors) != 3 * len(values):
            colors = [0, 0, 0] * len(values)

        return cls(
            entries=tuple(
                ClassEntry(
                    label=label,
                    name=name,
                    description=description,
                    color=tuple(colors[3 * i:3 * i + 3]),
                )
                for i, (label, name, description) in enumerate(zip(values, names, descriptions))
            )
        )

    def colormap(self) -> dict[int, tuple[int, int, int, int]]:
        """rasterio colormap keyed by label."""
        return {entry.label: (*entry.color, 255) for entry in self.entries}
