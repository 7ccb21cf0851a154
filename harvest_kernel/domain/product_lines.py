"""
Product lines and pipeline stages.

Responsibility:
    Closed vocabularies for the two parallel material streams and the three
    batch stages, plus the config-time registry describing what each line
    measures at each stage.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Every service and selector receives a
    ``ProductLine`` value and filters a single table by it; no table or column
    name is ever assembled from request input.

Invariants enforced:
    - ``normalize_product_line`` is the only way request input becomes a
      ``ProductLine``; anything else raises ``UnknownProductLineError``.
    - Each line's packaging/labeling material set is fixed here.  A material
      outside the set is rejected when recorded and ignored by submit guards.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from harvest_kernel.exceptions import UnknownProductLineError


class ProductLine(str, Enum):
    """The two parallel material streams."""

    SAP = "sap"  # sap collected in the field, processed in-house, bottled
    TREACLE = "treacle"  # treacle collected in the field, processed to blocks


class Stage(str, Enum):
    """Pipeline stages, in flow order."""

    PROCESSING = "processing"
    PACKAGING = "packaging"
    LABELING = "labeling"

    @property
    def upstream(self) -> Stage | None:
        return _UPSTREAM[self]

    @property
    def downstream(self) -> Stage | None:
        return _DOWNSTREAM[self]


_UPSTREAM: dict[Stage, Stage | None] = {
    Stage.PROCESSING: None,
    Stage.PACKAGING: Stage.PROCESSING,
    Stage.LABELING: Stage.PACKAGING,
}

_DOWNSTREAM: dict[Stage, Stage | None] = {
    Stage.PROCESSING: Stage.PACKAGING,
    Stage.PACKAGING: Stage.LABELING,
    Stage.LABELING: None,
}


# Every material column pair that exists on the batch tables.
PACKAGING_MATERIALS: tuple[str, ...] = (
    "bottle",
    "lid",
    "alufoil",
    "vacuum_bag",
    "parchment_paper",
)

LABELING_MATERIALS: tuple[str, ...] = (
    "sticker",
    "shrink_sleeve",
    "neck_tag",
    "corrugated_carton",
)


@dataclass(frozen=True)
class ProductLineProfile:
    """What a product line records at each stage."""

    line: ProductLine
    packaging_materials: tuple[str, ...]
    labeling_materials: tuple[str, ...]
    required_labeling_materials: tuple[str, ...]

    def materials_for(self, stage: Stage) -> tuple[str, ...]:
        if stage is Stage.PACKAGING:
            return self.packaging_materials
        if stage is Stage.LABELING:
            return self.labeling_materials
        return ()

    def required_materials_for(self, stage: Stage) -> tuple[str, ...]:
        if stage is Stage.PACKAGING:
            return self.packaging_materials
        if stage is Stage.LABELING:
            return self.required_labeling_materials
        return ()

    def unused_materials_for(self, stage: Stage) -> tuple[str, ...]:
        """Materials that exist on the stage table but not for this line."""
        if stage is Stage.PACKAGING:
            universe = PACKAGING_MATERIALS
        elif stage is Stage.LABELING:
            universe = LABELING_MATERIALS
        else:
            return ()
        used = set(self.materials_for(stage))
        return tuple(m for m in universe if m not in used)


PRODUCT_LINES: MappingProxyType[ProductLine, ProductLineProfile] = MappingProxyType({
    ProductLine.SAP: ProductLineProfile(
        line=ProductLine.SAP,
        packaging_materials=("bottle", "lid"),
        labeling_materials=("sticker", "shrink_sleeve", "neck_tag", "corrugated_carton"),
        required_labeling_materials=(
            "sticker",
            "shrink_sleeve",
            "neck_tag",
            "corrugated_carton",
        ),
    ),
    ProductLine.TREACLE: ProductLineProfile(
        line=ProductLine.TREACLE,
        packaging_materials=("alufoil", "vacuum_bag", "parchment_paper"),
        labeling_materials=("sticker", "corrugated_carton"),
        required_labeling_materials=("sticker", "corrugated_carton"),
    ),
})


def normalize_product_line(value: object) -> ProductLine:
    """
    Turn request input into a ``ProductLine``.

    Accepts an existing ``ProductLine`` or a case-insensitive string with
    surrounding whitespace.

    Raises:
        UnknownProductLineError: for anything else.
    """
    if isinstance(value, ProductLine):
        return value
    if isinstance(value, str):
        try:
            return ProductLine(value.strip().lower())
        except ValueError:
            pass
    raise UnknownProductLineError(value)


def profile_for(line: ProductLine | str) -> ProductLineProfile:
    return PRODUCT_LINES[normalize_product_line(line)]
