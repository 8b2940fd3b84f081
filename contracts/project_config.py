from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from scaffold.spec import (
    KUSABI_LEVEL_HEIGHT_MM,
    KUSABI_POST_SIZES_MM,
    KUSABI_SPANS_MM,
    KUSABI_TOP_GUARD_SIZES_MM,
    SCAFFOLD_WIDTHS_MM,
    STRUCTURE_TYPE_ALIASES,
    WAKUGUMI_FRAME_SIZES_MM,
    WAKUGUMI_SPANS_MM,
    EndStopperStyle,
    ScaffoldFamily,
    StructureType,
)

# A closed perimeter needs at least a triangle.
MIN_CLOSED_OUTLINE_WALLS = 3

# Flat keys accepted at the top level (estimate-form layout) and moved into ``params``.
_FLAT_PARAM_KEYS = {
    "preferredMainTatejiMm": "postSizeMm",
    "postSizeMm": "postSizeMm",
    "topGuardHeightMm": "topGuardHeightMm",
    "preferredSpanMm": "preferredSpanMm",
    "frameSizeMm": "frameSizeMm",
    "basePlatesPerSpan": "basePlatesPerSpan",
    "habakiCountPerSpan": "habakiCountPerSpan",
    "endStopperType": "endStopperStyle",
    "endStopperStyle": "endStopperStyle",
}

_FAMILY_PARAM_KEYS: dict[str, set[str]] = {
    ScaffoldFamily.KUSABI.value: {"postSizeMm", "topGuardHeightMm", "preferredSpanMm"},
    ScaffoldFamily.WAKUGUMI.value: {
        "frameSizeMm",
        "basePlatesPerSpan",
        "habakiCountPerSpan",
        "endStopperStyle",
        "preferredSpanMm",
    },
}


class ConfigValidationError(ValueError):
    """Rejected project input. ``errors`` is a list of ``{"field", "code", "msg"}``."""

    status = "INVALID_CONFIG"

    def __init__(self, errors: list[dict[str, Any]]):
        self.errors = errors
        first = errors[0] if errors else {"field": "config", "msg": "invalid"}
        more = f" (+{len(errors) - 1} more)" if len(errors) > 1 else ""
        super().__init__(f"{first.get('field')}: {first.get('msg')}{more}")

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "ConfigValidationError":
        errors = []
        for e in exc.errors(include_url=False):
            loc = ".".join(str(p) for p in e.get("loc", ())) or "config"
            errors.append({"field": loc, "code": str(e.get("type", "invalid")), "msg": str(e.get("msg", ""))})
        return cls(errors)

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "errors": list(self.errors)}


def _positive(v, what: str) -> int:
    if v is None:
        return v
    v = int(v)
    if v <= 0:
        raise ValueError(f"{what} must be > 0")
    return v


class _Contract(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class WallSegment(_Contract):
    length_mm: int = Field(alias="lengthMm")
    offset_mm: int = Field(default=0, alias="offsetMm")

    @field_validator("length_mm")
    @classmethod
    def _length_pos(cls, v):
        return _positive(v, "segment length")


class Wall(_Contract):
    side: Optional[str] = None
    wall_length_mm: Optional[int] = Field(default=None, alias="wallLengthMm")
    wall_height_mm: Optional[int] = Field(default=None, alias="wallHeightMm")
    stair_access_count: int = Field(default=0, ge=0, alias="stairAccessCount")
    enabled: bool = True
    segments: Optional[list[WallSegment]] = None
    kaidan_offsets_mm: Optional[list[float]] = Field(default=None, alias="kaidanOffsetsMm")

    @field_validator("wall_length_mm")
    @classmethod
    def _length_pos(cls, v):
        return _positive(v, "wall length")

    @field_validator("wall_height_mm")
    @classmethod
    def _height_pos(cls, v):
        return _positive(v, "wall height")

    @model_validator(mode="after")
    def _length_from_segments(self):
        if self.segments:
            total = sum(int(s.length_mm) for s in self.segments)
            if self.wall_length_mm is None:
                self.wall_length_mm = total
            elif int(self.wall_length_mm) != total:
                raise ValueError(f"wall length {self.wall_length_mm} does not match segment total {total}")
        elif self.segments is not None:
            raise ValueError("segments must not be empty when given")
        if self.wall_length_mm is None:
            raise ValueError("wall length is required")
        return self


class KusabiParams(_Contract):
    family: Literal["kusabi"] = "kusabi"
    post_size_mm: int = Field(default=1800, alias="postSizeMm")
    top_guard_height_mm: int = Field(default=900, alias="topGuardHeightMm")
    preferred_span_mm: int = Field(default=1800, alias="preferredSpanMm")

    @field_validator("post_size_mm")
    @classmethod
    def _post_size(cls, v):
        if int(v) not in KUSABI_POST_SIZES_MM:
            raise ValueError(f"post size must be one of {list(KUSABI_POST_SIZES_MM)}")
        return int(v)

    @field_validator("top_guard_height_mm")
    @classmethod
    def _top_guard(cls, v):
        if int(v) not in KUSABI_TOP_GUARD_SIZES_MM:
            raise ValueError(f"top guard height must be one of {list(KUSABI_TOP_GUARD_SIZES_MM)}")
        return int(v)

    @field_validator("preferred_span_mm")
    @classmethod
    def _span_pos(cls, v):
        return _positive(v, "preferred span")

    @property
    def scaffold_family(self) -> ScaffoldFamily:
        return ScaffoldFamily.KUSABI

    @property
    def level_height_mm(self) -> int:
        return KUSABI_LEVEL_HEIGHT_MM

    @property
    def span_catalog_mm(self) -> tuple[int, ...]:
        return KUSABI_SPANS_MM


class WakugumiParams(_Contract):
    family: Literal["wakugumi"] = "wakugumi"
    frame_size_mm: int = Field(default=1700, alias="frameSizeMm")
    base_plates_per_span: int = Field(default=2, ge=0, alias="basePlatesPerSpan")
    habaki_count_per_span: int = Field(default=2, alias="habakiCountPerSpan")
    end_stopper_style: EndStopperStyle = Field(default=EndStopperStyle.RAIL, alias="endStopperStyle")
    preferred_span_mm: int = Field(default=1829, alias="preferredSpanMm")

    @field_validator("frame_size_mm")
    @classmethod
    def _frame_size(cls, v):
        if int(v) not in WAKUGUMI_FRAME_SIZES_MM:
            raise ValueError(f"frame size must be one of {list(WAKUGUMI_FRAME_SIZES_MM)}")
        return int(v)

    @field_validator("habaki_count_per_span")
    @classmethod
    def _habaki(cls, v):
        if int(v) not in (1, 2):
            raise ValueError("habaki count per span must be 1 or 2")
        return int(v)

    @field_validator("end_stopper_style", mode="before")
    @classmethod
    def _stopper_alias(cls, v):
        # "nuno" is the estimate form's name for the rail-type stopper.
        return EndStopperStyle.RAIL.value if v == "nuno" else v

    @field_validator("preferred_span_mm")
    @classmethod
    def _span_pos(cls, v):
        return _positive(v, "preferred span")

    @property
    def scaffold_family(self) -> ScaffoldFamily:
        return ScaffoldFamily.WAKUGUMI

    @property
    def level_height_mm(self) -> int:
        return int(self.frame_size_mm)

    @property
    def span_catalog_mm(self) -> tuple[int, ...]:
        return WAKUGUMI_SPANS_MM


FamilyParams = Annotated[Union[KusabiParams, WakugumiParams], Field(discriminator="family")]


class ProjectConfig(_Contract):
    building_height_mm: int = Field(alias="buildingHeightMm")
    scaffold_width_mm: int = Field(default=600, alias="scaffoldWidthMm")
    structure_type: StructureType = Field(default=StructureType.RENOVATION, alias="structureType")
    params: FamilyParams = Field(default_factory=KusabiParams)
    walls: list[Wall]
    closed_outline: bool = Field(default=False, alias="closedOutline")

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_params(cls, data):
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        scaffold_type = data.pop("scaffoldType", None)
        family = data.pop("family", None) or scaffold_type
        lifted = {_FLAT_PARAM_KEYS[k]: data.pop(k) for k in list(data) if k in _FLAT_PARAM_KEYS}
        if family is None and not lifted:
            return data
        params = dict(data.get("params") or {})
        if family is not None:
            params.setdefault("family", family)
        params.setdefault("family", ScaffoldFamily.KUSABI.value)
        params["family"] = getattr(params["family"], "value", params["family"])
        # The form sends every optional field; keep only the selected family's ones.
        allowed = _FAMILY_PARAM_KEYS.get(str(params["family"]), set())
        for k, v in lifted.items():
            if k in allowed and v is not None:
                params.setdefault(k, v)
        data["params"] = params
        return data

    @field_validator("building_height_mm")
    @classmethod
    def _height_pos(cls, v):
        return _positive(v, "building height")

    @field_validator("scaffold_width_mm")
    @classmethod
    def _width(cls, v):
        if int(v) not in SCAFFOLD_WIDTHS_MM:
            raise ValueError(f"scaffold width must be one of {list(SCAFFOLD_WIDTHS_MM)}")
        return int(v)

    @field_validator("structure_type", mode="before")
    @classmethod
    def _structure_alias(cls, v):
        alias = STRUCTURE_TYPE_ALIASES.get(v) if isinstance(v, str) else None
        return alias.value if alias is not None else v

    @field_validator("walls")
    @classmethod
    def _walls_present(cls, v):
        if not v:
            raise ValueError("at least one wall is required")
        return v

    @model_validator(mode="after")
    def _outline_and_sides(self):
        if self.closed_outline and len(self.walls) < MIN_CLOSED_OUTLINE_WALLS:
            raise ValueError(f"a closed outline needs at least {MIN_CLOSED_OUTLINE_WALLS} walls, got {len(self.walls)}")
        for i, w in enumerate(self.walls):
            if not w.side:
                w.side = f"edge-{i}"
        sides = [w.side for w in self.walls]
        dupes = sorted({s for s in sides if sides.count(s) > 1})
        if dupes:
            raise ValueError(f"wall sides must be unique, duplicated: {dupes}")
        return self

    @property
    def family(self) -> ScaffoldFamily:
        return self.params.scaffold_family

    @property
    def enabled_walls(self) -> list[Wall]:
        return [w for w in self.walls if w.enabled]

    def wall_height(self, wall: Wall) -> int:
        return int(wall.wall_height_mm or self.building_height_mm)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def parse_project_config(raw: ProjectConfig | Mapping[str, Any]) -> ProjectConfig:
    """Validate caller input. Raises ConfigValidationError before any computation starts."""
    if isinstance(raw, ProjectConfig):
        return raw
    if not isinstance(raw, Mapping):
        raise ConfigValidationError(
            [{"field": "config", "code": "TYPE", "msg": f"config must be a mapping, got {type(raw).__name__}"}]
        )
    try:
        return ProjectConfig.model_validate(dict(raw))
    except ValidationError as exc:
        raise ConfigValidationError.from_pydantic(exc) from exc
