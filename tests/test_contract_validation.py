import pytest

from contracts.project_config import ConfigValidationError, KusabiParams, WakugumiParams, parse_project_config
from scaffold.compiler import compile_project
from scaffold.spec import EndStopperStyle, ScaffoldFamily, StructureType


def _raw(**overrides):
    raw = {"buildingHeightMm": 6000, "walls": [{"wallLengthMm": 8000}]}
    raw.update(overrides)
    return raw


def _fields(exc: ConfigValidationError) -> str:
    return " ".join(f"{e['field']} {e['msg']}" for e in exc.errors)


def test_defaults():
    cfg = parse_project_config(_raw())
    assert cfg.family is ScaffoldFamily.KUSABI
    assert isinstance(cfg.params, KusabiParams)
    assert cfg.params.post_size_mm == 1800
    assert cfg.params.top_guard_height_mm == 900
    assert cfg.scaffold_width_mm == 600
    assert cfg.structure_type is StructureType.RENOVATION
    assert cfg.walls[0].side == "edge-0"
    assert cfg.walls[0].enabled is True


@pytest.mark.parametrize(
    "raw",
    [
        _raw(buildingHeightMm=0),
        _raw(walls=[]),
        _raw(walls=[{"wallLengthMm": -5}]),
        _raw(walls=[{"wallLengthMm": 1000, "stairAccessCount": -1}]),
        _raw(walls=[{"side": "north"}]),
        _raw(scaffoldWidthMm=750),
        _raw(params={"family": "kusabi", "postSizeMm": 2000}),
        _raw(params={"family": "wakugumi", "habakiCountPerSpan": 3}),
        _raw(params={"family": "steel"}),
        _raw(unexpected=True),
    ],
)
def test_invalid_input_is_rejected_before_compute(raw):
    with pytest.raises(ConfigValidationError) as ei:
        compile_project(raw)
    err = ei.value
    assert err.errors
    assert err.to_dict()["status"] == "INVALID_CONFIG"
    assert all(set(e) == {"field", "code", "msg"} for e in err.errors)


def test_closed_outline_needs_three_walls():
    walls = [{"side": "a", "wallLengthMm": 5000}, {"side": "b", "wallLengthMm": 5000}]
    with pytest.raises(ConfigValidationError) as ei:
        parse_project_config(_raw(walls=walls, closedOutline=True))
    assert "at least 3 walls" in _fields(ei.value)
    # An open run of two walls is fine.
    assert len(parse_project_config(_raw(walls=walls)).walls) == 2


def test_segment_total_must_match_length():
    with pytest.raises(ConfigValidationError) as ei:
        parse_project_config(_raw(walls=[{"wallLengthMm": 9000, "segments": [{"lengthMm": 4000}, {"lengthMm": 4000}]}]))
    assert "segment total 8000" in _fields(ei.value)


def test_duplicate_sides_are_rejected():
    with pytest.raises(ConfigValidationError):
        parse_project_config(_raw(walls=[{"side": "north", "wallLengthMm": 1}, {"side": "north", "wallLengthMm": 2}]))


def test_non_mapping_input():
    with pytest.raises(ConfigValidationError) as ei:
        parse_project_config([1, 2, 3])
    assert ei.value.errors[0]["code"] == "TYPE"


def test_flat_estimate_form_is_lifted_into_family_params():
    cfg = parse_project_config(
        {
            "scaffoldType": "wakugumi",
            "buildingHeightMm": 6000,
            "scaffoldWidthMm": 900,
            "structureType": "RC造",
            "frameSizeMm": 1800,
            "endStopperType": "nuno",
            "preferredMainTatejiMm": 3600,
            "walls": [{"side": "north", "wallLengthMm": 8000}],
        }
    )
    assert isinstance(cfg.params, WakugumiParams)
    assert cfg.params.frame_size_mm == 1800
    assert cfg.params.level_height_mm == 1800
    assert cfg.params.end_stopper_style is EndStopperStyle.RAIL
    assert cfg.structure_type is StructureType.REINFORCED_CONCRETE
    assert cfg.structure_type.cost_multiplier == 0.9


def test_structure_multiplier_does_not_change_quantities():
    a = compile_project(_raw(structureType="renovation"))
    b = compile_project(_raw(structureType="steel_frame"))
    assert [c.to_dict() for c in a.summary] == [c.to_dict() for c in b.summary]


def test_config_round_trips_through_wire_names():
    cfg = parse_project_config(_raw(params={"family": "wakugumi"}))
    again = parse_project_config(cfg.to_dict())
    assert again.to_dict() == cfg.to_dict()
    assert isinstance(again.params, type(cfg.params))
