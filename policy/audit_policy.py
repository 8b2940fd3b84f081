from __future__ import annotations

from dataclasses import dataclass


@dataclass
class AuditPolicy:
    # Rule 2: building height sanity band.
    min_building_height_mm: int = 2000
    max_building_height_mm: int = 50000

    # Rule 3: per-wall length sanity band.
    min_wall_length_mm: int = 1000
    max_wall_length_mm: int = 200000

    # Rule 4: above this height at least one stair set is expected.
    stair_required_height_mm: int = 5000

    # Rule 5: stairs do not fit on narrower scaffolds.
    min_stair_width_mm: int = 900

    # Rule 7: components per m2 of scaffold face.
    max_component_density_per_sqm: float = 20.0

    # Advisory pass.
    advisory_timeout_s: float = 10.0
