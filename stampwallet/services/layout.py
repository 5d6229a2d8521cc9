"""
Stamp grid layout for wallet pass visuals.

Maps a required stamp count onto a canvas profile as a rows x cols grid of
square cells. Layouts depend only on (required_count, profile), so the same
pass always renders with the same geometry regardless of progress.
"""

import math
from dataclasses import dataclass
from typing import Optional

MIN_STAMPS = 1
MAX_STAMPS = 200

SPACING_RATIO = 0.05
COMPACT_SPACING_RATIO = 0.10
SHRINK_FACTOR = 0.9
MAX_SHRINK_STEPS = 3
MIN_SINGLE_ROW_CELL = 4
MAX_ROWS = 10

# (max_count, rows, fill_ratio), checked in order
SHAPE_BUCKETS: list[tuple[int, int, float]] = [
    (4, 1, 0.70),
    (8, 2, 0.95),
    (12, 2, 0.90),
    (15, 3, 0.90),
    (25, 4, 0.80),
    (35, 5, 0.70),
    (49, 6, 0.65),
]
LARGE_GRID_FILL = 0.65


@dataclass(frozen=True)
class CanvasProfile:
    """Target canvas for one wallet surface."""
    name: str
    width: int
    height: int
    horizontal_padding: int
    vertical_padding: int
    max_cell_size: int
    safety_margin: int = 10
    segmented_threshold: Optional[int] = None

    @property
    def aspect(self) -> float:
        return self.width / self.height

    def uses_segmented_bar(self, required_count: int) -> bool:
        """Whether this profile draws a progress bar instead of a stamp grid."""
        return self.segmented_threshold is not None and required_count > self.segmented_threshold


# Apple storeCard strip (@1x points doubled)
STRIP = CanvasProfile(
    name="strip",
    width=624,
    height=168,
    horizontal_padding=20,
    vertical_padding=15,
    max_cell_size=100,
)

# Apple generic pass thumbnail
THUMBNAIL = CanvasProfile(
    name="thumbnail",
    width=180,
    height=180,
    horizontal_padding=10,
    vertical_padding=8,
    max_cell_size=50,
    segmented_threshold=6,
)

# Google Wallet generic pass hero image
HERO = CanvasProfile(
    name="hero",
    width=1032,
    height=336,
    horizontal_padding=32,
    vertical_padding=24,
    max_cell_size=160,
)

PROFILES = {profile.name: profile for profile in (STRIP, THUMBNAIL, HERO)}


def get_profile(name: str) -> CanvasProfile:
    """Look up a canvas profile by name, defaulting to the strip."""
    return PROFILES.get(name, STRIP)


@dataclass(frozen=True)
class LayoutPlan:
    """Resolved grid geometry for a canvas."""
    rows: int
    cols: int
    cell_size: int
    spacing: int
    origin_x: int
    origin_y: int
    canvas_width: int
    canvas_height: int

    @property
    def grid_width(self) -> int:
        return self.cols * self.cell_size + (self.cols - 1) * self.spacing

    @property
    def grid_height(self) -> int:
        return self.rows * self.cell_size + (self.rows - 1) * self.spacing

    def cell_origin(self, index: int) -> tuple[int, int]:
        """Top-left corner of cell `index`, filled row-major."""
        row, col = divmod(index, self.cols)
        x = self.origin_x + col * (self.cell_size + self.spacing)
        y = self.origin_y + row * (self.cell_size + self.spacing)
        return x, y

    def fits(self, margin: int) -> bool:
        return (
            self.origin_x >= margin
            and self.origin_y >= margin
            and self.origin_x + self.grid_width <= self.canvas_width - margin
            and self.origin_y + self.grid_height <= self.canvas_height - margin
        )


def clamp_count(count: int) -> int:
    return max(MIN_STAMPS, min(int(count), MAX_STAMPS))


def select_shape(count: int, profile: CanvasProfile) -> tuple[int, int, float]:
    """Pick (rows, cols, fill_ratio) for a stamp count."""
    for max_count, rows, fill in SHAPE_BUCKETS:
        if count <= max_count:
            rows = min(rows, count)
            return rows, math.ceil(count / rows), fill

    # Keep roughly square cells across the canvas; rows never exceed cols
    # while the canvas is at least as wide as it is tall.
    rows = max(1, min(MAX_ROWS, int(math.sqrt(count / profile.aspect))))
    return rows, math.ceil(count / rows), LARGE_GRID_FILL


def _place(
    rows: int,
    cols: int,
    cell: int,
    spacing: int,
    profile: CanvasProfile,
) -> LayoutPlan:
    grid_width = cols * cell + (cols - 1) * spacing
    grid_height = rows * cell + (rows - 1) * spacing
    return LayoutPlan(
        rows=rows,
        cols=cols,
        cell_size=cell,
        spacing=spacing,
        origin_x=(profile.width - grid_width) // 2,
        origin_y=(profile.height - grid_height) // 2,
        canvas_width=profile.width,
        canvas_height=profile.height,
    )


def _compact(rows: int, cols: int, profile: CanvasProfile) -> LayoutPlan:
    """Size a grid to the safe area with wider spacing, ignoring fill ratios."""
    safe_width = profile.width - 2 * profile.safety_margin
    safe_height = profile.height - 2 * profile.safety_margin
    cell = int(min(
        safe_width / (cols * (1 + COMPACT_SPACING_RATIO)),
        safe_height / (rows * (1 + COMPACT_SPACING_RATIO)),
        profile.max_cell_size,
    ))
    cell = max(1, cell)
    return _place(rows, cols, cell, int(cell * COMPACT_SPACING_RATIO), profile)


def compute_layout(required_count: int, profile: CanvasProfile = STRIP) -> LayoutPlan:
    """
    Compute the stamp grid for `required_count` stamps on `profile`.

    The selected bucket shape is sized to its fill ratio of the padded area
    and capped at the profile's max cell size. If the grid breaks the safety
    margin it is shrunk by 10% up to three times, after which a single-row
    or compact layout is used.

    Args:
        required_count: Stamps needed for the reward (clamped to 1-200)
        profile: Target canvas

    Returns:
        LayoutPlan whose grid lies inside the canvas safety margin
    """
    count = clamp_count(required_count)
    rows, cols, fill = select_shape(count, profile)

    available_width = profile.width - 2 * profile.horizontal_padding
    available_height = profile.height - 2 * profile.vertical_padding

    cell = int(min(
        available_width * fill / cols,
        available_height * fill / rows,
        profile.max_cell_size,
    ))
    cell = max(1, cell)

    for _ in range(MAX_SHRINK_STEPS + 1):
        plan = _place(rows, cols, cell, int(cell * SPACING_RATIO), profile)
        if plan.fits(profile.safety_margin):
            return plan
        cell = max(1, int(cell * SHRINK_FACTOR))

    single_row = _compact(1, count, profile)
    if single_row.cell_size >= MIN_SINGLE_ROW_CELL and single_row.fits(profile.safety_margin):
        return single_row
    return _compact(rows, cols, profile)
