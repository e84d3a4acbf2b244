# vigil/utils/geometry.py
"""
Bounding-box and polygon helpers. All coordinates are normalized (0..1)
image coordinates; boxes are (x1, y1, x2, y2) with x2 > x1 and y2 > y1.
"""

from typing import Optional, Sequence

BBox = tuple[float, float, float, float]


def clamp_bbox(bbox: Sequence[float]) -> Optional[BBox]:
    """Clamp a box into the unit square. Returns None for malformed or empty boxes."""
    if len(bbox) != 4:
        return None
    try:
        x1, y1, x2, y2 = (min(1.0, max(0.0, float(v))) for v in bbox)
    except (TypeError, ValueError):
        return None
    if x2 <= x1 or y2 <= y1:
        return None
    return (x1, y1, x2, y2)


def bbox_area(bbox: Sequence[float]) -> float:
    return max(0.0, bbox[2] - bbox[0]) * max(0.0, bbox[3] - bbox[1])


def iou(a: Sequence[float], b: Sequence[float]) -> float:
    """Intersection over union of two boxes."""
    ix1, iy1 = max(a[0], b[0]), max(a[1], b[1])
    ix2, iy2 = min(a[2], b[2]), min(a[3], b[3])
    inter = bbox_area((ix1, iy1, ix2, iy2))
    if inter == 0.0:
        return 0.0
    union = bbox_area(a) + bbox_area(b) - inter
    return inter / union if union > 0 else 0.0


def bbox_center(bbox: Sequence[float]) -> tuple[float, float]:
    return ((bbox[0] + bbox[2]) / 2, (bbox[1] + bbox[3]) / 2)


def point_in_polygon(x: float, y: float, polygon: Sequence[Sequence[float]]) -> bool:
    """Ray casting. Points exactly on an edge may fall either way."""
    inside = False
    n = len(polygon)
    if n < 3:
        return False
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i][0], polygon[i][1]
        xj, yj = polygon[j][0], polygon[j][1]
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def find_zone(bbox: Sequence[float], zones: Optional[dict]) -> Optional[str]:
    """First zone (sorted by id) whose polygon contains the centre of bbox."""
    if not zones:
        return None
    cx, cy = bbox_center(bbox)
    for zone_id in sorted(zones):
        if point_in_polygon(cx, cy, zones[zone_id]):
            return zone_id
    return None


def validate_polygon(points: Sequence[Sequence[float]]) -> Optional[str]:
    """Return an error message if the polygon is unusable, else None."""
    if len(points) < 3:
        return "a zone polygon needs at least 3 points"
    for p in points:
        if len(p) != 2:
            return "zone points must be [x, y] pairs"
        if not (0.0 <= p[0] <= 1.0 and 0.0 <= p[1] <= 1.0):
            return "zone coordinates must be normalized to 0..1"
    return None
