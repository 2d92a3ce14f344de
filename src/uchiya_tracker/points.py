"""
Point set helpers shared by the index, the generator and the CLI.

Points are handled as ``(n, 2)`` float64 numpy arrays internally. Anything
that looks like a sequence of ``(x, y)`` pairs is accepted on input.
"""

import csv
import json
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence, Union

import numpy as np

PointLike = Union[np.ndarray, Sequence[Sequence[float]]]


class PointIndex(NamedTuple):
    """A document point together with its index inside the document."""

    x: float
    y: float
    index: int


def as_point_array(points: PointLike) -> np.ndarray:
    """
    Convert a point sequence into an ``(n, 2)`` float64 array.

    Raises:
        ValueError: If the input can't be interpreted as 2D points
    """
    array = np.asarray(points, dtype=np.float64)
    if array.size == 0:
        return np.empty((0, 2), dtype=np.float64)
    if array.ndim != 2 or array.shape[1] != 2:
        raise ValueError(f"Expected an (n, 2) array of points, got shape {array.shape}")
    return array


def random_dots(
    count: int,
    rng: Optional[np.random.Generator] = None,
    lower: float = -2.0,
    upper: float = 2.0,
    min_distance: float = 0.0,
    max_attempts: int = 10000
) -> np.ndarray:
    """
    Sample random dot locations inside a square.

    Args:
        count: Number of dots
        rng: Random generator. A fresh unseeded one is used if None.
        lower: Lower bound of both coordinates
        upper: Upper bound of both coordinates
        min_distance: Minimum distance between any two dots
        max_attempts: Rejection sampling budget

    Returns:
        Array of shape (count, 2)

    Raises:
        ValueError: If the dots can't be placed with the requested spacing
    """
    rng = rng or np.random.default_rng()
    dots: List[np.ndarray] = []
    attempts = 0
    while len(dots) < count:
        if attempts >= max_attempts:
            raise ValueError(
                f"Could not place {count} dots with min_distance={min_distance}"
            )
        attempts += 1
        candidate = rng.uniform(lower, upper, size=2)
        if min_distance > 0 and dots:
            distances = np.linalg.norm(np.asarray(dots) - candidate, axis=1)
            if distances.min() < min_distance:
                continue
        dots.append(candidate)
    return np.asarray(dots, dtype=np.float64).reshape(-1, 2)


def load_points(path: Path) -> np.ndarray:
    """
    Load points from a ``.csv`` (x,y columns, optional header) or ``.json`` file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the format is unsupported or the content invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Points file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == '.json':
        data = json.loads(path.read_text(encoding='utf-8'))
        if isinstance(data, dict):
            data = data.get('points', [])
        return as_point_array(data)

    if suffix == '.csv':
        rows = []
        with open(path, 'r', newline='') as f:
            for row in csv.reader(f):
                if not row:
                    continue
                try:
                    rows.append((float(row[0]), float(row[1])))
                except (ValueError, IndexError):
                    # Header line
                    if rows:
                        raise ValueError(f"Malformed row in {path}: {row}")
        return as_point_array(rows)

    raise ValueError(f"Unsupported points format: {suffix}")


def save_points(path: Path, points: PointLike) -> None:
    """Save points as ``.csv`` or ``.json``, chosen by the file suffix."""
    path = Path(path)
    array = as_point_array(points)
    path.parent.mkdir(parents=True, exist_ok=True)

    suffix = path.suffix.lower()
    if suffix == '.json':
        path.write_text(json.dumps({'points': array.tolist()}, indent=2), encoding='utf-8')
    elif suffix == '.csv':
        with open(path, 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(['x', 'y'])
            for x, y in array:
                writer.writerow([repr(float(x)), repr(float(y))])
    else:
        raise ValueError(f"Unsupported points format: {suffix}")
