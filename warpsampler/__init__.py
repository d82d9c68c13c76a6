"""warpsampler: anti-aliased image warping by inverse mapping.

.. include:: ../README.md
"""

from __future__ import annotations

__docformat__ = 'google'
__version__ = '0.1.0'
__version_info__ = tuple(int(num) for num in __version__.split('.'))

from collections.abc import Callable, Iterable, Sequence
import abc
import concurrent.futures
import dataclasses
import enum
import functools
import math
import typing
from typing import Any

import numpy as np
import numpy.typing as npt
import scipy.linalg
import scipy.ndimage

try:
  import numba
except ModuleNotFoundError:
  pass

if typing.TYPE_CHECKING:
  _NDArray = npt.NDArray[Any]
  _ArrayLike = npt.ArrayLike
else:
  _NDArray = Any
  _ArrayLike = Any  # Else `pdoc` uses a long type expression for documentation.


def _check_eq(a: Any, b: Any) -> None:
  """If the two values or arrays are not equal, raise an exception with a useful message."""
  are_equal = np.all(a == b) if isinstance(a, np.ndarray) else a == b
  if not are_equal:
    raise AssertionError(f'{a!r} == {b!r}')


EDGE_EPSILON = 1e-4
"""Inward nudge for a source coordinate that lands exactly on the source width or height."""

DEFAULT_OUTLIER_THRESHOLD = 65.0
"""Maximum deviation (on the 0-255 scale) of a neighbor from the neighborhood mean before the
adaptive area filter drops it."""

DEFAULT_EDGE_MARGIN = 0.5
"""Distance (in source pixels) from the raster border within which bilinear interpolation
pins the sample to the edge pixel instead of blending across it."""

DEFAULT_SCALE_TOLERANCE = 1e-6
"""Scale factors within this distance of 1.0 are treated as undistorted."""


def _from_float(array: _NDArray) -> _NDArray:
  """Convert floats in range [0.0, 1.0] to uint8."""
  return (np.clip(array, 0.0, 1.0) * np.float32(255) + 0.5).astype(np.uint8)


def to_rgba(array: _ArrayLike) -> _NDArray:
  """Return a contiguous `uint8` image of shape `(height, width, 4)`.

  Single-channel images are expanded to `R = G = B` and three-channel images keep their color;
  both receive an opaque alpha of 255.  Float images are interpreted in the range [0.0, 1.0].

  Args:
    array: Image of shape `(height, width)` or `(height, width, channels)` with
      `channels` in (1, 3, 4).

  >>> to_rgba(np.full((1, 2), 7, np.uint8)).tolist()
  [[[7, 7, 7, 255], [7, 7, 7, 255]]]
  """
  array = np.asarray(array)
  if array.ndim == 2:
    array = array[..., None]
  if array.ndim != 3:
    raise ValueError(f'Shape {array.shape} is not that of an image (height, width[, channels]).')
  height, width, channels = array.shape
  if height <= 0 or width <= 0:
    raise ValueError(f'Image dimensions {width}x{height} are not positive.')
  if channels not in (1, 3, 4):
    raise ValueError(f'Number of channels {channels} is not 1, 3, or 4.')
  if np.issubdtype(array.dtype, np.floating):
    array = _from_float(array)
  elif not np.issubdtype(array.dtype, np.integer):
    raise ValueError(f'Type {array.dtype} is not numeric.')
  elif array.dtype != np.uint8:
    if array.min() < 0 or array.max() > 255:
      raise ValueError(f'Values in range [{array.min()}, {array.max()}] do not fit in uint8.')
    array = array.astype(np.uint8)
  if channels == 4:
    return np.ascontiguousarray(array)
  rgba = np.empty((height, width, 4), np.uint8)
  rgba[..., :3] = array[..., :3]
  rgba[..., 3] = 255
  return rgba


@dataclasses.dataclass(frozen=True)
class PixelBuffer:
  """An immutable raster of interleaved byte channels.

  Row 0 is the bottom-most display row; any flip for display or file encoding is the
  responsibility of the caller.
  """

  width: int
  """Number of pixels per row."""

  height: int
  """Number of rows."""

  channels: int
  """Number of interleaved channels per pixel: 1 (gray), 3 (RGB), or 4 (RGBA)."""

  data: bytes
  """Pixel bytes in row-major order; `len(data) == width * height * channels`."""

  def __post_init__(self) -> None:
    if self.width <= 0 or self.height <= 0:
      raise ValueError(f'Buffer dimensions {self.width}x{self.height} are not positive.')
    if self.channels not in (1, 3, 4):
      raise ValueError(f'Number of channels {self.channels} is not 1, 3, or 4.')
    expected = self.width * self.height * self.channels
    if len(self.data) != expected:
      raise ValueError(f'Buffer has {len(self.data)} bytes but'
                       f' {self.width}x{self.height}x{self.channels} requires {expected}.')

  @classmethod
  def from_array(cls, array: _ArrayLike) -> PixelBuffer:
    """Create a buffer from a `uint8` array of shape `(height, width[, channels])`."""
    array = np.asarray(array)
    if array.ndim == 2:
      array = array[..., None]
    if array.ndim != 3:
      raise ValueError(f'Shape {array.shape} is not that of an image (height, width[, channels]).')
    if array.dtype != np.uint8:
      raise ValueError(f'Type {array.dtype} is not uint8.')
    height, width, channels = array.shape
    return cls(width=width, height=height, channels=channels,
               data=np.ascontiguousarray(array).tobytes())

  @property
  def shape(self) -> tuple[int, int]:
    """The `(height, width)` of the raster."""
    return self.height, self.width

  def numpy(self) -> _NDArray:
    """Return a read-only `uint8` view of shape `(height, width, channels)`."""
    return np.frombuffer(self.data, np.uint8).reshape(self.height, self.width, self.channels)

  def to_rgba(self) -> PixelBuffer:
    """Return the equivalent 4-channel buffer."""
    if self.channels == 4:
      return self
    return PixelBuffer.from_array(to_rgba(self.numpy()))


@dataclasses.dataclass(frozen=True)
class Mapping:
  """Abstract base class for inverse maps from destination pixels to source pixels.

  Coordinates are continuous, with the center of pixel `(col, row)` at
  `(col + 0.5, row + 0.5)`.  The `x` and `u` coordinates run along a row (width) and the `y`
  and `v` coordinates run along a column (height).  Shapes are `(height, width)`.
  """

  name: str
  """Mapping name."""

  def dst_shape(self, src_shape: tuple[int, int]) -> tuple[int, int]:
    """Return the `(height, width)` of the destination canvas for a source of `src_shape`."""
    height, width = src_shape
    return height, width

  @abc.abstractmethod
  def inverse(self, x: _ArrayLike, y: _ArrayLike, src_shape: tuple[int, int],
              dst_shape: tuple[int, int]) -> tuple[_NDArray, _NDArray]:
    """Return source coordinates `(u, v)` for destination coordinates `(x, y)`, all in pixels."""


class UnitMapping(Mapping):
  """Abstract base class for mappings defined over the unit square.

  Destination coordinates are normalized by the destination size, mapped by `inverse_unit`, and
  scaled by the source size.  Subclasses that do not preserve the unit square set
  `needs_bounding_box` and define `forward_unit`, which a pre-pass sweeps over the source to find
  the extent of the warped image.
  """

  needs_bounding_box = False

  @abc.abstractmethod
  def inverse_unit(self, x: _NDArray, y: _NDArray) -> tuple[_NDArray, _NDArray]:
    """Map normalized destination coordinates to normalized source coordinates."""

  def forward_unit(self, u: _NDArray, v: _NDArray) -> tuple[_NDArray, _NDArray]:
    """Map normalized source coordinates to normalized destination coordinates."""
    raise NotImplementedError(f'Mapping {self.name} has no forward map.')

  def bounding_box(self, src_shape: tuple[int, int]) -> tuple[float, float, float, float]:
    """Return the achieved forward extent `(xmin, ymin, xmax, ymax)` in unit coordinates."""
    if not self.needs_bounding_box:
      return 0.0, 0.0, 1.0, 1.0
    height, width = src_shape
    return _unit_bounding_box(self, (height, width))

  def dst_shape(self, src_shape: tuple[int, int]) -> tuple[int, int]:
    height, width = src_shape
    xmin, ymin, xmax, ymax = self.bounding_box(src_shape)
    return (max(1, int(round(height * (ymax - ymin)))),
            max(1, int(round(width * (xmax - xmin)))))

  def inverse(self, x: _ArrayLike, y: _ArrayLike, src_shape: tuple[int, int],
              dst_shape: tuple[int, int]) -> tuple[_NDArray, _NDArray]:
    src_height, src_width = src_shape
    dst_height, dst_width = dst_shape
    xmin, ymin, xmax, ymax = self.bounding_box(src_shape)
    x = np.asarray(x, np.float64) / dst_width * (xmax - xmin) + xmin
    y = np.asarray(y, np.float64) / dst_height * (ymax - ymin) + ymin
    u, v = self.inverse_unit(x, y)
    return u * src_width, v * src_height


@functools.lru_cache(maxsize=128)
def _unit_bounding_box(mapping: UnitMapping,
                       src_shape: tuple[int, int]) -> tuple[float, float, float, float]:
  """Forward-map the lattice of source pixel corners and return its extent."""
  height, width = src_shape
  u, v = np.meshgrid(np.arange(width + 1) / width, np.arange(height + 1) / height)
  x, y = mapping.forward_unit(u, v)
  return float(x.min()), float(y.min()), float(x.max()), float(y.max())


class IdentityMapping(UnitMapping):
  """Each destination point samples the same relative point of the source."""

  def __init__(self) -> None:
    super().__init__(name='identity')

  def inverse_unit(self, x: _NDArray, y: _NDArray) -> tuple[_NDArray, _NDArray]:
    return x, y

  def forward_unit(self, u: _NDArray, v: _NDArray) -> tuple[_NDArray, _NDArray]:
    return u, v


class SqrtSineWarp(UnitMapping):
  """The reference warp: square root across the width, offset sine along the height."""

  def __init__(self) -> None:
    super().__init__(name='sqrt_sine')

  def inverse_unit(self, x: _NDArray, y: _NDArray) -> tuple[_NDArray, _NDArray]:
    return np.sqrt(x), 0.5 * (1.0 + np.sin(np.pi * y))


class PowerSineWarp(UnitMapping):
  """Warp with `u = x**power` and `v = sin(pi * y / 2)**2`.

  A power below 1 magnifies the left side of the source and minifies the right side.

  Args:
    power: Positive exponent of the inverse map across the width.
  """

  def __init__(self, power: float = 0.7) -> None:
    if not power > 0.0:
      raise ValueError(f'Power {power} is not positive.')
    super().__init__(name=f'power_sine_{power}')
    self.power = power

  def inverse_unit(self, x: _NDArray, y: _NDArray) -> tuple[_NDArray, _NDArray]:
    return x**self.power, np.sin(np.pi * y / 2)**2

  def forward_unit(self, u: _NDArray, v: _NDArray) -> tuple[_NDArray, _NDArray]:
    return u**(1.0 / self.power), (2 / np.pi) * np.arcsin(np.sqrt(v))


class TwirlWarp(UnitMapping):
  """Rotate each point about the image center by an angle proportional to its radius.

  With centered coordinates `c = 2 * (p - 0.5)` and radius `r = |c|`, the forward map rotates by
  `-strength * r` and the inverse map by `+strength * r`.

  Args:
    strength: Twirl angle in radians per unit radius; 0.0 gives the identity.
  """

  needs_bounding_box = True

  def __init__(self, strength: float = 2.0) -> None:
    super().__init__(name=f'twirl_{strength}')
    self.strength = strength

  def _rotate(self, x: _NDArray, y: _NDArray, sign: float) -> tuple[_NDArray, _NDArray]:
    cx, cy = (x - 0.5) * 2, (y - 0.5) * 2
    angle = sign * self.strength * np.hypot(cx, cy)
    cos, sin = np.cos(angle), np.sin(angle)
    return (cx * cos - cy * sin) / 2 + 0.5, (cx * sin + cy * cos) / 2 + 0.5

  def inverse_unit(self, x: _NDArray, y: _NDArray) -> tuple[_NDArray, _NDArray]:
    return self._rotate(x, y, 1.0)

  def forward_unit(self, u: _NDArray, v: _NDArray) -> tuple[_NDArray, _NDArray]:
    return self._rotate(u, v, -1.0)


class LensWarp(UnitMapping):
  """Magnifying-glass effect: a radial remap that enlarges the center of the image.

  The forward radius is `g(r) = sqrt(4 r + 0.25) / 2 - 0.25` and its inverse is
  `r' = (r + 0.5) * r`, in centered coordinates `2 * (p - 0.5)`.
  """

  needs_bounding_box = True

  def __init__(self) -> None:
    super().__init__(name='lens')

  def inverse_unit(self, x: _NDArray, y: _NDArray) -> tuple[_NDArray, _NDArray]:
    cx, cy = (x - 0.5) * 2, (y - 0.5) * 2
    factor = np.hypot(cx, cy) + 0.5
    return factor * cx / 2 + 0.5, factor * cy / 2 + 0.5

  def forward_unit(self, u: _NDArray, v: _NDArray) -> tuple[_NDArray, _NDArray]:
    cx, cy = (u - 0.5) * 2, (v - 0.5) * 2
    radius = np.sqrt(4 * np.hypot(cx, cy) + 0.25) / 2 - 0.25
    theta = np.arctan2(cy, cx)
    return radius * np.cos(theta) / 2 + 0.5, radius * np.sin(theta) / 2 + 0.5


class TileMapping(UnitMapping):
  """Repeat the whole source `num_rows` times vertically and `num_cols` times horizontally."""

  def __init__(self, num_rows: int = 2, num_cols: int = 2) -> None:
    if num_rows < 1 or num_cols < 1:
      raise ValueError(f'Tile counts {num_rows}x{num_cols} are not positive.')
    super().__init__(name=f'tile_{num_rows}x{num_cols}')
    self.num_rows = num_rows
    self.num_cols = num_cols

  def inverse_unit(self, x: _NDArray, y: _NDArray) -> tuple[_NDArray, _NDArray]:
    return np.mod(x * self.num_cols, 1.0), np.mod(y * self.num_rows, 1.0)


def rotation_matrix(degrees: float) -> _NDArray:
  """Return the 3x3 counter-clockwise rotation about the origin."""
  theta = math.radians(degrees)
  cos, sin = math.cos(theta), math.sin(theta)
  return np.array([[cos, -sin, 0.0], [sin, cos, 0.0], [0.0, 0.0, 1.0]])


def scaling_matrix(sx: float, sy: float) -> _NDArray:
  """Return the 3x3 scale by `sx` along x and `sy` along y."""
  return np.diag([sx, sy, 1.0])


def translation_matrix(dx: float, dy: float) -> _NDArray:
  """Return the 3x3 translation by `(dx, dy)`."""
  matrix = np.eye(3)
  matrix[:2, 2] = dx, dy
  return matrix


def flip_matrix(xf: float, yf: float) -> _NDArray:
  """Return a mirror matrix; `xf == 1` flips horizontally and `yf == 1` flips vertically."""
  return np.diag([-1.0 if xf == 1 else 1.0, -1.0 if yf == 1 else 1.0, 1.0])


def shear_matrix(hx: float, hy: float) -> _NDArray:
  """Return the 3x3 shear adding `hx * y` to x and `hy * x` to y."""
  return np.array([[1.0, hx, 0.0], [hy, 1.0, 0.0], [0.0, 0.0, 1.0]])


def perspective_matrix(px: float, py: float) -> _NDArray:
  """Return the 3x3 perspective transform with homogeneous weight `px * x + py * y + 1`."""
  return np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [px, py, 1.0]])


_DICT_MATRIX_COMMANDS: dict[str, tuple[Callable[..., _NDArray], int]] = {
    'r': (rotation_matrix, 1),
    's': (scaling_matrix, 2),
    't': (translation_matrix, 2),
    'f': (flip_matrix, 2),
    'h': (shear_matrix, 2),
    'p': (perspective_matrix, 2),
}

MATRIX_COMMANDS = list(_DICT_MATRIX_COMMANDS)
"""Tags of the elementary transforms accepted by `matrix_from_commands`:

| tag | arguments | transform |
|-----|-----------|-----------|
| `'r'` | `theta` | counter-clockwise rotation about the origin, in degrees |
| `'s'` | `sx sy` | scale |
| `'t'` | `dx dy` | translate |
| `'f'` | `xf yf` | flip horizontally if `xf == 1`, vertically if `yf == 1` |
| `'h'` | `hx hy` | shear |
| `'p'` | `px py` | perspective |

The tag `'d'` ("done") ends a command sequence.
"""


def matrix_from_commands(commands: Iterable[str | Sequence[Any]]) -> _NDArray:
  """Compose elementary transforms into one 3x3 forward matrix, in the order issued.

  Each command is either a string such as `'r 30'` or a sequence such as `('s', 2, 1)`.
  Each new transform is applied after (left-multiplies) the ones before it.

  >>> matrix_from_commands(['s 2 3', ('t', 1, 0), 'd']).tolist()
  [[2.0, 0.0, 1.0], [0.0, 3.0, 0.0], [0.0, 0.0, 1.0]]
  """
  matrix = np.eye(3)
  for command in commands:
    tokens = command.split() if isinstance(command, str) else list(command)
    if not tokens:
      continue
    tag, args = str(tokens[0]), tokens[1:]
    if tag == 'd':
      break
    if tag not in _DICT_MATRIX_COMMANDS:
      raise ValueError(f'Matrix command {tag!r} is not one of {MATRIX_COMMANDS + ["d"]}.')
    func, num_args = _DICT_MATRIX_COMMANDS[tag]
    if len(args) != num_args:
      raise ValueError(f'Matrix command {tag!r} takes {num_args} arguments but got {args}.')
    matrix = func(*(float(arg) for arg in args)) @ matrix
  return matrix


def _ceil_extent(extent: _NDArray) -> tuple[int, int]:
  """Return the `(height, width)` canvas covering an `(x, y)` extent."""
  if not np.all(np.isfinite(extent)):
    raise ValueError(f'Warped extent {extent} is not finite.')
  # The tolerance absorbs rounding in e.g. cos(90 degrees).
  width, height = np.ceil(extent - 1e-6).astype(int)
  return max(1, int(height)), max(1, int(width))


class ProjectiveMapping(Mapping):
  """Warp by a 3x3 homogeneous forward matrix acting on source pixel coordinates.

  The destination canvas is the bounding box of the four warped source corners, and the
  translation that moves the box minimum to the origin is composed into the matrix.

  Args:
    matrix: Forward transform from homogeneous source `(u, v, 1)` to destination `(x, y, w)`.
  """

  def __init__(self, matrix: _ArrayLike) -> None:
    matrix = np.asarray(matrix, np.float64)
    if matrix.shape != (3, 3):
      raise ValueError(f'Matrix shape {matrix.shape} is not (3, 3).')
    if not np.all(np.isfinite(matrix)) or abs(scipy.linalg.det(matrix)) < 1e-12:
      raise ValueError(f'Matrix {matrix.tolist()} is singular.')
    super().__init__(name='projective')
    self.matrix = matrix

  @classmethod
  def from_commands(cls, commands: Iterable[str | Sequence[Any]]) -> ProjectiveMapping:
    """Create the mapping from a sequence of elementary transforms; see `MATRIX_COMMANDS`."""
    return cls(matrix_from_commands(commands))

  @classmethod
  def from_corners(cls, corners: _ArrayLike, src_shape: tuple[int, int]) -> ProjectiveMapping:
    """Create the homography that takes the source corners onto four destination points.

    Args:
      corners: Destination `(x, y)` points for the source corners `(0, 0)`, `(0, height)`,
        `(width, height)`, and `(width, 0)`, in that order.
      src_shape: The `(height, width)` of the source.
    """
    corners = np.asarray(corners, np.float64)
    if corners.shape != (4, 2):
      raise ValueError(f'Corners shape {corners.shape} is not (4, 2).')
    height, width = src_shape
    system, rhs = [], []
    for (u, v), (x, y) in zip([(0, 0), (0, height), (width, height), (width, 0)], corners):
      system.append([u, v, 1, 0, 0, 0, -u * x, -v * x])
      system.append([0, 0, 0, u, v, 1, -u * y, -v * y])
      rhs.extend([x, y])
    try:
      h = scipy.linalg.solve(np.array(system, np.float64), np.array(rhs))
    except scipy.linalg.LinAlgError as e:
      raise ValueError(f'Corners {corners.tolist()} do not define a projective map.') from e
    return cls(np.append(h, 1.0).reshape(3, 3))

  def warped_corners(self, src_shape: tuple[int, int]) -> _NDArray:
    """Return the forward images of the source corners `(0, 0)`, `(0, h)`, `(w, h)`, `(w, 0)`."""
    height, width = src_shape
    corners = np.array([[0, 0, 1], [0, height, 1], [width, height, 1], [width, 0, 1]], np.float64)
    warped = corners @ self.matrix.T
    with np.errstate(divide='ignore', invalid='ignore'):
      return warped[:, :2] / warped[:, 2:]

  def shifted_matrix(self, src_shape: tuple[int, int]) -> _NDArray:
    """Return the forward matrix including the shift of the canvas to the origin."""
    xy = self.warped_corners(src_shape)
    return translation_matrix(*(-xy.min(axis=0))) @ self.matrix

  def dst_shape(self, src_shape: tuple[int, int]) -> tuple[int, int]:
    xy = self.warped_corners(src_shape)
    return _ceil_extent(xy.max(axis=0) - xy.min(axis=0))

  def inverse(self, x: _ArrayLike, y: _ArrayLike, src_shape: tuple[int, int],
              dst_shape: tuple[int, int]) -> tuple[_NDArray, _NDArray]:
    inverse = scipy.linalg.inv(self.shifted_matrix(src_shape))
    x, y = np.asarray(x, np.float64), np.asarray(y, np.float64)
    w = inverse[2, 0] * x + inverse[2, 1] * y + inverse[2, 2]
    with np.errstate(divide='ignore', invalid='ignore'):
      u = (inverse[0, 0] * x + inverse[0, 1] * y + inverse[0, 2]) / w
      v = (inverse[1, 0] * x + inverse[1, 1] * y + inverse[1, 2]) / w
    return u, v


def _cross(ax: Any, ay: Any, bx: Any, by: Any) -> Any:
  return ax * by - ay * bx


class BilinearQuadMapping(Mapping):
  """Warp the source rectangle onto an arbitrary quadrilateral by bilinear interpolation.

  The forward map is `P(s, t) = a + b s + c t + d s t` over normalized source coordinates
  `(s, t) = (u / width, v / height)`.  The inverse solves a quadratic equation in `t` per
  destination point (a linear one when the quadrilateral is a parallelogram); points without a
  real solution in the quad map to NaN and are left unpainted.

  Args:
    corners: Destination `(x, y)` points for the source corners `(0, 0)`, `(0, height)`,
      `(width, height)`, and `(width, 0)`, in that order.  The canvas is their bounding box,
      shifted to the origin.
  """

  def __init__(self, corners: _ArrayLike) -> None:
    corners = np.asarray(corners, np.float64)
    if corners.shape != (4, 2):
      raise ValueError(f'Corners shape {corners.shape} is not (4, 2).')
    if not np.all(np.isfinite(corners)):
      raise ValueError(f'Corners {corners.tolist()} are not finite.')
    super().__init__(name='bilinear_quad')
    self.corners = corners

  @classmethod
  def from_commands(cls, commands: Iterable[str | Sequence[Any]],
                    src_shape: tuple[int, int]) -> BilinearQuadMapping:
    """Create the quad spanned by the source corners warped by elementary transforms.

    The transforms (see `MATRIX_COMMANDS`) only place the four corners; the interior then
    follows the bilinear map instead of the projective one.
    """
    return cls(ProjectiveMapping.from_commands(commands).warped_corners(src_shape))

  def dst_shape(self, src_shape: tuple[int, int]) -> tuple[int, int]:
    return _ceil_extent(self.corners.max(axis=0) - self.corners.min(axis=0))

  def coefficients(self) -> tuple[_NDArray, _NDArray, _NDArray, _NDArray]:
    """Return `(a, b, c, d)` of the forward map, with the canvas shifted to the origin."""
    p = self.corners - self.corners.min(axis=0)
    return p[0], p[3] - p[0], p[1] - p[0], p[0] - p[1] + p[2] - p[3]

  def inverse(self, x: _ArrayLike, y: _ArrayLike, src_shape: tuple[int, int],
              dst_shape: tuple[int, int]) -> tuple[_NDArray, _NDArray]:
    height, width = src_shape
    a, b, c, d = self.coefficients()
    ex = np.asarray(x, np.float64) - a[0]
    ey = np.asarray(y, np.float64) - a[1]
    # Crossing (e - c t) with (b + d t) eliminates s, leaving qa t^2 + qb t + qc = 0.
    qa = _cross(*d, *c)
    qb = _cross(*b, *c) + _cross(ex, ey, *d)
    qc = _cross(ex, ey, *b)
    with np.errstate(divide='ignore', invalid='ignore'):
      if abs(qa) < 1e-12:
        t = -qc / qb
      else:
        root = np.sqrt(qb * qb - 4 * qa * qc)
        t1 = (-qb + root) / (2 * qa)
        t2 = (-qb - root) / (2 * qa)
        t = np.where((t1 >= 0.0) & (t1 <= 1.0), t1, t2)
      denom_x = b[0] + d[0] * t
      denom_y = b[1] + d[1] * t
      s = np.where(np.abs(denom_x) >= np.abs(denom_y),
                   (ex - c[0] * t) / denom_x, (ey - c[1] * t) / denom_y)
    return s * width, t * height


_DICT_MAPPINGS: dict[str, Mapping] = {
    'identity': IdentityMapping(),
    'sqrt_sine': SqrtSineWarp(),
    'power_sine': PowerSineWarp(0.7),
    'stretch': PowerSineWarp(0.25),
    'twirl': TwirlWarp(2.0),
    'lens': LensWarp(),
    'tile': TileMapping(2, 2),
}

MAPPINGS = list(_DICT_MAPPINGS)
"""Shortcut names for some predefined mappings:

| name | `Mapping` | inverse map |
|------|-----------|-------------|
| `'identity'` | `IdentityMapping()` | $u = x, v = y$ |
| `'sqrt_sine'` | `SqrtSineWarp()` | $u = \\sqrt{x}, v = (1 + \\sin \\pi y) / 2$ |
| `'power_sine'` | `PowerSineWarp`(0.7) | $u = x^{0.7}, v = \\sin^2(\\pi y / 2)$ |
| `'stretch'` | `PowerSineWarp`(0.25) | $u = x^{0.25}, v = \\sin^2(\\pi y / 2)$ |
| `'twirl'` | `TwirlWarp`(2.0) | rotation by $2 r$ about the center |
| `'lens'` | `LensWarp()` | radial $r' = (r + 0.5) r$ |
| `'tile'` | `TileMapping`(2, 2) | $u = \\{2 x\\}, v = \\{2 y\\}$ |

The parametrized `ProjectiveMapping` and `BilinearQuadMapping` are constructed directly.
"""


def _get_mapping(mapping: str | Mapping) -> Mapping:
  """Return a `Mapping`, which can be specified as a name in `MAPPINGS`."""
  return mapping if isinstance(mapping, Mapping) else _DICT_MAPPINGS[mapping]


def estimate_scale(mapping: str | Mapping, x: _ArrayLike, y: _ArrayLike,
                   src_shape: tuple[int, int],
                   dst_shape: tuple[int, int]) -> tuple[_NDArray, _NDArray]:
  """Return the local scale factors `(sx, sy)` of `mapping` at destination points `(x, y)`.

  The mapping is evaluated at the four corners `(x +- 0.5, y +- 0.5)` of each destination pixel
  and the two differences along each axis are averaged, giving a first-order estimate of the
  Jacobian diagonal in source pixels per destination pixel.  Magnitudes are returned, so a value
  above 1 means minification along that axis and a value below 1 means magnification.
  """
  mapping = _get_mapping(mapping)
  x, y = np.asarray(x, np.float64), np.asarray(y, np.float64)
  u0, v0 = mapping.inverse(x - 0.5, y - 0.5, src_shape, dst_shape)
  u1, v1 = mapping.inverse(x + 0.5, y - 0.5, src_shape, dst_shape)
  u2, v2 = mapping.inverse(x - 0.5, y + 0.5, src_shape, dst_shape)
  u3, v3 = mapping.inverse(x + 0.5, y + 0.5, src_shape, dst_shape)
  sx = np.abs(((u1 - u0) + (u3 - u2)) / 2)
  sy = np.abs(((v2 - v0) + (v3 - v1)) / 2)
  return sx, sy


_DICT_KERNELS = {
    'center8': np.array([[1, 2, 1], [2, 8, 2], [1, 2, 1]], np.float64),
    'center4': np.array([[1, 2, 1], [2, 4, 2], [1, 2, 1]], np.float64),
}

KERNELS = list(_DICT_KERNELS)
"""Names of the predefined 3x3 area-filter weights (corner/edge/center):
`'center8'` is 1/2/8 and `'center4'` is 1/2/4."""


def _get_kernel(kernel: str | _ArrayLike) -> _NDArray:
  """Return 3x3 weights, which can be specified as a name in `KERNELS`."""
  if isinstance(kernel, str):
    return _DICT_KERNELS[kernel]
  kernel = np.asarray(kernel, np.float64)
  if kernel.shape != (3, 3):
    raise ValueError(f'Kernel shape {kernel.shape} is not (3, 3).')
  if np.any(kernel < 0.0) or not kernel.sum() > 0.0:
    raise ValueError(f'Kernel {kernel.tolist()} must be nonnegative with a positive sum.')
  return kernel


def _supersample(image: _NDArray, kernel: _NDArray) -> _NDArray:
  """Weighted 3x3 average of every pixel, excluding neighbors outside the raster."""
  height, width, num_channels = image.shape
  weight_sum = scipy.ndimage.correlate(np.ones((height, width)), kernel, mode='constant')
  result = np.empty_like(image)
  for channel in range(num_channels):
    total = scipy.ndimage.correlate(image[..., channel].astype(np.float64), kernel,
                                    mode='constant')
    result[..., channel] = total / weight_sum
  return result


def _neighborhoods(image: _NDArray) -> tuple[_NDArray, _NDArray]:
  """Return the 3x3 neighbors of all pixels as shape (9, h, w, ch) and their in-raster mask."""
  height, width = image.shape[:2]
  padded = np.pad(image, ((1, 1), (1, 1), (0, 0)))
  inside = np.pad(np.ones((height, width), bool), 1)
  offsets = [(di, dj) for di in range(3) for dj in range(3)]
  neighbors = np.stack([padded[di:di + height, dj:dj + width] for di, dj in offsets])
  valid = np.stack([inside[di:di + height, dj:dj + width] for di, dj in offsets])
  return neighbors, valid


def _adaptive_supersample(image: _NDArray, kernel: _NDArray, threshold: float, *,
                          max_block_size: int = 40_000) -> _NDArray:
  """Weighted 3x3 average over the neighbors that are not outliers in any channel.

  The image is processed in bands of rows (see `_row_blocks`), each extended by a one-row halo,
  so that the temporary neighbor stacks stay proportional to `max_block_size`.
  """
  height = image.shape[0]
  result = np.empty_like(image)
  for rows in _row_blocks(image.shape[:2], max_block_size):
    start, stop = max(rows.start - 1, 0), min(rows.stop + 1, height)
    band = _adaptive_supersample_band(image[start:stop], kernel, threshold)
    result[rows] = band[rows.start - start:rows.stop - start]
  return result


def _adaptive_supersample_band(image: _NDArray, kernel: _NDArray, threshold: float) -> _NDArray:
  """Adaptive filter over all rows of `image`; rows beyond it count as outside the raster."""
  neighbors, valid = _neighborhoods(image)
  samples = neighbors.astype(np.float64)
  for channel in range(image.shape[2]):
    values = samples[..., channel]
    count = valid.sum(axis=0)
    mean = np.where(valid, values, 0.0).sum(axis=0) / np.maximum(count, 1)
    valid &= np.abs(values - mean) <= threshold

  weights = kernel.reshape(9, 1, 1) * valid
  weight_sum = weights.sum(axis=0)
  total = np.einsum('khw,khwc->hwc', weights, samples)
  all_rejected = weight_sum == 0.0
  result = total / np.where(all_rejected, 1.0, weight_sum)[..., None]
  if np.any(all_rejected):
    result[all_rejected] = _supersample(image, kernel)[all_rejected]
  return result.astype(np.uint8)


def _adaptive_supersample_in_loops(image: _NDArray, kernel: _NDArray,
                                   threshold: float) -> _NDArray:
  """Same as `_adaptive_supersample`, as scalar loops suitable for `numba.njit`."""
  height, width, num_channels = image.shape
  result = np.empty((height, width, num_channels), np.uint8)
  inside = np.empty(9, np.bool_)
  valid = np.empty(9, np.bool_)
  for row in range(height):
    for col in range(width):
      for k in range(9):
        r, c = row + k // 3 - 1, col + k % 3 - 1
        inside[k] = r >= 0 and r < height and c >= 0 and c < width
        valid[k] = inside[k]
      for channel in range(num_channels):
        total = 0.0
        count = 0
        for k in range(9):
          if valid[k]:
            total += image[row + k // 3 - 1, col + k % 3 - 1, channel]
            count += 1
        if count > 0:
          mean = total / count
          for k in range(9):
            if valid[k]:
              value = image[row + k // 3 - 1, col + k % 3 - 1, channel]
              if abs(value - mean) > threshold:
                valid[k] = False
      any_valid = False
      for k in range(9):
        if valid[k]:
          any_valid = True
      if not any_valid:
        for k in range(9):
          valid[k] = inside[k]
      for channel in range(num_channels):
        total = 0.0
        weight_sum = 0.0
        for k in range(9):
          if valid[k]:
            weight = kernel[k // 3, k % 3]
            total += weight * image[row + k // 3 - 1, col + k % 3 - 1, channel]
            weight_sum += weight
        result[row, col, channel] = int(total / weight_sum)
  return result


@functools.lru_cache()
def _jitted_adaptive_supersample() -> Callable[[_NDArray, _NDArray, float], _NDArray]:
  return numba.njit(_adaptive_supersample_in_loops)


@dataclasses.dataclass(frozen=True)
class AreaFilter:
  """Abstract base class for minification filters applied to a whole source image.

  A filter is evaluated once per source pixel before any destination pixel is resampled; the
  result is an image of the same shape which the destination pass samples from.
  """

  name: str
  """Area filter name."""

  @abc.abstractmethod
  def __call__(self, image: _NDArray) -> _NDArray:
    """Return the filtered `uint8` copy of an RGBA `image` of shape `(height, width, 4)`."""


class SupersampleFilter(AreaFilter):
  """Fixed-weight 3x3 area average.

  Neighbors outside the raster are excluded together with their weight, so the weights that are
  used always sum to one.  Results are truncated to integers.

  Args:
    kernel: 3x3 weights, as a name in `KERNELS` or an array.
  """

  def __init__(self, kernel: str | _ArrayLike = 'center8') -> None:
    super().__init__(name=f'supersample_{kernel}' if isinstance(kernel, str) else 'supersample')
    self.kernel = _get_kernel(kernel)

  def __call__(self, image: _NDArray) -> _NDArray:
    return _supersample(image, self.kernel)


class AdaptiveSupersampleFilter(AreaFilter):
  """Area average that first discards neighbors far from the neighborhood mean.

  For each channel in turn, the unweighted mean of the remaining in-raster neighbors is computed
  and every neighbor deviating from it by more than `threshold` is dropped for all channels.
  The survivors are then averaged with the kernel weights.  A pixel whose neighbors are all
  dropped takes the value of the fixed-weight filter.

  Args:
    kernel: 3x3 weights, as a name in `KERNELS` or an array.
    threshold: Maximum absolute deviation from the mean, on the 0-255 scale.
    use_numba: Use a jitted loop kernel when `numba` is available.
  """

  def __init__(self, kernel: str | _ArrayLike = 'center8', *,
               threshold: float = DEFAULT_OUTLIER_THRESHOLD, use_numba: bool = True) -> None:
    if not threshold >= 0.0:
      raise ValueError(f'Threshold {threshold} is negative.')
    super().__init__(
        name=f'adaptive_{kernel}' if isinstance(kernel, str) else 'adaptive')
    self.kernel = _get_kernel(kernel)
    self.threshold = float(threshold)
    self.use_numba = use_numba

  def __call__(self, image: _NDArray) -> _NDArray:
    if self.use_numba and 'numba' in globals():
      return _jitted_adaptive_supersample()(image, self.kernel, self.threshold)
    return _adaptive_supersample(image, self.kernel, self.threshold)


_DICT_AREA_FILTERS: dict[str, AreaFilter] = {
    'supersample': SupersampleFilter('center8'),
    'supersample4': SupersampleFilter('center4'),
    'adaptive': AdaptiveSupersampleFilter('center8'),
    'adaptive4': AdaptiveSupersampleFilter('center4'),
}

AREA_FILTERS = list(_DICT_AREA_FILTERS)
"""Shortcut names for the predefined area filters:

| name | `AreaFilter` |
|------|--------------|
| `'supersample'` | `SupersampleFilter`('center8') |
| `'supersample4'` | `SupersampleFilter`('center4') |
| `'adaptive'` | `AdaptiveSupersampleFilter`('center8', threshold=65) |
| `'adaptive4'` | `AdaptiveSupersampleFilter`('center4', threshold=65) |
"""


def _get_area_filter(area_filter: str | AreaFilter) -> AreaFilter:
  """Return an `AreaFilter`, which can be specified as a name in `AREA_FILTERS`."""
  return area_filter if isinstance(area_filter, AreaFilter) else _DICT_AREA_FILTERS[area_filter]


def supersample(image: _ArrayLike, area_filter: str | AreaFilter = 'adaptive') -> _NDArray:
  """Return the RGBA image smoothed by an area filter (see `AREA_FILTERS`)."""
  return _get_area_filter(area_filter)(to_rgba(image))


def _bilinear_corner(w: _NDArray, size: int,
                     edge_margin: float) -> tuple[_NDArray, _NDArray, _NDArray]:
  """Return the two sample indices and the blend fraction along one axis."""
  base = np.floor(w)
  w0 = np.where(w >= base + 0.5, base + 0.5, base - 0.5)
  # Points outside the outermost pixel centers are always pinned.
  low = (w <= edge_margin) | (w < 0.5)
  high = (w >= size - edge_margin) | (w > size - 0.5)
  frac = np.where(low | high, 0.0, w - w0)
  w0 = np.where(high, size - 0.5, np.where(low, 0.5, w0))
  index0 = np.clip(np.floor(w0).astype(np.intp), 0, size - 1)
  index1 = np.minimum(index0 + 1, size - 1)
  return index0, index1, frac


def bilinear_sample(image: _NDArray, u: _ArrayLike, v: _ArrayLike, *,
                    edge_margin: float = DEFAULT_EDGE_MARGIN) -> _NDArray:
  """Interpolate `image` at source pixel coordinates `(u, v)`.

  The four samples are the pixel centers surrounding the point, and their fractional offsets
  `s, t` blend them as `(1-s)(1-t) c0 + s(1-t) c1 + (1-s) t c2 + s t c3`.  Within `edge_margin`
  of the raster border, the offset along that axis is forced to 0 and the sample is pinned to the
  edge pixel, so there is no extrapolation.  Results are truncated to `uint8` and lie within the
  range of the four samples.

  Args:
    image: Array of shape `(height, width, channels)`.
    u: Coordinates along the width, of any shape.
    v: Coordinates along the height, broadcastable with `u`.
    edge_margin: Distance from the border within which the sample is pinned.

  Returns:
    An array of shape `u.shape + (channels,)`.

  >>> image = np.array([[[0], [100]], [[50], [200]]], np.uint8)
  >>> bilinear_sample(image, 1.0, 1.0).tolist()
  [87]
  """
  height, width = image.shape[:2]
  u, v = np.broadcast_arrays(np.asarray(u, np.float64), np.asarray(v, np.float64))
  col0, col1, s = _bilinear_corner(u, width, edge_margin)
  row0, row1, t = _bilinear_corner(v, height, edge_margin)
  c0 = image[row0, col0].astype(np.float64)
  c1 = image[row0, col1].astype(np.float64)
  c2 = image[row1, col0].astype(np.float64)
  c3 = image[row1, col1].astype(np.float64)
  s, t = s[..., None], t[..., None]
  # Lerp form of the blend; exact for equal samples.
  near = c0 + s * (c1 - c0)
  far = c2 + s * (c3 - c2)
  return (near + t * (far - near)).astype(np.uint8)


class Mode(enum.Enum):
  """Policies for choosing the reconstruction of each destination pixel."""

  GENERAL = 'general'
  """Nearest-neighbor copy of the source everywhere (no filtering)."""

  AREA = 'area'
  """Nearest-neighbor copy of the area-filtered source everywhere."""

  BILINEAR = 'bilinear'
  """Bilinear interpolation of the source everywhere."""

  AREA_BILINEAR = 'area_bilinear'
  """Bilinear interpolation of the area-filtered source where an axis magnifies, and a copy of
  the area-filtered source elsewhere."""

  AUTO = 'auto'
  """Per-pixel choice from the local scale factors; see `select_branches`."""


MODES = [mode.value for mode in Mode]
"""Names of the resampling policies in `Mode`."""


def _get_mode(mode: str | Mode) -> Mode:
  """Return a `Mode`, which can be specified as a name in `MODES`."""
  return mode if isinstance(mode, Mode) else Mode(mode)


class Branch(enum.IntEnum):
  """Reconstruction applied to one destination pixel."""

  COPY = 0
  """Source pixel at `floor(u), floor(v)`."""

  BILINEAR = 1
  """Bilinear interpolation of the source."""

  MIXED = 2
  """Bilinear interpolation of the area-filtered source."""

  AREA = 3
  """Area-filtered source pixel at `floor(u), floor(v)`."""


def select_branches(sx: _ArrayLike, sy: _ArrayLike, mode: str | Mode = 'auto', *,
                    tolerance: float = DEFAULT_SCALE_TOLERANCE) -> _NDArray:
  """Return the `Branch` of each pixel given its scale factors, as an `int8` array.

  In the `'auto'` mode, an axis magnifies if its scale is below `1 - tolerance` and minifies if
  it is above `1 + tolerance`:

  | scale factors | branch |
  |---------------|--------|
  | zero or non-finite on either axis | `COPY` |
  | both within `tolerance` of 1 | `COPY` |
  | both axes magnify | `BILINEAR` |
  | one axis magnifies and the other does not | `MIXED` |
  | no axis magnifies and some axis minifies | `AREA` |

  The other modes ignore the scale factors, except `'area_bilinear'` which uses `MIXED` where
  some axis magnifies and `AREA` elsewhere.

  >>> select_branches([0.5, 0.5, 2.0, 1.0, 0.0], [2.0, 0.5, 1.0, 1.0, 3.0]).tolist()
  [2, 1, 3, 0, 0]
  """
  mode = _get_mode(mode)
  sx, sy = np.broadcast_arrays(np.asarray(sx, np.float64), np.asarray(sy, np.float64))
  branch = np.full(sx.shape, Branch.COPY, np.int8)
  with np.errstate(invalid='ignore'):
    magnify_x, magnify_y = sx < 1.0 - tolerance, sy < 1.0 - tolerance
    minify = (sx > 1.0 + tolerance) | (sy > 1.0 + tolerance)
    degenerate = ~(np.isfinite(sx) & np.isfinite(sy)) | (sx <= tolerance) | (sy <= tolerance)
  if mode == Mode.AREA:
    branch[...] = Branch.AREA
  elif mode == Mode.BILINEAR:
    branch[...] = Branch.BILINEAR
  elif mode == Mode.AREA_BILINEAR:
    branch[...] = np.where(magnify_x | magnify_y, Branch.MIXED, Branch.AREA)
  elif mode == Mode.AUTO:
    branch[minify] = Branch.AREA
    branch[magnify_x | magnify_y] = Branch.MIXED
    branch[magnify_x & magnify_y] = Branch.BILINEAR
    branch[degenerate] = Branch.COPY
  return branch


def _row_blocks(shape: tuple[int, int], max_block_size: int) -> list[slice]:
  """Partition the rows into bands of at most `max_block_size` pixels, or of one row if a row
  alone is larger."""
  height, width = shape
  rows_per_block = height if max_block_size == 0 else max(1, max_block_size // width)
  return [slice(start, min(start + rows_per_block, height))
          for start in range(0, height, rows_per_block)]


def _warp_rows(output: _NDArray, rows: slice, rgba: _NDArray, filtered: _NDArray | None,
               mapping: Mapping, mode: Mode, edge_margin: float, tolerance: float) -> _NDArray:
  """Resample the destination `rows` into `output`; return the pixel count of each `Branch`
  followed by the count of unpainted pixels."""
  _check_eq(output.shape[2], rgba.shape[2])
  src_shape = rgba.shape[:2]
  dst_shape = output.shape[:2]
  src_height, src_width = src_shape
  row_index, col_index = np.meshgrid(np.arange(rows.start, rows.stop), np.arange(dst_shape[1]),
                                     indexing='ij')
  x, y = col_index + 0.5, row_index + 0.5
  u, v = mapping.inverse(x, y, src_shape, dst_shape)
  u = np.where(u == src_width, u - EDGE_EPSILON, u)
  v = np.where(v == src_height, v - EDGE_EPSILON, v)
  with np.errstate(invalid='ignore'):
    inside = (u >= 0) & (u < src_width) & (v >= 0) & (v < src_height)

  x, y, u, v = x[inside], y[inside], u[inside], v[inside]
  sx, sy = estimate_scale(mapping, x, y, src_shape, dst_shape)
  branch = select_branches(sx, sy, mode, tolerance=tolerance)
  col, row = np.floor(u).astype(np.intp), np.floor(v).astype(np.intp)
  values = np.empty((len(u), rgba.shape[2]), np.uint8)

  sel = branch == Branch.COPY
  values[sel] = rgba[row[sel], col[sel]]
  sel = branch == Branch.BILINEAR
  values[sel] = bilinear_sample(rgba, u[sel], v[sel], edge_margin=edge_margin)
  if filtered is not None:
    sel = branch == Branch.AREA
    values[sel] = filtered[row[sel], col[sel]]
    sel = branch == Branch.MIXED
    values[sel] = bilinear_sample(filtered, u[sel], v[sel], edge_margin=edge_margin)
  else:
    assert not np.any((branch == Branch.AREA) | (branch == Branch.MIXED))

  output[rows][inside] = values
  counts = np.bincount(branch, minlength=len(Branch))
  return np.append(counts, np.count_nonzero(~inside))


def warp(
    image: _ArrayLike | PixelBuffer,
    mapping: str | Mapping,
    *,
    shape: Iterable[int] | None = None,
    mode: str | Mode = 'auto',
    area_filter: str | AreaFilter = 'adaptive',
    edge_margin: float = DEFAULT_EDGE_MARGIN,
    tolerance: float = DEFAULT_SCALE_TOLERANCE,
    cval: _ArrayLike = 0,
    max_block_size: int = 40_000,
    num_threads: int = 1,
    debug: bool = False,
) -> _NDArray | PixelBuffer:
  """Resample `image` through the inverse `mapping` into a new anti-aliased image.

  Every destination pixel center is mapped into the source.  Pixels that land outside the
  source keep the fill value `cval`.  The others are reconstructed according to `mode`; in the
  default `'auto'` mode the local scale factors of the mapping select a nearest-neighbor copy
  (no distortion), bilinear interpolation (magnification), an area filter (minification), or
  bilinear interpolation of the area-filtered source (magnification along one axis only).

  Args:
    image: Source raster, as an array of shape `(height, width[, channels])` with `channels` in
      (1, 3, 4) or as a `PixelBuffer`.  It is converted to RGBA.
    mapping: Inverse map, as a name in `MAPPINGS` or a `Mapping` instance.
    shape: `(height, width)` of the output; it defaults to `mapping.dst_shape()`, which for
      some mappings depends on a forward pre-pass over the source.
    mode: Resampling policy, as a name in `MODES` or a `Mode`.
    area_filter: Minification filter, as a name in `AREA_FILTERS` or an `AreaFilter` instance.
      The default is the adaptive filter; `'supersample'` gives the fixed-weight filter.
    edge_margin: Border distance within which bilinear interpolation pins samples to the edge.
    tolerance: Scale factors within this distance of 1.0 are considered undistorted.
    cval: RGBA fill value for unpainted pixels; the default is transparent black.
    max_block_size: If nonzero, maximum number of destination pixels resampled at once; the
      destination is partitioned into bands of rows for reduced memory usage.
    num_threads: Number of worker threads over which the bands are distributed.
    debug: Show internal information.

  Returns:
    An RGBA `uint8` array of shape `shape + (4,)`, or a `PixelBuffer` if `image` is one.

  >>> image = np.arange(12, dtype=np.uint8).reshape(3, 4)
  >>> new = warp(image, 'identity')
  >>> assert np.all(new[..., 0] == image)
  """
  is_buffer = isinstance(image, PixelBuffer)
  rgba = to_rgba(image.numpy() if is_buffer else image)
  mapping = _get_mapping(mapping)
  mode = _get_mode(mode)
  area_filter = _get_area_filter(area_filter)
  src_shape = rgba.shape[:2]
  dst_shape = mapping.dst_shape(src_shape) if shape is None else tuple(shape)
  if len(dst_shape) != 2 or min(dst_shape) <= 0:
    raise ValueError(f'Destination shape {dst_shape} is not a positive (height, width).')
  cval = np.broadcast_to(np.asarray(cval), (4,))
  if np.any(cval < 0) or np.any(cval > 255):
    raise ValueError(f'Fill value {cval.tolist()} does not fit in uint8.')
  if max_block_size < 0:
    raise ValueError(f'Max block size {max_block_size} is negative.')
  if num_threads < 1:
    raise ValueError(f'Number of threads {num_threads} is not positive.')

  filtered = None
  if mode in (Mode.AREA, Mode.AREA_BILINEAR, Mode.AUTO):
    filtered = area_filter(rgba)

  output = np.empty((*dst_shape, 4), np.uint8)
  output[...] = cval.astype(np.uint8)
  row_blocks = _row_blocks(dst_shape, max_block_size)
  if debug:
    print(f'(warp: {mapping.name} {src_shape} -> {dst_shape} mode={mode.value}'
          f' in {len(row_blocks)} row blocks).')

  def process_block(rows: slice) -> _NDArray:
    return _warp_rows(output, rows, rgba, filtered, mapping, mode, edge_margin, tolerance)

  if num_threads > 1 and len(row_blocks) > 1:
    with concurrent.futures.ThreadPoolExecutor(num_threads) as executor:
      counts = list(executor.map(process_block, row_blocks))
  else:
    counts = [process_block(rows) for rows in row_blocks]

  if debug:
    total = np.sum(counts, axis=0)
    names = [branch.name.lower() for branch in Branch] + ['unpainted']
    print('(warp: ' + ' '.join(f'{name}={count}' for name, count in zip(names, total)) + ').')
  return PixelBuffer.from_array(output) if is_buffer else output
