#!/usr/bin/env python3
# -*- fill-column: 100; -*-
"""Tests for package warpsampler.

flake8 --indent-size 2 --max-line-length=100 test_warpsampler.py && python3 test_warpsampler.py
"""
import contextlib
import io
from typing import Any
import unittest

import numpy as np
import numpy.typing

import warpsampler

_NDArray = numpy.typing.NDArray[Any]

# pylint: disable=protected-access, missing-function-docstring, too-many-public-methods


def _check_eq(a: Any, b: Any) -> None:
  """If the two values or arrays are not equal, raise an exception with a useful message."""
  are_equal = np.all(a == b) if isinstance(a, np.ndarray) else a == b
  if not are_equal:
    raise AssertionError(f'{a!r} == {b!r}')


def _random_image(shape: tuple[int, ...], seed: int = 0,
                  values: Any = None) -> _NDArray:
  rng = np.random.default_rng(seed)
  if values is not None:
    return rng.choice(np.asarray(values, np.uint8), shape)
  return rng.integers(0, 256, shape, dtype=np.uint8)


def _pixel_grid(dst_shape: tuple[int, int]) -> tuple[_NDArray, _NDArray]:
  rows, cols = np.meshgrid(*(np.arange(n) for n in dst_shape), indexing='ij')
  return cols + 0.5, rows + 0.5


class TestWarpsampler(unittest.TestCase):
  """Test class for warpsampler package."""

  def test_to_rgba_expands_channels(self) -> None:
    gray = _random_image((3, 5))
    rgba = warpsampler.to_rgba(gray)
    _check_eq(rgba.shape, (3, 5, 4))
    _check_eq(rgba.dtype, np.uint8)
    for channel in range(3):
      _check_eq(rgba[..., channel], gray)
    assert np.all(rgba[..., 3] == 255)

    rgb = _random_image((3, 5, 3), seed=1)
    rgba = warpsampler.to_rgba(rgb)
    _check_eq(rgba[..., :3], rgb)
    assert np.all(rgba[..., 3] == 255)

    rgba2 = _random_image((3, 5, 4), seed=2)
    _check_eq(warpsampler.to_rgba(rgba2), rgba2)

  def test_to_rgba_from_float(self) -> None:
    rgba = warpsampler.to_rgba(np.array([[0.0, 0.5, 1.0]]))
    _check_eq(rgba[0, :, 0].tolist(), [0, 128, 255])

  def test_to_rgba_rejects_invalid(self) -> None:
    for array in [np.zeros((0, 3), np.uint8), np.zeros((2, 2, 2), np.uint8),
                  np.zeros((2, 2, 2, 2), np.uint8), np.full((2, 2), 300),
                  np.zeros(5, np.uint8)]:
      with self.subTest(shape=array.shape, dtype=array.dtype):
        with self.assertRaises(ValueError):
          warpsampler.to_rgba(array)

  def test_pixel_buffer(self) -> None:
    gray = _random_image((2, 3))
    buffer = warpsampler.PixelBuffer.from_array(gray)
    _check_eq((buffer.width, buffer.height, buffer.channels), (3, 2, 1))
    _check_eq(buffer.shape, (2, 3))
    _check_eq(len(buffer.data), 6)
    _check_eq(buffer.numpy()[..., 0], gray)

    rgba = buffer.to_rgba()
    _check_eq(rgba.channels, 4)
    _check_eq(rgba.numpy()[..., 1], gray)
    assert rgba.to_rgba() is rgba

  def test_pixel_buffer_rejects_invalid(self) -> None:
    for kwargs in [dict(width=2, height=2, channels=3, data=bytes(11)),
                   dict(width=0, height=2, channels=1, data=b''),
                   dict(width=2, height=2, channels=2, data=bytes(8))]:
      with self.subTest(**{k: v for k, v in kwargs.items() if k != 'data'}):
        with self.assertRaises(ValueError):
          warpsampler.PixelBuffer(**kwargs)
    with self.assertRaises(ValueError):
      warpsampler.PixelBuffer.from_array(np.zeros((2, 2), np.float32))

  def test_identity_is_exact(self) -> None:
    image = _random_image((5, 7, 4))
    for mode in ['auto', 'general']:
      with self.subTest(mode=mode):
        new = warpsampler.warp(image, 'identity', mode=mode)
        _check_eq(new, image)

  def test_identity_scale_is_one(self) -> None:
    dst_shape = src_shape = 6, 9
    x, y = _pixel_grid(dst_shape)
    sx, sy = warpsampler.estimate_scale('identity', x, y, src_shape, dst_shape)
    assert np.allclose(sx, 1.0, rtol=0, atol=1e-12)
    assert np.allclose(sy, 1.0, rtol=0, atol=1e-12)

  def test_estimate_scale_of_sqrt_sine(self) -> None:
    shape = 20, 20
    x, y = np.array([1.5, 18.5]), np.array([3.5, 3.5])
    sx, _ = warpsampler.estimate_scale('sqrt_sine', x, y, shape, shape)
    assert sx[0] > 1.0  # Minified near the left border.
    assert sx[1] < 1.0  # Magnified near the right border.

  def test_uniform_image_is_preserved(self) -> None:
    color = np.array([100, 150, 200, 255], np.uint8)
    image = np.broadcast_to(color, (5, 7, 4))
    for mapping in ['identity', 'sqrt_sine', 'power_sine']:
      for mode in warpsampler.MODES:
        for area_filter in warpsampler.AREA_FILTERS:
          with self.subTest(mapping=mapping, mode=mode, area_filter=area_filter):
            new = warpsampler.warp(image, mapping, mode=mode, area_filter=area_filter)
            _check_eq(new, np.broadcast_to(color, new.shape))

  def test_uniform_4x4_through_area_mode(self) -> None:
    image = np.broadcast_to(np.array([100, 150, 200, 255], np.uint8), (4, 4, 4))
    buffer = warpsampler.PixelBuffer.from_array(image)
    new = warpsampler.warp(buffer, 'identity', mode='area', area_filter='adaptive')
    assert isinstance(new, warpsampler.PixelBuffer)
    _check_eq((new.width, new.height, new.channels), (4, 4, 4))
    _check_eq(new.numpy(), image)

  def test_bilinear_known_values(self) -> None:
    image = np.array([[[0], [100]], [[50], [200]]], np.uint8)
    _check_eq(warpsampler.bilinear_sample(image, 1.0, 1.0).tolist(), [87])
    _check_eq(warpsampler.bilinear_sample(image, 0.75, 1.0).tolist(), [56])
    _check_eq(warpsampler.bilinear_sample(image, [0.5, 1.5], [0.5, 1.5])[:, 0].tolist(), [0, 200])

  def test_bilinear_within_sample_range(self) -> None:
    image = _random_image((6, 8, 4))
    rng = np.random.default_rng(1)
    u = rng.uniform(0.5, 7.5, 200)
    v = rng.uniform(0.5, 5.5, 200)
    values = warpsampler.bilinear_sample(image, u, v)
    _check_eq(values.shape, (200, 4))
    for i in range(len(u)):
      col0, row0 = int(np.floor(u[i] - 0.5)), int(np.floor(v[i] - 0.5))
      samples = image[row0:row0 + 2, col0:col0 + 2].reshape(-1, 4)
      assert np.all(values[i] >= samples.min(axis=0)), (u[i], v[i])
      assert np.all(values[i] <= samples.max(axis=0)), (u[i], v[i])

  def test_bilinear_boundary_clamp(self) -> None:
    image = _random_image((4, 5, 4))
    height, width = image.shape[:2]
    v = 1.7
    edge = warpsampler.bilinear_sample(image, 0.5, v)
    for u in [0.0, 0.2, 0.5]:
      _check_eq(warpsampler.bilinear_sample(image, u, v), edge)
    edge = warpsampler.bilinear_sample(image, width - 0.5, v)
    for u in [width - 0.5, width - 0.3, width - 0.0001]:
      _check_eq(warpsampler.bilinear_sample(image, u, v), edge)
    edge = warpsampler.bilinear_sample(image, 2.2, height - 0.5)
    _check_eq(warpsampler.bilinear_sample(image, 2.2, height - 0.1), edge)
    # Pinned along both axes, the result is the corner pixel.
    _check_eq(warpsampler.bilinear_sample(image, 0.1, 0.1), image[0, 0])

  def test_bilinear_pins_points_outside_pixel_centers(self) -> None:
    image = np.array([[[0], [100], [200]]], np.uint8)
    for edge_margin in [0.0, 0.25]:
      with self.subTest(edge_margin=edge_margin):
        values = warpsampler.bilinear_sample(image, [0.0, 0.2, 1.2, 2.9], 0.5,
                                             edge_margin=edge_margin)
        _check_eq(values[:, 0].tolist(), [0, 0, 70, 200])

  def test_area_filter_on_uniform_image(self) -> None:
    image = np.broadcast_to(np.array([100, 150, 200, 255], np.uint8), (3, 3, 4))
    for area_filter in warpsampler.AREA_FILTERS:
      with self.subTest(area_filter=area_filter):
        _check_eq(warpsampler.supersample(image, area_filter), image)

  def test_supersample_known_values(self) -> None:
    channel = np.array([[10, 20, 30], [40, 50, 60], [70, 80, 90]], np.uint8)
    image = np.repeat(channel[..., None], 4, axis=2)
    new = warpsampler.supersample(image, 'supersample')
    center = (10 + 2 * 20 + 30 + 2 * 40 + 8 * 50 + 2 * 60 + 70 + 2 * 80 + 90) // 20
    _check_eq(int(new[1, 1, 0]), center)
    corner = (8 * 10 + 2 * 20 + 2 * 40 + 1 * 50) // 13
    _check_eq(int(new[0, 0, 0]), corner)
    edge = (2 * 10 + 8 * 20 + 2 * 30 + 1 * 40 + 2 * 50 + 1 * 60) // 16
    _check_eq(int(new[0, 1, 0]), edge)

    new4 = warpsampler.supersample(image, 'supersample4')
    center4 = (10 + 2 * 20 + 30 + 2 * 40 + 4 * 50 + 2 * 60 + 70 + 2 * 80 + 90) // 16
    _check_eq(int(new4[1, 1, 0]), center4)

  def test_adaptive_filter_rejects_outlier(self) -> None:
    channel = np.array([[90, 95, 250], [100, 105, 110], [92, 98, 102]], np.uint8)
    image = np.repeat(channel[..., None], 4, axis=2)
    image[..., 3] = 255
    kernel = warpsampler._DICT_KERNELS['center8'].copy()
    kernel[0, 2] = 0.0
    expected = warpsampler.SupersampleFilter(kernel)(image)[1, 1]
    for use_numba in [False, True]:
      with self.subTest(use_numba=use_numba):
        area_filter = warpsampler.AdaptiveSupersampleFilter(use_numba=use_numba)
        _check_eq(area_filter(image)[1, 1], expected)
    fixed = warpsampler.supersample(image, 'supersample')[1, 1]
    assert fixed[0] != expected[0]

  def test_adaptive_filter_threshold(self) -> None:
    channel = np.array([[90, 95, 250], [100, 105, 110], [92, 98, 102]], np.uint8)
    image = warpsampler.to_rgba(channel)
    lenient = warpsampler.AdaptiveSupersampleFilter(threshold=255.0)
    _check_eq(lenient(image), warpsampler.supersample(image, 'supersample'))
    with self.assertRaises(ValueError):
      warpsampler.AdaptiveSupersampleFilter(threshold=-1.0)

  def test_adaptive_filter_implementations_agree(self) -> None:
    for seed in range(3):
      image = _random_image((6, 7, 4), seed=seed, values=[0, 30, 120, 255])
      for kernel_name in warpsampler.KERNELS:
        with self.subTest(seed=seed, kernel=kernel_name):
          kernel = warpsampler._DICT_KERNELS[kernel_name]
          expected = warpsampler._adaptive_supersample(image, kernel, 65.0)
          loops = warpsampler._adaptive_supersample_in_loops(image, kernel, 65.0)
          _check_eq(loops, expected)
          if 'numba' in vars(warpsampler):
            jitted = warpsampler._jitted_adaptive_supersample()(image, kernel, 65.0)
            _check_eq(jitted, expected)

  def test_adaptive_filter_all_rejected_falls_back(self) -> None:
    channel = np.array([[0, 255, 0], [255, 0, 255], [0, 255, 255]], np.uint8)
    image = warpsampler.to_rgba(channel)
    kernel = warpsampler._DICT_KERNELS['center8']
    adaptive = warpsampler._adaptive_supersample(image, kernel, 65.0)
    fixed = warpsampler._supersample(image, kernel)
    # The center neighborhood has mean 141.7, so every neighbor is rejected.
    _check_eq(adaptive[1, 1], fixed[1, 1])
    _check_eq(warpsampler._adaptive_supersample_in_loops(image, kernel, 65.0), adaptive)

  def test_adaptive_filter_in_row_bands(self) -> None:
    image = _random_image((9, 7, 4), seed=3, values=[0, 30, 120, 255])
    kernel = warpsampler._DICT_KERNELS['center8']
    expected = warpsampler._adaptive_supersample_in_loops(image, kernel, 65.0)
    for max_block_size in [0, 1, 7, 14, 20, 1_000]:
      with self.subTest(max_block_size=max_block_size):
        banded = warpsampler._adaptive_supersample(image, kernel, 65.0,
                                                   max_block_size=max_block_size)
        _check_eq(banded, expected)

  def test_select_branches(self) -> None:
    sx = [1.0, 0.5, 0.5, 2.0, 0.5, 1.0, 0.0, np.nan, 1.0 + 1e-9]
    sy = [1.0, 0.5, 1.0, 1.0, 3.0, 3.0, 2.0, 1.0, 1.0 - 1e-9]
    b = warpsampler.Branch
    expected = {
        'auto': [b.COPY, b.BILINEAR, b.MIXED, b.AREA, b.MIXED, b.AREA, b.COPY, b.COPY, b.COPY],
        'general': [b.COPY] * 9,
        'area': [b.AREA] * 9,
        'bilinear': [b.BILINEAR] * 9,
        'area_bilinear': [b.AREA, b.MIXED, b.MIXED, b.AREA, b.MIXED, b.AREA, b.MIXED, b.AREA,
                          b.AREA],
    }
    for mode in warpsampler.MODES:
      with self.subTest(mode=mode):
        branch = warpsampler.select_branches(sx, sy, mode)
        _check_eq(branch.tolist(), [int(value) for value in expected[mode]])

  def test_mixed_scale_uses_bilinear_of_filtered_source(self) -> None:
    image = _random_image((8, 8, 4))
    mapping = warpsampler.ProjectiveMapping.from_commands(['s 2 0.5'])
    dst_shape = mapping.dst_shape((8, 8))
    _check_eq(dst_shape, (4, 16))
    x, y = _pixel_grid(dst_shape)
    sx, sy = warpsampler.estimate_scale(mapping, x, y, (8, 8), dst_shape)
    assert np.allclose(sx, 0.5) and np.allclose(sy, 2.0)
    assert np.all(warpsampler.select_branches(sx, sy) == warpsampler.Branch.MIXED)

    filtered = warpsampler.supersample(image, 'adaptive')
    u, v = mapping.inverse(x, y, (8, 8), dst_shape)
    expected = warpsampler.bilinear_sample(filtered, u, v)
    new = warpsampler.warp(image, mapping)
    _check_eq(new, expected)

  def test_twirl_with_zero_strength(self) -> None:
    image = _random_image((6, 8, 4))
    mapping = warpsampler.TwirlWarp(0.0)
    _check_eq(mapping.bounding_box((6, 8)), (0.0, 0.0, 1.0, 1.0))
    _check_eq(mapping.dst_shape((6, 8)), (6, 8))
    _check_eq(warpsampler.warp(image, mapping), image)

  def test_forward_and_inverse_maps_agree(self) -> None:
    rng = np.random.default_rng(0)
    u, v = rng.uniform(0.05, 0.95, (2, 50))
    for mapping in [warpsampler.PowerSineWarp(0.7), warpsampler.PowerSineWarp(0.25),
                    warpsampler.TwirlWarp(2.0), warpsampler.LensWarp(),
                    warpsampler.IdentityMapping()]:
      with self.subTest(mapping=mapping.name):
        u2, v2 = mapping.inverse_unit(*mapping.forward_unit(u, v))
        assert np.allclose(u2, u, rtol=0, atol=1e-9)
        assert np.allclose(v2, v, rtol=0, atol=1e-9)

  def test_lens_canvas_is_smaller(self) -> None:
    height, width = warpsampler.LensWarp().dst_shape((20, 30))
    assert 1 <= height < 20 and 1 <= width < 30
    new = warpsampler.warp(_random_image((20, 30, 3)), 'lens')
    _check_eq(new.shape, (height, width, 4))

  def test_tile(self) -> None:
    image = _random_image((4, 6, 4))
    new = warpsampler.warp(image, warpsampler.TileMapping(2, 3), mode='general')
    expected = image[[1, 3, 1, 3]][:, [1, 4, 1, 4, 1, 4]]
    _check_eq(new, expected)
    with self.assertRaises(ValueError):
      warpsampler.TileMapping(0, 2)

  def test_matrix_from_commands(self) -> None:
    matrix = warpsampler.matrix_from_commands(['r 90', 't 5 0'])
    expected = warpsampler.translation_matrix(5, 0) @ warpsampler.rotation_matrix(90)
    assert np.allclose(matrix, expected)
    matrix = warpsampler.matrix_from_commands(['s 2 2', 'd', 's 3 3'])
    assert np.allclose(matrix, np.diag([2.0, 2.0, 1.0]))
    matrix = warpsampler.matrix_from_commands([('h', 0.5, 0), 'p 0.1 0.2'])
    assert np.allclose(matrix, [[1.0, 0.5, 0.0], [0.0, 1.0, 0.0], [0.1, 0.25, 1.0]])
    for commands in [['x 1 2'], ['s 2'], ['r']]:
      with self.subTest(commands=commands):
        with self.assertRaises(ValueError):
          warpsampler.matrix_from_commands(commands)

  def test_projective_canvas_shape(self) -> None:
    mapping = warpsampler.ProjectiveMapping.from_commands(['r 90'])
    _check_eq(mapping.dst_shape((4, 6)), (6, 4))
    mapping = warpsampler.ProjectiveMapping.from_commands(['s 1.5 0.5'])
    _check_eq(mapping.dst_shape((4, 6)), (2, 9))
    with self.assertRaises(ValueError):
      warpsampler.ProjectiveMapping.from_commands(['s 0 1'])

  def test_projective_flip(self) -> None:
    image = _random_image((4, 6, 4))
    mapping = warpsampler.ProjectiveMapping.from_commands(['f 1 0'])
    _check_eq(warpsampler.warp(image, mapping), image[:, ::-1])
    mapping = warpsampler.ProjectiveMapping.from_commands(['f 0 1'])
    _check_eq(warpsampler.warp(image, mapping), image[::-1])

  def test_projective_rotation_leaves_corners_unpainted(self) -> None:
    image = _random_image((8, 8, 4))
    cval = (1, 2, 3, 4)
    new = warpsampler.warp(image, warpsampler.ProjectiveMapping.from_commands(['r 45']),
                           cval=cval)
    _check_eq(new.shape, (12, 12, 4))
    for row, col in [(0, 0), (0, -1), (-1, 0), (-1, -1)]:
      _check_eq(new[row, col].tolist(), list(cval))
    assert not np.all(new[6, 6] == cval)

  def test_from_corners_matches_scaling(self) -> None:
    height, width = 3, 5
    corners = [(0, 0), (0, 2 * height), (2 * width, 2 * height), (2 * width, 0)]
    mapping = warpsampler.ProjectiveMapping.from_corners(corners, (height, width))
    assert np.allclose(mapping.matrix, np.diag([2.0, 2.0, 1.0]), rtol=0, atol=1e-9)
    with self.assertRaises(ValueError):
      warpsampler.ProjectiveMapping.from_corners([(1, 1)] * 4, (height, width))

  def test_bilinear_quad_on_rectangle(self) -> None:
    mapping = warpsampler.BilinearQuadMapping([(0, 0), (0, 8), (12, 8), (12, 0)])
    dst_shape = mapping.dst_shape((4, 6))
    _check_eq(dst_shape, (8, 12))
    x, y = _pixel_grid(dst_shape)
    u, v = mapping.inverse(x, y, (4, 6), dst_shape)
    assert np.allclose(u, x / 2) and np.allclose(v, y / 2)

  def test_bilinear_quad_inverts_forward_map(self) -> None:
    src_shape = height, width = 5, 7
    mapping = warpsampler.BilinearQuadMapping([(0, 0), (0, 8), (12, 10), (10, 0)])
    dst_shape = mapping.dst_shape(src_shape)
    _check_eq(dst_shape, (10, 12))
    a, b, c, d = mapping.coefficients()
    s, t = np.meshgrid(np.linspace(0.1, 0.9, 9), np.linspace(0.1, 0.9, 7))
    x = a[0] + b[0] * s + c[0] * t + d[0] * s * t
    y = a[1] + b[1] * s + c[1] * t + d[1] * s * t
    u, v = mapping.inverse(x, y, src_shape, dst_shape)
    assert np.allclose(u, s * width, rtol=0, atol=1e-9)
    assert np.allclose(v, t * height, rtol=0, atol=1e-9)
    new = warpsampler.warp(_random_image((*src_shape, 4)), mapping)
    _check_eq(new.shape, (10, 12, 4))

  def test_bilinear_quad_from_commands(self) -> None:
    src_shape = 4, 6
    commands = ['s 2 2', 'h 0.5 0']
    mapping = warpsampler.BilinearQuadMapping.from_commands(commands, src_shape)
    _check_eq(mapping.corners.tolist(), [[0.0, 0.0], [4.0, 8.0], [16.0, 8.0], [12.0, 0.0]])
    # For an affine transform, the bilinear and projective maps coincide.
    projective = warpsampler.ProjectiveMapping.from_commands(commands)
    dst_shape = mapping.dst_shape(src_shape)
    _check_eq(dst_shape, projective.dst_shape(src_shape))
    x, y = _pixel_grid(dst_shape)
    u, v = mapping.inverse(x, y, src_shape, dst_shape)
    u2, v2 = projective.inverse(x, y, src_shape, dst_shape)
    assert np.allclose(u, u2, rtol=0, atol=1e-9) and np.allclose(v, v2, rtol=0, atol=1e-9)
    with self.assertRaises(ValueError):
      warpsampler.BilinearQuadMapping.from_commands(['s 0 1'], src_shape)

  def test_all_mappings_and_modes(self) -> None:
    image = _random_image((6, 8, 3))
    for mapping in warpsampler.MAPPINGS:
      for mode in warpsampler.MODES:
        with self.subTest(mapping=mapping, mode=mode):
          new = warpsampler.warp(image, mapping, mode=mode)
          expected_shape = warpsampler._get_mapping(mapping).dst_shape((6, 8))
          _check_eq(new.shape, (*expected_shape, 4))
          _check_eq(new.dtype, np.uint8)

  def test_explicit_shape(self) -> None:
    new = warpsampler.warp(_random_image((6, 8)), 'sqrt_sine', shape=(3, 13))
    _check_eq(new.shape, (3, 13, 4))

  def test_blocks_and_threads_are_equivalent(self) -> None:
    image = _random_image((9, 11, 4))
    for mapping in ['twirl', 'sqrt_sine']:
      with self.subTest(mapping=mapping):
        expected = warpsampler.warp(image, mapping, max_block_size=0)
        for max_block_size, num_threads in [(13, 1), (13, 3), (1, 2), (40, 4)]:
          new = warpsampler.warp(image, mapping, max_block_size=max_block_size,
                                 num_threads=num_threads)
          _check_eq(new, expected)

  def test_row_blocks(self) -> None:
    blocks = warpsampler._row_blocks((7, 5), 10)
    _check_eq([(block.start, block.stop) for block in blocks], [(0, 2), (2, 4), (4, 6), (6, 7)])
    _check_eq(len(warpsampler._row_blocks((7, 5), 0)), 1)
    _check_eq(len(warpsampler._row_blocks((7, 5), 3)), 7)

  def test_warp_rejects_invalid(self) -> None:
    image = _random_image((4, 4))
    for kwargs in [dict(shape=(0, 4)), dict(shape=(3,)), dict(num_threads=0),
                   dict(cval=(0, 0, 0, 300)), dict(mode='nearest'), dict(max_block_size=-1)]:
      with self.subTest(**kwargs):
        with self.assertRaises(ValueError):
          warpsampler.warp(image, 'identity', **kwargs)
    with self.assertRaises(KeyError):
      warpsampler.warp(image, 'no_such_mapping')
    with self.assertRaises(KeyError):
      warpsampler.warp(image, 'identity', area_filter='no_such_filter')
    with self.assertRaises(ValueError):
      warpsampler.warp(np.zeros((4, 4, 2), np.uint8), 'identity')

  def test_debug_output(self) -> None:
    stdout = io.StringIO()
    with contextlib.redirect_stdout(stdout):
      warpsampler.warp(_random_image((5, 5)), 'sqrt_sine', debug=True)
    lines = stdout.getvalue().splitlines()
    _check_eq(len(lines), 2)
    assert all(line.startswith('(warp: ') for line in lines)
    assert 'unpainted=0' in lines[1]


if __name__ == '__main__':
  unittest.main()
