"""GPU operations checked against the numpy backend.

Skipped when no WGPU adapter is available (see the device fixture).
"""

from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from matrix_kernels import numpy_math as nm
from matrix_kernels.gpu_buffer import (
    clear_buffer,
    create_gpu_buffer_1d,
    create_gpu_buffer_2d,
    gpu_to_numpy,
    write_buffer,
)
from matrix_kernels.gpu_device import create_pipeline_cache
from matrix_kernels.gpu_ops_elementwise import (
    run_binary,
    run_clamp,
    run_copy,
    run_fill,
    run_scalar,
    run_select,
    run_unary,
)
from matrix_kernels.gpu_ops_matrix import (
    run_broadcast_column,
    run_broadcast_row,
    run_reduce_columns,
    run_reduce_rows,
    run_transpose,
)
from matrix_kernels.gpu_ops_rows import (
    run_get_row_slice,
    run_select_rows,
    run_set_row_slice,
    run_set_selected_rows,
)
from matrix_kernels.gpu_types import GPUConfig

ROWS, COLS = 70, 45
POSITIVE_DOMAIN = {"sqrt", "log", "gamma", "lgamma"}


def _signed(rng, shape):
    magnitude = rng.uniform(0.25, 3.0, size=shape)
    sign = np.where(rng.random(shape) < 0.5, -1.0, 1.0)
    return (magnitude * sign).astype(np.float32)


def _positive(rng, shape):
    return rng.uniform(0.5, 3.0, size=shape).astype(np.float32)


def _matrix(device, data):
    rows, cols = data.shape
    return create_gpu_buffer_2d(device, rows, cols, data)


def _cpu_reference(fn, *arrays):
    """Run a numpy_math op on packed copies; returns the last array unpacked."""
    flats = [nm.pack_matrix(a) for a in arrays]
    fn(*flats)
    rows, cols = arrays[-1].shape
    return nm.unpack_matrix(flats[-1], cols, rows)


# ============================================================================
# BUFFERS
# ============================================================================


def test_buffer_round_trip_is_column_major(device, rng) -> None:
    data = rng.standard_normal((ROWS, COLS)).astype(np.float32)
    buf = _matrix(device, data)
    np.testing.assert_array_equal(gpu_to_numpy(buf), data)

    replacement = data * 2.0
    write_buffer(buf, replacement)
    np.testing.assert_array_equal(gpu_to_numpy(buf), replacement)

    clear_buffer(buf)
    np.testing.assert_array_equal(gpu_to_numpy(buf), 0.0)


def test_buffer_shape_checks(device) -> None:
    with pytest.raises(ValueError):
        create_gpu_buffer_2d(device, 2, 3, np.zeros((3, 2), dtype=np.float32))
    with pytest.raises(ValueError):
        create_gpu_buffer_1d(device, 0)


# ============================================================================
# ELEMENT-WISE
# ============================================================================


@pytest.mark.parametrize("op", sorted(nm.UNARY_OPS))
def test_unary_matches_numpy(pipeline_cache, device, rng, op: str) -> None:
    shape = (ROWS, COLS)
    data = _positive(rng, shape) if op in POSITIVE_DOMAIN else _signed(rng, shape)
    source = _matrix(device, data)
    target = create_gpu_buffer_2d(device, ROWS, COLS)

    run_unary(pipeline_cache, op, source, target)

    expected = _cpu_reference(
        lambda s, t: nm.unary(op, s, t), data, np.empty_like(data)
    )
    tol = 1e-3 if op in ("gamma", "lgamma") else 1e-4
    np.testing.assert_allclose(gpu_to_numpy(target), expected, rtol=tol, atol=tol)


@pytest.mark.parametrize("op", sorted(nm.BINARY_OPS))
def test_binary_matches_numpy(pipeline_cache, device, rng, op: str) -> None:
    a_data = _positive(rng, (ROWS, COLS)) if op == "pow" else _signed(rng, (ROWS, COLS))
    b_data = _signed(rng, (ROWS, COLS))
    target = create_gpu_buffer_2d(device, ROWS, COLS)

    run_binary(pipeline_cache, op, _matrix(device, a_data), _matrix(device, b_data), target)

    expected = _cpu_reference(
        lambda a, b, t: nm.binary(op, a, b, t), a_data, b_data, np.empty_like(a_data)
    )
    np.testing.assert_allclose(gpu_to_numpy(target), expected, rtol=1e-4, atol=1e-5)


def test_pow_negative_base_and_zero(pipeline_cache, device) -> None:
    a = create_gpu_buffer_1d(device, 5, np.array([-2, -2, 0, 0, 3], dtype=np.float32))
    b = create_gpu_buffer_1d(device, 5, np.array([3, 2, -1, 0, 0], dtype=np.float32))
    target = create_gpu_buffer_1d(device, 5)

    run_binary(pipeline_cache, "pow", a, b, target)

    np.testing.assert_allclose(
        gpu_to_numpy(target), [-8.0, 4.0, np.inf, 1.0, 1.0], rtol=1e-5
    )


@pytest.mark.parametrize("op", sorted(nm.SCALAR_OPS))
def test_scalar_matches_numpy(pipeline_cache, device, rng, op: str) -> None:
    data = _positive(rng, (ROWS, COLS)) if op == "pow" else _signed(rng, (ROWS, COLS))
    target = create_gpu_buffer_2d(device, ROWS, COLS)

    run_scalar(pipeline_cache, op, _matrix(device, data), 1.5, target)

    expected = _cpu_reference(
        lambda s, t: nm.scalar(op, s, 1.5, t), data, np.empty_like(data)
    )
    np.testing.assert_allclose(gpu_to_numpy(target), expected, rtol=1e-4, atol=1e-5)


def test_in_place_scalar_uses_scratch(pipeline_cache, device, rng) -> None:
    data = _signed(rng, (ROWS, COLS))
    buf = _matrix(device, data)

    run_scalar(pipeline_cache, "mul", buf, 2.0, buf)

    np.testing.assert_array_equal(gpu_to_numpy(buf), data * 2.0)


def test_scale_by_one_and_add_zero(pipeline_cache, device, rng) -> None:
    data = rng.standard_normal((ROWS, COLS)).astype(np.float32)
    buf = _matrix(device, data)
    run_scalar(pipeline_cache, "mul", buf, 1.0, buf)
    run_scalar(pipeline_cache, "add", buf, 0.0, buf)
    np.testing.assert_array_equal(gpu_to_numpy(buf), data)


def test_grid_stride_covers_capped_launch(device, rng) -> None:
    small_grid = dataclasses.replace(
        device, config=GPUConfig(elementwise_workgroup_size=64, max_elementwise_workgroups=2)
    )
    cache = create_pipeline_cache(small_grid)
    data = rng.standard_normal(10_000).astype(np.float32)
    source = create_gpu_buffer_1d(device, data.size, data)
    target = create_gpu_buffer_1d(device, data.size)

    run_unary(cache, "abs", source, target)

    np.testing.assert_array_equal(gpu_to_numpy(target), np.abs(data))


def test_clamp_fill_copy(pipeline_cache, device) -> None:
    source = create_gpu_buffer_1d(device, 3, np.array([-5, 0.5, 5], dtype=np.float32))
    target = create_gpu_buffer_1d(device, 3)

    run_clamp(pipeline_cache, source, 0.0, 1.0, target)
    np.testing.assert_array_equal(gpu_to_numpy(target), [0.0, 0.5, 1.0])

    run_fill(pipeline_cache, target, 3.5)
    np.testing.assert_array_equal(gpu_to_numpy(target), [3.5, 3.5, 3.5])

    run_copy(pipeline_cache, source, target)
    np.testing.assert_array_equal(gpu_to_numpy(target), [-5.0, 0.5, 5.0])


def test_min_max_clamp_nan_match_numpy(pipeline_cache, device) -> None:
    a_data = np.array([np.nan, 1.0, np.nan], dtype=np.float32)
    b_data = np.array([2.0, np.nan, np.nan], dtype=np.float32)
    a = create_gpu_buffer_1d(device, 3, a_data)
    b = create_gpu_buffer_1d(device, 3, b_data)
    target = create_gpu_buffer_1d(device, 3)
    expected = np.empty(3, dtype=np.float32)

    for op in ("min", "max"):
        run_binary(pipeline_cache, op, a, b, target)
        nm.binary(op, a_data, b_data, expected)
        np.testing.assert_array_equal(gpu_to_numpy(target), expected)

    run_clamp(pipeline_cache, a, 0.0, 1.0, target)
    nm.clamp(a_data, 0.0, 1.0, expected)
    np.testing.assert_array_equal(gpu_to_numpy(target), expected)


def test_element_wise_size_mismatch(pipeline_cache, device) -> None:
    with pytest.raises(ValueError, match="size"):
        run_unary(
            pipeline_cache,
            "abs",
            create_gpu_buffer_1d(device, 4),
            create_gpu_buffer_1d(device, 5),
        )


def test_select(pipeline_cache, device) -> None:
    condition = create_gpu_buffer_1d(device, 3, np.array([1, 0, 1], dtype=np.float32))
    if_mat = create_gpu_buffer_1d(device, 3, np.array([10, 20, 30], dtype=np.float32))
    else_mat = create_gpu_buffer_1d(device, 3, np.array([100, 200, 300], dtype=np.float32))
    target = create_gpu_buffer_1d(device, 3)

    run_select(pipeline_cache, condition, if_mat, else_mat, target)

    np.testing.assert_array_equal(gpu_to_numpy(target), [10.0, 200.0, 30.0])


# ============================================================================
# BROADCAST
# ============================================================================


def test_broadcast_column_example(pipeline_cache, device) -> None:
    # Height 3, two columns [1, 2, 3] and [4, 5, 6]
    mat = _matrix(device, np.array([[1, 4], [2, 5], [3, 6]], dtype=np.float32))
    vec = create_gpu_buffer_1d(device, 3, np.ones(3, dtype=np.float32))
    target = create_gpu_buffer_2d(device, 3, 2)

    run_broadcast_column(pipeline_cache, "add", mat, vec, target)

    np.testing.assert_array_equal(gpu_to_numpy(target), [[2, 5], [3, 6], [4, 7]])


@pytest.mark.parametrize("op", sorted(nm.BROADCAST_OPS))
@pytest.mark.parametrize("axis", ["column", "row"])
def test_broadcast_matches_numpy(pipeline_cache, device, rng, op: str, axis: str) -> None:
    data = _signed(rng, (ROWS, COLS))
    vec_data = _signed(rng, ROWS if axis == "column" else COLS)
    mat = _matrix(device, data)
    vec = create_gpu_buffer_1d(device, vec_data.size, vec_data)

    # In place on the matrix
    if axis == "column":
        run_broadcast_column(pipeline_cache, op, mat, vec, mat, alpha=0.5)
        expected_fn = nm.broadcast_column
    else:
        run_broadcast_row(pipeline_cache, op, mat, vec, mat, alpha=0.5)
        expected_fn = nm.broadcast_row

    flat = nm.pack_matrix(data)
    expected_fn(op, flat, vec_data, flat, COLS, ROWS, alpha=0.5)
    np.testing.assert_allclose(
        gpu_to_numpy(mat), nm.unpack_matrix(flat, COLS, ROWS), rtol=1e-6
    )


# ============================================================================
# REDUCTIONS
# ============================================================================


@pytest.mark.parametrize(
    "op,expected", [("min", 1.0), ("argmin", 1.0), ("max", 9.0), ("argmax", 5.0)]
)
def test_reduce_columns_example(pipeline_cache, device, op: str, expected: float) -> None:
    column = np.array([[3], [1], [4], [1], [5], [9], [2], [6]], dtype=np.float32)
    target = create_gpu_buffer_1d(device, 1)

    run_reduce_columns(pipeline_cache, op, _matrix(device, column), target)

    assert gpu_to_numpy(target)[0] == expected


@pytest.mark.parametrize("op", nm.REDUCE_OPS)
def test_reduce_matches_numpy(pipeline_cache, device, rng, op: str) -> None:
    data = rng.standard_normal((ROWS, COLS)).astype(np.float32)
    data[5, :] = np.nan
    mat = _matrix(device, data)
    by_col = create_gpu_buffer_1d(device, COLS)
    by_row = create_gpu_buffer_1d(device, ROWS)

    run_reduce_columns(pipeline_cache, op, mat, by_col)
    run_reduce_rows(pipeline_cache, op, mat, by_row)

    flat = nm.pack_matrix(data)
    expected_col = np.empty(COLS, dtype=np.float32)
    expected_row = np.empty(ROWS, dtype=np.float32)
    nm.reduce_columns(op, flat, expected_col, COLS, ROWS)
    nm.reduce_rows(op, flat, expected_row, COLS, ROWS)
    np.testing.assert_array_equal(gpu_to_numpy(by_col), expected_col)
    np.testing.assert_array_equal(gpu_to_numpy(by_row), expected_row)


def test_reduce_rejects_wrong_target(pipeline_cache, device) -> None:
    mat = create_gpu_buffer_2d(device, 4, 3)
    with pytest.raises(ValueError, match="target"):
        run_reduce_columns(pipeline_cache, "max", mat, create_gpu_buffer_1d(device, 4))


def test_argmin_tie_across_lanes_reports_first(pipeline_cache, device) -> None:
    # Lane 1 sees row 33 before lane 2 sees row 2
    column = np.ones((64, 1), dtype=np.float32)
    column[33, 0] = -7.0
    column[2, 0] = -7.0
    target = create_gpu_buffer_1d(device, 1)

    run_reduce_columns(pipeline_cache, "argmin", _matrix(device, column), target)

    assert gpu_to_numpy(target)[0] == 2.0


@pytest.mark.parametrize("op", nm.REDUCE_OPS)
def test_reduce_loops_over_outputs_on_capped_grid(device, rng, op: str) -> None:
    small_grid = dataclasses.replace(
        device,
        config=GPUConfig(max_elementwise_workgroups=2, max_workgroups_per_dim=2),
    )
    cache = create_pipeline_cache(small_grid)
    data = rng.standard_normal((ROWS, COLS)).astype(np.float32)
    mat = _matrix(device, data)
    by_col = create_gpu_buffer_1d(device, COLS)
    by_row = create_gpu_buffer_1d(device, ROWS)

    run_reduce_columns(cache, op, mat, by_col)
    run_reduce_rows(cache, op, mat, by_row)

    flat = nm.pack_matrix(data)
    expected_col = np.empty(COLS, dtype=np.float32)
    expected_row = np.empty(ROWS, dtype=np.float32)
    nm.reduce_columns(op, flat, expected_col, COLS, ROWS)
    nm.reduce_rows(op, flat, expected_row, COLS, ROWS)
    np.testing.assert_array_equal(gpu_to_numpy(by_col), expected_col)
    np.testing.assert_array_equal(gpu_to_numpy(by_row), expected_row)


# ============================================================================
# TRANSPOSE
# ============================================================================


def test_transpose_is_involutive(pipeline_cache, device, rng) -> None:
    data = rng.standard_normal((ROWS, COLS)).astype(np.float32)
    source = _matrix(device, data)
    once = create_gpu_buffer_2d(device, COLS, ROWS)
    twice = create_gpu_buffer_2d(device, ROWS, COLS)

    run_transpose(pipeline_cache, source, once)
    run_transpose(pipeline_cache, once, twice)

    np.testing.assert_array_equal(gpu_to_numpy(once), data.T)
    np.testing.assert_array_equal(gpu_to_numpy(twice), data)


def test_transpose_rejects_aliasing(pipeline_cache, device) -> None:
    square = create_gpu_buffer_2d(device, 8, 8)
    with pytest.raises(ValueError, match="distinct"):
        run_transpose(pipeline_cache, square, square)


# ============================================================================
# ROW MOVEMENT
# ============================================================================


def test_row_slice_round_trip(pipeline_cache, device, rng) -> None:
    data = rng.standard_normal((ROWS, COLS)).astype(np.float32)
    start, end = 13, 50
    source = _matrix(device, data)
    block = create_gpu_buffer_2d(device, end - start, COLS)
    restored = create_gpu_buffer_2d(device, ROWS, COLS, np.zeros((ROWS, COLS), np.float32))

    run_get_row_slice(pipeline_cache, source, block, start, end)
    run_set_row_slice(pipeline_cache, block, restored, start, end)

    np.testing.assert_array_equal(gpu_to_numpy(block), data[start:end])
    out = gpu_to_numpy(restored)
    np.testing.assert_array_equal(out[start:end], data[start:end])
    np.testing.assert_array_equal(out[:start], 0.0)
    np.testing.assert_array_equal(out[end:], 0.0)


def test_row_slice_rejects_bad_range(pipeline_cache, device) -> None:
    source = create_gpu_buffer_2d(device, 10, 4)
    target = create_gpu_buffer_2d(device, 2, 4)
    with pytest.raises(ValueError, match="Invalid row range"):
        run_get_row_slice(pipeline_cache, source, target, 9, 11)


def test_select_rows_wraps_and_fills_nan(pipeline_cache, device) -> None:
    data = np.arange(15, dtype=np.float32).reshape(5, 3)
    index_data = np.array([-1, 5, -6, 0, 2.7], dtype=np.float32)
    target = create_gpu_buffer_2d(device, 5, 3)

    run_select_rows(
        pipeline_cache,
        _matrix(device, data),
        create_gpu_buffer_1d(device, 5, index_data),
        target,
    )

    out = gpu_to_numpy(target)
    np.testing.assert_array_equal(out[0], [12, 13, 14])
    assert np.isnan(out[1]).all()
    assert np.isnan(out[2]).all()
    np.testing.assert_array_equal(out[3], [0, 1, 2])
    np.testing.assert_array_equal(out[4], [6, 7, 8])


def test_gather_scatter_match_numpy(pipeline_cache, device, rng) -> None:
    data = rng.standard_normal((ROWS, COLS)).astype(np.float32)
    index_data = rng.integers(-ROWS - 5, ROWS + 5, size=100).astype(np.float32)
    indices = create_gpu_buffer_1d(device, index_data.size, index_data)
    picked = create_gpu_buffer_2d(device, index_data.size, COLS)

    run_select_rows(pipeline_cache, _matrix(device, data), indices, picked)

    flat = nm.pack_matrix(data)
    expected = np.empty(index_data.size * COLS, dtype=np.float32)
    nm.select_rows(flat, index_data, expected, COLS, ROWS)
    np.testing.assert_array_equal(
        gpu_to_numpy(picked), nm.unpack_matrix(expected, COLS, index_data.size)
    )

    # Distinct targets so the scatter result is fully determined
    unique_data = rng.permutation(ROWS)[:40].astype(np.float32)
    unique_data[::7] -= ROWS
    scatter_idx = create_gpu_buffer_1d(device, unique_data.size, unique_data)
    rows = rng.standard_normal((unique_data.size, COLS)).astype(np.float32)
    scattered = create_gpu_buffer_2d(device, ROWS, COLS, np.zeros((ROWS, COLS), np.float32))

    run_set_selected_rows(pipeline_cache, _matrix(device, rows), scatter_idx, scattered)

    expected = np.zeros(ROWS * COLS, dtype=np.float32)
    nm.set_selected_rows(nm.pack_matrix(rows), unique_data, expected, COLS, ROWS)
    np.testing.assert_array_equal(
        gpu_to_numpy(scattered), nm.unpack_matrix(expected, COLS, ROWS)
    )


def test_set_selected_rows_skips_invalid(pipeline_cache, device) -> None:
    rows = np.array([[1, 1], [2, 2], [3, 3]], dtype=np.float32)
    index_data = np.array([-1, 7, 0], dtype=np.float32)
    target = create_gpu_buffer_2d(device, 5, 2, np.zeros((5, 2), np.float32))

    run_set_selected_rows(
        pipeline_cache,
        _matrix(device, rows),
        create_gpu_buffer_1d(device, 3, index_data),
        target,
    )

    out = gpu_to_numpy(target)
    np.testing.assert_array_equal(out[4], [1, 1])
    np.testing.assert_array_equal(out[0], [3, 3])
    np.testing.assert_array_equal(out[1:4], 0.0)


def test_gather_scatter_loop_over_chunks_on_capped_grid(device, rng) -> None:
    small_grid = dataclasses.replace(
        device,
        config=GPUConfig(
            max_elementwise_workgroups=2, max_workgroups_per_dim=2, row_chunk_size=8
        ),
    )
    cache = create_pipeline_cache(small_grid)
    data = rng.standard_normal((ROWS, COLS)).astype(np.float32)
    order = rng.permutation(ROWS).astype(np.float32)
    indices = create_gpu_buffer_1d(device, ROWS, order)
    picked = create_gpu_buffer_2d(device, ROWS, COLS)
    restored = create_gpu_buffer_2d(device, ROWS, COLS)

    run_select_rows(cache, _matrix(device, data), indices, picked)
    run_set_selected_rows(cache, picked, indices, restored)

    np.testing.assert_array_equal(gpu_to_numpy(picked), data[order.astype(np.int64)])
    np.testing.assert_array_equal(gpu_to_numpy(restored), data)
