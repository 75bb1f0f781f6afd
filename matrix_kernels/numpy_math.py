"""CPU reference backend - numpy implementations of the matrix kernels.

All operations work on caller-owned flat float32 buffers. Matrices are
column-major: element (row, col) of a width x height matrix lives at
col * height + row. Nothing here allocates a caller-visible buffer; every
operation writes into the target it is given.
"""

import math

import numpy as np

DEFAULT_NUM_LANES = 64
DEFAULT_GROUP_SIZE = 32

# ==============================================================================
# LAYOUT HELPERS
# ==============================================================================


def pack_matrix(matrix):
    """Flatten a 2-D (height, width) array into a column-major float32 buffer."""
    matrix = np.asarray(matrix, dtype=np.float32)
    if matrix.ndim != 2:
        raise ValueError(f"Expected a 2-D array, got shape {matrix.shape}")
    return np.ravel(matrix, order="F").copy()


def unpack_matrix(buffer, width, height):
    """Writable (height, width) view over a column-major buffer (no copy)."""
    if buffer.size < width * height:
        raise ValueError(
            f"Buffer of {buffer.size} elements is too small for {width}x{height}"
        )
    return buffer[: width * height].reshape((height, width), order="F")


def grid_stride_lanes(n, num_lanes):
    """Yield the strided index subsets lane 0..num_lanes-1 would process."""
    if num_lanes <= 0:
        raise ValueError(f"num_lanes must be positive, got {num_lanes}")
    for lane in range(min(num_lanes, n)):
        yield slice(lane, n, num_lanes)


def _check_same_size(name, buffer, size):
    if buffer.size != size:
        raise ValueError(f"{name} size mismatch: got {buffer.size}, expected {size}")


def _check_matrix(name, buffer, width, height):
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid matrix dimensions for {name}: {width}x{height}")
    if buffer.size < width * height:
        raise ValueError(
            f"{name} holds {buffer.size} elements, needs {width * height} "
            f"for {width}x{height}"
        )


def _check_distinct(op_name, source, target):
    if np.shares_memory(source, target):
        raise ValueError(f"{op_name} requires distinct source and target buffers")


def _map_lanes(fn, inputs, target, num_lanes):
    n = target.size
    with np.errstate(all="ignore"):
        for lanes in grid_stride_lanes(n, num_lanes):
            target[lanes] = fn(*(x[lanes] for x in inputs))


# ==============================================================================
# SCALAR MATH
# ==============================================================================

_LANCZOS_G = 7.0
_LANCZOS_COEFFS = (
    0.99999999999980993,
    676.5203681218851,
    -1259.1392167224028,
    771.32342877765313,
    -176.61502916214059,
    12.507343278686905,
    -0.13857109526572012,
    9.9843695780195716e-6,
    1.5056327351493116e-7,
)


def _lanczos_lgamma_positive(x):
    # Valid for x >= 0.5
    x = x - 1.0
    a = np.full_like(x, _LANCZOS_COEFFS[0])
    for i in range(1, len(_LANCZOS_COEFFS)):
        a = a + _LANCZOS_COEFFS[i] / (x + i)
    t = x + _LANCZOS_G + 0.5
    return 0.5 * math.log(2.0 * math.pi) + (x + 0.5) * np.log(t) - t + np.log(a)


def lgamma(x):
    """log|gamma(x)| via Lanczos, with reflection below 0.5."""
    x = np.asarray(x, dtype=np.float64)
    reflected = x < 0.5
    safe = np.where(reflected, 1.0 - x, x)
    result = _lanczos_lgamma_positive(safe)
    reflection = np.log(np.pi / np.abs(np.sin(np.pi * x))) - result
    return np.where(reflected, reflection, result).astype(np.float32)


def gamma(x):
    """gamma(x) via Lanczos, with reflection below 0.5."""
    x = np.asarray(x, dtype=np.float64)
    reflected = x < 0.5
    safe = np.where(reflected, 1.0 - x, x)
    direct = np.exp(_lanczos_lgamma_positive(safe))
    reflection = np.pi / (np.sin(np.pi * x) * direct)
    return np.where(reflected, reflection, direct).astype(np.float32)


def log1pexp(x):
    return np.where(x > 0, x + np.log(1.0 + np.exp(-x)), np.log(1.0 + np.exp(x)))


def sigmoid(x):
    return 1.0 / (1.0 + np.exp(-x))


def tanh(x):
    return 1.0 - 2.0 / (np.exp(2.0 * x) + 1.0)


def shrink(x, alpha):
    return np.where(x > 0, np.fmax(0.0, x - alpha), np.fmin(0.0, x + alpha))


def _as_flag(condition):
    return condition.astype(np.float32)


UNARY_OPS = {
    "sign": np.sign,
    "abs": np.abs,
    "reciprocal": lambda x: 1.0 / x,
    "sqrt": np.sqrt,
    "exp": np.exp,
    "log": np.log,
    "log1pexp": log1pexp,
    "gamma": gamma,
    "lgamma": lgamma,
    "sigmoid": sigmoid,
    "tanh": tanh,
    "square": lambda x: x * x,
}

BINARY_OPS = {
# min and max return the non-NaN operand, like the WGSL builtins
    "lt": lambda a, b: _as_flag(a < b),
    "gt": lambda a, b: _as_flag(a > b),
    "eq": lambda a, b: _as_flag(a == b),
    "min": np.fmin,
    "max": np.fmax,
    "add": np.add,
    "sub": np.subtract,
    "mul": np.multiply,
    "div": np.divide,
    "pow": np.power,
    "sigmoid_grad": lambda y, dy: dy * y * (1.0 - y),
}

SCALAR_OPS = {
    "lt": lambda x, v: _as_flag(x < v),
    "gt": lambda x, v: _as_flag(x > v),
    "eq": lambda x, v: _as_flag(x == v),
    "min": np.fmin,
    "max": np.fmax,
    "add": np.add,
    "sub": np.subtract,
    "mul": np.multiply,
    "div": np.divide,
    "pow": np.power,
    "shrink": shrink,
}

BROADCAST_OPS = {
    "add": lambda m, v, alpha: m + v,
    "add_scaled": lambda m, v, alpha: m + alpha * v,
    "mul": lambda m, v, alpha: m * v,
    "div": lambda m, v, alpha: m / v,
}

REDUCE_OPS = ("min", "max", "argmin", "argmax")


def _lookup(table, op, kind):
    if op not in table:
        raise ValueError(f"Unknown {kind} op '{op}'. Expected one of {sorted(table)}")
    return table[op]


# ==============================================================================
# ELEMENT-WISE ENGINE
# ==============================================================================


def unary(op, source, target, num_lanes=DEFAULT_NUM_LANES):
    """target[i] = op(source[i])"""
    fn = _lookup(UNARY_OPS, op, "unary")
    _check_same_size("source", source, target.size)
    _map_lanes(fn, [source], target, num_lanes)


def binary(op, a, b, target, num_lanes=DEFAULT_NUM_LANES):
    """target[i] = op(a[i], b[i])"""
    fn = _lookup(BINARY_OPS, op, "binary")
    _check_same_size("a", a, target.size)
    _check_same_size("b", b, target.size)
    _map_lanes(fn, [a, b], target, num_lanes)


def scalar(op, source, value, target, num_lanes=DEFAULT_NUM_LANES):
    """target[i] = op(source[i], value)"""
    fn = _lookup(SCALAR_OPS, op, "scalar")
    _check_same_size("source", source, target.size)
    value = np.float32(value)
    _map_lanes(lambda x: fn(x, value), [source], target, num_lanes)


def clamp(source, low, high, target, num_lanes=DEFAULT_NUM_LANES):
    _check_same_size("source", source, target.size)
    low, high = np.float32(low), np.float32(high)
    _map_lanes(
        lambda x: np.fmin(np.fmax(x, low), high), [source], target, num_lanes
    )


def fill(target, value, num_lanes=DEFAULT_NUM_LANES):
    value = np.float32(value)
    for lanes in grid_stride_lanes(target.size, num_lanes):
        target[lanes] = value


def copy(source, target, num_lanes=DEFAULT_NUM_LANES):
    _check_same_size("source", source, target.size)
    _map_lanes(lambda x: x, [source], target, num_lanes)


# ==============================================================================
# SELECTION ENGINE
# ==============================================================================


def select(condition, if_mat, else_mat, target, num_lanes=DEFAULT_NUM_LANES):
    """target[i] = if_mat[i] where condition[i] is nonzero, else else_mat[i]"""
    for name, buffer in (("condition", condition), ("if_mat", if_mat), ("else_mat", else_mat)):
        _check_same_size(name, buffer, target.size)
    _map_lanes(
        lambda c, x, y: np.where(c != 0, x, y),
        [condition, if_mat, else_mat],
        target,
        num_lanes,
    )


# ==============================================================================
# BROADCAST ENGINE
# ==============================================================================


def _broadcast(op, mat, vec, target, width, height, alpha, vector_index, num_lanes):
    fn = _lookup(BROADCAST_OPS, op, "broadcast")
    _check_matrix("mat", mat, width, height)
    _check_matrix("target", target, width, height)
    n = width * height
    alpha = np.float32(alpha)
    flat_index = np.arange(n)
    with np.errstate(all="ignore"):
        for lanes in grid_stride_lanes(n, num_lanes):
            target[lanes] = fn(mat[lanes], vec[vector_index(flat_index[lanes])], alpha)


def broadcast_column(
    op, mat, vec, target, width, height, alpha=1.0, num_lanes=DEFAULT_NUM_LANES
):
    """Combine every column of mat with the column vector vec (length height)."""
    _check_same_size("vec", vec, height)
    _broadcast(
        op, mat, vec, target, width, height, alpha, lambda i: i % height, num_lanes
    )


def broadcast_row(
    op, mat, vec, target, width, height, alpha=1.0, num_lanes=DEFAULT_NUM_LANES
):
    """Combine every row of mat with the row vector vec (length width)."""
    _check_same_size("vec", vec, width)
    _broadcast(
        op, mat, vec, target, width, height, alpha, lambda i: i // height, num_lanes
    )


# ==============================================================================
# REDUCTION ENGINE
# ==============================================================================


def _reduce_axis(op, lines, group_size):
    """Two-level reduction over axis 1 of `lines` (n_out, n_axis).

    Lane l scans l, l+G, ... keeping the first strict best; lane partials are
    then merged preferring the smaller index on equal values.
    """
    if op not in REDUCE_OPS:
        raise ValueError(f"Unknown reduce op '{op}'. Expected one of {list(REDUCE_OPS)}")
    if group_size <= 0:
        raise ValueError(f"group_size must be positive, got {group_size}")

    is_min = op in ("min", "argmin")
    sentinel = np.float32(np.inf if is_min else -np.inf)
    n_out, n_axis = lines.shape

    # NaN never beats the running best, so it behaves like the sentinel
    scanned = np.where(np.isnan(lines), sentinel, lines)

    partial_vals = np.full((group_size, n_out), sentinel, dtype=np.float32)
    partial_idxs = np.tile(np.arange(group_size)[:, None], (1, n_out))
    for lane in range(min(group_size, n_axis)):
        strided = scanned[:, lane::group_size]
        pick = np.argmin(strided, axis=1) if is_min else np.argmax(strided, axis=1)
        best = strided[np.arange(n_out), pick]
        improved = best < sentinel if is_min else best > sentinel
        partial_vals[lane] = np.where(improved, best, sentinel)
        partial_idxs[lane] = np.where(improved, lane + pick * group_size, lane)

    merged = partial_vals.min(axis=0) if is_min else partial_vals.max(axis=0)
    candidates = np.where(
        partial_vals == merged[None, :], partial_idxs, np.iinfo(np.int64).max
    )
    merged_idx = candidates.min(axis=0)

    if op.startswith("arg"):
        return merged_idx.astype(np.float32)
    return merged


def reduce_columns(op, mat, target, width, height, group_size=DEFAULT_GROUP_SIZE):
    """One min/max/argmin/argmax per column, written to target (length width)."""
    _check_matrix("mat", mat, width, height)
    _check_same_size("target", target, width)
    _check_distinct("reduce_columns", mat, target)
    view = unpack_matrix(mat, width, height)
    target[:] = _reduce_axis(op, view.T, group_size)


def reduce_rows(op, mat, target, width, height, group_size=DEFAULT_GROUP_SIZE):
    """One min/max/argmin/argmax per row, written to target (length height)."""
    _check_matrix("mat", mat, width, height)
    _check_same_size("target", target, height)
    _check_distinct("reduce_rows", mat, target)
    view = unpack_matrix(mat, width, height)
    target[:] = _reduce_axis(op, view, group_size)


# ==============================================================================
# TRANSPOSE ENGINE
# ==============================================================================


def transpose(source, target, width, height):
    """target (height x width) = source (width x height) transposed."""
    _check_matrix("source", source, width, height)
    _check_matrix("target", target, height, width)
    _check_distinct("transpose", source, target)
    unpack_matrix(target, height, width)[:] = unpack_matrix(source, width, height).T


# ==============================================================================
# ROW MOVEMENT ENGINE
# ==============================================================================


def _check_row_range(start, end, height):
    if not 0 <= start < end <= height:
        raise ValueError(
            f"Invalid row range [{start}, {end}) for a matrix with {height} rows"
        )


def get_row_slice(source, target, start, end, width, height):
    """Copy rows [start, end) of source into target (width x (end-start))."""
    _check_row_range(start, end, height)
    _check_matrix("source", source, width, height)
    _check_matrix("target", target, width, end - start)
    _check_distinct("get_row_slice", source, target)
    unpack_matrix(target, width, end - start)[:] = unpack_matrix(
        source, width, height
    )[start:end]


def set_row_slice(source, target, start, end, width, height):
    """Copy source (width x (end-start)) into rows [start, end) of target."""
    _check_row_range(start, end, height)
    _check_matrix("source", source, width, end - start)
    _check_matrix("target", target, width, height)
    _check_distinct("set_row_slice", source, target)
    unpack_matrix(target, width, height)[start:end] = unpack_matrix(
        source, width, end - start
    )


def resolve_row_indices(indices, n_rows):
    """Truncate, wrap negatives once, and mark out-of-range rows as -1."""
    with np.errstate(invalid="ignore"):
        resolved = np.trunc(np.nan_to_num(indices, nan=-np.inf)).astype(np.float64)
    resolved = np.where(resolved < 0, resolved + n_rows, resolved)
    valid = (resolved >= 0) & (resolved < n_rows)
    return np.where(valid, resolved, -1).astype(np.int64)


def select_rows(source, indices, target, n_cols, n_source_rows):
    """Gather: target row r = source row indices[r]; invalid rows become NaN."""
    n_row_is = indices.size
    _check_matrix("source", source, n_cols, n_source_rows)
    _check_matrix("target", target, n_cols, n_row_is)
    _check_distinct("select_rows", source, target)

    rows = resolve_row_indices(indices, n_source_rows)
    src = unpack_matrix(source, n_cols, n_source_rows)
    dst = unpack_matrix(target, n_cols, n_row_is)
    valid = rows >= 0
    dst[valid] = src[rows[valid]]
    with np.errstate(invalid="ignore"):
        dst[~valid] = np.float32(np.inf) - np.float32(np.inf)


def set_selected_rows(source, indices, target, n_cols, n_target_rows):
    """Scatter: target row indices[r] = source row r; invalid targets are skipped."""
    n_row_is = indices.size
    _check_matrix("source", source, n_cols, n_row_is)
    _check_matrix("target", target, n_cols, n_target_rows)
    _check_distinct("set_selected_rows", source, target)

    rows = resolve_row_indices(indices, n_target_rows)
    src = unpack_matrix(source, n_cols, n_row_is)
    dst = unpack_matrix(target, n_cols, n_target_rows)
    valid = rows >= 0
    dst[rows[valid]] = src[valid]
