"""Broadcast, reduction and transpose operations"""

from .gpu_kernels_matrix import (
    get_broadcast_kernel_from_config,
    get_reduce_kernel_from_config,
    get_transpose_kernel_from_config,
)
from .gpu_ops import (
    dispatch_elementwise,
    dispatch_simple_compute,
    grid_size,
    pack_params,
    validate_buffer_shape_1d,
    validate_buffer_shape_2d,
    validate_matrix,
    validate_no_alias,
)
from .gpu_types import GPUBuffer1D, GPUBuffer2D, PipelineCache

# ============================================================================
# BROADCAST
# ============================================================================


def _run_broadcast(
    pipeline_cache: PipelineCache,
    op: str,
    axis: str,
    mat: GPUBuffer2D,
    vec: GPUBuffer1D,
    target: GPUBuffer2D,
    alpha: float,
) -> None:
    width, height = validate_matrix(mat, "mat")
    validate_buffer_shape_1d(vec, height if axis == "column" else width, "vec")
    validate_buffer_shape_2d(target, mat.shape, "target")

    config = pipeline_cache.device.config
    dispatch_elementwise(
        pipeline_cache,
        get_broadcast_kernel_from_config(config, op, axis),
        pack_params(mat.size, height, float(alpha)),
        [mat, vec],
        target,
    )


def run_broadcast_column(
    pipeline_cache: PipelineCache,
    op: str,
    mat: GPUBuffer2D,
    vec: GPUBuffer1D,
    target: GPUBuffer2D,
    alpha: float = 1.0,
) -> None:
    """Combine every column of mat with a column vector (mutation).

    target[row, col] = mat[row, col] op vec[row]; add_scaled uses
    mat + alpha * vec. target may be mat itself.

    This function MUTATES target. Returns None to signal mutation.

    Args:
        pipeline_cache: Pipeline cache for kernel compilation
        op: add, add_scaled, mul or div
        mat: Input matrix (rows, cols)
        vec: Column vector (rows,)
        target: Output matrix (rows, cols) (MUTATED)
        alpha: Scale for add_scaled

    Raises:
        ValueError: If op is unknown or shapes don't match
    """
    _run_broadcast(pipeline_cache, op, "column", mat, vec, target, alpha)


def run_broadcast_row(
    pipeline_cache: PipelineCache,
    op: str,
    mat: GPUBuffer2D,
    vec: GPUBuffer1D,
    target: GPUBuffer2D,
    alpha: float = 1.0,
) -> None:
    """Combine every row of mat with a row vector (mutation).

    target[row, col] = mat[row, col] op vec[col]. Same ops as
    run_broadcast_column; vec has one entry per column.

    This function MUTATES target. Returns None to signal mutation.

    Raises:
        ValueError: If op is unknown or shapes don't match
    """
    _run_broadcast(pipeline_cache, op, "row", mat, vec, target, alpha)


# ============================================================================
# REDUCTIONS
# ============================================================================


def _run_reduce(
    pipeline_cache: PipelineCache,
    op: str,
    axis: str,
    mat: GPUBuffer2D,
    target: GPUBuffer1D,
) -> None:
    width, height = validate_matrix(mat, "mat")
    n_out = width if axis == "columns" else height
    validate_buffer_shape_1d(target, n_out, "target")
    validate_no_alias(f"reduce_{axis}", [mat], target)

    config = pipeline_cache.device.config
    dispatch_simple_compute(
        pipeline_cache,
        get_reduce_kernel_from_config(config, op, axis),
        pack_params(width, height),
        [mat, target],
        min(n_out, config.max_workgroups_per_dim),
    )


def run_reduce_columns(
    pipeline_cache: PipelineCache, op: str, mat: GPUBuffer2D, target: GPUBuffer1D
) -> None:
    """Per-column min/max/argmin/argmax (mutation).

    target has one entry per column. Arg ops write the winning row index as
    a float; ties report the first occurrence and NaN is skipped.

    This function MUTATES target. Returns None to signal mutation.

    Args:
        pipeline_cache: Pipeline cache for kernel compilation
        op: min, max, argmin or argmax
        mat: Input matrix (rows, cols)
        target: Output vector (cols,) (MUTATED)

    Raises:
        ValueError: If op is unknown, shapes don't match or target aliases mat
    """
    _run_reduce(pipeline_cache, op, "columns", mat, target)


def run_reduce_rows(
    pipeline_cache: PipelineCache, op: str, mat: GPUBuffer2D, target: GPUBuffer1D
) -> None:
    """Per-row min/max/argmin/argmax (mutation).

    Same contract as run_reduce_columns with target of shape (rows,) and arg
    ops reporting column indices.
    """
    _run_reduce(pipeline_cache, op, "rows", mat, target)


# ============================================================================
# TRANSPOSE
# ============================================================================


def run_transpose(
    pipeline_cache: PipelineCache, source: GPUBuffer2D, target: GPUBuffer2D
) -> None:
    """Matrix transpose: target = source.T (mutation).

    This function MUTATES target. Returns None to signal mutation.

    Args:
        pipeline_cache: Pipeline cache for kernel compilation
        source: Input matrix (rows, cols)
        target: Output matrix (cols, rows) (MUTATED)

    Raises:
        ValueError: If shapes don't match or target aliases source
        NotImplementedError: If the tile grid exceeds device limits
    """
    width, height = validate_matrix(source, "source")
    validate_buffer_shape_2d(target, (width, height), "target")
    validate_no_alias("transpose", [source], target)

    config = pipeline_cache.device.config
    tile = config.transpose_tile_size

    dispatch_simple_compute(
        pipeline_cache,
        get_transpose_kernel_from_config(config),
        pack_params(width, height),
        [source, target],
        grid_size(height, tile),
        grid_size(width, tile),
    )
