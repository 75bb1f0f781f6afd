"""Row movement operations - slices, gather and scatter"""

from .gpu_kernels_rows import (
    get_get_row_slice_kernel_from_config,
    get_select_rows_kernel_from_config,
    get_set_row_slice_kernel_from_config,
    get_set_selected_rows_kernel_from_config,
)
from .gpu_ops import (
    dispatch_simple_compute,
    grid_size,
    pack_params,
    validate_buffer_shape_1d,
    validate_buffer_shape_2d,
    validate_matrix,
    validate_no_alias,
)
from .gpu_types import GPUBuffer1D, GPUBuffer2D, PipelineCache


def validate_row_range(start: int, end: int, height: int) -> None:
    """
    Raises:
        ValueError: Unless 0 <= start < end <= height
    """
    if not 0 <= start < end <= height:
        raise ValueError(
            f"Invalid row range [{start}, {end}) for a matrix with {height} rows"
        )


# ============================================================================
# ROW SLICES
# ============================================================================


def run_get_row_slice(
    pipeline_cache: PipelineCache,
    source: GPUBuffer2D,
    target: GPUBuffer2D,
    start: int,
    end: int,
) -> None:
    """Copy rows [start, end) of source into target (mutation).

    This function MUTATES target. Returns None to signal mutation.

    Args:
        pipeline_cache: Pipeline cache for kernel compilation
        source: Input matrix (rows, cols)
        target: Output matrix (end - start, cols) (MUTATED)
        start: First row, inclusive
        end: Last row, exclusive

    Raises:
        ValueError: If the range or shapes are invalid, or target aliases source
        NotImplementedError: If the chunk grid exceeds device limits
    """
    width, height = validate_matrix(source, "source")
    validate_row_range(start, end, height)
    validate_buffer_shape_2d(target, (end - start, width), "target")
    validate_no_alias("get_row_slice", [source], target)

    config = pipeline_cache.device.config
    chunk = config.row_chunk_size

    dispatch_simple_compute(
        pipeline_cache,
        get_get_row_slice_kernel_from_config(config),
        pack_params(width, height, start, end),
        [source, target],
        grid_size(end - start, chunk),
        grid_size(width, chunk),
    )


def run_set_row_slice(
    pipeline_cache: PipelineCache,
    source: GPUBuffer2D,
    target: GPUBuffer2D,
    start: int,
    end: int,
) -> None:
    """Write source into rows [start, end) of target (mutation).

    Rows outside the range are left untouched.
    This function MUTATES target. Returns None to signal mutation.

    Args:
        pipeline_cache: Pipeline cache for kernel compilation
        source: Input matrix (end - start, cols)
        target: Output matrix (rows, cols) (MUTATED)
        start: First row, inclusive
        end: Last row, exclusive

    Raises:
        ValueError: If the range or shapes are invalid, or target aliases source
        NotImplementedError: If the chunk grid exceeds device limits
    """
    width, height = validate_matrix(target, "target")
    validate_row_range(start, end, height)
    validate_buffer_shape_2d(source, (end - start, width), "source")
    validate_no_alias("set_row_slice", [source], target)

    config = pipeline_cache.device.config
    chunk = config.row_chunk_size

    dispatch_simple_compute(
        pipeline_cache,
        get_set_row_slice_kernel_from_config(config),
        pack_params(width, height, start, end),
        [source, target],
        grid_size(end - start, chunk),
        grid_size(width, chunk),
    )


# ============================================================================
# GATHER / SCATTER
# ============================================================================


def run_select_rows(
    pipeline_cache: PipelineCache,
    source: GPUBuffer2D,
    indices: GPUBuffer1D,
    target: GPUBuffer2D,
) -> None:
    """Gather rows: target row r = source row indices[r] (mutation).

    Indices are floats truncated toward zero; negative values count from the
    end once. Rows whose index is still out of range are filled with NaN.

    This function MUTATES target. Returns None to signal mutation.

    Args:
        pipeline_cache: Pipeline cache for kernel compilation
        source: Input matrix (n_source_rows, n_cols)
        indices: Row indices (n_row_is,)
        target: Output matrix (n_row_is, n_cols) (MUTATED)

    Raises:
        ValueError: If shapes don't match or target aliases an input
    """
    n_cols, n_source_rows = validate_matrix(source, "source")
    n_row_is = indices.size
    validate_buffer_shape_1d(indices, n_row_is, "indices")
    validate_buffer_shape_2d(target, (n_row_is, n_cols), "target")
    validate_no_alias("select_rows", [source, indices], target)

    config = pipeline_cache.device.config

    dispatch_simple_compute(
        pipeline_cache,
        get_select_rows_kernel_from_config(config),
        pack_params(n_cols, n_source_rows, n_row_is),
        [source, indices, target],
        min(grid_size(n_row_is, config.row_chunk_size), config.max_workgroups_per_dim),
    )


def run_set_selected_rows(
    pipeline_cache: PipelineCache,
    source: GPUBuffer2D,
    indices: GPUBuffer1D,
    target: GPUBuffer2D,
) -> None:
    """Scatter rows: target row indices[r] = source row r (mutation).

    Index resolution matches run_select_rows. Source rows whose index does
    not resolve are dropped. With duplicate indices the surviving row is
    unspecified.

    This function MUTATES target. Returns None to signal mutation.

    Args:
        pipeline_cache: Pipeline cache for kernel compilation
        source: Input matrix (n_row_is, n_cols)
        indices: Row indices (n_row_is,)
        target: Output matrix (n_target_rows, n_cols) (MUTATED)

    Raises:
        ValueError: If shapes don't match or target aliases an input
    """
    n_cols, n_row_is = validate_matrix(source, "source")
    validate_buffer_shape_1d(indices, n_row_is, "indices")
    target_cols, n_target_rows = validate_matrix(target, "target")
    if target_cols != n_cols:
        raise ValueError(
            f"target has {target_cols} columns, source has {n_cols}"
        )
    validate_no_alias("set_selected_rows", [source, indices], target)

    config = pipeline_cache.device.config

    dispatch_simple_compute(
        pipeline_cache,
        get_set_selected_rows_kernel_from_config(config),
        pack_params(n_cols, n_target_rows, n_row_is),
        [source, indices, target],
        min(grid_size(n_row_is, config.row_chunk_size), config.max_workgroups_per_dim),
    )
