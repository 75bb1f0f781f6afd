"""WGSL kernels - row slices, gather and scatter"""

from .gpu_kernels_elementwise import WGSL_MATH_HELPERS

# Index value -> row, or -1 when the row does not exist. Truncates toward
# zero, wraps negatives once. The magnitude test also rejects NaN.
WGSL_RESOLVE_ROW = """
fn resolve_row(value: f32, n_rows: u32) -> i32 {
    if (!(abs(value) < 2147483648.0)) {
        return -1;
    }
    let n = i32(n_rows);
    var row = i32(value);
    if (row < 0) {
        row += n;
    }
    if (row < 0 || row >= n) {
        return -1;
    }
    return row;
}
"""


def _check_chunk_size(chunk_size: int) -> None:
    if not 0 < chunk_size <= 256:
        raise ValueError(f"chunk_size must be in (0, 256], got {chunk_size}")


# ============================================================================
# ROW SLICE KERNELS
# ============================================================================


def create_get_row_slice_kernel(chunk_size: int = 32) -> str:
    """
    Generate kernel copying rows [start, end) of a matrix into a new matrix

    The grid is (ceil((end - start) / chunk), ceil(width / chunk)). Each lane
    owns one row of its chunk and walks the chunk's columns.

    Args:
        chunk_size: Rows and columns per chunk

    Returns:
        WGSL kernel source code as string

    Raises:
        ValueError: If chunk_size is invalid
    """
    _check_chunk_size(chunk_size)

    return f"""
struct RowSliceParams {{
    width: u32,
    height: u32,
    start: u32,
    end: u32,
}}

@group(0) @binding(0) var<uniform> params: RowSliceParams;
@group(0) @binding(1) var<storage, read> input: array<f32>;
@group(0) @binding(2) var<storage, read_write> output: array<f32>;

@compute @workgroup_size({chunk_size})
fn main(
    @builtin(local_invocation_id) local_id: vec3<u32>,
    @builtin(workgroup_id) group_id: vec3<u32>
) {{
    let slice_height = params.end - params.start;
    let row = params.start + group_id.x * {chunk_size}u + local_id.x;
    let col_begin = group_id.y * {chunk_size}u;
    let col_end = min(col_begin + {chunk_size}u, params.width);

    if (row < params.end) {{
        for (var col = col_begin; col < col_end; col++) {{
            output[col * slice_height + row - params.start] = input[col * params.height + row];
        }}
    }}
}}
"""


def create_set_row_slice_kernel(chunk_size: int = 32) -> str:
    """
    Generate kernel writing a matrix into rows [start, end) of another

    Same grid as the get kernel; input is width x (end - start), output is
    width x height.

    Args:
        chunk_size: Rows and columns per chunk

    Returns:
        WGSL kernel source code as string

    Raises:
        ValueError: If chunk_size is invalid
    """
    _check_chunk_size(chunk_size)

    return f"""
struct RowSliceParams {{
    width: u32,
    height: u32,
    start: u32,
    end: u32,
}}

@group(0) @binding(0) var<uniform> params: RowSliceParams;
@group(0) @binding(1) var<storage, read> input: array<f32>;
@group(0) @binding(2) var<storage, read_write> output: array<f32>;

@compute @workgroup_size({chunk_size})
fn main(
    @builtin(local_invocation_id) local_id: vec3<u32>,
    @builtin(workgroup_id) group_id: vec3<u32>
) {{
    let slice_height = params.end - params.start;
    let row = params.start + group_id.x * {chunk_size}u + local_id.x;
    let col_begin = group_id.y * {chunk_size}u;
    let col_end = min(col_begin + {chunk_size}u, params.width);

    if (row < params.end) {{
        for (var col = col_begin; col < col_end; col++) {{
            output[col * params.height + row] = input[col * slice_height + row - params.start];
        }}
    }}
}}
"""


# ============================================================================
# GATHER / SCATTER KERNELS
# ============================================================================


def create_select_rows_kernel(chunk_size: int = 32) -> str:
    """
    Generate row gather kernel: output row r = input row indices[r]

    Each workgroup resolves chunk_size indices into workgroup memory, then
    its lanes copy the selected rows column by column, round-robin.
    Invalid rows are filled with NaN.

    Args:
        chunk_size: Indices per workgroup

    Returns:
        WGSL kernel source code as string

    Raises:
        ValueError: If chunk_size is invalid
    """
    _check_chunk_size(chunk_size)

    return f"""
// Gather rows; {chunk_size} indices per workgroup

struct SelectRowsParams {{
    n_cols: u32,
    n_source_rows: u32,
    n_row_is: u32,
    pad0: u32,
}}

@group(0) @binding(0) var<uniform> params: SelectRowsParams;
@group(0) @binding(1) var<storage, read> input: array<f32>;
@group(0) @binding(2) var<storage, read> indices: array<f32>;
@group(0) @binding(3) var<storage, read_write> output: array<f32>;

var<workgroup> row_cache: array<i32, {chunk_size}>;
{WGSL_MATH_HELPERS}{WGSL_RESOLVE_ROW}
@compute @workgroup_size({chunk_size})
fn main(
    @builtin(local_invocation_id) local_id: vec3<u32>,
    @builtin(workgroup_id) group_id: vec3<u32>,
    @builtin(num_workgroups) num_groups: vec3<u32>
) {{
    let lane = local_id.x;
    let n_chunks = (params.n_row_is + {chunk_size}u - 1u) / {chunk_size}u;
    let nan_value = quiet_nan();

    for (var chunk = group_id.x; chunk < n_chunks; chunk += num_groups.x) {{
        let start = chunk * {chunk_size}u;
        let local_n = min({chunk_size}u, params.n_row_is - start);

        if (lane < local_n) {{
            row_cache[lane] = resolve_row(indices[start + lane], params.n_source_rows);
        }}

        workgroupBarrier();

        for (var r = 0u; r < local_n; r++) {{
            let row = row_cache[r];
            for (var col = lane; col < params.n_cols; col += {chunk_size}u) {{
                let dst = col * params.n_row_is + start + r;
                if (row < 0) {{
                    output[dst] = nan_value;
                }} else {{
                    output[dst] = input[col * params.n_source_rows + u32(row)];
                }}
            }}
        }}

        // row_cache is rewritten for the next chunk
        workgroupBarrier();
    }}
}}
"""


def create_set_selected_rows_kernel(chunk_size: int = 32) -> str:
    """
    Generate row scatter kernel: output row indices[r] = input row r

    Mirrors the gather kernel. Rows whose index does not resolve are
    skipped, leaving the output untouched.

    Args:
        chunk_size: Indices per workgroup

    Returns:
        WGSL kernel source code as string

    Raises:
        ValueError: If chunk_size is invalid
    """
    _check_chunk_size(chunk_size)

    return f"""
// Scatter rows; {chunk_size} indices per workgroup

struct SetSelectedRowsParams {{
    n_cols: u32,
    n_target_rows: u32,
    n_row_is: u32,
    pad0: u32,
}}

@group(0) @binding(0) var<uniform> params: SetSelectedRowsParams;
@group(0) @binding(1) var<storage, read> input: array<f32>;
@group(0) @binding(2) var<storage, read> indices: array<f32>;
@group(0) @binding(3) var<storage, read_write> output: array<f32>;

var<workgroup> row_cache: array<i32, {chunk_size}>;
{WGSL_RESOLVE_ROW}
@compute @workgroup_size({chunk_size})
fn main(
    @builtin(local_invocation_id) local_id: vec3<u32>,
    @builtin(workgroup_id) group_id: vec3<u32>,
    @builtin(num_workgroups) num_groups: vec3<u32>
) {{
    let lane = local_id.x;
    let n_chunks = (params.n_row_is + {chunk_size}u - 1u) / {chunk_size}u;

    for (var chunk = group_id.x; chunk < n_chunks; chunk += num_groups.x) {{
        let start = chunk * {chunk_size}u;
        let local_n = min({chunk_size}u, params.n_row_is - start);

        if (lane < local_n) {{
            row_cache[lane] = resolve_row(indices[start + lane], params.n_target_rows);
        }}

        workgroupBarrier();

        for (var r = 0u; r < local_n; r++) {{
            let row = row_cache[r];
            if (row >= 0) {{
                for (var col = lane; col < params.n_cols; col += {chunk_size}u) {{
                    output[col * params.n_target_rows + u32(row)] = input[col * params.n_row_is + start + r];
                }}
            }}
        }}

        workgroupBarrier();
    }}
}}
"""


# ============================================================================
# FACTORY FUNCTIONS - Generate kernels from config
# ============================================================================


def get_get_row_slice_kernel_from_config(config) -> str:
    """Get row slice read kernel configured from GPUConfig"""
    return create_get_row_slice_kernel(config.row_chunk_size)


def get_set_row_slice_kernel_from_config(config) -> str:
    """Get row slice write kernel configured from GPUConfig"""
    return create_set_row_slice_kernel(config.row_chunk_size)


def get_select_rows_kernel_from_config(config) -> str:
    """Get row gather kernel configured from GPUConfig"""
    return create_select_rows_kernel(config.row_chunk_size)


def get_set_selected_rows_kernel_from_config(config) -> str:
    """Get row scatter kernel configured from GPUConfig"""
    return create_set_selected_rows_kernel(config.row_chunk_size)
