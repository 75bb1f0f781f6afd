"""WGSL kernels - broadcast, reductions and transpose

All matrices are column-major: element (row, col) of a matrix with
`height` rows lives at col * height + row.
"""

from .gpu_kernels_elementwise import WGSL_MATH_HELPERS

# ============================================================================
# BROADCAST KERNELS
# ============================================================================

BROADCAST_EXPRESSIONS = {
    "add": "m + v",
    "add_scaled": "m + params.alpha * v",
    "mul": "m * v",
    "div": "m / v",
}

# Flat index -> vector index for each broadcast axis
BROADCAST_AXES = {
    "column": "i % params.height",
    "row": "i / params.height",
}


def create_broadcast_kernel(op: str, axis: str, workgroup_size: int = 256) -> str:
    """
    Generate matrix-vector broadcast kernel

    axis="column" combines every column with a vector of length height,
    axis="row" combines every row with a vector of length width.

    Args:
        op: Operation name (add, add_scaled, mul, div)
        axis: "column" or "row"
        workgroup_size: Number of threads per workgroup (64, 128, 256, 512, or 1024)

    Returns:
        WGSL kernel source code as string

    Raises:
        ValueError: If op, axis or workgroup_size is invalid
    """
    if op not in BROADCAST_EXPRESSIONS:
        raise ValueError(
            f"Unknown broadcast op '{op}'. Expected one of {sorted(BROADCAST_EXPRESSIONS)}"
        )

    if axis not in BROADCAST_AXES:
        raise ValueError(f"axis must be 'column' or 'row', got {axis!r}")

    if workgroup_size not in [64, 128, 256, 512, 1024]:
        raise ValueError(
            f"workgroup_size must be 64, 128, 256, 512, or 1024, got {workgroup_size}"
        )

    return f"""
// Broadcast {op} along {axis} vector

struct BroadcastParams {{
    size: u32,
    height: u32,
    alpha: f32,
    pad0: u32,
}}

@group(0) @binding(0) var<uniform> params: BroadcastParams;
@group(0) @binding(1) var<storage, read> matrix_in: array<f32>;
@group(0) @binding(2) var<storage, read> vector_in: array<f32>;
@group(0) @binding(3) var<storage, read_write> output: array<f32>;

@compute @workgroup_size({workgroup_size})
fn main(
    @builtin(global_invocation_id) global_id: vec3<u32>,
    @builtin(num_workgroups) num_groups: vec3<u32>
) {{
    let stride = num_groups.x * {workgroup_size}u;
    for (var i = global_id.x; i < params.size; i += stride) {{
        let m = matrix_in[i];
        let v = vector_in[{BROADCAST_AXES[axis]}];
        output[i] = {BROADCAST_EXPRESSIONS[op]};
    }}
}}
"""


# ============================================================================
# REDUCTION KERNELS
# ============================================================================

REDUCE_OPS = ("min", "max", "argmin", "argmax")


def create_reduce_kernel(op: str, axis: str, group_size: int = 32) -> str:
    """
    Generate min/max/argmin/argmax reduction along one matrix axis

    One workgroup of group_size lanes per output element; workgroups loop
    over outputs with stride num_workgroups. Lane l scans l, l + G, ...
    keeping the first strict best, then lane 0 merges the partials. On
    equal values the smaller index wins, so the first occurrence is
    reported. NaN never compares better and is skipped.

    axis="columns" writes one value per column (width outputs),
    axis="rows" one value per row (height outputs).

    Args:
        op: min, max, argmin or argmax
        axis: "columns" or "rows"
        group_size: Lanes per group (power of 2, at most 256)

    Returns:
        WGSL kernel source code as string

    Raises:
        ValueError: If op, axis or group_size is invalid
    """
    if op not in REDUCE_OPS:
        raise ValueError(f"Unknown reduce op '{op}'. Expected one of {list(REDUCE_OPS)}")

    if axis not in ("columns", "rows"):
        raise ValueError(f"axis must be 'columns' or 'rows', got {axis!r}")

    if group_size <= 0 or (group_size & (group_size - 1)) != 0 or group_size > 256:
        raise ValueError(f"group_size must be power of 2 up to 256, got {group_size}")

    is_min = op in ("min", "argmin")
    compare = "<" if is_min else ">"
    sentinel = "positive_infinity()" if is_min else "-positive_infinity()"
    result = "f32(merged_idx)" if op.startswith("arg") else "merged"

    if axis == "columns":
        n_out, n_axis = "params.width", "params.height"
        element = "input[out_i * params.height + k]"
    else:
        n_out, n_axis = "params.height", "params.width"
        element = "input[k * params.height + out_i]"

    return f"""
// Reduce {axis}: {op}
// Group size: {group_size}

struct ReduceParams {{
    width: u32,
    height: u32,
    pad0: u32,
    pad1: u32,
}}

@group(0) @binding(0) var<uniform> params: ReduceParams;
@group(0) @binding(1) var<storage, read> input: array<f32>;
@group(0) @binding(2) var<storage, read_write> output: array<f32>;

var<workgroup> lane_vals: array<f32, {group_size}>;
var<workgroup> lane_idxs: array<u32, {group_size}>;
{WGSL_MATH_HELPERS}
@compute @workgroup_size({group_size})
fn main(
    @builtin(local_invocation_id) local_id: vec3<u32>,
    @builtin(workgroup_id) group_id: vec3<u32>,
    @builtin(num_workgroups) num_groups: vec3<u32>
) {{
    let lane = local_id.x;
    let n_out = {n_out};
    let n_axis = {n_axis};
    let sentinel = {sentinel};

    for (var out_i = group_id.x; out_i < n_out; out_i += num_groups.x) {{
        var best = sentinel;
        var best_idx = lane;
        for (var k = lane; k < n_axis; k += {group_size}u) {{
            let v = {element};
            if (v {compare} best) {{
                best = v;
                best_idx = k;
            }}
        }}
        lane_vals[lane] = best;
        lane_idxs[lane] = best_idx;

        workgroupBarrier();

        if (lane == 0u) {{
            var merged = lane_vals[0];
            var merged_idx = lane_idxs[0];
            for (var l = 1u; l < {group_size}u; l++) {{
                let v = lane_vals[l];
                let idx = lane_idxs[l];
                if (v {compare} merged || (v == merged && idx < merged_idx)) {{
                    merged = v;
                    merged_idx = idx;
                }}
            }}
            output[out_i] = {result};
        }}

        // Partials are reused by the next output element
        workgroupBarrier();
    }}
}}
"""


# ============================================================================
# TRANSPOSE KERNEL
# ============================================================================


def create_transpose_kernel(tile_size: int = 32, block_rows: int = 8) -> str:
    """
    Generate matrix transpose kernel with bank conflict avoidance

    A (tile_size, block_rows) workgroup moves one tile_size x tile_size tile;
    each lane copies tile_size / block_rows elements on the way in and out.
    The workgroup array has one padding column per row.

    Args:
        tile_size: Tile dimension (power of 2, at most 32)
        block_rows: Workgroup rows (power of 2, at most tile_size)

    Returns:
        WGSL kernel source code as string

    Raises:
        ValueError: If tile_size or block_rows is invalid
    """
    if tile_size <= 0 or (tile_size & (tile_size - 1)) != 0:
        raise ValueError(f"tile_size must be power of 2, got {tile_size}")

    if tile_size > 32:
        raise ValueError(f"tile_size too large: {tile_size}. Maximum is 32.")

    if block_rows <= 0 or (block_rows & (block_rows - 1)) != 0 or block_rows > tile_size:
        raise ValueError(
            f"block_rows must be power of 2 no larger than tile_size, got {block_rows}"
        )

    # Add padding to avoid bank conflicts (tile_size + 1)
    padded_stride = tile_size + 1
    padded_size = tile_size * padded_stride

    return f"""
// Matrix transpose with bank conflict avoidance
// Tile size: {tile_size}x{tile_size}, block rows: {block_rows}
// input is width x height, output is height x width

struct TransposeParams {{
    width: u32,
    height: u32,
    pad0: u32,
    pad1: u32,
}}

@group(0) @binding(0) var<uniform> params: TransposeParams;
@group(0) @binding(1) var<storage, read> input: array<f32>;
@group(0) @binding(2) var<storage, read_write> output: array<f32>;

const TILE_SIZE: u32 = {tile_size}u;
const BLOCK_ROWS: u32 = {block_rows}u;
var<workgroup> tile: array<f32, {padded_size}>;

@compute @workgroup_size({tile_size}, {block_rows})
fn main(
    @builtin(local_invocation_id) local_id: vec3<u32>,
    @builtin(workgroup_id) group_id: vec3<u32>
) {{
    let tx = local_id.x;
    let ty = local_id.y;
    let row_base = group_id.x * TILE_SIZE;
    let col_base = group_id.y * TILE_SIZE;

    // Coalesced read down the input columns
    for (var j = 0u; j < TILE_SIZE; j += BLOCK_ROWS) {{
        let row = row_base + tx;
        let col = col_base + ty + j;
        if (row < params.height && col < params.width) {{
            tile[(ty + j) * {padded_stride}u + tx] = input[col * params.height + row];
        }}
    }}

    workgroupBarrier();

    // Coalesced write down the output columns
    for (var j = 0u; j < TILE_SIZE; j += BLOCK_ROWS) {{
        let col = col_base + tx;
        let row = row_base + ty + j;
        if (row < params.height && col < params.width) {{
            output[row * params.width + col] = tile[tx * {padded_stride}u + ty + j];
        }}
    }}
}}
"""


# ============================================================================
# FACTORY FUNCTIONS - Generate kernels from config
# ============================================================================


def get_broadcast_kernel_from_config(config, op: str, axis: str) -> str:
    """Get broadcast kernel configured from GPUConfig"""
    return create_broadcast_kernel(op, axis, config.elementwise_workgroup_size)


def get_reduce_kernel_from_config(config, op: str, axis: str) -> str:
    """Get reduction kernel configured from GPUConfig"""
    return create_reduce_kernel(op, axis, config.reduction_group_size)


def get_transpose_kernel_from_config(config) -> str:
    """Get transpose kernel configured from GPUConfig"""
    return create_transpose_kernel(
        config.transpose_tile_size, config.transpose_block_rows
    )
