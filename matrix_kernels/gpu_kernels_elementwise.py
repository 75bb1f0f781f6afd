"""WGSL kernels - element-wise, fill/copy and select"""

# ============================================================================
# SHARED WGSL HELPERS
# ============================================================================

# Lanczos approximation (g = 7, 9 terms), same coefficients as numpy_math
LANCZOS_COEFFS = (
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


def _lanczos_series() -> str:
    terms = [f"    var a = {LANCZOS_COEFFS[0]!r};"]
    for i, coeff in enumerate(LANCZOS_COEFFS[1:], start=1):
        terms.append(f"    a += {coeff!r} / (x + {i}.0);")
    return "\n".join(terms)


# Infinity is built from its bit pattern at runtime: WGSL has no inf literal
# and const-evaluated overflow is a compile error.
WGSL_MATH_HELPERS = f"""
fn positive_infinity() -> f32 {{
    var bits = 0x7f800000u;
    return bitcast<f32>(bits);
}}

fn quiet_nan() -> f32 {{
    let inf = positive_infinity();
    return inf - inf;
}}

// C powf conventions: x^0 = 1, 0^negative = inf, negative base needs an
// integral exponent (sign flips for odd exponents), otherwise NaN
fn pow_ieee(base: f32, e: f32) -> f32 {{
    if (e == 0.0 || base == 1.0) {{
        return 1.0;
    }}
    if (base == 0.0) {{
        if (e < 0.0) {{
            return positive_infinity();
        }}
        return 0.0;
    }}

    let magnitude = pow(abs(base), e);
    if (base > 0.0) {{
        return magnitude;
    }}
    if (e != trunc(e)) {{
        return quiet_nan();
    }}

    // Every float at or above 2^24 is an even integer
    let e_abs = abs(e);
    let odd = e_abs < 16777216.0 && (u32(e_abs) & 1u) == 1u;
    return select(magnitude, -magnitude, odd);
}}

// log(gamma(z)) for z >= 0.5
fn lanczos_lgamma(z: f32) -> f32 {{
    let x = z - 1.0;
{_lanczos_series()}
    let t = x + 7.5;
    return 0.91893853320467274 + (x + 0.5) * log(t) - t + log(a);
}}

fn lgamma_fn(x: f32) -> f32 {{
    let pi = 3.14159265358979;
    if (x < 0.5) {{
        return log(pi / abs(sin(pi * x))) - lanczos_lgamma(1.0 - x);
    }}
    return lanczos_lgamma(x);
}}

fn gamma_fn(x: f32) -> f32 {{
    let pi = 3.14159265358979;
    if (x < 0.5) {{
        return pi / (sin(pi * x) * exp(lanczos_lgamma(1.0 - x)));
    }}
    return exp(lanczos_lgamma(x));
}}
"""

# ============================================================================
# OPERATION TABLES
# ============================================================================

# Expressions over `a` (and `b` for binary/scalar ops)
UNARY_EXPRESSIONS = {
    "sign": "sign(a)",
    "abs": "abs(a)",
    "reciprocal": "1.0 / a",
    "sqrt": "sqrt(a)",
    "exp": "exp(a)",
    "log": "log(a)",
    "log1pexp": "select(log(1.0 + exp(a)), a + log(1.0 + exp(-a)), a > 0.0)",
    "gamma": "gamma_fn(a)",
    "lgamma": "lgamma_fn(a)",
    "sigmoid": "1.0 / (1.0 + exp(-a))",
    "tanh": "1.0 - 2.0 / (exp(2.0 * a) + 1.0)",
    "square": "a * a",
}

_COMMON_PAIR_EXPRESSIONS = {
    "lt": "select(0.0, 1.0, a < b)",
    "gt": "select(0.0, 1.0, a > b)",
    "eq": "select(0.0, 1.0, a == b)",
    "min": "min(a, b)",
    "max": "max(a, b)",
    "add": "a + b",
    "sub": "a - b",
    "mul": "a * b",
    "div": "a / b",
    "pow": "pow_ieee(a, b)",
}

BINARY_EXPRESSIONS = dict(
    _COMMON_PAIR_EXPRESSIONS,
    # a is the sigmoid output, b the incoming gradient
    sigmoid_grad="b * a * (1.0 - a)",
)

SCALAR_EXPRESSIONS = dict(
    _COMMON_PAIR_EXPRESSIONS,
    shrink="select(min(0.0, a + b), max(0.0, a - b), a > 0.0)",
)


def _check_workgroup_size(workgroup_size: int) -> None:
    if workgroup_size not in [64, 128, 256, 512, 1024]:
        raise ValueError(
            f"workgroup_size must be 64, 128, 256, 512, or 1024, got {workgroup_size}"
        )


def _lookup_expression(table: dict, op: str, kind: str) -> str:
    if op not in table:
        raise ValueError(f"Unknown {kind} op '{op}'. Expected one of {sorted(table)}")
    return table[op]


# ============================================================================
# ELEMENT-WISE KERNELS
# ============================================================================


def create_unary_kernel(op: str, workgroup_size: int = 256) -> str:
    """
    Generate unary element-wise kernel: output[i] = op(input[i])

    Args:
        op: Operation name (key of UNARY_EXPRESSIONS)
        workgroup_size: Number of threads per workgroup (64, 128, 256, 512, or 1024)

    Returns:
        WGSL kernel source code as string

    Raises:
        ValueError: If op or workgroup_size is invalid
    """
    expression = _lookup_expression(UNARY_EXPRESSIONS, op, "unary")
    _check_workgroup_size(workgroup_size)

    return f"""
// Unary element-wise: {op}
// Grid-stride loop, so any grid size covers every element

struct UnaryParams {{
    size: u32,
    pad0: u32,
    pad1: u32,
    pad2: u32,
}}

@group(0) @binding(0) var<uniform> params: UnaryParams;
@group(0) @binding(1) var<storage, read> input: array<f32>;
@group(0) @binding(2) var<storage, read_write> output: array<f32>;
{WGSL_MATH_HELPERS}
@compute @workgroup_size({workgroup_size})
fn main(
    @builtin(global_invocation_id) global_id: vec3<u32>,
    @builtin(num_workgroups) num_groups: vec3<u32>
) {{
    let stride = num_groups.x * {workgroup_size}u;
    for (var i = global_id.x; i < params.size; i += stride) {{
        let a = input[i];
        output[i] = {expression};
    }}
}}
"""


def create_binary_kernel(op: str, workgroup_size: int = 256) -> str:
    """
    Generate binary element-wise kernel: output[i] = op(input_a[i], input_b[i])

    Args:
        op: Operation name (key of BINARY_EXPRESSIONS)
        workgroup_size: Number of threads per workgroup (64, 128, 256, 512, or 1024)

    Returns:
        WGSL kernel source code as string

    Raises:
        ValueError: If op or workgroup_size is invalid
    """
    expression = _lookup_expression(BINARY_EXPRESSIONS, op, "binary")
    _check_workgroup_size(workgroup_size)

    return f"""
// Binary element-wise: {op}

struct BinaryParams {{
    size: u32,
    pad0: u32,
    pad1: u32,
    pad2: u32,
}}

@group(0) @binding(0) var<uniform> params: BinaryParams;
@group(0) @binding(1) var<storage, read> input_a: array<f32>;
@group(0) @binding(2) var<storage, read> input_b: array<f32>;
@group(0) @binding(3) var<storage, read_write> output: array<f32>;
{WGSL_MATH_HELPERS}
@compute @workgroup_size({workgroup_size})
fn main(
    @builtin(global_invocation_id) global_id: vec3<u32>,
    @builtin(num_workgroups) num_groups: vec3<u32>
) {{
    let stride = num_groups.x * {workgroup_size}u;
    for (var i = global_id.x; i < params.size; i += stride) {{
        let a = input_a[i];
        let b = input_b[i];
        output[i] = {expression};
    }}
}}
"""


def create_scalar_kernel(op: str, workgroup_size: int = 256) -> str:
    """
    Generate matrix-scalar kernel: output[i] = op(input[i], params.value)

    Args:
        op: Operation name (key of SCALAR_EXPRESSIONS)
        workgroup_size: Number of threads per workgroup (64, 128, 256, 512, or 1024)

    Returns:
        WGSL kernel source code as string

    Raises:
        ValueError: If op or workgroup_size is invalid
    """
    expression = _lookup_expression(SCALAR_EXPRESSIONS, op, "scalar")
    _check_workgroup_size(workgroup_size)

    return f"""
// Matrix-scalar element-wise: {op}

struct ScalarParams {{
    size: u32,
    value: f32,
    pad0: u32,
    pad1: u32,
}}

@group(0) @binding(0) var<uniform> params: ScalarParams;
@group(0) @binding(1) var<storage, read> input: array<f32>;
@group(0) @binding(2) var<storage, read_write> output: array<f32>;
{WGSL_MATH_HELPERS}
@compute @workgroup_size({workgroup_size})
fn main(
    @builtin(global_invocation_id) global_id: vec3<u32>,
    @builtin(num_workgroups) num_groups: vec3<u32>
) {{
    let stride = num_groups.x * {workgroup_size}u;
    let b = params.value;
    for (var i = global_id.x; i < params.size; i += stride) {{
        let a = input[i];
        output[i] = {expression};
    }}
}}
"""


def create_clamp_kernel(workgroup_size: int = 256) -> str:
    """Generate clamp kernel: output[i] = min(max(input[i], low), high)"""
    _check_workgroup_size(workgroup_size)

    return f"""
struct ClampParams {{
    size: u32,
    low: f32,
    high: f32,
    pad0: u32,
}}

@group(0) @binding(0) var<uniform> params: ClampParams;
@group(0) @binding(1) var<storage, read> input: array<f32>;
@group(0) @binding(2) var<storage, read_write> output: array<f32>;

@compute @workgroup_size({workgroup_size})
fn main(
    @builtin(global_invocation_id) global_id: vec3<u32>,
    @builtin(num_workgroups) num_groups: vec3<u32>
) {{
    let stride = num_groups.x * {workgroup_size}u;
    for (var i = global_id.x; i < params.size; i += stride) {{
        output[i] = min(max(input[i], params.low), params.high);
    }}
}}
"""


def create_fill_kernel(workgroup_size: int = 256) -> str:
    """
    Generate buffer fill kernel to set every element to a constant value

    Args:
        workgroup_size: Number of threads per workgroup (64, 128, 256, 512, or 1024)

    Returns:
        WGSL kernel source code as string

    Raises:
        ValueError: If workgroup_size is invalid
    """
    _check_workgroup_size(workgroup_size)

    return f"""
// Fill buffer with constant value

struct FillParams {{
    size: u32,
    value: f32,
    pad0: u32,
    pad1: u32,
}}

@group(0) @binding(0) var<uniform> params: FillParams;
@group(0) @binding(1) var<storage, read_write> output: array<f32>;

@compute @workgroup_size({workgroup_size})
fn main(
    @builtin(global_invocation_id) global_id: vec3<u32>,
    @builtin(num_workgroups) num_groups: vec3<u32>
) {{
    let stride = num_groups.x * {workgroup_size}u;
    for (var i = global_id.x; i < params.size; i += stride) {{
        output[i] = params.value;
    }}
}}
"""


def create_copy_kernel(workgroup_size: int = 256) -> str:
    """Generate copy kernel: output[i] = input[i]"""
    _check_workgroup_size(workgroup_size)

    return f"""
struct CopyParams {{
    size: u32,
    pad0: u32,
    pad1: u32,
    pad2: u32,
}}

@group(0) @binding(0) var<uniform> params: CopyParams;
@group(0) @binding(1) var<storage, read> input: array<f32>;
@group(0) @binding(2) var<storage, read_write> output: array<f32>;

@compute @workgroup_size({workgroup_size})
fn main(
    @builtin(global_invocation_id) global_id: vec3<u32>,
    @builtin(num_workgroups) num_groups: vec3<u32>
) {{
    let stride = num_groups.x * {workgroup_size}u;
    for (var i = global_id.x; i < params.size; i += stride) {{
        output[i] = input[i];
    }}
}}
"""


# ============================================================================
# SELECTION KERNEL
# ============================================================================


def create_select_kernel(workgroup_size: int = 256) -> str:
    """
    Generate ternary select kernel

    output[i] = if_mat[i] where condition[i] != 0 (NaN counts as true),
    else else_mat[i].

    Args:
        workgroup_size: Number of threads per workgroup (64, 128, 256, 512, or 1024)

    Returns:
        WGSL kernel source code as string

    Raises:
        ValueError: If workgroup_size is invalid
    """
    _check_workgroup_size(workgroup_size)

    return f"""
struct SelectParams {{
    size: u32,
    pad0: u32,
    pad1: u32,
    pad2: u32,
}}

@group(0) @binding(0) var<uniform> params: SelectParams;
@group(0) @binding(1) var<storage, read> condition: array<f32>;
@group(0) @binding(2) var<storage, read> if_mat: array<f32>;
@group(0) @binding(3) var<storage, read> else_mat: array<f32>;
@group(0) @binding(4) var<storage, read_write> output: array<f32>;

@compute @workgroup_size({workgroup_size})
fn main(
    @builtin(global_invocation_id) global_id: vec3<u32>,
    @builtin(num_workgroups) num_groups: vec3<u32>
) {{
    let stride = num_groups.x * {workgroup_size}u;
    for (var i = global_id.x; i < params.size; i += stride) {{
        output[i] = select(else_mat[i], if_mat[i], condition[i] != 0.0);
    }}
}}
"""


# ============================================================================
# FACTORY FUNCTIONS - Generate kernels from config
# ============================================================================


def get_unary_kernel_from_config(config, op: str) -> str:
    """Get unary kernel configured from GPUConfig"""
    return create_unary_kernel(op, config.elementwise_workgroup_size)


def get_binary_kernel_from_config(config, op: str) -> str:
    """Get binary kernel configured from GPUConfig"""
    return create_binary_kernel(op, config.elementwise_workgroup_size)


def get_scalar_kernel_from_config(config, op: str) -> str:
    """Get matrix-scalar kernel configured from GPUConfig"""
    return create_scalar_kernel(op, config.elementwise_workgroup_size)


def get_clamp_kernel_from_config(config) -> str:
    """Get clamp kernel configured from GPUConfig"""
    return create_clamp_kernel(config.elementwise_workgroup_size)


def get_fill_kernel_from_config(config) -> str:
    """Get fill kernel configured from GPUConfig"""
    return create_fill_kernel(config.elementwise_workgroup_size)


def get_copy_kernel_from_config(config) -> str:
    """Get copy kernel configured from GPUConfig"""
    return create_copy_kernel(config.elementwise_workgroup_size)


def get_select_kernel_from_config(config) -> str:
    """Get select kernel configured from GPUConfig"""
    return create_select_kernel(config.elementwise_workgroup_size)
