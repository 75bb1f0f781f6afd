"""Element-wise operations - individual kernel dispatches"""

from .gpu_kernels_elementwise import (
    get_binary_kernel_from_config,
    get_clamp_kernel_from_config,
    get_copy_kernel_from_config,
    get_fill_kernel_from_config,
    get_scalar_kernel_from_config,
    get_select_kernel_from_config,
    get_unary_kernel_from_config,
)
from .gpu_ops import (
    dispatch_elementwise,
    dispatch_simple_compute,
    elementwise_workgroups,
    pack_params,
    validate_same_size,
)
from .gpu_types import GPUBufferAny, PipelineCache

# ============================================================================
# ELEMENT-WISE OPERATIONS
# ============================================================================


def run_unary(
    pipeline_cache: PipelineCache,
    op: str,
    source: GPUBufferAny,
    target: GPUBufferAny,
) -> None:
    """Unary element-wise operation: target[i] = op(source[i]) (mutation).

    target may be source itself.
    This function MUTATES target. Returns None to signal mutation.

    Args:
        pipeline_cache: Pipeline cache for kernel compilation
        op: sign, abs, reciprocal, sqrt, exp, log, log1pexp, gamma, lgamma,
            sigmoid, tanh or square
        source: Input buffer
        target: Output buffer (MUTATED)

    Raises:
        ValueError: If op is unknown or sizes don't match
    """
    size = validate_same_size([source, target], ["source", "target"])
    config = pipeline_cache.device.config

    dispatch_elementwise(
        pipeline_cache,
        get_unary_kernel_from_config(config, op),
        pack_params(size),
        [source],
        target,
    )


def run_binary(
    pipeline_cache: PipelineCache,
    op: str,
    a: GPUBufferAny,
    b: GPUBufferAny,
    target: GPUBufferAny,
) -> None:
    """Binary element-wise operation: target[i] = op(a[i], b[i]) (mutation).

    Comparisons write 1.0 / 0.0. sigmoid_grad takes the sigmoid output as a
    and the incoming gradient as b. target may alias a or b.

    This function MUTATES target. Returns None to signal mutation.

    Raises:
        ValueError: If op is unknown or sizes don't match
    """
    size = validate_same_size([a, b, target], ["a", "b", "target"])
    config = pipeline_cache.device.config

    dispatch_elementwise(
        pipeline_cache,
        get_binary_kernel_from_config(config, op),
        pack_params(size),
        [a, b],
        target,
    )


def run_scalar(
    pipeline_cache: PipelineCache,
    op: str,
    source: GPUBufferAny,
    value: float,
    target: GPUBufferAny,
) -> None:
    """Matrix-scalar operation: target[i] = op(source[i], value) (mutation).

    This function MUTATES target. Returns None to signal mutation.

    Raises:
        ValueError: If op is unknown or sizes don't match
    """
    size = validate_same_size([source, target], ["source", "target"])
    config = pipeline_cache.device.config

    dispatch_elementwise(
        pipeline_cache,
        get_scalar_kernel_from_config(config, op),
        pack_params(size, float(value)),
        [source],
        target,
    )


def run_clamp(
    pipeline_cache: PipelineCache,
    source: GPUBufferAny,
    low: float,
    high: float,
    target: GPUBufferAny,
) -> None:
    """Clamp every element to [low, high] (mutation)."""
    size = validate_same_size([source, target], ["source", "target"])
    config = pipeline_cache.device.config

    dispatch_elementwise(
        pipeline_cache,
        get_clamp_kernel_from_config(config),
        pack_params(size, float(low), float(high)),
        [source],
        target,
    )


def run_fill(pipeline_cache: PipelineCache, target: GPUBufferAny, value: float) -> None:
    """Set every element of target to value (mutation)."""
    config = pipeline_cache.device.config

    dispatch_simple_compute(
        pipeline_cache,
        get_fill_kernel_from_config(config),
        pack_params(target.size, float(value)),
        [target],
        elementwise_workgroups(pipeline_cache, target.size),
    )


def run_copy(
    pipeline_cache: PipelineCache, source: GPUBufferAny, target: GPUBufferAny
) -> None:
    """Copy source into target element by element (mutation)."""
    size = validate_same_size([source, target], ["source", "target"])
    config = pipeline_cache.device.config

    dispatch_elementwise(
        pipeline_cache,
        get_copy_kernel_from_config(config),
        pack_params(size),
        [source],
        target,
    )


# ============================================================================
# SELECTION
# ============================================================================


def run_select(
    pipeline_cache: PipelineCache,
    condition: GPUBufferAny,
    if_mat: GPUBufferAny,
    else_mat: GPUBufferAny,
    target: GPUBufferAny,
) -> None:
    """Ternary select (mutation).

    target[i] = if_mat[i] where condition[i] != 0, else else_mat[i].
    NaN conditions count as true.

    This function MUTATES target. Returns None to signal mutation.

    Raises:
        ValueError: If sizes don't match
    """
    size = validate_same_size(
        [condition, if_mat, else_mat, target],
        ["condition", "if_mat", "else_mat", "target"],
    )
    config = pipeline_cache.device.config

    dispatch_elementwise(
        pipeline_cache,
        get_select_kernel_from_config(config),
        pack_params(size),
        [condition, if_mat, else_mat],
        target,
    )
