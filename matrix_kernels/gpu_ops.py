"""Kernel dispatch and validation shared by all GPU operations"""

from typing import List, Tuple

import numpy as np

from .gpu_buffer import copy_buffer, create_buffer_like
from .gpu_device import create_bind_group_entries, get_or_create_pipeline, wgpu
from .gpu_types import (
    BindGroupEntry,
    GPUBuffer1D,
    GPUBuffer2D,
    GPUBufferAny,
    PipelineCache,
    WGPUBindGroup,
    WGPUBuffer,
    WGPUComputePipeline,
)

# ============================================================================
# VALIDATION
# ============================================================================


def validate_buffer_shape_1d(
    buffer: GPUBufferAny, expected_size: int, name: str
) -> None:
    """Validate 1D buffer has expected size.

    Args:
        buffer: Buffer to validate
        expected_size: Expected size
        name: Buffer name for error messages

    Raises:
        ValueError: If size doesn't match or invalid
    """
    if expected_size <= 0:
        raise ValueError(f"Invalid expected size for {name}: {expected_size}")

    if not isinstance(buffer, GPUBuffer1D) or buffer.shape != (expected_size,):
        raise ValueError(
            f"{name} shape mismatch: got {buffer.shape}, expected ({expected_size},)"
        )


def validate_buffer_shape_2d(
    buffer: GPUBufferAny, expected_shape: Tuple[int, int], name: str
) -> None:
    """Validate 2D buffer has expected shape.

    Args:
        buffer: Buffer to validate
        expected_shape: Expected (rows, cols)
        name: Buffer name for error messages

    Raises:
        ValueError: If shape doesn't match or dimensions invalid
    """
    if expected_shape[0] <= 0 or expected_shape[1] <= 0:
        raise ValueError(f"Invalid expected shape for {name}: {expected_shape}")

    if not isinstance(buffer, GPUBuffer2D) or buffer.shape != expected_shape:
        raise ValueError(
            f"{name} shape mismatch: got {buffer.shape}, expected {expected_shape}"
        )


def validate_matrix(buffer: GPUBufferAny, name: str) -> Tuple[int, int]:
    """Validate a matrix buffer and return its (width, height).

    Raises:
        ValueError: If buffer is not a 2D buffer
    """
    if not isinstance(buffer, GPUBuffer2D):
        raise ValueError(f"{name} must be a 2D buffer, got shape {buffer.shape}")
    rows, cols = buffer.shape
    return cols, rows


def validate_same_size(buffers: List[GPUBufferAny], names: List[str]) -> int:
    """Validate that element-wise operands all have the same length.

    Returns:
        Common element count

    Raises:
        ValueError: If any size differs
    """
    size = buffers[0].size
    for buf, name in zip(buffers[1:], names[1:]):
        if buf.size != size:
            raise ValueError(
                f"{name} size {buf.size} doesn't match {names[0]} size {size}"
            )
    return size


def buffers_alias(a: GPUBufferAny, b: GPUBufferAny) -> bool:
    """True when both wrappers refer to the same device buffer."""
    return a.buffer is b.buffer


def validate_no_alias(
    operation: str, inputs: List[GPUBufferAny], output: GPUBufferAny
) -> None:
    """Reject in-place use of operations that are not element-local.

    Raises:
        ValueError: If output shares its device buffer with any input
    """
    if any(buffers_alias(buf, output) for buf in inputs):
        raise ValueError(f"{operation} requires distinct source and target buffers")


# ============================================================================
# LAUNCH HELPERS
# ============================================================================


def pack_params(*values) -> np.ndarray:
    """Pack uniform parameters into 32-bit words.

    Python floats are stored as f32 bit patterns, everything else as u32.
    The result is zero padded to a multiple of 16 bytes.

    Returns:
        uint32 array ready for upload at binding 0
    """
    n_words = max(4, (len(values) + 3) // 4 * 4)
    params = np.zeros(n_words, dtype=np.uint32)
    as_float = params.view(np.float32)
    for i, value in enumerate(values):
        if isinstance(value, (float, np.floating)):
            as_float[i] = value
        else:
            params[i] = int(value)
    return params


def elementwise_workgroups(pipeline_cache: PipelineCache, size: int) -> int:
    """Workgroup count for a grid-stride element-local launch.

    Capped at max_elementwise_workgroups; the kernel loop covers the rest.
    """
    config = pipeline_cache.device.config
    wg_size = config.elementwise_workgroup_size
    return max(1, min((size + wg_size - 1) // wg_size, config.max_elementwise_workgroups))


def grid_size(extent: int, chunk: int) -> int:
    return (extent + chunk - 1) // chunk


# ============================================================================
# DISPATCH
# ============================================================================


def _create_uniform_buffer_internal(
    pipeline_cache: PipelineCache, data: np.ndarray
) -> WGPUBuffer:
    """Internal: Create uniform buffer for parameters.

    The buffer is released by WGPU once the submission using it completes.
    """
    return pipeline_cache.device.wgpu_device.create_buffer_with_data(
        data=data, usage=wgpu.BufferUsage.UNIFORM
    )


def _create_bind_group_internal(
    pipeline_cache: PipelineCache,
    pipeline: WGPUComputePipeline,
    entries: List[BindGroupEntry],
) -> WGPUBindGroup:
    """Internal: Create bind group using type-safe entries."""
    return pipeline_cache.device.wgpu_device.create_bind_group(
        layout=pipeline.get_bind_group_layout(0),
        entries=create_bind_group_entries(entries),
    )


def _dispatch_compute_internal(
    pipeline_cache: PipelineCache,
    pipeline: WGPUComputePipeline,
    bind_group: WGPUBindGroup,
    workgroups_x: int,
    workgroups_y: int = 1,
    workgroups_z: int = 1,
) -> None:
    """Internal: Create encoder, record one compute pass and submit it."""
    encoder = pipeline_cache.device.wgpu_device.create_command_encoder()
    compute_pass = encoder.begin_compute_pass()
    compute_pass.set_pipeline(pipeline)
    compute_pass.set_bind_group(0, bind_group)
    compute_pass.dispatch_workgroups(workgroups_x, workgroups_y, workgroups_z)
    compute_pass.end()
    pipeline_cache.device.wgpu_device.queue.submit([encoder.finish()])


def dispatch_simple_compute(
    pipeline_cache: PipelineCache,
    kernel_code: str,
    params: np.ndarray,
    buffers: List[GPUBufferAny],
    workgroups_x: int,
    workgroups_y: int = 1,
    workgroups_z: int = 1,
) -> None:
    """
    Unified compute dispatch - pipeline lookup, bind group and one dispatch

    This function may MUTATE pipeline_cache by adding cached pipelines.
    This function does NOT mutate params or buffers (the kernel may write
    into the last buffer).

    Args:
        pipeline_cache: Pipeline cache state (may be MUTATED for caching)
        kernel_code: WGSL kernel source code
        params: Numpy array of parameters (uploaded as uniform buffer at binding 0)
        buffers: List of GPU buffers to bind (sequential bindings starting at 1)
        workgroups_x: Number of workgroups in X dimension
        workgroups_y: Number of workgroups in Y dimension (default 1)
        workgroups_z: Number of workgroups in Z dimension (default 1)

    Raises:
        NotImplementedError: If workgroup counts exceed device limits
    """
    max_workgroups = pipeline_cache.device.config.max_workgroups_per_dim

    for axis, count in (("x", workgroups_x), ("y", workgroups_y), ("z", workgroups_z)):
        if count > max_workgroups:
            raise NotImplementedError(
                f"workgroups_{axis} ({count}) exceeds maximum ({max_workgroups}). "
                f"Consider tiling the computation."
            )

    params_buffer = _create_uniform_buffer_internal(pipeline_cache, params)
    pipeline = get_or_create_pipeline(pipeline_cache, kernel_code)

    # Binding 0 is params, the rest are buffers in order
    entries = [BindGroupEntry(0, params_buffer, 0, params.nbytes)]
    for i, buf in enumerate(buffers):
        entries.append(BindGroupEntry(i + 1, buf.buffer, 0, buf.size * 4))

    bind_group = _create_bind_group_internal(pipeline_cache, pipeline, entries)
    _dispatch_compute_internal(
        pipeline_cache, pipeline, bind_group, workgroups_x, workgroups_y, workgroups_z
    )


def dispatch_elementwise(
    pipeline_cache: PipelineCache,
    kernel_code: str,
    params: np.ndarray,
    inputs: List[GPUBufferAny],
    output: GPUBufferAny,
) -> None:
    """Dispatch an element-local kernel whose output may alias an input.

    WebGPU forbids a writable binding from aliasing another binding, so an
    in-place call writes into a scratch buffer and copies it back. Queue
    order keeps the copy after the dispatch.

    This function MUTATES output.
    """
    workgroups = elementwise_workgroups(pipeline_cache, output.size)

    if not any(buffers_alias(buf, output) for buf in inputs):
        dispatch_simple_compute(
            pipeline_cache, kernel_code, params, inputs + [output], workgroups
        )
        return

    scratch = create_buffer_like(output)
    dispatch_simple_compute(
        pipeline_cache, kernel_code, params, inputs + [scratch], workgroups
    )
    copy_buffer(scratch, output)
