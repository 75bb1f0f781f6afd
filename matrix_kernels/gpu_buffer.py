"""Buffer creation, upload and readback"""

from typing import Optional

import numpy as np

from .gpu_device import wgpu
from .gpu_types import Device, GPUBuffer1D, GPUBuffer2D, GPUBufferAny, WGPUBuffer
from .numpy_math import pack_matrix

# ============================================================================
# BASIC BUFFER OPERATIONS
# ============================================================================


def INTERNAL__create_gpu_buffer(
    device: Device, size: int, data: Optional[np.ndarray] = None
) -> WGPUBuffer:
    """Internal: Create raw float32 storage buffer.

    Args:
        device: GPU device state
        size: Number of float32 elements
        data: Optional flat float32 array to initialize buffer contents

    Returns:
        Raw WGPU buffer object
    """
    usage = (
        wgpu.BufferUsage.STORAGE | wgpu.BufferUsage.COPY_SRC | wgpu.BufferUsage.COPY_DST
    )

    if data is not None:
        return device.wgpu_device.create_buffer_with_data(
            data=np.ascontiguousarray(data, dtype=np.float32), usage=usage
        )

    return device.wgpu_device.create_buffer(size=size * 4, usage=usage)


def create_gpu_buffer_1d(
    device: Device, size: int, data: Optional[np.ndarray] = None
) -> GPUBuffer1D:
    """Create 1D GPU buffer for vectors, index lists and reduction outputs.

    Args:
        device: GPU device state
        size: Number of elements
        data: Optional numpy array to initialize buffer

    Returns:
        Typed 1D GPU buffer

    Raises:
        ValueError: If size <= 0 or data shape doesn't match
    """
    if size <= 0:
        raise ValueError(f"Buffer size must be positive, got {size}")

    if data is not None and np.shape(data) != (size,):
        raise ValueError(
            f"Data shape {np.shape(data)} doesn't match buffer size ({size},)"
        )

    buffer = INTERNAL__create_gpu_buffer(device, size, data)
    return GPUBuffer1D(buffer=buffer, shape=(size,), size=size, device=device)


def create_gpu_buffer_2d(
    device: Device, rows: int, cols: int, data: Optional[np.ndarray] = None
) -> GPUBuffer2D:
    """Create 2D GPU buffer for a matrix, stored column-major.

    Args:
        device: GPU device state
        rows: Number of rows (matrix height)
        cols: Number of columns (matrix width)
        data: Optional (rows, cols) numpy array to initialize buffer

    Returns:
        Typed 2D GPU buffer

    Raises:
        ValueError: If dimensions <= 0 or data shape doesn't match
    """
    if rows <= 0 or cols <= 0:
        raise ValueError(f"Buffer dimensions must be positive, got ({rows}, {cols})")

    flat = None
    if data is not None:
        if np.shape(data) != (rows, cols):
            raise ValueError(
                f"Data shape {np.shape(data)} doesn't match buffer shape ({rows}, {cols})"
            )
        flat = pack_matrix(data)

    size = rows * cols
    buffer = INTERNAL__create_gpu_buffer(device, size, flat)
    return GPUBuffer2D(buffer=buffer, shape=(rows, cols), size=size, device=device)


def create_buffer_like(gpu_buffer: GPUBufferAny) -> GPUBufferAny:
    """Create an uninitialized buffer with the same type and shape."""
    if isinstance(gpu_buffer, GPUBuffer2D):
        rows, cols = gpu_buffer.shape
        return create_gpu_buffer_2d(gpu_buffer.device, rows, cols)
    return create_gpu_buffer_1d(gpu_buffer.device, gpu_buffer.size)


def write_buffer(gpu_buffer: GPUBufferAny, data: np.ndarray) -> None:
    """Upload host data into an existing buffer (mutation).

    2-D buffers take a (rows, cols) array and store it column-major.

    Raises:
        ValueError: If data shape doesn't match the buffer
    """
    if np.shape(data) != gpu_buffer.shape:
        raise ValueError(
            f"Data shape {np.shape(data)} doesn't match buffer shape {gpu_buffer.shape}"
        )

    if isinstance(gpu_buffer, GPUBuffer2D):
        flat = pack_matrix(data)
    else:
        flat = np.ascontiguousarray(data, dtype=np.float32)
    gpu_buffer.device.wgpu_device.queue.write_buffer(gpu_buffer.buffer, 0, flat)


def clear_buffer(gpu_buffer: GPUBufferAny) -> None:
    """Zero-initialize a GPU buffer (mutation).

    Args:
        gpu_buffer: GPU buffer to clear (MUTATED)
    """
    zero_data = np.zeros(gpu_buffer.size, dtype=np.float32)
    gpu_buffer.device.wgpu_device.queue.write_buffer(gpu_buffer.buffer, 0, zero_data)


def copy_buffer(source: GPUBufferAny, dest: GPUBufferAny) -> None:
    """Device-side copy of equally sized buffers (mutation).

    Raises:
        ValueError: If buffer sizes don't match
    """
    if source.size != dest.size:
        raise ValueError(f"Buffer sizes must match: {source.size} != {dest.size}")

    device = source.device.wgpu_device
    encoder = device.create_command_encoder()
    encoder.copy_buffer_to_buffer(source.buffer, 0, dest.buffer, 0, source.size * 4)
    device.queue.submit([encoder.finish()])


def gpu_to_numpy(gpu_buffer: GPUBufferAny) -> np.ndarray:
    """Read GPU buffer back to CPU.

    2-D buffers come back as a (rows, cols) array.
    """
    device = gpu_buffer.device.wgpu_device
    buffer_size = gpu_buffer.size * 4
    read_buffer = device.create_buffer(
        size=buffer_size, usage=wgpu.BufferUsage.COPY_DST | wgpu.BufferUsage.MAP_READ
    )

    encoder = device.create_command_encoder()
    encoder.copy_buffer_to_buffer(gpu_buffer.buffer, 0, read_buffer, 0, buffer_size)
    device.queue.submit([encoder.finish()])

    read_buffer.map_sync(wgpu.MapMode.READ)
    data = np.frombuffer(read_buffer.read_mapped(), dtype=np.float32).copy()
    read_buffer.unmap()

    if isinstance(gpu_buffer, GPUBuffer2D):
        return data.reshape(gpu_buffer.shape, order="F")
    return data
