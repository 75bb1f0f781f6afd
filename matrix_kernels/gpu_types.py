"""Core data types - plain dataclasses only"""

from dataclasses import dataclass, field
from typing import (
    Any,
    Dict,
    Optional,
    Protocol,
    Tuple,
    Union,
    runtime_checkable,
)

# ============================================================================
# WGPU TYPE PROTOCOLS
# ============================================================================

# Structural types for the wgpu objects we touch, so wgpu is not needed at
# type-check time


@runtime_checkable
class WGPUBufferProtocol(Protocol):
    """Structural type for wgpu.GPUBuffer"""

    size: int
    usage: int

    def map_sync(self, mode: int) -> None:
        """Map buffer for CPU access"""
        ...

    def read_mapped(self) -> memoryview:
        """Read mapped buffer contents"""
        ...

    def unmap(self) -> None:
        """Unmap buffer after CPU access"""
        ...

    def destroy(self) -> None:
        """Explicitly destroy buffer"""
        ...


@runtime_checkable
class WGPUQueueProtocol(Protocol):
    """Structural type for wgpu.GPUQueue"""

    def submit(self, command_buffers: Any) -> None:
        """Submit command buffers for execution"""
        ...

    def write_buffer(
        self, buffer: WGPUBufferProtocol, buffer_offset: int, data: Any
    ) -> None:
        """Write data directly to buffer"""
        ...


@runtime_checkable
class WGPUDeviceProtocol(Protocol):
    """Structural type for wgpu.GPUDevice"""

    queue: WGPUQueueProtocol

    def create_buffer(
        self, *, size: int, usage: int, mapped_at_creation: bool = False
    ) -> WGPUBufferProtocol:
        """Create GPU buffer"""
        ...

    def create_buffer_with_data(self, *, data: Any, usage: int) -> WGPUBufferProtocol:
        """Create buffer initialized with data"""
        ...

    def create_shader_module(self, *, code: str) -> Any:
        """Compile shader module from WGSL source"""
        ...

    def create_compute_pipeline(self, *, layout: Any, compute: Any) -> Any:
        """Create compute pipeline"""
        ...

    def create_bind_group(self, *, layout: Any, entries: Any) -> Any:
        """Create bind group for shader resources"""
        ...

    def create_command_encoder(self) -> Any:
        """Create command encoder"""
        ...


@runtime_checkable
class WGPUAdapterProtocol(Protocol):
    """Structural type for wgpu.GPUAdapter"""

    def request_device_sync(self, **kwargs: Any) -> WGPUDeviceProtocol:
        """Request device synchronously"""
        ...


WGPUDevice = WGPUDeviceProtocol
WGPUBuffer = WGPUBufferProtocol
WGPUAdapter = WGPUAdapterProtocol

WGPUBindGroup = Any  # wgpu.GPUBindGroup
WGPUComputePipeline = Any  # wgpu.GPUComputePipeline

# ============================================================================
# CONFIGURATION
# ============================================================================


@dataclass
class GPUConfig:
    """
    Launch parameters for the matrix kernels.

    This dataclass is immutable - do not modify fields after creation.
    Kernels are generated from these values, so a changed config compiles
    (and caches) a different pipeline.
    """

    # ========================================================================
    # ELEMENT-WISE LAUNCHES
    # ========================================================================

    elementwise_workgroup_size: int = 256
    """Lanes per workgroup for element-local kernels (element-wise, broadcast, select)"""

    max_elementwise_workgroups: int = 4096
    """
    Cap on workgroups for element-local kernels.

    Kernels use a grid-stride loop, so a capped grid still covers every
    element: each lane walks idx, idx + stride, ... where
    stride = workgroups * elementwise_workgroup_size.
    """

    # ========================================================================
    # COOPERATIVE GROUPS
    # ========================================================================

    reduction_group_size: int = 32
    """
    Lanes per reduction group (one group per output element).

    Each lane scans a strided subset, partials land in a shared array of this
    size, and lane 0 merges them serially. Must be a power of 2.
    """

    row_chunk_size: int = 32
    """Rows per group for gather/scatter, and the chunk side for row slices"""

    # ========================================================================
    # TRANSPOSE TILING
    # ========================================================================

    transpose_tile_size: int = 32
    """
    Square tile side for the transpose.

    Shared memory per workgroup: tile_size * (tile_size + 1) * 4 bytes.
    The +1 column breaks the bank-conflicting stride on the transposed read.
    """

    transpose_block_rows: int = 8
    """
    Workgroup height for the transpose.

    The workgroup is (tile_size, block_rows); each lane moves
    tile_size / block_rows elements per tile.
    """

    # ========================================================================
    # COMPUTE LIMITS
    # ========================================================================

    max_workgroups_per_dim: int = 65535
    """
    Maximum workgroups per dimension (WebGPU limit).

    This is a WebGPU limit and should not be changed.
    """


@dataclass
class Device:
    """
    GPU device wrapper

    This dataclass is immutable - do not modify fields after creation.
    """

    wgpu_device: WGPUDevice
    adapter: Optional[WGPUAdapter] = None
    config: GPUConfig = field(default_factory=GPUConfig)


# ============================================================================
# BIND GROUP HELPER TYPES
# ============================================================================


@dataclass
class BindGroupEntry:
    """
    Type-safe bind group entry specification

    This dataclass is immutable - do not modify fields after creation.
    """

    binding: int
    buffer: WGPUBuffer
    offset: int
    size: int


# ============================================================================
# GPU BUFFER TYPES
# ============================================================================


@dataclass
class GPUBuffer1D:
    """
    1D GPU buffer - vectors, index lists and reduction outputs

    This dataclass is immutable - do not modify fields after creation.
    The underlying GPU buffer contents may be mutated by operations.
    """

    buffer: WGPUBuffer
    shape: Tuple[int]
    size: int
    device: Device


@dataclass
class GPUBuffer2D:
    """
    2D GPU buffer - a matrix of shape (rows, cols), stored column-major

    Element (row, col) lives at flat offset col * rows + row. In kernel terms
    the matrix is `width = cols` columns by `height = rows` rows.

    This dataclass is immutable - do not modify fields after creation.
    The underlying GPU buffer contents may be mutated by operations.
    """

    buffer: WGPUBuffer
    shape: Tuple[int, int]
    size: int
    device: Device


GPUBufferAny = Union[GPUBuffer1D, GPUBuffer2D]


# ============================================================================
# PIPELINE CACHE TYPES
# ============================================================================


@dataclass
class PipelineCache:
    """
    Cache for compiled GPU pipelines

    MUTATION SEMANTICS:
    - pipelines: MUTABLE - compiled pipelines are cached on first use
    - device: immutable reference
    """

    device: Device
    pipelines: Dict[Tuple[int, str], WGPUComputePipeline] = field(
        default_factory=dict
    )
