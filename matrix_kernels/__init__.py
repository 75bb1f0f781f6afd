"""
Column-major float32 matrix kernels on WGPU, with a numpy reference backend
"""

from . import numpy_math

# Buffer operations
from .gpu_buffer import (
    clear_buffer,
    copy_buffer,
    create_gpu_buffer_1d,
    create_gpu_buffer_2d,
    gpu_to_numpy,
    write_buffer,
)

# Configuration
from .gpu_config import (
    auto_detect_config,
    create_config_for_device,
    create_default_config,
    estimate_shared_memory_usage,
    validate_config,
)

# Device management
from .gpu_device import (
    WGPU_AVAILABLE,
    create_device,
    create_pipeline_cache,
)

# Operations
from .gpu_ops_elementwise import (
    run_binary,
    run_clamp,
    run_copy,
    run_fill,
    run_scalar,
    run_select,
    run_unary,
)
from .gpu_ops_matrix import (
    run_broadcast_column,
    run_broadcast_row,
    run_reduce_columns,
    run_reduce_rows,
    run_transpose,
)
from .gpu_ops_rows import (
    run_get_row_slice,
    run_select_rows,
    run_set_row_slice,
    run_set_selected_rows,
)
from .gpu_types import (
    Device,
    GPUBuffer1D,
    GPUBuffer2D,
    GPUConfig,
    PipelineCache,
)
from .numpy_math import pack_matrix, unpack_matrix

__all__ = [
    # CPU backend
    "numpy_math",
    "pack_matrix",
    "unpack_matrix",
    # Types
    "Device",
    "GPUBuffer1D",
    "GPUBuffer2D",
    "GPUConfig",
    "PipelineCache",
    # Configuration
    "auto_detect_config",
    "create_config_for_device",
    "create_default_config",
    "estimate_shared_memory_usage",
    "validate_config",
    # Device
    "WGPU_AVAILABLE",
    "create_device",
    "create_pipeline_cache",
    # Buffers
    "clear_buffer",
    "copy_buffer",
    "create_gpu_buffer_1d",
    "create_gpu_buffer_2d",
    "gpu_to_numpy",
    "write_buffer",
    # Element-wise and selection
    "run_binary",
    "run_clamp",
    "run_copy",
    "run_fill",
    "run_scalar",
    "run_select",
    "run_unary",
    # Broadcast, reductions, transpose
    "run_broadcast_column",
    "run_broadcast_row",
    "run_reduce_columns",
    "run_reduce_rows",
    "run_transpose",
    # Row movement
    "run_get_row_slice",
    "run_select_rows",
    "run_set_row_slice",
    "run_set_selected_rows",
]
