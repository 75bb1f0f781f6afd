"""Device management and pipeline caching"""

import hashlib
from typing import Dict, List, Optional

from .gpu_config import auto_detect_config, validate_config
from .gpu_types import (
    BindGroupEntry,
    Device,
    GPUConfig,
    PipelineCache,
    WGPUComputePipeline,
)

try:
    import wgpu

    WGPU_AVAILABLE = True
except ImportError:
    WGPU_AVAILABLE = False
    wgpu = None


# ============================================================================
# BIND GROUP HELPERS
# ============================================================================


def create_bind_group_entries(entries: List[BindGroupEntry]) -> List[Dict]:
    """Convert typed BindGroupEntry list to wgpu bind group entry format.

    This function does NOT mutate entries - it creates new dictionaries.

    Args:
        entries: List of BindGroupEntry specifications

    Returns:
        New list of dictionaries in wgpu bind group format
    """
    return [
        {
            "binding": entry.binding,
            "resource": {
                "buffer": entry.buffer,
                "offset": entry.offset,
                "size": entry.size,
            },
        }
        for entry in entries
    ]


# ============================================================================
# DEVICE MANAGEMENT
# ============================================================================


def adapter_name(adapter) -> str:
    """Best-effort human readable adapter name."""
    info = getattr(adapter, "info", None)
    if isinstance(info, dict):
        return info.get("device") or info.get("description") or "unknown"
    return getattr(info, "device", None) or "unknown"


def create_device(config: Optional[GPUConfig] = None) -> Optional[Device]:
    """Create a new WGPU device.

    Attempts to initialize WGPU with a high-performance adapter. When no
    config is given one is auto-detected from the device limits.

    Args:
        config: Optional launch configuration (validated before use)

    Returns:
        Device state if successful, None if WGPU unavailable or initialization fails

    Raises:
        ValueError: If the given config is invalid
    """
    if not WGPU_AVAILABLE:
        print("WGPU not installed")
        return None

    try:
        adapter = wgpu.gpu.request_adapter_sync(power_preference="high-performance")
        if adapter is None:
            print("WGPU initialization failed: no adapter found")
            return None
        wgpu_device = adapter.request_device_sync()
    except Exception as e:
        print(f"WGPU initialization failed: {e}")
        return None

    if config is None:
        config = auto_detect_config(adapter, wgpu_device)
    validate_config(config)

    print(f"WGPU device initialized: {adapter_name(adapter)}")
    return Device(wgpu_device=wgpu_device, adapter=adapter, config=config)


def create_pipeline_cache(device: Device) -> PipelineCache:
    """Create a new pipeline cache for the given device.

    Args:
        device: GPU device state

    Returns:
        New empty pipeline cache for caching compiled shaders
    """
    return PipelineCache(device=device)


def get_or_create_pipeline(
    pipeline_cache: PipelineCache, shader_code: str
) -> WGPUComputePipeline:
    """Cache compute pipelines to avoid recompilation (mutation).

    This function MUTATES pipeline_cache.pipelines by adding new pipelines.
    Keys are the SHA256 of the shader source, so two kernels generated from
    different configs never collide.

    Args:
        pipeline_cache: Pipeline cache state (MUTATED if pipeline not cached)
        shader_code: WGSL shader source code

    Returns:
        Cached or newly compiled compute pipeline
    """
    device = pipeline_cache.device

    shader_hash = hashlib.sha256(shader_code.encode("utf-8")).hexdigest()
    cache_key = (id(device.wgpu_device), shader_hash)

    if cache_key not in pipeline_cache.pipelines:
        shader_module = device.wgpu_device.create_shader_module(code=shader_code)
        pipeline = device.wgpu_device.create_compute_pipeline(
            layout="auto",
            compute={
                "module": shader_module,
                "entry_point": "main",
            },
        )
        pipeline_cache.pipelines[cache_key] = pipeline

    return pipeline_cache.pipelines[cache_key]
