"""GPU configuration and auto-tuning"""

from typing import Any, Optional

from .gpu_types import GPUConfig, WGPUAdapter, WGPUDevice


def create_default_config() -> GPUConfig:
    """
    Create default GPU configuration with conservative settings.

    These settings work on most GPUs but may not be optimal for all hardware.
    For automatic optimization, use auto_detect_config() instead.

    Returns:
        GPUConfig with default parameters
    """
    return GPUConfig()


def _limit(limits: Any, name: str, default: int) -> int:
    """Read a device limit from either the dict or the attribute form."""
    if isinstance(limits, dict):
        for key in (name.replace("_", "-"), name):
            if key in limits:
                return int(limits[key])
        return default
    return int(getattr(limits, name, default))


def auto_detect_config(adapter: WGPUAdapter, device: WGPUDevice) -> GPUConfig:
    """
    Auto-detect GPU capabilities and return a matching configuration.

    Queries device limits to size the element-wise workgroups and the
    transpose tile. Falls back to conservative defaults where a limit is
    missing.

    Args:
        adapter: WGPU adapter (from wgpu.gpu.request_adapter_sync())
        device: WGPU device (from adapter.request_device_sync())

    Returns:
        GPUConfig for the detected GPU

    Example:
        >>> import wgpu
        >>> adapter = wgpu.gpu.request_adapter_sync()
        >>> device = adapter.request_device_sync()
        >>> config = auto_detect_config(adapter, device)
    """
    limits = getattr(device, "limits", {})

    max_invocations = _limit(limits, "max_compute_invocations_per_workgroup", 256)
    max_size_x = _limit(limits, "max_compute_workgroup_size_x", 256)
    max_storage = _limit(limits, "max_compute_workgroup_storage_size", 16384)
    max_groups = _limit(limits, "max_compute_workgroups_per_dimension", 65535)

    # ========================================================================
    # Element-wise workgroup size
    # ========================================================================
    wg_limit = min(max_invocations, max_size_x)
    if wg_limit >= 256:
        elementwise_wg = 256
    elif wg_limit >= 128:
        elementwise_wg = 128
    else:
        elementwise_wg = 64

    # ========================================================================
    # Transpose tile
    # ========================================================================
    # Tile needs tile * (tile + 1) * 4 bytes; workgroup is tile x block_rows
    tile, block_rows = 32, 8
    if tile * (tile + 1) * 4 > max_storage or tile * block_rows > max_invocations:
        tile, block_rows = 16, 8
    if tile * (tile + 1) * 4 > max_storage or tile * block_rows > max_invocations:
        tile, block_rows = 8, 8

    return GPUConfig(
        elementwise_workgroup_size=elementwise_wg,
        max_elementwise_workgroups=4096,
        reduction_group_size=32,
        row_chunk_size=32,
        transpose_tile_size=tile,
        transpose_block_rows=block_rows,
        max_workgroups_per_dim=min(max_groups, 65535),
    )


def create_config_for_device(device_name: Optional[str] = None) -> GPUConfig:
    """
    Create GPU configuration tuned for specific device.

    **Note**: This function uses heuristics. For accurate detection,
    use auto_detect_config() with actual WGPU adapter/device objects.

    Args:
        device_name: GPU device name (e.g., "NVIDIA RTX 4090", "Apple M2")
                    None = use defaults

    Returns:
        GPUConfig tuned for the specified device
    """
    if device_name is None:
        return create_default_config()

    device_lower = device_name.lower()

    # Intel integrated GPUs have less shared memory
    if "intel" in device_lower:
        return GPUConfig(
            elementwise_workgroup_size=128,
            max_elementwise_workgroups=1024,
            transpose_tile_size=16,
            transpose_block_rows=8,
        )

    # Software rasterizers run workgroups on a handful of CPU threads
    elif "llvmpipe" in device_lower or "swiftshader" in device_lower:
        return GPUConfig(
            elementwise_workgroup_size=64,
            max_elementwise_workgroups=256,
            transpose_tile_size=16,
            transpose_block_rows=4,
        )

    elif "apple" in device_lower or "m1" in device_lower or "m2" in device_lower:
        return GPUConfig(
            elementwise_workgroup_size=256,
            max_elementwise_workgroups=8192,
        )

    else:
        return create_default_config()


def _is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0


def validate_config(config: GPUConfig) -> None:
    """
    Validate GPU configuration for correctness.

    Args:
        config: Configuration to validate

    Raises:
        ValueError: If any parameter is invalid
    """
    if config.elementwise_workgroup_size not in [64, 128, 256, 512, 1024]:
        raise ValueError(
            f"elementwise_workgroup_size must be 64, 128, 256, 512, or 1024, "
            f"got {config.elementwise_workgroup_size}"
        )

    if config.max_elementwise_workgroups <= 0:
        raise ValueError(
            f"max_elementwise_workgroups must be positive, "
            f"got {config.max_elementwise_workgroups}"
        )

    if config.max_elementwise_workgroups > config.max_workgroups_per_dim:
        raise ValueError(
            f"max_elementwise_workgroups ({config.max_elementwise_workgroups}) "
            f"exceeds max_workgroups_per_dim ({config.max_workgroups_per_dim})"
        )

    if (
        not _is_power_of_two(config.reduction_group_size)
        or config.reduction_group_size > 256
    ):
        raise ValueError(
            f"reduction_group_size must be a power of 2 up to 256, "
            f"got {config.reduction_group_size}"
        )

    if not 0 < config.row_chunk_size <= 256:
        raise ValueError(
            f"row_chunk_size must be in (0, 256], got {config.row_chunk_size}"
        )

    if not _is_power_of_two(config.transpose_tile_size):
        raise ValueError(
            f"transpose_tile_size must be power of 2, got {config.transpose_tile_size}"
        )

    if config.transpose_tile_size > 32:
        raise ValueError(
            f"transpose_tile_size too large: {config.transpose_tile_size}. "
            "Maximum is 32 due to shared memory limits."
        )

    if (
        not _is_power_of_two(config.transpose_block_rows)
        or config.transpose_block_rows > config.transpose_tile_size
    ):
        raise ValueError(
            f"transpose_block_rows must be a power of 2 no larger than the tile, "
            f"got {config.transpose_block_rows}"
        )

    if config.transpose_tile_size * config.transpose_block_rows > 1024:
        raise ValueError(
            f"Transpose workgroup ({config.transpose_tile_size}, "
            f"{config.transpose_block_rows}) exceeds 1024 invocations"
        )

    if config.max_workgroups_per_dim <= 0:
        raise ValueError(
            f"max_workgroups_per_dim must be positive, got {config.max_workgroups_per_dim}"
        )


def estimate_shared_memory_usage(config: GPUConfig) -> dict:
    """
    Estimate workgroup memory usage for the kernels that stage data.

    Args:
        config: GPU configuration

    Returns:
        Dictionary with workgroup memory estimates in bytes for each kernel type
    """
    return {
        "transpose": config.transpose_tile_size
        * (config.transpose_tile_size + 1)
        * 4,  # padded tile, fp32
        "reduce": config.reduction_group_size * 8,  # value + index per lane
        "select_rows": config.row_chunk_size * 4,  # resolved row indices
    }
