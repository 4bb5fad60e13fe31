from .registry import StorageProviderRegistry, split_reference, validate_platform_config

__all__ = ["StorageProviderRegistry", "split_reference", "validate_platform_config"]
