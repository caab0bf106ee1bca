from .config import StorageConfig, StoreConfig, cfg
from .logger import ConsoleLogger

__all__ = ["ConsoleLogger", "StorageConfig", "StoreConfig", "cfg"]
