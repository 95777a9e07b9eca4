from .logger import MultiTransferLogger

__all__ = ["MultiTransferLogger"]
