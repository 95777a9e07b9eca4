import logging
from typing import Optional


class MultiTransferLogger(logging.Logger):
    """
    Logger class used by every multitransfer component.

    Components keep a class-level ``_logger`` and expose it through a ``logger()``
    classmethod, so the logger name always matches the defining module and class.
    """

    def __init__(self, name: str, level: int = logging.NOTSET):
        super().__init__(name, level)

    @staticmethod
    def logger_name_for_class(model_class: type) -> str:
        return f"{model_class.__module__}.{model_class.__qualname__}"

    @staticmethod
    def short_hash(tx_hash: Optional[str], length: int = 16) -> str:
        if not tx_hash:
            return "<none>"
        return f"{tx_hash[:length]}..."

    def network(self, log_msg: str, *args, **kwargs):
        """Log a chain/RPC related message at WARNING level with a NETWORK prefix."""
        self.warning(f"[NETWORK] {log_msg}", *args, **kwargs)


logging.setLoggerClass(MultiTransferLogger)
