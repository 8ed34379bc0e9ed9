from raptor.modules.coil_writer import CoilWriter
from raptor.modules.chain_speed import ChainSpeedWriter
from raptor.modules.dual_write import DualWriteCoordinator, DualWriteResult, Outcome

__all__ = [
    "CoilWriter",
    "ChainSpeedWriter",
    "DualWriteCoordinator",
    "DualWriteResult",
    "Outcome",
]
