from raptor.config.register_map import REGISTER_TABLE, WritePolicy, WriteClass
from raptor.config.settings import Settings

__all__ = ["REGISTER_TABLE", "WritePolicy", "WriteClass", "Settings"]
