from __future__ import annotations
from dataclasses import dataclass

from .protocol.opcodes import DEFAULT_PROTOCOL, HIGHEST_PROTOCOL


@dataclass(frozen=True)
class PickleConfig:
    protocol: int = DEFAULT_PROTOCOL
    batch_size: int = 1000
    memoize_strings: bool = True
    highest_protocol: int = HIGHEST_PROTOCOL
    
    def __post_init__(self):
        if not 2 <= self.protocol <= HIGHEST_PROTOCOL:
            raise ValueError(f"Protocol must be between 2 and {HIGHEST_PROTOCOL}: {self.protocol}")
        
        if self.batch_size <= 0:
            raise ValueError(f"Batch size must be positive: {self.batch_size}")
        
        if self.highest_protocol < self.protocol:
            raise ValueError(
                f"Highest readable protocol {self.highest_protocol} is below "
                f"the written protocol {self.protocol}"
            )
