"""
Opcode-level disassembly of tensorpickle streams.

Walks the byte stream with the same argument decoders the unpickler
uses, without executing anything, so it works on streams whose classes
or tensor tables are not available.
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterator, List

from ..core.stream import BufferSource
from ..exceptions import MalformedOpcode
from .opcodes import Opcode, OPCODE_ARGS, MARK_CONSUMERS, MARK_PRODUCERS
from .primitives import read_argument


@dataclass(frozen=True)
class Instruction:
    position: int
    opcode: Opcode
    arg: Any = None

    def describe(self) -> str:
        if self.arg is None:
            return self.opcode.name
        if self.opcode in (Opcode.BINBYTES, Opcode.SHORT_BINBYTES, Opcode.BINBYTES8):
            return f"{self.opcode.name} <{len(self.arg)} bytes>"
        if self.opcode == Opcode.GLOBAL:
            module, name = self.arg
            return f"{self.opcode.name} {module}.{name}"
        return f"{self.opcode.name} {self.arg!r}"


def disassemble(data: bytes) -> Iterator[Instruction]:
    """Yield every instruction in ``data``, across concatenated pickles."""
    source = BufferSource(data)
    while source.has_more():
        position = source.position
        code = source.read(1)[0]
        try:
            opcode = Opcode(code)
        except ValueError:
            raise MalformedOpcode(
                f"Unknown opcode 0x{code:02x} at position {position}",
                opcode=code,
                position=position
            ) from None
        arg = read_argument(OPCODE_ARGS[opcode], source.read)
        yield Instruction(position, opcode, arg)


def count_opcodes(data: bytes) -> Counter:
    return Counter(instruction.opcode for instruction in disassemble(data))


def format_disassembly(data: bytes, indent: str = "  ") -> str:
    lines: List[str] = []
    depth = 0
    for instruction in disassemble(data):
        if instruction.opcode in MARK_CONSUMERS:
            depth = max(0, depth - 1)
        lines.append(f"{instruction.position:8d}: {indent * depth}{instruction.describe()}")
        if instruction.opcode in MARK_PRODUCERS:
            depth += 1
        elif instruction.opcode == Opcode.STOP:
            depth = 0
    return "\n".join(lines)
