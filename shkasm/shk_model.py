# shkasm/shk_model.py
from dataclasses import dataclass, field
from typing import List, Optional

from shkasm.shk_consts import (
    Opcode, OperandKind, CommandType, OPCODE_MAP_REV, COMMAND_MAP_REV, COMMAND_PREFIX
)

_KIND_PREFIX = {
    OperandKind.IMMEDIATE: "#",
    OperandKind.REGISTER: "$",
    OperandKind.DEREFERENCE: "*",
    OperandKind.MEMORY: "",
}


@dataclass
class Operand:
    kind: OperandKind
    value: int = 0
    label: Optional[str] = None # Set only while kind is LABEL
    segment: Optional["Operand"] = None

    @classmethod
    def from_label(cls, name, segment=None):
        return cls(OperandKind.LABEL, 0, name, segment)

    def word_count(self):
        """One word for the operand, one more for a segment prefix."""
        return 1 + (self.segment.word_count() if self.segment is not None else 0)

    def __str__(self):
        own = self.label if self.kind == OperandKind.LABEL else f"{_KIND_PREFIX[self.kind]}{self.value}"
        if self.segment is not None:
            return f"{self.segment}:{own}"
        return own


@dataclass
class Command:
    type: CommandType
    operands: List[Operand] = field(default_factory=list)

    def word_count(self):
        # Tag word + operand words
        return 1 + sum(op.word_count() for op in self.operands)

    def __str__(self):
        parts = [f"{COMMAND_PREFIX}{COMMAND_MAP_REV[self.type]}"]
        parts.extend(str(op) for op in self.operands)
        return " ".join(parts)


@dataclass
class Instruction:
    opcode: Opcode
    operands: List[Operand] = field(default_factory=list)
    commands: List[Command] = field(default_factory=list)
    line_num: int = 0
    source: str = ""

    @classmethod
    def data(cls, operands, line_num=0, source=""):
        """Builds a `data` pseudo-instruction from a bare operand list."""
        return cls(Opcode.DATA, list(operands), [], line_num, source)

    def word_count(self):
        count = 0 if self.opcode == Opcode.DATA else 1
        count += sum(op.word_count() for op in self.operands)
        count += sum(cmd.word_count() for cmd in self.commands)
        return count

    def iter_operands(self):
        """Yields every operand, including command operands and segment prefixes."""
        pending = list(self.operands)
        for cmd in self.commands:
            pending.extend(cmd.operands)
        for op in pending:
            while op is not None:
                yield op
                op = op.segment

    def __str__(self):
        parts = [str(op) for op in self.operands]
        parts.extend(str(cmd) for cmd in self.commands)
        mnemonic = OPCODE_MAP_REV[self.opcode]
        return f"{mnemonic} {', '.join(parts)}" if parts else mnemonic
