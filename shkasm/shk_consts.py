# shkasm/shk_consts.py
from enum import IntEnum


class Opcode(IntEnum):
    NOP = 0b0000 # no-op
    HLT = 0b0010 # halt
    DIE = 0b0011 # abnormal termination
    LOD = 0b0100 # load
    STO = 0b0101 # store
    MOV = 0b1000 # move
    ADD = 0b1010 # add
    CMP = 0b1011 # compare
    # Pseudo-opcode: only the operand words are emitted
    DATA = 0x10


class OperandKind(IntEnum):
    IMMEDIATE = 0b00
    REGISTER = 0b01
    MEMORY = 0b10
    DEREFERENCE = 0b11
    LABEL = 0x4 # Never encoded, must be resolved first


class CommandType(IntEnum):
    EQ = 0b0000


# Mnemonic tables (case-sensitive)
OPCODE_MAP = {
    "NOP": Opcode.NOP,
    "HLT": Opcode.HLT,
    "DIE": Opcode.DIE,
    "LOD": Opcode.LOD,
    "STO": Opcode.STO,
    "MOV": Opcode.MOV,
    "ADD": Opcode.ADD,
    "CMP": Opcode.CMP,
    "DAT": Opcode.DATA,
}
OPCODE_MAP_REV = {v: k for k, v in OPCODE_MAP.items()}

COMMAND_MAP = {
    "eq": CommandType.EQ,
}
COMMAND_MAP_REV = {v: k for k, v in COMMAND_MAP.items()}

# Operand prefixes
OPERAND_PREFIXES = {
    "#": OperandKind.IMMEDIATE,
    "$": OperandKind.REGISTER,
    "*": OperandKind.DEREFERENCE,
}
COMMAND_PREFIX = "!"
COMMENT_CHAR = ";"
SEGMENT_SEPARATOR = ":"
OPERAND_SEPARATOR = ","

# --- Word layout ---
WORD_MASK = 0xFFFF
VALUE_MASK = 0x0FFF     # bits 0-11
KIND_SHIFT = 12         # bits 12-13
KIND_MASK = 0b11
COMMAND_TAG_BIT = 1 << 15
SEGMENT_PREFIX_BIT = 1 << 15

# --- Error kinds ---
ERR_INVALID_OPCODE = "invalid-opcode"
ERR_INVALID_COMMAND = "invalid-command"
ERR_SYNTAX = "syntax-error"
ERR_UNQUALIFIED_LITERAL = "unqualified-literal"
ERR_UNKNOWN_LABEL = "unknown-label"
ERR_UNRESOLVED_AT_ENCODE = "unresolved-label-at-encode"
