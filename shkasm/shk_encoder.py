# shkasm/shk_encoder.py
import struct
import logging

from shkasm.shk_consts import (
    Opcode, OperandKind, VALUE_MASK, KIND_SHIFT, KIND_MASK, WORD_MASK,
    COMMAND_TAG_BIT, SEGMENT_PREFIX_BIT, ERR_UNRESOLVED_AT_ENCODE
)

logger = logging.getLogger(__name__)


class EncodingError(Exception):
    def __init__(self, kind, message, instruction=None):
        super().__init__(message)
        self.kind = kind
        self.instruction = instruction


def to_bin16(word):
    return f"{word & WORD_MASK:016b}"


def to_hex16(word):
    return f"0x{word & WORD_MASK:04x}"


def pack_words(words):
    """Packs 16-bit words big-endian (high byte first)."""
    return struct.pack(f">{len(words)}H", *words)


class ShkEncoder:
    def encode_operand(self, operand, as_segment=False):
        """ Encodes an operand, preceded by its segment prefix word if it has one. """
        if operand.kind == OperandKind.LABEL:
            raise EncodingError(ERR_UNRESOLVED_AT_ENCODE, f"Unresolved label '{operand.label}' reached the encoder")

        words = []
        if operand.segment is not None:
            words.extend(self.encode_operand(operand.segment, as_segment=True))

        if operand.value > VALUE_MASK:
            logger.warning(f"Operand value 0x{operand.value:04x} does not fit 12 bits, truncating to 0x{operand.value & VALUE_MASK:03x}")

        word = operand.value & VALUE_MASK
        word |= (int(operand.kind) & KIND_MASK) << KIND_SHIFT
        if as_segment:
            word |= SEGMENT_PREFIX_BIT
        words.append(word)
        return words

    def encode_instruction(self, instr):
        """ Encodes one instruction: commands, opcode word (unless data), then operands. """
        words = []
        try:
            for cmd in instr.commands:
                words.append(int(cmd.type) | COMMAND_TAG_BIT)
                for operand in cmd.operands:
                    words.extend(self.encode_operand(operand))

            if instr.opcode != Opcode.DATA:
                words.append(int(instr.opcode))

            for operand in instr.operands:
                words.extend(self.encode_operand(operand))
        except EncodingError as e:
            e.instruction = instr
            raise

        logger.debug(f"Encoded '{instr}' -> {' '.join(to_bin16(w) for w in words)}")
        return words

    def encode(self, instructions):
        """ Returns the list of per-instruction word lists. """
        return [self.encode_instruction(instr) for instr in instructions]

    def to_bytes(self, instructions):
        words = [w for encoded in self.encode(instructions) for w in encoded]
        return pack_words(words)
