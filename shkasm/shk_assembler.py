# shkasm/shk_assembler.py
import re
import logging

from shkasm.shk_consts import (
    OPCODE_MAP, COMMAND_MAP, OPERAND_PREFIXES, COMMAND_PREFIX, SEGMENT_SEPARATOR,
    OPERAND_SEPARATOR, OperandKind, ERR_INVALID_OPCODE, ERR_INVALID_COMMAND, ERR_SYNTAX,
    ERR_UNQUALIFIED_LITERAL, ERR_UNKNOWN_LABEL, VALUE_MASK
)
from shkasm.shk_lexer import split, strip_comment, parse_literal
from shkasm.shk_model import Operand, Command, Instruction
from shkasm.shk_encoder import ShkEncoder, EncodingError, pack_words, to_bin16, to_hex16

logger = logging.getLogger(__name__)

# A leading 'name:' word declares a label
LABEL_RE = re.compile(r'^([A-Za-z_.][A-Za-z0-9_.]*):(?: +|$)')


class ShkAssembler:
    def __init__(self):
        self.instructions = [] # Shared across every processed source
        self.labels = {}       # Label name -> index of the following instruction
        self.addresses = []    # Word address of each instruction, filled by resolve()
        self.machine_code = [] # Encoded words, one list per instruction
        self.errors = []
        self.current_source = "<input>"
        self.encoder = ShkEncoder()

    def reset(self):
        self.instructions = []
        self.labels = {}
        self.addresses = []
        self.machine_code = []
        self.errors = []
        self.current_source = "<input>"

    def _add_error(self, line_num, message, instruction_text="", kind=ERR_SYNTAX, source=None):
        """Adds an error, preventing duplicates for the same line/message."""
        source = source if source is not None else self.current_source
        if not any(err['line'] == line_num and err['message'] == message and err['source'] == source for err in self.errors):
            logger.debug(f"Adding error: {source} line {line_num}, Kind: {kind}, Msg: {message}, Text: '{instruction_text}'")
            self.errors.append({"kind": kind, "line": line_num, "message": message, "text": instruction_text, "source": source})

    def _parse_literal(self, literal_str, line_num, instruction_text):
        """Parses a numeric literal; reports malformed ones and yields 0 so the line can still be scanned."""
        try:
            return parse_literal(literal_str)
        except ValueError as e:
            self._add_error(line_num, f"Invalid numeric literal: {e}", instruction_text, ERR_SYNTAX)
            return 0

    def _parse_operand(self, token, line_num, instruction_text):
        """ Parses '#imm', '$reg', '*addr', 'label' and 'segment:operand' tokens. Returns None on error. """
        if not token:
            self._add_error(line_num, "Empty operand.", instruction_text, ERR_SYNTAX)
            return None

        segment = None
        if SEGMENT_SEPARATOR in token:
            segment_str, token = token.split(SEGMENT_SEPARATOR, 1)
            if SEGMENT_SEPARATOR in token:
                self._add_error(line_num, f"Only one segment prefix is allowed: '{segment_str}:{token}'", instruction_text, ERR_SYNTAX)
                return None
            segment = self._parse_operand(segment_str, line_num, instruction_text)
            if segment is None:
                return None
            if not token:
                self._add_error(line_num, f"Missing operand after segment '{segment_str}:'", instruction_text, ERR_SYNTAX)
                return None

        prefix = token[0]
        if prefix in OPERAND_PREFIXES:
            value = self._parse_literal(token[1:], line_num, instruction_text)
            return Operand(OPERAND_PREFIXES[prefix], value, None, segment)
        if prefix.isdigit():
            self._add_error(line_num, f"Unqualified numeric literal '{token}'. Prefix it with '#', '$' or '*'.", instruction_text, ERR_UNQUALIFIED_LITERAL)
            return None
        return Operand.from_label(token, segment)

    def _parse_operand_list(self, instr, operands_str, line_num, original_line):
        """ Fills the instruction's operands and commands. Returns False on the first structural error. """
        for operand_str in split(operands_str, OPERAND_SEPARATOR):
            if not operand_str.strip(' '):
                break # Trailing comma tolerated

            words = split(operand_str, ' ')
            if not words or not words[0]:
                self._add_error(line_num, f"Syntax error: '{operand_str}'", original_line, ERR_SYNTAX)
                return False

            if words[0].startswith(COMMAND_PREFIX):
                command_str = words[0][1:]
                command_type = COMMAND_MAP.get(command_str)
                if command_type is None:
                    self._add_error(line_num, f"Invalid command: '{command_str}'", original_line, ERR_INVALID_COMMAND)
                    return False
                cmd = Command(command_type)
                for word in words[1:]:
                    if not word:
                        continue
                    operand = self._parse_operand(word, line_num, original_line)
                    if operand is None:
                        return False
                    cmd.operands.append(operand)
                instr.commands.append(cmd)
            else:
                extra = [w for w in words[1:] if w]
                if extra:
                    logger.warning(f"{self.current_source} line {line_num}: ignoring extra words {extra} after operand '{words[0]}'")
                operand = self._parse_operand(words[0], line_num, original_line)
                if operand is None:
                    return False
                instr.operands.append(operand)
        return True

    def process_line(self, line, line_num=0):
        """
        Parses one source line, recording its labels and appending at most
        one instruction. Returns False when the line holds an error.
        """
        original_line = line.rstrip('\r\n')
        errors_before = len(self.errors)
        line = strip_comment(original_line).strip(' ')
        if not line:
            return True # Empty or comment-only line

        # --- Leading labels, one at a time ---
        label_match = LABEL_RE.match(line)
        while label_match:
            label = label_match.group(1)
            index = len(self.instructions)
            if label in self.labels:
                logger.warning(f"{self.current_source} line {line_num}: label '{label}' redeclared, overwriting previous definition")
            self.labels[label] = index
            logger.debug(f"Pass 1: Label '{label}' bound to instruction index {index}")
            line = line[label_match.end():]
            label_match = LABEL_RE.match(line)

        if not line:
            return True # Labels only

        # --- Opcode ---
        mnemonic_split = split(line, ' ', 1)
        opcode_str = mnemonic_split[0]
        opcode = OPCODE_MAP.get(opcode_str)
        if opcode is None:
            self._add_error(line_num, f"Invalid opcode: '{opcode_str}'", original_line, ERR_INVALID_OPCODE)
            return False

        instr = Instruction(opcode, line_num=line_num, source=self.current_source)
        if len(mnemonic_split) > 1:
            if not self._parse_operand_list(instr, mnemonic_split[1], line_num, original_line):
                return False

        # Malformed literals are reported without stopping the scan
        if len(self.errors) > errors_before:
            return False

        self.instructions.append(instr)
        logger.debug(f"Pass 1: Instruction {len(self.instructions) - 1}: '{instr}' ({instr.word_count()} words)")
        return True

    def process(self, assembly_code, source="<input>"):
        """
        Pass 1 over one source: either a string or an iterable of lines.
        Labels and instructions accumulate across calls. Stops at the first
        line holding an error and returns False.
        """
        self.current_source = source
        lines = assembly_code.splitlines() if isinstance(assembly_code, str) else assembly_code
        logger.debug(f"--- Pass 1: {source} ---")
        for i, line in enumerate(lines):
            if not self.process_line(line, i + 1):
                logger.debug(f"Pass 1: aborting {source} at line {i + 1}")
                return False
        return True

    def compute_addresses(self):
        """ Starting word address of every instruction. """
        addresses = []
        current_address = 0
        for instr in self.instructions:
            addresses.append(current_address)
            current_address += instr.word_count()
        self.addresses = addresses
        return addresses

    def resolve(self):
        """ Pass 2: rewrite every label operand into an immediate holding the target's word address. """
        logger.debug("--- Pass 2: Resolving labels ---")
        addresses = self.compute_addresses()
        count = len(self.instructions)
        resolved = True

        for label, index in self.labels.items():
            if index >= count:
                logger.warning(f"Label '{label}' is not followed by any instruction")

        for instr in self.instructions:
            for operand in instr.iter_operands():
                if operand.kind != OperandKind.LABEL:
                    continue
                index = self.labels.get(operand.label)
                if index is None:
                    self._add_error(instr.line_num, f"Undefined label: '{operand.label}'", str(instr), ERR_UNKNOWN_LABEL, instr.source)
                    resolved = False
                    continue
                if index >= count:
                    self._add_error(instr.line_num, f"Label '{operand.label}' has no following instruction", str(instr), ERR_UNKNOWN_LABEL, instr.source)
                    resolved = False
                    continue
                logger.debug(f"Pass 2: '{operand.label}' -> 0x{addresses[index]:04x}")
                if addresses[index] > VALUE_MASK:
                    logger.warning(f"{instr.source} line {instr.line_num}: label '{operand.label}' resolves to 0x{addresses[index]:04x}, "
                                   f"which does not fit the 12-bit operand field and will encode as 0x{addresses[index] & VALUE_MASK:03x}")
                operand.kind = OperandKind.IMMEDIATE
                operand.value = addresses[index]
                operand.label = None

        return resolved

    def encode(self):
        """ Encodes the resolved program. Returns the byte stream, or None on error. """
        if self.errors:
            logger.debug("Refusing to encode a program with errors")
            return None
        try:
            self.machine_code = self.encoder.encode(self.instructions)
        except EncodingError as e:
            instr = e.instruction
            self._add_error(instr.line_num if instr else 0, str(e), str(instr) if instr else "", e.kind,
                            instr.source if instr else None)
            self.machine_code = []
            return None
        return pack_words([w for words in self.machine_code for w in words])

    def label_addresses(self):
        """ Label name -> resolved word address, for labels with a target. """
        return {label: self.addresses[index] for label, index in self.labels.items() if index < len(self.addresses)}

    def listing(self):
        """ One line of 16-bit binary words per encoded instruction. """
        return [" ".join(to_bin16(w) for w in words) for words in self.machine_code]

    def assemble(self, assembly_code):
        """ Main method: assembles one source string or a list of them into a single program. """
        logger.info("Starting assembly process...")
        self.reset()
        sources = [assembly_code] if isinstance(assembly_code, str) else list(assembly_code)

        binary = None
        for i, code in enumerate(sources):
            if not self.process(code, source=f"<source {i}>" if len(sources) > 1 else "<input>"):
                break
        else:
            if self.resolve():
                binary = self.encode()

        formatted_output = []
        if binary is not None:
            for code in (w for words in self.machine_code for w in words):
                formatted_output.append({
                    "hex": to_hex16(code),
                    "bin": to_bin16(code),
                    "dec": str(code)
                })

        if self.errors:
            logger.warning(f"Assembly completed with {len(self.errors)} errors.")
        else:
            logger.info("Assembly successful.")

        return {
            "machine_code": formatted_output,
            "binary": binary.hex() if binary is not None else "",
            "labels": self.label_addresses() if binary is not None else {},
            "errors": self.errors
        }
