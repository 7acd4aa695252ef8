# shkasm/tests/test_assembler.py
import pytest
from shkasm.shk_assembler import ShkAssembler
from shkasm.shk_consts import (
    Opcode, OperandKind, CommandType, ERR_INVALID_OPCODE, ERR_INVALID_COMMAND, ERR_SYNTAX,
    ERR_UNQUALIFIED_LITERAL, ERR_UNKNOWN_LABEL, ERR_UNRESOLVED_AT_ENCODE
)

@pytest.fixture
def assembler():
    """Provides a new ShkAssembler instance for each test."""
    return ShkAssembler()

def hex_words(result):
    return [item["hex"] for item in result["machine_code"]]

# --- Basic Instruction Tests ---

def test_assemble_mov_hlt(assembler):
    result = assembler.assemble("MOV #5, $1\nHLT")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    # MOV=0x8, imm 5, reg 1 (kind 1 << 12), HLT=0x2
    assert hex_words(result) == ["0x0008", "0x0005", "0x1001", "0x0002"]
    assert result["binary"] == "0008000510010002"
    assert len(bytes.fromhex(result["binary"])) == 8

def test_assemble_all_opcodes(assembler):
    code = "NOP\nHLT\nDIE\nLOD $1, *2\nSTO $1, *2\nMOV #1, $2\nADD #1, $2\nCMP $1, $2"
    result = assembler.assemble(code)
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    opcodes = [instr.opcode for instr in assembler.instructions]
    assert opcodes == [Opcode.NOP, Opcode.HLT, Opcode.DIE, Opcode.LOD, Opcode.STO, Opcode.MOV, Opcode.ADD, Opcode.CMP]
    assert hex_words(result)[:3] == ["0x0000", "0x0002", "0x0003"]

def test_assemble_dereference(assembler):
    result = assembler.assemble("STO $1, *0x20")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    assert hex_words(result) == ["0x0005", "0x1001", "0x3020"]

def test_assemble_comments_and_blank_lines(assembler):
    code = """; just a comment

    NOP ; trailing comment
    """
    result = assembler.assemble(code)
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    assert hex_words(result) == ["0x0000"]

def test_assemble_trailing_comma(assembler):
    result = assembler.assemble("MOV #1, $2,")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    assert hex_words(result) == ["0x0008", "0x0001", "0x1002"]

def test_assemble_extra_words_ignored(assembler):
    result = assembler.assemble("MOV #1 junk, $2")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    assert hex_words(result) == ["0x0008", "0x0001", "0x1002"]

def test_assemble_empty(assembler):
    result = assembler.assemble("")
    assert result == {"machine_code": [], "binary": "", "labels": {}, "errors": []}
    assert assembler.instructions == []

# --- Commands, segments and data ---

def test_assemble_command(assembler):
    result = assembler.assemble("CMP $1, #2, !eq $3 #4")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    instr = assembler.instructions[0]
    assert instr.commands[0].type == CommandType.EQ
    assert len(instr.commands[0].operands) == 2
    # eq tag, its operands, then CMP and its operands
    assert hex_words(result) == ["0x8000", "0x1003", "0x0004", "0x000b", "0x1001", "0x0002"]

def test_assemble_segment_operand(assembler):
    result = assembler.assemble("LOD $1:#16, $2")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    operand = assembler.instructions[0].operands[0]
    assert operand.kind == OperandKind.IMMEDIATE and operand.value == 16
    assert operand.segment.kind == OperandKind.REGISTER and operand.segment.value == 1
    # segment word: bit 15 | reg kind | 1 -> 0x9001
    assert hex_words(result) == ["0x0004", "0x9001", "0x0010", "0x1002"]

def test_segment_prefix_adds_one_word_to_addresses(assembler):
    code = """
    LOD $1:#16, $2
    next: NOP
    MOV next, $0
    """
    result = assembler.assemble(code)
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    # LOD occupies words 0..3
    assert assembler.addresses == [0, 4, 5]
    assert result["labels"] == {"next": 4}

def test_segment_label_resolved(assembler):
    result = assembler.assemble("MOV $1:target, $2\ntarget: HLT")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    assert hex_words(result) == ["0x0008", "0x9001", "0x0004", "0x1002", "0x0002"]

def test_label_as_segment_resolved(assembler):
    result = assembler.assemble("base: NOP\nLOD base:#3, $0")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    assert hex_words(result) == ["0x0000", "0x0004", "0x8000", "0x0003", "0x1000"]

def test_data_pseudo_instruction(assembler):
    code = """
    DAT #1, #2
    after: NOP
    MOV after, $0
    """
    result = assembler.assemble(code)
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    assert assembler.instructions[0].opcode == Opcode.DATA
    assert hex_words(result) == ["0x0001", "0x0002", "0x0000", "0x0008", "0x0002", "0x1000"]

# --- Labels ---

def test_backward_label(assembler):
    result = assembler.assemble("LOOP: NOP\nMOV #0, LOOP")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    operand = assembler.instructions[1].operands[1]
    assert operand.kind == OperandKind.IMMEDIATE
    assert operand.value == 0
    assert operand.label is None

def test_forward_label(assembler):
    code = """
    MOV end, $1
    NOP
    end: HLT
    """
    result = assembler.assemble(code)
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    # MOV is 3 words, NOP at 3, HLT at 4
    assert hex_words(result) == ["0x0008", "0x0004", "0x1001", "0x0000", "0x0002"]

def test_two_labels_on_one_line(assembler):
    result = assembler.assemble("NOP\nA: B: MOV #1, $2\nCMP A, B")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    a, b = assembler.instructions[2].operands
    assert a.value == b.value == 1
    assert result["labels"] == {"A": 1, "B": 1}

def test_label_only_lines(assembler):
    code = """
    start:
    foo: bar:
    NOP
    MOV start, bar
    """
    result = assembler.assemble(code)
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    assert result["labels"] == {"start": 0, "foo": 0, "bar": 0}

def test_label_in_command_resolved(assembler):
    result = assembler.assemble("top: NOP\nCMP $1, !eq top")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    assert assembler.instructions[1].commands[0].operands[0].value == 0

def test_label_redeclared_overwrites(assembler):
    result = assembler.assemble("a: NOP\na: HLT\nMOV a, $0")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    assert result["labels"]["a"] == 1

def test_resolved_values_match_addresses(assembler):
    code = """
    first: CMP $1, !eq #1 #2
    second: DAT #7
    third: MOV first, second
    fourth: ADD third, fourth
    """
    assembler.process(code)
    assert assembler.resolve()
    addresses = assembler.addresses
    # address(k) = address(k-1) + wordcount(k-1)
    assert addresses[0] == 0
    for k in range(1, len(addresses)):
        assert addresses[k] == addresses[k - 1] + assembler.instructions[k - 1].word_count()
    assert [op.value for op in assembler.instructions[2].operands] == [addresses[0], addresses[1]]
    assert [op.value for op in assembler.instructions[3].operands] == [addresses[2], addresses[3]]

def test_resolve_is_idempotent(assembler):
    assembler.process("x: MOV y, $1\ny: CMP x, !eq y")
    assert assembler.resolve()
    first_addresses = list(assembler.addresses)
    first_values = [(op.kind, op.value) for instr in assembler.instructions for op in instr.iter_operands()]
    assert assembler.resolve()
    assert assembler.addresses == first_addresses
    assert [(op.kind, op.value) for instr in assembler.instructions for op in instr.iter_operands()] == first_values

def test_multiple_sources_share_labels(assembler):
    result = assembler.assemble(["start: MOV done, $0", "done: HLT\nMOV start, $1"])
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    assert hex_words(result) == ["0x0008", "0x0003", "0x1000", "0x0002", "0x0008", "0x0000", "0x1001"]

def test_process_accepts_line_iterables(assembler):
    assert assembler.process(["MOV #5, $1\n", "HLT\n"], source="prog.s")
    assert assembler.resolve()
    assert assembler.encode() == b"\x00\x08\x00\x05\x10\x01\x00\x02"
    assert assembler.listing() == [
        "0000000000001000 0000000000000101 0001000000000001",
        "0000000000000010",
    ]

# --- Error Tests ---

def test_undefined_label(assembler):
    result = assembler.assemble("MOV nowhere, $1")
    assert [e["kind"] for e in result["errors"]] == [ERR_UNKNOWN_LABEL]
    assert result["machine_code"] == []
    assert result["binary"] == ""

def test_trailing_label_without_instruction(assembler):
    result = assembler.assemble("NOP\nMOV #1, end\nend:")
    assert [e["kind"] for e in result["errors"]] == [ERR_UNKNOWN_LABEL]
    assert result["machine_code"] == []

def test_unreferenced_trailing_label_is_allowed(assembler):
    result = assembler.assemble("NOP\nend:")
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    assert hex_words(result) == ["0x0000"]

@pytest.mark.parametrize("code", ["FOO #1", "mov #1, $2"])
def test_invalid_opcode(assembler, code):
    result = assembler.assemble(code)
    assert [e["kind"] for e in result["errors"]] == [ERR_INVALID_OPCODE]
    assert result["machine_code"] == []

def test_invalid_command(assembler):
    result = assembler.assemble("CMP $1, !ne #2")
    assert [e["kind"] for e in result["errors"]] == [ERR_INVALID_COMMAND]

def test_unqualified_literal(assembler):
    result = assembler.assemble("MOV 5, $1")
    assert [e["kind"] for e in result["errors"]] == [ERR_UNQUALIFIED_LITERAL]

def test_malformed_literals_accumulate_on_line(assembler):
    result = assembler.assemble("MOV #zz, #0xg")
    assert len(result["errors"]) == 2
    assert all(e["kind"] == ERR_SYNTAX and e["line"] == 1 for e in result["errors"])
    assert assembler.instructions == []

def test_empty_segment_operand(assembler):
    result = assembler.assemble("LOD :#1, $2")
    assert [e["kind"] for e in result["errors"]] == [ERR_SYNTAX]

def test_error_aborts_rest_of_source(assembler):
    result = assembler.assemble("NOP\nFOO\nMOV missing, $1")
    # Only the opcode error: processing stops before the unknown label is seen
    assert len(result["errors"]) == 1
    assert result["errors"][0]["line"] == 2
    assert result["errors"][0]["kind"] == ERR_INVALID_OPCODE

def test_error_records_source(assembler):
    assert not assembler.process("NOP\nBAD", source="main.s")
    assert assembler.errors[0]["source"] == "main.s"
    assert assembler.errors[0]["text"] == "BAD"

def test_encode_without_resolve(assembler):
    assert assembler.process("MOV x, $1\nx: NOP")
    assert assembler.encode() is None
    assert [e["kind"] for e in assembler.errors] == [ERR_UNRESOLVED_AT_ENCODE]

def test_label_needs_space_before_instruction(assembler):
    # 'LOOP:NOP' is read as a single (unknown) mnemonic, not a label declaration
    result = assembler.assemble("LOOP:NOP")
    assert [e["kind"] for e in result["errors"]] == [ERR_INVALID_OPCODE]
    assert assembler.labels == {}

def test_label_address_beyond_12_bits_warns(assembler, caplog):
    code = "MOV far, $0\n" + "NOP\n" * 4100 + "far: HLT"
    result = assembler.assemble(code)
    assert not result["errors"], f"Expected no errors, got: {result['errors']}"
    # far: 3 + 4100 = 4103 (0x1007), only the low 12 bits are encoded
    assert result["labels"]["far"] == 4103
    assert hex_words(result)[1] == "0x0007"
    assert any("'far'" in record.getMessage() for record in caplog.records if record.levelname == "WARNING")
