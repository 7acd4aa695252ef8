# shkasm/shk_lexer.py
import re

from shkasm.shk_consts import COMMENT_CHAR

# Digits accepted per base, consumed greedily from the start of the literal
_DIGITS_RE = {
    2: re.compile(r'[01]+'),
    8: re.compile(r'[0-7]+'),
    10: re.compile(r'[0-9]+'),
    16: re.compile(r'[0-9a-fA-F]+'),
}
_BASE_PREFIXES = {'x': 16, 'o': 8, 'b': 2}


def trim(text, delimiter=' '):
    """Drops the leading run of `delimiter` characters."""
    return text.lstrip(delimiter)


def split(text, delimiter=' ', max_splits=0):
    """
    Splits `text` on a single delimiter character.

    A leading run of delimiters is skipped. Runs between two delimiters are
    returned in order (adjacent delimiters yield an empty segment) and an
    empty trailing segment is dropped. With `max_splits` > 0, once that many
    segments have been produced the rest of the text is returned verbatim as
    the final segment.
    """
    parts = []
    first = len(text) - len(trim(text, delimiter))
    for i in range(first, len(text)):
        if text[i] != delimiter:
            continue
        parts.append(text[first:i])
        first = i + 1
        if max_splits and len(parts) >= max_splits:
            parts.append(text[first:])
            return parts
    if first < len(text):
        parts.append(text[first:])
    return parts


def strip_comment(line):
    """Returns the part of the line before the first ';', tabs as spaces."""
    return line.expandtabs(1).split(COMMENT_CHAR, 1)[0]


def parse_literal(text):
    """
    Parses an unsigned 16-bit numeric literal.

    Base 10 by default; '0x'/'0o'/'0b' select 16/8/2 and a bare leading '0'
    followed by more digits selects octal. Raises ValueError when no digit
    of the selected base is found or the value overflows 16 bits.
    """
    if not text:
        raise ValueError("expected numeric literal")

    base = 10
    digits = text
    if text[0] == '0' and len(text) >= 2:
        base = _BASE_PREFIXES.get(text[1].lower())
        if base:
            digits = text[2:]
        else:
            base = 8
            digits = text[1:]

    match = _DIGITS_RE[base].match(digits)
    if not match:
        raise ValueError(f"failed to parse numeric literal: '{text}'")

    value = int(match.group(0), base)
    if value > 0xFFFF:
        raise ValueError(f"numeric literal '{text}' out of range for 16-bit unsigned value (0 to 65535)")
    return value
