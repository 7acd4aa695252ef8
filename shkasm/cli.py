# shkasm/cli.py
import sys
import argparse
import logging

from shkasm.shk_assembler import ShkAssembler

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_ASSEMBLY = 2


class _ArgumentParser(argparse.ArgumentParser):
    """Reports usage errors with exit status 1 instead of argparse's 2."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def build_parser():
    ap = _ArgumentParser(prog="shkasm", description="Two-pass assembler for the shk 16-bit instruction set")
    ap.add_argument("inputs", nargs="+", metavar="INPUT", help="assembly source files, assembled into one program")
    ap.add_argument("-o", "--output", default="a.out", help="binary output path (default: a.out)")
    ap.add_argument("-v", "--verbose", action="store_true", help="echo every encoded word as a 16-bit binary string")
    ap.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                    help="logging level (default: WARNING)")
    return ap


def _report_errors(errors):
    for err in errors:
        print(f"{err['source']}:{err['line']}: error: {err['message']} [{err['kind']}]", file=sys.stderr)


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    assembler = ShkAssembler()
    for path in args.inputs:
        try:
            with open(path, "r", encoding="utf-8") as f:
                ok = assembler.process(f, source=path)
        except OSError as ex:
            print(f"shkasm: {path}: failed to open: {ex}", file=sys.stderr)
            return EXIT_USAGE
        except UnicodeDecodeError as ex:
            print(f"shkasm: {path}: failed to read: {ex}", file=sys.stderr)
            return EXIT_USAGE
        if not ok:
            _report_errors(assembler.errors)
            return EXIT_ASSEMBLY

    if not assembler.resolve():
        _report_errors(assembler.errors)
        return EXIT_ASSEMBLY

    binary = assembler.encode()
    if binary is None:
        _report_errors(assembler.errors)
        return EXIT_ASSEMBLY

    if args.verbose:
        for line in assembler.listing():
            print(line, file=sys.stderr)

    try:
        with open(args.output, "wb") as f:
            f.write(binary)
    except OSError as ex:
        print(f"shkasm: {args.output}: failed to write: {ex}", file=sys.stderr)
        return EXIT_USAGE

    logger.info(f"Wrote {len(binary)} bytes to {args.output}")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
