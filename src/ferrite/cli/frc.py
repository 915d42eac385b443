"""
frc - MiniRS Compiler Command-Line Interface
============================================

Compiles one MiniRS source file and writes the assembly to stdout.

Usage Examples
--------------
Basic compilation:
    $ frc fib.rs > fib.s

Assemble, link and run (on an arm64 Mac):
    $ frc fib.rs > fib.s && clang -o fib fib.s && ./fib; echo $?

Debug logging:
    $ FRC_LOG_LEVEL=DEBUG frc fib.rs > fib.s

Exit Codes
----------
| Code | Meaning                                   |
|------|-------------------------------------------|
| 0    | Success                                   |
| 1    | Compilation error (reported on stderr)    |
| 2    | Invalid arguments or unreadable input     |
| 3    | Internal error                            |
"""

import logging
import os
from pathlib import Path

import click

from ferrite.cli.errors import handle_cli_exception
from ferrite.minirs import MiniRSCompiler


# Environment variable selecting the log level
LOG_LEVEL_ENV = "FRC_LOG_LEVEL"

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    """Configure logging to stderr from FRC_LOG_LEVEL (default WARNING)."""
    name = os.environ.get(LOG_LEVEL_ENV, "WARNING").upper()
    level = getattr(logging, name, None)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
def main(path: Path) -> None:
    """
    Compile MiniRS source code to AArch64 assembly.

    PATH is the MiniRS source file to compile. The assembly is written
    to stdout; diagnostics go to stderr.

    \b
    Examples:
        frc fib.rs > fib.s
        clang -o fib fib.s
    """
    setup_logging()

    try:
        source = path.read_text(encoding="utf-8")
        logger.debug("Compiling %s (%d bytes)", path, len(source))

        result = MiniRSCompiler().compile_source(source, str(path))
        click.echo(result.assembly, nl=False)

    except Exception as e:
        handle_cli_exception(e, verbose=logger.isEnabledFor(logging.DEBUG))


if __name__ == "__main__":
    main()
