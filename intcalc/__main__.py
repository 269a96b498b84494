import logging
import os
import sys

import intcalc

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
USAGE = "Usage: intcalc <expression>"

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    level = os.environ.get("INTCALC_LOG_LEVEL", "WARNING").upper()
    if not isinstance(logging.getLevelName(level), int):
        level = "WARNING"
    logging.basicConfig(level=level, format=LOG_FORMAT)


def run(src: str) -> int:
    try:
        result = intcalc.calculate(src)
    except intcalc.ExpressionSyntaxError as e:
        print(e, file=sys.stderr)
        return 1
    except intcalc.EvaluationError as e:
        print(f"Error:              {e}", file=sys.stderr)
        return 1
    print(f"Postfix expression: {result.postfix_text}")
    print(f"Evaluation:         {result.value}")
    return 0


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    if argv is None:
        argv = sys.argv[1:]
    src = "".join(argv).strip()
    if not src:
        print(USAGE, file=sys.stderr)
        return 1
    return run(src)


def repl() -> None:
    configure_logging()
    while True:
        try:
            src = input("% ")
        except EOFError:
            print()
            break

        src = src.strip()
        if src:
            status = run(src)
            logger.debug("%r exited with %d", src, status)


if __name__ == "__main__":
    sys.exit(main())
