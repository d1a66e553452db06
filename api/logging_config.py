import sys

from loguru import logger


def configure_logging(level: str = "INFO") -> None:
    """
    Configure loguru to emit structured JSON logs to stdout.

    Fields include:
      - time, level, message
      - module, function, line
      - any bound fields (logger.bind(...)) from the engine and routers
    """
    logger.remove()

    logger.add(
        sys.stdout,
        level=(level or "INFO").upper(),
        serialize=True,  # JSON output
        backtrace=False,
        diagnose=False,
    )

    # engine is disabled by default as a library; the service wants its logs
    logger.enable("safety_engine")
