import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    # idempotente: uvicorn --reload importa main más de una vez
    for h in root.handlers:
        if getattr(h, "_flowgroups", False):
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._flowgroups = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # el SQL de SQLAlchemy solo en DEBUG explícito
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
