from __future__ import annotations

import logging
import sys

import structlog

_NOISE_LOGGERS = (
  "httpx",
  "httpcore",
  "sqlalchemy.engine",
  "uvicorn.access",
)


def _pre_chain(time_fmt: str) -> list[structlog.types.Processor]:
  return [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt=time_fmt),
    structlog.stdlib.ExtraAdder(),
  ]


def configure_logging(level: str = "INFO", fmt: str = "console") -> None:
  """Route every stdlib logger through structlog.

  Call sites keep using ``logging.getLogger(__name__)``; sync runs bind ``user_id``,
  ``provider`` and ``connection_id`` with ``structlog.contextvars`` so each line carries them.
  """
  if fmt == "json":
    pre_chain = _pre_chain("iso")
    renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
  else:
    pre_chain = _pre_chain("%H:%M:%S")
    renderer = structlog.dev.ConsoleRenderer()

  formatter = structlog.stdlib.ProcessorFormatter(
    processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    foreign_pre_chain=pre_chain,
  )
  handler = logging.StreamHandler(sys.stderr)
  handler.setFormatter(formatter)

  root = logging.getLogger()
  root.handlers.clear()
  root.addHandler(handler)
  root.setLevel(getattr(logging, level.upper(), logging.INFO))

  for name in _NOISE_LOGGERS:
    logging.getLogger(name).setLevel(logging.WARNING)


def bind_sync_context(**values: object) -> None:
  structlog.contextvars.bind_contextvars(**{k: v for k, v in values.items() if v is not None})


def clear_sync_context() -> None:
  structlog.contextvars.clear_contextvars()
