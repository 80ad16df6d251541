# HEARTH v1.0 - Logging setup
import logging

from rich.console import Console
from rich.logging import RichHandler

# Hooks run under the service manager; stdout stays clean
_stderr_console = Console(stderr=True)
_configured = False


def setup_logging(level='INFO'):
    '''Configure the root logger once per process'''
    global _configured
    if _configured:
        logging.getLogger().setLevel(level.upper())
        return

    handler = RichHandler(
        console=_stderr_console,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    logging.basicConfig(
        level=level.upper(),
        format='%(name)s: %(message)s',
        datefmt='[%X]',
        handlers=[handler],
    )
    _configured = True
