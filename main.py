# HEARTH v1.0
import sys
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

USAGE = """Usage:
  main.py serve [--port N]                          Run the HTTP API
  main.py configure <prestart|poststart> <app>      Run a service hook
  main.py configure reconcile                       Reconcile all installed apps
  main.py init-secrets [data-dir]                   Generate the secret bundle"""


def print_header():
    '''Print HEARTH startup header with Rich'''

    console = Console()

    logo = Text()
    logo.append("  HEARTH", style="bold cyan")
    logo.append("  v1.0", style="bold white")
    logo.append("  |  Home Server App Orchestrator", style="dim")

    panel = Panel(
        logo,
        border_style="cyan",
        padding=(1, 2)
    )

    console.print()
    console.print(panel)
    console.print()


def _load_secrets(config):
    from secret_store import SecretManager

    secrets = SecretManager(config.secrets_path)
    secrets.load()
    return secrets


def main(argv):
    from config import load_config
    from utils.log import setup_logging

    if not argv or argv[0] in ('-h', '--help', 'help'):
        print(USAGE)
        return 0 if argv else 1

    config = load_config()
    setup_logging(config.log_level)
    command, rest = argv[0], argv[1:]

    if command == 'configure':
        from cli.configure import handle_configure_command
        return handle_configure_command(rest, config)

    if command == 'init-secrets':
        from cli.init_secrets import handle_init_secrets
        return handle_init_secrets(rest, config)

    if command == 'serve':
        from utils.errors import ValidationError
        from utils.validation import validate_port
        port = None
        for i, arg in enumerate(rest):
            if arg == '--port' and i + 1 < len(rest):
                try:
                    port = validate_port(rest[i + 1])
                except ValidationError as e:
                    print(f"Invalid port: {e}")
                    return 2

        secrets = _load_secrets(config)
        config = load_config(secrets)
        print_header()
        from web.server import run_web
        run_web(config, secrets, port=port)
        return 0

    print(f"Unknown command: {command}")
    print(USAGE)
    return 1


def cli():
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
