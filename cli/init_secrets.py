# HEARTH v1.0
from pathlib import Path

from cli.ui import show_error, show_info, show_result_panel
from secret_store import SecretManager
from utils.errors import HearthError


def handle_init_secrets(args, config):
    '''Generate the secret bundle unless it already exists'''
    if args:
        secrets_path = Path(args[0]) / 'secrets' / 'secrets.json'
    else:
        secrets_path = config.secrets_path

    if secrets_path.exists():
        show_info(f"Secrets already exist at {secrets_path}")
        return 0

    try:
        SecretManager(secrets_path).load()
    except HearthError as e:
        show_error(f"Failed to generate secrets: {e}")
        return 1

    env_files = sorted(p.name for p in secrets_path.parent.glob('*.env'))
    show_result_panel(
        f"Generated secrets at {secrets_path}\n\n"
        f"Env files: {', '.join(env_files)}",
        title="Secrets"
    )
    return 0
