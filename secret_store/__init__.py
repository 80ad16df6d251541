# HEARTH v1.0
from secret_store.manager import SecretManager, generate_secret, derive_secret

__all__ = ['SecretManager', 'generate_secret', 'derive_secret']
