from .identity_client import IdentityProviderClient

__all__ = ["IdentityProviderClient"]
