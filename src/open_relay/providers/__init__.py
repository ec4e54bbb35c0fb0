"""Provider profiles and per-vendor hooks."""

from open_relay.providers.builtin import available_profiles, get_profile, register_profile
from open_relay.providers.profile import ProviderProfile

__all__ = [
    "ProviderProfile",
    "available_profiles",
    "get_profile",
    "register_profile",
]
