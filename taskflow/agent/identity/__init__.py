from taskflow.agent.identity.lookup import (
    CallerProfile,
    DirectoryIdentityLookup,
    IdentityLookup,
    IdentityResolutionError,
    UnauthenticatedCaller,
)

__all__ = [
    "CallerProfile",
    "DirectoryIdentityLookup",
    "IdentityLookup",
    "IdentityResolutionError",
    "UnauthenticatedCaller",
]
