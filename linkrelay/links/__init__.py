from .issuer import (
    IssuedLink,
    LinkValidationError,
    build_resolve_path,
    issue_link,
    resolve_base_url,
)

__all__ = [
    "IssuedLink",
    "LinkValidationError",
    "build_resolve_path",
    "issue_link",
    "resolve_base_url",
]
