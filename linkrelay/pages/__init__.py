from .render import render_expired, render_invalid, render_shell

__all__ = ["render_expired", "render_invalid", "render_shell"]
