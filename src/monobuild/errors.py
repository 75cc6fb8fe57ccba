from __future__ import annotations


class MonobuildError(Exception):
    """Base class for errors raised by monobuild."""


class ConfigurationError(MonobuildError):
    """The run cannot start: bad config, unknown project ids, a dependency cycle,
    or a missing link file. Raised before any build command executes."""
