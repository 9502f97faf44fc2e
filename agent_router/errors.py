"""
Error taxonomy for the routing engines.

ConfigurationError reaches callers. PersistenceError is raised by the
snapshot helpers and by the table import API (``QLearningRouter.import_table``);
the engines' load/save paths convert it into a logged warning and a False
return. LearningNoOp is always converted into a logged warning plus a
neutral return value.
"""


class RouterError(Exception):
    """Base class for all agent_router errors."""


class ConfigurationError(RouterError, ValueError):
    """Caller bug: bad configuration or an embedding of the wrong shape."""


class PersistenceError(RouterError):
    """Snapshot could not be read, parsed, validated or written."""


class LearningNoOp(RouterError):
    """A learning call that cannot be applied (unknown action, no forward pass)."""
