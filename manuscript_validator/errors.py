from __future__ import annotations


class ManuscriptValidatorError(Exception):
    """Base class for errors raised while validating or fixing a manuscript."""


class InputError(ManuscriptValidatorError):
    """The project data is malformed: missing manuscript, dangling reference, bad IDs."""


class InvariantError(ManuscriptValidatorError):
    """A precondition of a check or fix does not hold for the given document."""
