class RefMonsterError(Exception):
    status_code = 500


class ValidationError(RefMonsterError):
    status_code = 400


class ConfigError(RefMonsterError):
    pass


class UpstreamError(RefMonsterError):
    """The model API answered with nothing usable, or failed outright."""


class ParseError(RefMonsterError):
    pass


class GenerationError(RefMonsterError):
    """Valid JSON came back but nothing in it survived filtering."""
