"""Exception hierarchy shared by the candle pipeline and its collaborators."""


class MACrossBotError(Exception):
    """Base class for every error raised by the bot."""


class ConfigurationError(MACrossBotError):
    """Missing or invalid configuration detected at startup."""


class ExchangeError(MACrossBotError):
    """Transport failure talking to the exchange, including dropped streams."""


class InsufficientDataError(MACrossBotError):
    """Fewer bars or values are available than requested."""


class RateLimitExceeded(MACrossBotError):
    """Tokens did not become available before the acquire timeout."""
