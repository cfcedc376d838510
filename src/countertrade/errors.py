from __future__ import annotations


class CountertradeError(Exception):
    """
    Base class for all errors raised by this package.
    """


class ConfigurationError(CountertradeError):
    """
    Missing or invalid configuration. Fatal at startup.
    """


class SizingError(CountertradeError):
    """
    The counter-order quantity could not be computed from the given inputs.
    """


class DivisionByZero(SizingError, ZeroDivisionError):
    """
    A sizing divisor (primary equity or reference price) was zero.
    """


class ExchangeError(CountertradeError):
    """
    Transport-level failure talking to the exchange (HTTP status, bad payload).
    """
