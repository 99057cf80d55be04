"""Exceptions raised by the signal engine."""


class SignalEngineError(Exception):
    """Base class for signal engine failures"""


class SignalGenerationError(SignalEngineError):
    """An upstream analysis failed while generating a signal"""

    def __init__(self, ticker: str, message: str):
        super().__init__(f"Failed to generate signal for {ticker}: {message}")
        self.ticker = ticker


class SignalNotFoundError(SignalEngineError):
    """No stored signal exists for the requested id"""

    def __init__(self, signal_id: str):
        super().__init__(f"Signal {signal_id} not found")
        self.signal_id = signal_id
