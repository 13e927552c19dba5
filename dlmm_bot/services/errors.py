"""Error taxonomy shared by the engine and the collaborator adapters."""


class DlmmBotError(Exception):
    """Base class for all service errors."""


class TransientError(DlmmBotError):
    """Temporary failure; the next tick retries."""


class PriceUnavailableError(TransientError):
    """Neither the price source nor the pool's active bin produced a price."""


class SwapRouterError(TransientError):
    """Quote or swap-build request failed."""


class PoolDataError(TransientError):
    """Pool SDK bridge request failed for a reason other than a missing position."""


class PositionNotFoundError(DlmmBotError):
    """The position no longer exists on chain (closed externally)."""

    def __init__(self, position_address: str):
        super().__init__(f"Position {position_address} not found")
        self.position_address = position_address


class InsufficientBalanceError(DlmmBotError):
    def __init__(self, mint: str, required: int, available: int):
        super().__init__(
            f"Insufficient balance for {mint}: required {required}, available {available}"
        )
        self.mint = mint
        self.required = required
        self.available = available


class InvalidAmountError(DlmmBotError):
    """Amount is NaN, non-positive or outside the sane swap range."""


class TransactionSimulationError(DlmmBotError):
    """Preflight simulation rejected the transaction. Never retried."""

    def __init__(self, message: str, logs: list[str] | None = None):
        super().__init__(message)
        self.logs = list(logs or [])


class TransactionFailedError(DlmmBotError):
    """Transaction landed but its execution failed."""
