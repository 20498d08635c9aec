"""Exception hierarchy for the sync and valuation pipeline."""


class WalletPnlError(Exception):
    """Base class for all walletpnl errors."""


class ExternalServiceError(WalletPnlError):
    """An upstream API returned an error or an unusable payload."""


class RateLimitError(ExternalServiceError):
    """Upstream signalled a rate limit (HTTP 429). Retried with backoff."""


class UpstreamUnavailableError(ExternalServiceError):
    """Every source for a value was tried and none produced one."""


class TransactionFetchError(ExternalServiceError):
    """Ledger history could not be fetched for a wallet."""


class MalformedRecordError(WalletPnlError):
    """A single ledger transaction could not be parsed."""

    def __init__(self, tx_hash: str | None, message: str) -> None:
        super().__init__(f"Malformed transaction {tx_hash or '<unknown>'}: {message}")
        self.tx_hash = tx_hash


class SyncFailure(WalletPnlError):
    """A sync run could not complete; recorded on the sync record, never raised to callers."""


class SyncSuperseded(SyncFailure):
    """The record was reset by a newer trigger while this run was still going."""
