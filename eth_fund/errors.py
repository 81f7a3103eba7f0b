"""Fund flow exceptions.

All exceptions raised by the fund deployment, subscription and redemption flows
inherit from :py:class:`FundFlowError`. None of them are fatal:
the flow that raised one is returned to its idle state and the action can be retried.

Use :py:func:`describe_error` to turn an exception to a message shown to the user.
"""


class FundFlowError(Exception):
    """Base class for fund flow errors."""


class ConfigurationError(FundFlowError):
    """Bad or missing fund manager input.

    Fix the fund configuration draft and resubmit.
    """


class UnsupportedAssetError(FundFlowError):
    """Denomination asset or contract is not in the network registry."""


class InvalidAmountError(FundFlowError):
    """Amount is not a positive decimal within the token precision, or exceeds the balance."""


class InsufficientAllowanceError(FundFlowError):
    """Deposit attempted before the approval was confirmed on-chain."""

    def __init__(self, message: str, allowance: int = 0, required: int = 0):
        super().__init__(message)
        self.allowance = allowance
        self.required = required


class WalletRejectedError(FundFlowError):
    """The user declined signing the transaction in their wallet."""


class WalletNotConnectedError(FundFlowError):
    """No signer was given for a flow that needs to broadcast transactions."""


class ActionInFlightError(FundFlowError):
    """A mutating action is already outstanding for this flow instance."""


class ChainExecutionError(FundFlowError):
    """Transaction could not be broadcast, or it reverted on-chain.

    :py:attr:`phase` tells the two apart, as the user remediation differs.
    """

    #: The transaction never left our wallet
    BROADCAST = "broadcast"

    #: The transaction was mined, but reverted
    CONFIRMED = "confirmed"

    def __init__(self, reason: str, phase: str = CONFIRMED, tx_hash: str | None = None):
        assert phase in (self.BROADCAST, self.CONFIRMED), f"Unknown phase: {phase}"
        super().__init__(reason)
        self.reason = reason
        self.phase = phase
        self.tx_hash = tx_hash

    def is_reverted(self) -> bool:
        return self.phase == self.CONFIRMED


class NetworkReadError(FundFlowError):
    """A read-only chain query failed.

    Raised and recorded by the poller; the next poll supersedes it.
    """


def describe_error(e: Exception) -> str:
    """Get a user-facing message for a flow error.

    Unknown exceptions are described by their string presentation
    so that nothing is silently hidden from the user.
    """
    if isinstance(e, ChainExecutionError):
        if e.phase == ChainExecutionError.BROADCAST:
            return f"Transaction could not be sent: {e.reason}. Please try again."
        tx = f" ({e.tx_hash})" if e.tx_hash else ""
        return f"Transaction{tx} reverted on-chain: {e.reason}. Check your funds and the vault state before retrying."
    elif isinstance(e, WalletRejectedError):
        return "You rejected the transaction in your wallet."
    elif isinstance(e, InsufficientAllowanceError):
        return "Approve the deposit amount first and wait for the approval to confirm."
    elif isinstance(e, ActionInFlightError):
        return "Another transaction is still being processed."
    elif isinstance(e, WalletNotConnectedError):
        return "Connect your wallet first."
    elif isinstance(e, UnsupportedAssetError):
        return f"Unsupported asset: {e}"
    elif isinstance(e, (ConfigurationError, InvalidAmountError)):
        return f"Invalid input: {e}"
    elif isinstance(e, NetworkReadError):
        return f"Could not read on-chain data: {e}"
    return str(e) or e.__class__.__name__
