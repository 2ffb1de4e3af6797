"""
Error taxonomy for the exchange and its execution environment.

Every failure is raised synchronously and aborts the whole call; the chain
rolls the state trie back to the snapshot taken before the call started.
"""


class ValidationError(Exception):
    """Raised when validation fails."""
    pass


# --- execution environment ---

class InvalidTransaction(ValidationError):
    """Bad signature, wrong chain id, wrong nonce or malformed payload."""


class InvalidAddress(ValidationError):
    """An address argument is the zero address or has the wrong length."""


class AlreadyInitialized(ValidationError):
    """setup() was called on a contract that is already set up."""


class UnknownContract(ValidationError):
    """No contract code at the target address, or no such external method."""


class NotPayable(ValidationError):
    """Base asset was attached to a method that does not accept it."""


class InsufficientBalance(ValidationError):
    """An account cannot cover a base-asset movement."""


# --- exchange ---

class DeadlineExpired(ValidationError):
    """The block timestamp is past the caller's deadline."""


class InvalidAmount(ValidationError):
    """A quantity that must be positive is zero or negative."""


class InsufficientReserves(ValidationError):
    """A reserve used for pricing is empty."""


class InsufficientLiquidity(ValidationError):
    """The requested output is not strictly below the output reserve."""


class NoLiquidity(ValidationError):
    """No ownership units have been issued."""


class InsufficientOwnership(ValidationError):
    """The holder owns fewer ownership units than it tries to burn."""


class InvalidRecipient(ValidationError):
    """Recipient is the zero address, the caller, or the pool itself."""


class InvalidCounterpartyPool(ValidationError):
    """Two-hop target is the zero address, this pool, or not an exchange."""


class TransferFailed(ValidationError):
    """A collaborator reported that an asset movement did not happen."""


class SlippageError(ValidationError):
    """A caller-supplied price bound was violated."""


class ExceedsMaxTokens(SlippageError):
    pass


class ExceedsMaximumInput(SlippageError):
    pass


class BelowMinimumLiquidity(SlippageError):
    pass


class BelowMinimumBase(SlippageError):
    pass


class BelowMinimumTokens(SlippageError):
    pass


class BelowMinimumAccepted(SlippageError):
    pass
