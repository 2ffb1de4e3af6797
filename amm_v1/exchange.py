"""
Constant-product exchange between the chain's base asset and one token.

The exchange is its own ownership-unit ledger ("Uniswap-V1" / "UNI-V1"):
liquidity providers receive transferable units and burn them to withdraw a
proportional share of both reserves.

Reserves are never stored. The base reserve is the exchange account's native
balance, the token reserve is `token.balance_of(exchange)`. Entry points that
receive base asset with the call pass the attached value as `pending_base`
so every quote is made against pre-trade reserves.
"""
import logging

from amm_v1.contract import ContractRef, external
from amm_v1.crypto import is_valid_address
from amm_v1.erc20 import LiquidityToken
from amm_v1.errors import (
    BelowMinimumAccepted,
    BelowMinimumBase,
    BelowMinimumLiquidity,
    BelowMinimumTokens,
    DeadlineExpired,
    ExceedsMaximumInput,
    ExceedsMaxTokens,
    InsufficientReserves,
    InvalidAddress,
    InvalidAmount,
    InvalidCounterpartyPool,
    InvalidRecipient,
    NoLiquidity,
    TransferFailed,
)
from amm_v1.pricing import FeeSchedule, get_input_price, get_output_price

logger = logging.getLogger(__name__)

LIQUIDITY_NAME = "Uniswap-V1"
LIQUIDITY_SYMBOL = "UNI-V1"

DEFAULT_MIN_INITIAL_BASE = 1_000_000_000


class Exchange(LiquidityToken):

    @external
    def setup(self, token_address: bytes, fee_numerator: int = 997,
              fee_denominator: int = 1000,
              min_initial_base: int = DEFAULT_MIN_INITIAL_BASE):
        """
        Bind the exchange to its token. Runs once, at deployment.

        Args:
            token_address: Address of the paired token contract
            fee_numerator: Share of each input that reaches the curve
            fee_denominator: Denominator of the fee fraction
            min_initial_base: Smallest base deposit that may bootstrap the pool
        """
        if not is_valid_address(token_address):
            raise InvalidAddress("Exchange token cannot be the zero address")
        self._init_metadata(LIQUIDITY_NAME, LIQUIDITY_SYMBOL)

        try:
            FeeSchedule(fee_numerator, fee_denominator)
        except ValueError as e:
            raise InvalidAmount(str(e)) from e
        if min_initial_base <= 0:
            raise InvalidAmount("min_initial_base must be positive")

        self._set_bytes(b"token", token_address)
        self._set_int(b"fee_numerator", fee_numerator)
        self._set_int(b"fee_denominator", fee_denominator)
        self._set_int(b"min_initial_base", min_initial_base)
        logger.info(f"Exchange {self.address.hex()[:8]} bound to token {token_address.hex()[:8]}")

    # ==========================================================================
    # STATE
    # ==========================================================================

    @external
    def token_address(self) -> bytes:
        return self._get_bytes(b"token")

    @external
    def fee_schedule(self) -> tuple[int, int]:
        """(numerator, denominator) of the input fee."""
        fee = self._fee()
        return fee.numerator, fee.denominator

    @external
    def min_initial_base(self) -> int:
        return self._get_int(b"min_initial_base")

    @external
    def reserves(self) -> tuple[int, int]:
        """Current (base, token) reserves."""
        return self._reserves()

    def _reserves(self, pending_base: int = 0) -> tuple[int, int]:
        """
        `pending_base` is base asset that arrived with the current call and
        must not count as liquidity yet.
        """
        base = self.balance - pending_base
        token = self._token().balance_of(self.address)
        return base, token

    def _fee(self) -> FeeSchedule:
        return FeeSchedule(self._get_int(b"fee_numerator"), self._get_int(b"fee_denominator"))

    def _token(self) -> ContractRef:
        return self._ref(self.token_address())

    # ==========================================================================
    # LIQUIDITY
    # ==========================================================================

    @external(payable=True)
    def add_liquidity(self, min_liquidity: int, max_tokens: int, deadline: int) -> int:
        """
        Deposit base asset (attached) and tokens at the current ratio.

        The first deposit sets the price: it takes exactly `max_tokens` and
        mints one unit per base unit deposited. Later deposits take
        `value * token_reserve / base_reserve + 1` tokens.

        Returns:
            Ownership units minted
        """
        self._check_deadline(deadline)
        base_amount = self.msg.value
        if max_tokens <= 0 or base_amount <= 0:
            raise InvalidAmount("add_liquidity needs positive base and token amounts")

        provider = self.msg.sender
        total_liquidity = self.total_issued()

        if total_liquidity > 0:
            base_reserve, token_reserve = self._reserves(pending_base=base_amount)
            token_amount = base_amount * token_reserve // base_reserve + 1
            liquidity_minted = base_amount * total_liquidity // base_reserve
            if token_amount > max_tokens:
                raise ExceedsMaxTokens(f"Deposit needs {token_amount} tokens, max is {max_tokens}")
            if liquidity_minted < min_liquidity:
                raise BelowMinimumLiquidity(
                    f"Deposit mints {liquidity_minted} units, min is {min_liquidity}"
                )
        else:
            min_initial = self.min_initial_base()
            if base_amount < min_initial:
                raise InvalidAmount(f"Initial deposit {base_amount} is below {min_initial}")
            token_amount = max_tokens
            liquidity_minted = base_amount

        self._pull_tokens(provider, token_amount)
        self._emit("AddLiquidity", provider=provider, base_amount=base_amount,
                   token_amount=token_amount)
        self._mint(provider, liquidity_minted)

        logger.info(
            f"Liquidity added to {self.address.hex()[:8]}: base={base_amount} "
            f"tokens={token_amount} units={liquidity_minted}"
        )
        return liquidity_minted

    @external
    def remove_liquidity(self, amount: int, min_base: int, min_tokens: int,
                         deadline: int) -> tuple[int, int]:
        """
        Burn `amount` units for a proportional share of both reserves.

        Returns:
            (base_amount, token_amount) withdrawn
        """
        self._check_deadline(deadline)
        if amount <= 0:
            raise InvalidAmount("Must burn a positive number of units")
        total_liquidity = self.total_issued()
        if total_liquidity == 0:
            raise NoLiquidity(f"{self} has no liquidity")

        base_reserve, token_reserve = self._reserves()
        base_amount = amount * base_reserve // total_liquidity
        token_amount = amount * token_reserve // total_liquidity
        if base_amount < min_base:
            raise BelowMinimumBase(f"Withdrawal yields {base_amount} base, min is {min_base}")
        if token_amount < min_tokens:
            raise BelowMinimumTokens(f"Withdrawal yields {token_amount} tokens, min is {min_tokens}")

        provider = self.msg.sender
        self._burn(provider, amount)
        self._send(provider, base_amount)
        self._pay_tokens(provider, token_amount)
        self._emit("RemoveLiquidity", provider=provider, base_amount=base_amount,
                   token_amount=token_amount)

        logger.info(
            f"Liquidity removed from {self.address.hex()[:8]}: base={base_amount} "
            f"tokens={token_amount} units={amount}"
        )
        return base_amount, token_amount

    # ==========================================================================
    # BASE -> TOKEN
    # ==========================================================================

    def _eth_to_token_input(self, eth_sold: int, min_tokens: int, deadline: int,
                            buyer: bytes, recipient: bytes) -> int:
        self._check_deadline(deadline)
        if eth_sold <= 0 or min_tokens <= 0:
            raise InvalidAmount("eth_sold and min_tokens must be positive")

        self._check_liquidity()
        base_reserve, token_reserve = self._reserves(pending_base=eth_sold)
        tokens_bought = get_input_price(eth_sold, base_reserve, token_reserve, self._fee())
        if tokens_bought < min_tokens:
            raise BelowMinimumAccepted(f"Swap yields {tokens_bought} tokens, min is {min_tokens}")

        self._pay_tokens(recipient, tokens_bought)
        self._emit("TokenPurchase", buyer=buyer, eth_sold=eth_sold, tokens_bought=tokens_bought)
        logger.info(f"TokenPurchase on {self.address.hex()[:8]}: {eth_sold} base -> {tokens_bought} tokens")
        return tokens_bought

    def _eth_to_token_output(self, tokens_bought: int, max_eth: int, deadline: int,
                             buyer: bytes, recipient: bytes) -> int:
        self._check_deadline(deadline)
        if tokens_bought <= 0 or max_eth <= 0:
            raise InvalidAmount("tokens_bought and attached value must be positive")

        self._check_liquidity()
        base_reserve, token_reserve = self._reserves(pending_base=max_eth)
        eth_sold = get_output_price(tokens_bought, base_reserve, token_reserve, self._fee())
        if eth_sold > max_eth:
            raise ExceedsMaximumInput(f"Swap needs {eth_sold} base, sent {max_eth}")

        # Refund before the tokens leave the pool
        refund = max_eth - eth_sold
        if refund > 0:
            self._send(buyer, refund)
        self._pay_tokens(recipient, tokens_bought)
        self._emit("TokenPurchase", buyer=buyer, eth_sold=eth_sold, tokens_bought=tokens_bought)
        logger.info(f"TokenPurchase on {self.address.hex()[:8]}: {eth_sold} base -> {tokens_bought} tokens")
        return eth_sold

    @external(payable=True)
    def receive(self) -> int:
        """Plain base-asset transfers buy tokens for the sender at any price."""
        sender = self.msg.sender
        return self._eth_to_token_input(self.msg.value, 1, self.block_timestamp, sender, sender)

    @external(payable=True)
    def eth_to_token_swap_input(self, min_tokens: int, deadline: int) -> int:
        """Sell all attached base asset. Returns tokens bought."""
        sender = self.msg.sender
        return self._eth_to_token_input(self.msg.value, min_tokens, deadline, sender, sender)

    @external(payable=True)
    def eth_to_token_transfer_input(self, min_tokens: int, deadline: int, recipient: bytes) -> int:
        """Sell all attached base asset, tokens go to `recipient`."""
        self._check_recipient(recipient)
        return self._eth_to_token_input(self.msg.value, min_tokens, deadline,
                                        self.msg.sender, recipient)

    @external(payable=True)
    def eth_to_token_swap_output(self, tokens_bought: int, deadline: int) -> int:
        """Buy exactly `tokens_bought`; attached value is the maximum, the rest is refunded."""
        sender = self.msg.sender
        return self._eth_to_token_output(tokens_bought, self.msg.value, deadline, sender, sender)

    @external(payable=True)
    def eth_to_token_transfer_output(self, tokens_bought: int, deadline: int, recipient: bytes) -> int:
        self._check_recipient(recipient)
        return self._eth_to_token_output(tokens_bought, self.msg.value, deadline,
                                         self.msg.sender, recipient)

    # ==========================================================================
    # TOKEN -> BASE
    # ==========================================================================

    def _token_to_eth_input(self, tokens_sold: int, min_eth: int, deadline: int,
                            buyer: bytes, recipient: bytes) -> int:
        self._check_deadline(deadline)
        if tokens_sold <= 0 or min_eth <= 0:
            raise InvalidAmount("tokens_sold and min_eth must be positive")

        self._check_liquidity()
        base_reserve, token_reserve = self._reserves()
        eth_bought = get_input_price(tokens_sold, token_reserve, base_reserve, self._fee())
        if eth_bought < min_eth:
            raise BelowMinimumAccepted(f"Swap yields {eth_bought} base, min is {min_eth}")

        self._pull_tokens(buyer, tokens_sold)
        self._send(recipient, eth_bought)
        self._emit("EthPurchase", buyer=buyer, tokens_sold=tokens_sold, eth_bought=eth_bought)
        logger.info(f"EthPurchase on {self.address.hex()[:8]}: {tokens_sold} tokens -> {eth_bought} base")
        return eth_bought

    def _token_to_eth_output(self, eth_bought: int, max_tokens: int, deadline: int,
                             buyer: bytes, recipient: bytes) -> int:
        self._check_deadline(deadline)
        if eth_bought <= 0 or max_tokens <= 0:
            raise InvalidAmount("eth_bought and max_tokens must be positive")

        self._check_liquidity()
        base_reserve, token_reserve = self._reserves()
        tokens_sold = get_output_price(eth_bought, token_reserve, base_reserve, self._fee())
        if tokens_sold > max_tokens:
            raise ExceedsMaximumInput(f"Swap needs {tokens_sold} tokens, max is {max_tokens}")

        self._pull_tokens(buyer, tokens_sold)
        self._send(recipient, eth_bought)
        self._emit("EthPurchase", buyer=buyer, tokens_sold=tokens_sold, eth_bought=eth_bought)
        logger.info(f"EthPurchase on {self.address.hex()[:8]}: {tokens_sold} tokens -> {eth_bought} base")
        return tokens_sold

    @external
    def token_to_eth_swap_input(self, tokens_sold: int, min_eth: int, deadline: int) -> int:
        sender = self.msg.sender
        return self._token_to_eth_input(tokens_sold, min_eth, deadline, sender, sender)

    @external
    def token_to_eth_transfer_input(self, tokens_sold: int, min_eth: int, deadline: int,
                                    recipient: bytes) -> int:
        self._check_recipient(recipient)
        return self._token_to_eth_input(tokens_sold, min_eth, deadline, self.msg.sender, recipient)

    @external
    def token_to_eth_swap_output(self, eth_bought: int, max_tokens: int, deadline: int) -> int:
        sender = self.msg.sender
        return self._token_to_eth_output(eth_bought, max_tokens, deadline, sender, sender)

    @external
    def token_to_eth_transfer_output(self, eth_bought: int, max_tokens: int, deadline: int,
                                     recipient: bytes) -> int:
        self._check_recipient(recipient)
        return self._token_to_eth_output(eth_bought, max_tokens, deadline, self.msg.sender, recipient)

    # ==========================================================================
    # TOKEN -> TOKEN (through a counterpart exchange)
    # ==========================================================================

    def _token_to_token_input(self, tokens_sold: int, min_tokens_bought: int, min_eth_bought: int,
                              deadline: int, buyer: bytes, recipient: bytes,
                              exchange_address: bytes) -> int:
        self._check_deadline(deadline)
        if tokens_sold <= 0 or min_tokens_bought <= 0 or min_eth_bought <= 0:
            raise InvalidAmount("tokens_sold and both minimums must be positive")
        counterpart = self._counterpart(exchange_address)

        self._check_liquidity()
        base_reserve, token_reserve = self._reserves()
        eth_bought = get_input_price(tokens_sold, token_reserve, base_reserve, self._fee())
        if eth_bought < min_eth_bought:
            raise BelowMinimumAccepted(
                f"First hop yields {eth_bought} base, min is {min_eth_bought}"
            )

        self._pull_tokens(buyer, tokens_sold)
        self._emit("EthPurchase", buyer=buyer, tokens_sold=tokens_sold, eth_bought=eth_bought)
        tokens_bought = counterpart.eth_to_token_transfer_input(
            min_tokens_bought, deadline, recipient, value=eth_bought
        )
        logger.info(
            f"TokenToToken via {self.address.hex()[:8]} -> {exchange_address.hex()[:8]}: "
            f"{tokens_sold} -> {tokens_bought}"
        )
        return tokens_bought

    def _token_to_token_output(self, tokens_bought: int, max_tokens_sold: int, max_eth_sold: int,
                               deadline: int, buyer: bytes, recipient: bytes,
                               exchange_address: bytes) -> int:
        self._check_deadline(deadline)
        if tokens_bought <= 0 or max_tokens_sold <= 0 or max_eth_sold <= 0:
            raise InvalidAmount("tokens_bought and both maximums must be positive")
        counterpart = self._counterpart(exchange_address)
        self._check_liquidity()

        eth_bought = counterpart.get_eth_to_token_output_price(tokens_bought)
        if eth_bought > max_eth_sold:
            raise ExceedsMaximumInput(f"Second hop needs {eth_bought} base, max is {max_eth_sold}")

        base_reserve, token_reserve = self._reserves()
        tokens_sold = get_output_price(eth_bought, token_reserve, base_reserve, self._fee())
        if tokens_sold > max_tokens_sold:
            raise ExceedsMaximumInput(f"Swap needs {tokens_sold} tokens, max is {max_tokens_sold}")

        self._pull_tokens(buyer, tokens_sold)
        self._emit("EthPurchase", buyer=buyer, tokens_sold=tokens_sold, eth_bought=eth_bought)
        counterpart.eth_to_token_transfer_output(tokens_bought, deadline, recipient, value=eth_bought)
        logger.info(
            f"TokenToToken via {self.address.hex()[:8]} -> {exchange_address.hex()[:8]}: "
            f"{tokens_sold} -> {tokens_bought}"
        )
        return tokens_sold

    @external
    def token_to_token_swap_input(self, tokens_sold: int, min_tokens_bought: int,
                                  min_eth_bought: int, deadline: int,
                                  exchange_address: bytes) -> int:
        """
        Sell `tokens_sold` of this exchange's token for the counterpart's token.

        Returns:
            Counterpart tokens bought
        """
        sender = self.msg.sender
        return self._token_to_token_input(tokens_sold, min_tokens_bought, min_eth_bought,
                                          deadline, sender, sender, exchange_address)

    @external
    def token_to_token_transfer_input(self, tokens_sold: int, min_tokens_bought: int,
                                      min_eth_bought: int, deadline: int, recipient: bytes,
                                      exchange_address: bytes) -> int:
        self._check_recipient(recipient)
        return self._token_to_token_input(tokens_sold, min_tokens_bought, min_eth_bought,
                                          deadline, self.msg.sender, recipient, exchange_address)

    @external
    def token_to_token_swap_output(self, tokens_bought: int, max_tokens_sold: int,
                                   max_eth_sold: int, deadline: int,
                                   exchange_address: bytes) -> int:
        """
        Buy exactly `tokens_bought` of the counterpart's token.

        Returns:
            Tokens of this exchange sold
        """
        sender = self.msg.sender
        return self._token_to_token_output(tokens_bought, max_tokens_sold, max_eth_sold,
                                           deadline, sender, sender, exchange_address)

    @external
    def token_to_token_transfer_output(self, tokens_bought: int, max_tokens_sold: int,
                                       max_eth_sold: int, deadline: int, recipient: bytes,
                                       exchange_address: bytes) -> int:
        self._check_recipient(recipient)
        return self._token_to_token_output(tokens_bought, max_tokens_sold, max_eth_sold,
                                           deadline, self.msg.sender, recipient, exchange_address)

    # ==========================================================================
    # QUOTES
    # ==========================================================================

    @external
    def get_eth_to_token_input_price(self, eth_sold: int) -> int:
        if eth_sold <= 0:
            raise InvalidAmount("eth_sold must be positive")
        self._check_liquidity()
        base_reserve, token_reserve = self._reserves()
        return get_input_price(eth_sold, base_reserve, token_reserve, self._fee())

    @external
    def get_eth_to_token_output_price(self, tokens_bought: int) -> int:
        if tokens_bought <= 0:
            raise InvalidAmount("tokens_bought must be positive")
        self._check_liquidity()
        base_reserve, token_reserve = self._reserves()
        return get_output_price(tokens_bought, base_reserve, token_reserve, self._fee())

    @external
    def get_token_to_eth_input_price(self, tokens_sold: int) -> int:
        if tokens_sold <= 0:
            raise InvalidAmount("tokens_sold must be positive")
        self._check_liquidity()
        base_reserve, token_reserve = self._reserves()
        return get_input_price(tokens_sold, token_reserve, base_reserve, self._fee())

    @external
    def get_token_to_eth_output_price(self, eth_bought: int) -> int:
        if eth_bought <= 0:
            raise InvalidAmount("eth_bought must be positive")
        self._check_liquidity()
        base_reserve, token_reserve = self._reserves()
        return get_output_price(eth_bought, token_reserve, base_reserve, self._fee())

    # ==========================================================================
    # HELPERS
    # ==========================================================================

    def _check_deadline(self, deadline: int):
        if self.block_timestamp > deadline:
            raise DeadlineExpired(f"Deadline {deadline} passed at {self.block_timestamp}")

    def _check_liquidity(self):
        # Donated reserves do not open a pool with no units issued
        if self.total_issued() == 0:
            raise InsufficientReserves(f"{self} has no liquidity")

    def _check_recipient(self, recipient: bytes):
        if not is_valid_address(recipient):
            raise InvalidRecipient("Recipient must be a non-zero address")
        if recipient == self.msg.sender or recipient == self.address:
            raise InvalidRecipient("Recipient cannot be the caller or the exchange")

    def _counterpart(self, exchange_address: bytes) -> ContractRef:
        if not is_valid_address(exchange_address) or exchange_address == self.address:
            raise InvalidCounterpartyPool("Counterpart must be another exchange")
        if self.chain.state.get_code(exchange_address) != self.kind():
            raise InvalidCounterpartyPool(f"No exchange at {exchange_address.hex()}")
        return self._ref(exchange_address)

    def _pull_tokens(self, owner: bytes, amount: int):
        if not self._token().transfer_from(owner, self.address, amount):
            raise TransferFailed(f"Could not pull {amount} tokens from {owner.hex()[:8]}")

    def _pay_tokens(self, to: bytes, amount: int):
        if not self._token().transfer(to, amount):
            raise TransferFailed(f"Could not pay {amount} tokens to {to.hex()[:8]}")
