"""
Swaps between the base asset and the token against the 1000 base / 2000
token pool.
"""
import pytest

from amm_v1.conftest import DEADLINE, deploy_pair
from amm_v1.crypto import ZERO_ADDRESS
from amm_v1.errors import (
    BelowMinimumAccepted,
    DeadlineExpired,
    ExceedsMaximumInput,
    InsufficientLiquidity,
    InsufficientReserves,
    InvalidAmount,
    InvalidRecipient,
    NotPayable,
    TransferFailed,
    UnknownContract,
)
from amm_v1.pricing import get_input_price, get_output_price, invariant


def _tokens(chain, token, holder):
    return chain.call(token, 'balance_of', holder)


class TestEthToTokenInput:

    def test_documented_scenario(self, chain, bob, pool):
        token, exchange = pool
        tokens_before = _tokens(chain, token, bob.address)
        base_before = bob.balance

        receipt = bob.call(exchange, 'eth_to_token_swap_input', 1, DEADLINE, value=100)

        assert receipt.return_value == 181
        assert _tokens(chain, token, bob.address) == tokens_before + 181
        assert bob.balance == base_before - 100
        assert chain.call(exchange, 'reserves') == (1100, 1819)
        assert invariant(1000, 2000) == 2_000_000
        assert invariant(*chain.call(exchange, 'reserves')) == 2_000_900

        [purchase] = receipt.events('TokenPurchase')
        assert purchase.address == exchange
        assert purchase.args == {'buyer': bob.address, 'eth_sold': 100, 'tokens_bought': 181}

    def test_below_minimum(self, chain, bob, pool):
        token, exchange = pool
        base_before = bob.balance

        with pytest.raises(BelowMinimumAccepted):
            bob.call(exchange, 'eth_to_token_swap_input', 182, DEADLINE, value=100)

        assert bob.balance == base_before
        assert chain.call(exchange, 'reserves') == (1000, 2000)

    def test_transfer_to_recipient(self, chain, bob, carol, pool):
        token, exchange = pool
        receipt = bob.call(exchange, 'eth_to_token_transfer_input', 1, DEADLINE, carol.address,
                           value=100)

        assert receipt.return_value == 181
        assert _tokens(chain, token, carol.address) == 181
        [purchase] = receipt.events('TokenPurchase')
        assert purchase.args['buyer'] == bob.address

    def test_zero_value(self, bob, pool):
        token, exchange = pool
        with pytest.raises(InvalidAmount):
            bob.call(exchange, 'eth_to_token_swap_input', 1, DEADLINE)

    def test_fallback_buys_tokens(self, chain, bob, pool):
        token, exchange = pool
        tokens_before = _tokens(chain, token, bob.address)

        receipt = bob.transfer(exchange, 100)

        assert receipt.return_value == 181
        assert _tokens(chain, token, bob.address) == tokens_before + 181
        assert chain.call(exchange, 'reserves') == (1100, 1819)

    def test_fallback_on_empty_pool_fails(self, chain, bob, exchange):
        base_before = bob.balance
        with pytest.raises(InsufficientReserves):
            bob.transfer(exchange, 100)
        assert bob.balance == base_before


class TestEthToTokenOutput:

    def test_refunds_excess(self, chain, bob, pool):
        token, exchange = pool
        expected = get_output_price(50, 1000, 2000)
        base_before = bob.balance

        receipt = bob.call(exchange, 'eth_to_token_swap_output', 50, DEADLINE, value=100)

        assert receipt.return_value == expected
        assert bob.balance == base_before - expected
        assert chain.call(exchange, 'reserves') == (1000 + expected, 1950)
        [purchase] = receipt.events('TokenPurchase')
        assert purchase.args == {'buyer': bob.address, 'eth_sold': expected, 'tokens_bought': 50}

    def test_required_input_buys_at_least_the_output(self):
        required = get_output_price(50, 1000, 2000)
        assert get_input_price(required, 1000, 2000) >= 50

    def test_exact_value_needs_no_refund(self, chain, bob, pool):
        token, exchange = pool
        expected = get_output_price(50, 1000, 2000)
        base_before = bob.balance

        bob.call(exchange, 'eth_to_token_swap_output', 50, DEADLINE, value=expected)

        assert bob.balance == base_before - expected

    def test_exceeds_maximum_input(self, chain, bob, pool):
        token, exchange = pool
        expected = get_output_price(50, 1000, 2000)
        with pytest.raises(ExceedsMaximumInput):
            bob.call(exchange, 'eth_to_token_swap_output', 50, DEADLINE, value=expected - 1)
        assert chain.call(exchange, 'reserves') == (1000, 2000)

    def test_transfer_to_recipient(self, chain, bob, carol, pool):
        token, exchange = pool
        expected = get_output_price(50, 1000, 2000)
        base_before = bob.balance
        carol_before = carol.balance

        bob.call(exchange, 'eth_to_token_transfer_output', 50, DEADLINE, carol.address, value=500)

        assert _tokens(chain, token, carol.address) == 50
        # refund goes to the buyer, not the recipient
        assert bob.balance == base_before - expected
        assert carol.balance == carol_before

    def test_cannot_buy_whole_reserve(self, bob, pool):
        token, exchange = pool
        with pytest.raises(InsufficientLiquidity):
            bob.call(exchange, 'eth_to_token_swap_output', 2000, DEADLINE, value=10 ** 9)


class TestTokenToEth:

    def test_swap_input(self, chain, bob, pool):
        token, exchange = pool
        bob.call(token, 'approve', exchange, 200)
        expected = get_input_price(200, 2000, 1000)
        base_before = bob.balance

        receipt = bob.call(exchange, 'token_to_eth_swap_input', 200, 1, DEADLINE)

        assert receipt.return_value == expected
        assert bob.balance == base_before + expected
        assert chain.call(exchange, 'reserves') == (1000 - expected, 2200)
        [purchase] = receipt.events('EthPurchase')
        assert purchase.args == {'buyer': bob.address, 'tokens_sold': 200, 'eth_bought': expected}

    def test_swap_input_below_minimum(self, chain, bob, pool):
        token, exchange = pool
        bob.call(token, 'approve', exchange, 200)
        expected = get_input_price(200, 2000, 1000)
        with pytest.raises(BelowMinimumAccepted):
            bob.call(exchange, 'token_to_eth_swap_input', 200, expected + 1, DEADLINE)
        assert chain.call(token, 'allowance', bob.address, exchange) == 200

    def test_transfer_input(self, chain, bob, carol, pool):
        token, exchange = pool
        bob.call(token, 'approve', exchange, 200)
        expected = get_input_price(200, 2000, 1000)
        carol_before = carol.balance

        bob.call(exchange, 'token_to_eth_transfer_input', 200, 1, DEADLINE, carol.address)

        assert carol.balance == carol_before + expected

    def test_swap_output(self, chain, bob, pool):
        token, exchange = pool
        bob.call(token, 'approve', exchange, 10 ** 6)
        expected = get_output_price(50, 2000, 1000)
        tokens_before = _tokens(chain, token, bob.address)
        base_before = bob.balance

        receipt = bob.call(exchange, 'token_to_eth_swap_output', 50, 10 ** 6, DEADLINE)

        assert receipt.return_value == expected
        assert bob.balance == base_before + 50
        assert _tokens(chain, token, bob.address) == tokens_before - expected
        assert chain.call(exchange, 'reserves') == (950, 2000 + expected)

    def test_swap_output_exceeds_maximum(self, bob, pool):
        token, exchange = pool
        bob.call(token, 'approve', exchange, 10 ** 6)
        expected = get_output_price(50, 2000, 1000)
        with pytest.raises(ExceedsMaximumInput):
            bob.call(exchange, 'token_to_eth_swap_output', 50, expected - 1, DEADLINE)

    def test_transfer_output(self, chain, bob, carol, pool):
        token, exchange = pool
        bob.call(token, 'approve', exchange, 10 ** 6)
        carol_before = carol.balance

        bob.call(exchange, 'token_to_eth_transfer_output', 50, 10 ** 6, DEADLINE, carol.address)

        assert carol.balance == carol_before + 50

    def test_without_allowance(self, chain, bob, pool):
        token, exchange = pool
        with pytest.raises(TransferFailed):
            bob.call(exchange, 'token_to_eth_swap_input', 200, 1, DEADLINE)
        assert chain.call(exchange, 'reserves') == (1000, 2000)

    def test_not_payable(self, bob, pool):
        token, exchange = pool
        bob.call(token, 'approve', exchange, 200)
        with pytest.raises(NotPayable):
            bob.call(exchange, 'token_to_eth_swap_input', 200, 1, DEADLINE, value=5)


class TestValidation:

    @pytest.mark.parametrize("method,args", [
        ('eth_to_token_transfer_input', (1, DEADLINE)),
        ('eth_to_token_transfer_output', (10, DEADLINE)),
    ])
    def test_invalid_recipients(self, bob, pool, method, args):
        token, exchange = pool
        for recipient in (ZERO_ADDRESS, bob.address, exchange):
            with pytest.raises(InvalidRecipient):
                bob.call(exchange, method, *args, recipient, value=100)

    def test_token_recipient_cannot_be_exchange(self, bob, pool):
        token, exchange = pool
        bob.call(token, 'approve', exchange, 200)
        with pytest.raises(InvalidRecipient):
            bob.call(exchange, 'token_to_eth_transfer_input', 200, 1, DEADLINE, exchange)

    def test_deadline_expired(self, chain, bob, pool):
        token, exchange = pool
        chain.mine_block(timestamp=DEADLINE + 1)
        with pytest.raises(DeadlineExpired):
            bob.call(exchange, 'eth_to_token_swap_input', 1, DEADLINE, value=100)

    def test_empty_pool_has_no_price(self, chain, alice, token, exchange):
        alice.call(token, 'approve', exchange, 100)
        with pytest.raises(InsufficientReserves):
            alice.call(exchange, 'eth_to_token_swap_input', 1, DEADLINE, value=100)
        with pytest.raises(InsufficientReserves):
            alice.call(exchange, 'eth_to_token_swap_output', 1, DEADLINE, value=100)
        with pytest.raises(InsufficientReserves):
            alice.call(exchange, 'token_to_eth_swap_input', 100, 1, DEADLINE)
        with pytest.raises(InsufficientReserves):
            alice.call(exchange, 'token_to_eth_swap_output', 1, 100, DEADLINE)

    def test_donated_reserves_do_not_open_pool(self, chain, alice, bob, pool):
        token, exchange = pool
        other_token, other_exchange = deploy_pair(chain, alice, "Birch", "BRC")
        # base arrives as a payout from another exchange, tokens as a plain transfer
        bob.call(token, 'approve', exchange, 200)
        bob.call(exchange, 'token_to_eth_transfer_input', 200, 1, DEADLINE, other_exchange)
        alice.call(other_token, 'transfer', other_exchange, 5000)
        alice.call(other_token, 'approve', other_exchange, 100)

        base_reserve, token_reserve = chain.call(other_exchange, 'reserves')
        assert base_reserve > 0 and token_reserve == 5000
        assert chain.call(other_exchange, 'total_supply') == 0

        with pytest.raises(InsufficientReserves):
            alice.call(other_exchange, 'eth_to_token_swap_input', 1, DEADLINE, value=100)
        with pytest.raises(InsufficientReserves):
            alice.call(other_exchange, 'eth_to_token_transfer_output', 1, DEADLINE, bob.address,
                       value=100)
        with pytest.raises(InsufficientReserves):
            alice.call(other_exchange, 'token_to_eth_swap_input', 100, 1, DEADLINE)
        with pytest.raises(InsufficientReserves):
            alice.call(other_exchange, 'token_to_eth_swap_output', 1, 100, DEADLINE)
        with pytest.raises(InsufficientReserves):
            alice.transfer(other_exchange, 100)
        with pytest.raises(InsufficientReserves):
            chain.call(other_exchange, 'get_eth_to_token_input_price', 100)
        with pytest.raises(InsufficientReserves):
            chain.call(other_exchange, 'get_token_to_eth_output_price', 1)

        assert chain.call(other_exchange, 'reserves') == (base_reserve, 5000)


class TestQuotes:

    def test_match_pricing(self, chain, pool):
        token, exchange = pool
        assert chain.call(exchange, 'get_eth_to_token_input_price', 100) == 181
        assert chain.call(exchange, 'get_eth_to_token_output_price', 50) == get_output_price(50, 1000, 2000)
        assert chain.call(exchange, 'get_token_to_eth_input_price', 200) == get_input_price(200, 2000, 1000)
        assert chain.call(exchange, 'get_token_to_eth_output_price', 50) == get_output_price(50, 2000, 1000)

    def test_quote_matches_execution(self, chain, bob, pool):
        token, exchange = pool
        quote = chain.call(exchange, 'get_eth_to_token_output_price', 75)
        receipt = bob.call(exchange, 'eth_to_token_swap_output', 75, DEADLINE, value=10 ** 6)
        assert receipt.return_value == quote

    def test_reserves_view_takes_no_adjustment(self, chain, pool):
        token, exchange = pool
        assert chain.call(exchange, 'reserves') == (1000, 2000)
        with pytest.raises(TypeError):
            chain.call(exchange, 'reserves', 500)
        with pytest.raises(UnknownContract):
            chain.call(exchange, '_reserves', 500)

    @pytest.mark.parametrize("method", [
        'get_eth_to_token_input_price',
        'get_eth_to_token_output_price',
        'get_token_to_eth_input_price',
        'get_token_to_eth_output_price',
    ])
    def test_non_positive_amount(self, chain, pool, method):
        token, exchange = pool
        with pytest.raises(InvalidAmount):
            chain.call(exchange, method, 0)


def test_invariant_never_decreases(chain, bob, pool):
    token, exchange = pool
    bob.call(token, 'approve', exchange, 10 ** 6)
    k = invariant(*chain.call(exchange, 'reserves'))

    trades = [
        ('eth_to_token_swap_input', (1, DEADLINE), 37),
        ('token_to_eth_swap_input', (500, 1, DEADLINE), 0),
        ('eth_to_token_swap_output', (13, DEADLINE), 1000),
        ('token_to_eth_swap_output', (101, 10 ** 6, DEADLINE), 0),
        ('eth_to_token_swap_input', (1, DEADLINE), 999),
    ]
    for method, args, value in trades:
        bob.call(exchange, method, *args, value=value)
        new_k = invariant(*chain.call(exchange, 'reserves'))
        assert new_k >= k, f"{method} decreased k from {k} to {new_k}"
        k = new_k


def test_round_trip_is_never_profitable(chain, bob, pool):
    token, exchange = pool
    bob.call(token, 'approve', exchange, 10 ** 6)

    bought = bob.call(exchange, 'eth_to_token_swap_input', 1, DEADLINE, value=100).return_value
    back = bob.call(exchange, 'token_to_eth_swap_input', bought, 1, DEADLINE).return_value

    assert back <= 100
