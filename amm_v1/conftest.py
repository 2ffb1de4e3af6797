"""
Shared fixtures: a temporary LevelDB-backed chain, funded key pairs, and a
deployed Hazel token with its exchange.
"""
import shutil
import tempfile

import pytest

from amm_v1.chain import Blockchain
from amm_v1.config import Config
from amm_v1.core import CALL, DEPLOY, TRANSFER
from amm_v1.crypto import generate_key_pair, public_key_to_address, serialize_public_key
from amm_v1.db import DB
from amm_v1.deploy import send

GENESIS_TIME = 1_700_000_000
DEADLINE = GENESIS_TIME + 3600
FUNDS = 10 ** 24
TOKEN_SUPPLY = 10 ** 24
MIN_INITIAL_BASE = 1000


class Actor:
    """A funded key pair that signs and sends its own transactions."""

    def __init__(self, chain, funds=FUNDS):
        self.chain = chain
        self.priv_key, self.pub_key = generate_key_pair()
        self.pub_key_pem = serialize_public_key(self.pub_key)
        self.address = public_key_to_address(self.pub_key_pem)
        if funds:
            chain.fund_account(self.address, funds)

    @property
    def balance(self) -> int:
        return self.chain.get_balance(self.address)

    def deploy(self, contract, *args, value=0):
        return send(self.chain, self.priv_key, DEPLOY,
                    {'contract': contract, 'args': list(args)}, value=value)

    def call(self, to, method, *args, value=0):
        return send(self.chain, self.priv_key, CALL,
                    {'to': to, 'method': method, 'args': list(args)}, value=value)

    def transfer(self, to, value):
        return send(self.chain, self.priv_key, TRANSFER, {'to': to}, value=value)


@pytest.fixture
def config():
    cfg = Config.default()
    cfg.chain.genesis_timestamp = GENESIS_TIME
    cfg.exchange.min_initial_base = MIN_INITIAL_BASE
    return cfg


@pytest.fixture
def chain(config):
    """Create a temporary chain for testing."""
    temp_dir = tempfile.mkdtemp()
    db = DB(temp_dir)
    blockchain = Blockchain(db=db, config=config)
    yield blockchain
    db.close()
    shutil.rmtree(temp_dir)


@pytest.fixture
def alice(chain):
    return Actor(chain)


@pytest.fixture
def bob(chain):
    return Actor(chain)


@pytest.fixture
def carol(chain):
    return Actor(chain)


def deploy_pair(chain, owner, name="Hazel", symbol="HAZ"):
    """Deploy a token and an exchange for it; returns (token, exchange)."""
    token = owner.deploy('Token', name, symbol, TOKEN_SUPPLY).contract_address
    params = chain.config.exchange
    exchange = owner.deploy('Exchange', token, params.fee_numerator, params.fee_denominator,
                            params.min_initial_base).contract_address
    return token, exchange


def provide(actor, token, exchange, base_amount, token_amount, min_liquidity=0):
    """Approve and deposit liquidity; returns the add_liquidity receipt."""
    actor.call(token, 'approve', exchange, token_amount)
    return actor.call(exchange, 'add_liquidity', min_liquidity, token_amount, DEADLINE,
                      value=base_amount)


@pytest.fixture
def pair(chain, alice):
    return deploy_pair(chain, alice)


@pytest.fixture
def token(pair):
    return pair[0]


@pytest.fixture
def exchange(pair):
    return pair[1]


@pytest.fixture
def pool(chain, alice, bob, token, exchange):
    """The 1000 base / 2000 token pool, with bob holding tokens to trade."""
    provide(alice, token, exchange, 1000, 2000)
    alice.call(token, 'transfer', bob.address, 10 ** 6)
    return token, exchange
