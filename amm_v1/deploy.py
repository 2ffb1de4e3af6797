"""
Deploy tool

Creates (or opens) a chain database, funds a fresh deployer key, deploys the
"Hazel" token with its initial supply and an exchange bound to it, and
optionally seeds the exchange with liquidity.
"""
import argparse
import logging
import sys

from cryptography.hazmat.primitives import serialization

from amm_v1.chain import Blockchain
from amm_v1.config import Config
from amm_v1.core import CALL, DEPLOY, Receipt, Transaction
from amm_v1.crypto import generate_key_pair, public_key_to_address, serialize_public_key
from amm_v1.errors import ValidationError
from amm_v1.monitoring import Monitor

logger = logging.getLogger(__name__)

TOKEN_NAME = "Hazel"
TOKEN_SYMBOL = "HAZ"
TOKEN_UNIT = 10 ** 18


def send(chain: Blockchain, private_key, tx_type: str, data: dict, value: int = 0) -> Receipt:
    """Sign a transaction with the next nonce of `private_key` and apply it."""
    public_pem = serialize_public_key(private_key.public_key())
    tx = Transaction(
        sender_public_key=public_pem,
        tx_type=tx_type,
        data=data,
        nonce=chain.get_nonce(public_key_to_address(public_pem)),
        value=value,
        chain_id=chain.chain_id,
    )
    tx.sign(private_key)
    return chain.send_transaction(tx)


def deploy_token(chain: Blockchain, private_key, name: str = TOKEN_NAME,
                 symbol: str = TOKEN_SYMBOL, supply: int = TOKEN_UNIT) -> bytes:
    receipt = send(chain, private_key, DEPLOY,
                   {'contract': 'Token', 'args': [name, symbol, supply]})
    return receipt.contract_address


def deploy_exchange(chain: Blockchain, private_key, token_address: bytes) -> bytes:
    """Deploy an exchange with the fee and bootstrap floor from chain.config."""
    params = chain.config.exchange
    receipt = send(chain, private_key, DEPLOY, {
        'contract': 'Exchange',
        'args': [token_address, params.fee_numerator, params.fee_denominator,
                 params.min_initial_base],
    })
    return receipt.contract_address


def seed_liquidity(chain: Blockchain, private_key, token_address: bytes,
                   exchange_address: bytes, base_amount: int, token_amount: int) -> int:
    """Approve the exchange and make the first deposit."""
    send(chain, private_key, CALL,
         {'to': token_address, 'method': 'approve', 'args': [exchange_address, token_amount]})
    receipt = send(chain, private_key, CALL, {
        'to': exchange_address,
        'method': 'add_liquidity',
        'args': [0, token_amount, chain.timestamp],
    }, value=base_amount)
    return receipt.return_value


def main(argv=None):
    parser = argparse.ArgumentParser(description="Deploy the Hazel token and its exchange")
    parser.add_argument("--config", type=str, help="Path to config file")
    parser.add_argument("--db", type=str, help="Database directory (overrides config)")
    parser.add_argument("--supply", type=int, default=100 * TOKEN_UNIT,
                        help="Initial token supply, in base units")
    parser.add_argument("--fund", type=int, default=100 * TOKEN_UNIT,
                        help="Base asset credited to the deployer")
    parser.add_argument("--seed-base", type=int, default=0,
                        help="Base asset for the first liquidity deposit (0 to skip)")
    parser.add_argument("--seed-tokens", type=int, default=0,
                        help="Tokens for the first liquidity deposit")
    parser.add_argument("--log-level", type=str, default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = Config.from_file(args.config) if args.config else Config.default()
    if args.db:
        config.database.path = args.db

    chain = Blockchain(db_path=config.database.path, config=config)
    monitor = None
    if config.monitoring.enabled:
        monitor = Monitor(chain, host=config.monitoring.host, port=config.monitoring.port)
        chain.monitor = monitor
        monitor.start_server()

    private_key, public_key = generate_key_pair()
    deployer = public_key_to_address(serialize_public_key(public_key))
    chain.fund_account(deployer, args.fund)

    try:
        token_address = deploy_token(chain, private_key, supply=args.supply)
        exchange_address = deploy_exchange(chain, private_key, token_address)
        if args.seed_base:
            seed_liquidity(chain, private_key, token_address, exchange_address,
                           args.seed_base, args.seed_tokens)
        chain.mine_block()
    except ValidationError as e:
        print(f"Error: deployment failed: {e}")
        return 1
    finally:
        if monitor:
            monitor.stop_server()
        chain.close()

    print("\nDeployment complete!")
    print(f"  - Deployer: {deployer.hex()}")
    print(f"  - Token address: {token_address.hex()}")
    print(f"  - Exchange address: {exchange_address.hex()}")
    print(f"  - Database: {config.database.path}")
    print("\nDeployer private key (DO NOT USE IN PRODUCTION):")
    print(private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode('utf-8'))
    return 0


if __name__ == "__main__":
    sys.exit(main())
