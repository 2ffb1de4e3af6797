# setup.py
from setuptools import setup, find_packages

setup(
    name="amm_v1",
    version="0.1.0",
    packages=find_packages(),
    python_requires=">=3.10",
    install_requires=[
        "rlp",                 # trie nodes, accounts, contract storage
        "plyvel",              # LevelDB
        "msgpack",             # transactions and receipts
        "cryptography",        # ECDSA keys
        "pycryptodome",        # keccak
        "prometheus_client",   # monitoring
    ],
    extras_require={
        "tests": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "amm-deploy=amm_v1.deploy:main",
        ],
    },
)
