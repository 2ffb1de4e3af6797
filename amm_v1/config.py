"""
Configuration management for the exchange chain.
"""
import json
import os
from dataclasses import dataclass, asdict

from amm_v1.pricing import FeeSchedule


@dataclass
class ChainConfig:
    """Execution environment configuration."""
    chain_id: int = 1
    block_time: int = 15  # Seconds added to the timestamp per mined block
    genesis_timestamp: int = 0  # 0 means "now" when the chain is created


@dataclass
class ExchangeConfig:
    """Parameters injected into every exchange at setup."""
    fee_numerator: int = 997  # Keep 99.7% of input
    fee_denominator: int = 1000
    min_initial_base: int = 1_000_000_000  # Bootstrap dust floor

    def __post_init__(self):
        FeeSchedule(self.fee_numerator, self.fee_denominator)
        if self.min_initial_base <= 0:
            raise ValueError("min_initial_base must be positive")


@dataclass
class DatabaseConfig:
    """Database configuration."""
    path: str = "./exchange_data"
    write_buffer_size: int = 64 * 1024 * 1024  # 64MB
    max_open_files: int = 1000


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    host: str = "127.0.0.1"
    port: int = 9090
    enabled: bool = False


@dataclass
class Config:
    """Main configuration."""
    chain: ChainConfig
    exchange: ExchangeConfig
    database: DatabaseConfig
    monitoring: MonitoringConfig

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            chain=ChainConfig(),
            exchange=ExchangeConfig(),
            database=DatabaseConfig(),
            monitoring=MonitoringConfig()
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)

        return cls(
            chain=ChainConfig(**data.get('chain', {})),
            exchange=ExchangeConfig(**data.get('exchange', {})),
            database=DatabaseConfig(**data.get('database', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {}))
        )

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'chain': asdict(self.chain),
            'exchange': asdict(self.exchange),
            'database': asdict(self.database),
            'monitoring': asdict(self.monitoring)
        }
