# amm_v1/monitoring.py
import socket
import threading
import time
import logging
from socketserver import ThreadingMixIn
from wsgiref.simple_server import make_server, WSGIServer

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app

from amm_v1.errors import ValidationError
from amm_v1.pricing import invariant

logger = logging.getLogger(__name__)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that runs in a separate thread to not block the main application."""
    allow_reuse_address = True


class Monitor:
    def __init__(self, blockchain, host="127.0.0.1", port=9090):
        self.blockchain = blockchain
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        # Isolated registry so several chains can live in one process
        self.registry = CollectorRegistry()

        self.tx_counter = Counter('exchange_transactions_total', 'Total number of transactions processed', ['status'], registry=self.registry)
        self.tx_latency = Histogram('exchange_tx_latency_seconds', 'Time to process a tx', registry=self.registry)
        self.chain_height = Gauge('exchange_chain_height', 'Current height of the chain', registry=self.registry)
        self.base_reserve = Gauge('exchange_base_reserve', 'Base asset held by the exchange', ['exchange'], registry=self.registry)
        self.token_reserve = Gauge('exchange_token_reserve', 'Tokens held by the exchange', ['exchange'], registry=self.registry)
        self.invariant_k = Gauge('exchange_invariant_k', 'Constant product k', ['exchange'], registry=self.registry)
        self.liquidity_supply = Gauge('exchange_liquidity_supply', 'Ownership units issued', ['exchange'], registry=self.registry)

    def start_server(self, max_retries=5, retry_delay=2):
        """Creates and starts the Prometheus HTTP server, retrying while the port is busy."""
        app = make_wsgi_app(self.registry)

        for attempt in range(max_retries):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

                self.thread = threading.Thread(target=self.server.serve_forever)
                self.thread.daemon = True
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == 98:  # Address already in use
                    if attempt < max_retries - 1:
                        logger.warning(f"Port {self.port} in use, retrying in {retry_delay}s (attempt {attempt+1}/{max_retries})...")
                        time.sleep(retry_delay)
                    else:
                        logger.error(f"Failed to bind to port {self.port} after {max_retries} attempts")
                        raise
                else:
                    raise

    def stop_server(self):
        """Stops the HTTP server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")

    def update(self):
        self.chain_height.set(self.blockchain.height)

        for address in self.blockchain.contracts(kind="Exchange"):
            label = address.hex()
            try:
                base, tokens = self.blockchain.call(address, 'reserves')
                supply = self.blockchain.call(address, 'total_supply')
            except ValidationError as e:
                logger.warning(f"Could not read exchange {label[:8]}: {e}")
                continue
            self.base_reserve.labels(exchange=label).set(base)
            self.token_reserve.labels(exchange=label).set(tokens)
            self.invariant_k.labels(exchange=label).set(invariant(base, tokens))
            self.liquidity_supply.labels(exchange=label).set(supply)

    def record_tx(self, status: str, latency: float):
        self.tx_counter.labels(status=status).inc()
        self.tx_latency.observe(latency)
