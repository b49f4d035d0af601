from .rpc import SolanaRpcClient, default_client_factory

__all__ = ["SolanaRpcClient", "default_client_factory"]
